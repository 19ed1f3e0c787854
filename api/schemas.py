"""
Pydantic Schemas for API Request/Response Models

This module defines the data models used by the FaceMatch HTTP API.

These schemas provide:
- Type validation
- Automatic documentation in OpenAPI/Swagger
- Clear interface contracts
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class Region(BaseModel):
    """Face rectangle in pixel coordinates."""
    x: int = Field(..., description="Left edge")
    y: int = Field(..., description="Top edge")
    width: int = Field(..., gt=0, description="Width in pixels")
    height: int = Field(..., gt=0, description="Height in pixels")


# ============================================================
# Registration Schemas
# ============================================================

class RegisterRequest(BaseModel):
    """Register the face in an image under an identity."""
    identity: str = Field(..., min_length=1, description="Label of the person, e.g. 'alice'")
    source: str = Field(
        ...,
        min_length=1,
        description="Unique reference of the image (file name, capture id). "
                    "Registering the same source twice is a no-op."
    )
    image: str = Field(..., description="Base64-encoded JPEG/PNG image")
    detect: bool = Field(
        True,
        description="Detect the face and register the largest one. "
                    "If false, the whole image is treated as the face."
    )


class RegisterResponse(BaseModel):
    """Outcome of a registration."""
    status: str = Field(..., description="'stored' or 'already_exists'")
    identity: str
    source: str
    region: Optional[Region] = Field(None, description="Face region that was registered")


# ============================================================
# Recognition Schemas
# ============================================================

class RecognizeRequest(BaseModel):
    """Identify every face in an image."""
    image: str = Field(..., description="Base64-encoded JPEG/PNG image")
    regions: Optional[List[Region]] = Field(
        None,
        description="Face regions to identify. Detected automatically if omitted."
    )
    source: Optional[str] = Field(None, description="Optional reference echoed in the response")


class RegionResultModel(BaseModel):
    """Outcome for one face region."""
    region: Region
    status: str = Field(..., description="'matched', 'no_match' or 'extraction_failed'")
    identity: Optional[str] = Field(None, description="Matched identity (matched only)")
    distance: Optional[float] = Field(None, description="Euclidean distance to the reported entry")
    source: Optional[str] = Field(None, description="Source reference of the matched entry")


class RecognizeResponse(BaseModel):
    """Recognition results for one image."""
    source: Optional[str] = None
    faces: int = Field(..., description="Number of face regions processed")
    gallery_size: int = Field(..., description="Entries in the gallery snapshot used")
    counts: Dict[str, int] = Field(default_factory=dict, description="Regions per status")
    results: List[RegionResultModel] = Field(default_factory=list)


# ============================================================
# Gallery Schemas
# ============================================================

class GalleryEntryInfo(BaseModel):
    """One registered face (descriptor omitted)."""
    identity: str
    source: str
    dimension: int


class GalleryListResponse(BaseModel):
    entries: List[GalleryEntryInfo] = Field(default_factory=list)
    total: int = Field(0, description="Total number of gallery entries")


class IdentityListResponse(BaseModel):
    identities: List[str] = Field(default_factory=list)
    total: int = Field(0, description="Number of distinct identities")


class SourceExistsResponse(BaseModel):
    source: str
    exists: bool


# ============================================================
# Health Check Schemas
# ============================================================

class HealthResponse(BaseModel):
    """System health check response."""
    status: str = Field(..., description="'healthy' or 'unhealthy'")
    gallery_entries: int = Field(0, description="Number of registered faces")
    identities: int = Field(0, description="Number of distinct identities")
    dimension: Optional[int] = Field(None, description="Descriptor dimension of the gallery")
    threshold: float = Field(..., description="Match threshold in use")
    policy: str = Field(..., description="Match policy in use")
    extractor: str = Field(..., description="Descriptor extractor class")
    detail: Optional[str] = Field(None, description="Reason for an unhealthy status")
