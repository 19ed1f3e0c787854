"""
Gallery API Routes

This module provides read-only endpoints over the registered faces:
- GET /gallery: list all entries (descriptors omitted)
- GET /gallery/identities: distinct identity labels
- GET /gallery/exists?source=...: check whether a source is registered

The gallery is append-only; there is no delete endpoint.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import get_engine
from api.schemas import (
    GalleryEntryInfo,
    GalleryListResponse,
    IdentityListResponse,
    SourceExistsResponse,
)
from facematch.engine import FaceMatchEngine
from facematch.errors import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/gallery", tags=["gallery"])


def _storage_unavailable(e: StorageError) -> HTTPException:
    logger.error(f"Gallery query failed: {e}")
    return HTTPException(status_code=503, detail="Gallery storage unavailable")


@router.get("", response_model=GalleryListResponse)
def list_gallery(engine: FaceMatchEngine = Depends(get_engine)):
    """List every registered face in registration order."""
    try:
        entries = engine.store.list_all()
    except StorageError as e:
        raise _storage_unavailable(e)

    return GalleryListResponse(
        entries=[GalleryEntryInfo(**entry.to_dict()) for entry in entries],
        total=len(entries),
    )


@router.get("/identities", response_model=IdentityListResponse)
def list_identities(engine: FaceMatchEngine = Depends(get_engine)):
    try:
        identities = engine.store.identities()
    except StorageError as e:
        raise _storage_unavailable(e)
    return IdentityListResponse(identities=identities, total=len(identities))


@router.get("/exists", response_model=SourceExistsResponse)
def source_exists(
    source: str = Query(..., min_length=1, description="Source reference to look up"),
    engine: FaceMatchEngine = Depends(get_engine),
):
    try:
        exists = engine.store.exists(source)
    except StorageError as e:
        raise _storage_unavailable(e)
    return SourceExistsResponse(source=source, exists=exists)
