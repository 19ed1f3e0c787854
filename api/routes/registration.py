"""
Registration API Routes

This module provides:
- POST /register: register the face of an image under an identity
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import decode_image, get_engine
from api.schemas import Region, RegisterRequest, RegisterResponse
from facematch.engine import FaceMatchEngine
from facematch.errors import DimensionMismatch, ExtractionFailed, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["registration"])


@router.post("/register", response_model=RegisterResponse)
def register_face(request: RegisterRequest, engine: FaceMatchEngine = Depends(get_engine)):
    """
    Register a face.

    The image is decoded, the largest detected face (or the whole image when
    `detect` is false) is turned into a descriptor and stored under
    `identity`. A source that is already registered is left untouched and
    reported as `already_exists`.

    Raises:
        400: If the image cannot be decoded or identity/source is blank.
        422: If no face or no descriptor could be extracted.
        503: If the gallery database is unavailable.
    """
    image = decode_image(request.image)

    try:
        result = engine.registration.register_image(
            image, request.identity, request.source, detect=request.detect
        )
    except DimensionMismatch as e:
        logger.error(f"Extractor and gallery disagree: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ExtractionFailed as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StorageError as e:
        logger.error(f"Registration of {request.source} failed: {e}")
        raise HTTPException(status_code=503, detail="Gallery storage unavailable")

    return RegisterResponse(
        status=result.status.value,
        identity=result.identity,
        source=result.source,
        region=Region(**result.region.to_dict()) if result.region is not None else None,
    )
