"""
Recognition API Routes

This module provides:
- POST /recognize: identify every face of an image against the gallery
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import decode_image, get_engine
from api.schemas import RecognizeRequest, RecognizeResponse
from facematch.engine import FaceMatchEngine
from facematch.errors import DimensionMismatch, StorageError
from facematch.interfaces import FaceRegion

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recognition"])


@router.post("/recognize", response_model=RecognizeResponse)
def recognize_faces(request: RecognizeRequest, engine: FaceMatchEngine = Depends(get_engine)):
    """
    Identify the faces of an image.

    Each region yields one result with status `matched` (identity and
    distance set), `no_match` or `extraction_failed`. Regions are detected
    automatically unless given in the request.

    Raises:
        400: If the image cannot be decoded.
        503: If the gallery database is unavailable.
    """
    image = decode_image(request.image)

    regions = None
    if request.regions is not None:
        regions = [FaceRegion(r.x, r.y, r.width, r.height) for r in request.regions]

    try:
        report = engine.recognition.recognize_image(image, regions=regions, source=request.source)
    except StorageError as e:
        logger.error(f"Recognition aborted: {e}")
        raise HTTPException(status_code=503, detail="Gallery storage unavailable")
    except DimensionMismatch as e:
        logger.error(f"Extractor and gallery disagree: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return RecognizeResponse(**report.to_dict())
