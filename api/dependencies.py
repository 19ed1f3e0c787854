"""
Shared helpers for route handlers: engine lookup and image decoding.
"""

import base64
import binascii

import cv2
import numpy as np
from fastapi import HTTPException, Request

from facematch.engine import FaceMatchEngine


def get_engine(request: Request) -> FaceMatchEngine:
    """FastAPI dependency returning the engine created at startup."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def decode_image(data: str) -> np.ndarray:
    """
    Decode a base64 JPEG/PNG (optionally a data URL) to a BGR image.

    Raises:
        HTTPException 400: If the payload is not a decodable image.
    """
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="Image is not valid base64")
    if not raw:
        raise HTTPException(status_code=400, detail="Image is empty")

    image = cv2.imdecode(np.frombuffer(raw, np.uint8), cv2.IMREAD_COLOR)
    if image is None:
        raise HTTPException(status_code=400, detail="Could not decode image")
    return image
