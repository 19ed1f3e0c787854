"""
API Routes Package

This package contains route handlers organized by feature:
- registration.py: POST /register
- recognition.py: POST /recognize
- gallery.py: read-only gallery listing and lookups
"""

from api.routes.registration import router as registration_router
from api.routes.recognition import router as recognition_router
from api.routes.gallery import router as gallery_router

__all__ = [
    "registration_router",
    "recognition_router",
    "gallery_router",
]
