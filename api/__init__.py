"""
API Layer for the FaceMatch system

This package provides the FastAPI-based API layer that exposes:
- REST endpoints for face registration and recognition
- Read-only gallery endpoints and a health check

Routes reach the engine through app.state; see api.app.create_app().
"""
