"""
FastAPI Application Entry Point

This module creates and configures the FastAPI application for the
FaceMatch registration and recognition API.

The application provides:
- POST /register and POST /recognize
- Read-only gallery endpoints
- Health check endpoint

Usage:
    # From project root:
    uvicorn api.app:app --host 0.0.0.0 --port 8000 --reload

    # Or run directly:
    python -m api.app
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.routes import gallery_router, recognition_router, registration_router
from api.schemas import HealthResponse
from facematch.config import configure_logging, load_settings
from facematch.engine import FaceMatchEngine
from facematch.errors import StorageError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup:
    - Load config.yaml and configure logging
    - Build the engine (gallery store, detector, extractor, matcher)
      unless one was injected with create_app(engine=...)

    Runs on shutdown:
    - Close the gallery store of an engine created here
    """
    owned = False
    if app.state.engine is None:
        settings = load_settings()
        configure_logging(settings)

        logger.info("=" * 60)
        logger.info("Starting FaceMatch API")
        logger.info("=" * 60)

        app.state.engine = FaceMatchEngine.from_settings(settings)
        owned = True

    stats = app.state.engine.store.get_stats()
    logger.info(
        f"Gallery ready: {stats['total_entries']} entries, "
        f"{stats['total_identities']} identities"
    )

    yield

    if owned:
        logger.info("Shutting down API...")
        app.state.engine.close()
        app.state.engine = None
        logger.info("Shutdown complete")


def create_app(engine: Optional[FaceMatchEngine] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        engine: Pre-built engine to serve. If omitted, one is built from
                config.yaml at startup and closed at shutdown.
    """
    app = FastAPI(
        title="FaceMatch API",
        description="""
API for face registration and recognition against an embedding gallery.

## Features
- **Registration**: store the descriptor of a face under an identity
- **Recognition**: identify every face of an image (matched / no_match / extraction_failed)
- **Gallery**: list registered faces and identities
        """,
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = engine

    # Configure CORS for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(registration_router)
    app.include_router(recognition_router)
    app.include_router(gallery_router)

    @app.get("/health", response_model=HealthResponse, tags=["system"])
    def health_check():
        """
        Check the health of the API and its gallery.

        Reports gallery size and the matching configuration in use. The
        status is 'unhealthy' when the gallery database cannot be queried.
        """
        engine = app.state.engine
        if engine is None:
            return HealthResponse(
                status="unhealthy",
                threshold=0.0,
                policy="",
                extractor="",
                detail="Engine not initialized",
            )

        common = dict(
            threshold=engine.matcher.threshold,
            policy=engine.matcher.policy,
            extractor=type(engine.extractor).__name__,
        )
        try:
            stats = engine.store.get_stats()
        except StorageError as e:
            logger.error(f"Health check failed: {e}")
            return HealthResponse(status="unhealthy", detail=str(e), **common)

        return HealthResponse(
            status="healthy",
            gallery_entries=stats["total_entries"],
            identities=stats["total_identities"],
            dimension=stats["dimension"],
            **common,
        )

    @app.get("/", tags=["system"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "FaceMatch API",
            "version": "0.1.0",
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = load_settings()
    configure_logging(settings)

    logger.info(f"Starting server on {settings.api.host}:{settings.api.port}")
    uvicorn.run(
        "api.app:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=True,
        log_level="info",
    )
