"""
Main application entry point for the Step Photo Verification Service
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
import uvicorn
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from photo_verification.core.config import settings, create_directories
from photo_verification.core.database import init_db
from photo_verification.core.logging import setup_logging
from photo_verification.api.routes import router, set_services, sessions
from photo_verification.services.image_source import CameraSource
from photo_verification.services.persistence import SqlPhotoRepository

logger = logging.getLogger(__name__)


def camera_factory() -> CameraSource:
    """Create a camera source for a new capture session"""
    return CameraSource(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    create_directories()
    setup_logging()

    # Initialize database
    await init_db()

    if settings.camera_source == -1:
        logger.info("🎥 Camera disabled, photos can only be uploaded")

    set_services(
        SqlPhotoRepository(storage_dir=settings.snapshot_folder),
        camera_factory if settings.camera_source != -1 else None,
        settings
    )

    logger.info("🚀 Step Photo Verification Service started successfully!")

    yield

    # Shutdown: release cameras held by unfinished sessions
    for session in list(sessions.values()):
        session.discard()
    sessions.clear()

    logger.info("🛑 Step Photo Verification Service stopped")

# Initialize FastAPI app with lifespan
app = FastAPI(
    title=settings.app_name,
    description="Photo capture, annotation and verification for procedure steps",
    version=settings.app_version,
    lifespan=lifespan
)

# Include API routes
app.include_router(router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "active_sessions": len(sessions)
    }

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
