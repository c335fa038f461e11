"""
Database configuration and initialization
"""

import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from photo_verification.core.config import settings

logger = logging.getLogger(__name__)

# Database engine
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
    poolclass=StaticPool if "sqlite" in settings.database_url else None,
    echo=settings.debug
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


async def init_db(bind=None):
    """Initialize database tables"""
    # Import all models to ensure they are registered
    from photo_verification.models.slot import SlotCommit, PhotoSnapshot

    # Create all tables
    Base.metadata.create_all(bind=bind or engine)
    logger.info("✅ Database initialized successfully")

