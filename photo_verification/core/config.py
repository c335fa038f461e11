"""
Core configuration settings for the Step Photo Verification Service
"""

import os
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    # Pydantic v2 settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Database Configuration
    database_url: str = Field(default="sqlite:///./verification.db")

    # Camera Configuration (-1 disables the camera, uploads still work)
    camera_source: int = Field(default=0)
    frame_width: int = Field(default=1920)
    frame_height: int = Field(default=1080)
    fps: int = Field(default=30)

    # Capture policy
    max_photos: int = Field(default=5, ge=1)
    max_file_size_mb: float = Field(default=10, gt=0)
    accepted_encodings: List[str] = Field(default=["image/jpeg", "image/png", "image/webp"])
    capture_quality: float = Field(default=0.8, ge=0.0, le=1.0)

    # Committed photo storage
    snapshot_folder: str = Field(default="./snapshots")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_file: str = Field(default="./logs/app.log")

    # Application Configuration
    app_name: str = "Step Photo Verification Service"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False)

    @property
    def max_size_bytes(self) -> int:
        """Per-photo size limit in bytes"""
        return int(self.max_file_size_mb * 1024 * 1024)


# Global settings instance
settings = Settings()


def create_directories(config: Settings = settings):
    """Create necessary directories if they don't exist"""
    directories = [
        config.snapshot_folder,
        os.path.dirname(config.log_file),
    ]

    for directory in directories:
        if directory and not os.path.exists(directory):
            os.makedirs(directory, exist_ok=True)
