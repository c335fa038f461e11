"""
Request bodies for the capture session API
"""

from typing import Optional

from pydantic import BaseModel, Field

from photo_verification.models.photo import (
    DEFAULT_COLOR,
    DEFAULT_STROKE_WIDTH,
    AnnotationKind,
    VerificationStatus,
)


class StartSessionRequest(BaseModel):
    use_camera: bool = True


class PointRequest(BaseModel):
    x: float
    y: float


class BeginAnnotationRequest(BaseModel):
    kind: AnnotationKind
    x: float
    y: float
    color: str = Field(default=DEFAULT_COLOR, pattern=r"^#[0-9A-Fa-f]{6}$")
    stroke_width: int = Field(default=DEFAULT_STROKE_WIDTH, ge=1, le=50)
    text: Optional[str] = Field(default=None, max_length=500)


class VerificationRequest(BaseModel):
    status: VerificationStatus
    notes: Optional[str] = Field(default=None, max_length=500)
