"""
Slot commit and photo snapshot models for storing committed verification photos
"""

from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from photo_verification.core.database import Base


class SlotCommit(Base):
    """Model for one committed photo set of a procedure step"""

    __tablename__ = "slot_commits"

    id = Column(Integer, primary_key=True, index=True)
    slot_id = Column(String(255), nullable=False, index=True)
    committed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    photo_count = Column(Integer, nullable=False, default=0)

    photos = relationship(
        "PhotoSnapshot",
        back_populates="commit",
        order_by="PhotoSnapshot.position",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<SlotCommit(id={self.id}, slot_id={self.slot_id}, photos={self.photo_count})>"


class PhotoSnapshot(Base):
    """Model for storing a committed photo with its annotations and verification"""

    __tablename__ = "photo_snapshots"

    id = Column(Integer, primary_key=True, index=True)
    commit_id = Column(Integer, ForeignKey("slot_commits.id"), nullable=False)
    commit = relationship("SlotCommit", back_populates="photos")
    position = Column(Integer, nullable=False)

    photo_id = Column(String(64), nullable=False)
    captured_at = Column(DateTime(timezone=True), nullable=False)
    source_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size_bytes = Column(Integer, nullable=False)

    # Image metadata
    encoding = Column(String(50), nullable=False)
    image_width = Column(Integer, nullable=True)
    image_height = Column(Integer, nullable=True)

    # Vector annotation layer
    annotations = Column(JSON, nullable=False, default=list)
    annotation_count = Column(Integer, nullable=False, default=0)

    # Review decision
    verification_status = Column(String(20), nullable=False, default="pending")
    verification_notes = Column(Text, nullable=True)

    def __repr__(self):
        return f"<PhotoSnapshot(id={self.id}, photo_id={self.photo_id}, status={self.verification_status})>"
