"""
Persistence of committed slot snapshots: payload files plus database records
"""

import logging
import mimetypes
from datetime import timezone
from pathlib import Path
from typing import List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from photo_verification.core.config import settings
from photo_verification.core.database import SessionLocal
from photo_verification.core.errors import PersistenceError
from photo_verification.models.photo import (
    Annotation,
    Photo,
    SaveResult,
    SlotSnapshot,
    Verification,
    VerificationStatus,
)
from photo_verification.models.slot import PhotoSnapshot, SlotCommit

logger = logging.getLogger(__name__)

EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


class PhotoRepository(Protocol):
    """Save/load service for committed slots"""

    def save(self, slot_id: str, snapshot: SlotSnapshot) -> SaveResult:
        """Persist a slot snapshot"""

    def load(self, slot_id: str) -> Optional[SlotSnapshot]:
        """Return the most recent snapshot committed for a slot"""


def _extension_for(encoding: str) -> str:
    return EXTENSIONS.get(encoding) or mimetypes.guess_extension(encoding) or ".bin"


def _slot_directory_name(slot_id: str) -> str:
    safe = "".join(c if c.isalnum() or c in "-_" else "_" for c in slot_id)
    return safe or "slot"


class SqlPhotoRepository:
    """Writes photo payloads to the snapshot folder and metadata to the database"""

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        storage_dir: Optional[str] = None
    ):
        self.session_factory = session_factory
        self.storage_dir = Path(storage_dir or settings.snapshot_folder)

    def save(self, slot_id: str, snapshot: SlotSnapshot) -> SaveResult:
        """
        Save every photo of a snapshot

        Args:
            slot_id: Procedure step the photos belong to
            snapshot: Finalized copy of the slot's photos

        Returns:
            Commit id and written file paths
        """
        slot_dir = self.storage_dir / _slot_directory_name(slot_id)
        written: List[Path] = []

        db = self.session_factory()
        try:
            slot_dir.mkdir(parents=True, exist_ok=True)
            commit = SlotCommit(
                slot_id=slot_id,
                committed_at=snapshot.committed_at,
                photo_count=len(snapshot.photos)
            )

            for position, photo in enumerate(snapshot.photos):
                file_path = slot_dir / f"{photo.id}{_extension_for(photo.encoding)}"
                file_path.write_bytes(photo.payload)
                written.append(file_path)

                commit.photos.append(PhotoSnapshot(
                    position=position,
                    photo_id=photo.id,
                    captured_at=photo.captured_at,
                    source_name=photo.source_name,
                    file_path=str(file_path),
                    file_size_bytes=photo.size_bytes,
                    encoding=photo.encoding,
                    image_width=photo.width,
                    image_height=photo.height,
                    annotations=[a.to_dict() for a in photo.annotations],
                    annotation_count=len(photo.annotations),
                    verification_status=photo.verification.status.value,
                    verification_notes=photo.verification.notes
                ))

            db.add(commit)
            db.commit()
            logger.info(f"💾 Saved slot {slot_id} commit {commit.id} with {len(written)} photos")
            return SaveResult(
                commit_id=commit.id,
                slot_id=slot_id,
                photo_count=len(written),
                file_paths=[str(p) for p in written]
            )

        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to save slot {slot_id}: {e}")
            db.rollback()
            for path in written:
                path.unlink(missing_ok=True)
            raise PersistenceError(f"Failed to save slot {slot_id}: {e}") from e
        finally:
            db.close()

    def load(self, slot_id: str) -> Optional[SlotSnapshot]:
        """Load the latest committed snapshot of a slot"""
        db = self.session_factory()
        try:
            commit = (
                db.query(SlotCommit)
                .filter(SlotCommit.slot_id == slot_id)
                .order_by(SlotCommit.id.desc())
                .first()
            )
            if commit is None:
                return None

            photos = tuple(self._to_photo(record) for record in commit.photos)
            return SlotSnapshot(
                slot_id=commit.slot_id,
                committed_at=_as_utc(commit.committed_at),
                photos=photos
            )

        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Failed to load slot {slot_id}: {e}")
            raise PersistenceError(f"Failed to load slot {slot_id}: {e}") from e
        finally:
            db.close()

    @staticmethod
    def _to_photo(record: PhotoSnapshot) -> Photo:
        return Photo(
            photo_id=record.photo_id,
            payload=Path(record.file_path).read_bytes(),
            captured_at=_as_utc(record.captured_at),
            source_name=record.source_name,
            size_bytes=record.file_size_bytes,
            encoding=record.encoding,
            width=record.image_width,
            height=record.image_height,
            annotations=[Annotation.from_dict(a) for a in record.annotations or []],
            verification=Verification(
                status=VerificationStatus(record.verification_status),
                notes=record.verification_notes
            )
        )


def _as_utc(value):
    # SQLite drops tzinfo on round-trip
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
