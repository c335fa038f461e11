"""
Capture session orchestrating image sources, the photo store, annotation and verification
"""

import logging
import re
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Tuple, Union

from photo_verification.core.config import Settings, settings as default_settings
from photo_verification.core.errors import (
    DeviceUnavailableError,
    CaptureInProgressError,
    DraftPendingError,
    EmptyStoreError,
    NoActivePhotoError,
    PhotoNotFoundError,
    SessionClosedError,
)
from photo_verification.models.photo import (
    Photo,
    SaveResult,
    SlotSnapshot,
    Verification,
    VerificationStatus,
)
from photo_verification.services.annotation_engine import AnnotationEngine, AnnotationLease
from photo_verification.services.image_source import ImageSource
from photo_verification.services.persistence import PhotoRepository
from photo_verification.services.photo_store import PhotoStore
from photo_verification.services.verification import VerificationWorkflow

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def sanitize_filename(name: str) -> str:
    """Strip characters that are unsafe in stored file names"""
    return _UNSAFE_NAME_CHARS.sub("", name)


class CaptureSession:
    """
    One verification task for a single slot.

    The session exclusively owns its ``PhotoStore``. At most one photo is
    open for annotation at a time; the session holds the lease for it and
    revokes the lease whenever the active photo changes or leaves the store.
    """

    def __init__(
        self,
        slot_id: str,
        repository: PhotoRepository,
        source: Optional[ImageSource] = None,
        config: Settings = default_settings
    ):
        self.slot_id = slot_id
        self.repository = repository
        self.source = source
        self.config = config
        self.store = PhotoStore(config.max_photos, config.max_size_bytes)
        self.verification = VerificationWorkflow(self.store)
        self.last_save: Optional[SaveResult] = None
        self._engine: Optional[AnnotationEngine] = None
        self._closed = False
        self._pending_captures = 0

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def photos(self) -> Tuple[Photo, ...]:
        return self.store.all()

    @property
    def active_photo_id(self) -> Optional[str]:
        return self._engine.photo.id if self._engine else None

    @property
    def annotation(self) -> AnnotationEngine:
        """Engine for the active photo"""
        self._check_open()
        if self._engine is None:
            raise NoActivePhotoError("No photo is selected for annotation")
        return self._engine

    def _check_open(self) -> None:
        if self._closed:
            raise SessionClosedError(f"Session for slot {self.slot_id} is closed")

    async def start(self) -> None:
        """Open the session camera, releasing it again if opening fails or is cancelled"""
        self._check_open()
        if self.source is None:
            return
        try:
            await self.source.open()
        except BaseException:
            self.source.release()
            raise
        logger.info(f"🎬 Capture session started for slot {self.slot_id}")

    def stop(self) -> None:
        """Release the session camera"""
        if self.source is not None:
            self.source.release()

    @asynccontextmanager
    async def running(self):
        """Keep the camera open for the duration of the block"""
        await self.start()
        try:
            yield self
        finally:
            self.stop()

    async def capture_photo(self, source: Optional[ImageSource] = None) -> Photo:
        """
        Acquire an image and add it to the store

        Args:
            source: Source to capture from, defaults to the session camera

        Returns:
            The inserted photo
        """
        self._check_open()
        source = source or self.source
        if source is None:
            raise DeviceUnavailableError("No camera is attached to this session")

        self._pending_captures += 1
        try:
            image = await source.acquire()
        finally:
            self._pending_captures -= 1
            # A discard during the read deferred releasing the camera to us
            if self._closed and self._pending_captures == 0:
                self.stop()
        self._check_open()

        source_name = image.source_name
        if source_name:
            source_name = sanitize_filename(source_name) or f"{image.origin}.bin"
        else:
            source_name = f"step_{self.slot_id}_photo_{int(time.time() * 1000)}.jpg"

        photo = self.store.insert(
            image.payload,
            source_name,
            size_bytes=image.size_bytes,
            encoding=image.encoding,
            width=image.width,
            height=image.height,
            id_prefix=image.origin
        )

        if self._engine is not None and self._engine.photo.id not in self.store:
            self._close_engine()

        logger.info(f"📸 Captured {photo.id} for slot {self.slot_id} ({len(self.store)}/{self.store.max_photos})")
        return photo

    def select_for_annotation(self, photo_id: str) -> AnnotationEngine:
        """Make ``photo_id`` the single photo open for annotation"""
        self._check_open()
        if self._engine is not None:
            if self._engine.photo.id == photo_id:
                return self._engine
            if self._engine.draft is not None:
                raise DraftPendingError(
                    f"Finish or discard the annotation on photo {self._engine.photo.id} first"
                )

        photo = self.store.get(photo_id)
        if photo is None:
            raise PhotoNotFoundError(f"Photo {photo_id} not found")

        self._close_engine()
        self._engine = AnnotationEngine(photo, AnnotationLease(photo_id))
        logger.debug(f"Photo {photo_id} selected for annotation")
        return self._engine

    def release_annotation(self) -> None:
        """Close the active photo so no photo is open for annotation"""
        self._check_open()
        if self._engine is not None and self._engine.draft is not None:
            raise DraftPendingError("Finish or discard the current annotation first")
        self._close_engine()

    def _close_engine(self) -> None:
        if self._engine is not None:
            self._engine.lease.revoke()
            self._engine = None

    def delete_photo(self, photo_id: str) -> Optional[Photo]:
        """Remove a photo; deleting the active photo also drops its draft"""
        self._check_open()
        if self._engine is not None and self._engine.photo.id == photo_id:
            self._close_engine()
        removed = self.store.remove(photo_id)
        if removed is not None:
            logger.info(f"🗑️ Deleted photo {photo_id} from slot {self.slot_id}")
        return removed

    def set_status(
        self,
        photo_id: str,
        status: Union[VerificationStatus, str],
        notes: Optional[str] = None
    ) -> Verification:
        self._check_open()
        return self.verification.set_status(photo_id, status, notes)

    def commit(self) -> SlotSnapshot:
        """
        Hand a finalized copy of the store to the repository and close the session

        Raises:
            CaptureInProgressError: a camera read has not finished yet
            EmptyStoreError: no photos were captured
            DraftPendingError: an annotation is still being drawn
            PersistenceError: the repository failed; the session stays open
        """
        self._check_open()
        if self._pending_captures:
            raise CaptureInProgressError(f"Slot {self.slot_id} still has a capture in progress")
        if len(self.store) == 0:
            raise EmptyStoreError(f"Slot {self.slot_id} requires at least one photo")
        if self._engine is not None and self._engine.draft is not None:
            raise DraftPendingError("Finish or discard the current annotation before saving")

        snapshot = SlotSnapshot(
            slot_id=self.slot_id,
            committed_at=datetime.now(timezone.utc),
            photos=self.store.snapshot()
        )
        self.last_save = self.repository.save(self.slot_id, snapshot)

        self._shutdown()
        logger.info(f"✅ Slot {self.slot_id} committed with {len(snapshot.photos)} photos")
        return snapshot

    def discard(self) -> None:
        """Drop all captured state without saving"""
        if self._closed:
            return
        self._shutdown()
        logger.info(f"🛑 Capture session for slot {self.slot_id} discarded")

    def _shutdown(self) -> None:
        self._close_engine()
        if self._pending_captures == 0:
            self.stop()
        self.store.clear()
        self._closed = True
