"""
Image sources for photo capture: live camera and uploaded files
"""

import asyncio
import logging
import mimetypes
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import cv2
import numpy as np

from photo_verification.core.config import Settings, settings as default_settings
from photo_verification.core.errors import (
    DeviceUnavailableError,
    FileTooLargeError,
    UnsupportedFormatError,
)
from photo_verification.models.photo import CapturedImage

logger = logging.getLogger(__name__)


class ImageSource:
    """Produces encoded still images on demand"""

    origin = "photo"

    @property
    def is_open(self) -> bool:
        return True

    async def open(self) -> None:
        """Acquire any device resource the source needs"""

    async def acquire(self) -> CapturedImage:
        """Produce one encoded still image"""
        raise NotImplementedError

    def release(self) -> None:
        """Free any held device resource; safe to call repeatedly"""

    @asynccontextmanager
    async def session(self):
        """Scoped acquisition: the source is released on every exit path"""
        try:
            await self.open()
            yield self
        finally:
            self.release()


class CameraSource(ImageSource):
    """Camera-backed source using an OpenCV capture device"""

    origin = "photo"

    def __init__(
        self,
        config: Settings = default_settings,
        capture_factory: Callable[[int], Any] = cv2.VideoCapture
    ):
        self.config = config
        self._capture_factory = capture_factory
        self._cap: Optional[Any] = None
        self._opening: Optional[asyncio.Future] = None
        self._waiters = 0

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    async def open(self) -> None:
        """Open the camera device; concurrent callers share one negotiation"""
        if self._cap is not None:
            return

        if self.config.camera_source == -1:
            raise DeviceUnavailableError("Camera is disabled (CAMERA_SOURCE=-1)")

        # Device negotiation blocks, so it runs in a worker thread. The
        # thread cannot be interrupted; when every waiter is cancelled the
        # device it opens is released once it completes.
        pending = self._opening
        if pending is None:
            pending = self._opening = asyncio.ensure_future(asyncio.to_thread(self._open_device))

        self._waiters += 1
        try:
            cap = await asyncio.shield(pending)
        except asyncio.CancelledError:
            if self._waiters == 1 and self._opening is pending:
                self._opening = None
                pending.add_done_callback(self._release_orphan)
                logger.info("🛑 Camera open cancelled")
            raise
        except Exception:
            if self._opening is pending:
                self._opening = None
            raise
        finally:
            self._waiters -= 1

        # The first waiter to resume takes ownership of the device
        if self._opening is pending:
            self._opening = None
            self._cap = cap
            logger.info(f"🎥 Camera source {self.config.camera_source} opened")

    def _open_device(self):
        cap = self._capture_factory(self.config.camera_source)
        if not cap.isOpened():
            cap.release()
            raise DeviceUnavailableError(
                f"Could not open camera source {self.config.camera_source}"
            )
        self._configure_camera(cap)
        return cap

    def _configure_camera(self, cap) -> None:
        """Configure camera settings"""
        try:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.frame_width)
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.frame_height)
            cap.set(cv2.CAP_PROP_FPS, self.config.fps)
            logger.info("📷 Camera settings configured")
        except cv2.error as e:
            logger.warning(f"Some camera settings could not be applied: {e}")

    @staticmethod
    def _release_orphan(task: asyncio.Future) -> None:
        if task.cancelled() or task.exception() is not None:
            return
        task.result().release()
        logger.info("🛑 Released camera opened after cancellation")

    async def acquire(self) -> CapturedImage:
        """Capture a single JPEG still from the open camera"""
        cap = self._cap
        if cap is None:
            raise DeviceUnavailableError("Camera is not open")

        ret, frame = await asyncio.to_thread(cap.read)
        if not ret or frame is None:
            raise DeviceUnavailableError("Failed to read frame from camera")

        quality = int(round(self.config.capture_quality * 100))
        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
        if not ok:
            raise DeviceUnavailableError("Failed to encode camera frame")

        height, width = frame.shape[:2]
        logger.debug(f"📸 Captured {width}x{height} frame at quality {quality}")
        return CapturedImage(
            payload=buffer.tobytes(),
            encoding="image/jpeg",
            origin=self.origin,
            width=int(width),
            height=int(height)
        )

    def release(self) -> None:
        """Release the camera device"""
        if self._cap is None:
            return
        cap, self._cap = self._cap, None
        cap.release()
        logger.info("🛑 Camera source released")


class FileSource(ImageSource):
    """Source for a single uploaded image file"""

    origin = "upload"

    def __init__(
        self,
        content: bytes,
        filename: str,
        content_type: Optional[str] = None,
        config: Settings = default_settings
    ):
        self.content = content
        self.filename = filename
        self.content_type = content_type or mimetypes.guess_type(filename)[0]
        self.config = config

    async def acquire(self) -> CapturedImage:
        """Validate the upload and return it as a captured image"""
        encoding = (self.content_type or "").lower()
        if encoding not in self.config.accepted_encodings:
            raise UnsupportedFormatError(
                f"File type '{encoding or 'unknown'}' not allowed. "
                f"Allowed types: {self.config.accepted_encodings}"
            )

        size_bytes = len(self.content)
        if size_bytes > self.config.max_size_bytes:
            raise FileTooLargeError(
                f"File size {size_bytes / (1024 * 1024):.2f}MB exceeds maximum "
                f"{self.config.max_file_size_mb}MB"
            )

        image = None
        if self.content:
            image = cv2.imdecode(np.frombuffer(self.content, np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            raise UnsupportedFormatError(f"Could not decode image '{self.filename}'")

        height, width = image.shape[:2]
        return CapturedImage(
            payload=bytes(self.content),
            encoding=encoding,
            origin=self.origin,
            source_name=self.filename,
            width=int(width),
            height=int(height)
        )
