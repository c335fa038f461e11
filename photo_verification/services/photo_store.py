"""
Capacity-bounded photo collection for one verification slot
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Iterator, List, Optional, Tuple

from photo_verification.core.errors import FileTooLargeError
from photo_verification.models.photo import Photo

logger = logging.getLogger(__name__)


class PhotoStore:
    """
    Ordered photos for a single slot.

    The store never holds more than ``max_photos`` photos. Inserting into a
    full store evicts the oldest photo so the newest evidence is kept.
    """

    def __init__(self, max_photos: int, max_size_bytes: int):
        if max_photos < 1:
            raise ValueError("max_photos must be at least 1")
        self.max_photos = max_photos
        self.max_size_bytes = max_size_bytes
        self._photos: List[Photo] = []

    def insert(
        self,
        payload: bytes,
        source_name: str,
        size_bytes: Optional[int] = None,
        encoding: str = "image/jpeg",
        width: Optional[int] = None,
        height: Optional[int] = None,
        id_prefix: str = "photo"
    ) -> Photo:
        """
        Add a photo, evicting the oldest one when the store is full

        Args:
            payload: Encoded image bytes
            source_name: Human-readable origin label
            size_bytes: Payload size, defaults to ``len(payload)``
            encoding: MIME type of the payload
            width: Image width in pixels, if known
            height: Image height in pixels, if known
            id_prefix: Prefix for the generated photo id

        Returns:
            The inserted photo
        """
        if size_bytes is None:
            size_bytes = len(payload)
        if size_bytes > self.max_size_bytes:
            raise FileTooLargeError(
                f"Photo '{source_name}' is {size_bytes} bytes, maximum is {self.max_size_bytes}"
            )

        photo = Photo(
            photo_id=f"{id_prefix}_{uuid.uuid4().hex[:12]}",
            payload=payload,
            captured_at=datetime.now(timezone.utc),
            source_name=source_name,
            size_bytes=size_bytes,
            encoding=encoding,
            width=width,
            height=height
        )

        if len(self._photos) >= self.max_photos:
            evicted = self._photos.pop(0)
            logger.info(f"♻️ Store full ({self.max_photos}), evicted oldest photo {evicted.id}")

        self._photos.append(photo)
        logger.debug(f"Inserted photo {photo.id} ({size_bytes} bytes)")
        return photo

    def remove(self, photo_id: str) -> Optional[Photo]:
        """Remove a photo by id; returns None when it is not present"""
        for index, photo in enumerate(self._photos):
            if photo.id == photo_id:
                return self._photos.pop(index)
        return None

    def get(self, photo_id: str) -> Optional[Photo]:
        for photo in self._photos:
            if photo.id == photo_id:
                return photo
        return None

    def all(self) -> Tuple[Photo, ...]:
        """Photos in insertion order"""
        return tuple(self._photos)

    def snapshot(self) -> Tuple[Photo, ...]:
        """Independent copies of all photos"""
        return tuple(photo.copy() for photo in self._photos)

    def clear(self) -> None:
        self._photos.clear()

    def __len__(self) -> int:
        return len(self._photos)

    def __iter__(self) -> Iterator[Photo]:
        return iter(tuple(self._photos))

    def __contains__(self, photo_id: object) -> bool:
        return any(photo.id == photo_id for photo in self._photos)
