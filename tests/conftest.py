"""
Shared fixtures: test settings, fake camera devices, image bytes and an in-memory repository
"""

import cv2
import numpy as np
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from photo_verification.core.config import Settings
from photo_verification.core.database import Base
from photo_verification.models import slot  # noqa: F401  registers tables
from photo_verification.services.image_source import CameraSource
from photo_verification.services.persistence import SqlPhotoRepository


class FakeVideoCapture:
    """Stands in for cv2.VideoCapture"""

    def __init__(self, source=0, opened=True, frame_ok=True):
        self.source = source
        self.opened = opened
        self.frame_ok = frame_ok
        self.release_count = 0
        self.properties = {}

    def isOpened(self):
        return self.opened and self.release_count == 0

    def set(self, prop, value):
        self.properties[prop] = value
        return True

    def read(self):
        if not self.frame_ok:
            return False, None
        frame = np.full((48, 64, 3), 127, dtype=np.uint8)
        return True, frame

    def release(self):
        self.release_count += 1


def encode_image(extension=".png", shape=(8, 8, 3), noisy=False):
    if noisy:
        image = np.random.default_rng(0).integers(0, 256, shape, dtype=np.uint8)
    else:
        image = np.zeros(shape, dtype=np.uint8)
    ok, buffer = cv2.imencode(extension, image)
    assert ok
    return buffer.tobytes()


@pytest.fixture
def config(tmp_path):
    return Settings(
        camera_source=0,
        max_photos=5,
        max_file_size_mb=1,
        capture_quality=0.8,
        snapshot_folder=str(tmp_path / "snapshots"),
        log_file=""
    )


@pytest.fixture
def png_bytes():
    return encode_image(".png")


@pytest.fixture
def jpeg_bytes():
    return encode_image(".jpg")


@pytest.fixture
def noisy_png_bytes():
    return encode_image(".png", shape=(64, 64, 3), noisy=True)


@pytest.fixture
def captures():
    """Every fake capture device created by the camera factory"""
    return []


@pytest.fixture
def capture_factory(captures):
    def factory(source):
        cap = FakeVideoCapture(source)
        captures.append(cap)
        return cap
    return factory


@pytest.fixture
def camera(config, capture_factory):
    return CameraSource(config, capture_factory=capture_factory)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def repository(session_factory, config):
    return SqlPhotoRepository(session_factory, storage_dir=config.snapshot_folder)
