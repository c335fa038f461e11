import asyncio
import threading

import cv2
import pytest

from conftest import FakeVideoCapture
from photo_verification.core.config import Settings
from photo_verification.core.errors import (
    DeviceUnavailableError,
    FileTooLargeError,
    UnsupportedFormatError,
)
from photo_verification.services.image_source import CameraSource, FileSource


async def test_file_source_accepts_png(config, png_bytes):
    image = await FileSource(png_bytes, "counter.png", "image/png", config=config).acquire()

    assert image.payload == png_bytes
    assert image.encoding == "image/png"
    assert image.origin == "upload"
    assert image.source_name == "counter.png"
    assert (image.width, image.height) == (8, 8)
    assert image.size_bytes == len(png_bytes)


async def test_file_source_guesses_type_from_name(config, jpeg_bytes):
    image = await FileSource(jpeg_bytes, "counter.jpg", config=config).acquire()
    assert image.encoding == "image/jpeg"


async def test_file_source_rejects_unaccepted_type(config, png_bytes):
    with pytest.raises(UnsupportedFormatError):
        await FileSource(png_bytes, "counter.gif", "image/gif", config=config).acquire()
    with pytest.raises(UnsupportedFormatError):
        await FileSource(png_bytes, "notes.txt", config=config).acquire()


async def test_file_source_rejects_oversize(tmp_path, noisy_png_bytes):
    small = Settings(max_file_size_mb=0.001, snapshot_folder=str(tmp_path), log_file="")
    assert len(noisy_png_bytes) > small.max_size_bytes

    with pytest.raises(FileTooLargeError):
        await FileSource(noisy_png_bytes, "big.png", "image/png", config=small).acquire()


async def test_file_source_rejects_undecodable(config):
    with pytest.raises(UnsupportedFormatError):
        await FileSource(b"not an image", "fake.png", "image/png", config=config).acquire()
    with pytest.raises(UnsupportedFormatError):
        await FileSource(b"", "empty.png", "image/png", config=config).acquire()


async def test_camera_open_acquire_release(camera, captures, config):
    await camera.open()
    assert camera.is_open
    assert captures[0].source == config.camera_source
    assert captures[0].properties[cv2.CAP_PROP_FRAME_WIDTH] == config.frame_width

    image = await camera.acquire()
    assert image.encoding == "image/jpeg"
    assert image.origin == "photo"
    assert image.source_name is None
    assert (image.width, image.height) == (64, 48)
    assert image.payload[:2] == b"\xff\xd8"

    camera.release()
    camera.release()
    assert not camera.is_open
    assert captures[0].release_count == 1


async def test_camera_can_be_reopened(camera, captures):
    for _ in range(3):
        await camera.open()
        camera.release()

    assert len(captures) == 3
    assert all(cap.release_count == 1 for cap in captures)


async def test_open_twice_keeps_one_device(camera, captures):
    await camera.open()
    await camera.open()
    assert len(captures) == 1
    camera.release()


async def test_acquire_requires_open_camera(camera):
    with pytest.raises(DeviceUnavailableError):
        await camera.acquire()


async def test_unopenable_device_is_released(config):
    created = []

    def factory(source):
        cap = FakeVideoCapture(source, opened=False)
        created.append(cap)
        return cap

    camera = CameraSource(config, capture_factory=factory)
    with pytest.raises(DeviceUnavailableError):
        await camera.open()

    assert not camera.is_open
    assert created[0].release_count == 1


async def test_disabled_camera(tmp_path):
    disabled = Settings(camera_source=-1, snapshot_folder=str(tmp_path), log_file="")
    camera = CameraSource(disabled, capture_factory=FakeVideoCapture)

    with pytest.raises(DeviceUnavailableError):
        await camera.open()


async def test_failed_frame_read(config):
    camera = CameraSource(config, capture_factory=lambda s: FakeVideoCapture(s, frame_ok=False))
    await camera.open()
    with pytest.raises(DeviceUnavailableError):
        await camera.acquire()
    camera.release()


async def test_cancelled_open_releases_device_once(config):
    gate = threading.Event()
    created = []

    def slow_factory(source):
        gate.wait(timeout=5)
        cap = FakeVideoCapture(source)
        created.append(cap)
        return cap

    camera = CameraSource(config, capture_factory=slow_factory)
    task = asyncio.create_task(camera.open())
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    gate.set()
    for _ in range(200):
        if created and created[0].release_count:
            break
        await asyncio.sleep(0.01)

    assert not camera.is_open
    assert created[0].release_count == 1
    camera.release()
    assert created[0].release_count == 1


async def test_scoped_session_releases_on_error(camera, captures):
    with pytest.raises(RuntimeError):
        async with camera.session():
            await camera.acquire()
            raise RuntimeError("host failure")

    assert not camera.is_open
    assert captures[0].release_count == 1


async def test_concurrent_opens_share_one_device(config):
    gate = threading.Event()
    created = []

    def slow_factory(source):
        gate.wait(timeout=5)
        cap = FakeVideoCapture(source)
        created.append(cap)
        return cap

    camera = CameraSource(config, capture_factory=slow_factory)
    opening = asyncio.gather(camera.open(), camera.open())
    await asyncio.sleep(0.05)
    gate.set()
    await opening

    assert len(created) == 1
    assert camera.is_open
    camera.release()
    assert created[0].release_count == 1


async def test_open_survives_one_cancelled_waiter(config):
    gate = threading.Event()
    created = []

    def slow_factory(source):
        gate.wait(timeout=5)
        cap = FakeVideoCapture(source)
        created.append(cap)
        return cap

    camera = CameraSource(config, capture_factory=slow_factory)
    cancelled = asyncio.create_task(camera.open())
    kept = asyncio.create_task(camera.open())
    await asyncio.sleep(0.05)
    cancelled.cancel()
    with pytest.raises(asyncio.CancelledError):
        await cancelled

    gate.set()
    await kept

    assert len(created) == 1
    assert camera.is_open
    assert created[0].release_count == 0
    camera.release()
    assert created[0].release_count == 1
