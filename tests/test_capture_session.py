import asyncio
import threading

import pytest

from conftest import FakeVideoCapture
from photo_verification.core.errors import (
    CaptureInProgressError,
    DeviceUnavailableError,
    DraftPendingError,
    EmptyStoreError,
    FileTooLargeError,
    NoActivePhotoError,
    PersistenceError,
    PhotoNotFoundError,
    SessionClosedError,
    UnsupportedFormatError,
)
from photo_verification.models.photo import (
    AnnotationKind,
    Verification,
    VerificationStatus,
)
from photo_verification.services.capture_session import CaptureSession, sanitize_filename
from photo_verification.services.image_source import CameraSource, FileSource


class RecordingRepository:
    def __init__(self, fail=False):
        self.saved = []
        self.fail = fail

    def save(self, slot_id, snapshot):
        if self.fail:
            raise PersistenceError("database is down")
        self.saved.append((slot_id, snapshot))

    def load(self, slot_id):
        for saved_slot, snapshot in reversed(self.saved):
            if saved_slot == slot_id:
                return snapshot
        return None


@pytest.fixture
def recorder():
    return RecordingRepository()


@pytest.fixture
async def session(recorder, camera, config):
    capture_session = CaptureSession("step-42", recorder, source=camera, config=config)
    await capture_session.start()
    yield capture_session
    capture_session.discard()


def draw(engine, kind, start=(10, 10), end=(40, 50)):
    engine.begin_annotation(kind, start)
    engine.update_annotation(end)
    return engine.finish_annotation()


async def test_verification_scenario(session, recorder):
    photos = [await session.capture_photo() for _ in range(3)]
    second = photos[1]

    engine = session.select_for_annotation(second.id)
    circle = draw(engine, "circle")
    arrow = draw(engine, "arrow")
    assert engine.undo() == [circle]
    assert engine.redo() == [circle, arrow]
    session.set_status(second.id, "approved", "clean counter")

    snapshot = session.commit()

    assert snapshot.slot_id == "step-42"
    assert [p.id for p in snapshot.photos] == [p.id for p in photos]
    committed = snapshot.photos[1]
    assert [a.kind for a in committed.annotations] == [AnnotationKind.CIRCLE, AnnotationKind.ARROW]
    assert committed.annotations == [circle, arrow]
    assert committed.verification == Verification(VerificationStatus.APPROVED, "clean counter")
    assert snapshot.photos[0].verification.status == VerificationStatus.PENDING
    assert recorder.saved == [("step-42", snapshot)]


async def test_commit_closes_session_and_releases_camera(session, captures):
    await session.capture_photo()

    session.commit()

    assert session.is_closed
    assert captures[0].release_count == 1
    with pytest.raises(SessionClosedError):
        await session.capture_photo()
    with pytest.raises(SessionClosedError):
        session.commit()


async def test_commit_empty_store_fails(session, recorder):
    with pytest.raises(EmptyStoreError):
        session.commit()
    assert recorder.saved == []
    assert not session.is_closed


async def test_commit_with_pending_draft_fails(session):
    photo = await session.capture_photo()
    session.select_for_annotation(photo.id).begin_annotation("circle", (1, 1))

    with pytest.raises(DraftPendingError):
        session.commit()


async def test_failed_save_keeps_session_open(camera, config):
    capture_session = CaptureSession("step-1", RecordingRepository(fail=True), source=camera, config=config)
    await capture_session.start()
    await capture_session.capture_photo()

    with pytest.raises(PersistenceError):
        capture_session.commit()

    assert not capture_session.is_closed
    assert len(capture_session.photos) == 1
    capture_session.discard()


async def test_snapshot_is_independent_of_later_changes(session, recorder):
    photo = await session.capture_photo()
    snapshot = session.commit()

    photo.annotations.append("late edit")

    assert snapshot.photos[0].annotations == []


async def test_camera_photos_are_named_after_the_slot(session):
    photo = await session.capture_photo()

    assert photo.id.startswith("photo_")
    assert photo.source_name.startswith("step_step-42_photo_")
    assert photo.source_name.endswith(".jpg")
    assert photo.encoding == "image/jpeg"


async def test_upload_through_file_source(session, config, png_bytes):
    photo = await session.capture_photo(FileSource(png_bytes, "my counter (1).png", "image/png", config=config))

    assert photo.id.startswith("upload_")
    assert photo.source_name == "mycounter1.png"
    assert photo.payload == png_bytes


async def test_upload_errors_leave_store_unchanged(session, config, png_bytes):
    await session.capture_photo()

    with pytest.raises(UnsupportedFormatError):
        await session.capture_photo(FileSource(png_bytes, "a.gif", "image/gif", config=config))

    assert len(session.photos) == 1


async def test_oversize_camera_frame(recorder, camera, tmp_path):
    from photo_verification.core.config import Settings
    tiny = Settings(max_file_size_mb=0.0001, snapshot_folder=str(tmp_path), log_file="")
    capture_session = CaptureSession("step-1", recorder, source=camera, config=tiny)

    async with capture_session.running():
        with pytest.raises(FileTooLargeError):
            await capture_session.capture_photo()
        assert capture_session.photos == ()

    assert not camera.is_open


async def test_capture_without_camera(recorder, config):
    capture_session = CaptureSession("step-1", recorder, config=config)
    await capture_session.start()

    with pytest.raises(DeviceUnavailableError):
        await capture_session.capture_photo()


async def test_capacity_evicts_oldest(session, config):
    photos = [await session.capture_photo() for _ in range(config.max_photos + 1)]

    assert [p.id for p in session.photos] == [p.id for p in photos[1:]]


async def test_eviction_of_active_photo_revokes_lease(session, config):
    first = await session.capture_photo()
    engine = session.select_for_annotation(first.id)
    for _ in range(config.max_photos):
        await session.capture_photo()

    assert session.active_photo_id is None
    with pytest.raises(NoActivePhotoError):
        engine.begin_annotation("circle", (0, 0))
    with pytest.raises(NoActivePhotoError):
        session.annotation


async def test_switching_with_pending_draft_is_rejected(session):
    first = await session.capture_photo()
    second = await session.capture_photo()
    engine = session.select_for_annotation(first.id)
    engine.begin_annotation("rectangle", (0, 0))

    with pytest.raises(DraftPendingError):
        session.select_for_annotation(second.id)
    assert session.active_photo_id == first.id
    assert session.select_for_annotation(first.id) is engine

    engine.discard_annotation()
    other = session.select_for_annotation(second.id)
    assert other.photo is second
    with pytest.raises(NoActivePhotoError):
        engine.begin_annotation("circle", (0, 0))


async def test_reselecting_keeps_annotations(session):
    first = await session.capture_photo()
    second = await session.capture_photo()
    circle = draw(session.select_for_annotation(first.id), "circle")

    session.select_for_annotation(second.id)
    engine = session.select_for_annotation(first.id)

    assert engine.annotations == [circle]
    assert not engine.can_undo


async def test_select_unknown_photo(session):
    with pytest.raises(PhotoNotFoundError):
        session.select_for_annotation("photo_missing")


async def test_annotation_requires_selection(session):
    with pytest.raises(NoActivePhotoError):
        session.annotation


async def test_release_annotation(session):
    photo = await session.capture_photo()
    engine = session.select_for_annotation(photo.id)
    engine.begin_annotation("circle", (0, 0))

    with pytest.raises(DraftPendingError):
        session.release_annotation()

    engine.finish_annotation()
    session.release_annotation()
    assert session.active_photo_id is None


async def test_delete_active_photo(session):
    photo = await session.capture_photo()
    engine = session.select_for_annotation(photo.id)

    assert session.delete_photo(photo.id) is photo
    assert session.delete_photo(photo.id) is None
    assert session.active_photo_id is None
    with pytest.raises(NoActivePhotoError):
        engine.undo()


async def test_set_status_unknown_photo(session):
    with pytest.raises(PhotoNotFoundError):
        session.set_status("photo_missing", "approved")


async def test_discard_saves_nothing(session, recorder, captures):
    await session.capture_photo()

    session.discard()
    session.discard()

    assert recorder.saved == []
    assert session.photos == ()
    assert captures[0].release_count == 1


async def test_failed_start_releases_camera(recorder, config):
    created = []

    def factory(source):
        cap = FakeVideoCapture(source, opened=False)
        created.append(cap)
        return cap

    capture_session = CaptureSession(
        "step-1", recorder, source=CameraSource(config, capture_factory=factory), config=config
    )
    with pytest.raises(DeviceUnavailableError):
        await capture_session.start()

    assert created[0].release_count == 1
    assert not capture_session.source.is_open


async def test_cancelled_start_releases_camera_once(recorder, config):
    gate = threading.Event()
    created = []

    def slow_factory(source):
        gate.wait(timeout=5)
        cap = FakeVideoCapture(source)
        created.append(cap)
        return cap

    capture_session = CaptureSession(
        "step-1", recorder, source=CameraSource(config, capture_factory=slow_factory), config=config
    )
    task = asyncio.create_task(capture_session.start())
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    gate.set()
    for _ in range(200):
        if created and created[0].release_count:
            break
        await asyncio.sleep(0.01)

    capture_session.stop()
    assert created[0].release_count == 1


def test_sanitize_filename():
    assert sanitize_filename("step 1/ñ photo.jpg") == "step1photo.jpg"
    assert sanitize_filename("ok-name_1.png") == "ok-name_1.png"


class SlowReadCapture(FakeVideoCapture):
    """Blocks frame reads until the test opens the gate"""

    def __init__(self, source, gate):
        super().__init__(source)
        self.gate = gate

    def read(self):
        self.gate.wait(timeout=5)
        return super().read()


@pytest.fixture
async def slow_session(recorder, config):
    gate = threading.Event()
    created = []

    def factory(source):
        cap = SlowReadCapture(source, gate)
        created.append(cap)
        return cap

    capture_session = CaptureSession(
        "step-1", recorder, source=CameraSource(config, capture_factory=factory), config=config
    )
    await capture_session.start()
    yield capture_session, gate, created
    gate.set()
    capture_session.discard()


async def test_commit_during_capture_is_rejected(slow_session, recorder):
    capture_session, gate, _ = slow_session
    gate.set()
    await capture_session.capture_photo()
    gate.clear()

    pending = asyncio.create_task(capture_session.capture_photo())
    await asyncio.sleep(0.05)

    with pytest.raises(CaptureInProgressError):
        capture_session.commit()
    assert not capture_session.is_closed

    gate.set()
    await pending
    snapshot = capture_session.commit()
    assert len(snapshot.photos) == 2
    assert recorder.saved == [("step-1", snapshot)]


async def test_discard_during_capture_drops_the_late_photo(slow_session):
    capture_session, gate, created = slow_session
    pending = asyncio.create_task(capture_session.capture_photo())
    await asyncio.sleep(0.05)

    capture_session.discard()
    assert capture_session.is_closed
    assert created[0].release_count == 0

    gate.set()
    with pytest.raises(SessionClosedError):
        await pending

    assert capture_session.photos == ()
    assert created[0].release_count == 1
