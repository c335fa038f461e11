"""
API routes for the Step Photo Verification Service
"""

import logging
from typing import Callable, Dict, Optional, Set

from fastapi import APIRouter, File, HTTPException, UploadFile
from fastapi.responses import Response

from photo_verification.api.schemas import (
    BeginAnnotationRequest,
    PointRequest,
    StartSessionRequest,
    VerificationRequest,
)
from photo_verification.core.config import Settings, settings
from photo_verification.core.errors import (
    CaptureError,
    DeviceUnavailableError,
    FileTooLargeError,
    PersistenceError,
    PhotoNotFoundError,
    UnsupportedFormatError,
)
from photo_verification.models.photo import AnnotationStyle, Point
from photo_verification.services.annotation_engine import AnnotationEngine
from photo_verification.services.capture_session import CaptureSession
from photo_verification.services.image_source import FileSource, ImageSource
from photo_verification.services.persistence import PhotoRepository

logger = logging.getLogger(__name__)

router = APIRouter()

# Global services (will be injected)
repository: Optional[PhotoRepository] = None
source_factory: Optional[Callable[[], ImageSource]] = None
config: Settings = settings
sessions: Dict[str, CaptureSession] = {}
# Slots whose session is still opening its camera
starting: Set[str] = set()

# Errors not listed here are state-machine violations and map to 409
ERROR_STATUS = {
    DeviceUnavailableError: 503,
    FileTooLargeError: 413,
    UnsupportedFormatError: 415,
    PhotoNotFoundError: 404,
    PersistenceError: 500,
}


def set_services(
    photo_repository: PhotoRepository,
    camera_factory: Optional[Callable[[], ImageSource]],
    app_config: Settings = settings
):
    """Set global services"""
    global repository, source_factory, config
    repository = photo_repository
    source_factory = camera_factory
    config = app_config
    sessions.clear()
    starting.clear()


def _http_error(exc: CaptureError) -> HTTPException:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=409, detail=str(exc))


def _get_session(slot_id: str) -> CaptureSession:
    session = sessions.get(slot_id)
    if session is None or session.is_closed:
        sessions.pop(slot_id, None)
        raise HTTPException(status_code=404, detail=f"No active session for slot {slot_id}")
    return session


def _engine_state(engine: AnnotationEngine) -> dict:
    return {
        "photo_id": engine.photo.id,
        "state": engine.state.value,
        "draft": engine.draft.to_dict() if engine.draft else None,
        "annotations": [a.to_dict() for a in engine.annotations],
        "can_undo": engine.can_undo,
        "can_redo": engine.can_redo
    }


def _session_state(session: CaptureSession) -> dict:
    return {
        "slot_id": session.slot_id,
        "camera_active": bool(session.source and session.source.is_open),
        "active_photo_id": session.active_photo_id,
        "photos": [p.to_dict() for p in session.photos],
        "max_photos": session.store.max_photos,
        "verification_summary": session.verification.summary()
    }


@router.get("/config")
async def get_capture_config():
    """Get capture options for the tablet UI"""
    return {
        "max_photos": config.max_photos,
        "max_size_bytes": config.max_size_bytes,
        "accepted_encodings": list(config.accepted_encodings),
        "capture_quality": config.capture_quality,
        "camera_enabled": config.camera_source != -1 and source_factory is not None
    }


@router.post("/slots/{slot_id}/session")
async def start_session(slot_id: str, request: Optional[StartSessionRequest] = None):
    """Start a capture session for a slot"""
    if repository is None:
        raise HTTPException(status_code=503, detail="Services not initialized")

    existing = sessions.get(slot_id)
    if slot_id in starting or (existing is not None and not existing.is_closed):
        raise HTTPException(status_code=409, detail=f"Slot {slot_id} already has an active session")

    request = request or StartSessionRequest()
    source = source_factory() if request.use_camera and source_factory else None
    if request.use_camera and source is None:
        raise HTTPException(status_code=503, detail="Camera is not available")

    session = CaptureSession(slot_id, repository, source=source, config=config)
    starting.add(slot_id)
    try:
        await session.start()
    except CaptureError as e:
        logger.warning(f"Could not start session for slot {slot_id}: {e}")
        raise _http_error(e)
    finally:
        starting.discard(slot_id)

    sessions[slot_id] = session
    return _session_state(session)


@router.delete("/slots/{slot_id}/session")
async def discard_session(slot_id: str):
    """Discard a session without saving"""
    session = _get_session(slot_id)
    session.discard()
    sessions.pop(slot_id, None)
    return {"message": f"Session for slot {slot_id} discarded"}


@router.get("/slots/{slot_id}/photos")
async def list_photos(slot_id: str):
    """Get the photos captured in a session"""
    return _session_state(_get_session(slot_id))


@router.post("/slots/{slot_id}/photos/capture")
async def capture_photo(slot_id: str):
    """Capture a photo from the session camera"""
    session = _get_session(slot_id)
    try:
        photo = await session.capture_photo()
        return photo.to_dict()
    except CaptureError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error capturing photo: {e}")
        raise HTTPException(status_code=500, detail=f"Error capturing photo: {str(e)}")


@router.post("/slots/{slot_id}/photos/upload")
async def upload_photo(slot_id: str, file: UploadFile = File(...)):
    """Add an uploaded image file to the session"""
    session = _get_session(slot_id)

    # Reading one byte past the limit is enough to reject an oversize file
    content = await file.read(config.max_size_bytes + 1)
    content_type = file.content_type
    if content_type in (None, "", "application/octet-stream"):
        content_type = None

    source = FileSource(content, file.filename or "upload", content_type, config=config)
    try:
        photo = await session.capture_photo(source)
        return photo.to_dict()
    except CaptureError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error processing uploaded file: {e}")
        raise HTTPException(status_code=500, detail=f"Error processing file: {str(e)}")


@router.get("/slots/{slot_id}/photos/{photo_id}/image")
async def get_photo_image(slot_id: str, photo_id: str):
    """Get the encoded image of a photo"""
    photo = _get_session(slot_id).store.get(photo_id)
    if photo is None:
        raise HTTPException(status_code=404, detail=f"Photo {photo_id} not found")
    return Response(content=photo.payload, media_type=photo.encoding)


@router.delete("/slots/{slot_id}/photos/{photo_id}")
async def delete_photo(slot_id: str, photo_id: str):
    """Delete a photo from the session"""
    session = _get_session(slot_id)
    removed = session.delete_photo(photo_id)
    return {"deleted": removed is not None, "photo_id": photo_id}


@router.post("/slots/{slot_id}/photos/{photo_id}/select")
async def select_photo(slot_id: str, photo_id: str):
    """Open a photo for annotation"""
    session = _get_session(slot_id)
    try:
        return _engine_state(session.select_for_annotation(photo_id))
    except CaptureError as e:
        raise _http_error(e)


@router.post("/slots/{slot_id}/annotations/begin")
async def begin_annotation(slot_id: str, request: BeginAnnotationRequest):
    """Start drawing an annotation on the active photo"""
    session = _get_session(slot_id)
    try:
        engine = session.annotation
        engine.begin_annotation(
            request.kind,
            Point(request.x, request.y),
            style=AnnotationStyle(color=request.color, stroke_width=request.stroke_width),
            text=request.text
        )
        return _engine_state(engine)
    except CaptureError as e:
        raise _http_error(e)


@router.post("/slots/{slot_id}/annotations/update")
async def update_annotation(slot_id: str, request: PointRequest):
    """Stretch the annotation being drawn"""
    session = _get_session(slot_id)
    try:
        engine = session.annotation
        engine.update_annotation(Point(request.x, request.y))
        return _engine_state(engine)
    except CaptureError as e:
        raise _http_error(e)


@router.post("/slots/{slot_id}/annotations/finish")
async def finish_annotation(slot_id: str):
    """Finish the annotation being drawn"""
    session = _get_session(slot_id)
    try:
        engine = session.annotation
        engine.finish_annotation()
        return _engine_state(engine)
    except CaptureError as e:
        raise _http_error(e)


@router.post("/slots/{slot_id}/annotations/discard")
async def discard_annotation(slot_id: str):
    """Drop the annotation being drawn"""
    session = _get_session(slot_id)
    try:
        engine = session.annotation
        engine.discard_annotation()
        return _engine_state(engine)
    except CaptureError as e:
        raise _http_error(e)


@router.delete("/slots/{slot_id}/annotations/{annotation_id}")
async def delete_annotation(slot_id: str, annotation_id: str):
    """Delete an annotation from the active photo"""
    session = _get_session(slot_id)
    try:
        engine = session.annotation
        engine.delete_annotation(annotation_id)
        return _engine_state(engine)
    except CaptureError as e:
        raise _http_error(e)


@router.post("/slots/{slot_id}/annotations/undo")
async def undo_annotation(slot_id: str):
    """Undo the last annotation edit"""
    session = _get_session(slot_id)
    try:
        engine = session.annotation
        engine.undo()
        return _engine_state(engine)
    except CaptureError as e:
        raise _http_error(e)


@router.post("/slots/{slot_id}/annotations/redo")
async def redo_annotation(slot_id: str):
    """Redo the last undone annotation edit"""
    session = _get_session(slot_id)
    try:
        engine = session.annotation
        engine.redo()
        return _engine_state(engine)
    except CaptureError as e:
        raise _http_error(e)


@router.put("/slots/{slot_id}/photos/{photo_id}/verification")
async def set_verification(slot_id: str, photo_id: str, request: VerificationRequest):
    """Approve or reject a photo"""
    session = _get_session(slot_id)
    try:
        verification = session.set_status(photo_id, request.status, request.notes)
        return {
            "photo_id": photo_id,
            "status": verification.status.value,
            "notes": verification.notes
        }
    except CaptureError as e:
        raise _http_error(e)


@router.post("/slots/{slot_id}/commit")
async def commit_session(slot_id: str):
    """Save the slot's photos and close the session"""
    session = _get_session(slot_id)
    try:
        snapshot = session.commit()
    except CaptureError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error committing slot {slot_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Error committing slot: {str(e)}")

    sessions.pop(slot_id, None)
    return {
        "message": "Slot committed successfully",
        "slot_id": slot_id,
        "commit_id": session.last_save.commit_id if session.last_save else None,
        "committed_at": snapshot.committed_at.isoformat(),
        "photos": [p.to_dict() for p in snapshot.photos]
    }


@router.get("/slots/{slot_id}/committed")
async def get_committed(slot_id: str):
    """Get the latest committed photos of a slot"""
    if repository is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    try:
        snapshot = repository.load(slot_id)
    except CaptureError as e:
        raise _http_error(e)

    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Slot {slot_id} has no committed photos")
    return {
        "slot_id": snapshot.slot_id,
        "committed_at": snapshot.committed_at.isoformat(),
        "photos": [p.to_dict() for p in snapshot.photos]
    }
