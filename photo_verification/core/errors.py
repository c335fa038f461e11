"""
Error taxonomy for photo capture, annotation and verification
"""


class CaptureError(Exception):
    """Base class for recoverable capture workflow errors."""


class DeviceUnavailableError(CaptureError):
    """Raised when the camera cannot be opened or read (missing device or permission)."""


class UnsupportedFormatError(CaptureError):
    """Raised when an uploaded file is not an accepted image encoding."""


class FileTooLargeError(CaptureError):
    """Raised when an image exceeds the configured size limit."""


class AlreadyDrawingError(CaptureError):
    """Raised when an annotation is begun while another draft is in progress."""


class NothingToFinishError(CaptureError):
    """Raised when a draft operation is called with no draft in progress."""


class NothingToUndoError(CaptureError):
    """Raised when undo is requested at the start of the history."""


class NothingToRedoError(CaptureError):
    """Raised when redo is requested at the end of the history."""


class DraftPendingError(CaptureError):
    """Raised when an operation requires the active draft to be finished or discarded first."""


class PhotoNotFoundError(CaptureError):
    """Raised when a photo id is not present in the store."""


class EmptyStoreError(CaptureError):
    """Raised when committing a slot that has no photos."""


class NoActivePhotoError(CaptureError):
    """Raised when annotating without holding the active photo."""


class SessionClosedError(CaptureError):
    """Raised when a committed or discarded session is used again."""


class PersistenceError(CaptureError):
    """Raised when the persistence collaborator fails to save a slot."""


class CaptureInProgressError(CaptureError):
    """Raised when a slot is committed while a camera capture is still running."""
