"""
Domain models for captured photos, annotations and verification decisions
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

DEFAULT_COLOR = "#E31B23"
DEFAULT_STROKE_WIDTH = 3
DEFAULT_TEXT = "Edit text"


class AnnotationKind(str, Enum):
    """Shape types a user can draw on a photo"""
    ARROW = "arrow"
    CIRCLE = "circle"
    RECTANGLE = "rectangle"
    TEXT = "text"


class VerificationStatus(str, Enum):
    """Review decision for a photo"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Point(NamedTuple):
    """Photo-local coordinate"""
    x: float
    y: float


class Extent(NamedTuple):
    """Width and height of a shape, measured from its anchor"""
    width: float
    height: float


@dataclass(frozen=True)
class AnnotationStyle:
    """Stroke styling fixed when an annotation is created"""
    color: str = DEFAULT_COLOR
    stroke_width: int = DEFAULT_STROKE_WIDTH


@dataclass(frozen=True)
class Annotation:
    """A single vector mark positioned over a photo"""
    id: str
    kind: AnnotationKind
    anchor: Point
    style: AnnotationStyle = field(default_factory=AnnotationStyle)
    extent: Optional[Extent] = None
    text: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "x": self.anchor.x,
            "y": self.anchor.y,
            "width": self.extent.width if self.extent else None,
            "height": self.extent.height if self.extent else None,
            "text": self.text,
            "color": self.style.color,
            "stroke_width": self.style.stroke_width,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Annotation":
        extent = None
        if data.get("width") is not None and data.get("height") is not None:
            extent = Extent(data["width"], data["height"])
        return cls(
            id=data["id"],
            kind=AnnotationKind(data["kind"]),
            anchor=Point(data["x"], data["y"]),
            style=AnnotationStyle(
                color=data.get("color", DEFAULT_COLOR),
                stroke_width=data.get("stroke_width", DEFAULT_STROKE_WIDTH),
            ),
            extent=extent,
            text=data.get("text"),
        )


@dataclass(frozen=True)
class Verification:
    """Verification decision and reviewer notes"""
    status: VerificationStatus = VerificationStatus.PENDING
    notes: Optional[str] = None


@dataclass(frozen=True)
class CapturedImage:
    """Encoded still image produced by an image source"""
    payload: bytes
    encoding: str
    origin: str
    source_name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def size_bytes(self) -> int:
        return len(self.payload)


class Photo:
    """
    One captured still image in a verification slot.

    Identity, payload and capture metadata are read-only once the photo
    exists; ``annotations`` and ``verification`` are updated by the
    annotation engine and the verification workflow.
    """

    def __init__(
        self,
        photo_id: str,
        payload: bytes,
        captured_at: datetime,
        source_name: str,
        size_bytes: int,
        encoding: str = "image/jpeg",
        width: Optional[int] = None,
        height: Optional[int] = None,
        annotations: Optional[List[Annotation]] = None,
        verification: Optional[Verification] = None,
    ):
        self._id = photo_id
        self._payload = bytes(payload)
        self._captured_at = captured_at
        self._source_name = source_name
        self._size_bytes = size_bytes
        self._encoding = encoding
        self._width = width
        self._height = height
        self.annotations: List[Annotation] = list(annotations or [])
        self.verification: Verification = verification or Verification()

    @property
    def id(self) -> str:
        return self._id

    @property
    def payload(self) -> bytes:
        return self._payload

    @property
    def captured_at(self) -> datetime:
        return self._captured_at

    @property
    def source_name(self) -> str:
        return self._source_name

    @property
    def size_bytes(self) -> int:
        return self._size_bytes

    @property
    def encoding(self) -> str:
        return self._encoding

    @property
    def width(self) -> Optional[int]:
        return self._width

    @property
    def height(self) -> Optional[int]:
        return self._height

    def copy(self) -> "Photo":
        """Independent copy, used for snapshots handed to persistence"""
        return Photo(
            photo_id=self._id,
            payload=self._payload,
            captured_at=self._captured_at,
            source_name=self._source_name,
            size_bytes=self._size_bytes,
            encoding=self._encoding,
            width=self._width,
            height=self._height,
            annotations=list(self.annotations),
            verification=self.verification,
        )

    def to_dict(self) -> dict:
        """Metadata view without the payload"""
        return {
            "id": self._id,
            "captured_at": self._captured_at.isoformat(),
            "source_name": self._source_name,
            "size_bytes": self._size_bytes,
            "encoding": self._encoding,
            "width": self._width,
            "height": self._height,
            "annotations": [a.to_dict() for a in self.annotations],
            "verification": {
                "status": self.verification.status.value,
                "notes": self.verification.notes,
            },
        }

    def __repr__(self):
        return f"<Photo(id={self._id}, source_name={self._source_name}, annotations={len(self.annotations)})>"


@dataclass(frozen=True)
class SlotSnapshot:
    """Finalized copy of a slot's photos handed to persistence"""
    slot_id: str
    committed_at: datetime
    photos: Tuple[Photo, ...]


@dataclass
class SaveResult:
    """Outcome of saving a slot snapshot"""
    commit_id: int
    slot_id: str
    photo_count: int
    file_paths: List[str] = field(default_factory=list)
