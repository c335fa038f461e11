"""
Vector annotation layer with undo/redo history for a single photo
"""

import logging
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from photo_verification.core.errors import (
    AlreadyDrawingError,
    NoActivePhotoError,
    NothingToFinishError,
    NothingToRedoError,
    NothingToUndoError,
)
from photo_verification.models.photo import (
    DEFAULT_TEXT,
    Annotation,
    AnnotationKind,
    AnnotationStyle,
    Extent,
    Photo,
    Point,
)

logger = logging.getLogger(__name__)

SIZED_KINDS = (AnnotationKind.ARROW, AnnotationKind.CIRCLE, AnnotationKind.RECTANGLE)


class EngineState(str, Enum):
    IDLE = "idle"
    DRAWING = "drawing"


@dataclass(frozen=True)
class _Edit:
    """One history node: an annotation added at, or removed from, a list index"""
    op: str
    index: int
    annotation: Annotation


class AnnotationHistory:
    """
    Linear undo/redo ledger.

    Observably a list of snapshots with a cursor: snapshot 0 is the base
    annotation list and snapshot ``i`` is the base with the first ``i`` edits
    applied. Only the edits are stored; the list at the cursor is kept
    materialized and undo/redo apply or invert a single edit.
    """

    def __init__(self, base: Sequence[Annotation] = ()):
        self._base: Tuple[Annotation, ...] = tuple(base)
        self._edits: List[_Edit] = []
        self._cursor = 0
        self._current: List[Annotation] = list(self._base)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def size(self) -> int:
        """Number of snapshots"""
        return len(self._edits) + 1

    @property
    def current(self) -> List[Annotation]:
        return list(self._current)

    @property
    def can_undo(self) -> bool:
        return self._cursor > 0

    @property
    def can_redo(self) -> bool:
        return self._cursor < len(self._edits)

    def record_add(self, annotation: Annotation) -> None:
        self._record(_Edit("add", len(self._current), annotation))

    def record_remove(self, index: int) -> None:
        self._record(_Edit("remove", index, self._current[index]))

    def _record(self, edit: _Edit) -> None:
        # A new edit discards the redo future
        del self._edits[self._cursor:]
        self._edits.append(edit)
        self._apply(self._current, edit)
        self._cursor += 1

    def undo(self) -> List[Annotation]:
        if not self.can_undo:
            raise NothingToUndoError("Nothing to undo")
        self._cursor -= 1
        self._revert(self._current, self._edits[self._cursor])
        return self.current

    def redo(self) -> List[Annotation]:
        if not self.can_redo:
            raise NothingToRedoError("Nothing to redo")
        self._apply(self._current, self._edits[self._cursor])
        self._cursor += 1
        return self.current

    def snapshot(self, index: int) -> List[Annotation]:
        """Replay the annotation list as it was at history index ``index``"""
        if not 0 <= index < self.size:
            raise IndexError(f"History index {index} out of range")
        annotations = list(self._base)
        for edit in self._edits[:index]:
            self._apply(annotations, edit)
        return annotations

    @staticmethod
    def _apply(annotations: List[Annotation], edit: _Edit) -> None:
        if edit.op == "add":
            annotations.insert(edit.index, edit.annotation)
        else:
            del annotations[edit.index]

    @staticmethod
    def _revert(annotations: List[Annotation], edit: _Edit) -> None:
        if edit.op == "add":
            del annotations[edit.index]
        else:
            annotations.insert(edit.index, edit.annotation)


class AnnotationLease:
    """Ownership token for the photo currently open for annotation"""

    def __init__(self, photo_id: str):
        self.photo_id = photo_id
        self.active = True

    def revoke(self) -> None:
        self.active = False


class AnnotationEngine:
    """
    Draws and edits annotations on one photo.

    Drafts move through ``begin_annotation`` -> ``update_annotation`` ->
    ``finish_annotation``; only finished shapes and deletions are recorded in
    the history. The engine writes ``photo.annotations`` after every change so
    it always equals the history snapshot at the cursor. All mutators require
    the lease handed out by the capture session to still be active.
    """

    def __init__(self, photo: Photo, lease: Optional[AnnotationLease] = None):
        self.photo = photo
        self.lease = lease or AnnotationLease(photo.id)
        self.history = AnnotationHistory(photo.annotations)
        self._draft: Optional[Annotation] = None

    @property
    def state(self) -> EngineState:
        return EngineState.DRAWING if self._draft is not None else EngineState.IDLE

    @property
    def draft(self) -> Optional[Annotation]:
        return self._draft

    @property
    def annotations(self) -> List[Annotation]:
        return list(self.photo.annotations)

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def _check_lease(self) -> None:
        if not self.lease.active:
            raise NoActivePhotoError(f"Photo {self.photo.id} is no longer open for annotation")

    def _sync(self) -> None:
        self.photo.annotations = self.history.current

    def begin_annotation(
        self,
        kind: Union[AnnotationKind, str],
        anchor: Union[Point, Tuple[float, float]],
        style: Optional[AnnotationStyle] = None,
        text: Optional[str] = None
    ) -> Annotation:
        """Start a draft annotation at ``anchor``"""
        self._check_lease()
        if self._draft is not None:
            raise AlreadyDrawingError(f"Annotation {self._draft.id} is still being drawn")

        kind = AnnotationKind(kind)
        if kind == AnnotationKind.TEXT:
            text = text if text is not None else DEFAULT_TEXT
        else:
            text = None

        self._draft = Annotation(
            id=f"annotation_{uuid.uuid4().hex[:12]}",
            kind=kind,
            anchor=Point(*anchor),
            style=style or AnnotationStyle(),
            text=text
        )
        return self._draft

    def update_annotation(self, point: Union[Point, Tuple[float, float]]) -> Annotation:
        """Stretch the draft so its extent reaches ``point``"""
        self._check_lease()
        draft = self._require_draft()
        if draft.kind in SIZED_KINDS:
            x, y = point
            self._draft = replace(
                draft,
                extent=Extent(abs(x - draft.anchor.x), abs(y - draft.anchor.y))
            )
        return self._draft

    def finish_annotation(self) -> Annotation:
        """Commit the draft to the photo and record it in the history"""
        self._check_lease()
        draft = self._require_draft()
        if draft.kind in SIZED_KINDS and draft.extent is None:
            draft = replace(draft, extent=Extent(0, 0))

        self.history.record_add(draft)
        self._sync()
        self._draft = None
        logger.debug(f"✏️ Added {draft.kind.value} {draft.id} to photo {self.photo.id}")
        return draft

    def discard_annotation(self) -> None:
        """Drop the draft without touching the history"""
        self._check_lease()
        self._require_draft()
        self._draft = None

    def delete_annotation(self, annotation_id: str) -> Optional[Annotation]:
        """Remove a finished annotation; unknown ids are ignored"""
        self._check_lease()

        for index, annotation in enumerate(self.photo.annotations):
            if annotation.id == annotation_id:
                self.history.record_remove(index)
                self._sync()
                logger.debug(f"🗑️ Removed annotation {annotation_id} from photo {self.photo.id}")
                return annotation
        return None

    def undo(self) -> List[Annotation]:
        self._check_lease()
        self.history.undo()
        self._sync()
        return self.annotations

    def redo(self) -> List[Annotation]:
        self._check_lease()
        self.history.redo()
        self._sync()
        return self.annotations

    def _require_draft(self) -> Annotation:
        if self._draft is None:
            raise NothingToFinishError("No annotation is being drawn")
        return self._draft
