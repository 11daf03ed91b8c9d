"""
Local annotation state for the open piece, with undo/redo support.
"""
import logging
from typing import TYPE_CHECKING, Iterable, List, Optional

from scoremark.core.errors import AuthorizationError, ValidationError
from scoremark.core.session import SessionContext
from .history import HistoryManager, HistorySnapshot
from .models import Annotation

if TYPE_CHECKING:
    from scoremark.core.collaborators import AnnotationRepository

logger = logging.getLogger(__name__)


class AnnotationStore:
    """
    Optimistic in-memory annotations of one piece.

    Pending annotations (no identity) live only here until a save commits
    them. Deleting a saved annotation stages it in ``pending_deletions`` and
    hides it right away. Every mutation records the resulting state in the
    history so undo/redo has a single integration point.
    """

    def __init__(self, session: SessionContext,
                 repository: "AnnotationRepository",
                 history: Optional[HistoryManager] = None):
        self.session = session
        self.repository = repository
        self.history = history or HistoryManager()

        self._annotations: List[Annotation] = []
        self._pending_deletions: List[Annotation] = []

    @property
    def document_ref(self) -> str:
        return self.session.document_ref

    @property
    def annotations(self) -> List[Annotation]:
        """Visible annotations, pending and saved."""
        return list(self._annotations)

    @property
    def pending_deletions(self) -> List[Annotation]:
        return list(self._pending_deletions)

    def pending_new(self) -> List[Annotation]:
        return [ann for ann in self._annotations if ann.is_pending]

    def persisted(self) -> List[Annotation]:
        return [ann for ann in self._annotations if not ann.is_pending]

    @property
    def has_unsaved_changes(self) -> bool:
        return bool(self._pending_deletions) or any(
            ann.is_pending for ann in self._annotations)

    def snapshot(self) -> HistorySnapshot:
        return HistorySnapshot(tuple(self._annotations), tuple(self._pending_deletions))

    def find(self, key: str) -> Optional[Annotation]:
        """Look up a visible annotation by identity or local id."""
        for ann in self._annotations:
            if ann.key == key:
                return ann
        return None

    def annotations_for_page(self, page: int) -> List[Annotation]:
        """
        Get all visible annotations for a specific page.

        Args:
            page: 1-based page number

        Returns:
            List of annotations on the specified page
        """
        return [ann for ann in self._annotations if ann.page == page]

    def add(self, annotation: Annotation) -> None:
        """
        Add a new, not yet persisted annotation.

        Args:
            annotation: Annotation without identity on the open piece
        """
        if not annotation.is_pending:
            raise ValidationError("Only new annotations can be added; this one is already saved")
        if annotation.document_ref != self.document_ref:
            raise ValidationError(
                f"Annotation belongs to {annotation.document_ref!r}, "
                f"not the open piece {self.document_ref!r}")

        self._annotations.append(annotation)
        self._record()

    def remove(self, annotation: Annotation) -> bool:
        """
        Remove an annotation from the visible state.

        A pending annotation is simply dropped. A saved one is staged for
        deletion on the next save, which requires ownership or the teacher
        role on this piece.

        Args:
            annotation: Annotation to remove

        Returns:
            True if the annotation was found and removed

        Raises:
            AuthorizationError: If the acting user may not delete it
        """
        index = self._index_of(annotation.key)
        if index is None:
            return False

        current = self._annotations[index]
        if not current.is_pending and not self.session.can_delete(current):
            logger.info("%s may not delete annotation %s owned by %s",
                        self.session.actor_id, current.identity, current.owner)
            raise AuthorizationError("You can only delete your own annotations.")

        del self._annotations[index]
        if not current.is_pending:
            self._pending_deletions.append(current)
        self._record()
        return True

    def restore_deletion(self, annotation: Annotation) -> bool:
        """
        Take a staged deletion back and show the annotation again.

        Returns:
            True if the annotation was staged for deletion
        """
        for i, staged in enumerate(self._pending_deletions):
            if staged.identity == annotation.identity:
                del self._pending_deletions[i]
                self._annotations.append(staged)
                self._record()
                return True
        return False

    def discard(self, annotations: Iterable[Annotation]) -> int:
        """
        Drop pending annotations without saving them.

        Returns:
            Number of annotations removed
        """
        keys = {ann.key for ann in annotations if ann.is_pending}
        kept = [ann for ann in self._annotations if ann.key not in keys]
        removed = len(self._annotations) - len(kept)
        if removed:
            self._annotations = kept
            self._record()
        return removed

    def mark_committed(self, committed: List[Annotation], inserted: List[Annotation],
                       deleted: Iterable[str]) -> None:
        """
        Apply a successful commit to the local state.

        Committed pending annotations are swapped for their inserted copies
        and committed deletions are dropped from the staged set, so the
        store stays consistent even before the reload.

        Args:
            committed: Pending annotations that were sent for insert
            inserted: What the repository returned, in the same order
            deleted: Identities that were deleted
        """
        deleted = set(deleted)
        self._pending_deletions = [ann for ann in self._pending_deletions
                                   if ann.identity not in deleted]

        if len(committed) == len(inserted):
            replacements = {old.key: new for old, new in zip(committed, inserted)}
            self._annotations = [replacements.get(ann.key, ann) for ann in self._annotations]
        else:
            # Can't pair them up; the reload brings the saved copies back
            logger.warning("Repository returned %d row(s) for %d insert(s)",
                           len(inserted), len(committed))
            keys = {ann.key for ann in committed}
            self._annotations = [ann for ann in self._annotations if ann.key not in keys]

        self.history.reset(self.snapshot())

    def undo(self) -> bool:
        """
        Perform undo operation.

        Returns:
            True if undo was successful
        """
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self._adopt(snapshot)
        return True

    def redo(self) -> bool:
        """
        Perform redo operation.

        Returns:
            True if redo was successful
        """
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self._adopt(snapshot)
        return True

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    async def load(self, document_ref: Optional[str] = None,
                   keep_pending: Iterable[Annotation] = (),
                   keep_deletions: Iterable[Annotation] = ()) -> int:
        """
        Replace local state with the authoritative annotations of a piece.

        Args:
            document_ref: Piece to load, defaults to the session's piece
            keep_pending: Local annotations to carry over on top of the
                loaded state (added while a save was in flight)
            keep_deletions: Staged deletions to carry over; they stay
                hidden if the piece still has them

        Returns:
            Number of persisted annotations loaded
        """
        document_ref = document_ref or self.session.document_ref

        loaded = await self.repository.select(document_ref)
        loaded = [ann for ann in loaded if ann.document_ref == document_ref]

        if document_ref != self.session.document_ref:
            self.session.switch_document(document_ref)

        staged = {ann.identity for ann in keep_deletions}
        carried = [ann for ann in keep_pending
                   if ann.is_pending and ann.document_ref == document_ref]

        self._annotations = [ann for ann in loaded if ann.identity not in staged] + carried
        self._pending_deletions = [ann for ann in loaded if ann.identity in staged]
        self.history.reset(self.snapshot())

        logger.info("Loaded %d annotation(s) for %s (%d pending kept)",
                    len(loaded), document_ref, len(carried))
        return len(loaded)

    def _index_of(self, key: str) -> Optional[int]:
        for i, ann in enumerate(self._annotations):
            if ann.key == key:
                return i
        return None

    def _record(self) -> None:
        self.history.record(self.snapshot())

    def _adopt(self, snapshot: HistorySnapshot) -> None:
        self._annotations = list(snapshot.annotations)
        self._pending_deletions = list(snapshot.pending_deletions)
