"""
Save pipeline: conflict check, commit to the repository, and reconciliation
of the optimistic local state with the authoritative one.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Optional, Set

from scoremark.core.annotations.models import Annotation
from scoremark.core.annotations.store import AnnotationStore
from scoremark.core.conflicts.detector import (
    CONFLICT_DISTANCE,
    Conflict,
    CreatorInfo,
    detect_conflicts,
)
from scoremark.core.conflicts.workflow import (
    ConflictResolutionWorkflow,
    ResolutionAction,
)
from scoremark.core.errors import PartialFailure, PersistenceError, ValidationError

if TYPE_CHECKING:
    from scoremark.core.collaborators import RoleLookup

logger = logging.getLogger(__name__)


class SaveStatus(Enum):
    NOTHING_TO_SAVE = "nothing_to_save"
    CONFLICTS = "conflicts"
    SAVED = "saved"


@dataclass
class SaveResult:
    status: SaveStatus
    message: str = ""
    inserted: List[Annotation] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)


class SyncController:
    """
    Orchestrates saving the local store to the repository.

    A save either commits straight away or, when new annotations overlap
    saved ones, hands the conflicts to the resolution workflow and returns.
    The commit then happens when the last conflict is resolved through
    ``resolve``. Annotations added while a save is running are not part of
    it and stay pending for the next one.
    """

    def __init__(self, store: AnnotationStore, roles: "RoleLookup",
                 workflow: Optional[ConflictResolutionWorkflow] = None,
                 conflict_distance: float = CONFLICT_DISTANCE,
                 paginated: bool = True):
        self.store = store
        self.roles = roles
        self.workflow = workflow or ConflictResolutionWorkflow(store.session)
        self.conflict_distance = conflict_distance
        self.paginated = paginated

        self._saving = False
        self._batch_keys: Set[str] = set()

    @property
    def repository(self):
        return self.store.repository

    @property
    def is_saving(self) -> bool:
        return self._saving

    async def save(self) -> SaveResult:
        """
        Save pending additions and deletions.

        Returns:
            NOTHING_TO_SAVE, CONFLICTS (resolution started) or SAVED

        Raises:
            ValidationError: If a save or a conflict resolution is under way
            PartialFailure: If some deletions failed; nothing was inserted
            PersistenceError: If the insert or the reload failed
        """
        if self._saving:
            raise ValidationError("A save is already in progress")
        if self.workflow.is_active:
            raise ValidationError("Resolve the open conflicts before saving again")

        new = self.store.pending_new()
        to_delete = self.store.pending_deletions

        if not new and not to_delete:
            logger.info("Nothing to save for %s", self.store.document_ref)
            return SaveResult(SaveStatus.NOTHING_TO_SAVE, "No changes to save.")

        conflicts = detect_conflicts(
            new,
            self.store.persisted(),
            threshold=self.conflict_distance,
            paginated=self.paginated,
            creator_lookup=self._creator_of,
        )

        if conflicts:
            self._batch_keys = {ann.key for ann in new}
            self.workflow.start(conflicts)
            return SaveResult(
                SaveStatus.CONFLICTS,
                f"{len(conflicts)} annotation conflict(s) need resolving.",
                conflicts=conflicts,
            )

        return await self._commit(new, to_delete)

    async def resolve(self, index: int, action: ResolutionAction) -> Optional[SaveResult]:
        """
        Resolve one presented conflict; commits once all are resolved.

        Returns:
            The save result after the last decision, otherwise None
        """
        outcome = self.workflow.resolve(index, action)
        if outcome is None:
            return None

        batch_keys, self._batch_keys = self._batch_keys, set()
        if outcome.rejected:
            self.store.discard(outcome.rejected)

        new = [ann for ann in self.store.pending_new() if ann.key in batch_keys]
        new_keys = {ann.key for ann in new}

        deletions: Dict[str, Annotation] = {
            ann.key: ann for ann in self.store.pending_deletions}
        for ann in outcome.deletions:
            # Only delete when a replacing annotation is still pending
            if not new_keys.intersection(outcome.replaced_by.get(ann.key, ())):
                logger.warning("Keeping annotation %s: its replacement is no longer pending",
                               ann.identity)
                continue
            deletions.setdefault(ann.key, ann)

        if not new and not deletions:
            return SaveResult(SaveStatus.NOTHING_TO_SAVE,
                              "Kept the existing annotations; nothing to save.")

        return await self._commit(new, list(deletions.values()))

    def cancel_resolution(self) -> List[Annotation]:
        """
        Abort conflict resolution and discard the conflicting new annotations.

        Returns:
            The discarded annotations
        """
        if not self.workflow.is_active:
            return []
        discarded = self.workflow.cancel()
        self.store.discard(discarded)
        self._batch_keys = set()
        return discarded

    async def reload(self) -> int:
        """Reload the open piece, dropping all local changes."""
        if self.workflow.is_active:
            self.workflow.cancel()
            self._batch_keys = set()
        return await self.store.load()

    async def _commit(self, new: List[Annotation],
                      deletions: List[Annotation]) -> SaveResult:
        self._saving = True
        try:
            deleted: List[str] = []
            failed = []
            for ann in deletions:
                try:
                    await self.repository.delete(ann.identity)
                    deleted.append(ann.identity)
                except PersistenceError as e:
                    logger.error("Failed to delete annotation %s: %s", ann.identity, e)
                    failed.append((ann.identity, e))

            if failed:
                raise PartialFailure(deleted, failed)

            inserted: List[Annotation] = []
            if new:
                try:
                    inserted = await self.repository.insert(new)
                except PersistenceError as e:
                    logger.error("Failed to insert %d annotation(s): %s", len(new), e)
                    raise

            self.store.mark_committed(new, inserted, deleted)
            await self.store.load(
                keep_pending=self.store.pending_new(),
                keep_deletions=self.store.pending_deletions,
            )
        finally:
            self._saving = False

        logger.info("Saved %s: %d added, %d deleted",
                    self.store.document_ref, len(inserted), len(deleted))
        return SaveResult(
            SaveStatus.SAVED,
            f"Saved {len(inserted)} new and deleted {len(deleted)} annotation(s).",
            inserted=inserted,
            deleted=deleted,
        )

    def _creator_of(self, annotation: Annotation) -> CreatorInfo:
        return CreatorInfo(
            actor_id=annotation.owner,
            name=self.roles.display_name(annotation.owner),
            role=self.roles.role_in_document(annotation.owner, annotation.document_ref),
        )
