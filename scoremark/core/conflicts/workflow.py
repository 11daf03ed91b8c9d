"""
Step-by-step resolution of save conflicts, gated by piece roles.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from scoremark.core.annotations.models import Annotation
from scoremark.core.errors import AuthorizationError, ValidationError
from scoremark.core.session import Role, SessionContext
from .detector import Conflict

logger = logging.getLogger(__name__)


class ResolutionAction(Enum):
    KEEP_NEW = "keep-new"            # delete the saved annotation, keep mine
    KEEP_EXISTING = "keep-existing"  # drop mine
    KEEP_BOTH = "keep-both"


class WorkflowState(Enum):
    IDLE = "idle"
    PRESENTING = "presenting"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ResolutionOutcome:
    """What a completed batch of decisions means for the save."""
    accepted: Tuple[Annotation, ...]
    rejected: Tuple[Annotation, ...]
    deletions: Tuple[Annotation, ...]
    # existing key -> keys of the accepted new annotations replacing it
    replaced_by: Dict[str, Tuple[str, ...]] = field(default_factory=dict)


class ConflictResolutionWorkflow:
    """
    Presents conflicts one by one and collects a decision for each.

    A student may not override a teacher's annotation: against those,
    only KEEP_EXISTING is allowed (KEEP_BOTH too when ``gate_keep_both`` is
    off). Once every conflict has a decision the workflow returns to IDLE
    and hands back a ResolutionOutcome.

    Decisions are made per pairing but applied per new annotation: if any
    pairing of a new annotation says KEEP_EXISTING, the new annotation is
    dropped and its KEEP_NEW deletions are void.
    """

    def __init__(self, session: SessionContext, gate_keep_both: bool = True):
        self.session = session
        self.gate_keep_both = gate_keep_both

        self.state = WorkflowState.IDLE
        self.conflicts: List[Conflict] = []
        self.decisions: Dict[int, ResolutionAction] = {}

    @property
    def is_active(self) -> bool:
        return self.state == WorkflowState.PRESENTING

    @property
    def current_index(self) -> Optional[int]:
        """Index of the first conflict still waiting for a decision."""
        if not self.is_active:
            return None
        for i in range(len(self.conflicts)):
            if i not in self.decisions:
                return i
        return None

    @property
    def current(self) -> Optional[Conflict]:
        index = self.current_index
        return self.conflicts[index] if index is not None else None

    @property
    def remaining(self) -> List[Conflict]:
        return [c for i, c in enumerate(self.conflicts) if i not in self.decisions]

    def start(self, conflicts: List[Conflict]) -> None:
        """Begin presenting a batch of conflicts."""
        if self.is_active:
            raise ValidationError("Conflict resolution is already in progress")
        if not conflicts:
            raise ValidationError("There are no conflicts to resolve")

        self.conflicts = list(conflicts)
        self.decisions = {}
        self.state = WorkflowState.PRESENTING
        logger.info("Presenting %d conflict(s) to %s",
                    len(self.conflicts), self.session.actor_id)

    def override_forbidden(self, conflict: Conflict) -> bool:
        """True when a student faces an annotation made by a teacher of this piece."""
        return self.session.role != Role.TEACHER and conflict.existing_is_teachers

    def allowed_actions(self, conflict: Conflict) -> List[ResolutionAction]:
        if not self.override_forbidden(conflict):
            return list(ResolutionAction)

        allowed = [ResolutionAction.KEEP_EXISTING]
        if not self.gate_keep_both:
            allowed.append(ResolutionAction.KEEP_BOTH)
        return allowed

    def resolve(self, index: int, action: ResolutionAction) -> Optional[ResolutionOutcome]:
        """
        Record the decision for one conflict.

        Args:
            index: Position of the conflict in the presented batch
            action: How to resolve it

        Returns:
            The outcome once every conflict is decided, otherwise None

        Raises:
            ValidationError: If nothing is being presented or the index is
                unknown or already decided
            AuthorizationError: If the action is not allowed for this conflict
        """
        if not self.is_active:
            raise ValidationError("No conflicts are being resolved")
        if not 0 <= index < len(self.conflicts):
            raise ValidationError(f"No conflict at position {index}")
        if index in self.decisions:
            raise ValidationError(f"Conflict {index + 1} is already resolved")

        conflict = self.conflicts[index]
        if action not in self.allowed_actions(conflict):
            raise AuthorizationError(
                "Only a teacher can override a teacher's annotation; "
                "keep the existing one or leave it for a teacher.")

        self.decisions[index] = action
        logger.debug("Conflict %d resolved as %s", index + 1, action.value)

        if len(self.decisions) < len(self.conflicts):
            return None

        outcome = self._outcome()
        self._reset(WorkflowState.IDLE)
        logger.info("Conflicts resolved: %d accepted, %d rejected, %d deletion(s)",
                    len(outcome.accepted), len(outcome.rejected), len(outcome.deletions))
        return outcome

    def cancel(self) -> List[Annotation]:
        """
        Abort resolution.

        Returns:
            Every new annotation involved in a conflict, to be discarded
        """
        involved = self._new_annotations()
        self._reset(WorkflowState.CANCELLED)
        logger.info("Conflict resolution cancelled; discarding %d new annotation(s)",
                    len(involved))
        return involved

    def _new_annotations(self) -> List[Annotation]:
        seen: Dict[str, Annotation] = {}
        for conflict in self.conflicts:
            seen.setdefault(conflict.new.key, conflict.new)
        return list(seen.values())

    def _outcome(self) -> ResolutionOutcome:
        rejected_keys = {
            self.conflicts[i].new.key
            for i, action in self.decisions.items()
            if action == ResolutionAction.KEEP_EXISTING
        }

        accepted = []
        rejected = []
        for ann in self._new_annotations():
            (rejected if ann.key in rejected_keys else accepted).append(ann)

        deletions: Dict[str, Annotation] = {}
        replaced_by: Dict[str, List[str]] = {}
        for i, conflict in enumerate(self.conflicts):
            if (self.decisions[i] == ResolutionAction.KEEP_NEW
                    and conflict.new.key not in rejected_keys):
                deletions.setdefault(conflict.existing.key, conflict.existing)
                replaced_by.setdefault(conflict.existing.key, []).append(conflict.new.key)

        return ResolutionOutcome(
            tuple(accepted),
            tuple(rejected),
            tuple(deletions.values()),
            {key: tuple(new_keys) for key, new_keys in replaced_by.items()},
        )

    def _reset(self, state: WorkflowState) -> None:
        self.state = state
        self.conflicts = []
        self.decisions = {}
