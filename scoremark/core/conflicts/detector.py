"""
Spatial conflict detection between new and saved annotations.
"""
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from scoremark.core.annotations.models import Annotation
from scoremark.core.session import Role

# Document units; annotations closer than this overlap
CONFLICT_DISTANCE = 30.0


@dataclass(frozen=True)
class CreatorInfo:
    """Who created the saved side of a conflict."""
    actor_id: str
    name: str
    role: Optional[Role]


@dataclass(frozen=True)
class Conflict:
    """A new annotation placed too close to a saved one."""
    new: Annotation
    existing: Annotation
    distance: float
    existing_creator: Optional[CreatorInfo] = None

    @property
    def existing_is_teachers(self) -> bool:
        return self.existing_creator is not None and self.existing_creator.role == Role.TEACHER


def detect_conflicts(candidates: Iterable[Annotation],
                     existing: Iterable[Annotation],
                     threshold: float = CONFLICT_DISTANCE,
                     paginated: bool = True,
                     creator_lookup: Optional[Callable[[Annotation], CreatorInfo]] = None
                     ) -> List[Conflict]:
    """
    Pair every new annotation with each saved annotation it overlaps.

    Candidates form the outer loop and saved annotations the inner one, so
    the order of the result is reproducible. A candidate overlapping several
    saved annotations yields one conflict per pairing.

    Args:
        candidates: New annotations about to be saved
        existing: Saved annotations of the same piece
        threshold: Distance below which two annotations conflict (strict)
        paginated: Whether annotations must share a page to conflict
        creator_lookup: Resolves the creator of a saved annotation

    Returns:
        List of conflicts, in candidate-then-existing order
    """
    saved = [ann for ann in existing if not ann.is_pending]
    conflicts: List[Conflict] = []

    for new in candidates:
        for old in saved:
            if old.document_ref != new.document_ref:
                continue
            if paginated and old.page != new.page:
                continue

            distance = new.distance_to(old)
            if distance < threshold:
                creator = creator_lookup(old) if creator_lookup is not None else None
                conflicts.append(Conflict(new, old, distance, creator))

    return conflicts
