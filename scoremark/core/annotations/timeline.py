"""
Creation history of a piece's annotations, grouped by day.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING, Dict, Iterable, List

from .models import Annotation

if TYPE_CHECKING:
    from scoremark.core.collaborators import RoleLookup


@dataclass(frozen=True)
class TimelineItem:
    annotation: Annotation
    creator_name: str
    creator_role: str  # role value, or "unknown"


@dataclass
class TimelineEntry:
    day: date
    items: List[TimelineItem] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)


def build_timeline(annotations: Iterable[Annotation], roles: "RoleLookup",
                   document_ref: str) -> List[TimelineEntry]:
    """
    Group saved annotations by the day they were created, newest first.

    Annotations without a creation time (not yet saved) are left out.
    """
    dated = sorted(
        (ann for ann in annotations
         if ann.created_at is not None and ann.document_ref == document_ref),
        key=lambda ann: ann.created_at,
        reverse=True,
    )

    entries: Dict[date, TimelineEntry] = {}
    for ann in dated:
        role = roles.role_in_document(ann.owner, document_ref)
        item = TimelineItem(
            annotation=ann,
            creator_name=roles.display_name(ann.owner),
            creator_role=role.value if role is not None else "unknown",
        )
        day = ann.created_at.date()
        entries.setdefault(day, TimelineEntry(day)).items.append(item)

    return list(entries.values())
