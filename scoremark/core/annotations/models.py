"""
Annotation data model.
"""
import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from scoremark.core.errors import ValidationError


class MarkColor(Enum):
    RED = "red"
    BLUE = "blue"
    GREEN = "green"
    ORANGE = "orange"
    PURPLE = "purple"
    BLACK = "black"


class AnnotationType(Enum):
    """Wire names of the annotation kinds."""
    DOT = "dot"
    STICKER = "sticker"


@dataclass(frozen=True)
class PointMark:
    """A coloured dot placed directly on the score."""
    color: MarkColor = MarkColor.RED


@dataclass(frozen=True)
class Sticker:
    """An image region stored in the blob store."""
    reference: str  # blob store path, never a URL
    width: float = 0.0
    height: float = 0.0

    def __post_init__(self):
        if not self.reference:
            raise ValidationError("Sticker needs a blob reference")
        if self.width < 0 or self.height < 0:
            raise ValidationError("Sticker size cannot be negative")


AnnotationKind = Union[PointMark, Sticker]


def _new_local_id() -> str:
    return uuid.uuid4().hex


def kind_type(kind: AnnotationKind) -> AnnotationType:
    """Map an annotation kind onto its wire type."""
    if isinstance(kind, PointMark):
        return AnnotationType.DOT
    if isinstance(kind, Sticker):
        return AnnotationType.STICKER
    raise TypeError(f"Unknown annotation kind: {kind!r}")


@dataclass(frozen=True)
class Annotation:
    """
    A single annotation on a page of a piece.

    ``identity`` stays ``None`` until the persistence layer commits the
    annotation; only then is it visible to other sessions.
    """
    document_ref: str
    owner: str
    x: float
    y: float
    kind: AnnotationKind = field(default_factory=PointMark)
    page: int = 1  # 1-based
    identity: Optional[str] = None
    auto_detected: bool = False
    revision: int = 1
    created_at: Optional[datetime] = None

    # Session-local handle for annotations that have no identity yet
    local_id: str = field(default_factory=_new_local_id, compare=False)

    def __post_init__(self):
        if not self.document_ref:
            raise ValidationError("Annotation must belong to a piece")
        if not (math.isfinite(self.x) and math.isfinite(self.y)):
            raise ValidationError(f"Invalid position ({self.x}, {self.y})")
        if self.page < 1:
            raise ValidationError(f"Page numbers start at 1, got {self.page}")
        kind_type(self.kind)

    @property
    def is_pending(self) -> bool:
        """True while the annotation only exists in the local session."""
        return self.identity is None

    @property
    def key(self) -> str:
        """Identity when persisted, otherwise the session-local id."""
        return self.identity if self.identity is not None else self.local_id

    @property
    def annotation_type(self) -> AnnotationType:
        return kind_type(self.kind)

    def distance_to(self, other: "Annotation") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def with_identity(self, identity: str,
                      created_at: Optional[datetime] = None) -> "Annotation":
        """Copy of this annotation as committed by the persistence layer."""
        return replace(self, identity=identity, created_at=created_at)

    def to_dict(self) -> Dict[str, Any]:
        """Convert annotation to a row of the shared annotations table."""
        data: Dict[str, Any] = {
            'piece_id': self.document_ref,
            'created_by': self.owner,
            'x': self.x,
            'y': self.y,
            'page': self.page,
            'type': self.annotation_type.value,
            'color': None,
            'sticker_url': None,
            'width': None,
            'height': None,
            'auto_detected': self.auto_detected,
            'version': self.revision,
        }

        if isinstance(self.kind, PointMark):
            data['color'] = self.kind.color.value
        elif isinstance(self.kind, Sticker):
            data['sticker_url'] = self.kind.reference
            data['width'] = self.kind.width
            data['height'] = self.kind.height
        else:
            raise TypeError(f"Unknown annotation kind: {self.kind!r}")

        if self.identity is not None:
            data['id'] = self.identity
        if self.created_at is not None:
            data['created_at'] = self.created_at.isoformat()

        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Annotation":
        """
        Create annotation from a table row.

        Args:
            data: Row as returned by the persistence layer

        Returns:
            The decoded annotation

        Raises:
            ValidationError: If the row is missing required fields or has
                an unknown type
        """
        try:
            annotation_type = AnnotationType(data.get('type') or 'dot')
        except ValueError:
            raise ValidationError(f"Unknown annotation type: {data.get('type')!r}")

        if annotation_type == AnnotationType.DOT:
            try:
                kind: AnnotationKind = PointMark(MarkColor(data.get('color') or 'red'))
            except ValueError:
                raise ValidationError(f"Unknown mark color: {data.get('color')!r}")
        else:
            kind = Sticker(
                reference=data.get('sticker_url') or '',
                width=float(data.get('width') or 0.0),
                height=float(data.get('height') or 0.0),
            )

        # Older rows may carry the page as a string or not at all
        page = data.get('page')
        page = int(page) if page not in (None, '') else 1

        created_at = data.get('created_at')
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at.replace('Z', '+00:00'))

        identity = data.get('id')

        try:
            return Annotation(
                document_ref=str(data['piece_id']),
                owner=str(data['created_by']),
                x=float(data['x']),
                y=float(data['y']),
                kind=kind,
                page=page,
                identity=str(identity) if identity is not None else None,
                auto_detected=bool(data.get('auto_detected', False)),
                revision=int(data.get('version') or 1),
                created_at=created_at,
            )
        except KeyError as e:
            raise ValidationError(f"Annotation row is missing {e}")
