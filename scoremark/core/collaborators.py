"""
Contracts of the external collaborators the annotation core talks to.
"""
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from scoremark.core.annotations.models import Annotation
from scoremark.core.session import Role


class AnnotationRepository(Protocol):
    """Authoritative annotation store. Every call raises PersistenceError on failure."""

    async def select(self, document_ref: str) -> List[Annotation]: ...

    async def insert(self, annotations: Sequence[Annotation]) -> List[Annotation]: ...

    async def delete(self, identity: str) -> None: ...


class BlobStore(Protocol):
    """Storage for sticker images. The core only ever keeps the reference."""

    async def store(self, data: bytes, content_type: str, prefix: str = "") -> str: ...

    async def fetch(self, reference: str) -> bytes: ...

    def public_url(self, reference: str) -> str: ...


class RoleLookup(Protocol):
    """Per-piece roles and display names of actors."""

    def role_in_document(self, actor_id: str, document_ref: str) -> Optional[Role]: ...

    def display_name(self, actor_id: str) -> str: ...


@dataclass(frozen=True)
class RenderItem:
    """An annotation as handed to the rendering surface."""
    annotation: Annotation
    is_mine: bool
    style: str  # "mine", "teacher" or "others"
    can_delete: bool
    image_url: Optional[str] = None


class RenderingSurface(Protocol):
    def render(self, items: Sequence[RenderItem]) -> None: ...
