"""
Shared fixtures: in-memory collaborators and a piece with one teacher and
two students.
"""
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence, Set

import pytest

from scoremark.core.annotations import Annotation, AnnotationStore, MarkColor, PointMark
from scoremark.core.conflicts import ConflictResolutionWorkflow
from scoremark.core.errors import PersistenceError
from scoremark.core.session import MembershipDirectory, Role, SessionContext
from scoremark.core.sync import SyncController

PIECE = "piece-1"
TEACHER = "t1"
STUDENT = "s1"
OTHER_STUDENT = "s2"


class FakeRepository:
    """Annotation repository keeping rows in memory and recording every call."""

    def __init__(self):
        self.rows: Dict[str, Annotation] = {}
        self.calls: List[tuple] = []
        self.failing_deletes: Set[str] = set()
        self.fail_insert = False
        self.fail_select = False
        self.on_insert: Optional[Callable[[], None]] = None
        self._next_id = 1
        self._clock = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def seed(self, document_ref: str, owner: str, x: float, y: float,
             page: int = 1, kind=None) -> Annotation:
        """Put a saved annotation straight into the repository."""
        pending = Annotation(document_ref, owner, x, y, kind or PointMark(MarkColor.BLUE),
                             page=page)
        return self._persist(pending)

    async def select(self, document_ref: str) -> List[Annotation]:
        self.calls.append(("select", document_ref))
        if self.fail_select:
            raise PersistenceError("select failed", "select")
        return [ann for ann in self.rows.values() if ann.document_ref == document_ref]

    async def insert(self, annotations: Sequence[Annotation]) -> List[Annotation]:
        self.calls.append(("insert", [ann.key for ann in annotations]))
        if self.on_insert is not None:
            self.on_insert()
        if self.fail_insert:
            raise PersistenceError("insert failed", "insert")
        return [self._persist(ann) for ann in annotations]

    async def delete(self, identity: str) -> None:
        self.calls.append(("delete", identity))
        if identity in self.failing_deletes:
            raise PersistenceError(f"delete of {identity} failed", "delete")
        self.rows.pop(identity, None)

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    def _persist(self, annotation: Annotation) -> Annotation:
        identity = f"row-{self._next_id}"
        self._next_id += 1
        self._clock += timedelta(minutes=1)
        saved = annotation.with_identity(identity, self._clock)
        self.rows[identity] = saved
        return saved


class FakeBlobStore:
    """Blob store keeping uploads in a dict."""

    def __init__(self, fail_after: Optional[int] = None):
        self.blobs: Dict[str, bytes] = {}
        self.fail_after = fail_after

    async def store(self, data: bytes, content_type: str, prefix: str = "") -> str:
        if self.fail_after is not None and len(self.blobs) >= self.fail_after:
            raise PersistenceError("upload failed", "upload")
        reference = f"blob-{len(self.blobs) + 1}.png"
        if prefix:
            reference = f"{prefix}/{reference}"
        self.blobs[reference] = data
        return reference

    async def fetch(self, reference: str) -> bytes:
        if reference not in self.blobs:
            raise PersistenceError(f"no blob at {reference}", "download")
        return self.blobs[reference]

    def public_url(self, reference: str) -> str:
        return f"https://blobs.example/{reference}"


class RecordingSurface:
    def __init__(self):
        self.renders = []

    def render(self, items) -> None:
        self.renders.append(list(items))


@pytest.fixture
def directory() -> MembershipDirectory:
    directory = MembershipDirectory()
    for actor, name in ((TEACHER, "Ms. Teacher"), (STUDENT, "Sam"), (OTHER_STUDENT, "Alex")):
        directory.register_profile(actor, name)
    directory.add_member(PIECE, TEACHER, Role.TEACHER)
    directory.add_member(PIECE, STUDENT, Role.STUDENT)
    directory.add_member(PIECE, OTHER_STUDENT, Role.STUDENT)
    return directory


@pytest.fixture
def repository() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def blobs() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def make_sync(directory, repository):
    """Build a SyncController for an actor on the shared piece."""

    def _make(actor: str, gate_keep_both: bool = True) -> SyncController:
        session = SessionContext(actor, PIECE, directory)
        store = AnnotationStore(session, repository)
        workflow = ConflictResolutionWorkflow(session, gate_keep_both=gate_keep_both)
        return SyncController(store, directory, workflow)

    return _make


def mark(owner: str, x: float, y: float, page: int = 1,
         document_ref: str = PIECE) -> Annotation:
    """A pending red dot."""
    return Annotation(document_ref, owner, x, y, PointMark(MarkColor.RED), page=page)
