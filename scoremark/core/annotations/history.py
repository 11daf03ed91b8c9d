"""
Undo/Redo history for the annotation store.
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .models import Annotation


@dataclass(frozen=True)
class HistorySnapshot:
    """Visible annotations plus the deletions staged at one point in time."""
    annotations: Tuple[Annotation, ...] = ()
    pending_deletions: Tuple[Annotation, ...] = ()


class HistoryManager:
    """
    Linear undo/redo log of store snapshots.

    The cursor points at the snapshot matching the current store state.
    Recording while the cursor is behind the end discards the undone
    branch first.
    """

    def __init__(self, max_size: Optional[int] = None):
        """
        Initialize the history.

        Args:
            max_size: Maximum number of snapshots to keep, or None for no limit
        """
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._snapshots: List[HistorySnapshot] = [HistorySnapshot()]
        self._cursor: int = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> HistorySnapshot:
        return self._snapshots[self._cursor]

    def __len__(self) -> int:
        return len(self._snapshots)

    def reset(self, snapshot: HistorySnapshot) -> None:
        """Drop all history and start over from a single snapshot."""
        self._snapshots = [snapshot]
        self._cursor = 0

    def record(self, snapshot: HistorySnapshot) -> None:
        """
        Append the state resulting from an action.

        Args:
            snapshot: State of the store after the action
        """
        del self._snapshots[self._cursor + 1:]
        self._snapshots.append(snapshot)

        if self.max_size is not None and len(self._snapshots) > self.max_size:
            del self._snapshots[:len(self._snapshots) - self.max_size]

        self._cursor = len(self._snapshots) - 1

    def can_undo(self) -> bool:
        """Check if undo is available."""
        return self._cursor > 0

    def can_redo(self) -> bool:
        """Check if redo is available."""
        return self._cursor < len(self._snapshots) - 1

    def undo(self) -> Optional[HistorySnapshot]:
        """
        Step back one snapshot.

        Returns:
            The snapshot to restore, or None if already at the oldest one
        """
        if not self.can_undo():
            return None
        self._cursor -= 1
        return self._snapshots[self._cursor]

    def redo(self) -> Optional[HistorySnapshot]:
        """
        Step forward one snapshot.

        Returns:
            The snapshot to restore, or None if already at the newest one
        """
        if not self.can_redo():
            return None
        self._cursor += 1
        return self._snapshots[self._cursor]
