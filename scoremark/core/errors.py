"""
Error types raised by the annotation core.
"""
from typing import List, Optional, Tuple


class ScoremarkError(Exception):
    """Base class for all errors raised by Scoremark."""


class ValidationError(ScoremarkError, ValueError):
    """Invalid input or an operation that makes no sense in the current state."""


class AuthorizationError(ScoremarkError):
    """The acting user may not perform the requested change."""


class PersistenceError(ScoremarkError):
    """A call to the persistence or blob collaborator failed."""

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation


class PartialFailure(ScoremarkError):
    """
    Some deletions of a save batch failed.

    Deletions that went through are not rolled back and the inserts of the
    batch were not attempted.
    """

    def __init__(self, deleted: List[str], failed: List[Tuple[str, Exception]]):
        self.deleted = list(deleted)
        self.failed = list(failed)
        super().__init__(
            f"{len(self.failed)} of {len(self.deleted) + len(self.failed)} "
            f"deletion(s) failed; new annotations were not saved"
        )

    @property
    def failed_identities(self) -> List[str]:
        return [identity for identity, _ in self.failed]


class ExportError(ScoremarkError):
    """Writing an annotated copy of a score failed."""
