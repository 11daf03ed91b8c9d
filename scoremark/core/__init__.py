"""
Core business logic for Scoremark.
"""
from .annotations import Annotation, AnnotationStore, MarkColor, PointMark, Sticker
from .conflicts import ConflictResolutionWorkflow, ResolutionAction, detect_conflicts
from .errors import (
    AuthorizationError,
    ExportError,
    PartialFailure,
    PersistenceError,
    ScoremarkError,
    ValidationError,
)
from .session import MembershipDirectory, Role, SessionContext
from .sync import SaveResult, SaveStatus, SyncController

__all__ = [
    'Annotation',
    'AnnotationStore',
    'MarkColor',
    'PointMark',
    'Sticker',
    'ConflictResolutionWorkflow',
    'ResolutionAction',
    'detect_conflicts',
    'AuthorizationError',
    'ExportError',
    'PartialFailure',
    'PersistenceError',
    'ScoremarkError',
    'ValidationError',
    'MembershipDirectory',
    'Role',
    'SessionContext',
    'SaveResult',
    'SaveStatus',
    'SyncController',
]
