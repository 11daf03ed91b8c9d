"""
Conflict detection and resolution.
"""
from .detector import CONFLICT_DISTANCE, Conflict, CreatorInfo, detect_conflicts
from .workflow import (
    ConflictResolutionWorkflow,
    ResolutionAction,
    ResolutionOutcome,
    WorkflowState,
)

__all__ = [
    'CONFLICT_DISTANCE',
    'Conflict',
    'CreatorInfo',
    'detect_conflicts',
    'ConflictResolutionWorkflow',
    'ResolutionAction',
    'ResolutionOutcome',
    'WorkflowState',
]
