"""
Saving and reconciliation of local annotation state.
"""
from .controller import SaveResult, SaveStatus, SyncController

__all__ = ['SaveResult', 'SaveStatus', 'SyncController']
