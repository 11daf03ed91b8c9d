"""
Annotation model, local store and undo/redo history.
"""
from .models import Annotation, AnnotationType, MarkColor, PointMark, Sticker
from .history import HistoryManager, HistorySnapshot
from .store import AnnotationStore
from .persistence import JsonAnnotationRepository
from .timeline import TimelineEntry, TimelineItem, build_timeline

__all__ = [
    'Annotation',
    'AnnotationType',
    'MarkColor',
    'PointMark',
    'Sticker',
    'HistoryManager',
    'HistorySnapshot',
    'AnnotationStore',
    'JsonAnnotationRepository',
    'TimelineEntry',
    'TimelineItem',
    'build_timeline',
]
