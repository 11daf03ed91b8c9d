"""
Detection of markings on uploaded copies of a score.
"""
from .detector import DetectedRegion, RegionDetector
from .importer import StickerImporter
from .regions import RegionBox, difference_mask, find_regions

__all__ = [
    'DetectedRegion',
    'RegionDetector',
    'StickerImporter',
    'RegionBox',
    'difference_mask',
    'find_regions',
]
