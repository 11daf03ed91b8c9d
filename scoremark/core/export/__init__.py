"""
Export of annotated copies of a score.
"""
from .exporter import MARK_RGB, ExportReport, PdfExporter, load_sticker_images

__all__ = [
    'MARK_RGB',
    'ExportReport',
    'PdfExporter',
    'load_sticker_images',
]
