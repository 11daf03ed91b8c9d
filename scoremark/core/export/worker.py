from typing import Dict, List, Optional

from PyQt5.QtCore import QThread, pyqtSignal

from scoremark.core.annotations.models import Annotation
from .exporter import PdfExporter


class ExportWorker(QThread):
    """Worker thread for exporting annotations to PDF without freezing the UI."""

    # Signals
    finished_export = pyqtSignal(bool, str)  # success, message
    progress = pyqtSignal(str)  # status message
    page_progress = pyqtSignal(int, int)  # current, total pages

    def __init__(self, exporter: PdfExporter, source_pdf: str, output_pdf: str,
                 annotations: List[Annotation],
                 images: Optional[Dict[str, bytes]] = None, parent=None):
        super().__init__(parent)
        self.exporter = exporter
        self.source_pdf = source_pdf
        self.output_pdf = output_pdf
        self.annotations = list(annotations)
        self.images = images or {}

    def run(self):
        """Execute the export in a background thread."""
        try:
            self.progress.emit("Exporting annotations...")
            report = self.exporter.export(
                self.source_pdf, self.output_pdf, self.annotations,
                images=self.images, progress=self.page_progress.emit)
        except Exception as e:
            self.finished_export.emit(False, f"Error during export: {e}")
            return

        self.finished_export.emit(True, report.message)
