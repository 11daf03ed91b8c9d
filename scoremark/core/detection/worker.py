from PyQt5.QtCore import QThread, pyqtSignal

from .detector import RegionDetector


class DetectionWorker(QThread):
    """Worker thread for detecting markings without freezing the UI."""

    # Signals
    finished_detection = pyqtSignal(list)  # DetectedRegion list
    progress = pyqtSignal(int, int)  # current, total pages
    failed = pyqtSignal(str)  # error message

    def __init__(self, detector: RegionDetector, base_pdf: str, marked_pdf: str,
                 parent=None):
        super().__init__(parent)
        self.detector = detector
        self.base_pdf = base_pdf
        self.marked_pdf = marked_pdf

    def run(self):
        """Execute the detection in a background thread."""
        try:
            regions = self.detector.detect(
                self.base_pdf, self.marked_pdf, progress=self.progress.emit)
        except Exception as e:
            self.failed.emit(f"Error detecting annotations: {e}")
            return

        self.finished_detection.emit(regions)
