"""
Detection of hand-made markings by comparing a marked-up PDF with the
original score.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import fitz  # PyMuPDF

from .regions import RegionBox, difference_mask, find_regions, pixel_differs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectedRegion:
    """A marking found on a page, in document units."""
    page: int  # 1-based
    x: float
    y: float
    width: float
    height: float
    image: bytes = field(repr=False)  # transparent PNG
    pixel_count: int = 0


class RegionDetector:
    """Finds regions that differ between two PDFs of the same score."""

    def __init__(self, scale: float = 2.0, threshold: int = 30,
                 min_pixels: int = 50, padding: int = 10):
        """
        Args:
            scale: Render zoom; higher finds smaller markings but is slower
            threshold: Minimum summed RGB difference for a changed pixel
            min_pixels: Regions with this many pixels or fewer are ignored
            padding: Pixels added around each region
        """
        self.scale = scale
        self.threshold = threshold
        self.min_pixels = min_pixels
        self.padding = padding

    def detect(self, base_path: str, marked_path: str,
               progress: Optional[Callable[[int, int], None]] = None) -> List[DetectedRegion]:
        """
        Compare every page both documents have.

        Args:
            base_path: The unmarked PDF
            marked_path: The same PDF with markings
            progress: Called with (page, total) before each page

        Returns:
            Detected regions in page order
        """
        regions: List[DetectedRegion] = []

        with fitz.open(base_path) as base_doc, fitz.open(marked_path) as marked_doc:
            total = min(base_doc.page_count, marked_doc.page_count)
            for page_index in range(total):
                if progress is not None:
                    progress(page_index + 1, total)
                regions.extend(self.detect_page(
                    base_doc.load_page(page_index),
                    marked_doc.load_page(page_index),
                    page_index + 1,
                ))

        logger.info("Detected %d region(s) in %s", len(regions), marked_path)
        return regions

    def detect_page(self, base_page: fitz.Page, marked_page: fitz.Page,
                    page_number: int) -> List[DetectedRegion]:
        matrix = fitz.Matrix(self.scale, self.scale)
        base_pix = base_page.get_pixmap(matrix=matrix, alpha=False)
        marked_pix = marked_page.get_pixmap(matrix=matrix, alpha=False)

        if (base_pix.width, base_pix.height) != (marked_pix.width, marked_pix.height):
            logger.warning("Page %d differs in size between the documents, skipping",
                           page_number)
            return []

        mask = difference_mask(
            base_pix.samples, marked_pix.samples,
            base_pix.width, base_pix.height,
            channels=base_pix.n, stride=base_pix.stride,
            threshold=self.threshold,
        )
        boxes = find_regions(mask, base_pix.width, base_pix.height,
                             self.min_pixels, self.padding)

        regions = []
        for i, box in enumerate(boxes):
            try:
                image = self._extract_png(base_pix, marked_pix, box)
            except (RuntimeError, ValueError) as e:
                logger.warning("Skipping region %d on page %d: %s", i + 1, page_number, e)
                continue

            if image is None:
                logger.warning("Skipping region %d on page %d - no visible content",
                               i + 1, page_number)
                continue

            regions.append(DetectedRegion(
                page=page_number,
                x=box.x / self.scale,
                y=box.y / self.scale,
                width=box.width / self.scale,
                height=box.height / self.scale,
                image=image,
                pixel_count=box.pixel_count,
            ))

        return regions

    def _extract_png(self, base_pix: fitz.Pixmap, marked_pix: fitz.Pixmap,
                     box: RegionBox) -> Optional[bytes]:
        """
        Cut a region out of the marked page, keeping only changed pixels.

        Returns:
            PNG bytes, or None if no pixel in the box changed
        """
        base, marked = base_pix.samples, marked_pix.samples
        n, stride = base_pix.n, base_pix.stride

        rgba = bytearray(box.width * box.height * 4)
        visible = 0
        for row in range(box.height):
            src = (box.y + row) * stride
            dst = row * box.width * 4
            for col in range(box.width):
                offset = src + (box.x + col) * n
                if pixel_differs(base, marked, offset, self.threshold):
                    out = dst + col * 4
                    rgba[out:out + 3] = marked[offset:offset + 3]
                    rgba[out + 3] = 255
                    visible += 1

        if not visible:
            return None

        region = fitz.Pixmap(fitz.csRGB, box.width, box.height, bytes(rgba), True)
        return region.tobytes("png")
