"""
Writes a copy of a score with its annotations drawn onto the pages.
"""
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import fitz  # PyMuPDF

from scoremark.core.annotations.models import Annotation, MarkColor, PointMark, Sticker
from scoremark.core.collaborators import BlobStore
from scoremark.core.errors import ExportError, PersistenceError

logger = logging.getLogger(__name__)

MARK_RGB = {
    MarkColor.RED: (1.0, 0.0, 0.0),
    MarkColor.BLUE: (0.0, 0.0, 1.0),
    MarkColor.GREEN: (0.0, 1.0, 0.0),
    MarkColor.ORANGE: (1.0, 0.5, 0.0),
    MarkColor.PURPLE: (0.5, 0.0, 0.5),
    MarkColor.BLACK: (0.0, 0.0, 0.0),
}


@dataclass
class ExportReport:
    drawn: int = 0
    skipped: int = 0

    @property
    def message(self) -> str:
        text = f"Exported {self.drawn} annotation(s)."
        if self.skipped:
            text += f" {self.skipped} could not be drawn."
        return text


async def load_sticker_images(annotations: Iterable[Annotation],
                              blobs: BlobStore) -> Dict[str, bytes]:
    """
    Download the images of all stickers among the annotations.

    Stickers whose image cannot be fetched are left out; the exporter then
    skips them.

    Returns:
        Image bytes keyed by blob reference
    """
    images: Dict[str, bytes] = {}
    for ann in annotations:
        if not isinstance(ann.kind, Sticker):
            continue
        reference = ann.kind.reference
        if reference in images:
            continue
        try:
            images[reference] = await blobs.fetch(reference)
        except PersistenceError as e:
            logger.warning("Could not load sticker image %s: %s", reference, e)
    return images


class PdfExporter:
    """Draws marks and stickers onto the pages of a PDF with PyMuPDF."""

    DOT_RADIUS = 5.0
    DOT_OPACITY = 0.8

    def export(self, source_pdf: str, output_pdf: str, annotations: List[Annotation],
               images: Optional[Dict[str, bytes]] = None,
               progress: Optional[Callable[[int, int], None]] = None) -> ExportReport:
        """
        Export annotations into a copy of the source PDF.

        Annotation coordinates are document units from the top-left corner
        of the page, which is PyMuPDF's page space. Annotations on pages the
        document does not have and stickers without a usable image are
        skipped. The output may be the source file itself.

        Args:
            source_pdf: Path to the score
            output_pdf: Path where the annotated copy is written
            annotations: Annotations to draw
            images: Sticker image bytes keyed by blob reference
            progress: Called with (current, total) after each annotated page

        Returns:
            How many annotations were drawn and skipped

        Raises:
            ExportError: If the source cannot be opened or the copy cannot be written
        """
        images = images or {}
        report = ExportReport()

        try:
            doc = fitz.open(source_pdf)
        except (RuntimeError, OSError, ValueError) as e:
            raise ExportError(f"Failed to open {source_pdf}: {e}") from e

        try:
            # Group annotations by page
            annotations_by_page: Dict[int, List[Annotation]] = {}
            for ann in annotations:
                annotations_by_page.setdefault(ann.page, []).append(ann)

            total = len(annotations_by_page)
            for current, page_number in enumerate(sorted(annotations_by_page), start=1):
                page_annotations = annotations_by_page[page_number]
                if page_number > doc.page_count:
                    logger.warning("Skipping %d annotation(s) on page %d; %s has %d page(s)",
                                   len(page_annotations), page_number, source_pdf,
                                   doc.page_count)
                    report.skipped += len(page_annotations)
                else:
                    page = doc[page_number - 1]
                    for ann in page_annotations:
                        if self._draw(page, ann, images):
                            report.drawn += 1
                        else:
                            report.skipped += 1

                if progress is not None:
                    progress(current, total)

            # Write next to the target and move into place, so the source can be the output
            output_dir = os.path.dirname(os.path.abspath(output_pdf))
            temp_fd, temp_path = tempfile.mkstemp(suffix='.pdf', dir=output_dir)
            os.close(temp_fd)
            try:
                doc.save(temp_path, garbage=4, deflate=True)
            except (RuntimeError, OSError, ValueError) as e:
                os.remove(temp_path)
                raise ExportError(f"Failed to write {output_pdf}: {e}") from e
        finally:
            doc.close()

        try:
            os.replace(temp_path, output_pdf)
        except OSError as e:
            os.remove(temp_path)
            raise ExportError(f"Failed to write {output_pdf}: {e}") from e

        logger.info("Exported %s to %s: %d drawn, %d skipped",
                    source_pdf, output_pdf, report.drawn, report.skipped)
        return report

    def _draw(self, page: fitz.Page, annotation: Annotation,
              images: Dict[str, bytes]) -> bool:
        kind = annotation.kind
        if isinstance(kind, PointMark):
            color = MARK_RGB.get(kind.color, MARK_RGB[MarkColor.RED])
            shape = page.new_shape()
            shape.draw_circle(fitz.Point(annotation.x, annotation.y), self.DOT_RADIUS)
            shape.finish(color=None, fill=color, fill_opacity=self.DOT_OPACITY)
            shape.commit()
            return True

        if isinstance(kind, Sticker):
            data = images.get(kind.reference)
            if data is None:
                logger.warning("Skipping sticker %s: image not available", kind.reference)
                return False
            try:
                width, height = kind.width, kind.height
                if not width or not height:
                    pixmap = fitz.Pixmap(data)
                    width, height = width or pixmap.width, height or pixmap.height
                rect = fitz.Rect(annotation.x, annotation.y,
                                 annotation.x + width, annotation.y + height)
                page.insert_image(rect, stream=data)
            except Exception as e:
                logger.warning("Skipping sticker %s: %s", kind.reference, e)
                return False
            return True

        raise TypeError(f"Unknown annotation kind: {kind!r}")

