"""
Controller for managing annotation operations.
"""
import logging
from typing import List, Optional

from PyQt5.QtCore import QObject, pyqtSignal

from scoremark.core.annotations import (
    Annotation,
    AnnotationStore,
    MarkColor,
    PointMark,
    Sticker,
    TimelineEntry,
    build_timeline,
)
from scoremark.core.collaborators import BlobStore, RenderingSurface, RenderItem
from scoremark.core.conflicts import ResolutionAction
from scoremark.core.detection import DetectedRegion, RegionDetector, StickerImporter
from scoremark.core.detection.worker import DetectionWorker
from scoremark.core.errors import (
    AuthorizationError,
    PersistenceError,
    ScoremarkError,
    ValidationError,
)
from scoremark.core.export import PdfExporter, load_sticker_images
from scoremark.core.export.worker import ExportWorker
from scoremark.core.session import Role, SessionContext
from scoremark.core.sync import SaveResult, SaveStatus, SyncController

logger = logging.getLogger(__name__)


class AnnotationController(QObject):
    """Handles all annotation-related operations and user interactions."""

    # Signals
    annotations_changed = pyqtSignal(list)  # RenderItems of the open piece
    conflicts_detected = pyqtSignal(list)  # Conflicts waiting for decisions
    notice = pyqtSignal(str)  # Informational, nothing went wrong
    error_occurred = pyqtSignal(str)
    save_finished = pyqtSignal(object)  # SaveResult

    def __init__(self, sync: SyncController, blobs: Optional[BlobStore] = None,
                 surface: Optional[RenderingSurface] = None,
                 detector: Optional[RegionDetector] = None,
                 exporter: Optional[PdfExporter] = None, parent: QObject = None):
        super().__init__(parent)
        self.sync = sync
        self.blobs = blobs
        self.surface = surface
        self.detector = detector or RegionDetector()
        self.exporter = exporter or PdfExporter()
        self._worker: Optional[DetectionWorker] = None
        self._export_worker: Optional[ExportWorker] = None

    @property
    def store(self) -> AnnotationStore:
        return self.sync.store

    @property
    def session(self) -> SessionContext:
        return self.store.session

    async def open_document(self, document_ref: str) -> int:
        """
        Load a piece and show its annotations.

        Returns:
            Number of annotations loaded, or -1 if loading failed
        """
        if self.sync.workflow.is_active:
            self.sync.cancel_resolution()

        try:
            count = await self.store.load(document_ref)
        except PersistenceError as e:
            self.error_occurred.emit(f"Failed to load annotations: {e}")
            return -1

        self._refresh()
        return count

    def place_mark(self, x: float, y: float, page: int = 1,
                   color: MarkColor = MarkColor.RED) -> Optional[Annotation]:
        """
        Place a coloured dot where the user clicked.

        Args:
            x: X coordinate in document units
            y: Y coordinate in document units
            page: 1-based page number
            color: Mark color

        Returns:
            The pending annotation, or None if it could not be placed
        """
        try:
            annotation = Annotation(
                document_ref=self.session.document_ref,
                owner=self.session.actor_id,
                x=x,
                y=y,
                kind=PointMark(color),
                page=page,
            )
            self.store.add(annotation)
        except ValidationError as e:
            self.error_occurred.emit(str(e))
            return None

        self._refresh()
        return annotation

    async def place_sticker(self, image: bytes, x: float, y: float,
                            width: float, height: float, page: int = 1,
                            content_type: str = "image/png") -> Optional[Annotation]:
        """
        Upload an image and place it as a pending sticker.

        Returns:
            The pending annotation, or None if upload or placement failed
        """
        if self.blobs is None:
            self.error_occurred.emit("No sticker storage is configured.")
            return None

        try:
            reference = await self.blobs.store(
                image, content_type,
                prefix=f"annotations/{self.session.document_ref}/{self.session.actor_id}-p{page}")
            annotation = Annotation(
                document_ref=self.session.document_ref,
                owner=self.session.actor_id,
                x=x,
                y=y,
                kind=Sticker(reference, width, height),
                page=page,
            )
            self.store.add(annotation)
        except ScoremarkError as e:
            self.error_occurred.emit(f"Failed to place sticker: {e}")
            return None

        self._refresh()
        return annotation

    def delete_annotation(self, annotation: Annotation) -> bool:
        """
        Delete an annotation (staged until the next save if it is saved).

        Returns:
            True if annotation was removed
        """
        if self._resolving():
            return False

        try:
            removed = self.store.remove(annotation)
        except AuthorizationError as e:
            self.error_occurred.emit(str(e))
            return False

        if removed:
            self._refresh()
        return removed

    def restore_annotation(self, annotation: Annotation) -> bool:
        """Take back a staged deletion."""
        if self._resolving():
            return False
        if self.store.restore_deletion(annotation):
            self._refresh()
            return True
        return False

    def undo(self) -> bool:
        """
        Undo the last annotation action.

        Returns:
            True if undo was successful
        """
        if self._resolving():
            return False
        if self.store.undo():
            self._refresh()
            return True
        return False

    def redo(self) -> bool:
        """
        Redo the last undone annotation action.

        Returns:
            True if redo was successful
        """
        if self._resolving():
            return False
        if self.store.redo():
            self._refresh()
            return True
        return False

    def can_undo(self) -> bool:
        """Check if undo is available."""
        return not self.sync.workflow.is_active and self.store.can_undo()

    def can_redo(self) -> bool:
        """Check if redo is available."""
        return not self.sync.workflow.is_active and self.store.can_redo()

    async def save(self) -> Optional[SaveResult]:
        """
        Save pending changes, or start conflict resolution.

        Returns:
            The save result, or None if the save failed
        """
        try:
            result = await self.sync.save()
        except ValidationError as e:
            self.notice.emit(str(e))
            return None
        except ScoremarkError as e:
            self.error_occurred.emit(f"Failed to save annotations: {e}")
            return None

        self._report(result)
        return result

    def allowed_actions(self, index: int) -> List[ResolutionAction]:
        """Resolution actions enabled for a presented conflict."""
        conflicts = self.sync.workflow.conflicts
        if not 0 <= index < len(conflicts):
            return []
        return self.sync.workflow.allowed_actions(conflicts[index])

    async def resolve_conflict(self, index: int,
                               action: ResolutionAction) -> Optional[SaveResult]:
        """
        Apply a decision to one conflict.

        Returns:
            The save result once the last conflict is resolved, otherwise None
        """
        try:
            result = await self.sync.resolve(index, action)
        except (AuthorizationError, ValidationError) as e:
            self.error_occurred.emit(str(e))
            return None
        except ScoremarkError as e:
            self.error_occurred.emit(f"Failed to save annotations: {e}")
            self._refresh()
            return None

        if result is not None:
            self._report(result)
        return result

    def cancel_resolution(self) -> int:
        """
        Cancel the save and discard the conflicting new annotations.

        Returns:
            Number of annotations discarded
        """
        discarded = self.sync.cancel_resolution()
        if discarded:
            self.notice.emit(f"Save cancelled; discarded {len(discarded)} annotation(s).")
            self._refresh()
        return len(discarded)

    def start_detection(self, base_pdf: str, marked_pdf: str) -> DetectionWorker:
        """
        Detect markings in a background thread.

        Connect to the worker's ``finished_detection`` signal and pass the
        regions the user keeps to ``import_regions``.
        """
        if self._worker is not None and self._worker.isRunning():
            raise ValidationError("Detection is already running")

        logger.info("Detecting markings in %s against %s", marked_pdf, base_pdf)
        self._worker = DetectionWorker(self.detector, base_pdf, marked_pdf, self)
        self._worker.failed.connect(self.error_occurred.emit)
        self._worker.start()
        return self._worker

    async def export_pdf(self, source_pdf: str, output_pdf: str) -> ExportWorker:
        """
        Write a copy of the score with the visible annotations drawn on it.

        Sticker images are downloaded first; the drawing runs in a background
        thread. Connect to the worker's ``finished_export`` signal for the result.

        Args:
            source_pdf: Path to the score
            output_pdf: Path of the annotated copy (may be the score itself)
        """
        if self._export_worker is not None and self._export_worker.isRunning():
            raise ValidationError("An export is already running")

        annotations = self.store.annotations
        images = (await load_sticker_images(annotations, self.blobs)
                  if self.blobs is not None else {})

        logger.info("Exporting %d annotation(s) from %s to %s",
                    len(annotations), source_pdf, output_pdf)
        self._export_worker = ExportWorker(self.exporter, source_pdf, output_pdf,
                                           annotations, images, self)
        self._export_worker.finished_export.connect(self._on_export_finished)
        self._export_worker.start()
        return self._export_worker

    async def import_regions(self, regions: List[DetectedRegion]) -> int:
        """
        Add detected regions as pending stickers.

        Returns:
            Number of stickers added
        """
        if not regions:
            self.notice.emit("Please select at least one annotation to upload.")
            return 0
        if self.blobs is None:
            self.error_occurred.emit("No sticker storage is configured.")
            return 0

        added = await StickerImporter(self.store, self.blobs).import_regions(regions)
        if not added:
            self.error_occurred.emit("No annotations were successfully uploaded.")
            return 0

        self._refresh()
        return len(added)

    def render_items(self, page: Optional[int] = None) -> List[RenderItem]:
        """
        Annotations as the rendering surface should show them.

        Args:
            page: Restrict to one 1-based page, or None for all pages
        """
        annotations = (self.store.annotations if page is None
                       else self.store.annotations_for_page(page))
        return [self._render_item(ann) for ann in annotations]

    def timeline(self) -> List[TimelineEntry]:
        return build_timeline(self.store.persisted(), self.sync.roles,
                              self.session.document_ref)

    def _render_item(self, annotation: Annotation) -> RenderItem:
        is_mine = self.session.owns(annotation)
        if is_mine:
            style = "mine"
        elif (self.sync.roles.role_in_document(annotation.owner, annotation.document_ref)
              == Role.TEACHER):
            style = "teacher"
        else:
            style = "others"

        if isinstance(annotation.kind, Sticker):
            image_url = (self.blobs.public_url(annotation.kind.reference)
                         if self.blobs is not None else None)
        elif isinstance(annotation.kind, PointMark):
            image_url = None
        else:
            raise TypeError(f"Unknown annotation kind: {annotation.kind!r}")

        return RenderItem(
            annotation=annotation,
            is_mine=is_mine,
            style=style,
            can_delete=annotation.is_pending or self.session.can_delete(annotation),
            image_url=image_url,
        )

    def _resolving(self) -> bool:
        if self.sync.workflow.is_active:
            self.notice.emit("Finish resolving the conflicts first.")
            return True
        return False

    def _on_export_finished(self, success: bool, message: str) -> None:
        if success:
            self.notice.emit(message)
        else:
            self.error_occurred.emit(message)

    def _report(self, result: SaveResult) -> None:
        if result.status == SaveStatus.CONFLICTS:
            self.conflicts_detected.emit(result.conflicts)
        elif result.status == SaveStatus.NOTHING_TO_SAVE:
            self.notice.emit(result.message)
            self._refresh()
        else:
            self.save_finished.emit(result)
            self._refresh()

    def _refresh(self) -> None:
        items = self.render_items()
        if self.surface is not None:
            self.surface.render(items)
        self.annotations_changed.emit(items)
