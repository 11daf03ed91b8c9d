"""
Tests for the Qt-facing annotation controller and its signals.
"""
import asyncio

import fitz
import pytest

from scoremark.controllers import AnnotationController
from scoremark.core.annotations import MarkColor, PointMark, Sticker
from scoremark.core.conflicts import ResolutionAction
from scoremark.core.export.worker import ExportWorker
from scoremark.core.sync import SaveStatus

from conftest import OTHER_STUDENT, PIECE, STUDENT, TEACHER, RecordingSurface


class SignalRecorder:
    def __init__(self, controller):
        self.changed = []
        self.conflicts = []
        self.notices = []
        self.errors = []
        self.saved = []
        controller.annotations_changed.connect(self.changed.append)
        controller.conflicts_detected.connect(self.conflicts.append)
        controller.notice.connect(self.notices.append)
        controller.error_occurred.connect(self.errors.append)
        controller.save_finished.connect(self.saved.append)


@pytest.fixture
def make_controller(make_sync, blobs):
    def _make(actor):
        surface = RecordingSurface()
        controller = AnnotationController(make_sync(actor), blobs=blobs, surface=surface)
        recorder = SignalRecorder(controller)
        assert asyncio.run(controller.open_document(PIECE)) >= 0
        return controller, recorder, surface
    return _make


class TestEditing:

    def test_place_mark_renders_pending_item(self, make_controller):
        controller, signals, surface = make_controller(STUDENT)

        ann = controller.place_mark(10, 20, page=2, color=MarkColor.BLUE)

        assert ann.kind == PointMark(MarkColor.BLUE)
        item = signals.changed[-1][0]
        assert item.annotation == ann
        assert item.is_mine
        assert item.style == "mine"
        assert item.can_delete
        assert surface.renders[-1] == signals.changed[-1]

    def test_place_mark_invalid_page_reports_error(self, make_controller):
        controller, signals, _ = make_controller(STUDENT)

        assert controller.place_mark(10, 20, page=0) is None
        assert signals.errors

    def test_render_styles(self, make_controller, repository):
        repository.seed(PIECE, TEACHER, 10, 10)
        repository.seed(PIECE, OTHER_STUDENT, 100, 100, page=2)
        controller, _, _ = make_controller(STUDENT)

        items = controller.render_items()

        assert [item.style for item in items] == ["teacher", "others"]
        assert not any(item.can_delete for item in items)
        assert [item.annotation.page for item in controller.render_items(page=2)] == [2]

    def test_delete_others_annotation_reports_error(self, make_controller, repository):
        saved = repository.seed(PIECE, OTHER_STUDENT, 10, 10)
        controller, signals, _ = make_controller(STUDENT)

        assert not controller.delete_annotation(saved)

        assert signals.errors == ["You can only delete your own annotations."]
        assert controller.store.annotations == [saved]

    def test_delete_restore_undo_redo(self, make_controller, repository):
        saved = repository.seed(PIECE, STUDENT, 10, 10)
        controller, _, _ = make_controller(STUDENT)

        assert controller.delete_annotation(saved)
        assert controller.store.annotations == []
        assert controller.restore_annotation(saved)
        assert controller.store.annotations == [saved]
        assert controller.undo()
        assert controller.store.annotations == []
        assert controller.redo()
        assert controller.store.annotations == [saved]
        assert not controller.can_redo()

    def test_place_sticker_uploads_then_adds(self, make_controller, blobs):
        controller, signals, _ = make_controller(STUDENT)

        ann = asyncio.run(controller.place_sticker(b"png", 5, 6, 40, 20))

        assert isinstance(ann.kind, Sticker)
        assert ann.kind.reference in blobs.blobs
        item = signals.changed[-1][0]
        assert item.image_url == blobs.public_url(ann.kind.reference)


class TestSaving:

    def test_nothing_to_save_is_a_notice(self, make_controller):
        controller, signals, _ = make_controller(STUDENT)

        result = asyncio.run(controller.save())

        assert result.status == SaveStatus.NOTHING_TO_SAVE
        assert signals.notices == ["No changes to save."]
        assert signals.errors == []

    def test_save_emits_finished(self, make_controller):
        controller, signals, _ = make_controller(STUDENT)
        controller.place_mark(10, 10)

        asyncio.run(controller.save())

        assert len(signals.saved) == 1
        assert signals.saved[0].status == SaveStatus.SAVED
        assert not signals.changed[-1][0].annotation.is_pending

    def test_insert_failure_reported(self, make_controller, repository):
        controller, signals, _ = make_controller(STUDENT)
        controller.place_mark(10, 10)
        repository.fail_insert = True

        assert asyncio.run(controller.save()) is None

        assert signals.errors and "insert failed" in signals.errors[0]
        assert controller.store.has_unsaved_changes

    def test_conflict_flow_as_student(self, make_controller, repository):
        repository.seed(PIECE, TEACHER, 100, 100)
        controller, signals, _ = make_controller(STUDENT)
        controller.place_mark(110, 105)

        result = asyncio.run(controller.save())

        assert result.status == SaveStatus.CONFLICTS
        assert len(signals.conflicts[0]) == 1
        assert controller.allowed_actions(0) == [ResolutionAction.KEEP_EXISTING]
        assert controller.allowed_actions(3) == []

        assert asyncio.run(controller.resolve_conflict(0, ResolutionAction.KEEP_NEW)) is None
        assert signals.errors

        result = asyncio.run(controller.resolve_conflict(0, ResolutionAction.KEEP_EXISTING))
        assert result.status == SaveStatus.NOTHING_TO_SAVE
        assert controller.store.pending_new() == []

    def test_edits_blocked_while_resolving(self, make_controller, repository):
        theirs = repository.seed(PIECE, OTHER_STUDENT, 100, 100)
        controller, signals, _ = make_controller(STUDENT)
        new = controller.place_mark(110, 105)
        asyncio.run(controller.save())

        assert not controller.can_undo()
        assert not controller.undo()
        assert not controller.redo()
        assert not controller.delete_annotation(new)
        assert signals.notices[-1] == "Finish resolving the conflicts first."
        assert controller.store.pending_new() == [new]

        result = asyncio.run(controller.resolve_conflict(0, ResolutionAction.KEEP_NEW))

        assert result.status == SaveStatus.SAVED
        assert theirs.identity not in repository.rows

    def test_cancel_resolution(self, make_controller, repository):
        repository.seed(PIECE, TEACHER, 100, 100)
        controller, signals, _ = make_controller(STUDENT)
        controller.place_mark(110, 105)
        asyncio.run(controller.save())

        assert controller.cancel_resolution() == 1

        assert controller.store.pending_new() == []
        assert signals.notices[-1].startswith("Save cancelled")
        assert controller.cancel_resolution() == 0

    def test_open_document_failure(self, make_controller, repository):
        controller, signals, _ = make_controller(STUDENT)
        repository.fail_select = True

        assert asyncio.run(controller.open_document("piece-2")) == -1
        assert signals.errors


class TestImport:

    def test_import_without_regions_is_a_notice(self, make_controller):
        controller, signals, _ = make_controller(STUDENT)

        assert asyncio.run(controller.import_regions([])) == 0
        assert signals.notices

    def test_timeline_lists_saved_annotations(self, make_controller, repository):
        repository.seed(PIECE, TEACHER, 10, 10)
        controller, _, _ = make_controller(STUDENT)

        timeline = controller.timeline()

        assert timeline[0].items[0].creator_name == "Ms. Teacher"


class TestExport:

    def test_export_draws_visible_annotations(self, make_controller, repository, blobs,
                                              tmp_path, monkeypatch):
        # Run the worker inline instead of on a thread
        monkeypatch.setattr(ExportWorker, "start", lambda worker: worker.run())
        score = tmp_path / "score.pdf"
        doc = fitz.open()
        doc.new_page(width=200, height=200)
        doc.save(str(score))
        doc.close()
        repository.seed(PIECE, TEACHER, 40, 40)
        controller, signals, _ = make_controller(STUDENT)
        controller.place_mark(120, 120)
        asyncio.run(controller.place_sticker(b"not an image", 10, 150, 20, 20))

        asyncio.run(controller.export_pdf(str(score), str(tmp_path / "out.pdf")))

        assert signals.notices[-1] == "Exported 2 annotation(s). 1 could not be drawn."
        assert (tmp_path / "out.pdf").exists()
