"""
Tests for the annotation model and its table-row format.
"""
from datetime import datetime, timezone

import pytest

from scoremark.core.annotations import Annotation, AnnotationType, MarkColor, PointMark, Sticker
from scoremark.core.errors import ValidationError


class TestAnnotation:

    def test_new_annotation_is_pending(self):
        ann = Annotation("piece-1", "s1", 10, 20)
        assert ann.is_pending
        assert ann.key == ann.local_id
        assert ann.kind == PointMark(MarkColor.RED)
        assert ann.page == 1

    def test_with_identity_keeps_local_id_and_sets_key(self):
        ann = Annotation("piece-1", "s1", 10, 20)
        saved = ann.with_identity("row-7", datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert not saved.is_pending
        assert saved.key == "row-7"
        assert saved.local_id == ann.local_id
        assert ann.is_pending

    def test_local_id_not_part_of_equality(self):
        a = Annotation("piece-1", "s1", 10, 20)
        b = Annotation("piece-1", "s1", 10, 20)
        assert a.local_id != b.local_id
        assert a == b

    def test_distance_is_euclidean(self):
        a = Annotation("piece-1", "s1", 0, 0)
        b = Annotation("piece-1", "s1", 3, 4)
        assert a.distance_to(b) == pytest.approx(5.0)

    @pytest.mark.parametrize("kwargs", [
        {"document_ref": ""},
        {"x": float("nan")},
        {"y": float("inf")},
        {"page": 0},
    ])
    def test_invalid_fields_rejected(self, kwargs):
        values = {"document_ref": "piece-1", "owner": "s1", "x": 1.0, "y": 1.0}
        values.update(kwargs)
        with pytest.raises(ValidationError):
            Annotation(**values)

    def test_sticker_needs_reference(self):
        with pytest.raises(ValidationError):
            Sticker("")

    def test_sticker_size_not_negative(self):
        with pytest.raises(ValidationError):
            Sticker("a.png", width=-1)


class TestRowFormat:

    def test_dot_row(self):
        ann = Annotation("piece-1", "s1", 12.5, 40, PointMark(MarkColor.GREEN), page=3)
        row = ann.to_dict()
        assert row["piece_id"] == "piece-1"
        assert row["created_by"] == "s1"
        assert row["type"] == "dot"
        assert row["color"] == "green"
        assert row["sticker_url"] is None
        assert row["page"] == 3
        assert "id" not in row
        assert "created_at" not in row

    def test_sticker_row_keeps_reference_not_url(self):
        ann = Annotation("piece-1", "s1", 1, 2, Sticker("annotations/p/x.png", 40, 20),
                         auto_detected=True)
        row = ann.to_dict()
        assert row["type"] == "sticker"
        assert row["sticker_url"] == "annotations/p/x.png"
        assert row["width"] == 40
        assert row["color"] is None
        assert row["auto_detected"] is True

    def test_from_row(self):
        ann = Annotation.from_dict({
            "id": 42,
            "piece_id": "piece-1",
            "created_by": "t1",
            "x": "10.5",
            "y": 20,
            "page": "2",
            "type": "sticker",
            "sticker_url": "a/b.png",
            "width": 30,
            "height": 15,
            "created_at": "2024-03-01T10:00:00Z",
        })
        assert ann.identity == "42"
        assert ann.x == 10.5
        assert ann.page == 2
        assert ann.annotation_type == AnnotationType.STICKER
        assert ann.kind == Sticker("a/b.png", 30.0, 15.0)
        assert ann.created_at == datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)

    def test_missing_page_defaults_to_first(self):
        ann = Annotation.from_dict({"id": "r1", "piece_id": "p", "created_by": "s1",
                                    "x": 1, "y": 2, "type": "dot", "color": "blue"})
        assert ann.page == 1
        assert ann.kind == PointMark(MarkColor.BLUE)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            Annotation.from_dict({"piece_id": "p", "created_by": "s1", "x": 1, "y": 2,
                                  "type": "arrow"})

    def test_unknown_color_rejected(self):
        with pytest.raises(ValidationError):
            Annotation.from_dict({"piece_id": "p", "created_by": "s1", "x": 1, "y": 2,
                                  "type": "dot", "color": "pink"})

    def test_missing_column_rejected(self):
        with pytest.raises(ValidationError):
            Annotation.from_dict({"piece_id": "p", "x": 1, "y": 2, "type": "dot"})

    def test_saved_row_survives_decoding(self):
        ann = Annotation("piece-1", "s1", 5, 6, PointMark(MarkColor.PURPLE), page=4)
        saved = ann.with_identity("row-1", datetime(2024, 5, 2, 8, 30, tzinfo=timezone.utc))
        assert Annotation.from_dict(saved.to_dict()) == saved
