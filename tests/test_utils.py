"""Tests for helpers and the lenient JSON codecs."""

import datetime

import pytest

from kanban_store.storage.json_codec import (JsonList, decode_checklist_row,
                                             decode_json_object)
from kanban_store.utils import (decode_setting_value, encode_setting_value,
                                parse_iso, to_iso,
                                validate_safe_path_component)


class TestTimestamps:
    """Tests for ISO-8601 helpers."""

    def test_to_iso_uses_client_format(self):
        value = datetime.datetime(2024, 3, 1, 8, 0, 5, 123456, tzinfo=datetime.timezone.utc)
        assert to_iso(value) == "2024-03-01T08:00:05.123Z"

    def test_naive_is_utc(self):
        assert to_iso(datetime.datetime(2024, 3, 1)) == "2024-03-01T00:00:00.000Z"

    def test_parse_iso_accepts_z(self):
        parsed = parse_iso("2024-03-01T10:00:00Z")
        assert parsed == datetime.datetime(2024, 3, 1, 10, tzinfo=datetime.timezone.utc)

    def test_parse_iso_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_iso("next week")


class TestSafePathComponent:
    """Tests for validate_safe_path_component."""

    @pytest.mark.parametrize("value", ["n1", "note_2", "550e8400-e29b-41d4-a716-446655440000"])
    def test_accepts_ids(self, value):
        assert validate_safe_path_component(value) == value

    @pytest.mark.parametrize("value", ["", "..", "a/b", "a\\b", "a.b", "x y"])
    def test_rejects_unsafe(self, value):
        with pytest.raises(ValueError):
            validate_safe_path_component(value)


class TestSettingValues:
    def test_encode(self):
        assert encode_setting_value("tasks") == "tasks"
        assert encode_setting_value(6) == "6"
        assert encode_setting_value(False) == "false"
        assert encode_setting_value(None) == "null"

    def test_decode(self):
        assert decode_setting_value("tasks") == "tasks"
        assert decode_setting_value("6") == 6
        assert decode_setting_value("false") is False


class TestJsonCodec:
    """Tests for the lenient column decoders."""

    def test_json_list(self):
        assert JsonList.decode('["a", "b"]') == ["a", "b"]
        assert JsonList.decode(None) == []
        assert JsonList.decode("") == []
        assert JsonList.decode("{bad") == []
        assert JsonList.decode('{"a": 1}') == []
        assert JsonList(["x", 1, None, {"k": 1}]).strings() == ["x", "1"]
        assert JsonList(["a"]).encode() == '["a"]'

    def test_json_object(self):
        assert decode_json_object('{"id": "t1"}') == {"id": "t1"}
        assert decode_json_object("[1]") == {}
        assert decode_json_object("{bad") == {}
        assert decode_json_object(None) == {}

    def test_checklist_grouped_form(self):
        items = decode_checklist_row(
            "cl1", "Checklist",
            '[{"id": "i1", "text": "A", "completed": true}, {"text": "B"}, "junk"]',
            "t1",
        )
        assert items == [
            {"id": "i1", "text": "A", "completed": True},
            {"id": "cl1-1", "text": "B", "completed": False},
        ]

    def test_checklist_legacy_form(self):
        assert decode_checklist_row("x1", "Buy milk", '{"completed": true}', "t1") == [
            {"id": "x1", "text": "Buy milk", "completed": True},
        ]

    def test_checklist_malformed(self):
        assert decode_checklist_row("x1", "T", "[oops", "t1") == []
        assert decode_checklist_row("x1", "T", "42", "t1") == []
