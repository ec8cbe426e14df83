"""Tests for RemoteObject decoding of page messages."""

import math

from chromate.tab.preview import (
    decode_preview_value,
    decode_remote_object,
    message_to_string,
    parse_json_or_raw,
    parse_preview,
    unmirror_array,
)


class TestParseJsonOrRaw:
    """Tests for the JSON-parse-or-raw rule."""

    def test_parses_json(self):
        """Valid JSON strings become native values."""
        assert parse_json_or_raw('{"event": "done", "data": [1, 2]}') == {"event": "done", "data": [1, 2]}

    def test_malformed_json_passes_through(self):
        """Malformed JSON is returned unchanged."""
        assert parse_json_or_raw('{"event": ') == '{"event": '

    def test_non_strings_unchanged(self):
        """Non-string inputs are not touched."""
        assert parse_json_or_raw(5) == 5
        assert parse_json_or_raw(None) is None


class TestDecodeRemoteObject:
    """Tests for decode_remote_object across RemoteObject shapes."""

    def test_string_json(self):
        """JSON strings (the preferred framing) are parsed."""
        remote = {"type": "string", "value": '{"event": "progress", "data": {"pct": 50}}'}

        assert decode_remote_object(remote) == {"event": "progress", "data": {"pct": 50}}

    def test_string_plain(self):
        """Plain strings stay strings."""
        assert decode_remote_object({"type": "string", "value": "hello"}) == "hello"

    def test_primitives(self):
        """Numbers and booleans keep their value, undefined becomes None."""
        assert decode_remote_object({"type": "number", "value": 42, "description": "42"}) == 42
        assert decode_remote_object({"type": "boolean", "value": True}) is True
        assert decode_remote_object({"type": "undefined"}) is None

    def test_unserializable_numbers(self):
        """NaN, Infinity and bigint come from unserializableValue."""
        assert math.isnan(decode_remote_object({"type": "number", "unserializableValue": "NaN"}))
        assert decode_remote_object({"type": "number", "unserializableValue": "-Infinity"}) == float("-inf")
        assert decode_remote_object({"type": "bigint", "unserializableValue": "12345678901234567890n"}) == 12345678901234567890

    def test_null(self):
        """null decodes to None."""
        assert decode_remote_object({"type": "object", "subtype": "null", "value": None}) is None

    def test_object_preview(self):
        """Objects decode from preview; only data gets the JSON rule."""
        remote = {
            "type": "object",
            "className": "Object",
            "preview": {
                "type": "object",
                "overflow": False,
                "properties": [
                    {"name": "event", "type": "string", "value": "progress"},
                    {"name": "data", "type": "string", "value": '{"a": 1}'},
                    {"name": "note", "type": "string", "value": '{"b": 2}'},
                ],
            },
        }

        assert decode_remote_object(remote) == {"event": "progress", "data": {"a": 1}, "note": '{"b": 2}'}

    def test_array_preview(self):
        """Arrays are rebuilt in index order with typed values."""
        remote = {
            "type": "object",
            "subtype": "array",
            "preview": {
                "properties": [
                    {"name": "1", "type": "string", "value": "two"},
                    {"name": "0", "type": "number", "value": "1"},
                    {"name": "2", "type": "boolean", "value": "true"},
                    {"name": "3", "type": "object", "subtype": "null", "value": "null"},
                    {"name": "4", "type": "object", "value": "Object"},
                    {"name": "length", "type": "number", "value": "5"},
                ]
            },
        }

        assert decode_remote_object(remote) == [1, "two", True, None, "Object"]

    def test_by_value_object(self):
        """returnByValue objects carry their own value."""
        assert decode_remote_object({"type": "object", "value": {"x": [1]}}) == {"x": [1]}

    def test_truncated_preview_never_raises(self):
        """Truncated preview values come back as the truncated text."""
        truncated = '{"items": [1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 12, 13, 14, 15, 16, 17, 18, 19, 20, 21, 22, 23…'
        remote = {
            "type": "object",
            "preview": {"overflow": True, "properties": [{"name": "data", "type": "string", "value": truncated}]},
        }

        assert decode_remote_object(remote) == {"data": truncated}

    def test_unknown_shapes_fall_back(self):
        """Unrecognized shapes return value or description."""
        assert decode_remote_object({"type": "function", "description": "function f() {}"}) == "function f() {}"
        assert decode_remote_object({"type": "object", "description": "Window"}) == "Window"
        assert decode_remote_object(None) is None


class TestPreviewHelpers:
    """Tests for the lower-level preview helpers."""

    def test_decode_preview_value_types(self):
        """Preview values are converted by declared type."""
        assert decode_preview_value({"type": "number", "value": "1.5"}) == 1.5
        assert decode_preview_value({"type": "number", "value": "-0"}) == 0
        assert decode_preview_value({"type": "boolean", "value": "false"}) is False
        assert decode_preview_value({"type": "undefined", "value": "undefined"}) is None
        assert decode_preview_value({"type": "string", "value": "s"}) == "s"

    def test_unmirror_array_empty(self):
        """Missing previews give an empty list."""
        assert unmirror_array(None) == []
        assert unmirror_array({"properties": []}) == []

    def test_parse_preview_skips_nameless(self):
        """Properties without a name are ignored."""
        assert parse_preview({"properties": [{"type": "string", "value": "x"}]}) == {}

    def test_message_to_string(self):
        """Console arguments render as one line."""
        args = [
            {"type": "string", "value": "count"},
            {"type": "number", "value": 3},
            {"type": "object", "description": "Object"},
            {"type": "undefined"},
        ]

        assert message_to_string(args) == "count 3 Object undefined"
