import json

import pytest

from smolcode.schema import SchemaError, deserialize_tool_schema, normalize_schema


@pytest.mark.parametrize("raw", [b"", b"null", None, ""])
def test_empty_schema_is_empty_object(raw):
    assert deserialize_tool_schema(raw) == {"type": "OBJECT", "properties": {}}


def test_size_limits_become_strings():
    schema = deserialize_tool_schema(
        json.dumps({"type": "string", "minLength": 1, "maxLength": 10})
    )
    assert schema["minLength"] == "1"
    assert schema["maxLength"] == "10"


def test_float_limits_are_truncated():
    data = normalize_schema({"type": "array", "maxItems": 3.7})
    assert data["maxItems"] == "3"


def test_other_numeric_keys_untouched():
    data = normalize_schema({"type": "number", "minimum": 5, "maximum": 9})
    assert data["minimum"] == 5 and data["maximum"] == 9


def test_unsupported_string_format_removed():
    data = normalize_schema({"type": "string", "format": "uri"})
    assert "format" not in data


@pytest.mark.parametrize("fmt", ["enum", "date-time"])
def test_supported_string_format_kept(fmt):
    data = normalize_schema({"type": "string", "format": fmt})
    assert data["format"] == fmt


def test_format_on_non_string_kept():
    data = normalize_schema({"type": "integer", "format": "int64"})
    assert data["format"] == "int64"


def test_nested_properties_and_lists_normalized():
    raw = {
        "type": "object",
        "properties": {
            "name": {"type": "string", "format": "email", "maxLength": 20},
            "tags": {"type": "array", "minItems": 0, "items": {"type": "string"}},
        },
        "anyOf": [{"type": "string", "format": "hostname", "minLength": 2}],
    }
    data = deserialize_tool_schema(json.dumps(raw).encode())
    assert data["properties"]["name"] == {"type": "string", "maxLength": "20"}
    assert data["properties"]["tags"]["minItems"] == "0"
    assert data["anyOf"][0] == {"type": "string", "minLength": "2"}


def test_normalize_returns_same_object():
    data = {"type": "object"}
    assert normalize_schema(data) is data


def test_invalid_json_raises():
    with pytest.raises(SchemaError):
        deserialize_tool_schema(b"{not json")


def test_non_object_raises():
    with pytest.raises(SchemaError):
        deserialize_tool_schema(b"[1, 2]")