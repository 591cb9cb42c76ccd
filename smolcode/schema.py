"""Preparing JSON Schema tool parameter definitions for the model API."""

from __future__ import annotations

import json
from typing import Any

_INT_AS_STRING_KEYS = frozenset(
    {"minLength", "maxLength", "minItems", "maxItems", "minProperties", "maxProperties"}
)
_KEPT_STRING_FORMATS = frozenset({"enum", "date-time"})


class SchemaError(ValueError):
    """Raised when a tool schema cannot be decoded."""


def normalize_schema(data: dict[str, Any]) -> dict[str, Any]:
    """Adapt a schema object in place and return it.

    Size limits become decimal strings and string formats other than
    'enum' and 'date-time' are dropped, at every nesting level.
    """
    if data.get("type") == "string":
        fmt = data.get("format")
        if isinstance(fmt, str) and fmt not in _KEPT_STRING_FORMATS:
            del data["format"]

    for key, value in list(data.items()):
        if (
            key in _INT_AS_STRING_KEYS
            and isinstance(value, (int, float))
            and not isinstance(value, bool)
        ):
            data[key] = str(int(value))
        if isinstance(value, dict):
            normalize_schema(value)
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, dict):
                    normalize_schema(item)
    return data


def deserialize_tool_schema(json_bytes: bytes | str | None) -> dict[str, Any]:
    """Decode a JSON schema and normalize it; empty or null gives an empty object schema."""
    if isinstance(json_bytes, bytes):
        text = json_bytes.decode("utf-8")
    else:
        text = json_bytes or ""
    if not text or text == "null":
        return {"type": "OBJECT", "properties": {}}
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise SchemaError(
            f"DeserializeToolSchema: error unmarshalling to raw map: {exc}"
        ) from exc
    if data is None:
        return {"type": "OBJECT", "properties": {}}
    if not isinstance(data, dict):
        raise SchemaError(
            "DeserializeToolSchema: error unmarshalling to raw map: "
            f"expected a JSON object, got {type(data).__name__}"
        )
    return normalize_schema(data)