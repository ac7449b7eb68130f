"""Text encoding of attribute values with an explicit type tag.

Attribute values are stored as text next to a ``value_type`` column, so
``"30"`` tagged ``integer`` and ``"30"`` tagged ``string`` stay distinct.
"""

from __future__ import annotations

import json
from typing import Any, NamedTuple, Optional, Tuple

__all__ = [
    "VALUE_TYPES",
    "TypedValue",
    "encode_value",
    "decode_value",
    "infer_value_type",
]

VALUE_TYPES = ("null", "boolean", "integer", "float", "string", "array", "object")


class TypedValue(NamedTuple):
    value: Any
    value_type: str


def infer_value_type(value: Any) -> str:
    # bool is a subclass of int
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    raise TypeError(f"Unsupported attribute value type: {type(value).__name__}")


def encode_value(value: Any) -> Tuple[Optional[str], str]:
    """Return ``(text, value_type)`` for storage."""
    value_type = infer_value_type(value)
    if value_type == "null":
        return None, value_type
    if value_type == "boolean":
        return ("true" if value else "false"), value_type
    if value_type == "integer":
        return str(value), value_type
    if value_type == "float":
        return repr(float(value)), value_type
    if value_type == "string":
        return value, value_type
    return json.dumps(list(value) if value_type == "array" else value), value_type


def decode_value(text: Optional[str], value_type: str) -> TypedValue:
    """Rebuild a TypedValue from its stored text and tag.

    Raises:
        ValueError: For an unknown tag or a payload that does not match it.
    """
    if value_type not in VALUE_TYPES:
        raise ValueError(f"Unknown attribute value type: {value_type!r}")
    if value_type == "null" or text is None:
        return TypedValue(None, value_type)
    if value_type == "boolean":
        if text not in ("true", "false"):
            raise ValueError(f"Invalid boolean payload: {text!r}")
        return TypedValue(text == "true", value_type)
    if value_type == "integer":
        return TypedValue(int(text), value_type)
    if value_type == "float":
        return TypedValue(float(text), value_type)
    if value_type == "string":
        return TypedValue(text, value_type)
    decoded = json.loads(text)
    expected = list if value_type == "array" else dict
    if not isinstance(decoded, expected):
        raise ValueError(f"Payload does not match type {value_type!r}: {text!r}")
    return TypedValue(decoded, value_type)
