"""JSON encoding of document data"""

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic_core import to_jsonable_python


def encode_value(value: Any) -> Any:
    """Convert a value to its stored JSON-compatible form.

    Datetimes are stored as fixed-width UTC ISO-8601 strings so that stored
    timestamps sort lexicographically. Naive datetimes are taken as UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat(timespec="microseconds")
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items()}
    if isinstance(value, list | tuple):
        return [encode_value(v) for v in value]
    return to_jsonable_python(value)


def dumps(value: Any) -> str:
    """Encode a value and serialize it to a JSON string"""
    return json.dumps(encode_value(value))


def loads(raw: str | None) -> Any:
    """Parse a stored JSON string"""
    if raw is None:
        return None
    return json.loads(raw)
