"""Field transforms applied by the store while writing a document"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from blogstore.serialization import encode_value


class FieldTransform:
    """
    Base class for field transforms.

    A transform is placed as a field value in ``set``, ``add`` or ``update``
    data and is resolved by the store against the field's current value while
    holding the document.
    """

    def apply(self, current: Any, now: datetime) -> Any:
        """
        Compute the new stored value.

        Args:
            current: Current stored value of the field, or None if missing
            now: Timestamp of the write

        Returns:
            The value to store (already encoded)
        """
        raise NotImplementedError


class ServerTimestamp(FieldTransform):
    """Set the field to the time of the write"""

    def apply(self, current: Any, now: datetime) -> Any:
        return encode_value(now)

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


class ArrayUnion(FieldTransform):
    """Append values not already present in the array field"""

    def __init__(self, *values: Any):
        self.values = [encode_value(v) for v in values]

    def apply(self, current: Any, now: datetime) -> Any:
        result = list(current) if isinstance(current, list) else []
        for value in self.values:
            if value not in result:
                result.append(value)
        return result

    def __repr__(self) -> str:
        return f"ArrayUnion({self.values!r})"


class ArrayRemove(FieldTransform):
    """Remove every occurrence of the values from the array field"""

    def __init__(self, *values: Any):
        self.values = [encode_value(v) for v in values]

    def apply(self, current: Any, now: datetime) -> Any:
        if not isinstance(current, list):
            return []
        return [item for item in current if item not in self.values]

    def __repr__(self) -> str:
        return f"ArrayRemove({self.values!r})"


SERVER_TIMESTAMP = ServerTimestamp()


def current_timestamp() -> datetime:
    """Get current UTC timestamp as a datetime object"""
    return datetime.now(UTC)


def apply_field_transforms(
    current: Mapping[str, Any], fields: Mapping[Any, Any], now: datetime | None = None
) -> dict[str, Any]:
    """Merge ``fields`` into a copy of ``current``, resolving transforms.

    Keys may be strings or schema fields. ``current`` must already hold
    encoded values; the result holds encoded values only.
    """
    now = now or current_timestamp()
    result = dict(current)
    for key, value in fields.items():
        name = str(key)
        if isinstance(value, FieldTransform):
            result[name] = value.apply(result.get(name), now)
        else:
            result[name] = encode_value(value)
    return result
