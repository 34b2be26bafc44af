"""Reversible JSON serialization for cache entries.

datetime and date values are tagged so they survive a round trip:
    {"__type": "datetime", "value": "2025-08-15T17:30:00+00:00"}
"""

import json
from datetime import date, datetime
from typing import Any

from fpl_sync.errors import CacheError, ErrorKind


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"__type": "datetime", "value": value.isoformat()}
    if isinstance(value, date):
        return {"__type": "date", "value": value.isoformat()}
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _decode(obj: dict[str, Any]) -> Any:
    tag = obj.get("__type")
    if tag == "datetime":
        return datetime.fromisoformat(obj["value"])
    if tag == "date":
        return date.fromisoformat(obj["value"])
    return obj


def serialize(value: Any) -> str:
    """Serialize a value (usually a record dict) to a JSON string.

    Raises:
        CacheError: kind CACHE_SERIALIZATION if the value cannot be encoded
    """
    try:
        return json.dumps(value, default=_encode, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise CacheError(ErrorKind.CACHE_SERIALIZATION, "Failed to serialize cache value", cause=e) from e


def deserialize(raw: str) -> Any:
    """Deserialize a JSON string produced by serialize().

    Raises:
        CacheError: kind CACHE_DESERIALIZATION on malformed input
    """
    try:
        return json.loads(raw, object_hook=_decode)
    except (TypeError, ValueError, KeyError) as e:
        raise CacheError(
            ErrorKind.CACHE_DESERIALIZATION,
            "Failed to deserialize cache value",
            details={"raw": raw[:200] if isinstance(raw, str) else repr(raw)},
            cause=e,
        ) from e
