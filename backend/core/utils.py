"""
Utility functions for the commerce automation engine.

Includes:
- UTC datetime helpers
- Deterministic hashing for idempotency keys
- Dotted-path lookups into nested payloads
- Chunking for batch sends
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence, TypeVar

T = TypeVar("T")

_MISSING = object()


def utc_now_naive() -> datetime:
    """Return the current UTC time as a naive datetime.

    Timestamp columns store naive UTC, so every comparison against them
    must be naive UTC as well.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from an upstream payload into naive UTC.

    Returns None for empty or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    try:
        text = str(value).replace("Z", "+00:00")
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def stable_hash(*parts: Any) -> str:
    """sha256 over a canonical rendering of the given parts."""
    canonical = "|".join(
        part if isinstance(part, str) else json.dumps(part, sort_keys=True, default=str)
        for part in parts
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def lookup_path(data: Any, path: str) -> Any:
    """Resolve a dot-notation path like ``order.customer.email``.

    List elements can be addressed by index (``line_items.0.title``).
    Returns the module sentinel when any segment is absent.
    """
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def is_missing(value: Any) -> bool:
    return value is _MISSING


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def to_float(value: Any) -> Optional[float]:
    """Coerce numbers and numeric strings to float, else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None
