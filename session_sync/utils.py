"""Shared time helpers.

All timestamps inside the library are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current wall-clock time of this device, in UTC."""
    return datetime.now(UTC)


def to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime as ISO 8601 UTC, passing None through."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: object) -> datetime:
    """Parse an ISO 8601 string or numeric epoch seconds.

    Raises:
        ValueError: If the value is neither
    """
    # bool is an int subclass
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    if isinstance(value, str):
        return ensure_utc(datetime.fromisoformat(value))
    raise ValueError(f"Not a timestamp: {value!r}")


def parse_optional_timestamp(value: object) -> datetime | None:
    """Like parse_timestamp, but None stays None."""
    if value is None:
        return None
    return parse_timestamp(value)
