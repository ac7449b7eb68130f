"""Timestamp helpers for window arithmetic.

All functions return timezone-aware UTC datetimes. Indexer timestamps come
back as naive ISO strings and are interpreted as UTC.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

__all__ = [
    "parse_to_utc",
    "try_parse_to_utc",
    "utc_now",
    "start_of_utc_day",
]


def parse_to_utc(timestamp: Any) -> datetime:
    """Parse a timestamp into a UTC-aware datetime.

    Supported inputs:
    - ISO 8601 strings, with or without offset (``"2024-05-01T10:00:00.123456"``,
      ``"2024-05-01T10:00:00Z"``)
    - Numeric seconds or milliseconds since the UNIX epoch
    - datetime instances (naive assumed as UTC)

    Raises:
        ValueError: If the input cannot be parsed into a datetime.
    """
    if isinstance(timestamp, datetime):
        if timestamp.tzinfo is None:
            return timestamp.replace(tzinfo=timezone.utc)
        return timestamp.astimezone(timezone.utc)

    if isinstance(timestamp, bool):
        raise ValueError(f"Unsupported timestamp value: {timestamp!r}")

    if isinstance(timestamp, (int, float)):
        value = float(timestamp)
        # values >= 1e12 are milliseconds
        if abs(value) >= 1_000_000_000_000:
            value /= 1000.0
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(
                f"Numeric timestamp out of valid range: {timestamp}"
            ) from exc

    if isinstance(timestamp, str):
        s = timestamp.strip()
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError as exc:
            raise ValueError(
                f"Unsupported timestamp string format: {timestamp}"
            ) from exc
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    raise ValueError(
        f"Unsupported timestamp type: {type(timestamp).__name__}. "
        "Expected ISO 8601 string, numeric seconds/milliseconds, or datetime."
    )


def try_parse_to_utc(timestamp: Any) -> Optional[datetime]:
    """Like ``parse_to_utc`` but returns None for missing or malformed input."""
    if timestamp is None:
        return None
    try:
        return parse_to_utc(timestamp)
    except ValueError:
        return None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_utc_day(moment: datetime, days_back: int = 0) -> datetime:
    """Return UTC midnight of ``moment``'s calendar date minus ``days_back`` days."""
    day = parse_to_utc(moment).date() - timedelta(days=days_back)
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
