"""Date and time utility functions."""

import time
from datetime import datetime, timezone
from typing import Protocol

UTC_TZ = timezone.utc


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(UTC_TZ)


def to_utc(dt: datetime) -> datetime:
    """
    Convert datetime to UTC.

    Args:
        dt: Datetime to convert (assumed UTC if no timezone)

    Returns:
        Datetime in UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC_TZ)
    return dt.astimezone(UTC_TZ)


def day_key(ts: float) -> str:
    """Get the UTC date key (YYYY-MM-DD) for an epoch timestamp."""
    return datetime.fromtimestamp(ts, UTC_TZ).strftime("%Y-%m-%d")


class Clock(Protocol):
    def now(self) -> float: ...


class SystemClock:
    """Wall clock returning epoch seconds."""

    def now(self) -> float:
        return time.time()


def format_duration(seconds: float) -> str:
    """
    Format seconds into human-readable duration.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted string (e.g., "4m 30s")
    """
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}s"

    minutes, remaining_secs = divmod(seconds, 60)
    if remaining_secs == 0:
        return f"{minutes}m"
    return f"{minutes}m {remaining_secs}s"
