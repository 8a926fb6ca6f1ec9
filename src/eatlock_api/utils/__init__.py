"""Utility functions."""

from .dates import Clock, SystemClock, day_key, format_duration, to_utc, utc_now

__all__ = ["Clock", "SystemClock", "day_key", "format_duration", "to_utc", "utc_now"]
