"""
Time utilities for omo-quota.

All internal timestamps are timezone-aware UTC; tracker timestamps are
millisecond ISO strings with a trailing "Z". Conversion to the configured
timezone happens only for display.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytz

from omoquota.core.config import get_settings

_INTERVAL_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([mhd])\s*$", re.IGNORECASE)
_INTERVAL_UNITS = {"m": "minutes", "h": "hours", "d": "days"}


def get_timezone() -> pytz.BaseTzInfo:
    """Get configured timezone."""
    settings = get_settings()
    return pytz.timezone(settings.timezone)


def now_utc() -> datetime:
    """Get current UTC time."""
    return datetime.now(timezone.utc)


def to_local(dt: datetime) -> datetime:
    """Convert datetime to configured timezone."""
    tz = get_timezone()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz)


def format_timestamp(dt: Optional[datetime] = None, fmt: str = "display") -> str:
    """
    Format datetime to string in the configured timezone.

    Args:
        dt: Datetime to format. Uses current time if not provided.
        fmt: Format type - 'display', 'date', 'time', 'month'

    Returns:
        Formatted string
    """
    if dt is None:
        dt = now_utc()

    formats = {
        "display": "%Y-%m-%d %H:%M:%S",
        "date": "%Y-%m-%d",
        "time": "%H:%M:%S",
        "month": "%Y-%m",
    }

    return to_local(dt).strftime(formats.get(fmt, fmt))


def to_iso(dt: datetime) -> str:
    """Serialize to the tracker's timestamp format, e.g. 2024-01-31T14:30:00.000Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(s: str) -> datetime:
    """
    Parse a tracker timestamp.

    Accepts a trailing "Z" and naive values (taken as UTC).

    Raises:
        ValueError: If the string is not an ISO-8601 timestamp
    """
    if not isinstance(s, str):
        raise ValueError(f"Timestamp must be a string, got {type(s).__name__}")
    text = s.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_interval(s: str) -> timedelta:
    """
    Parse a reset interval such as "5h", "30m" or "1d".

    Raises:
        ValueError: If the interval is not recognized or not positive
    """
    match = _INTERVAL_RE.match(s or "")
    if not match:
        raise ValueError(f"Invalid reset interval: {s!r}")
    amount = float(match.group(1))
    if amount <= 0:
        raise ValueError(f"Reset interval must be positive: {s!r}")
    return timedelta(**{_INTERVAL_UNITS[match.group(2).lower()]: amount})


def hours_ago(n: float, from_dt: Optional[datetime] = None) -> datetime:
    """Get datetime n hours ago."""
    base = from_dt or now_utc()
    return base - timedelta(hours=n)


def current_month(dt: Optional[datetime] = None) -> str:
    """YYYY-MM of the given (or current) time in the configured timezone."""
    return format_timestamp(dt, "month")
