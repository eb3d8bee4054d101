"""
Time parsing and timezone normalization.

Business locations carry an IANA timezone; customers may book from another one.
Every timestamp handled here is timezone-aware so comparisons across the two never
mix naive and aware datetimes.
"""

from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def is_valid_timezone(name: str | None) -> bool:
    """True if `name` is a resolvable IANA timezone identifier."""
    if not name or not isinstance(name, str):
        return False
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return False
    return True


def ensure_tz(dt: datetime, timezone: str) -> datetime:
    """Ensure `dt` has tzinfo; attach `timezone` if naive."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=ZoneInfo(timezone))
    return dt


def parse_datetime(value: str, timezone: str) -> datetime:
    """Parse ISO-8601 datetime string and ensure tzinfo is present.

    Accepts a trailing `Z`; naive values are interpreted in `timezone`.
    """
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    return ensure_tz(dt, timezone)


def convert_timezone(dt: datetime, *, to_timezone: str, from_timezone: str = "UTC") -> datetime:
    """Express `dt` in `to_timezone`; a naive `dt` is read as `from_timezone`."""
    if not is_valid_timezone(to_timezone):
        raise ValueError(f"Unknown timezone: {to_timezone}")
    if not is_valid_timezone(from_timezone):
        raise ValueError(f"Unknown timezone: {from_timezone}")
    return ensure_tz(dt, from_timezone).astimezone(ZoneInfo(to_timezone))
