"""Timezone utilities for EVV timestamps"""
from datetime import datetime, timezone
import pytz

# Display timezone for supervisors (handles DST automatically)
DEFAULT_LOCAL_TZ = "Europe/Paris"


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (how timestamps are stored)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def convert_to_local(dt: datetime | None, tz_name: str = DEFAULT_LOCAL_TZ) -> datetime | None:
    """
    Convert UTC naive datetime to a local timezone for API display.
    
    Args:
        dt: Naive datetime assumed to be in UTC, or None
        tz_name: pytz timezone name
        
    Returns:
        Naive datetime in the local timezone, or None if input is None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        utc_dt = pytz.utc.localize(dt)
        local_dt = utc_dt.astimezone(pytz.timezone(tz_name))
        return local_dt.replace(tzinfo=None)
    return dt


def to_naive_utc(dt: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values are assumed UTC already."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_utc(dt: datetime | None) -> str | None:
    """Serialize a UTC datetime as an ISO-8601 string with a Z suffix."""
    if dt is None:
        return None
    return to_naive_utc(dt).isoformat() + "Z"
