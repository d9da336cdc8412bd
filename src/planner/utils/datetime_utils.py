"""
Datetime Utilities

Instant parsing and formatting for the event wire format.
All instants inside the scheduler are timezone-aware UTC datetimes.
"""
from datetime import datetime, timezone
from typing import Optional, Union

from dateutil.parser import isoparse


def utc_now() -> datetime:
    """Current instant as aware UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are read as UTC."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_instant(value: Union[str, datetime, None], field_name: str = "instant") -> Optional[datetime]:
    """
    Parse an ISO-8601 string (or datetime) into an aware UTC datetime.

    Accepts the JSON shapes produced by the web client, e.g.
    "2024-01-31T10:00:00.000Z". Returns None for None/empty input.

    Raises:
        ValueError: if the value is not a valid ISO-8601 instant
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid {field_name}: expected ISO string, got {type(value).__name__}")
    try:
        parsed = isoparse(value.strip())
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid {field_name} '{value}': {e}") from e
    return ensure_utc(parsed)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Format an instant the way the web client does (UTC, millis, 'Z')"""
    if value is None:
        return None
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
