from datetime import datetime
from typing import Optional, Union
import logging
import math
import pytz

UTC = pytz.UTC
DEFAULT_TIMEZONE = "UTC"
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

logger = logging.getLogger(__name__)

def utc_now() -> datetime:
    """Get current time in UTC"""
    return datetime.now(UTC)

def ensure_utc(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Parse an ISO string or datetime into an aware UTC datetime.

    Naive values are stored instants and are read as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return UTC.localize(value)
    return value.astimezone(UTC)

def is_valid_timezone(name: Optional[str]) -> bool:
    if not name:
        return False
    try:
        pytz.timezone(name)
        return True
    except pytz.UnknownTimeZoneError:
        return False

def get_zone(name: Optional[str]):
    """Resolve an IANA zone name, falling back to UTC"""
    try:
        return pytz.timezone(name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone {name!r}, displaying in UTC")
        return UTC

def convert_to_zone(utc_time: datetime, tz_name: Optional[str]) -> datetime:
    """Convert a UTC instant to the given zone for display"""
    return ensure_utc(utc_time).astimezone(get_zone(tz_name))

def format_time_for_display(dt: Optional[datetime], tz_name: Optional[str] = None) -> str:
    """Format datetime for display"""
    if dt is None:
        return "Not scheduled"
    return convert_to_zone(dt, tz_name).strftime("%b %d, %Y %I:%M %p %Z")

def minutes_between(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 60

def minutes_until(target: datetime, now: datetime) -> int:
    """Whole minutes until target, rounded up"""
    return math.ceil(minutes_between(now, target))

def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"

def describe_time_until(minutes: int) -> str:
    """Human readable countdown used in availability messages"""
    if minutes <= 0:
        return "Starting now"
    if minutes < 60:
        return f"Starts in {_plural(minutes, 'minute')}"

    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"Starts in {_plural(hours, 'hour')}"
    return f"Starts in {_plural(hours, 'hour')} {_plural(remaining, 'minute')}"
