"""Time Utilities - UTC timestamps, calendar days and formatting"""
from datetime import date, datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser


ONE_DAY = timedelta(days=1)


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to an aware UTC datetime

    Naive values (as returned by MongoDB without tz_aware) are assumed UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def day_of(dt: datetime) -> date:
    """UTC calendar day of a datetime"""
    return ensure_utc(dt).date()


def same_day(a: datetime, b: datetime) -> bool:
    """Whether two instants fall on the same UTC calendar day"""
    return day_of(a) == day_of(b)


def calendar_days_between(start: datetime, end: datetime) -> int:
    """
    Whole calendar days from start to end

    Returns:
        Positive if end is on a later day, negative if earlier, 0 on the same day
    """
    return (day_of(end) - day_of(start)).days


def elapsed_days(start: datetime, end: datetime) -> float:
    """Exact elapsed time from start to end, in (fractional) days"""
    return (ensure_utc(end) - ensure_utc(start)) / ONE_DAY
