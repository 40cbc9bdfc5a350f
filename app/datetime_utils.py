"""
DateTime utility functions for the application.

All schedule arithmetic works on timezone-aware UTC datetimes. Naive values
(as returned by SQLite DateTime columns) are assumed to be UTC.
"""
from datetime import date, datetime, timedelta, timezone

SECONDS_PER_DAY = 86400


def ensure_utc(dt):
    """
    Normalize a datetime to timezone-aware UTC.

    Args:
        dt: datetime object or None

    Returns:
        datetime: aware datetime in UTC, or None if dt is None
    """
    if dt is None:
        return None

    # If dt is naive (no timezone), assume it's UTC
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_datetime(value):
    """
    Coerce a value into an aware UTC datetime.

    Accepts datetime and date objects and ISO 8601 strings (a trailing 'Z'
    is understood). Anything else, including unparseable strings, yields None.

    Args:
        value: datetime, date, ISO string, or None

    Returns:
        datetime or None
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return ensure_utc(datetime.fromisoformat(text.replace('Z', '+00:00')))
        except ValueError:
            return None

    return None


def to_naive_utc(dt):
    """Convert to a naive UTC datetime for storage."""
    if dt is None:
        return None
    return ensure_utc(dt).replace(tzinfo=None)


def to_iso(dt):
    """
    Format a datetime as ISO 8601 in UTC with a 'Z' suffix.
    Returns format like: "2024-03-01T00:00:00.000Z"
    """
    if dt is None:
        return None
    utc_dt = ensure_utc(dt)
    return utc_dt.strftime('%Y-%m-%dT%H:%M:%S.') + f"{utc_dt.microsecond // 1000:03d}Z"


def days_between(start, end):
    """
    Whole days from start to end, truncated toward zero.

    Negative when end is before start. Both arguments must be datetimes.
    """
    delta = ensure_utc(end) - ensure_utc(start)
    return int(delta.total_seconds() / SECONDS_PER_DAY)


def add_days(dt, days):
    """Shift a datetime by a whole number of days."""
    return ensure_utc(dt) + timedelta(days=days)


def format_axis_label(dt):
    """
    Format a datetime for a timeline axis header.
    Returns format like: "Mar 1, 2024"
    """
    if dt is None:
        return None
    utc_dt = ensure_utc(dt)
    return f"{utc_dt:%b} {utc_dt.day}, {utc_dt.year}"
