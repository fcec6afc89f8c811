"""Timezone utility functions for storage datetimes.

Central helper for timezone operations:
- Datetimes are stored as naive UTC
- Callers work with aware datetimes in their local calendar
"""

from datetime import datetime, timezone

from cadence.utils.calendar import LocalCalendar


def to_utc(dt: datetime) -> datetime:
    """Convert datetime to UTC.

    Args:
        dt: Datetime (timezone-aware or naive)

    Returns:
        Datetime in UTC timezone
    """
    if dt.tzinfo is None:
        # Assume UTC if naive
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_storage(dt: datetime | None) -> datetime | None:
    """Convert an aware datetime to the naive UTC form used by the database.

    Naive input is assumed to already be UTC.
    """
    if dt is None:
        return None
    return to_utc(dt).replace(tzinfo=None)


def from_storage(dt: datetime | None, calendar: LocalCalendar) -> datetime | None:
    """Convert a stored naive UTC datetime to an aware datetime in the calendar's zone."""
    if dt is None:
        return None
    return to_utc(dt).astimezone(calendar.tz)


def utc_now() -> datetime:
    """Current time as naive UTC, matching the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
