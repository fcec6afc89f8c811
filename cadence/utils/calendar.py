"""Local calendar helpers.

All day arithmetic (start of day, whole days/weeks between two days,
weekday lookups, minute offsets) is done relative to one timezone: the
user's local calendar, not UTC.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class LocalCalendar:
    """Calendar bound to a timezone.

    Naive datetimes are treated as already local to this calendar.
    Aware datetimes are converted into the calendar's zone first.
    """

    tz: tzinfo = field(default=timezone.utc)

    @classmethod
    def current(cls) -> LocalCalendar:
        """Calendar for the configured local timezone."""
        from cadence.config.settings import settings

        if settings.timezone.upper() == "UTC":
            return cls.utc()
        return cls(tz=ZoneInfo(settings.timezone))

    @classmethod
    def utc(cls) -> LocalCalendar:
        return cls(tz=timezone.utc)

    def day_of(self, value: date | datetime) -> date:
        """Local calendar date of a date or datetime."""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                return value.date()
            return value.astimezone(self.tz).date()
        return value

    def start_of_day(self, value: date | datetime) -> datetime:
        """Aware local midnight of the day containing value."""
        return datetime.combine(self.day_of(value), time.min, tzinfo=self.tz)

    def add_minutes(self, start: datetime, minutes: int) -> datetime:
        """Add absolute minutes to an instant.

        Goes through UTC so DST transitions shift the wall clock instead of
        being ignored.
        """
        if start.tzinfo is None:
            start = start.replace(tzinfo=self.tz)
        return (start.astimezone(timezone.utc) + timedelta(minutes=minutes)).astimezone(self.tz)

    def add_days(self, value: date | datetime, days: int) -> date:
        return self.day_of(value) + timedelta(days=days)

    def days_between(self, start: date | datetime, end: date | datetime) -> int:
        """Whole days from start to end (negative when end is earlier)."""
        return (self.day_of(end) - self.day_of(start)).days

    def weeks_between(self, start: date | datetime, end: date | datetime) -> int:
        """Whole weeks elapsed from start to end.

        Truncates toward zero, so a day earlier than start inside the first
        week still reports 0 weeks.
        """
        days = self.days_between(start, end)
        weeks = abs(days) // 7
        return weeks if days >= 0 else -weeks
