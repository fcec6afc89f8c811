"""Recurrence rules for templates.

A rule is pure data. Evaluation is calendar-relative and happens in
`matches`, which never does I/O.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import IntEnum, StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cadence.utils.calendar import LocalCalendar


class Weekday(IntEnum):
    """Calendar weekday: 1 = Sunday ... 7 = Saturday."""

    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @classmethod
    def of(cls, d: date) -> Weekday:
        # isoweekday: Monday=1 ... Sunday=7
        return cls(d.isoweekday() % 7 + 1)


class RecurrenceKind(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"


class RecurrenceRule(BaseModel):
    """When a template fires.

    Attributes:
        kind: none (single occurrence on start_date), daily or weekly
        start_date: Inclusive first day; defaults to the distant past
        end_date: Optional inclusive last day
        interval: Every N days/weeks; values below 1 behave as 1
        weekdays: Days of the week a weekly rule fires on
    """

    model_config = ConfigDict(frozen=True)

    kind: RecurrenceKind
    start_date: date = date.min
    end_date: date | None = None
    interval: int = 1
    weekdays: frozenset[Weekday] = Field(default_factory=frozenset)

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _reduce_to_date(cls, value: object) -> object:
        """Reduce a naive local datetime to its day.

        Aware datetimes are rejected: their own zone can put them on a
        different day than the calendar the rule is evaluated in.
        """
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                raise ValueError("rule dates must be local dates or naive datetimes")
            return value.date()
        return value

    @property
    def effective_interval(self) -> int:
        return max(self.interval, 1)

    def matches(self, day: date | datetime, calendar: LocalCalendar | None = None) -> bool:
        """Whether the rule fires on the local day containing `day`."""
        return matches(self, day, calendar)


def matches(rule: RecurrenceRule, day: date | datetime, calendar: LocalCalendar | None = None) -> bool:
    """Decide whether `rule` fires on `day` in the given calendar.

    Args:
        rule: Rule to evaluate
        day: Any instant (or date) within the day being tested
        calendar: Local calendar; defaults to the configured one

    Returns:
        True if the template should produce an instance that day
    """
    calendar = calendar or LocalCalendar.current()
    local_day = calendar.day_of(day)
    start = rule.start_date

    if local_day < start:
        return False
    if rule.end_date is not None and local_day > rule.end_date:
        return False

    if rule.kind == RecurrenceKind.NONE:
        return local_day == start

    if rule.kind == RecurrenceKind.DAILY:
        diff = calendar.days_between(start, local_day)
        return diff >= 0 and diff % rule.effective_interval == 0

    # weekly
    week_diff = calendar.weeks_between(start, local_day)
    if week_diff < 0 or week_diff % rule.effective_interval != 0:
        return False
    return Weekday.of(local_day) in rule.weekdays


def default_weekdays_for(start: date | datetime, calendar: LocalCalendar | None = None) -> frozenset[Weekday]:
    """Weekday set to use when a weekly rule is saved without any days.

    A weekly rule with no weekdays never fires, so callers building rules
    from user input fall back to the start date's weekday.
    """
    calendar = calendar or LocalCalendar.current()
    return frozenset({Weekday.of(calendar.day_of(start))})


def weekly_rule(
    start: date,
    weekdays: set[Weekday] | frozenset[Weekday] | None = None,
    *,
    interval: int = 1,
    end: date | None = None,
) -> RecurrenceRule:
    """Build a weekly rule, defaulting empty weekdays to the start's weekday."""
    days = frozenset(weekdays or ()) or default_weekdays_for(start)
    return RecurrenceRule(
        kind=RecurrenceKind.WEEKLY,
        start_date=start,
        end_date=end,
        interval=interval,
        weekdays=days,
    )
