"""Root conftest for all tests.

This file makes shared fixtures available across all test modules.
"""

from collections.abc import Callable
from datetime import date, timedelta, timezone

import pytest
from sqlalchemy import select

from cadence.db.models import Activity, ActivityKind, TemplateActivity
from cadence.db.session import Store
from cadence.recurrence.rules import RecurrenceKind, RecurrenceRule
from cadence.utils.calendar import LocalCalendar


@pytest.fixture
def store():
    """Isolated in-memory SQLite store with a fresh schema per test."""
    store = Store("sqlite:///:memory:")
    store.create_all()
    try:
        yield store
    finally:
        store.dispose()


@pytest.fixture
def db_session(store):
    """
    Provides an in-memory SQLite DB session for tests.

    Usage:
        def test_something(db_session):
            db_session.add(template)
            db_session.commit()
    """
    session = store.new_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def calendar() -> LocalCalendar:
    return LocalCalendar.utc()


@pytest.fixture
def eastern_calendar() -> LocalCalendar:
    """Fixed UTC-5 calendar, so local days and UTC days disagree in the evening."""
    return LocalCalendar(tz=timezone(timedelta(hours=-5)))


@pytest.fixture
def daily_rule() -> Callable[..., RecurrenceRule]:
    def _make(start: date = date(2024, 1, 1), interval: int = 1, end: date | None = None) -> RecurrenceRule:
        return RecurrenceRule(kind=RecurrenceKind.DAILY, start_date=start, interval=interval, end_date=end)

    return _make


@pytest.fixture
def make_template(db_session) -> Callable[..., TemplateActivity]:
    """Factory that persists a template (daily from 2024-01-01 at 07:00 for 30 minutes by default)."""

    def _make(
        title: str = "Morning Run",
        start_minute: int = 420,
        duration: int = 30,
        recurrence: RecurrenceRule | None = None,
        is_enabled: bool = True,
        kind: ActivityKind = ActivityKind.GENERIC,
        workout_routine_id: str | None = None,
    ) -> TemplateActivity:
        template = TemplateActivity.create(
            title=title,
            default_start_minute=start_minute,
            default_duration_minutes=duration,
            recurrence=recurrence or RecurrenceRule(kind=RecurrenceKind.DAILY, start_date=date(2024, 1, 1)),
            is_enabled=is_enabled,
            kind=kind,
            workout_routine_id=workout_routine_id,
        )
        db_session.add(template)
        db_session.commit()
        return template

    return _make


@pytest.fixture
def instance_for(db_session) -> Callable[[TemplateActivity, str], Activity | None]:
    """Look up the materialized instance of a template for a day key."""

    def _find(template: TemplateActivity, day_key: str) -> Activity | None:
        query = select(Activity).where(Activity.generated_key == f"{template.id}|{day_key}")
        return db_session.execute(query).scalars().first()

    return _find
