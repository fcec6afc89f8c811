"""Tests for propagating a template edit to already-materialized instances."""

from datetime import date, datetime

from sqlalchemy import func, select

from cadence.db.models import Activity, ActivityStatus, OverrideAction
from cadence.recurrence.rules import RecurrenceKind, RecurrenceRule
from cadence.templates.overrides import OverrideStore
from cadence.templates.preloader import (
    ensure_day_is_preloaded,
    ensure_range_is_preloaded,
    update_existing_upcoming_instances,
)


def _count_activities(session) -> int:
    return session.execute(select(func.count()).select_from(Activity)).scalar_one()


def _edit_template(session, template, title="New", start_minute=480):
    template.title = title
    template.default_start_minute = start_minute
    session.commit()


class TestPropagation:
    def test_mixed_instances(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run", start_minute=420)
        ensure_range_is_preloaded(db_session, date(2024, 1, 5), 5, calendar)

        done = instance_for(template, "2024-01-06")
        done.status = ActivityStatus.DONE
        edited = instance_for(template, "2024-01-07")
        edited.title = "My run"
        OverrideStore(db_session).set(template.id, "2024-01-08", OverrideAction.SKIPPED_TODAY)
        db_session.commit()

        _edit_template(db_session, template)
        changed = update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 5), 30, calendar)

        assert changed == 3

        first = instance_for(template, "2024-01-05")
        assert first.title == "New"
        assert first.start_at == datetime(2024, 1, 5, 8, 0)

        done = instance_for(template, "2024-01-06")
        assert done.title == "Run"
        assert done.planned_title == "Run"
        assert done.start_at == datetime(2024, 1, 6, 7, 0)

        edited = instance_for(template, "2024-01-07")
        assert edited.title == "My run"
        assert edited.planned_title == "New"
        assert edited.start_at == datetime(2024, 1, 7, 8, 0)

        overridden = instance_for(template, "2024-01-08")
        assert overridden.title == "Run"

        assert instance_for(template, "2024-01-09").title == "New"

    def test_done_instance_is_never_mutated(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        ensure_day_is_preloaded(db_session, date(2024, 1, 5), calendar)
        done = instance_for(template, "2024-01-05")
        done.status = ActivityStatus.DONE
        done.completed_at = datetime(2024, 1, 5, 7, 40)
        db_session.commit()
        before = (done.title, done.start_at, done.end_at, done.planned_title, done.planned_start_at)

        _edit_template(db_session, template)
        assert update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 1), 30, calendar) == 0

        done = instance_for(template, "2024-01-05")
        assert (done.title, done.start_at, done.end_at, done.planned_title, done.planned_start_at) == before

    def test_never_creates_instances(self, db_session, calendar, make_template):
        template = make_template()
        ensure_day_is_preloaded(db_session, date(2024, 1, 5), calendar)

        _edit_template(db_session, template)
        update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 1), 30, calendar)

        assert _count_activities(db_session) == 1

    def test_window_bounds(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        ensure_range_is_preloaded(db_session, date(2024, 1, 3), 5, calendar)

        _edit_template(db_session, template)
        changed = update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 5), 2, calendar)

        assert changed == 2
        assert instance_for(template, "2024-01-04").title == "Run"
        assert instance_for(template, "2024-01-05").title == "New"
        assert instance_for(template, "2024-01-06").title == "New"
        assert instance_for(template, "2024-01-07").title == "Run"

    def test_missing_planned_snapshot_is_backfilled(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        ensure_day_is_preloaded(db_session, date(2024, 1, 5), calendar)
        legacy = instance_for(template, "2024-01-05")
        legacy.planned_title = None
        legacy.planned_start_at = None
        legacy.planned_end_at = None
        db_session.commit()

        _edit_template(db_session, template)
        update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 5), 30, calendar)

        legacy = instance_for(template, "2024-01-05")
        assert legacy.title == "New"
        assert legacy.planned_title == "New"
        assert legacy.planned_start_at == datetime(2024, 1, 5, 8, 0)
        assert legacy.planned_end_at == datetime(2024, 1, 5, 8, 30)

    def test_missing_template_returns_zero(self, db_session, calendar):
        assert update_existing_upcoming_instances(db_session, "missing", date(2024, 1, 5), 30, calendar) == 0


class TestMovedInstances:
    def test_moved_onto_a_materialized_day_keeps_its_own_key(
        self, db_session, calendar, make_template, instance_for
    ):
        template = make_template(title="Run")
        ensure_day_is_preloaded(db_session, date(2024, 1, 5), calendar)
        ensure_day_is_preloaded(db_session, date(2024, 1, 7), calendar)
        moved = instance_for(template, "2024-01-05")
        moved_id = moved.id
        moved.start_at = datetime(2024, 1, 7, 18, 0)
        moved.end_at = datetime(2024, 1, 7, 18, 30)
        template.title = "Tempo"
        db_session.commit()

        changed = update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 6), 30, calendar)

        assert changed == 1
        assert instance_for(template, "2024-01-07").title == "Tempo"
        moved = db_session.get(Activity, moved_id)
        assert moved.generated_key == f"{template.id}|2024-01-05"
        assert moved.day_key == "2024-01-05"
        assert moved.start_at == datetime(2024, 1, 7, 18, 0)

        # Later edits keep propagating
        template.title = "Intervals"
        db_session.commit()
        assert update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 6), 30, calendar) == 1
        assert instance_for(template, "2024-01-07").title == "Intervals"

    def test_moved_instance_is_not_materialized_again(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        ensure_day_is_preloaded(db_session, date(2024, 1, 5), calendar)
        moved = instance_for(template, "2024-01-05")
        moved.start_at = datetime(2024, 1, 7, 18, 0)
        moved.end_at = datetime(2024, 1, 7, 18, 30)
        db_session.commit()

        _edit_template(db_session, template)
        assert update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 5), 30, calendar) == 1

        moved = instance_for(template, "2024-01-05")
        assert moved.title == "New"
        assert moved.start_at == datetime(2024, 1, 7, 18, 0)
        assert moved.planned_start_at == datetime(2024, 1, 5, 8, 0)

        assert ensure_day_is_preloaded(db_session, date(2024, 1, 5), calendar) == 0
        assert _count_activities(db_session) == 1


class TestDetach:
    def test_instances_no_longer_produced_are_detached(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        ensure_day_is_preloaded(db_session, date(2024, 1, 6), calendar)
        activity_id = instance_for(template, "2024-01-06").id

        template.recurrence = RecurrenceRule(kind=RecurrenceKind.NONE, start_date=date(2024, 1, 1))
        db_session.commit()
        assert update_existing_upcoming_instances(db_session, template.id, date(2024, 1, 5), 30, calendar) == 1

        activity = db_session.get(Activity, activity_id)
        assert activity.title == "Run"
        assert activity.start_at == datetime(2024, 1, 6, 7, 0)
        assert activity.template_id is None
        assert activity.generated_key is None
        assert activity.planned_title is None
        assert activity.day_key == "2024-01-06"

    def test_detach_can_be_disabled(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        ensure_day_is_preloaded(db_session, date(2024, 1, 6), calendar)

        template.is_enabled = False
        db_session.commit()
        changed = update_existing_upcoming_instances(
            db_session, template.id, date(2024, 1, 5), 30, calendar, detach_if_no_longer_matches=False
        )

        assert changed == 0
        assert instance_for(template, "2024-01-06").template_id == template.id
