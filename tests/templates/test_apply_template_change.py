"""Tests for applying a template edit to a single day."""

from datetime import date, datetime

from cadence.db.models import ActivityKind, ActivityStatus, OverrideAction
from cadence.recurrence.rules import RecurrenceKind, RecurrenceRule
from cadence.templates.overrides import OverrideStore
from cadence.templates.preloader import apply_template_change, ensure_day_is_preloaded
from cadence.templates.state import InstanceState

DAY = date(2024, 1, 5)
KEY = "2024-01-05"


def _preload_and_edit_title(db_session, calendar, template, instance_for, title="My run"):
    ensure_day_is_preloaded(db_session, DAY, calendar)
    activity = instance_for(template, KEY)
    activity.title = title
    db_session.commit()
    return activity


class TestKeepEdits:
    def test_edited_title_is_kept_but_plan_follows(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        _preload_and_edit_title(db_session, calendar, template, instance_for)

        template.title = "Tempo run"
        db_session.commit()
        state = apply_template_change(db_session, template.id, DAY, calendar)

        activity = instance_for(template, KEY)
        assert activity.title == "My run"
        assert activity.planned_title == "Tempo run"
        assert state == InstanceState.EDITED

    def test_untouched_fields_follow_the_template(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run", start_minute=420, duration=30)
        _preload_and_edit_title(db_session, calendar, template, instance_for)

        template.default_start_minute = 480
        template.default_duration_minutes = 45
        db_session.commit()
        apply_template_change(db_session, template.id, DAY, calendar)

        activity = instance_for(template, KEY)
        assert activity.start_at == datetime(2024, 1, 5, 8, 0)
        assert activity.end_at == datetime(2024, 1, 5, 8, 45)
        assert activity.planned_start_at == datetime(2024, 1, 5, 8, 0)
        assert activity.title == "My run"

    def test_pristine_instance_stays_pristine(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        ensure_day_is_preloaded(db_session, DAY, calendar)

        template.title = "Easy run"
        db_session.commit()
        state = apply_template_change(db_session, template.id, DAY, calendar)

        assert instance_for(template, KEY).title == "Easy run"
        assert state == InstanceState.PRISTINE


class TestOverwriteActual:
    def test_overwrite_replaces_user_edits(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        activity = _preload_and_edit_title(db_session, calendar, template, instance_for)
        activity.start_at = datetime(2024, 1, 5, 18, 0)
        db_session.commit()

        template.title = "Tempo run"
        db_session.commit()
        state = apply_template_change(db_session, template.id, DAY, calendar, overwrite_actual=True)

        activity = instance_for(template, KEY)
        assert activity.title == "Tempo run"
        assert activity.start_at == datetime(2024, 1, 5, 7, 0)
        assert state == InstanceState.PRISTINE

    def test_workout_linkage_synced_only_when_safe(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Legs", kind=ActivityKind.WORKOUT, workout_routine_id="routine-1")
        ensure_day_is_preloaded(db_session, DAY, calendar)
        activity = instance_for(template, KEY)
        activity.workout_session_id = "session-1"
        db_session.commit()

        template.workout_routine_id = "routine-2"
        db_session.commit()
        apply_template_change(db_session, template.id, DAY, calendar)
        assert instance_for(template, KEY).workout_routine_id == "routine-1"

        apply_template_change(db_session, template.id, DAY, calendar, overwrite_actual=True)
        activity = instance_for(template, KEY)
        assert activity.workout_routine_id == "routine-2"
        assert activity.workout_session_id == "session-1"


class TestOverridesAndForcing:
    def test_override_blocks_without_resurrection(self, db_session, calendar, make_template, instance_for):
        template = make_template()
        OverrideStore(db_session).set(template.id, KEY, OverrideAction.DELETED_TODAY)
        db_session.commit()

        state = apply_template_change(db_session, template.id, DAY, calendar, force_for_day=True)

        assert state == InstanceState.DELETED
        assert instance_for(template, KEY) is None

    def test_resurrection_recreates_pristine_instance(self, db_session, calendar, make_template, instance_for):
        template = make_template(title="Run")
        OverrideStore(db_session).set(template.id, KEY, OverrideAction.SKIPPED_TODAY)
        db_session.commit()

        state = apply_template_change(db_session, template.id, DAY, calendar, resurrect_if_overridden=True)

        assert state == InstanceState.PRISTINE
        assert OverrideStore(db_session).get(template.id, KEY) is None
        activity = instance_for(template, KEY)
        assert activity.title == "Run"
        assert activity.status == ActivityStatus.PLANNED

    def test_non_matching_day_needs_force(self, db_session, calendar, make_template, instance_for):
        template = make_template(recurrence=RecurrenceRule(kind=RecurrenceKind.NONE, start_date=date(2024, 1, 1)))

        assert apply_template_change(db_session, template.id, DAY, calendar) == InstanceState.NOT_GENERATED
        assert instance_for(template, KEY) is None

        assert apply_template_change(db_session, template.id, DAY, calendar, force_for_day=True) == InstanceState.PRISTINE
        assert instance_for(template, KEY) is not None

    def test_disabled_template_needs_force(self, db_session, calendar, make_template, instance_for):
        template = make_template(is_enabled=False)
        apply_template_change(db_session, template.id, DAY, calendar)
        assert instance_for(template, KEY) is None

    def test_missing_template_is_a_no_op(self, db_session, calendar):
        assert apply_template_change(db_session, "missing", DAY, calendar) == InstanceState.NOT_GENERATED

    def test_save_changes_false_leaves_commit_to_caller(self, db_session, calendar, make_template, instance_for):
        template = make_template()

        apply_template_change(db_session, template.id, DAY, calendar, save_changes=False)
        assert db_session.new

        db_session.commit()
        assert instance_for(template, KEY) is not None
