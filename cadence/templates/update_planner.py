"""Plan how a template edit propagates to its materialized instances.

Planning is read-only: it loads the instances and overrides in scope,
computes the after-state of every affected instance and returns a
TemplateUpdatePlan that TemplateUpdateApplier can execute (or the caller
can preview and discard).

Propagation is divergence-aware. The planned snapshot always follows the
template, while each live field (title, start, end) only follows when it
still equals its previous planned value, i.e. the user has not edited it.
`overwrite_actual` forces the live fields as well.
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session

from cadence.config.settings import settings
from cadence.db.models import Activity, ActivityKind, ActivityStatus
from cadence.templates import repository
from cadence.templates.state import instance_day_key
from cadence.templates.update_types import (
    ActivitySnapshot,
    PlannedActivityCreate,
    PlannedActivityUpdate,
    TemplateDraft,
    TemplateUpdatePlan,
    TemplateUpdatePreview,
    UpdateScope,
)
from cadence.utils.calendar import LocalCalendar
from cadence.utils.day_key import day_key, generated_key, parse_day_key
from cadence.utils.timezone import from_storage, to_storage

PREVIEW_SAMPLE_SIZE = 3


def planned_times(
    calendar: LocalCalendar,
    day_start: datetime,
    start_minute: int,
    duration_minutes: int,
) -> tuple[datetime, datetime]:
    """Storage-form (start, end) of an instance on the day starting at day_start."""
    start = calendar.add_minutes(day_start, start_minute)
    end = calendar.add_minutes(start, duration_minutes)
    return to_storage(start), to_storage(end)


class TemplateUpdatePlanner:
    """Builds TemplateUpdatePlans in one local calendar."""

    def __init__(self, calendar: LocalCalendar | None = None):
        self.calendar = calendar or LocalCalendar.current()

    def make_plan(
        self,
        session: Session,
        template_id: str,
        draft: TemplateDraft,
        scope: UpdateScope,
        apply_day: datetime,
        days_ahead: int | None = None,
        detach_if_no_longer_matches: bool = True,
        overwrite_actual: bool = False,
        include_apply_day_create: bool = True,
        resurrect_overrides_on_apply_day: bool = True,
        force_apply_day: bool = True,
        skip_completed: bool = False,
    ) -> TemplateUpdatePlan:
        """Compute the changes a template edit implies.

        Args:
            session: Open session used for reads only
            template_id: Template being edited
            draft: Edited template values
            scope: Which instances the edit reaches
            apply_day: Day the edit was made from; always in scope
            days_ahead: Window length for THIS_AND_FUTURE; defaults to settings.plan_days_ahead
            detach_if_no_longer_matches: Unlink instances the edited rule no longer produces
            overwrite_actual: Replace live fields even when the user edited them
            include_apply_day_create: Create the apply-day instance when missing
            resurrect_overrides_on_apply_day: Delete an apply-day override and proceed
            force_apply_day: Create on the apply day even if the rule does not match
            skip_completed: Leave done (and skipped) instances untouched, including on the apply day

        Returns:
            The plan, with its preview filled in
        """
        cal = self.calendar
        if days_ahead is None:
            days_ahead = settings.plan_days_ahead
        apply_day_start = cal.start_of_day(apply_day)
        apply_day_key = day_key(apply_day_start, cal)
        apply_key = generated_key(template_id, apply_day_key)

        override_keys = self._fetch_override_keys(session, template_id, scope, apply_day_start, days_ahead)
        candidates = self._fetch_candidates(session, template_id, scope, apply_day_start, days_ahead)
        apply_day_existing = repository.fetch_activity_by_generated_key(session, apply_key)
        apply_day_overridden = repository.fetch_override(session, apply_key) is not None

        plan = TemplateUpdatePlan(template_id=template_id, scope=scope, apply_day=apply_day_start)
        if apply_day_overridden and resurrect_overrides_on_apply_day:
            plan.override_keys_to_delete.append(apply_key)

        if apply_day_overridden and not resurrect_overrides_on_apply_day:
            logger.bind(key=apply_key).debug("[TEMPLATE_UPDATE] Apply day is overridden, leaving it alone")
        elif apply_day_existing is not None:
            if not (skip_completed and apply_day_existing.status in (ActivityStatus.DONE, ActivityStatus.SKIPPED)):
                after = self._after_for_instance(
                    apply_day_existing, draft, apply_day_start, apply_day_key, apply_key, overwrite_actual
                )
                self._add_update(plan, apply_day_existing, after)
        elif include_apply_day_create and self._should_apply_on_apply_day(draft, apply_day_start, force_apply_day):
            plan.creates.append(create_for_day(cal, draft, apply_day_start))
            plan.created_generated_keys.append(apply_key)

        for activity in candidates:
            if activity.status == ActivityStatus.SKIPPED:
                continue
            if skip_completed and activity.status == ActivityStatus.DONE:
                continue

            bucket_key, instance_day_start = self._bucket_of(activity)
            key = generated_key(template_id, bucket_key)

            # Handled above by generated key
            if apply_day_existing is not None and activity.id == apply_day_existing.id:
                continue
            if bucket_key == apply_day_key and scope != UpdateScope.ALL_INSTANCES:
                continue
            # Moved here from an earlier day
            if bucket_key < apply_day_key and scope == UpdateScope.THIS_AND_FUTURE:
                continue
            if key in override_keys:
                continue

            if draft.is_enabled and draft.recurrence.matches(instance_day_start, cal):
                after = self._after_for_instance(
                    activity, draft, instance_day_start, bucket_key, key, overwrite_actual
                )
            elif detach_if_no_longer_matches:
                after = self._detached(activity, bucket_key)
            else:
                continue
            self._add_update(plan, activity, after)

        plan.updates.sort(key=lambda u: (u.after.start_at, u.activity_id))

        samples = [u.after.start_at for u in plan.updates[:PREVIEW_SAMPLE_SIZE]]
        samples += [c.start_at for c in plan.creates[:PREVIEW_SAMPLE_SIZE]]
        plan.preview = TemplateUpdatePreview(
            affected_count=plan.affected_count,
            sample_start_dates=tuple(from_storage(s, cal) for s in samples[:PREVIEW_SAMPLE_SIZE]),
        )

        logger.bind(
            template_id=template_id,
            scope=scope.value,
            updates=len(plan.updates),
            creates=len(plan.creates),
            overrides_to_delete=len(plan.override_keys_to_delete),
        ).info("[TEMPLATE_UPDATE] Plan computed")
        return plan

    def _fetch_candidates(
        self,
        session: Session,
        template_id: str,
        scope: UpdateScope,
        apply_day_start: datetime,
        days_ahead: int,
    ) -> list[Activity]:
        if scope == UpdateScope.THIS_INSTANCE:
            return []
        if scope == UpdateScope.THIS_AND_FUTURE:
            window_end = self.calendar.start_of_day(self.calendar.add_days(apply_day_start, days_ahead))
            return repository.fetch_template_activities_between(
                session, template_id, to_storage(apply_day_start), to_storage(window_end)
            )
        return repository.fetch_template_activities(session, template_id)

    def _fetch_override_keys(
        self,
        session: Session,
        template_id: str,
        scope: UpdateScope,
        apply_day_start: datetime,
        days_ahead: int,
    ) -> set[str]:
        if scope == UpdateScope.THIS_INSTANCE:
            return set()
        if scope == UpdateScope.THIS_AND_FUTURE:
            from_key = day_key(apply_day_start, self.calendar)
            to_key = day_key(self.calendar.add_days(apply_day_start, days_ahead), self.calendar)
            return repository.fetch_override_keys_for_template(session, template_id, from_key, to_key)
        return repository.fetch_override_keys_for_template(session, template_id)

    def _bucket_of(self, activity: Activity) -> tuple[str, datetime]:
        """Day key and local start of the day an instance was generated for."""
        key_for_day = instance_day_key(activity, self.calendar)
        day_start = parse_day_key(key_for_day, self.calendar)
        if day_start is None:
            day_start = self.calendar.start_of_day(from_storage(activity.start_at, self.calendar))
            key_for_day = day_key(day_start, self.calendar)
        return key_for_day, day_start

    def _should_apply_on_apply_day(self, draft: TemplateDraft, day_start: datetime, force: bool) -> bool:
        if force:
            return True
        return draft.is_enabled and draft.recurrence.matches(day_start, self.calendar)

    def _planned_times(self, draft: TemplateDraft, day_start: datetime) -> tuple[datetime, datetime]:
        return planned_times(self.calendar, day_start, draft.default_start_minute, draft.default_duration_minutes)

    def _after_for_instance(
        self,
        activity: Activity,
        draft: TemplateDraft,
        day_start: datetime,
        key_for_day: str,
        key: str,
        overwrite_actual: bool,
    ) -> ActivitySnapshot:
        new_start, new_end = self._planned_times(draft, day_start)
        return after_template_change(activity, draft, new_start, new_end, key_for_day, key, overwrite_actual)

    @staticmethod
    def _detached(activity: Activity, key_for_day: str) -> ActivitySnapshot:
        """Unlink an instance the template no longer produces, keeping what the user sees."""
        kind = activity.kind
        routine_id = activity.workout_routine_id
        if activity.status == ActivityStatus.PLANNED and activity.workout_session_id is None:
            kind = ActivityKind.GENERIC
            routine_id = None
        return ActivitySnapshot(
            title=activity.title,
            start_at=activity.start_at,
            end_at=activity.end_at,
            template_id=None,
            day_key=key_for_day,
            generated_key=None,
            planned_title=None,
            planned_start_at=None,
            planned_end_at=None,
            kind=kind,
            workout_routine_id=routine_id if kind == ActivityKind.WORKOUT else None,
            workout_session_id=activity.workout_session_id,
            status=activity.status,
        )

    @staticmethod
    def _add_update(plan: TemplateUpdatePlan, activity: Activity, after: ActivitySnapshot) -> None:
        before = ActivitySnapshot.of(activity)
        if before == after:
            return
        plan.before_snapshots[activity.id] = before
        plan.updates.append(PlannedActivityUpdate(activity_id=activity.id, after=after))


def after_template_change(
    activity: Activity,
    draft: TemplateDraft,
    new_start: datetime,
    new_end: datetime | None,
    key_for_day: str,
    key: str,
    overwrite_actual: bool,
) -> ActivitySnapshot:
    """After-state of a linked instance once the template's defaults change.

    The planned snapshot is always replaced. A live field is replaced when
    overwrite_actual is set or when it still equals its old planned value; a
    missing planned value compares against the live value itself, so
    instances without a snapshot refresh fully. Workout linkage follows the
    template only when overwriting or when the instance is planned with no
    workout session yet.
    """
    old_planned_title = activity.planned_title if activity.planned_title is not None else activity.title
    old_planned_start = activity.planned_start_at if activity.planned_start_at is not None else activity.start_at
    old_planned_end = activity.planned_end_at if activity.planned_end_at is not None else activity.end_at

    title, start_at, end_at = activity.title, activity.start_at, activity.end_at
    if overwrite_actual:
        title, start_at, end_at = draft.title, new_start, new_end
    else:
        if title == old_planned_title:
            title = draft.title
        if start_at == old_planned_start:
            start_at = new_start
        if old_planned_end is None:
            if end_at is None:
                end_at = new_end
        elif end_at == old_planned_end:
            end_at = new_end

    if overwrite_actual or (activity.status == ActivityStatus.PLANNED and activity.workout_session_id is None):
        kind, routine_id = draft.kind, draft.routine_for_kind
    else:
        kind, routine_id = activity.kind, activity.workout_routine_id

    return ActivitySnapshot(
        title=title,
        start_at=start_at,
        end_at=end_at,
        template_id=draft.id,
        day_key=key_for_day,
        generated_key=key,
        planned_title=draft.title,
        planned_start_at=new_start,
        planned_end_at=new_end,
        kind=kind,
        workout_routine_id=routine_id if kind == ActivityKind.WORKOUT else None,
        workout_session_id=activity.workout_session_id,
        status=activity.status,
    )


def create_for_day(calendar: LocalCalendar, draft: TemplateDraft, day: datetime) -> PlannedActivityCreate:
    """Pristine instance of a template on the local day containing `day`."""
    day_start = calendar.start_of_day(day)
    key_for_day = day_key(day_start, calendar)
    start, end = planned_times(calendar, day_start, draft.default_start_minute, draft.default_duration_minutes)
    return PlannedActivityCreate(
        generated_key=generated_key(draft.id, key_for_day),
        day_key=key_for_day,
        template_id=draft.id,
        title=draft.title,
        start_at=start,
        end_at=end,
        kind=draft.kind,
        workout_routine_id=draft.routine_for_kind,
    )
