"""Instance materializer.

Turns enabled templates into dated Activity rows and keeps those rows in
step with template edits.

- ensure_day_is_preloaded: create missing instances for one day (idempotent)
- apply_template_change: make one day reflect a template edit right away
- update_existing_upcoming_instances: propagate an edit to instances that
  already exist, without creating any

Every operation takes the open Session as its persistence collaborator and
commits once at the end. A unique-key violation on generated_key means a
concurrent preload already materialized the instance; it is treated as a
no-op rather than a failure.
"""

from __future__ import annotations

from datetime import date, datetime

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cadence.config.settings import settings
from cadence.core.errors import DuplicateInstanceError
from cadence.db.session import commit_session
from cadence.templates import repository
from cadence.templates.overrides import OverrideStore
from cadence.templates.state import InstanceState, instance_state_for, resolve_instance_state
from cadence.templates.update_applier import TemplateUpdateApplier
from cadence.templates.update_planner import (
    TemplateUpdatePlanner,
    after_template_change,
    create_for_day,
    planned_times,
)
from cadence.templates.update_types import TemplateDraft, UpdateScope
from cadence.utils.calendar import LocalCalendar
from cadence.utils.day_key import day_key, generated_key


def _commit_instances(session: Session, keys: list[str]) -> None:
    """Commit, reporting a generated_key collision as DuplicateInstanceError."""
    try:
        commit_session(session)
    except IntegrityError as e:
        raise DuplicateInstanceError(", ".join(keys)) from e


def ensure_day_is_preloaded(
    session: Session,
    day: date | datetime,
    calendar: LocalCalendar | None = None,
) -> int:
    """Materialize every enabled template that fires on `day`.

    Safe to call any number of times: templates with an override for the day
    and templates already materialized (same generated key) are skipped, and
    existing instances are never touched.

    Args:
        session: Database session
        day: Any instant (or date) within the local day to preload
        calendar: Local calendar; defaults to the configured timezone

    Returns:
        Number of instances created
    """
    calendar = calendar or LocalCalendar.current()
    day_start = calendar.start_of_day(day)
    key_for_day = day_key(day_start, calendar)

    templates = repository.fetch_enabled_templates(session)
    override_keys = OverrideStore(session).keys_for_day(key_for_day)
    existing_keys = repository.fetch_generated_keys_for_day(session, key_for_day)

    missing: dict[str, TemplateDraft] = {}
    for template in templates:
        if not template.recurrence.matches(day_start, calendar):
            continue
        key = generated_key(template.id, key_for_day)
        if key in override_keys:
            logger.bind(key=key).debug("[PRELOAD] Overridden, not materializing")
            continue
        if key in existing_keys:
            continue
        missing[key] = TemplateDraft.from_template(template)

    if not missing:
        logger.bind(day_key=key_for_day, templates=len(templates)).debug("[PRELOAD] Day already up to date")
        return 0

    created = _insert_missing(session, calendar, day_start, missing)
    if created:
        logger.bind(day_key=key_for_day, created=created).info(f"[PRELOAD] Materialized {created} instance(s)")
    return created


def _insert_missing(
    session: Session,
    calendar: LocalCalendar,
    day_start: datetime,
    missing: dict[str, TemplateDraft],
) -> int:
    """Insert and commit one instance per missing key.

    A collision on commit means another preload got to some of the keys
    first. The batch is rolled back, so the keys are checked one by one and
    only those still missing are inserted again.
    """
    try:
        _insert_and_commit(session, calendar, day_start, missing)
        return len(missing)
    except DuplicateInstanceError as e:
        logger.bind(keys=e.generated_key).warning("[PRELOAD] Some instances were materialized concurrently")

    still_missing = {
        key: draft
        for key, draft in missing.items()
        if repository.fetch_activity_by_generated_key(session, key) is None
    }
    if not still_missing:
        return 0
    try:
        _insert_and_commit(session, calendar, day_start, still_missing)
    except DuplicateInstanceError as e:
        logger.bind(keys=e.generated_key).warning("[PRELOAD] Instances still colliding, leaving them to the other writer")
        return 0
    return len(still_missing)


def _insert_and_commit(
    session: Session,
    calendar: LocalCalendar,
    day_start: datetime,
    drafts: dict[str, TemplateDraft],
) -> None:
    for draft in drafts.values():
        repository.insert(session, create_for_day(calendar, draft, day_start).build())
    _commit_instances(session, list(drafts))


def ensure_range_is_preloaded(
    session: Session,
    start_day: date | datetime,
    days: int,
    calendar: LocalCalendar | None = None,
) -> int:
    """Preload `days` consecutive days starting at start_day. Returns instances created."""
    calendar = calendar or LocalCalendar.current()
    total = 0
    for offset in range(max(days, 0)):
        total += ensure_day_is_preloaded(session, calendar.add_days(start_day, offset), calendar)
    return total


def apply_template_change(
    session: Session,
    template_id: str,
    day: date | datetime,
    calendar: LocalCalendar | None = None,
    force_for_day: bool = False,
    resurrect_if_overridden: bool = False,
    overwrite_actual: bool = False,
    save_changes: bool = True,
) -> InstanceState:
    """Make the template's instance on `day` reflect its current definition.

    Args:
        session: Database session
        template_id: Edited template
        day: Day to apply the edit to
        calendar: Local calendar; defaults to the configured timezone
        force_for_day: Apply even if the template is disabled or does not fire that day
        resurrect_if_overridden: Clear a skip/delete override instead of stopping at it
        overwrite_actual: Replace the live title/start/end even if the user edited them
        save_changes: Commit before returning

    Returns:
        State of the (template, day) pair afterwards
    """
    calendar = calendar or LocalCalendar.current()
    day_start = calendar.start_of_day(day)
    key_for_day = day_key(day_start, calendar)
    key = generated_key(template_id, key_for_day)

    overrides = OverrideStore(session)
    action = overrides.get(template_id, key_for_day)
    if action is not None:
        if not resurrect_if_overridden:
            logger.bind(key=key, action=action.value).debug("[TEMPLATE_CHANGE] Overridden, leaving day alone")
            return resolve_instance_state(None, action)
        overrides.clear(template_id, key_for_day)
        logger.bind(key=key).info("[TEMPLATE_CHANGE] Override cleared, resurrecting instance")

    template = repository.fetch_template(session, template_id)
    applies = template is not None and (
        force_for_day or (template.is_enabled and template.recurrence.matches(day_start, calendar))
    )
    if not applies:
        if template is None:
            logger.bind(template_id=template_id).warning("[TEMPLATE_CHANGE] Template not found")
        if save_changes:
            commit_session(session)
        return instance_state_for(session, template_id, day_start, calendar)

    draft = TemplateDraft.from_template(template)
    activity = repository.fetch_activity_by_generated_key(session, key)
    if activity is not None:
        new_start, new_end = planned_times(
            calendar, day_start, template.default_start_minute, template.default_duration_minutes
        )
        after_template_change(activity, draft, new_start, new_end, key_for_day, key, overwrite_actual).apply_to(activity)
        logger.bind(key=key, overwrite_actual=overwrite_actual).info("[TEMPLATE_CHANGE] Instance refreshed")
    else:
        activity = create_for_day(calendar, draft, day_start).build()
        repository.insert(session, activity)
        logger.bind(key=key).info("[TEMPLATE_CHANGE] Instance created")

    if save_changes:
        try:
            _commit_instances(session, [key])
        except DuplicateInstanceError:
            logger.bind(key=key).warning("[TEMPLATE_CHANGE] Instance was materialized concurrently")
            return instance_state_for(session, template_id, day_start, calendar)

    return resolve_instance_state(activity, None)


def update_existing_upcoming_instances(
    session: Session,
    template_id: str,
    from_day: date | datetime,
    days_ahead: int | None = None,
    calendar: LocalCalendar | None = None,
    detach_if_no_longer_matches: bool = True,
) -> int:
    """Propagate a template edit to instances already materialized from `from_day` on.

    Only instances with start in [from_day, from_day + days_ahead) are
    considered. Nothing is created and no override is cleared. Done and
    skipped instances and overridden days are left untouched; user-edited
    live fields are kept while the planned snapshot follows the template.

    Args:
        session: Database session
        template_id: Edited template
        from_day: First day of the window
        days_ahead: Window length; defaults to settings.upcoming_days_ahead
        calendar: Local calendar; defaults to the configured timezone
        detach_if_no_longer_matches: Unlink instances the template no longer produces

    Returns:
        Number of instances changed
    """
    calendar = calendar or LocalCalendar.current()
    if days_ahead is None:
        days_ahead = settings.upcoming_days_ahead

    template = repository.fetch_template(session, template_id)
    if template is None:
        logger.bind(template_id=template_id).warning("[TEMPLATE_UPDATE] Template not found, nothing to propagate")
        return 0

    plan = TemplateUpdatePlanner(calendar).make_plan(
        session,
        template_id,
        TemplateDraft.from_template(template),
        UpdateScope.THIS_AND_FUTURE,
        calendar.start_of_day(from_day),
        days_ahead=days_ahead,
        detach_if_no_longer_matches=detach_if_no_longer_matches,
        overwrite_actual=False,
        include_apply_day_create=False,
        resurrect_overrides_on_apply_day=False,
        force_apply_day=False,
        skip_completed=True,
    )
    if plan.affected_count == 0:
        return 0

    try:
        TemplateUpdateApplier().apply(session, plan)
        _commit_instances(session, [u.after.generated_key for u in plan.updates if u.after.generated_key])
    except DuplicateInstanceError as e:
        logger.bind(template_id=template_id, keys=e.generated_key).warning(
            "[TEMPLATE_UPDATE] Instance keys collided with a concurrent writer, nothing propagated"
        )
        return 0
    except Exception:
        session.rollback()
        raise

    logger.bind(template_id=template_id, affected=plan.affected_count).info(
        f"[TEMPLATE_UPDATE] Propagated edit to {plan.affected_count} upcoming instance(s)"
    )
    return plan.affected_count
