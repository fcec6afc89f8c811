"""Explicit lifecycle state of one (template, day) pair.

The state is derived, never stored: it is computed from the override for
the pair (if any) and the materialized instance (if any).

    NOT_GENERATED -> PRISTINE -> {EDITED, COMPLETED, SKIPPED, DELETED}

Preloading moves NOT_GENERATED to PRISTINE, user edits move PRISTINE to
EDITED, skip/delete write an override, and resurrection clears it so the
next apply recreates a PRISTINE instance.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum

from sqlalchemy.orm import Session

from cadence.db.models import Activity, ActivityStatus, OverrideAction
from cadence.templates import repository
from cadence.templates.overrides import OverrideStore
from cadence.utils.calendar import LocalCalendar
from cadence.utils.day_key import day_key, generated_key, split_generated_key
from cadence.utils.timezone import from_storage


class InstanceState(StrEnum):
    NOT_GENERATED = "not_generated"
    PRISTINE = "pristine"
    EDITED = "edited"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    DELETED = "deleted"

    @property
    def is_overridden(self) -> bool:
        return self in (InstanceState.SKIPPED, InstanceState.DELETED)


def is_pristine(activity: Activity) -> bool:
    """True when every live field still equals its planned snapshot.

    A missing planned value counts as equal, matching how propagation
    treats instances created before the snapshot existed.
    """
    pairs = (
        (activity.title, activity.planned_title),
        (activity.start_at, activity.planned_start_at),
        (activity.end_at, activity.planned_end_at),
    )
    return all(planned is None or live == planned for live, planned in pairs)


def instance_day_key(activity: Activity, calendar: LocalCalendar) -> str:
    """Day key of the (template, day) bucket an instance was generated for.

    Moving an instance to another time or day does not move its bucket, so
    the stored day_key wins, then the one inside generated_key. Only rows
    carrying neither fall back to the local day of start_at.
    """
    if activity.day_key:
        return activity.day_key
    if activity.generated_key:
        parts = split_generated_key(activity.generated_key)
        if parts is not None:
            return parts[1]
    return day_key(from_storage(activity.start_at, calendar), calendar)


def resolve_instance_state(activity: Activity | None, override_action: OverrideAction | None) -> InstanceState:
    if override_action == OverrideAction.DELETED_TODAY:
        return InstanceState.DELETED
    if override_action == OverrideAction.SKIPPED_TODAY:
        return InstanceState.SKIPPED
    if activity is None:
        return InstanceState.NOT_GENERATED
    if activity.status == ActivityStatus.SKIPPED:
        return InstanceState.SKIPPED
    if activity.status == ActivityStatus.DONE:
        return InstanceState.COMPLETED
    return InstanceState.PRISTINE if is_pristine(activity) else InstanceState.EDITED


def instance_state_for(
    session: Session,
    template_id: str,
    day: date | datetime,
    calendar: LocalCalendar | None = None,
) -> InstanceState:
    """Load the override and instance for (template, day) and resolve their state."""
    calendar = calendar or LocalCalendar.current()
    key = day_key(day, calendar)
    action = OverrideStore(session).get(template_id, key)
    activity = repository.fetch_activity_by_generated_key(session, generated_key(template_id, key))
    return resolve_instance_state(activity, action)
