"""User actions on a single instance from the day view.

Skipping or deleting a template instance writes an override for its
(template, day), which is what stops the next preload from bringing it back.
Each action commits.
"""

from __future__ import annotations

from datetime import datetime

from loguru import logger
from sqlalchemy.orm import Session

from cadence.db.models import Activity, ActivityStatus, OverrideAction
from cadence.db.session import commit_session
from cadence.templates import repository
from cadence.templates.overrides import OverrideStore
from cadence.templates.state import InstanceState, instance_day_key, resolve_instance_state
from cadence.utils.calendar import LocalCalendar
from cadence.utils.timezone import to_storage, utc_now


def skip_instance(session: Session, activity: Activity, calendar: LocalCalendar | None = None) -> InstanceState:
    """Skip this day's occurrence. Ad-hoc activities are only marked skipped."""
    calendar = calendar or LocalCalendar.current()
    action = None
    if activity.template_id:
        action = OverrideStore(session).set(
            activity.template_id, instance_day_key(activity, calendar), OverrideAction.SKIPPED_TODAY
        ).action
    activity.status = ActivityStatus.SKIPPED
    commit_session(session)
    logger.bind(activity_id=activity.id, template_id=activity.template_id).info("[ACTIONS] Instance skipped")
    return resolve_instance_state(activity, action)


def delete_instance(session: Session, activity: Activity, calendar: LocalCalendar | None = None) -> InstanceState:
    """Delete the activity, remembering the deletion for template instances."""
    calendar = calendar or LocalCalendar.current()
    action = None
    if activity.template_id:
        action = OverrideStore(session).set(
            activity.template_id, instance_day_key(activity, calendar), OverrideAction.DELETED_TODAY
        ).action
    activity_id = activity.id
    repository.delete(session, activity)
    commit_session(session)
    logger.bind(activity_id=activity_id).info("[ACTIONS] Instance deleted")
    return resolve_instance_state(None, action)


def toggle_done(session: Session, activity: Activity, now: datetime | None = None) -> ActivityStatus:
    """Flip planned/done, keeping completed_at in step. Returns the new status."""
    if activity.status == ActivityStatus.DONE:
        activity.status = ActivityStatus.PLANNED
        activity.completed_at = None
    else:
        activity.status = ActivityStatus.DONE
        activity.completed_at = to_storage(now) if now is not None else utc_now()
    commit_session(session)
    logger.bind(activity_id=activity.id, status=activity.status_raw).info("[ACTIONS] Completion toggled")
    return activity.status
