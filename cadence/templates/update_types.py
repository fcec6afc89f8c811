"""Value types for planning and applying template edits.

A plan is computed without touching the store, previewed, then applied.
All datetimes on snapshots and creates are in storage form (naive UTC).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from cadence.db.models import Activity, ActivityKind, ActivityStatus, TemplateActivity
from cadence.recurrence.rules import RecurrenceRule


class UpdateScope(StrEnum):
    """Which instances a template edit reaches."""

    THIS_INSTANCE = "this_instance"
    THIS_AND_FUTURE = "this_and_future"
    ALL_INSTANCES = "all_instances"


@dataclass(frozen=True)
class TemplateDraft:
    """Edited template values, so a plan can be previewed before the template is saved."""

    id: str
    title: str
    is_enabled: bool
    default_start_minute: int
    default_duration_minutes: int
    recurrence: RecurrenceRule
    kind: ActivityKind = ActivityKind.GENERIC
    workout_routine_id: str | None = None

    @classmethod
    def from_template(cls, template: TemplateActivity) -> TemplateDraft:
        return cls(
            id=template.id,
            title=template.title,
            is_enabled=template.is_enabled,
            default_start_minute=template.default_start_minute,
            default_duration_minutes=template.default_duration_minutes,
            recurrence=template.recurrence,
            kind=template.kind,
            workout_routine_id=template.workout_routine_id,
        )

    @property
    def routine_for_kind(self) -> str | None:
        return self.workout_routine_id if self.kind == ActivityKind.WORKOUT else None


@dataclass(frozen=True)
class ActivitySnapshot:
    """The mutable fields of an Activity, for change detection and rollback."""

    title: str
    start_at: datetime
    end_at: datetime | None
    template_id: str | None
    day_key: str | None
    generated_key: str | None
    planned_title: str | None
    planned_start_at: datetime | None
    planned_end_at: datetime | None
    kind: ActivityKind
    workout_routine_id: str | None
    workout_session_id: str | None
    status: ActivityStatus

    @classmethod
    def of(cls, activity: Activity) -> ActivitySnapshot:
        return cls(
            title=activity.title,
            start_at=activity.start_at,
            end_at=activity.end_at,
            template_id=activity.template_id,
            day_key=activity.day_key,
            generated_key=activity.generated_key,
            planned_title=activity.planned_title,
            planned_start_at=activity.planned_start_at,
            planned_end_at=activity.planned_end_at,
            kind=activity.kind,
            workout_routine_id=activity.workout_routine_id,
            workout_session_id=activity.workout_session_id,
            status=activity.status,
        )

    def apply_to(self, activity: Activity) -> None:
        """Write this snapshot onto an activity.

        The routine link is dropped for non-workout kinds.
        """
        activity.title = self.title
        activity.start_at = self.start_at
        activity.end_at = self.end_at
        activity.template_id = self.template_id
        activity.day_key = self.day_key
        activity.generated_key = self.generated_key
        activity.planned_title = self.planned_title
        activity.planned_start_at = self.planned_start_at
        activity.planned_end_at = self.planned_end_at
        activity.status = self.status
        activity.kind = self.kind
        activity.workout_routine_id = self.workout_routine_id
        activity.normalize_workout_linkage()


@dataclass(frozen=True)
class PlannedActivityUpdate:
    activity_id: str
    after: ActivitySnapshot


@dataclass(frozen=True)
class PlannedActivityCreate:
    generated_key: str
    day_key: str
    template_id: str
    title: str
    start_at: datetime
    end_at: datetime | None
    kind: ActivityKind
    workout_routine_id: str | None

    def build(self) -> Activity:
        """New pristine instance for this create."""
        activity = Activity(
            id=str(uuid.uuid4()),
            title=self.title,
            start_at=self.start_at,
            end_at=self.end_at,
            is_all_day=False,
            lane_hint=0,
            template_id=self.template_id,
            day_key=self.day_key,
            generated_key=self.generated_key,
            planned_title=self.title,
            planned_start_at=self.start_at,
            planned_end_at=self.end_at,
            workout_routine_id=self.workout_routine_id,
        )
        activity.status = ActivityStatus.PLANNED
        activity.kind = self.kind
        activity.normalize_workout_linkage()
        return activity


@dataclass(frozen=True)
class TemplateUpdatePreview:
    """What the user is shown before confirming an edit.

    sample_start_dates holds up to three new start times, in local time.
    """

    affected_count: int
    sample_start_dates: tuple[datetime, ...] = ()


@dataclass
class TemplateUpdatePlan:
    template_id: str
    scope: UpdateScope
    apply_day: datetime
    updates: list[PlannedActivityUpdate] = field(default_factory=list)
    creates: list[PlannedActivityCreate] = field(default_factory=list)
    # Deleted last, so rollback never has to recreate them
    override_keys_to_delete: list[str] = field(default_factory=list)
    before_snapshots: dict[str, ActivitySnapshot] = field(default_factory=dict)
    created_generated_keys: list[str] = field(default_factory=list)
    preview: TemplateUpdatePreview = field(default_factory=lambda: TemplateUpdatePreview(affected_count=0))

    @property
    def affected_count(self) -> int:
        return len(self.updates) + len(self.creates)

    @property
    def is_empty(self) -> bool:
        return not self.updates and not self.creates and not self.override_keys_to_delete
