from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, Index, Integer, LargeBinary, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from cadence.recurrence.codec import decode_rule, encode_rule
from cadence.recurrence.rules import RecurrenceRule
from cadence.utils.day_key import generated_key


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all database models."""


class ActivityKind(StrEnum):
    """High-level category for a scheduled activity or template."""

    GENERIC = "generic"
    WORKOUT = "workout"


class ActivityStatus(StrEnum):
    PLANNED = "planned"
    DONE = "done"
    SKIPPED = "skipped"


class OverrideAction(StrEnum):
    SKIPPED_TODAY = "skippedToday"
    DELETED_TODAY = "deletedToday"


class TemplateActivity(Base):
    """User-defined recurring activity.

    Stores:
    - id: Template ID (string UUID)
    - title: Title copied onto generated instances
    - default_start_minute: Minutes since local midnight (0-1439)
    - default_duration_minutes: Instance length in minutes
    - is_enabled: Disabled templates never materialize
    - recurrence_data: Encoded RecurrenceRule (see cadence.recurrence.codec)
    - kind / workout_routine_id: Copied onto instances; routine only for workouts

    Deleting a template does not cascade to its instances.
    """

    __tablename__ = "template_activities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    default_start_minute: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    default_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    recurrence_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, default=b"")

    kind_raw: Mapped[str] = mapped_column(String, nullable=False, default=ActivityKind.GENERIC.value)
    workout_routine_id: Mapped[str | None] = mapped_column(String, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utc_now, onupdate=_utc_now)

    @classmethod
    def create(
        cls,
        *,
        title: str,
        default_start_minute: int,
        default_duration_minutes: int,
        recurrence: RecurrenceRule,
        is_enabled: bool = True,
        kind: ActivityKind = ActivityKind.GENERIC,
        workout_routine_id: str | None = None,
        id: str | None = None,  # noqa: A002
    ) -> TemplateActivity:
        template = cls(
            id=id or str(uuid.uuid4()),
            title=title,
            default_start_minute=default_start_minute,
            default_duration_minutes=default_duration_minutes,
            is_enabled=is_enabled,
            workout_routine_id=workout_routine_id,
        )
        template.kind = kind
        template.recurrence = recurrence
        return template

    @property
    def recurrence(self) -> RecurrenceRule:
        return decode_rule(self.recurrence_data)

    @recurrence.setter
    def recurrence(self, rule: RecurrenceRule) -> None:
        self.recurrence_data = encode_rule(rule)

    @property
    def kind(self) -> ActivityKind:
        try:
            return ActivityKind(self.kind_raw)
        except ValueError:
            return ActivityKind.GENERIC

    @kind.setter
    def kind(self, value: ActivityKind) -> None:
        self.kind_raw = ActivityKind(value).value


class TemplateInstanceOverride(Base):
    """Per-(template, day) exception that suppresses materialization.

    Constraints:
    - Unique key "{template_id}|{day_key}": at most one override per pair
    """

    __tablename__ = "template_instance_overrides"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    template_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    day_key: Mapped[str] = mapped_column(String, nullable=False, index=True)
    action_raw: Mapped[str] = mapped_column(String, nullable=False, default=OverrideAction.SKIPPED_TODAY.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utc_now)

    @classmethod
    def create(cls, template_id: str, day_key: str, action: OverrideAction) -> TemplateInstanceOverride:
        return cls(
            key=generated_key(template_id, day_key),
            template_id=template_id,
            day_key=day_key,
            action_raw=OverrideAction(action).value,
            created_at=_utc_now(),
        )

    @property
    def action(self) -> OverrideAction:
        try:
            return OverrideAction(self.action_raw)
        except ValueError:
            return OverrideAction.SKIPPED_TODAY

    @action.setter
    def action(self, value: OverrideAction) -> None:
        self.action_raw = OverrideAction(value).value


class Activity(Base):
    """Dated activity shown on the calendar.

    Either ad-hoc or materialized from a template. Generated instances carry
    template_id, day_key and generated_key; generated_key is unique, which is
    what makes preloading idempotent.

    planned_* hold the template-derived snapshot separately from the live
    title/start_at/end_at so template edits can refresh the plan without
    clobbering user edits.

    All datetimes are naive UTC.
    """

    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    is_all_day: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    lane_hint: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Template linkage
    template_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    day_key: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    generated_key: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)

    # Planned vs actual
    planned_start_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    planned_end_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    planned_title: Mapped[str | None] = mapped_column(String, nullable=True)

    # Kind / workout linkage
    kind_raw: Mapped[str] = mapped_column(String, nullable=False, default=ActivityKind.GENERIC.value)
    workout_routine_id: Mapped[str | None] = mapped_column(String, nullable=True)
    workout_session_id: Mapped[str | None] = mapped_column(String, nullable=True)

    # Completion
    status_raw: Mapped[str] = mapped_column(String, nullable=False, default=ActivityStatus.PLANNED.value)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utc_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utc_now, onupdate=_utc_now)

    __table_args__ = (
        Index("idx_activities_template_start", "template_id", "start_at"),  # Upcoming instances of a template
    )

    @property
    def status(self) -> ActivityStatus:
        try:
            return ActivityStatus(self.status_raw)
        except ValueError:
            return ActivityStatus.PLANNED

    @status.setter
    def status(self, value: ActivityStatus) -> None:
        self.status_raw = ActivityStatus(value).value

    @property
    def kind(self) -> ActivityKind:
        try:
            return ActivityKind(self.kind_raw)
        except ValueError:
            return ActivityKind.GENERIC

    @kind.setter
    def kind(self, value: ActivityKind) -> None:
        self.kind_raw = ActivityKind(value).value

    @property
    def is_done(self) -> bool:
        return self.status == ActivityStatus.DONE

    @property
    def is_workout(self) -> bool:
        return self.kind == ActivityKind.WORKOUT

    def normalize_workout_linkage(self) -> None:
        """Clear the routine link on non-workout activities.

        workout_session_id is history and is left alone.
        """
        if self.kind != ActivityKind.WORKOUT:
            self.workout_routine_id = None
