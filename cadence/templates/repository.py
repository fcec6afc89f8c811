"""Repository functions for templates, overrides and generated instances.

Every fetch goes through `storage_operation`, so a database failure surfaces
as StorageError with the original exception as its cause. None of these
functions commit; the calling operation owns the transaction.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from datetime import datetime

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cadence.core.errors import StorageError
from cadence.db.models import Activity, TemplateActivity, TemplateInstanceOverride
from cadence.utils.day_key import template_key_prefix


@contextmanager
def storage_operation(operation: str) -> Generator[None, None, None]:
    """Translate SQLAlchemy failures into StorageError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.bind(operation=operation, error_type=type(e).__name__).error(f"[STORE] {operation} failed: {e}")
        raise StorageError(operation, str(e)) from e


def fetch_enabled_templates(session: Session) -> list[TemplateActivity]:
    with storage_operation("fetch enabled templates"):
        query = select(TemplateActivity).where(TemplateActivity.is_enabled.is_(True))
        return list(session.execute(query).scalars().all())


def fetch_template(session: Session, template_id: str) -> TemplateActivity | None:
    with storage_operation("fetch template"):
        return session.get(TemplateActivity, template_id)


def fetch_activity(session: Session, activity_id: str) -> Activity | None:
    with storage_operation("fetch activity"):
        return session.get(Activity, activity_id)


def fetch_activity_by_generated_key(session: Session, key: str) -> Activity | None:
    with storage_operation("fetch activity by generated key"):
        query = select(Activity).where(Activity.generated_key == key)
        return session.execute(query).scalars().first()


def fetch_generated_keys_for_day(session: Session, day_key: str) -> set[str]:
    """Generated keys of all instances bucketed on one day."""
    with storage_operation("fetch generated keys for day"):
        query = select(Activity.generated_key).where(
            Activity.day_key == day_key,
            Activity.generated_key.is_not(None),
        )
        return {key for key in session.execute(query).scalars().all() if key}


def fetch_template_activities_between(
    session: Session,
    template_id: str,
    start: datetime,
    end: datetime,
) -> list[Activity]:
    """Instances linked to a template with start_at in [start, end) (naive UTC bounds)."""
    with storage_operation("fetch template activities in window"):
        query = (
            select(Activity)
            .where(
                Activity.template_id == template_id,
                Activity.start_at >= start,
                Activity.start_at < end,
            )
            .order_by(Activity.start_at)
        )
        return list(session.execute(query).scalars().all())


def fetch_template_activities(session: Session, template_id: str) -> list[Activity]:
    with storage_operation("fetch template activities"):
        query = select(Activity).where(Activity.template_id == template_id).order_by(Activity.start_at)
        return list(session.execute(query).scalars().all())


def fetch_override(session: Session, key: str) -> TemplateInstanceOverride | None:
    with storage_operation("fetch override"):
        return session.get(TemplateInstanceOverride, key)


def fetch_override_keys_for_day(session: Session, day_key: str) -> set[str]:
    with storage_operation("fetch overrides for day"):
        query = select(TemplateInstanceOverride.key).where(TemplateInstanceOverride.day_key == day_key)
        return set(session.execute(query).scalars().all())


def fetch_override_keys_for_template(
    session: Session,
    template_id: str,
    from_key: str | None = None,
    to_key: str | None = None,
) -> set[str]:
    """Override keys of one template, optionally limited to day keys in [from_key, to_key)."""
    with storage_operation("fetch overrides for template"):
        query = select(TemplateInstanceOverride.key).where(TemplateInstanceOverride.template_id == template_id)
        if from_key is not None:
            query = query.where(TemplateInstanceOverride.day_key >= from_key)
        if to_key is not None:
            query = query.where(TemplateInstanceOverride.day_key < to_key)
        prefix = template_key_prefix(template_id)
        return {key for key in session.execute(query).scalars().all() if key.startswith(prefix)}


def insert(session: Session, obj: object) -> None:
    with storage_operation(f"insert {type(obj).__name__}"):
        session.add(obj)


def delete(session: Session, obj: object) -> None:
    with storage_operation(f"delete {type(obj).__name__}"):
        session.delete(obj)


def flush(session: Session) -> None:
    """Push pending changes so later reads in the same unit of work see them."""
    with storage_operation("flush"):
        session.flush()
