"""Execute a TemplateUpdatePlan against an open session.

Order matters: existing instances are updated first, then missing ones are
created, then overrides are deleted. If anything fails the session state is
put back the way the plan found it and the error is re-raised. The applier
never commits.
"""

from __future__ import annotations

from contextlib import suppress

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cadence.core.errors import MissingActivityError
from cadence.db.models import Activity
from cadence.templates import repository
from cadence.templates.overrides import OverrideStore
from cadence.templates.update_types import TemplateUpdatePlan


class TemplateUpdateApplier:
    def apply(self, session: Session, plan: TemplateUpdatePlan) -> None:
        created: list[Activity] = []
        try:
            for update in plan.updates:
                activity = repository.fetch_activity(session, update.activity_id)
                if activity is None:
                    raise MissingActivityError(update.activity_id)
                update.after.apply_to(activity)

            for create in plan.creates:
                if repository.fetch_activity_by_generated_key(session, create.generated_key) is not None:
                    continue
                activity = create.build()
                repository.insert(session, activity)
                created.append(activity)

            overrides = OverrideStore(session)
            for key in plan.override_keys_to_delete:
                overrides.clear_key(key)
        except Exception as e:
            logger.bind(template_id=plan.template_id, error_type=type(e).__name__).error(
                f"[TEMPLATE_UPDATE] Apply failed, restoring previous state: {e}"
            )
            self.rollback(session, plan, created)
            raise

        logger.bind(
            template_id=plan.template_id,
            updated=len(plan.updates),
            created=len(created),
            overrides_deleted=len(plan.override_keys_to_delete),
        ).info("[TEMPLATE_UPDATE] Plan applied")

    def rollback(self, session: Session, plan: TemplateUpdatePlan, created: list[Activity] | None = None) -> None:
        """Restore before-snapshots and drop the instances this apply created.

        Best effort: a row that cannot be loaded any more is left as is.
        """
        for activity_id, snapshot in plan.before_snapshots.items():
            with suppress(SQLAlchemyError):
                activity = session.get(Activity, activity_id)
                if activity is not None:
                    snapshot.apply_to(activity)

        for activity in created or []:
            if activity in session.new:
                session.expunge(activity)
            else:
                session.delete(activity)
