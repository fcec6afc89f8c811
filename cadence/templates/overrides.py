"""Override store: per-(template, day) skip/delete exceptions.

A thin keyed map over TemplateInstanceOverride rows. Setting an override
replaces any previous action for the pair (last write wins); clearing it
makes the template eligible to materialize for that day again.
"""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from cadence.db.models import OverrideAction, TemplateInstanceOverride
from cadence.templates import repository
from cadence.utils.day_key import generated_key


class OverrideStore:
    """Keyed access to overrides through an open session.

    Writes are flushed so later reads in the same unit of work see them,
    but the store never commits; the caller decides when the unit of work ends.
    """

    def __init__(self, session: Session):
        self.session = session

    def get(self, template_id: str, day_key: str) -> OverrideAction | None:
        override = repository.fetch_override(self.session, generated_key(template_id, day_key))
        return override.action if override else None

    def set(self, template_id: str, day_key: str, action: OverrideAction) -> TemplateInstanceOverride:
        key = generated_key(template_id, day_key)
        override = repository.fetch_override(self.session, key)
        if override is None:
            override = TemplateInstanceOverride.create(template_id, day_key, action)
            repository.insert(self.session, override)
            logger.bind(key=key, action=override.action_raw).debug("[OVERRIDES] Override created")
        else:
            override.action = action
            logger.bind(key=key, action=override.action_raw).debug("[OVERRIDES] Override replaced")
        repository.flush(self.session)
        return override

    def clear(self, template_id: str, day_key: str) -> bool:
        """Remove the override for the pair. Returns True if one existed."""
        return self.clear_key(generated_key(template_id, day_key))

    def clear_key(self, key: str) -> bool:
        override = repository.fetch_override(self.session, key)
        if override is None:
            return False
        repository.delete(self.session, override)
        repository.flush(self.session)
        logger.bind(key=key).debug("[OVERRIDES] Override cleared")
        return True

    def keys_for_day(self, day_key: str) -> set[str]:
        return repository.fetch_override_keys_for_day(self.session, day_key)

    def keys_for_template(
        self,
        template_id: str,
        from_key: str | None = None,
        to_key: str | None = None,
    ) -> set[str]:
        return repository.fetch_override_keys_for_template(self.session, template_id, from_key, to_key)
