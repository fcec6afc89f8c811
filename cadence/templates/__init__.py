"""Templates → instances module.

This module materializes recurring templates into dated activities and
reconciles template edits with instances that already exist. Per-day skip
and delete overrides are the only thing that suppresses materialization.
"""

from cadence.templates.actions import delete_instance, skip_instance, toggle_done
from cadence.templates.overrides import OverrideStore
from cadence.templates.preloader import (
    apply_template_change,
    ensure_day_is_preloaded,
    ensure_range_is_preloaded,
    update_existing_upcoming_instances,
)
from cadence.templates.state import InstanceState, instance_day_key, instance_state_for, resolve_instance_state
from cadence.templates.update_applier import TemplateUpdateApplier
from cadence.templates.update_planner import TemplateUpdatePlanner
from cadence.templates.update_types import (
    ActivitySnapshot,
    TemplateDraft,
    TemplateUpdatePlan,
    TemplateUpdatePreview,
    UpdateScope,
)

__all__ = [
    "ActivitySnapshot",
    "InstanceState",
    "OverrideStore",
    "TemplateDraft",
    "TemplateUpdateApplier",
    "TemplateUpdatePlan",
    "TemplateUpdatePlanner",
    "TemplateUpdatePreview",
    "UpdateScope",
    "apply_template_change",
    "delete_instance",
    "ensure_day_is_preloaded",
    "ensure_range_is_preloaded",
    "instance_day_key",
    "instance_state_for",
    "resolve_instance_state",
    "skip_instance",
    "toggle_done",
    "update_existing_upcoming_instances",
]
