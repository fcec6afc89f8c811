"""Encode/decode contract for persisted recurrence rules.

Rules are stored on templates as a JSON blob. Decoding never breaks
materialization: a damaged blob decodes to a single-occurrence rule
(`kind=none`) and a warning is logged, so one bad template cannot stop
the others from being preloaded. `decode_rule_strict` is available for
callers that want the failure.
"""

from __future__ import annotations

import json

from loguru import logger
from pydantic import ValidationError

from cadence.core.errors import RecurrenceDecodeError
from cadence.recurrence.rules import RecurrenceKind, RecurrenceRule


def default_rule() -> RecurrenceRule:
    """Rule substituted when a stored blob cannot be decoded."""
    return RecurrenceRule(kind=RecurrenceKind.NONE)


def encode_rule(rule: RecurrenceRule) -> bytes:
    """Serialize a rule to its stored JSON form.

    Keys and weekdays are written sorted so equal rules encode to equal bytes.
    """
    payload = rule.model_dump(mode="json")
    payload["weekdays"] = sorted(payload["weekdays"])
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode_rule_strict(data: bytes | str | None) -> RecurrenceRule:
    """Decode a stored rule, raising RecurrenceDecodeError on any problem."""
    if not data:
        raise RecurrenceDecodeError("empty recurrence blob")
    try:
        return RecurrenceRule.model_validate_json(data)
    except (ValidationError, ValueError, UnicodeDecodeError) as e:
        raise RecurrenceDecodeError(f"invalid recurrence blob: {e}") from e


def decode_rule(data: bytes | str | None) -> RecurrenceRule:
    """Decode a stored rule, falling back to `kind=none` when it is corrupted."""
    try:
        return decode_rule_strict(data)
    except RecurrenceDecodeError as e:
        logger.bind(error=str(e)).warning("[RECURRENCE] Falling back to single-occurrence rule")
        return default_rule()
