"""Recurrence module - calendar-relative rules for templates.

This module provides:
- RecurrenceRule value type and its matcher
- Stored blob encode/decode with a default-on-failure policy
"""

from cadence.recurrence.codec import decode_rule, decode_rule_strict, default_rule, encode_rule
from cadence.recurrence.rules import (
    RecurrenceKind,
    RecurrenceRule,
    Weekday,
    default_weekdays_for,
    matches,
    weekly_rule,
)

__all__ = [
    "RecurrenceKind",
    "RecurrenceRule",
    "Weekday",
    "decode_rule",
    "decode_rule_strict",
    "default_rule",
    "default_weekdays_for",
    "encode_rule",
    "matches",
    "weekly_rule",
]
