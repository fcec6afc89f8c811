"""Day key codec.

A day key is the canonical "YYYY-MM-DD" bucket of a local calendar day.
It is the stable identity used inside generated keys and override keys.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from cadence.utils.calendar import LocalCalendar

KEY_SEPARATOR = "|"
_DAY_KEY_SHAPE = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def day_key(value: date | datetime, calendar: LocalCalendar) -> str:
    """Return the "YYYY-MM-DD" key of the local day containing value."""
    d = calendar.day_of(value)
    return f"{d.year:04d}-{d.month:02d}-{d.day:02d}"


def parse_day_key(key: str, calendar: LocalCalendar) -> datetime | None:
    """Parse a day key back into the local start of that day.

    Returns None for anything that is not a valid "YYYY-MM-DD" string.
    """
    if not isinstance(key, str) or not _DAY_KEY_SHAPE.fullmatch(key):
        return None
    try:
        d = date.fromisoformat(key)
    except ValueError:
        return None
    return calendar.start_of_day(d)


def generated_key(template_id: str, key: str) -> str:
    """Idempotency key of a (template, day) pair."""
    return f"{template_id}{KEY_SEPARATOR}{key}"


def split_generated_key(value: str) -> tuple[str, str] | None:
    """Split a generated key into (template_id, day_key)."""
    template_id, sep, key = value.rpartition(KEY_SEPARATOR)
    if not sep or not template_id or not key:
        return None
    return template_id, key


def template_key_prefix(template_id: str) -> str:
    return f"{template_id}{KEY_SEPARATOR}"
