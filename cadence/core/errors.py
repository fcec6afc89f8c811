"""Error types for cadence.

Distinct error types separate storage failures (surfaced to the caller)
from conditions the materializer recovers from on its own.
"""


class CadenceError(Exception):
    """Base class for all cadence errors."""


class StorageError(CadenceError):
    """Raised when a fetch, insert, delete or commit against the store fails.

    Propagated to the caller and never retried internally. The original
    database exception is kept as __cause__.
    """

    def __init__(self, operation: str, message: str | None = None):
        self.operation = operation
        self.message = message or f"Storage operation failed: {operation}"
        super().__init__(self.message)


class RecurrenceDecodeError(CadenceError):
    """Raised by the strict decoder when a stored recurrence blob is corrupted."""


class DuplicateInstanceError(CadenceError):
    """Raised when an instance with the same generated key already exists.

    This is an idempotence signal, not a failure: the materializer converts
    it into a no-op.
    """

    def __init__(self, generated_key: str):
        self.generated_key = generated_key
        super().__init__(f"Instance already materialized: {generated_key}")


class MissingActivityError(CadenceError):
    """Raised when an activity named in an update plan cannot be loaded."""

    def __init__(self, activity_id: str):
        self.activity_id = activity_id
        super().__init__(f"Could not fetch activity {activity_id}.")
