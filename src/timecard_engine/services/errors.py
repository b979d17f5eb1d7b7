"""Error kinds and the result type returned by lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from timecard_engine.models import TimecardAuditLog, TimecardHeader


class TimecardError(Exception):
    """Base class for expected lifecycle failures.

    Raised inside a transaction so the session rolls back everything the
    operation attempted. ``retryable`` tells callers whether re-reading and
    retrying can succeed.
    """

    code = "TIMECARD_ERROR"
    retryable = False


class InvalidTransitionError(TimecardError):
    """Raised when a status change is not legal or not permitted for the actor."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConcurrentModificationError(TimecardError):
    """Raised when another writer committed a change to the timecard first."""

    code = "CONCURRENT_MODIFICATION"
    retryable = True

    def __init__(
        self,
        timecard_id: UUID,
        expected_version: int,
        actual_version: int | None = None,
    ):
        self.timecard_id = timecard_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = f"Timecard {timecard_id} was modified concurrently (expected version {expected_version}"
        if actual_version is not None:
            msg += f", found {actual_version}"
        super().__init__(msg + ")")


class TimecardNotFoundError(TimecardError):
    """Raised when a timecard or one of its daily entries does not exist."""

    code = "NOT_FOUND"

    def __init__(self, timecard_id: UUID, detail: str | None = None):
        self.timecard_id = timecard_id
        self.detail = detail
        super().__init__(detail or f"Timecard {timecard_id} not found")


class FieldValidationError(TimecardError):
    """Raised when a proposed value fails shape validation."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field_name: str | None = None):
        self.field_name = field_name
        super().__init__(message)


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a lifecycle operation.

    Always check ``ok``. On failure ``error`` carries one of the
    ``TimecardError`` kinds and nothing was persisted.
    """

    ok: bool
    timecard: TimecardHeader | None = None
    entries: list[TimecardAuditLog] = field(default_factory=list)
    error: TimecardError | None = None

    @property
    def change_id(self) -> UUID | None:
        """Interaction id shared by the audit rows, if any were written."""
        return self.entries[0].change_id if self.entries else None

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None

    @classmethod
    def success(
        cls,
        timecard: TimecardHeader,
        entries: list[TimecardAuditLog] | None = None,
    ) -> TransitionResult:
        return cls(ok=True, timecard=timecard, entries=list(entries or []))

    @classmethod
    def failure(cls, error: TimecardError) -> TransitionResult:
        return cls(ok=False, error=error)
