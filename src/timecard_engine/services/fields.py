"""Canonical audit field names and action types."""

from __future__ import annotations

from enum import Enum


class CanonicalField(str, Enum):
    """Storage-agnostic field names written to the audit log."""

    CHECK_IN = "check_in"
    BREAK_START = "break_start"
    BREAK_END = "break_end"
    CHECK_OUT = "check_out"
    STATUS = "status"
    REJECTION_REASON = "rejection_reason"
    REJECTED_FIELDS = "rejected_fields"

    @property
    def is_daily(self) -> bool:
        return self in DAILY_FIELDS


class ActionType(str, Enum):
    """Kind of interaction that produced a group of audit rows."""

    USER_EDIT = "user_edit"
    ADMIN_EDIT = "admin_edit"
    REJECTION_EDIT = "rejection_edit"
    STATUS_CHANGE = "status_change"


# In the order they occur during a work day
DAILY_FIELDS: tuple[CanonicalField, ...] = (
    CanonicalField.CHECK_IN,
    CanonicalField.BREAK_START,
    CanonicalField.BREAK_END,
    CanonicalField.CHECK_OUT,
)

HEADER_FIELDS: tuple[CanonicalField, ...] = (
    CanonicalField.STATUS,
    CanonicalField.REJECTION_REASON,
    CanonicalField.REJECTED_FIELDS,
)

# Column and wire names that callers use for the daily time fields
FIELD_ALIASES: dict[str, CanonicalField] = {
    "check_in": CanonicalField.CHECK_IN,
    "check_in_time": CanonicalField.CHECK_IN,
    "daily_check_in": CanonicalField.CHECK_IN,
    "break_start": CanonicalField.BREAK_START,
    "break_start_time": CanonicalField.BREAK_START,
    "daily_break_start": CanonicalField.BREAK_START,
    "break_end": CanonicalField.BREAK_END,
    "break_end_time": CanonicalField.BREAK_END,
    "daily_break_end": CanonicalField.BREAK_END,
    "check_out": CanonicalField.CHECK_OUT,
    "check_out_time": CanonicalField.CHECK_OUT,
    "daily_check_out": CanonicalField.CHECK_OUT,
}


def canonical_daily_field(name: str) -> CanonicalField | None:
    """Resolve a column or wire name to its canonical daily field."""
    return FIELD_ALIASES.get(name.strip().lower()) if isinstance(name, str) else None
