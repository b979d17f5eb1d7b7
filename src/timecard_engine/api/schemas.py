"""Pydantic schemas for API request/response models."""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Timecard schemas
# ============================================================================


class DailyEntryResponse(BaseModel):
    """Schema for one day of a timecard."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    work_date: date
    check_in: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    check_out: time | None = None
    hours_worked: Decimal
    break_minutes: int
    daily_pay: Decimal


class TimecardResponse(BaseModel):
    """Schema for timecard response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    project_id: UUID
    status: str
    period_start: date
    period_end: date
    rejection_reason: str | None = None
    rejected_fields: list[str] | None = None
    pay_rate: Decimal
    total_hours: Decimal
    total_break_minutes: int
    total_pay: Decimal
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    admin_edited: bool
    last_edited_by: UUID | None = None
    version: int
    daily_entries: list[DailyEntryResponse] = Field(default_factory=list)


class TimecardCreate(BaseModel):
    """Schema for creating a draft timecard."""

    project_id: UUID
    period_start: date
    period_end: date
    pay_rate: Decimal | None = None
    entries: dict[date, dict[str, str | None]] = Field(default_factory=dict)


class VersionedRequest(BaseModel):
    """Body for status-only operations."""

    expected_version: int | None = None


class ReopenRequest(VersionedRequest):
    """Schema for reopening an approved timecard."""

    reason: str | None = None


class EditRequest(VersionedRequest):
    """Daily corrections in any supported shape.

    ``updates`` takes flat ``<field>_day_<n>`` keys, ``daily_updates`` takes
    ``{"day_<n>": {...}}`` maps and ``edits`` takes ``{work_date: {...}}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    updates: dict[str, Any] | None = None
    daily_updates: dict[str, dict[str, Any]] | None = Field(default=None, alias="dailyUpdates")
    edits: dict[str, dict[str, Any]] | None = None

    def payload(self) -> dict[str, Any]:
        """The first non-empty edit shape."""
        for shape in (self.edits, self.daily_updates, self.updates):
            if shape:
                return shape
        return {}


class RejectRequest(EditRequest):
    """Schema for rejecting a timecard, optionally with corrections."""

    reason: str = Field(..., min_length=1)
    expected_version: int


class TransitionResponse(BaseModel):
    """Schema for the result of a lifecycle operation."""

    timecard: TimecardResponse
    change_id: UUID | None = None
    audit_entries: int = 0


# ============================================================================
# Audit history schemas
# ============================================================================


class AuditEntryResponse(BaseModel):
    """Schema for one audit row."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    timecard_id: UUID
    change_id: UUID
    field_name: str
    old_value: str | None = None
    new_value: str | None = None
    changed_by: UUID
    changed_at: datetime
    action_type: str
    work_date: date | None = None


class AuditGroupResponse(BaseModel):
    """Schema for one interaction in grouped history."""

    model_config = ConfigDict(from_attributes=True)

    change_id: UUID
    changed_by: UUID
    changed_at: datetime
    action_type: str
    changes: list[AuditEntryResponse]


class AuditHistoryResponse(BaseModel):
    """Schema for history listings, flat or grouped."""

    timecard_id: UUID
    entries: list[AuditEntryResponse] | None = None
    groups: list[AuditGroupResponse] | None = None


class AuditStatisticsResponse(BaseModel):
    """Schema for audit history statistics."""

    model_config = ConfigDict(from_attributes=True)

    total_changes: int
    total_interactions: int
    changes_by_action: dict[str, int]
    changes_by_field: dict[str, int]
    last_modified: datetime | None = None
    last_modified_by: UUID | None = None


class RejectedFieldsResponse(BaseModel):
    """Schema for the rejected-fields check."""

    timecard_id: UUID
    rejected_fields: list[str]
    derived_rejected_fields: list[str]
    consistent: bool


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    retryable: bool = False
