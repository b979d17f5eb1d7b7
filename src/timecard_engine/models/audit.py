"""Append-only timecard audit log model."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from timecard_engine.models.base import Base


class AuditLogImmutableError(Exception):
    """Raised when code attempts to modify or delete an audit row."""


class TimecardAuditLog(Base):
    """One field-level change made to a timecard in one interaction.

    Rows are written once by the audit log service and never updated or
    deleted. ``timecard_id`` is a lookup reference only, the header does not
    own or point back at its audit rows.
    """

    __tablename__ = "timecard_audit_log"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    timecard_id: Mapped[UUID] = mapped_column(nullable=False)
    change_id: Mapped[UUID] = mapped_column(nullable=False)
    field_name: Mapped[str] = mapped_column(String, nullable=False)
    old_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    new_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_by: Mapped[UUID] = mapped_column(nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    action_type: Mapped[str] = mapped_column(String, nullable=False)
    work_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "field_name IN ('check_in', 'break_start', 'break_end', 'check_out', "
            "'status', 'rejection_reason', 'rejected_fields')",
            name="timecard_audit_log_field_name_check",
        ),
        CheckConstraint(
            "action_type IN ('user_edit', 'admin_edit', 'rejection_edit', 'status_change')",
            name="timecard_audit_log_action_type_check",
        ),
        Index("idx_timecard_audit_log_timecard", "timecard_id", "changed_at"),
        Index("idx_timecard_audit_log_change", "change_id"),
    )

    def to_dict(self) -> dict[str, Any]:
        """Serialize using the persisted field names."""
        return {
            "id": self.id,
            "timecard_id": self.timecard_id,
            "change_id": self.change_id,
            "field_name": self.field_name,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at,
            "action_type": self.action_type,
            "work_date": self.work_date,
        }


@event.listens_for(TimecardAuditLog, "before_update")
def _block_audit_update(mapper: Any, connection: Any, target: TimecardAuditLog) -> None:
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be updated")


@event.listens_for(TimecardAuditLog, "before_delete")
def _block_audit_delete(mapper: Any, connection: Any, target: TimecardAuditLog) -> None:
    raise AuditLogImmutableError(f"Audit log entry {target.id} cannot be deleted")
