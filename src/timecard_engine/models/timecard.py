"""Timecard header and daily entry models."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timecard_engine.models.base import Base, TimestampMixin


class TimecardHeader(Base, TimestampMixin):
    """One user's time submission for one project and pay period."""

    __tablename__ = "timecard_headers"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    project_id: Mapped[UUID] = mapped_column(nullable=False, index=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rejected_fields: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)

    # Totals are maintained by the totals calculator
    pay_rate: Mapped[Decimal] = mapped_column(
        Numeric(8, 2), nullable=False, default=Decimal("0")
    )
    total_hours: Mapped[Decimal] = mapped_column(
        Numeric(6, 2), nullable=False, default=Decimal("0")
    )
    total_break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pay: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0")
    )

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)
    admin_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_edited_by: Mapped[UUID | None] = mapped_column(nullable=True)

    # Optimistic concurrency token, bumped by every lifecycle operation
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "project_id",
            "period_start",
            name="timecard_headers_user_project_period_unique",
        ),
        CheckConstraint(
            "status IN ('draft', 'submitted', 'approved', 'rejected', 'edited_draft')",
            name="timecard_headers_status_check",
        ),
        CheckConstraint("period_end >= period_start", name="timecard_headers_period_check"),
        CheckConstraint(
            "rejection_reason IS NULL OR status = 'rejected'",
            name="timecard_headers_rejection_reason_check",
        ),
    )

    # Relationships
    daily_entries: Mapped[list[TimecardDailyEntry]] = relationship(
        back_populates="header",
        cascade="all, delete-orphan",
        order_by="TimecardDailyEntry.work_date",
        lazy="selectin",
    )

    def entry_for(self, work_date: date) -> TimecardDailyEntry | None:
        """Return the daily entry for a work date, if any."""
        for entry in self.daily_entries:
            if entry.work_date == work_date:
                return entry
        return None

    @property
    def work_dates(self) -> list[date]:
        """Work dates of the daily entries in calendar order."""
        return sorted(entry.work_date for entry in self.daily_entries)


class TimecardDailyEntry(Base, TimestampMixin):
    """Check-in, break and check-out times for one work date."""

    __tablename__ = "timecard_daily_entries"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    timecard_id: Mapped[UUID] = mapped_column(
        ForeignKey("timecard_headers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)

    check_in: Mapped[time | None] = mapped_column(Time, nullable=True)
    break_start: Mapped[time | None] = mapped_column(Time, nullable=True)
    break_end: Mapped[time | None] = mapped_column(Time, nullable=True)
    check_out: Mapped[time | None] = mapped_column(Time, nullable=True)

    hours_worked: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("0")
    )
    break_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_pay: Mapped[Decimal] = mapped_column(
        Numeric(8, 2), nullable=False, default=Decimal("0")
    )

    __table_args__ = (
        UniqueConstraint("timecard_id", "work_date", name="timecard_daily_entries_date_unique"),
        CheckConstraint("hours_worked >= 0", name="timecard_daily_entries_hours_check"),
        CheckConstraint("daily_pay >= 0", name="timecard_daily_entries_pay_check"),
    )

    header: Mapped[TimecardHeader] = relationship(back_populates="daily_entries")
