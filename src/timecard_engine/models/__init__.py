"""ORM models for timecards and their audit trail."""

from timecard_engine.models.audit import AuditLogImmutableError, TimecardAuditLog
from timecard_engine.models.base import Base, TimestampMixin
from timecard_engine.models.timecard import TimecardDailyEntry, TimecardHeader

__all__ = [
    "AuditLogImmutableError",
    "Base",
    "TimecardAuditLog",
    "TimecardDailyEntry",
    "TimecardHeader",
    "TimestampMixin",
]
