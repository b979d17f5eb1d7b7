"""Timecard engine services."""

from timecard_engine.services.audit_log_service import AuditLogService, ProposedChange
from timecard_engine.services.errors import (
    ConcurrentModificationError,
    FieldValidationError,
    InvalidTransitionError,
    TimecardError,
    TimecardNotFoundError,
    TransitionResult,
)
from timecard_engine.services.field_edits import DailyFieldEdit, FieldEditAdapter
from timecard_engine.services.fields import ActionType, CanonicalField
from timecard_engine.services.history_reader import AuditLogFilter, HistoryReader
from timecard_engine.services.locking_service import LockingService
from timecard_engine.services.rejection_service import RejectionEditOrchestrator
from timecard_engine.services.state_machine import (
    Actor,
    ActorRole,
    TimecardStateMachine,
    TimecardStatus,
)
from timecard_engine.services.timecard_service import TimecardService
from timecard_engine.services.value_codec import ValueCodec

__all__ = [
    "ActionType",
    "Actor",
    "ActorRole",
    "AuditLogFilter",
    "AuditLogService",
    "CanonicalField",
    "ConcurrentModificationError",
    "DailyFieldEdit",
    "FieldEditAdapter",
    "FieldValidationError",
    "HistoryReader",
    "InvalidTransitionError",
    "LockingService",
    "ProposedChange",
    "RejectionEditOrchestrator",
    "TimecardError",
    "TimecardNotFoundError",
    "TimecardService",
    "TimecardStateMachine",
    "TimecardStatus",
    "TransitionResult",
    "ValueCodec",
]
