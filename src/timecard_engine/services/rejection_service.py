"""Reject-with-edits orchestration.

The one interaction where daily-entry corrections and a status transition
must land together: either every edit, the rejection and all of their audit
rows commit under one change_id, or nothing does.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timecard_engine.calculators import DailyTotalsCalculator, TotalsCalculator
from timecard_engine.notifications import StatusNotifier
from timecard_engine.services.audit_log_service import AuditLogService, ProposedChange
from timecard_engine.services.errors import FieldValidationError, TransitionResult
from timecard_engine.services.field_edits import FieldEditAdapter, apply_daily_edits
from timecard_engine.services.fields import DAILY_FIELDS, ActionType, CanonicalField
from timecard_engine.services.locking_service import LockingService
from timecard_engine.services.state_machine import Actor, TimecardStateMachine, TimecardStatus
from timecard_engine.services.transaction import OperationOutcome, run_operation


class RejectionEditOrchestrator:
    """Applies an approver's daily corrections and the rejection atomically.

    Steps, inside one transaction:
    1. Validate submitted → rejected for the actor
    2. Work out which daily fields really change (rejected_fields)
    3. Claim the timecard version
    4. Record every delta in one audit call (one change_id)
    5. Apply the edits, status, reason and rejected_fields; recompute totals
    """

    def __init__(
        self,
        session: AsyncSession,
        totals_calculator: TotalsCalculator | None = None,
        notifier: StatusNotifier | None = None,
    ):
        self.session = session
        self.audit_service = AuditLogService(session)
        self.locking_service = LockingService(session)
        self.totals_calculator = totals_calculator or DailyTotalsCalculator()
        self.notifier = notifier

    async def reject_with_edits(
        self,
        timecard_id: UUID,
        daily_field_edits: Mapping[Any, Any] | list[Any] | None,
        rejection_reason: str,
        actor: Actor,
        expected_version: int,
    ) -> TransitionResult:
        """Reject a submitted timecard, applying any daily corrections with it.

        ``expected_version`` is the version the approver reviewed. A writer
        that committed after that read makes this call fail with
        ConcurrentModificationError, even when it already moved the status.
        """

        async def work() -> OperationOutcome:
            return await self.apply(
                timecard_id, daily_field_edits, rejection_reason, actor, expected_version
            )

        return await run_operation(
            self.session, "reject_with_edits", timecard_id, work, self.notifier
        )

    async def apply(
        self,
        timecard_id: UUID,
        daily_field_edits: Mapping[Any, Any] | list[Any] | None,
        rejection_reason: str,
        actor: Actor,
        expected_version: int,
    ) -> OperationOutcome:
        """Perform the rejection inside the caller's transaction."""
        if rejection_reason is None or not str(rejection_reason).strip():
            raise FieldValidationError(
                "A reason is required when rejecting a timecard",
                field_name=CanonicalField.REJECTION_REASON.value,
            )
        if expected_version is None:
            raise FieldValidationError("The reviewed version is required when rejecting a timecard")

        header = await self.locking_service.load(timecard_id)
        self.locking_service.check_version(header, expected_version)
        from_status = header.status
        TimecardStateMachine.validate_transition(from_status, TimecardStatus.REJECTED, actor.role)

        edits = FieldEditAdapter.for_header(header).parse(daily_field_edits)
        daily_deltas = await self.audit_service.compute_deltas(header.id, edits)
        changed = {delta.field for delta in daily_deltas}
        rejected_fields = [f.value for f in DAILY_FIELDS if f in changed]

        await self.locking_service.claim(header)

        proposals: list[Any] = list(edits)
        proposals.append(ProposedChange(CanonicalField.STATUS, TimecardStatus.REJECTED.value))
        proposals.append(ProposedChange(CanonicalField.REJECTION_REASON, rejection_reason))
        if not rejected_fields:
            # A non-empty set is already spelled out by this change's daily
            # rows; only a reset to empty needs its own row.
            proposals.append(ProposedChange(CanonicalField.REJECTED_FIELDS, rejected_fields))

        action = ActionType.REJECTION_EDIT if daily_deltas else ActionType.STATUS_CHANGE
        entries = await self.audit_service.record_changes(header.id, proposals, actor, action)

        apply_daily_edits(header, edits)
        header.status = TimecardStatus.REJECTED.value
        header.rejection_reason = rejection_reason
        header.rejected_fields = rejected_fields
        header.approved_at = None
        header.approved_by = None
        if daily_deltas:
            header.last_edited_by = actor.user_id
            await self.totals_calculator.recalculate(self.session, header)

        await self.session.flush()
        return OperationOutcome(
            header=header,
            actor_id=actor.user_id,
            from_status=from_status,
            entries=entries,
            reason=rejection_reason,
        )
