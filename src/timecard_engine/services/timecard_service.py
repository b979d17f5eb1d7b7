"""Timecard service - inbound lifecycle operations.

Operations:
- create_draft: first save of a timecard, in draft
- user_edit_draft: owner corrects daily times on a draft
- submit: draft → submitted
- approve: submitted → approved
- reject: submitted → rejected, no edits
- reject_with_edits: submitted → rejected with daily corrections
- admin_edit_draft: approver edits a draft, marking it edited_draft
- resubmit / return_to_draft: leave rejected, clearing the rejection
- reopen: approved → draft for administrative correction

Each operation is one transaction returning a TransitionResult.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timecard_engine.calculators import DailyTotalsCalculator, TotalsCalculator
from timecard_engine.models import TimecardDailyEntry, TimecardHeader
from timecard_engine.notifications import StatusNotifier
from timecard_engine.services.audit_log_service import AuditLogService, ProposedChange
from timecard_engine.services.errors import (
    FieldValidationError,
    InvalidTransitionError,
    TransitionResult,
)
from timecard_engine.services.field_edits import (
    FieldEditAdapter,
    apply_daily_edits,
    check_entry_order,
)
from timecard_engine.services.fields import ActionType, CanonicalField
from timecard_engine.services.locking_service import LockingService
from timecard_engine.services.rejection_service import RejectionEditOrchestrator
from timecard_engine.services.state_machine import (
    Actor,
    ActorRole,
    TimecardStateMachine,
    TimecardStatus,
)
from timecard_engine.services.transaction import OperationOutcome, run_operation
from timecard_engine.services.value_codec import ValueCodec

# Header fields reset whenever a timecard leaves the rejected state
_REJECTION_RESET = (
    ProposedChange(CanonicalField.REJECTION_REASON, None),
    ProposedChange(CanonicalField.REJECTED_FIELDS, None),
)


class TimecardService:
    """Entry point for every timecard mutation."""

    def __init__(
        self,
        session: AsyncSession,
        totals_calculator: TotalsCalculator | None = None,
        notifier: StatusNotifier | None = None,
    ):
        self.session = session
        self.totals_calculator = totals_calculator or DailyTotalsCalculator()
        self.notifier = notifier
        self.audit_service = AuditLogService(session)
        self.locking_service = LockingService(session)
        self.rejection_orchestrator = RejectionEditOrchestrator(
            session, self.totals_calculator, notifier
        )

    async def get_timecard(self, timecard_id: UUID) -> TimecardHeader | None:
        """Load a timecard with its daily entries."""
        result = await self.session.execute(
            select(TimecardHeader).where(TimecardHeader.id == timecard_id)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def create_draft(
        self,
        actor: Actor,
        project_id: UUID,
        period_start: date,
        period_end: date,
        entries: Mapping[date | str, Mapping[str, Any]] | None = None,
        pay_rate: Decimal | None = None,
    ) -> TransitionResult:
        """Create a draft timecard owned by the actor."""

        async def work() -> OperationOutcome:
            if period_end < period_start:
                raise FieldValidationError("period_end must not be before period_start")

            existing = await self.session.execute(
                select(TimecardHeader.id).where(
                    TimecardHeader.user_id == actor.user_id,
                    TimecardHeader.project_id == project_id,
                    TimecardHeader.period_start == period_start,
                )
            )
            if existing.scalar_one_or_none() is not None:
                raise FieldValidationError("A timecard already exists for this period")

            header = TimecardHeader(
                id=uuid4(),
                user_id=actor.user_id,
                project_id=project_id,
                status=TimecardStatus.DRAFT.value,
                period_start=period_start,
                period_end=period_end,
                pay_rate=pay_rate if pay_rate is not None else Decimal("0"),
                version=1,
                daily_entries=[],
            )
            for work_date, day_data in _dated_entries(entries or {}):
                if not period_start <= work_date <= period_end:
                    raise FieldValidationError(
                        f"Work date {work_date.isoformat()} is outside the pay period"
                    )
                header.daily_entries.append(_new_entry(work_date, day_data))

            self.session.add(header)
            await self.session.flush()
            await self.totals_calculator.recalculate(self.session, header)
            return OperationOutcome(
                header=header,
                actor_id=actor.user_id,
                from_status=TimecardStatus.DRAFT.value,
            )

        return await run_operation(self.session, "create_draft", None, work)

    async def user_edit_draft(
        self,
        timecard_id: UUID,
        actor: Actor,
        daily_field_edits: Mapping[Any, Any] | list[Any],
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Owner edits daily times on their own draft."""

        async def work() -> OperationOutcome:
            header = await self._load(timecard_id, expected_version)
            if actor.role != ActorRole.OWNER:
                raise InvalidTransitionError(
                    header.status, header.status, "only the owner may edit their draft"
                )
            self._check_owner(header, actor, header.status)
            if not TimecardStateMachine.is_editable(header.status):
                raise InvalidTransitionError(
                    header.status, header.status, "timecard is not editable in this status"
                )
            return await self._edit_entries(header, actor, daily_field_edits, ActionType.USER_EDIT)

        return await run_operation(self.session, "user_edit_draft", timecard_id, work)

    async def admin_edit_draft(
        self,
        timecard_id: UUID,
        actor: Actor,
        daily_field_edits: Mapping[Any, Any] | list[Any],
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Approver edits a draft directly, outside the rejection flow."""

        async def work() -> OperationOutcome:
            header = await self._load(timecard_id, expected_version)
            TimecardStateMachine.validate_transition(
                header.status, TimecardStatus.EDITED_DRAFT, actor.role
            )
            return await self._edit_entries(
                header,
                actor,
                daily_field_edits,
                ActionType.ADMIN_EDIT,
                to_status=TimecardStatus.EDITED_DRAFT,
            )

        return await run_operation(
            self.session, "admin_edit_draft", timecard_id, work, self.notifier
        )

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def submit(
        self,
        timecard_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Owner submits a draft for approval."""

        async def work() -> OperationOutcome:
            header = await self._load(timecard_id, expected_version)
            if header.status == TimecardStatus.REJECTED:
                raise InvalidTransitionError(
                    header.status, TimecardStatus.SUBMITTED.value, "use resubmit"
                )
            return await self._transition(header, actor, TimecardStatus.SUBMITTED)

        return await run_operation(self.session, "submit", timecard_id, work, self.notifier)

    async def approve(
        self,
        timecard_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Approver accepts a submitted timecard."""

        async def work() -> OperationOutcome:
            header = await self._load(timecard_id, expected_version)
            return await self._transition(header, actor, TimecardStatus.APPROVED)

        return await run_operation(self.session, "approve", timecard_id, work, self.notifier)

    async def reject(
        self,
        timecard_id: UUID,
        actor: Actor,
        reason: str,
        expected_version: int,
    ) -> TransitionResult:
        """Approver rejects a submitted timecard without editing it."""
        return await self.rejection_orchestrator.reject_with_edits(
            timecard_id, {}, reason, actor, expected_version
        )

    async def reject_with_edits(
        self,
        timecard_id: UUID,
        actor: Actor,
        reason: str,
        daily_field_edits: Mapping[Any, Any] | list[Any],
        expected_version: int,
    ) -> TransitionResult:
        """Approver corrects daily times and rejects in one interaction."""
        return await self.rejection_orchestrator.reject_with_edits(
            timecard_id, daily_field_edits, reason, actor, expected_version
        )

    async def resubmit(
        self,
        timecard_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Owner resubmits a rejected timecard."""

        async def work() -> OperationOutcome:
            header = await self._load(timecard_id, expected_version)
            if header.status != TimecardStatus.REJECTED:
                raise InvalidTransitionError(
                    header.status, TimecardStatus.SUBMITTED.value, "only rejected timecards are resubmitted"
                )
            return await self._transition(
                header, actor, TimecardStatus.SUBMITTED, extra_changes=_REJECTION_RESET
            )

        return await run_operation(self.session, "resubmit", timecard_id, work, self.notifier)

    async def return_to_draft(
        self,
        timecard_id: UUID,
        actor: Actor,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Owner takes a rejected timecard back to draft to rework it."""

        async def work() -> OperationOutcome:
            header = await self._load(timecard_id, expected_version)
            if header.status != TimecardStatus.REJECTED:
                raise InvalidTransitionError(
                    header.status, TimecardStatus.DRAFT.value, "only rejected timecards return to draft"
                )
            return await self._transition(
                header, actor, TimecardStatus.DRAFT, extra_changes=_REJECTION_RESET
            )

        return await run_operation(
            self.session, "return_to_draft", timecard_id, work, self.notifier
        )

    async def reopen(
        self,
        timecard_id: UUID,
        actor: Actor,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Admin reopens an approved timecard for correction."""

        async def work() -> OperationOutcome:
            header = await self._load(timecard_id, expected_version)
            if header.status != TimecardStatus.APPROVED:
                raise InvalidTransitionError(
                    header.status, TimecardStatus.DRAFT.value, "only approved timecards are reopened"
                )
            outcome = await self._transition(header, actor, TimecardStatus.DRAFT)
            outcome.reason = reason
            return outcome

        return await run_operation(self.session, "reopen", timecard_id, work, self.notifier)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load(self, timecard_id: UUID, expected_version: int | None) -> TimecardHeader:
        header = await self.locking_service.load(timecard_id)
        self.locking_service.check_version(header, expected_version)
        return header

    @staticmethod
    def _check_owner(header: TimecardHeader, actor: Actor, to_status: str) -> None:
        if actor.role == ActorRole.OWNER and actor.user_id != header.user_id:
            raise InvalidTransitionError(
                header.status, to_status, "actor does not own this timecard"
            )

    async def _transition(
        self,
        header: TimecardHeader,
        actor: Actor,
        to_status: TimecardStatus,
        extra_changes: tuple[ProposedChange, ...] = (),
    ) -> OperationOutcome:
        """Status-only transition with its audit rows."""
        from_status = header.status
        TimecardStateMachine.validate_transition(from_status, to_status, actor.role)
        self._check_owner(header, actor, to_status.value)

        await self.locking_service.claim(header)
        proposals = [ProposedChange(CanonicalField.STATUS, to_status.value), *extra_changes]
        entries = await self.audit_service.record_changes(
            header.id, proposals, actor, ActionType.STATUS_CHANGE
        )

        now = datetime.now(timezone.utc)
        header.status = to_status.value
        if to_status == TimecardStatus.SUBMITTED:
            header.submitted_at = now
        elif to_status == TimecardStatus.APPROVED:
            header.approved_at = now
            header.approved_by = actor.user_id
        elif to_status == TimecardStatus.DRAFT:
            header.submitted_at = None
            header.approved_at = None
            header.approved_by = None
        for change in extra_changes:
            setattr(header, change.field.value, change.value)

        await self.session.flush()
        return OperationOutcome(
            header=header,
            actor_id=actor.user_id,
            from_status=from_status,
            entries=entries,
        )

    async def _edit_entries(
        self,
        header: TimecardHeader,
        actor: Actor,
        daily_field_edits: Mapping[Any, Any] | list[Any],
        action: ActionType,
        to_status: TimecardStatus | None = None,
    ) -> OperationOutcome:
        """Apply daily edits to an editable timecard, auditing the deltas.

        Nothing is claimed or written when every edit is a no-op.
        """
        from_status = header.status
        edits = FieldEditAdapter.for_header(header).parse(daily_field_edits)
        deltas = await self.audit_service.compute_deltas(header.id, edits)
        if not deltas:
            return OperationOutcome(header=header, actor_id=actor.user_id, from_status=from_status)

        await self.locking_service.claim(header)
        proposals: list[Any] = list(edits)
        if to_status is not None:
            proposals.append(ProposedChange(CanonicalField.STATUS, to_status.value))
        entries = await self.audit_service.record_changes(header.id, proposals, actor, action)

        apply_daily_edits(header, edits)
        if to_status is not None:
            header.status = to_status.value
        if action == ActionType.ADMIN_EDIT:
            header.admin_edited = True
        header.last_edited_by = actor.user_id
        await self.totals_calculator.recalculate(self.session, header)

        await self.session.flush()
        return OperationOutcome(
            header=header,
            actor_id=actor.user_id,
            from_status=from_status,
            entries=entries,
        )


def _dated_entries(entries: Mapping[date | str, Mapping[str, Any]]) -> list[tuple[date, Mapping[str, Any]]]:
    dated: dict[date, Mapping[str, Any]] = {}
    for raw_date, day_data in entries.items():
        try:
            work_date = raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date))
        except ValueError:
            raise FieldValidationError(f"Invalid work date {raw_date!r}") from None
        dated[work_date] = day_data or {}
    return sorted(dated.items())


def _new_entry(work_date: date, day_data: Mapping[str, Any]) -> TimecardDailyEntry:
    adapter = FieldEditAdapter(uuid4(), [work_date])
    entry = TimecardDailyEntry(id=uuid4(), work_date=work_date)
    for edit in adapter.from_mapping({work_date: day_data}):
        setattr(entry, edit.field.value, ValueCodec.parse_time(edit.value))
    check_entry_order(entry)
    return entry
