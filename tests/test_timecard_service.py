"""Tests for timecard lifecycle operations."""

from datetime import date, time
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from timecard_engine.models import TimecardAuditLog, TimecardDailyEntry, TimecardHeader
from timecard_engine.notifications import StatusChangeEvent
from timecard_engine.services.state_machine import Actor, ActorRole
from timecard_engine.services.timecard_service import TimecardService

pytestmark = pytest.mark.asyncio

MONDAY = date(2024, 1, 15)
TUESDAY = date(2024, 1, 16)


class RecordingNotifier:
    def __init__(self):
        self.events: list[StatusChangeEvent] = []

    async def notify(self, event: StatusChangeEvent) -> None:
        self.events.append(event)


class BrokenNotifier:
    async def notify(self, event: StatusChangeEvent) -> None:
        raise ConnectionError("mail server unreachable")


async def audit_rows(session_factory, timecard_id) -> list[TimecardAuditLog]:
    async with session_factory() as fresh:
        result = await fresh.execute(
            select(TimecardAuditLog)
            .where(TimecardAuditLog.timecard_id == timecard_id)
            .order_by(TimecardAuditLog.changed_at, TimecardAuditLog.field_name)
        )
        return list(result.scalars().all())


async def stored_header(session_factory, timecard_id) -> TimecardHeader:
    async with session_factory() as fresh:
        return await fresh.get(TimecardHeader, timecard_id)


async def stored_entry(session_factory, timecard_id, work_date) -> TimecardDailyEntry:
    async with session_factory() as fresh:
        result = await fresh.execute(
            select(TimecardDailyEntry).where(
                TimecardDailyEntry.timecard_id == timecard_id,
                TimecardDailyEntry.work_date == work_date,
            )
        )
        return result.scalar_one()


class TestApprove:
    """submitted → approved."""

    async def test_plain_approve(self, session, session_factory, submitted_timecard, approver):
        service = TimecardService(session)
        result = await service.approve(submitted_timecard.id, approver)

        assert result.ok, result.error
        [row] = await audit_rows(session_factory, submitted_timecard.id)
        assert row.field_name == "status"
        assert (row.old_value, row.new_value) == ("submitted", "approved")
        assert row.action_type == "status_change"
        assert row.work_date is None

        header = await stored_header(session_factory, submitted_timecard.id)
        assert header.status == "approved"
        assert header.approved_by == approver.user_id
        assert header.approved_at is not None
        assert header.version == 2

    async def test_approve_draft_is_invalid(
        self, session, session_factory, draft_timecard, approver
    ):
        service = TimecardService(session)
        result = await service.approve(draft_timecard.id, approver)

        assert not result.ok
        assert result.error_code == "INVALID_TRANSITION"
        assert await audit_rows(session_factory, draft_timecard.id) == []
        header = await stored_header(session_factory, draft_timecard.id)
        assert header.status == "draft"
        assert header.version == 1

    async def test_owner_cannot_approve(self, session, submitted_timecard, owner):
        result = await TimecardService(session).approve(submitted_timecard.id, owner)
        assert result.error_code == "INVALID_TRANSITION"

    async def test_stale_version(self, session, session_factory, submitted_timecard, approver):
        result = await TimecardService(session).approve(
            submitted_timecard.id, approver, expected_version=7
        )

        assert result.error_code == "CONCURRENT_MODIFICATION"
        assert await audit_rows(session_factory, submitted_timecard.id) == []

    async def test_unknown_timecard(self, session, approver):
        result = await TimecardService(session).approve(uuid4(), approver)
        assert result.error_code == "NOT_FOUND"


class TestSubmit:
    """draft / edited_draft → submitted."""

    async def test_owner_submits_draft(self, session, session_factory, draft_timecard, owner):
        result = await TimecardService(session).submit(draft_timecard.id, owner)

        assert result.ok, result.error
        [row] = await audit_rows(session_factory, draft_timecard.id)
        assert (row.old_value, row.new_value) == ("draft", "submitted")
        assert row.changed_by == owner.user_id

        header = await stored_header(session_factory, draft_timecard.id)
        assert header.status == "submitted"
        assert header.submitted_at is not None

    async def test_other_user_cannot_submit(self, session, draft_timecard):
        stranger = Actor(user_id=uuid4(), role=ActorRole.OWNER)
        result = await TimecardService(session).submit(draft_timecard.id, stranger)
        assert result.error_code == "INVALID_TRANSITION"

    async def test_rejected_goes_through_resubmit(self, session, timecard_factory, owner):
        rejected = await timecard_factory("rejected")
        result = await TimecardService(session).submit(rejected.id, owner)
        assert result.error_code == "INVALID_TRANSITION"


class TestReject:
    """Plain rejection through the service."""

    async def test_plain_reject(self, session, session_factory, submitted_timecard, approver):
        result = await TimecardService(session).reject(
            submitted_timecard.id, approver, "Missing project code", expected_version=1
        )

        assert result.ok, result.error
        rows = await audit_rows(session_factory, submitted_timecard.id)
        assert sorted(r.field_name for r in rows) == ["rejection_reason", "status"]
        assert {r.action_type for r in rows} == {"status_change"}
        header = await stored_header(session_factory, submitted_timecard.id)
        assert header.rejected_fields == []

    async def test_reject_with_edits(self, session, session_factory, submitted_timecard, approver):
        result = await TimecardService(session).reject_with_edits(
            submitted_timecard.id,
            approver,
            "Late arrival",
            {"check_in_time_day_0": "09:30:00"},
            expected_version=1,
        )

        assert result.ok, result.error
        assert len(result.entries) == 3
        header = await stored_header(session_factory, submitted_timecard.id)
        assert header.rejected_fields == ["check_in"]


class TestDraftEdits:
    """Edits on editable timecards."""

    async def test_admin_edit_marks_edited_draft(
        self, session, session_factory, draft_timecard, approver
    ):
        result = await TimecardService(session).admin_edit_draft(
            draft_timecard.id, approver, {"day_1": {"check_out": "18:00"}}
        )

        assert result.ok, result.error
        rows = await audit_rows(session_factory, draft_timecard.id)
        assert [r.field_name for r in rows] == ["check_out", "status"]
        assert {r.action_type for r in rows} == {"admin_edit"}
        assert len({r.change_id for r in rows}) == 1

        header = await stored_header(session_factory, draft_timecard.id)
        assert header.status == "edited_draft"
        assert header.admin_edited is True
        assert header.last_edited_by == approver.user_id
        assert header.total_hours == Decimal("15.00")

        entry = await stored_entry(session_factory, draft_timecard.id, TUESDAY)
        assert entry.check_out == time(18, 0)
        assert entry.hours_worked == Decimal("8.00")

    async def test_admin_noop_edit_changes_nothing(
        self, session, session_factory, draft_timecard, approver
    ):
        result = await TimecardService(session).admin_edit_draft(
            draft_timecard.id, approver, {"day_0": {"check_in": "9:00 AM"}}
        )

        assert result.ok, result.error
        assert result.entries == []
        assert await audit_rows(session_factory, draft_timecard.id) == []
        header = await stored_header(session_factory, draft_timecard.id)
        assert header.status == "draft"
        assert header.version == 1

    async def test_admin_edit_on_submitted_is_invalid(
        self, session, submitted_timecard, approver
    ):
        result = await TimecardService(session).admin_edit_draft(
            submitted_timecard.id, approver, {"day_1": {"check_out": "18:00"}}
        )
        assert result.error_code == "INVALID_TRANSITION"

    async def test_owner_cannot_admin_edit(self, session, draft_timecard, owner):
        result = await TimecardService(session).admin_edit_draft(
            draft_timecard.id, owner, {"day_1": {"check_out": "18:00"}}
        )
        assert result.error_code == "INVALID_TRANSITION"

    async def test_user_edit_keeps_status(self, session, session_factory, draft_timecard, owner):
        result = await TimecardService(session).user_edit_draft(
            draft_timecard.id, owner, {"day_0": {"break_start": "12:30", "break_end": "13:00"}}
        )

        assert result.ok, result.error
        rows = await audit_rows(session_factory, draft_timecard.id)
        assert [r.field_name for r in rows] == ["break_start"]
        assert rows[0].action_type == "user_edit"
        header = await stored_header(session_factory, draft_timecard.id)
        assert header.status == "draft"
        assert header.admin_edited is False

    async def test_user_edit_on_submitted_is_invalid(
        self, session, session_factory, submitted_timecard, owner
    ):
        result = await TimecardService(session).user_edit_draft(
            submitted_timecard.id, owner, {"day_0": {"check_in": "08:00"}}
        )

        assert result.error_code == "INVALID_TRANSITION"
        entry = await stored_entry(session_factory, submitted_timecard.id, MONDAY)
        assert entry.check_in == time(9, 0)

    async def test_edit_back_and_forth_records_only_real_changes(
        self, session, session_factory, draft_timecard, approver
    ):
        service = TimecardService(session)
        await service.admin_edit_draft(draft_timecard.id, approver, {"day_0": {"check_in": "09:30"}})
        await service.admin_edit_draft(draft_timecard.id, approver, {"day_0": {"check_in": "09:00"}})
        await service.admin_edit_draft(
            draft_timecard.id, approver, {"day_0": {"check_in": "09:00:00"}}
        )

        rows = await audit_rows(session_factory, draft_timecard.id)
        check_in_rows = [r for r in rows if r.field_name == "check_in"]
        assert [(r.old_value, r.new_value) for r in check_in_rows] == [
            ("09:00:00", "09:30:00"),
            ("09:30:00", "09:00:00"),
        ]
        assert all(r.old_value != r.new_value for r in rows)


class TestLeavingRejected:
    """resubmit / return_to_draft clear the rejection."""

    async def test_resubmit_clears_rejection(
        self, session, session_factory, submitted_timecard, approver, owner
    ):
        service = TimecardService(session)
        await service.reject_with_edits(
            submitted_timecard.id,
            approver,
            "Late arrival",
            {"day_0": {"check_in": "09:30"}},
            expected_version=1,
        )
        result = await service.resubmit(submitted_timecard.id, owner)

        assert result.ok, result.error
        assert sorted(e.field_name for e in result.entries) == [
            "rejected_fields",
            "rejection_reason",
            "status",
        ]
        assert {e.action_type for e in result.entries} == {"status_change"}

        header = await stored_header(session_factory, submitted_timecard.id)
        assert header.status == "submitted"
        assert header.rejection_reason is None
        assert header.rejected_fields is None

    async def test_return_to_draft(
        self, session, session_factory, submitted_timecard, approver, owner
    ):
        service = TimecardService(session)
        await service.reject(submitted_timecard.id, approver, "Wrong project", expected_version=1)
        result = await service.return_to_draft(submitted_timecard.id, owner)

        assert result.ok, result.error
        assert sorted(e.field_name for e in result.entries) == ["rejection_reason", "status"]
        header = await stored_header(session_factory, submitted_timecard.id)
        assert header.status == "draft"
        assert header.submitted_at is None

    async def test_resubmit_requires_rejected(self, session, submitted_timecard, owner):
        result = await TimecardService(session).resubmit(submitted_timecard.id, owner)
        assert result.error_code == "INVALID_TRANSITION"


class TestReopen:
    """approved → draft by an admin."""

    async def test_admin_reopens(self, session, session_factory, timecard_factory, admin):
        approved = await timecard_factory("approved")
        result = await TimecardService(session).reopen(approved.id, admin, reason="Wrong rate")

        assert result.ok, result.error
        header = await stored_header(session_factory, approved.id)
        assert header.status == "draft"
        assert header.approved_at is None
        assert header.approved_by is None

    async def test_approver_cannot_reopen(self, session, timecard_factory, approver):
        approved = await timecard_factory("approved")
        result = await TimecardService(session).reopen(approved.id, approver)
        assert result.error_code == "INVALID_TRANSITION"


class TestCreateDraft:
    """First save of a timecard."""

    async def test_create_with_entries(self, session, session_factory, owner):
        project_id = uuid4()
        result = await TimecardService(session).create_draft(
            owner,
            project_id=project_id,
            period_start=MONDAY,
            period_end=TUESDAY,
            entries={
                "2024-01-15": {"check_in_time": "08:00", "check_out_time": "16:30"},
                TUESDAY: {"check_in": "09:00", "check_out": "17:00"},
            },
            pay_rate=Decimal("30.00"),
        )

        assert result.ok, result.error
        assert result.entries == []
        header = await stored_header(session_factory, result.timecard.id)
        assert header.status == "draft"
        assert header.user_id == owner.user_id
        assert header.total_hours == Decimal("16.50")
        assert header.total_pay == Decimal("495.00")
        assert await audit_rows(session_factory, header.id) == []

    async def test_duplicate_period(self, session, owner):
        service = TimecardService(session)
        project_id = uuid4()
        first = await service.create_draft(owner, project_id, MONDAY, TUESDAY)
        second = await service.create_draft(owner, project_id, MONDAY, TUESDAY)

        assert first.ok
        assert second.error_code == "VALIDATION_ERROR"

    async def test_entry_outside_period(self, session, owner):
        result = await TimecardService(session).create_draft(
            owner, uuid4(), MONDAY, TUESDAY, entries={"2024-01-20": {"check_in": "09:00"}}
        )
        assert result.error_code == "VALIDATION_ERROR"

    async def test_inverted_period(self, session, owner):
        result = await TimecardService(session).create_draft(owner, uuid4(), TUESDAY, MONDAY)
        assert result.error_code == "VALIDATION_ERROR"

    async def test_break_out_of_order(self, session, owner):
        result = await TimecardService(session).create_draft(
            owner,
            uuid4(),
            MONDAY,
            TUESDAY,
            entries={
                MONDAY: {
                    "check_in": "09:00",
                    "break_start": "13:00",
                    "break_end": "12:00",
                    "check_out": "17:00",
                }
            },
        )
        assert result.error_code == "VALIDATION_ERROR"


class TestNotifications:
    """The notifier runs after commit and cannot undo it."""

    async def test_event_after_commit(self, session, submitted_timecard, approver, owner):
        notifier = RecordingNotifier()
        result = await TimecardService(session, notifier=notifier).approve(
            submitted_timecard.id, approver
        )

        [event] = notifier.events
        assert event.timecard_id == submitted_timecard.id
        assert event.owner_id == owner.user_id
        assert (event.from_status, event.to_status) == ("submitted", "approved")
        assert event.change_id == result.change_id

    async def test_failed_notification_keeps_change(
        self, session, session_factory, submitted_timecard, approver
    ):
        result = await TimecardService(session, notifier=BrokenNotifier()).reject(
            submitted_timecard.id, approver, "Missing hours", expected_version=1
        )

        assert result.ok, result.error
        header = await stored_header(session_factory, submitted_timecard.id)
        assert header.status == "rejected"

    async def test_no_event_on_failure(self, session, draft_timecard, approver):
        notifier = RecordingNotifier()
        await TimecardService(session, notifier=notifier).approve(draft_timecard.id, approver)
        assert notifier.events == []
