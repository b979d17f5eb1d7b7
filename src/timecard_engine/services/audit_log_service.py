"""Audit log service - the sole writer of timecard audit rows.

Converts one caller action into zero or more field-level rows:
- One change_id and one changed_at per call, shared by every row
- Old values read from the stored header / daily entry
- No-op suppression on codec-normalized values
- Canonical field names only
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from timecard_engine.models import TimecardAuditLog, TimecardDailyEntry, TimecardHeader
from timecard_engine.services.errors import FieldValidationError, TimecardNotFoundError
from timecard_engine.services.fields import ActionType, CanonicalField
from timecard_engine.services.state_machine import Actor
from timecard_engine.services.value_codec import ValueCodec

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposedChange:
    """A new value proposed for one field.

    ``work_date`` is required for daily fields and must be None for header
    fields.
    """

    field: CanonicalField
    value: Any
    work_date: date | None = None


@dataclass(frozen=True)
class FieldDelta:
    """A change that survived no-op suppression, not yet persisted."""

    field: CanonicalField
    work_date: date | None
    old_value: str | None
    new_value: str | None


class AuditLogService:
    """Computes and persists field deltas for a timecard.

    Never mutates the header or daily entries. Callers apply the actual
    values in the same transaction, after this service has read the old
    ones.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record_changes(
        self,
        timecard_id: UUID,
        proposed_changes: Iterable[Any],
        actor: Actor | UUID,
        action_type: ActionType | str,
    ) -> list[TimecardAuditLog]:
        """Persist one audit row per changed field, all sharing one change_id.

        An empty or fully no-op change set is legal and writes nothing.
        """
        action = ActionType(action_type)
        deltas = await self.compute_deltas(timecard_id, proposed_changes)
        if not deltas:
            return []

        change_id = uuid4()
        changed_at = datetime.now(timezone.utc)
        changed_by = actor.user_id if isinstance(actor, Actor) else actor

        entries = [
            TimecardAuditLog(
                id=uuid4(),
                timecard_id=timecard_id,
                change_id=change_id,
                field_name=delta.field.value,
                old_value=delta.old_value,
                new_value=delta.new_value,
                changed_by=changed_by,
                changed_at=changed_at,
                action_type=action.value,
                work_date=delta.work_date,
            )
            for delta in deltas
        ]
        self.session.add_all(entries)
        await self.session.flush()

        logger.debug(
            "Recorded %d audit row(s) for timecard %s (change %s, %s)",
            len(entries),
            timecard_id,
            change_id,
            action.value,
        )
        return entries

    async def compute_deltas(
        self,
        timecard_id: UUID,
        proposed_changes: Iterable[Any],
    ) -> list[FieldDelta]:
        """Compare proposed values against stored ones, dropping no-ops."""
        changes = _dedupe(proposed_changes)
        if not changes:
            return []

        header = await self.session.get(TimecardHeader, timecard_id)
        if header is None:
            raise TimecardNotFoundError(timecard_id)

        deltas: list[FieldDelta] = []
        entries: dict[date, TimecardDailyEntry] = {}
        for change in changes:
            field = change.field
            if field.is_daily:
                if change.work_date is None:
                    raise FieldValidationError(
                        f"{field.value} requires a work date", field_name=field.value
                    )
                if change.work_date not in entries:
                    entries[change.work_date] = await self._get_daily_entry(
                        timecard_id, change.work_date
                    )
                old = getattr(entries[change.work_date], field.value)
            else:
                if change.work_date is not None:
                    raise FieldValidationError(
                        f"{field.value} is a header field and takes no work date",
                        field_name=field.value,
                    )
                old = getattr(header, field.value)

            if ValueCodec.equal(field, old, change.value):
                continue

            deltas.append(
                FieldDelta(
                    field=field,
                    work_date=change.work_date,
                    old_value=ValueCodec.to_text(field, old),
                    new_value=ValueCodec.to_text(field, change.value),
                )
            )
        return deltas

    async def _get_daily_entry(self, timecard_id: UUID, work_date: date) -> TimecardDailyEntry:
        result = await self.session.execute(
            select(TimecardDailyEntry).where(
                TimecardDailyEntry.timecard_id == timecard_id,
                TimecardDailyEntry.work_date == work_date,
            )
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise TimecardNotFoundError(
                timecard_id,
                f"Timecard {timecard_id} has no entry for {work_date.isoformat()}",
            )
        return entry


def _dedupe(proposed_changes: Iterable[Any]) -> list[ProposedChange]:
    """Normalize inputs to ProposedChange, keeping the last value per field."""
    latest: dict[tuple[CanonicalField, date | None], ProposedChange] = {}
    for change in proposed_changes:
        proposed = ProposedChange(
            field=CanonicalField(change.field),
            value=change.value,
            work_date=change.work_date,
        )
        key = (proposed.field, proposed.work_date)
        latest.pop(key, None)
        latest[key] = proposed
    return list(latest.values())
