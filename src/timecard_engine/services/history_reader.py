"""Read side of the audit log.

Serves history as flat rows or grouped by interaction (change_id), with
filtering, summary statistics and derivation of the rejected-fields cache
from the log itself.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from timecard_engine.models import TimecardAuditLog, TimecardHeader
from timecard_engine.services.errors import TimecardNotFoundError
from timecard_engine.services.fields import DAILY_FIELDS, ActionType, CanonicalField
from timecard_engine.services.state_machine import TimecardStatus


@dataclass(frozen=True)
class AuditLogFilter:
    """Optional narrowing of a history query."""

    action_type: ActionType | str | None = None
    field_name: CanonicalField | str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int | None = None
    offset: int = 0


@dataclass
class AuditGroup:
    """All rows written by one interaction."""

    change_id: UUID
    changed_by: UUID
    changed_at: datetime
    action_type: str
    changes: list[TimecardAuditLog] = field(default_factory=list)

    @property
    def fields(self) -> list[str]:
        return sorted({entry.field_name for entry in self.changes})

    @property
    def work_dates(self) -> list[date]:
        return sorted({entry.work_date for entry in self.changes if entry.work_date})

    def to_dict(self) -> dict[str, Any]:
        return {
            "change_id": self.change_id,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at,
            "action_type": self.action_type,
            "changes": [entry.to_dict() for entry in self.changes],
        }


@dataclass(frozen=True)
class AuditStatistics:
    """Summary of a timecard's audit history."""

    total_changes: int
    total_interactions: int
    changes_by_action: dict[str, int]
    changes_by_field: dict[str, int]
    last_modified: datetime | None
    last_modified_by: UUID | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_changes": self.total_changes,
            "total_interactions": self.total_interactions,
            "changes_by_action": dict(self.changes_by_action),
            "changes_by_field": dict(self.changes_by_field),
            "last_modified": self.last_modified,
            "last_modified_by": self.last_modified_by,
        }


class HistoryReader:
    """Queries the audit log. Never writes."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_flat(
        self,
        timecard_id: UUID,
        filters: AuditLogFilter | None = None,
    ) -> list[TimecardAuditLog]:
        """Audit rows in chronological order."""
        query = self._base_query(timecard_id, filters or AuditLogFilter())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_grouped(
        self,
        timecard_id: UUID,
        filters: AuditLogFilter | None = None,
        newest_first: bool = False,
    ) -> list[AuditGroup]:
        """Audit rows grouped by change_id, one group per interaction.

        ``limit`` and ``offset`` count groups, not rows.
        """
        filters = filters or AuditLogFilter()
        row_filters = AuditLogFilter(
            action_type=filters.action_type,
            field_name=filters.field_name,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )
        rows = await self.list_flat(timecard_id, row_filters)

        groups: dict[UUID, AuditGroup] = {}
        for row in rows:
            group = groups.get(row.change_id)
            if group is None:
                group = AuditGroup(
                    change_id=row.change_id,
                    changed_by=row.changed_by,
                    changed_at=row.changed_at,
                    action_type=row.action_type,
                )
                groups[row.change_id] = group
            group.changes.append(row)

        ordered = sorted(
            groups.values(), key=lambda g: _as_utc(g.changed_at), reverse=newest_first
        )
        end = filters.offset + filters.limit if filters.limit is not None else None
        return ordered[filters.offset:end]

    async def get_statistics(self, timecard_id: UUID) -> AuditStatistics:
        rows = await self.list_flat(timecard_id)
        last = rows[-1] if rows else None
        return AuditStatistics(
            total_changes=len(rows),
            total_interactions=len({row.change_id for row in rows}),
            changes_by_action=dict(Counter(row.action_type for row in rows)),
            changes_by_field=dict(Counter(row.field_name for row in rows)),
            last_modified=last.changed_at if last else None,
            last_modified_by=last.changed_by if last else None,
        )

    async def derive_rejected_fields(self, timecard_id: UUID) -> list[str]:
        """Rebuild rejected_fields from the log.

        The daily fields edited by the latest interaction that set status,
        provided that interaction rejected the timecard.
        """
        rows = await self.list_flat(timecard_id)
        status_rows = [row for row in rows if row.field_name == CanonicalField.STATUS.value]
        if not status_rows:
            return []
        latest = status_rows[-1]
        if latest.new_value != TimecardStatus.REJECTED.value:
            return []

        changed = {
            row.field_name
            for row in rows
            if row.change_id == latest.change_id and row.work_date is not None
        }
        return [f.value for f in DAILY_FIELDS if f.value in changed]

    async def rejected_fields_consistent(self, timecard_id: UUID) -> bool:
        """Whether the cached rejected_fields matches the log."""
        header = await self.session.get(TimecardHeader, timecard_id)
        if header is None:
            raise TimecardNotFoundError(timecard_id)
        cached = sorted(header.rejected_fields or [])
        return cached == sorted(await self.derive_rejected_fields(timecard_id))

    @staticmethod
    def _base_query(timecard_id: UUID, filters: AuditLogFilter) -> Select:
        query = select(TimecardAuditLog).where(TimecardAuditLog.timecard_id == timecard_id)
        if filters.action_type is not None:
            query = query.where(
                TimecardAuditLog.action_type == ActionType(filters.action_type).value
            )
        if filters.field_name is not None:
            query = query.where(
                TimecardAuditLog.field_name == CanonicalField(filters.field_name).value
            )
        if filters.date_from is not None:
            query = query.where(TimecardAuditLog.changed_at >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(TimecardAuditLog.changed_at <= filters.date_to)

        query = query.order_by(
            TimecardAuditLog.changed_at,
            TimecardAuditLog.field_name,
            TimecardAuditLog.work_date,
            TimecardAuditLog.id,
        )
        if filters.offset:
            query = query.offset(filters.offset)
        if filters.limit is not None:
            query = query.limit(filters.limit)
        return query


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
