"""Transaction boundary shared by all lifecycle operations."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timecard_engine.models import TimecardAuditLog, TimecardHeader
from timecard_engine.notifications import StatusChangeEvent, StatusNotifier, notify_safely
from timecard_engine.services.errors import TimecardError, TransitionResult

logger = logging.getLogger(__name__)


@dataclass
class OperationOutcome:
    """What an operation did inside its transaction."""

    header: TimecardHeader
    actor_id: UUID
    from_status: str
    entries: list[TimecardAuditLog] = field(default_factory=list)
    reason: str | None = None

    @property
    def to_status(self) -> str:
        return self.header.status

    @property
    def status_changed(self) -> bool:
        return self.from_status != self.header.status


async def run_operation(
    session: AsyncSession,
    name: str,
    timecard_id: UUID | None,
    work: Callable[[], Awaitable[OperationOutcome]],
    notifier: StatusNotifier | None = None,
) -> TransitionResult:
    """Run ``work`` as one transaction and convert the outcome to a result.

    Expected failures (``TimecardError``) roll back and come back as a failed
    result. Anything else rolls back and propagates. The notifier runs only
    after a successful commit of a status change.
    """
    try:
        outcome = await work()
        await session.commit()
    except TimecardError as exc:
        await session.rollback()
        logger.warning("%s failed for timecard %s: %s (%s)", name, timecard_id, exc, exc.code)
        return TransitionResult.failure(exc)
    except Exception:
        await session.rollback()
        logger.exception("%s aborted for timecard %s", name, timecard_id)
        raise

    logger.info(
        "%s committed for timecard %s (%s -> %s, %d audit row(s))",
        name,
        outcome.header.id,
        outcome.from_status,
        outcome.to_status,
        len(outcome.entries),
    )

    if outcome.status_changed:
        entries = outcome.entries
        await notify_safely(
            notifier,
            StatusChangeEvent(
                timecard_id=outcome.header.id,
                owner_id=outcome.header.user_id,
                from_status=outcome.from_status,
                to_status=outcome.to_status,
                changed_by=outcome.actor_id,
                changed_at=entries[0].changed_at if entries else datetime.now(timezone.utc),
                change_id=entries[0].change_id if entries else None,
                reason=outcome.reason,
            ),
        )

    return TransitionResult.success(outcome.header, outcome.entries)
