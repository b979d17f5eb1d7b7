"""Status-change notifications.

Delivery (email, in-app) belongs to an external collaborator. The engine
hands it a ``StatusChangeEvent`` after the transaction commits. Delivery is
best-effort: a failing notifier is logged and never undoes the change.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, runtime_checkable
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusChangeEvent:
    """A committed timecard status change."""

    timecard_id: UUID
    owner_id: UUID
    from_status: str
    to_status: str
    changed_by: UUID
    changed_at: datetime
    change_id: UUID | None = None
    reason: str | None = None


@runtime_checkable
class StatusNotifier(Protocol):
    """Protocol for status-change notifiers."""

    async def notify(self, event: StatusChangeEvent) -> None:
        """Deliver a status-change notification."""
        ...


class LoggingNotifier:
    """Default notifier that only writes the event to the log."""

    async def notify(self, event: StatusChangeEvent) -> None:
        logger.info(
            "Timecard %s moved %s -> %s by %s",
            event.timecard_id,
            event.from_status,
            event.to_status,
            event.changed_by,
        )


async def notify_safely(notifier: StatusNotifier | None, event: StatusChangeEvent) -> bool:
    """Call the notifier, isolating failures.

    Returns True if the notifier completed without raising.
    """
    if notifier is None:
        return False
    try:
        await notifier.notify(event)
    except Exception:
        logger.exception(
            "Notifier %s failed for timecard %s (%s -> %s)",
            notifier,
            event.timecard_id,
            event.from_status,
            event.to_status,
        )
        return False
    return True
