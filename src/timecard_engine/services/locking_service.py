"""Optimistic locking for timecard mutations."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from timecard_engine.models import TimecardHeader
from timecard_engine.services.errors import ConcurrentModificationError, TimecardNotFoundError


class LockingService:
    """Serializes mutating operations on one timecard.

    A header and its daily entries are the unit of contention. Every
    mutating operation:
    1. Loads the header (FOR UPDATE) and remembers the version it observed
    2. Optionally checks that version against the one the caller read
    3. Claims the header with ``UPDATE ... WHERE version = :observed``

    A writer whose claim matches no row lost the race and gets
    ConcurrentModificationError; its transaction is rolled back, so none of
    its edits or audit rows persist.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def load(self, timecard_id: UUID) -> TimecardHeader:
        """Load a header with its daily entries, refreshing stale state.

        Takes a row lock where the database supports one (SQLite ignores it).
        """
        result = await self.session.execute(
            select(TimecardHeader)
            .where(TimecardHeader.id == timecard_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        header = result.scalar_one_or_none()
        if header is None:
            raise TimecardNotFoundError(timecard_id)
        return header

    @staticmethod
    def check_version(header: TimecardHeader, expected_version: int | None) -> None:
        """Fail if the caller's view of the timecard is out of date."""
        if expected_version is not None and header.version != expected_version:
            raise ConcurrentModificationError(header.id, expected_version, header.version)

    async def claim(self, header: TimecardHeader) -> int:
        """Bump the version if nobody else has since the header was read.

        Returns the new version.
        """
        observed = header.version
        result = await self.session.execute(
            update(TimecardHeader)
            .where(
                TimecardHeader.id == header.id,
                TimecardHeader.version == observed,
            )
            .values(version=observed + 1, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrentModificationError(header.id, observed)

        header.version = observed + 1
        return header.version
