"""Pytest fixtures for timecard engine tests."""

from __future__ import annotations

from datetime import date, time
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from timecard_engine.database import create_schema, get_engine, make_session_factory
from timecard_engine.models import TimecardDailyEntry, TimecardHeader
from timecard_engine.services.state_machine import Actor, ActorRole

# Each test gets its own SQLite file so that concurrency tests can open
# several connections against the same data
WORK_DATES = (date(2024, 1, 15), date(2024, 1, 16))


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine."""
    engine = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'timecards.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def owner() -> Actor:
    return Actor(user_id=uuid4(), role=ActorRole.OWNER)


@pytest.fixture
def approver() -> Actor:
    return Actor(user_id=uuid4(), role=ActorRole.APPROVER)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=uuid4(), role=ActorRole.ADMIN)


async def make_timecard(
    session: AsyncSession,
    owner: Actor,
    status: str = "submitted",
    work_dates: tuple[date, ...] = WORK_DATES,
) -> TimecardHeader:
    """Persist a timecard with a 09:00-17:00 day and a 12:00-13:00 break per date."""
    header = TimecardHeader(
        id=uuid4(),
        user_id=owner.user_id,
        project_id=uuid4(),
        status=status,
        period_start=min(work_dates),
        period_end=max(work_dates),
        pay_rate=Decimal("20.00"),
        total_hours=Decimal("14.00"),
        total_break_minutes=120,
        total_pay=Decimal("280.00"),
        version=1,
    )
    header.daily_entries = [
        TimecardDailyEntry(
            id=uuid4(),
            work_date=work_date,
            check_in=time(9, 0),
            break_start=time(12, 0),
            break_end=time(13, 0),
            check_out=time(17, 0),
            hours_worked=Decimal("7.00"),
            break_minutes=60,
            daily_pay=Decimal("140.00"),
        )
        for work_date in work_dates
    ]
    session.add(header)
    await session.commit()
    return header


@pytest.fixture
def timecard_factory(session_factory, owner):
    """Persist timecards through a separate setup session.

    The returned headers are detached, so a rollback in the session under
    test never expires them.
    """

    async def factory(status: str = "submitted", actor: Actor | None = None) -> TimecardHeader:
        async with session_factory() as setup:
            return await make_timecard(setup, actor or owner, status)

    return factory


@pytest_asyncio.fixture
async def submitted_timecard(timecard_factory) -> TimecardHeader:
    return await timecard_factory("submitted")


@pytest_asyncio.fixture
async def draft_timecard(timecard_factory) -> TimecardHeader:
    return await timecard_factory("draft")
