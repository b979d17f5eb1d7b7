"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from timecard_engine.database import init_db
from timecard_engine.notifications import LoggingNotifier, StatusNotifier
from timecard_engine.services.state_machine import Actor, ActorRole
from timecard_engine.services.timecard_service import TimecardService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_actor(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the acting user from request headers."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )
    try:
        role = ActorRole((x_user_role or ActorRole.OWNER.value).lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid X-User-Role '{x_user_role}'",
        )
    return Actor(user_id=user_id, role=role)


def get_notifier() -> StatusNotifier:
    """Notifier handed to lifecycle operations."""
    return LoggingNotifier()


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
Notifier = Annotated[StatusNotifier, Depends(get_notifier)]


def get_timecard_service(db: DbSession, notifier: Notifier) -> TimecardService:
    return TimecardService(db, notifier=notifier)


Timecards = Annotated[TimecardService, Depends(get_timecard_service)]
