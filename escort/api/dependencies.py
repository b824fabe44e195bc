"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from escort.config import settings
from escort.domain.entities import Actor
from escort.domain.enums import ActorRole
from escort.domain.errors import Unauthenticated
from escort.domain.lifecycle import LifecycleEngine
from escort.domain.ports import NotificationPort
from escort.domain.queue import WaitingQueueCalculator, scope_from_name
from escort.infrastructure.database import async_session_factory
from escort.infrastructure.repositories import SqlRideRequestStore


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    """Caller identity, as forwarded by the upstream auth gateway."""
    if not x_actor_id or not x_actor_role:
        raise Unauthenticated()
    try:
        role = ActorRole(x_actor_role.upper())
    except ValueError:
        raise Unauthenticated("Unknown caller role") from None
    return Actor(id=x_actor_id, role=role)


def get_notifier(request: Request) -> NotificationPort:
    return request.app.state.notifier


def get_store(db: AsyncSession = Depends(get_db)) -> SqlRideRequestStore:
    return SqlRideRequestStore(db)


def get_engine(
    store: SqlRideRequestStore = Depends(get_store),
    notifier: NotificationPort = Depends(get_notifier),
) -> LifecycleEngine:
    return LifecycleEngine(
        store,
        notifier,
        queue=WaitingQueueCalculator(store, scope_from_name(settings.queue_scope)),
        require_acceptance=settings.require_acceptance,
    )
