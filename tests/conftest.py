"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models work unchanged on
SQLite, including the partial unique indexes behind I1 / I2.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from escort.domain.entities import Location, RidePayload, RideRequest
from escort.domain.lifecycle import LifecycleEngine
from escort.domain.ports import NotificationPort
from escort.infrastructure.database import Base
from escort.infrastructure.models import RideRequestModel
from escort.infrastructure.repositories import SqlRideRequestStore, to_entity


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
TestSessionFactory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


# ── Fakes ─────────────────────────────────────────────────────────────


class RecordingNotifier(NotificationPort):
    def __init__(self):
        self.events: list[tuple[str, RideRequest]] = []

    def on_request_created(self, record: RideRequest) -> None:
        self.events.append(("request_created", record))

    def on_status_changed(self, record: RideRequest) -> None:
        self.events.append(("status_changed", record))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.events]


class StepClock:
    """Deterministic clock: every call is one millisecond later."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 5, 21, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(milliseconds=1)
        return self.now


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield a session, then drop everything."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionFactory() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store(db_session: AsyncSession) -> SqlRideRequestStore:
    return SqlRideRequestStore(db_session)


@pytest.fixture
def engine(store, notifier, clock) -> LifecycleEngine:
    return LifecycleEngine(store, notifier, clock=clock)


@pytest.fixture
def payload() -> RidePayload:
    return RidePayload(
        pickup=Location(43.4723, -80.5449, "Davis Centre"),
        dropoff=Location(43.4765, -80.5390, "Village 1"),
        service_area_id="north",
    )


@pytest.fixture
def all_rides(db_session: AsyncSession):
    """Callable returning every stored ride, bypassing the store API."""

    async def _all() -> list[RideRequest]:
        result = await db_session.execute(
            select(RideRequestModel).execution_options(populate_existing=True)
        )
        return [to_entity(row) for row in result.scalars().all()]

    return _all


@pytest.fixture
def session_factory():
    """Factory for extra sessions on the same in-memory database."""
    return TestSessionFactory
