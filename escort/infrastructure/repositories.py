"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

``SqlRideRequestStore`` implements the ``RideRequestStore`` port on top of
an ``AsyncSession``.  Each mutation is its own transaction: the row is
written and committed before the engine emits any event about it.

Every call is bounded by ``store_timeout_seconds``; on expiry the caller
gets ``StoreTimeout`` (retryable) instead of hanging.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import RideRequestModel
from escort.config import settings
from escort.domain.entities import Location, RidePayload, RideRequest
from escort.domain.enums import (
    ACTIVE_STATUSES,
    ASSIGNED_STATUSES,
    TERMINAL_STATUSES,
    RideListType,
    RideStatus,
)
from escort.domain.errors import ActiveRequestExists, ResponderBusy, StoreTimeout
from escort.domain.ports import RideRequestStore

logger = logging.getLogger(__name__)


# ── Mapping ───────────────────────────────────────────────────────────


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo; everything stored is UTC.
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def to_entity(row: RideRequestModel) -> RideRequest:
    return RideRequest(
        id=row.id,
        requester_id=row.requester_id,
        responder_id=row.responder_id,
        status=RideStatus(row.status),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
        payload=RidePayload(
            pickup=Location(row.pickup_lat, row.pickup_lng, row.pickup_address),
            dropoff=Location(row.dropoff_lat, row.dropoff_lng, row.dropoff_address),
            service_area_id=row.service_area_id,
            note=row.note,
        ),
    )


def to_model(ride: RideRequest) -> RideRequestModel:
    payload = ride.payload
    return RideRequestModel(
        id=ride.id,
        requester_id=ride.requester_id,
        responder_id=ride.responder_id,
        status=ride.status,
        pickup_lat=payload.pickup.latitude,
        pickup_lng=payload.pickup.longitude,
        pickup_address=payload.pickup.address,
        dropoff_lat=payload.dropoff.latitude,
        dropoff_lng=payload.dropoff.longitude,
        dropoff_address=payload.dropoff.address,
        service_area_id=payload.service_area_id,
        note=payload.note,
        created_at=ride.created_at,
        updated_at=ride.updated_at,
    )


def _column_equals(name: str, value: Any):
    column = RideRequestModel.__table__.c[name]
    return column.is_(None) if value is None else column == value


# ── Store ─────────────────────────────────────────────────────────────


class SqlRideRequestStore(RideRequestStore):
    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self.session = session
        self.timeout = settings.store_timeout_seconds if timeout is None else timeout

    async def _timed(self, coro):
        try:
            return await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Store call timed out after %.1fs", self.timeout)
            raise StoreTimeout() from None

    async def _one(self, query) -> Optional[RideRequest]:
        result = await self.session.execute(
            query.limit(1).execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return to_entity(row) if row else None

    async def _many(self, query) -> list[RideRequest]:
        result = await self.session.execute(
            query.execution_options(populate_existing=True)
        )
        return [to_entity(row) for row in result.scalars().all()]

    # ── Writes ────────────────────────────────────────────────────

    async def create(self, record: RideRequest) -> RideRequest:
        return await self._timed(self._create(record))

    async def _create(self, record: RideRequest) -> RideRequest:
        row = to_model(record)
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            logger.info(
                "Insert for requester %s rejected by active-request index",
                record.requester_id,
            )
            raise ActiveRequestExists() from None
        return to_entity(row)

    async def conditional_update(
        self,
        ride_id: str,
        expected_status: RideStatus,
        expected_responder_id: Optional[str],
        **fields: Any,
    ) -> Optional[RideRequest]:
        return await self._timed(
            self._conditional_update(
                ride_id, expected_status, expected_responder_id, fields
            )
        )

    async def _conditional_update(
        self,
        ride_id: str,
        expected_status: RideStatus,
        expected_responder_id: Optional[str],
        fields: dict[str, Any],
    ) -> Optional[RideRequest]:
        stmt = (
            update(RideRequestModel)
            .where(
                RideRequestModel.id == ride_id,
                RideRequestModel.status == expected_status,
                _column_equals("responder_id", expected_responder_id),
            )
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except IntegrityError:
            # Another request was assigned to this responder in the meantime.
            await self.session.rollback()
            raise ResponderBusy() from None
        if result.rowcount != 1:
            return None
        return await self._one(
            select(RideRequestModel).where(RideRequestModel.id == ride_id)
        )

    # ── Reads ─────────────────────────────────────────────────────

    async def get(self, ride_id: str) -> Optional[RideRequest]:
        return await self._timed(
            self._one(select(RideRequestModel).where(RideRequestModel.id == ride_id))
        )

    async def find_active_by_requester(
        self, requester_id: str
    ) -> Optional[RideRequest]:
        return await self._timed(
            self._one(
                select(RideRequestModel).where(
                    RideRequestModel.requester_id == requester_id,
                    RideRequestModel.status.in_(list(ACTIVE_STATUSES)),
                )
            )
        )

    async def find_active_by_responder(
        self, responder_id: str, exclude_id: Optional[str] = None
    ) -> Optional[RideRequest]:
        query = select(RideRequestModel).where(
            RideRequestModel.responder_id == responder_id,
            RideRequestModel.status.in_(list(ASSIGNED_STATUSES)),
        )
        if exclude_id is not None:
            query = query.where(RideRequestModel.id != exclude_id)
        return await self._timed(self._one(query))

    async def count_pending_created_before(
        self, timestamp: datetime, filters: Optional[dict[str, Any]] = None
    ) -> int:
        query = (
            select(func.count())
            .select_from(RideRequestModel)
            .where(
                RideRequestModel.status == RideStatus.PENDING,
                RideRequestModel.created_at < timestamp,
            )
        )
        for name, value in (filters or {}).items():
            query = query.where(_column_equals(name, value))
        result = await self._timed(self.session.execute(query))
        return result.scalar() or 0

    async def list_for_requester(
        self, requester_id: str, list_type: RideListType
    ) -> list[RideRequest]:
        statuses = (
            ACTIVE_STATUSES if list_type == RideListType.ACTIVE else TERMINAL_STATUSES
        )
        return await self._timed(
            self._many(
                select(RideRequestModel)
                .where(
                    RideRequestModel.requester_id == requester_id,
                    RideRequestModel.status.in_(list(statuses)),
                )
                .order_by(RideRequestModel.created_at.desc())
            )
        )

    async def list_for_responder(
        self, responder_id: str, list_type: RideListType
    ) -> list[RideRequest]:
        """Active: the open queue plus own assignments.  Past: own history."""
        if list_type == RideListType.ACTIVE:
            query = (
                select(RideRequestModel)
                .where(
                    or_(
                        RideRequestModel.status == RideStatus.PENDING,
                        (RideRequestModel.responder_id == responder_id)
                        & RideRequestModel.status.in_(list(ASSIGNED_STATUSES)),
                    )
                )
                .order_by(RideRequestModel.created_at)
            )
        else:
            query = (
                select(RideRequestModel)
                .where(
                    RideRequestModel.responder_id == responder_id,
                    RideRequestModel.status.in_(list(TERMINAL_STATUSES)),
                )
                .order_by(RideRequestModel.created_at.desc())
            )
        return await self._timed(self._many(query))

    async def list_pending(self, limit: int = 100) -> list[RideRequest]:
        return await self._timed(
            self._many(
                select(RideRequestModel)
                .where(RideRequestModel.status == RideStatus.PENDING)
                .order_by(RideRequestModel.created_at)
                .limit(limit)
            )
        )
