"""
Domain entities.

``RideRequest`` is an immutable snapshot of one stored record.  The store
hands out a fresh snapshot after every write, so nothing in the engine
mutates a record in place; a status change is always a new snapshot
returned by ``RideRequestStore.conditional_update``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from .enums import ActorRole, RideStatus


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float
    address: str = ""


@dataclass(frozen=True)
class Actor:
    """Caller identity as resolved by the upstream identity service."""

    id: str
    role: ActorRole


@dataclass(frozen=True)
class RidePayload:
    """Caller-supplied fields; opaque to the lifecycle rules."""

    pickup: Location
    dropoff: Location
    service_area_id: Optional[str] = None
    note: Optional[str] = None


# ── Entity ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class RideRequest:
    id: str
    requester_id: str
    created_at: datetime
    updated_at: datetime
    status: RideStatus = RideStatus.PENDING
    responder_id: Optional[str] = None
    payload: RidePayload = field(
        default_factory=lambda: RidePayload(Location(0, 0), Location(0, 0))
    )
