"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from escort.domain.entities import Location, RidePayload, RideRequest


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    pickup_address: str = Field("", max_length=255)
    dropoff_lat: float = Field(..., ge=-90, le=90)
    dropoff_lng: float = Field(..., ge=-180, le=180)
    dropoff_address: str = Field("", max_length=255)
    service_area_id: Optional[str] = Field(None, max_length=64)
    note: Optional[str] = Field(None, max_length=1000)

    def to_payload(self) -> RidePayload:
        return RidePayload(
            pickup=Location(self.pickup_lat, self.pickup_lng, self.pickup_address),
            dropoff=Location(
                self.dropoff_lat, self.dropoff_lng, self.dropoff_address
            ),
            service_area_id=self.service_area_id,
            note=self.note,
        )


class RideStatusUpdateRequest(BaseModel):
    # Plain string so unknown values reach the engine and come back as
    # INVALID_STATUS rather than a validation error.
    status: str = Field(..., description="Target status, e.g. ACCEPTED")


# ── Responses ─────────────────────────────────────────────────────────


class RideResponse(BaseModel):
    id: str
    requester_id: str
    responder_id: Optional[str] = None
    status: str
    pickup_lat: float
    pickup_lng: float
    pickup_address: str = ""
    dropoff_lat: float
    dropoff_lng: float
    dropoff_address: str = ""
    service_area_id: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    waiting_number: Optional[int] = None

    @classmethod
    def from_entity(
        cls, ride: RideRequest, waiting_number: Optional[int] = None
    ) -> "RideResponse":
        payload = ride.payload
        return cls(
            id=ride.id,
            requester_id=ride.requester_id,
            responder_id=ride.responder_id,
            status=ride.status.value,
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
            waiting_number=waiting_number,
        )


class QueueEntryResponse(BaseModel):
    position: int
    ride: RideResponse


class HealthResponse(BaseModel):
    status: str = "ok"
    pending_notifications: int = 0


class ErrorResponse(BaseModel):
    detail: str
    code: str
