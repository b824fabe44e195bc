"""
Ride endpoints
==============

POST /api/v1/rides                       -- submit a ride request (requester)
GET  /api/v1/rides?list_type=active|past -- caller's rides, filtered by role
GET  /api/v1/rides/{ride_id}             -- one ride with its live waiting number
PUT  /api/v1/rides/{ride_id}/updateStatus -- role-gated status transition

The caller is identified by the ``X-Actor-Id`` / ``X-Actor-Role`` headers
set by the auth gateway.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query, Request

from escort.api.dependencies import get_actor, get_engine, get_store
from escort.api.middleware import limiter
from escort.api.schemas import (
    ErrorResponse,
    RideCreateRequest,
    RideResponse,
    RideStatusUpdateRequest,
)
from escort.config import settings
from escort.domain.entities import Actor
from escort.domain.enums import ActorRole, RideListType
from escort.domain.errors import RaceLost
from escort.domain.lifecycle import LifecycleEngine
from escort.infrastructure.repositories import SqlRideRequestStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rides", tags=["rides"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Business rule violated"},
    401: {"model": ErrorResponse, "description": "Caller identity missing"},
}


@router.post(
    "",
    status_code=201,
    response_model=RideResponse,
    summary="Submit a ride request",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def create_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
):
    submission = await engine.submit(actor.id, actor.role, body.to_payload())
    return RideResponse.from_entity(
        submission.ride, waiting_number=submission.waiting_number
    )


@router.get(
    "",
    response_model=list[RideResponse],
    summary="List the caller's rides",
    description=(
        "Requesters see their own requests.  Responders see the open queue "
        "plus their own assignments (active) or their finished rides (past)."
    ),
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    list_type: RideListType = Query(RideListType.ACTIVE),
    actor: Actor = Depends(get_actor),
    store: SqlRideRequestStore = Depends(get_store),
):
    if actor.role == ActorRole.REQUESTER:
        rides = await store.list_for_requester(actor.id, list_type)
    else:
        rides = await store.list_for_responder(actor.id, list_type)
    return [RideResponse.from_entity(r) for r in rides]


@router.get(
    "/{ride_id}",
    response_model=RideResponse,
    summary="Get a ride and its current queue position",
    responses=_ERRORS,
)
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: str,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
):
    ride, position = await engine.view(ride_id, actor)
    return RideResponse.from_entity(ride, waiting_number=position)


@router.put(
    "/{ride_id}/updateStatus",
    response_model=RideResponse,
    summary="Change a ride's status",
    description=(
        "Requesters may only cancel.  Responders accept, go en route, "
        "decline or complete; accepting claims the request."
    ),
    responses={
        **_ERRORS,
        409: {"model": ErrorResponse, "description": "Lost a concurrent update"},
    },
)
@limiter.limit(settings.rate_limit)
async def update_status(
    request: Request,
    ride_id: str,
    body: RideStatusUpdateRequest,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
):
    try:
        ride = await engine.transition(ride_id, actor.id, actor.role, body.status)
    except RaceLost:
        # Re-read and re-validate once; a second loss goes back to the client.
        logger.info("Retrying status update on ride %s after lost race", ride_id)
        ride = await engine.transition(ride_id, actor.id, actor.role, body.status)
    return RideResponse.from_entity(ride)
