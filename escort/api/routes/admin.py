"""
Admin / observability endpoints
===============================

GET /api/v1/admin/queue  -- pending requests in FIFO order with positions
GET /api/v1/admin/health -- simple health check
"""

from fastapi import APIRouter, Depends, Query, Request

from escort.api.dependencies import get_notifier, get_store
from escort.api.middleware import limiter
from escort.api.schemas import HealthResponse, QueueEntryResponse, RideResponse
from escort.config import settings
from escort.domain.ports import NotificationPort
from escort.infrastructure.repositories import SqlRideRequestStore

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/queue",
    response_model=list[QueueEntryResponse],
    summary="List the global pending queue",
)
@limiter.limit(settings.rate_limit)
async def get_queue(
    request: Request,
    limit: int = Query(100, ge=1, le=500),
    store: SqlRideRequestStore = Depends(get_store),
):
    pending = await store.list_pending(limit=limit)
    return [
        QueueEntryResponse(position=i, ride=RideResponse.from_entity(ride))
        for i, ride in enumerate(pending, start=1)
    ]


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health(notifier: NotificationPort = Depends(get_notifier)):
    return HealthResponse(pending_notifications=getattr(notifier, "pending", 0))
