"""
Waiting Queue
=============

A request's waiting number is its 1-based FIFO position among the
requests that are still ``PENDING``::

    waiting_number = 1 + |{pending r : r.created_at < record.created_at, scope}|

The number is computed once, at submission.  It is not kept up to date as
the queue drains; ``live_position`` recomputes it on demand.

Known limitation: the count only sees committed rows.  When two submissions
commit in the opposite order to their ``created_at`` stamps, the later
commit does not see the other request yet and both can be told they are
number 1.  ``live_position`` gives the settled order once both are stored.

The scope decides which pending requests share a queue (Strategy Pattern):
one global queue, or one queue per service area.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional

from .entities import RideRequest
from .enums import RideStatus
from .ports import RideRequestStore


# ── Scope strategies ──────────────────────────────────────────────────


class QueueScope(ABC):
    @abstractmethod
    def filters(self, record: RideRequest) -> dict[str, Any]: ...


class GlobalQueueScope(QueueScope):
    def filters(self, record: RideRequest) -> dict[str, Any]:
        return {}


class ServiceAreaQueueScope(QueueScope):
    """Requests only queue behind others in the same service area."""

    def filters(self, record: RideRequest) -> dict[str, Any]:
        return {"service_area_id": record.payload.service_area_id}


QUEUE_SCOPES: dict[str, type[QueueScope]] = {
    "global": GlobalQueueScope,
    "service_area": ServiceAreaQueueScope,
}


def scope_from_name(name: str) -> QueueScope:
    try:
        return QUEUE_SCOPES[name]()
    except KeyError:
        raise ValueError(f"Unknown queue scope: {name!r}") from None


# ── Calculator ────────────────────────────────────────────────────────


class WaitingQueueCalculator:
    def __init__(
        self, store: RideRequestStore, scope: Optional[QueueScope] = None
    ):
        self.store = store
        self.scope = scope or GlobalQueueScope()

    async def compute_waiting_number(self, record: RideRequest) -> int:
        ahead = await self.store.count_pending_created_before(
            record.created_at, self.scope.filters(record)
        )
        return 1 + ahead

    async def live_position(self, record: RideRequest) -> Optional[int]:
        """Current position, or ``None`` once the request left the queue."""
        if record.status != RideStatus.PENDING:
            return None
        return await self.compute_waiting_number(record)
