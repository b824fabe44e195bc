"""Read-side checks for the one-active-request rules (I1 / I2)."""

from __future__ import annotations

from typing import Optional

from .entities import RideRequest
from .errors import ActiveRequestExists, ResponderBusy
from .ports import RideRequestStore


class AssignmentGuard:
    def __init__(self, store: RideRequestStore):
        self.store = store

    async def active_request_of(self, requester_id: str) -> Optional[RideRequest]:
        return await self.store.find_active_by_requester(requester_id)

    async def active_assignment_of(
        self, responder_id: str, exclude_id: Optional[str] = None
    ) -> Optional[RideRequest]:
        return await self.store.find_active_by_responder(
            responder_id, exclude_id=exclude_id
        )

    async def ensure_requester_free(self, requester_id: str) -> None:
        """At most one active request per requester."""
        if await self.active_request_of(requester_id) is not None:
            raise ActiveRequestExists()

    async def ensure_responder_free(
        self, responder_id: str, exclude_id: Optional[str] = None
    ) -> None:
        """At most one accepted / en-route request per responder."""
        if await self.active_assignment_of(responder_id, exclude_id) is not None:
            raise ResponderBusy()
