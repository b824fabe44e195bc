"""
Ports -- the interfaces the lifecycle engine consumes.

Adapters live in ``escort.infrastructure`` (storage) and ``escort.workers``
(notification fan-out).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from .entities import RideRequest
from .enums import RideListType, RideStatus


class RideRequestStore(ABC):
    """Durable keyed storage with compare-and-set updates."""

    @abstractmethod
    async def create(self, record: RideRequest) -> RideRequest:
        """Insert *record*; raise ``ActiveRequestExists`` on an I1 clash."""

    @abstractmethod
    async def get(self, ride_id: str) -> Optional[RideRequest]: ...

    @abstractmethod
    async def find_active_by_requester(
        self, requester_id: str
    ) -> Optional[RideRequest]: ...

    @abstractmethod
    async def find_active_by_responder(
        self, responder_id: str, exclude_id: Optional[str] = None
    ) -> Optional[RideRequest]: ...

    @abstractmethod
    async def count_pending_created_before(
        self, timestamp: datetime, filters: Optional[dict[str, Any]] = None
    ) -> int:
        """Pending records created strictly before *timestamp*.

        *filters* are equality constraints on record fields
        (e.g. ``{"service_area_id": "north"}``).
        """

    @abstractmethod
    async def conditional_update(
        self,
        ride_id: str,
        expected_status: RideStatus,
        expected_responder_id: Optional[str],
        **fields: Any,
    ) -> Optional[RideRequest]:
        """Apply *fields* only if status and responder still match.

        Returns the updated record, or ``None`` when the guard did not hold.
        """

    @abstractmethod
    async def list_for_requester(
        self, requester_id: str, list_type: RideListType
    ) -> list[RideRequest]: ...

    @abstractmethod
    async def list_for_responder(
        self, responder_id: str, list_type: RideListType
    ) -> list[RideRequest]: ...

    @abstractmethod
    async def list_pending(self, limit: int = 100) -> list[RideRequest]: ...


class NotificationPort(ABC):
    """Fire-and-forget sink for lifecycle events.  Must not block."""

    @abstractmethod
    def on_request_created(self, record: RideRequest) -> None: ...

    @abstractmethod
    def on_status_changed(self, record: RideRequest) -> None: ...
