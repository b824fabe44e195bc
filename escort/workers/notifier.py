"""
Notification Dispatcher
=======================

Implements the ``NotificationPort`` consumed by the lifecycle engine.

* ``on_request_created`` / ``on_status_changed`` never block: they snapshot
  the record and ``put_nowait`` it on a bounded in-process queue.  A full
  queue drops the event with a warning.
* A background task drains the queue and publishes each event as JSON on a
  Redis pub/sub channel, where the push-notification service picks it up.
* Delivery failures are logged and dropped.  Retrying is the push
  service's concern.

Message format::

    {"event": "status_changed", "ride": {"id": ..., "status": ..., ...}}
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import Any, Protocol

import redis.asyncio as aioredis

from escort.domain.entities import RideRequest
from escort.domain.ports import NotificationPort

logger = logging.getLogger(__name__)

REQUEST_CREATED = "request_created"
STATUS_CHANGED = "status_changed"


class EventPublisher(Protocol):
    async def publish(self, event: str, ride: dict[str, Any]) -> None: ...


class RedisEventPublisher:
    def __init__(self, client: aioredis.Redis, channel: str):
        self.redis = client
        self.channel = channel

    async def publish(self, event: str, ride: dict[str, Any]) -> None:
        message = json.dumps({"event": event, "ride": ride}, default=str)
        await self.redis.publish(self.channel, message)


def ride_snapshot(record: RideRequest) -> dict[str, Any]:
    return dataclasses.asdict(record)


class NotificationDispatcher(NotificationPort):
    def __init__(
        self,
        publisher: EventPublisher,
        maxsize: int = 1000,
        drain_timeout: float = 5.0,
    ):
        self.publisher = publisher
        self.drain_timeout = drain_timeout
        self._queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue(
            maxsize=maxsize
        )
        self._task: asyncio.Task | None = None

    # ── NotificationPort ──────────────────────────────────────────

    def on_request_created(self, record: RideRequest) -> None:
        self._enqueue(REQUEST_CREATED, record)

    def on_status_changed(self, record: RideRequest) -> None:
        self._enqueue(STATUS_CHANGED, record)

    def _enqueue(self, event: str, record: RideRequest) -> None:
        try:
            self._queue.put_nowait((event, ride_snapshot(record)))
        except asyncio.QueueFull:
            logger.warning(
                "Notification queue full -- dropping %s for ride %s",
                event,
                record.id,
            )

    # ── Lifecycle ─────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        self._task = asyncio.create_task(self._loop())
        logger.info("Notification dispatcher started")

    async def stop(self) -> None:
        """Give queued events a chance to go out, then stop the worker."""
        if self._task is None:
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self.drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Notification dispatcher stopped with %d undelivered events",
                self._queue.qsize(),
            )
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Notification dispatcher stopped")

    async def _loop(self) -> None:
        while True:
            event, ride = await self._queue.get()
            try:
                await self.publisher.publish(event, ride)
            except Exception:
                logger.exception(
                    "Failed to deliver %s for ride %s", event, ride.get("id")
                )
            finally:
                self._queue.task_done()
