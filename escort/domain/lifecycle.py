"""
Ride Request Lifecycle Engine
=============================

Owns the state machine for ride requests::

    PENDING -> ACCEPTED -> EN_ROUTE -> COMPLETED
        \\          \\           \\
         +----------+-----------+--> DECLINED | CANCELLED

Every check runs before anything is written.  The only write is a
compare-and-set keyed on the status and responder observed when the
record was loaded, so a concurrent change between validation and write
surfaces as ``RaceLost`` instead of being silently overwritten.  The
engine never retries on its own.

Lifecycle events go to the ``NotificationPort`` after the write; a failing
notifier never undoes a transition.
"""

from __future__ import annotations

import functools
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from .entities import Actor, RidePayload, RideRequest
from .enums import (
    ASSIGNED_STATUSES,
    ROLE_TARGETS,
    TERMINAL_STATUSES,
    ActorRole,
    RideStatus,
    allowed_targets,
)
from .errors import (
    AlreadyAssigned,
    AppError,
    Forbidden,
    InternalError,
    InvalidStatus,
    InvalidTarget,
    NoOpTransition,
    NotFound,
    RaceLost,
    TerminalState,
)
from .guard import AssignmentGuard
from .ports import NotificationPort, RideRequestStore
from .queue import WaitingQueueCalculator

logger = logging.getLogger(__name__)

# Targets through which a responder takes ownership of an unclaimed request.
CLAIMING_TARGETS = frozenset(
    {RideStatus.ACCEPTED, RideStatus.EN_ROUTE, RideStatus.COMPLETED}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _classified(func):
    """Re-raise anything that is not an ``AppError`` as ``InternalError``."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except AppError:
            raise
        except Exception as exc:
            logger.exception("Unclassified failure in %s", func.__name__)
            raise InternalError() from exc

    return wrapper


@dataclass(frozen=True)
class Submission:
    ride: RideRequest
    waiting_number: Optional[int]


class LifecycleEngine:
    def __init__(
        self,
        store: RideRequestStore,
        notifier: NotificationPort,
        *,
        guard: Optional[AssignmentGuard] = None,
        queue: Optional[WaitingQueueCalculator] = None,
        require_acceptance: bool = False,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        self.store = store
        self.notifier = notifier
        self.guard = guard or AssignmentGuard(store)
        self.queue = queue or WaitingQueueCalculator(store)
        self.require_acceptance = require_acceptance
        self.clock = clock
        self.id_factory = id_factory

    # ── Submission ────────────────────────────────────────────────

    @_classified
    async def submit(
        self, actor_id: str, actor_role: ActorRole, payload: RidePayload
    ) -> Submission:
        if _parse_role(actor_role) != ActorRole.REQUESTER:
            raise Forbidden("Only requesters can book a ride")

        # Fast path; the store's unique index is what actually holds I1
        # when two submissions race.
        await self.guard.ensure_requester_free(actor_id)

        now = self.clock()
        ride = await self.store.create(
            RideRequest(
                id=self.id_factory(),
                requester_id=actor_id,
                status=RideStatus.PENDING,
                responder_id=None,
                created_at=now,
                updated_at=now,
                payload=payload,
            )
        )
        self._emit(self.notifier.on_request_created, ride)

        # The record is committed at this point; a failed count must not
        # turn the submission into an error the caller would retry.
        try:
            waiting_number = await self.queue.compute_waiting_number(ride)
        except Exception:
            logger.exception("Could not compute waiting number for ride %s", ride.id)
            waiting_number = None

        logger.info(
            "Ride %s created for requester %s (waiting #%s)",
            ride.id,
            actor_id,
            waiting_number,
        )
        return Submission(ride=ride, waiting_number=waiting_number)

    # ── Transitions ───────────────────────────────────────────────

    @_classified
    async def transition(
        self,
        ride_id: str,
        actor_id: str,
        actor_role: ActorRole,
        target_status: RideStatus | str,
    ) -> RideRequest:
        record = await self.store.get(ride_id)
        if record is None:
            raise NotFound()

        target = _parse_status(target_status)
        actor = Actor(id=actor_id, role=_parse_role(actor_role))
        observed_status = record.status
        observed_responder = record.responder_id

        if observed_status in TERMINAL_STATUSES:
            raise TerminalState()
        # A claimed request belongs to its responder; any other responder is
        # told so, even when asking for the status it is already in.
        if (
            actor.role == ActorRole.RESPONDER
            and observed_responder is not None
            and observed_responder != actor.id
            and target in ROLE_TARGETS[actor.role]
        ):
            raise AlreadyAssigned()
        if target == observed_status:
            raise NoOpTransition()
        if target == RideStatus.PENDING:
            raise InvalidTarget()
        if target not in allowed_targets(observed_status, self.require_acceptance):
            raise InvalidTarget(
                f"Cannot move a {observed_status.value} request to {target.value}"
            )

        self._check_role(actor, record, target)

        fields = {"status": target, "updated_at": self.clock()}
        if actor.role == ActorRole.RESPONDER:
            if observed_responder is None and target in CLAIMING_TARGETS:
                if target in ASSIGNED_STATUSES:
                    await self.guard.ensure_responder_free(
                        actor.id, exclude_id=ride_id
                    )
                fields["responder_id"] = actor.id

        updated = await self.store.conditional_update(
            ride_id, observed_status, observed_responder, **fields
        )
        if updated is None:
            logger.info(
                "Ride %s: %s -> %s lost a race (actor %s)",
                ride_id,
                observed_status.value,
                target.value,
                actor.id,
            )
            raise RaceLost()

        logger.info(
            "Ride %s: %s -> %s by %s %s",
            ride_id,
            observed_status.value,
            target.value,
            actor.role.value.lower(),
            actor.id,
        )
        self._emit(self.notifier.on_status_changed, updated)
        return updated

    # ── Reads ─────────────────────────────────────────────────────

    @_classified
    async def view(
        self, ride_id: str, actor: Optional[Actor] = None
    ) -> tuple[RideRequest, Optional[int]]:
        """Return the record and its live waiting number (if still pending).

        When ``actor`` is given, requesters only see their own requests and
        responders only the open queue plus requests they claimed.
        """
        record = await self.store.get(ride_id)
        if record is None:
            raise NotFound()
        if actor is not None:
            self._check_visible(actor, record)
        return record, await self.queue.live_position(record)

    # ── Internals ─────────────────────────────────────────────────

    @staticmethod
    def _check_visible(actor: Actor, record: RideRequest) -> None:
        if actor.role == ActorRole.REQUESTER:
            visible = record.requester_id == actor.id
        else:
            visible = (
                record.status == RideStatus.PENDING
                or record.responder_id == actor.id
            )
        if not visible:
            raise Forbidden("Sorry! this request belongs to someone else")

    @staticmethod
    def _check_role(actor: Actor, record: RideRequest, target: RideStatus) -> None:
        if target not in ROLE_TARGETS[actor.role]:
            raise Forbidden("Sorry! you can not update this status")
        if actor.role == ActorRole.REQUESTER and record.requester_id != actor.id:
            raise Forbidden("Sorry! this request belongs to someone else")

    @staticmethod
    def _emit(hook: Callable[[RideRequest], None], record: RideRequest) -> None:
        try:
            hook(record)
        except Exception:
            logger.exception("Notification hook failed for ride %s", record.id)


def _parse_status(value: RideStatus | str) -> RideStatus:
    try:
        return RideStatus(value)
    except ValueError:
        raise InvalidStatus() from None


def _parse_role(value: ActorRole | str) -> ActorRole:
    try:
        return ActorRole(value)
    except ValueError:
        raise Forbidden("Unknown caller role") from None
