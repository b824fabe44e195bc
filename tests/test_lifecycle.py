"""Lifecycle engine: submission, role-gated transitions and their errors."""

from __future__ import annotations

import random
from unittest.mock import AsyncMock

import pytest

from escort.domain.entities import Actor
from escort.domain.enums import (
    ACTIVE_STATUSES,
    ASSIGNED_STATUSES,
    TERMINAL_STATUSES,
    ActorRole,
    RideStatus,
)
from escort.domain.errors import (
    ActiveRequestExists,
    AlreadyAssigned,
    AppError,
    Forbidden,
    InternalError,
    InvalidStatus,
    InvalidTarget,
    NoOpTransition,
    NotFound,
    ResponderBusy,
    StoreTimeout,
    TerminalState,
)
from escort.domain.lifecycle import LifecycleEngine
from escort.domain.ports import NotificationPort

REQ = ActorRole.REQUESTER
RESP = ActorRole.RESPONDER


# ── Submission ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_submit_on_empty_store(engine, payload):
    submission = await engine.submit("U1", REQ, payload)

    assert submission.ride.status == RideStatus.PENDING
    assert submission.ride.responder_id is None
    assert submission.ride.requester_id == "U1"
    assert submission.waiting_number == 1


@pytest.mark.asyncio
async def test_second_submit_while_pending_fails(engine, payload):
    await engine.submit("U1", REQ, payload)
    with pytest.raises(ActiveRequestExists):
        await engine.submit("U1", REQ, payload)


@pytest.mark.asyncio
async def test_waiting_numbers_follow_submission_order(engine, payload):
    first = await engine.submit("U1", REQ, payload)
    second = await engine.submit("U2", REQ, payload)

    assert first.waiting_number == 1
    assert second.waiting_number == 2


@pytest.mark.asyncio
async def test_responder_cannot_submit(engine, payload):
    with pytest.raises(Forbidden):
        await engine.submit("S1", RESP, payload)


@pytest.mark.asyncio
async def test_submit_again_after_cancel(engine, payload):
    first = await engine.submit("U1", REQ, payload)
    await engine.transition(first.ride.id, "U1", REQ, RideStatus.CANCELLED)

    second = await engine.submit("U1", REQ, payload)
    assert second.ride.id != first.ride.id
    assert second.waiting_number == 1


@pytest.mark.asyncio
async def test_submit_emits_request_created(engine, notifier, payload):
    submission = await engine.submit("U1", REQ, payload)
    assert notifier.events == [("request_created", submission.ride)]


@pytest.mark.asyncio
async def test_submit_survives_failed_waiting_count(
    engine, store, notifier, payload, all_rides, monkeypatch
):
    monkeypatch.setattr(
        store,
        "count_pending_created_before",
        AsyncMock(side_effect=StoreTimeout()),
    )

    submission = await engine.submit("U1", REQ, payload)

    assert submission.waiting_number is None
    assert submission.ride.status == RideStatus.PENDING
    assert notifier.events == [("request_created", submission.ride)]
    assert [r.id for r in await all_rides()] == [submission.ride.id]


# ── Transitions ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_accept_assigns_responder(engine, notifier, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride

    accepted = await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    assert accepted.status == RideStatus.ACCEPTED
    assert accepted.responder_id == "S1"
    assert accepted.updated_at > ride.updated_at
    assert notifier.names == ["request_created", "status_changed"]
    assert notifier.events[-1][1] == accepted


@pytest.mark.asyncio
async def test_full_happy_path(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)
    await engine.transition(ride.id, "S1", RESP, RideStatus.EN_ROUTE)
    done = await engine.transition(ride.id, "S1", RESP, "COMPLETED")

    assert done.status == RideStatus.COMPLETED
    assert done.responder_id == "S1"


@pytest.mark.asyncio
async def test_second_responder_gets_already_assigned(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    with pytest.raises(AlreadyAssigned):
        await engine.transition(ride.id, "S2", RESP, RideStatus.ACCEPTED)


@pytest.mark.asyncio
async def test_other_responder_gets_already_assigned_for_current_status(
    engine, payload
):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)
    await engine.transition(ride.id, "S1", RESP, RideStatus.EN_ROUTE)

    with pytest.raises(AlreadyAssigned):
        await engine.transition(ride.id, "S2", RESP, RideStatus.EN_ROUTE)
    with pytest.raises(NoOpTransition):
        await engine.transition(ride.id, "S1", RESP, RideStatus.EN_ROUTE)


@pytest.mark.asyncio
async def test_other_responder_cannot_complete(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    with pytest.raises(AlreadyAssigned):
        await engine.transition(ride.id, "S2", RESP, RideStatus.COMPLETED)


@pytest.mark.asyncio
async def test_busy_responder_cannot_accept_another(engine, payload):
    first = (await engine.submit("U1", REQ, payload)).ride
    second = (await engine.submit("U2", REQ, payload)).ride
    await engine.transition(first.id, "S1", RESP, RideStatus.ACCEPTED)

    with pytest.raises(ResponderBusy):
        await engine.transition(second.id, "S1", RESP, RideStatus.ACCEPTED)


@pytest.mark.asyncio
async def test_responder_free_again_after_completion(engine, payload):
    first = (await engine.submit("U1", REQ, payload)).ride
    second = (await engine.submit("U2", REQ, payload)).ride
    await engine.transition(first.id, "S1", RESP, RideStatus.ACCEPTED)
    await engine.transition(first.id, "S1", RESP, RideStatus.COMPLETED)

    accepted = await engine.transition(second.id, "S1", RESP, RideStatus.ACCEPTED)
    assert accepted.responder_id == "S1"


@pytest.mark.asyncio
async def test_decline_without_claim_keeps_responder_empty(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride

    declined = await engine.transition(ride.id, "S1", RESP, RideStatus.DECLINED)

    assert declined.status == RideStatus.DECLINED
    assert declined.responder_id is None


@pytest.mark.asyncio
async def test_requester_cancels_accepted_ride(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    cancelled = await engine.transition(ride.id, "U1", REQ, RideStatus.CANCELLED)

    assert cancelled.status == RideStatus.CANCELLED
    assert cancelled.responder_id == "S1"


# ── Lenient vs strict progression ─────────────────────────────────────


@pytest.mark.asyncio
async def test_lenient_en_route_from_pending_claims(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride

    moving = await engine.transition(ride.id, "S1", RESP, RideStatus.EN_ROUTE)

    assert moving.status == RideStatus.EN_ROUTE
    assert moving.responder_id == "S1"


@pytest.mark.asyncio
async def test_lenient_en_route_from_pending_respects_busy(engine, payload):
    first = (await engine.submit("U1", REQ, payload)).ride
    second = (await engine.submit("U2", REQ, payload)).ride
    await engine.transition(first.id, "S1", RESP, RideStatus.ACCEPTED)

    with pytest.raises(ResponderBusy):
        await engine.transition(second.id, "S1", RESP, RideStatus.EN_ROUTE)


@pytest.mark.asyncio
async def test_strict_mode_requires_accept_first(store, notifier, clock, payload):
    strict = LifecycleEngine(store, notifier, clock=clock, require_acceptance=True)
    ride = (await strict.submit("U1", REQ, payload)).ride

    with pytest.raises(InvalidTarget):
        await strict.transition(ride.id, "S1", RESP, RideStatus.EN_ROUTE)
    with pytest.raises(InvalidTarget):
        await strict.transition(ride.id, "S1", RESP, RideStatus.COMPLETED)


# ── Validation order and error kinds ──────────────────────────────────


@pytest.mark.asyncio
async def test_unknown_ride(engine):
    with pytest.raises(NotFound):
        await engine.transition("missing", "S1", RESP, RideStatus.ACCEPTED)


@pytest.mark.asyncio
async def test_unknown_status_value(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    with pytest.raises(InvalidStatus):
        await engine.transition(ride.id, "S1", RESP, "TELEPORTED")


@pytest.mark.asyncio
async def test_cancel_completed_ride_is_terminal(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)
    await engine.transition(ride.id, "S1", RESP, RideStatus.COMPLETED)

    with pytest.raises(TerminalState):
        await engine.transition(ride.id, "U1", REQ, RideStatus.CANCELLED)


@pytest.mark.asyncio
async def test_same_status_is_no_op(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    with pytest.raises(NoOpTransition):
        await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)


@pytest.mark.asyncio
async def test_pending_target_rejected(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    with pytest.raises(InvalidTarget):
        await engine.transition(ride.id, "S1", RESP, RideStatus.PENDING)


@pytest.mark.asyncio
async def test_en_route_cannot_return_to_accepted(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    await engine.transition(ride.id, "S1", RESP, RideStatus.EN_ROUTE)

    with pytest.raises(InvalidTarget):
        await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)


@pytest.mark.asyncio
async def test_requester_may_only_cancel(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    with pytest.raises(Forbidden):
        await engine.transition(ride.id, "U1", REQ, RideStatus.ACCEPTED)


@pytest.mark.asyncio
async def test_requester_cannot_cancel_someone_elses_ride(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    with pytest.raises(Forbidden):
        await engine.transition(ride.id, "U2", REQ, RideStatus.CANCELLED)


@pytest.mark.asyncio
async def test_responder_cannot_cancel(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    with pytest.raises(Forbidden):
        await engine.transition(ride.id, "S1", RESP, RideStatus.CANCELLED)


@pytest.mark.asyncio
async def test_unknown_role_is_forbidden(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    with pytest.raises(Forbidden):
        await engine.transition(ride.id, "X1", "ADMIN", RideStatus.CANCELLED)


@pytest.mark.asyncio
async def test_failed_transition_writes_nothing(engine, store, notifier, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    with pytest.raises(Forbidden):
        await engine.transition(ride.id, "U1", REQ, RideStatus.COMPLETED)

    assert await store.get(ride.id) == ride
    assert notifier.names == ["request_created"]


# ── Reads ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_requester_cannot_view_someone_elses_ride(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride

    record, position = await engine.view(ride.id, Actor("U1", REQ))
    assert record == ride
    assert position == 1

    with pytest.raises(Forbidden):
        await engine.view(ride.id, Actor("U2", REQ))


@pytest.mark.asyncio
async def test_responder_views_queue_and_own_claims(engine, payload):
    ride = (await engine.submit("U1", REQ, payload)).ride
    record, _ = await engine.view(ride.id, Actor("S2", RESP))
    assert record.status == RideStatus.PENDING

    await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    record, position = await engine.view(ride.id, Actor("S1", RESP))
    assert record.responder_id == "S1"
    assert position is None
    with pytest.raises(Forbidden):
        await engine.view(ride.id, Actor("S2", RESP))


# ── Failure isolation ─────────────────────────────────────────────────


class ExplodingNotifier(NotificationPort):
    def on_request_created(self, record):
        pass

    def on_status_changed(self, record):
        raise RuntimeError("push service down")


@pytest.mark.asyncio
async def test_notifier_failure_does_not_undo_transition(store, clock, payload):
    engine = LifecycleEngine(store, ExplodingNotifier(), clock=clock)
    ride = (await engine.submit("U1", REQ, payload)).ride

    accepted = await engine.transition(ride.id, "S1", RESP, RideStatus.ACCEPTED)

    assert accepted.status == RideStatus.ACCEPTED
    assert (await store.get(ride.id)).status == RideStatus.ACCEPTED


@pytest.mark.asyncio
async def test_unexpected_store_failure_is_classified(notifier):
    store = AsyncMock()
    store.get.side_effect = RuntimeError("connection reset")
    engine = LifecycleEngine(store, notifier)

    with pytest.raises(InternalError) as excinfo:
        await engine.transition("r1", "S1", RESP, RideStatus.ACCEPTED)
    assert excinfo.value.status_code == 500
    assert "connection reset" not in excinfo.value.message


# ── Invariant properties over random operation sequences ──────────────


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_invariants_hold_for_random_sequences(engine, payload, all_rides, seed):
    rng = random.Random(seed)
    requesters = ["U1", "U2", "U3", "U4"]
    responders = ["S1", "S2"]
    targets = [s.value for s in RideStatus] + ["BOGUS"]
    finished: dict[str, object] = {}
    claimed: dict[str, str] = {}

    for _ in range(120):
        rides = await all_rides()
        try:
            if not rides or rng.random() < 0.3:
                await engine.submit(rng.choice(requesters), REQ, payload)
            else:
                ride = rng.choice(rides)
                if rng.random() < 0.3:
                    await engine.transition(
                        ride.id, ride.requester_id, REQ, RideStatus.CANCELLED
                    )
                else:
                    await engine.transition(
                        ride.id, rng.choice(responders), RESP, rng.choice(targets)
                    )
        except AppError as exc:
            assert exc.status_code == 400

        rides = await all_rides()
        for requester in requesters:
            active = [
                r for r in rides
                if r.requester_id == requester and r.status in ACTIVE_STATUSES
            ]
            assert len(active) <= 1
        for responder in responders:
            assigned = [
                r for r in rides
                if r.responder_id == responder and r.status in ASSIGNED_STATUSES
            ]
            assert len(assigned) <= 1
        for r in rides:
            if r.status in ASSIGNED_STATUSES:
                assert r.responder_id is not None
            if r.id in claimed:
                assert r.responder_id == claimed[r.id]
            elif r.responder_id is not None:
                claimed[r.id] = r.responder_id
            if r.id in finished:
                assert r == finished[r.id]
            elif r.status in TERMINAL_STATUSES:
                finished[r.id] = r
