"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    EN_ROUTE = "EN_ROUTE"
    CANCELLED = "CANCELLED"
    DECLINED = "DECLINED"
    COMPLETED = "COMPLETED"


class ActorRole(str, enum.Enum):
    REQUESTER = "REQUESTER"
    RESPONDER = "RESPONDER"


class RideListType(str, enum.Enum):
    ACTIVE = "active"
    PAST = "past"


ACTIVE_STATUSES = frozenset(
    {RideStatus.PENDING, RideStatus.ACCEPTED, RideStatus.EN_ROUTE}
)
ASSIGNED_STATUSES = frozenset({RideStatus.ACCEPTED, RideStatus.EN_ROUTE})
TERMINAL_STATUSES = frozenset(
    {RideStatus.CANCELLED, RideStatus.DECLINED, RideStatus.COMPLETED}
)


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {
        RideStatus.ACCEPTED,
        RideStatus.DECLINED,
        RideStatus.CANCELLED,
    },
    RideStatus.ACCEPTED: {
        RideStatus.EN_ROUTE,
        RideStatus.DECLINED,
        RideStatus.COMPLETED,
        RideStatus.CANCELLED,
    },
    RideStatus.EN_ROUTE: {
        RideStatus.COMPLETED,
        RideStatus.DECLINED,
        RideStatus.CANCELLED,
    },
    RideStatus.CANCELLED: set(),
    RideStatus.DECLINED: set(),
    RideStatus.COMPLETED: set(),
}

# Without ``require_acceptance`` a responder may start or finish a pending
# request directly; doing so claims it.
LENIENT_EXTRA_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.PENDING: {RideStatus.EN_ROUTE, RideStatus.COMPLETED},
}

# Which targets each role may request.  Keyed by every ``ActorRole``.
ROLE_TARGETS: dict[ActorRole, frozenset[RideStatus]] = {
    ActorRole.REQUESTER: frozenset({RideStatus.CANCELLED}),
    ActorRole.RESPONDER: frozenset(
        {
            RideStatus.ACCEPTED,
            RideStatus.EN_ROUTE,
            RideStatus.DECLINED,
            RideStatus.COMPLETED,
        }
    ),
}


def allowed_targets(
    current: RideStatus, require_acceptance: bool = False
) -> set[RideStatus]:
    allowed = set(RIDE_TRANSITIONS.get(current, set()))
    if not require_acceptance:
        allowed |= LENIENT_EXTRA_TRANSITIONS.get(current, set())
    return allowed
