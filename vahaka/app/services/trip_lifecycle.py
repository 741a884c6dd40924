"""
Trip lifecycle state machine.

requested -> assigned -> active -> completed, with cancellation from
requested or assigned. An active trip can only be cancelled through the
explicit force override.
"""

from typing import Dict, FrozenSet

from vahaka.app.core.exceptions import InvalidTransitionError
from vahaka.app.models.enums import TripStatus


TRANSITIONS: Dict[TripStatus, FrozenSet[TripStatus]] = {
    TripStatus.REQUESTED: frozenset({TripStatus.ASSIGNED, TripStatus.CANCELLED}),
    TripStatus.ASSIGNED: frozenset({TripStatus.ACTIVE, TripStatus.CANCELLED}),
    TripStatus.ACTIVE: frozenset({TripStatus.COMPLETED}),
    TripStatus.COMPLETED: frozenset(),
    TripStatus.CANCELLED: frozenset(),
}

# Allowed only with force=True
FORCED_TRANSITIONS: Dict[TripStatus, FrozenSet[TripStatus]] = {
    TripStatus.ACTIVE: frozenset({TripStatus.CANCELLED}),
}

TERMINAL_STATUSES = frozenset({TripStatus.COMPLETED, TripStatus.CANCELLED})

# Statuses in which the trip holds a driver
BOUND_STATUSES = frozenset({TripStatus.ASSIGNED, TripStatus.ACTIVE})

# Document field stamped when a trip enters a status
TRANSITION_TIMESTAMPS = {
    TripStatus.ASSIGNED: "assignedAt",
    TripStatus.ACTIVE: "startedAt",
    TripStatus.COMPLETED: "completedAt",
    TripStatus.CANCELLED: "cancelledAt",
}


def can_transition(current: TripStatus, target: TripStatus, force: bool = False) -> bool:
    if target in TRANSITIONS[current]:
        return True
    return force and target in FORCED_TRANSITIONS.get(current, frozenset())


def ensure_transition(trip_id: str, current: TripStatus, target: TripStatus, force: bool = False) -> None:
    """
    Raises:
        InvalidTransitionError: If `current -> target` is not allowed
    """
    if not can_transition(current, target, force):
        raise InvalidTransitionError(trip_id, current.value, target.value)


def is_terminal(status: TripStatus) -> bool:
    return status in TERMINAL_STATUSES
