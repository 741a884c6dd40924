"""
Trip state machine tests.
"""

import pytest

from vahaka.app.core.exceptions import InvalidTransitionError, ValidationError
from vahaka.app.models.enums import TripStatus
from vahaka.app.services.trip_lifecycle import can_transition, ensure_transition, is_terminal

REQUESTED = TripStatus.REQUESTED
ASSIGNED = TripStatus.ASSIGNED
ACTIVE = TripStatus.ACTIVE
COMPLETED = TripStatus.COMPLETED
CANCELLED = TripStatus.CANCELLED


@pytest.mark.parametrize("current, target", [
    (REQUESTED, ASSIGNED),
    (REQUESTED, CANCELLED),
    (ASSIGNED, ACTIVE),
    (ASSIGNED, CANCELLED),
    (ACTIVE, COMPLETED),
])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)


@pytest.mark.parametrize("current, target", [
    (REQUESTED, ACTIVE),
    (REQUESTED, COMPLETED),
    (ASSIGNED, COMPLETED),
    (ASSIGNED, REQUESTED),
    (ACTIVE, ASSIGNED),
    (ACTIVE, CANCELLED),
    (COMPLETED, CANCELLED),
    (CANCELLED, ASSIGNED),
])
def test_rejected_transitions(current, target):
    assert not can_transition(current, target)


def test_force_only_unlocks_active_cancellation():
    assert can_transition(ACTIVE, CANCELLED, force=True)
    assert not can_transition(COMPLETED, CANCELLED, force=True)
    assert not can_transition(REQUESTED, COMPLETED, force=True)


def test_ensure_transition_raises():
    with pytest.raises(InvalidTransitionError) as exc_info:
        ensure_transition("t1", COMPLETED, CANCELLED)

    error = exc_info.value
    assert isinstance(error, ValidationError)
    assert error.error_code == "ERR_INVALID_TRANSITION"
    assert error.status_code == 409
    assert error.details == {"trip_id": "t1", "current_status": "completed", "target_status": "cancelled"}


def test_terminal_statuses():
    assert is_terminal(COMPLETED)
    assert is_terminal(CANCELLED)
    assert not any(is_terminal(status) for status in (REQUESTED, ASSIGNED, ACTIVE))
