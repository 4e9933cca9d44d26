"""
Booking lifecycle rules.

scheduled -> confirmed -> in-progress -> completed, with cancelled and
no-show reachable from any non-terminal state. The scheduling core only
reads status to decide occupancy; transitions are applied by the caller.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, FrozenSet

from .exceptions import InvalidTransitionError
from .models import Booking, BookingStatus


_ABANDON = frozenset({BookingStatus.CANCELLED, BookingStatus.NO_SHOW})

STATUS_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.SCHEDULED: frozenset({BookingStatus.CONFIRMED}) | _ABANDON,
    BookingStatus.CONFIRMED: frozenset({BookingStatus.IN_PROGRESS}) | _ABANDON,
    BookingStatus.IN_PROGRESS: frozenset({BookingStatus.COMPLETED}) | _ABANDON,
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}


def allowed_transitions(status: BookingStatus) -> FrozenSet[BookingStatus]:
    return STATUS_TRANSITIONS[status]


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in STATUS_TRANSITIONS[current]


def validate_transition(current: BookingStatus, target: BookingStatus) -> None:
    """
    Raise InvalidTransitionError unless ``current -> target`` is allowed.
    """
    if can_transition(current, target):
        return
    if current.is_terminal:
        raise InvalidTransitionError(
            f"Booking is already {current.value}; no further transitions are allowed"
        )
    allowed = ", ".join(sorted(s.value for s in STATUS_TRANSITIONS[current]))
    raise InvalidTransitionError(
        f"Invalid transition from {current.value} to {target.value} (allowed: {allowed})"
    )


def transition(booking: Booking, target: BookingStatus) -> Booking:
    """Return a copy of the booking in the target status."""
    validate_transition(booking.status, target)
    return replace(booking, status=target)
