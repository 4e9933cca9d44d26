"""
Tests for booking status transitions.
"""

import pendulum
import pytest

from bayplanner.domain.exceptions import InvalidTransitionError
from bayplanner.domain.lifecycle import (
    allowed_transitions,
    can_transition,
    transition,
    validate_transition,
)
from bayplanner.domain.models import Booking, BookingStatus, TimeRange


class TestLifecycle:
    """Tests for the status state machine."""

    def test_happy_path(self):
        assert can_transition(BookingStatus.SCHEDULED, BookingStatus.CONFIRMED)
        assert can_transition(BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS)
        assert can_transition(BookingStatus.IN_PROGRESS, BookingStatus.COMPLETED)

    @pytest.mark.parametrize(
        "status", [BookingStatus.SCHEDULED, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS]
    )
    def test_cancel_and_no_show_from_any_open_state(self, status):
        assert BookingStatus.CANCELLED in allowed_transitions(status)
        assert BookingStatus.NO_SHOW in allowed_transitions(status)
        assert status.is_occupying
        assert not status.is_terminal

    def test_no_skipping_ahead(self):
        with pytest.raises(InvalidTransitionError, match="Invalid transition from scheduled to completed"):
            validate_transition(BookingStatus.SCHEDULED, BookingStatus.COMPLETED)

    @pytest.mark.parametrize(
        "status", [BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW]
    )
    def test_terminal_states_are_final(self, status):
        assert status.is_terminal
        assert not status.is_occupying
        assert allowed_transitions(status) == frozenset()
        with pytest.raises(InvalidTransitionError, match="no further transitions"):
            validate_transition(status, BookingStatus.SCHEDULED)

    def test_transition_returns_copy(self):
        start = pendulum.parse("2024-11-25 09:00", tz="Europe/Berlin")
        booking = Booking(id="b1", resource_id="bay-1", window=TimeRange.starting_at(start, 60))

        confirmed = transition(booking, BookingStatus.CONFIRMED)

        assert confirmed.status is BookingStatus.CONFIRMED
        assert booking.status is BookingStatus.SCHEDULED
        assert confirmed.window == booking.window
