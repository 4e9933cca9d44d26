"""
Tests for availability checks.
"""

import pendulum
import pytest

from bayplanner.domain.availability import AvailabilityChecker, find_overlaps
from bayplanner.domain.exceptions import InvalidInputError, UnknownResourceError
from bayplanner.domain.models import Booking, BookingSnapshot, BookingStatus, TimeRange
from bayplanner.domain.registry import ResourceRegistry


def _window(start: str, end: str) -> TimeRange:
    return TimeRange(
        start=pendulum.parse(start, tz="Europe/Berlin"),
        end=pendulum.parse(end, tz="Europe/Berlin"),
    )


def _snapshot(*bookings: Booking) -> BookingSnapshot:
    return BookingSnapshot(tuple(bookings))


EXISTING = Booking(
    id="b1",
    resource_id="bay-1",
    window=_window("2024-11-25 09:00", "2024-11-25 10:00"),
)


class TestAvailabilityChecker:
    """Tests for AvailabilityChecker."""

    def test_touching_endpoints_do_not_conflict(self):
        checker = AvailabilityChecker(ResourceRegistry.default())
        snapshot = _snapshot(EXISTING)

        assert checker.is_available("bay-1", _window("2024-11-25 10:00", "2024-11-25 11:00"), snapshot)
        assert checker.is_available("bay-1", _window("2024-11-25 08:00", "2024-11-25 09:00"), snapshot)

    def test_overlap_blocks(self):
        checker = AvailabilityChecker(ResourceRegistry.default())
        snapshot = _snapshot(EXISTING)
        window = _window("2024-11-25 09:30", "2024-11-25 10:30")

        assert not checker.is_available("bay-1", window, snapshot)
        assert [b.id for b in checker.find_blocking("bay-1", window, snapshot)] == ["b1"]

    def test_other_bay_is_unaffected(self):
        checker = AvailabilityChecker(ResourceRegistry.default())

        assert checker.is_available("bay-2", EXISTING.window, _snapshot(EXISTING))

    def test_exclude_booking_id_for_rescheduling(self):
        """A booking never conflicts with itself when it is being moved."""
        checker = AvailabilityChecker(ResourceRegistry.default())
        window = _window("2024-11-25 09:30", "2024-11-25 10:30")

        assert checker.is_available("bay-1", window, _snapshot(EXISTING), exclude_booking_id="b1")

    @pytest.mark.parametrize(
        "status", [BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW]
    )
    def test_terminal_bookings_do_not_block(self, status):
        checker = AvailabilityChecker(ResourceRegistry.default())
        booking = Booking(id="b1", resource_id="bay-1", window=EXISTING.window, status=status)

        assert checker.is_available("bay-1", EXISTING.window, _snapshot(booking))

    def test_in_progress_blocks(self):
        checker = AvailabilityChecker(ResourceRegistry.default())
        booking = Booking(
            id="b1", resource_id="bay-1", window=EXISTING.window, status=BookingStatus.IN_PROGRESS
        )

        assert not checker.is_available("bay-1", EXISTING.window, _snapshot(booking))

    def test_buffer_widens_existing_bookings(self):
        checker = AvailabilityChecker(ResourceRegistry.default(), buffer_minutes=15)
        snapshot = _snapshot(EXISTING)

        assert not checker.is_available("bay-1", _window("2024-11-25 10:00", "2024-11-25 11:00"), snapshot)
        assert checker.is_available("bay-1", _window("2024-11-25 10:15", "2024-11-25 11:15"), snapshot)
        assert not checker.is_available("bay-1", _window("2024-11-25 08:00", "2024-11-25 08:50"), snapshot)

    def test_negative_buffer_rejected(self):
        with pytest.raises(InvalidInputError):
            AvailabilityChecker(ResourceRegistry.default(), buffer_minutes=-5)

    def test_unknown_resource(self):
        checker = AvailabilityChecker(ResourceRegistry.default())

        with pytest.raises(UnknownResourceError):
            checker.is_available("bay-9", EXISTING.window, _snapshot())


class TestFindOverlaps:
    """Tests for the snapshot-wide overlap scan."""

    def test_clean_snapshot(self):
        other = Booking(id="b2", resource_id="bay-1", window=_window("2024-11-25 10:00", "2024-11-25 11:00"))

        assert find_overlaps(_snapshot(EXISTING, other)) == []

    def test_reports_pairs_on_same_bay_only(self):
        clash = Booking(id="b2", resource_id="bay-1", window=_window("2024-11-25 09:30", "2024-11-25 11:00"))
        elsewhere = Booking(id="b3", resource_id="bay-2", window=EXISTING.window)
        cancelled = Booking(
            id="b4", resource_id="bay-1", window=EXISTING.window, status=BookingStatus.CANCELLED
        )

        overlaps = find_overlaps(_snapshot(EXISTING, clash, elsewhere, cancelled))

        assert [(a.id, b.id) for a, b in overlaps] == [("b1", "b2")]
