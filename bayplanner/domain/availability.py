"""
Availability checks against a booking snapshot.
"""

from __future__ import annotations

from itertools import combinations
from typing import List, Tuple

from .exceptions import InvalidInputError
from .models import Booking, BookingSnapshot, TimeRange
from .registry import ResourceRegistry


class AvailabilityChecker:
    """
    Decides whether a bay is free for a candidate window.

    Two windows conflict when ``a.start < b.end and a.end > b.start``.
    Touching endpoints never conflict. Only bookings in an occupying
    status (scheduled, confirmed, in-progress) block a window.

    ``buffer_minutes`` widens every existing booking on both sides; with the
    default of zero the plain half-open rule applies.
    """

    def __init__(self, registry: ResourceRegistry, buffer_minutes: int = 0):
        if buffer_minutes < 0:
            raise InvalidInputError("buffer_minutes must not be negative")
        self.registry = registry
        self.buffer_minutes = buffer_minutes

    def is_available(
        self,
        resource_id: str,
        window: TimeRange,
        snapshot: BookingSnapshot,
        exclude_booking_id: str | None = None,
    ) -> bool:
        """Check that no occupying booking on the bay intersects the window."""
        return not self.find_blocking(resource_id, window, snapshot, exclude_booking_id)

    def find_blocking(
        self,
        resource_id: str,
        window: TimeRange,
        snapshot: BookingSnapshot,
        exclude_booking_id: str | None = None,
    ) -> List[Booking]:
        """
        Return the occupying bookings on the bay that collide with the window.

        Sorted by start time.
        """
        self.registry.get(resource_id)
        return [
            booking
            for booking in snapshot.for_resource(resource_id, exclude_booking_id)
            if self._collides(window, booking.window)
        ]

    def _collides(self, candidate: TimeRange, existing: TimeRange) -> bool:
        if not self.buffer_minutes:
            return candidate.overlaps(existing)
        return (
            candidate.start < existing.end.add(minutes=self.buffer_minutes)
            and candidate.end.add(minutes=self.buffer_minutes) > existing.start
        )


def find_overlaps(snapshot: BookingSnapshot) -> List[Tuple[Booking, Booking]]:
    """
    Every pair of occupying bookings on the same bay whose windows intersect.

    An empty result means the snapshot satisfies the no-double-booking
    invariant.
    """
    overlaps: List[Tuple[Booking, Booking]] = []
    by_resource: dict[str, List[Booking]] = {}
    for booking in snapshot.occupying():
        by_resource.setdefault(booking.resource_id, []).append(booking)

    for resource_id in sorted(by_resource):
        bookings = sorted(by_resource[resource_id], key=lambda b: (b.start, b.id))
        for first, second in combinations(bookings, 2):
            if first.window.overlaps(second.window):
                overlaps.append((first, second))

    return overlaps
