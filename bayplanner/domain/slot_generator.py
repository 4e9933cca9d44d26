"""
Candidate time-slot generation.

Pure domain logic: given a bay's operating window for a day, lay a grid of
fixed-length windows over it. All grid arithmetic happens in whole minutes
so that long sequences of fractional-hour steps never drift.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterator, List, Tuple

from pendulum import DateTime

from .models import TimeRange, hours_to_minutes
from .registry import ResourceRegistry

logger = logging.getLogger(__name__)


class SlotGenerator:
    """
    Produces ordered candidate windows for a bay.

    Algorithm:
    1. Look up the bay's operating window for the day (None when closed)
    2. Convert duration and granularity to minutes
    3. Step from opening time by the granularity
    4. Keep every window that ends no later than closing time
    """

    def __init__(self, registry: ResourceRegistry):
        self.registry = registry

    def generate_slots(
        self,
        resource_id: str,
        day: date,
        duration_hours: float,
        granularity_hours: float = 0.5,
    ) -> Tuple[TimeRange, ...]:
        """
        All grid windows of ``duration_hours`` on the bay for that date.

        Args:
            resource_id: Bay to generate for
            day: Target date, or a datetime converted to the shop timezone first
            duration_hours: Window length in fractional hours
            granularity_hours: Grid step in fractional hours

        Returns:
            Windows ascending by start; empty when the bay is closed or the
            duration does not fit inside the operating window.
        """
        duration = hours_to_minutes(duration_hours, "duration_hours")
        step = hours_to_minutes(granularity_hours, "granularity_hours")
        return tuple(self.slots_in_minutes(resource_id, day, duration, step))

    def slots_in_minutes(
        self,
        resource_id: str,
        day: date,
        duration_minutes: int,
        step_minutes: int,
    ) -> List[TimeRange]:
        """Minute-based variant of ``generate_slots``."""
        window = self.registry.operating_window(resource_id, day)
        if window is None:
            return []
        return self._grid(window, duration_minutes, step_minutes)

    def iter_slots_from(
        self,
        resource_id: str,
        earliest_start: DateTime,
        duration_minutes: int,
        step_minutes: int,
        horizon_days: int,
    ) -> Iterator[TimeRange]:
        """
        Walk the grid forward from a bound.

        Yields windows whose start is at or after ``earliest_start``, day by
        day, covering ``horizon_days`` calendar days including the first.
        """
        first_day = self.registry.to_day(earliest_start)
        for offset in range(max(horizon_days, 1)):
            current = first_day.add(days=offset)
            for slot in self.slots_in_minutes(resource_id, current, duration_minutes, step_minutes):
                if slot.start >= earliest_start:
                    yield slot
        logger.debug(
            "Slot search on %s exhausted %d day(s) from %s",
            resource_id, horizon_days, earliest_start,
        )

    @staticmethod
    def _grid(window: TimeRange, duration_minutes: int, step_minutes: int) -> List[TimeRange]:
        """
        Lay the grid over one operating window.

        Example:
        Window: 08:00 - 17:00, duration 120, step 30
        Result: [08:00-10:00, 08:30-10:30, ..., 15:00-17:00]
        """
        slots: List[TimeRange] = []
        available = window.duration_minutes()
        offset = 0

        while offset + duration_minutes <= available:
            start = window.start.add(minutes=offset)
            slots.append(TimeRange.starting_at(start, duration_minutes))
            offset += step_minutes

        return slots
