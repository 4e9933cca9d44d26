"""
Tests for slot generator.
"""

from datetime import date, time

import pendulum
import pytest

from bayplanner.domain.exceptions import InvalidInputError, UnknownResourceError
from bayplanner.domain.models import Closure, OperatingHours, Resource
from bayplanner.domain.registry import ResourceRegistry
from bayplanner.domain.slot_generator import SlotGenerator


MONDAY = date(2024, 11, 25)


class TestSlotGenerator:
    """Tests for SlotGenerator."""

    def test_two_hour_slots_on_half_hour_grid(self):
        """08:00-17:00 with 2h jobs on a 30 min grid gives 08:00 through 15:00."""
        generator = SlotGenerator(ResourceRegistry.default())

        slots = generator.generate_slots("bay-1", MONDAY, 2, 0.5)

        assert len(slots) == 15
        assert slots[0].start == pendulum.parse("2024-11-25 08:00", tz="Europe/Berlin")
        assert slots[-1].end == pendulum.parse("2024-11-25 17:00", tz="Europe/Berlin")
        assert all(s.duration_minutes() == 120 for s in slots)
        assert list(slots) == sorted(slots, key=lambda s: s.start)

    def test_quarter_hour_grid(self):
        generator = SlotGenerator(ResourceRegistry.default())

        slots = generator.generate_slots("bay-1", MONDAY, 1, 0.25)

        assert len(slots) == 33
        assert slots[1].start.minute == 15

    def test_duration_longer_than_day(self):
        """A job that cannot fit inside the operating window yields nothing."""
        generator = SlotGenerator(ResourceRegistry.default())

        assert generator.generate_slots("bay-1", MONDAY, 10) == ()

    def test_closed_weekday(self):
        generator = SlotGenerator(ResourceRegistry.default())

        assert generator.generate_slots("bay-1", date(2024, 11, 30), 1) == ()

    def test_closure_day(self):
        hours = OperatingHours.uniform(time(8, 0), time(17, 0), [0, 1, 2, 3, 4])
        registry = ResourceRegistry(
            [Resource(id="bay-1", label="Bay 1", hours=hours)],
            closures=[Closure(id="h", name="Holiday", start_date=MONDAY, end_date=MONDAY)],
        )

        assert SlotGenerator(registry).generate_slots("bay-1", MONDAY, 1) == ()

    def test_datetime_target_uses_its_date(self):
        generator = SlotGenerator(ResourceRegistry.default())

        slots = generator.generate_slots(
            "bay-1", pendulum.parse("2024-11-25 15:45", tz="Europe/Berlin"), 1
        )

        assert slots[0].start.hour == 8

    def test_utc_target_is_converted_to_shop_timezone(self):
        """A UTC datetime still yields the Berlin 08:00-17:00 day, not a shifted one."""
        generator = SlotGenerator(ResourceRegistry.default())
        window = ResourceRegistry.default().operating_window("bay-1", MONDAY)

        slots = generator.generate_slots("bay-1", pendulum.datetime(2024, 11, 25, 12, tz="UTC"), 2, 0.5)

        assert len(slots) == 15
        assert slots[0].start.in_timezone("Europe/Berlin") == pendulum.parse("2024-11-25 08:00", tz="Europe/Berlin")
        assert slots[-1].end.in_timezone("Europe/Berlin") == pendulum.parse("2024-11-25 17:00", tz="Europe/Berlin")
        assert all(window.contains(slot) for slot in slots)

    def test_late_utc_evening_belongs_to_next_berlin_day(self):
        """23:30 UTC on Sunday is already Monday in Berlin."""
        generator = SlotGenerator(ResourceRegistry.default())

        slots = generator.generate_slots("bay-1", pendulum.datetime(2024, 11, 24, 23, 30, tz="UTC"), 1)

        assert slots
        assert slots[0].start == pendulum.parse("2024-11-25 08:00", tz="Europe/Berlin")

    @pytest.mark.parametrize("duration,granularity", [(0, 0.5), (1, 0), (0.01, 0.5), (1, -0.5)])
    def test_invalid_hours(self, duration, granularity):
        generator = SlotGenerator(ResourceRegistry.default())

        with pytest.raises(InvalidInputError):
            generator.generate_slots("bay-1", MONDAY, duration, granularity)

    def test_unknown_resource(self):
        with pytest.raises(UnknownResourceError):
            SlotGenerator(ResourceRegistry.default()).generate_slots("bay-7", MONDAY, 1)

    def test_iter_slots_from_crosses_days(self):
        """The forward walk continues on the next open day."""
        generator = SlotGenerator(ResourceRegistry.default())
        friday_late = pendulum.parse("2024-11-29 16:30", tz="Europe/Berlin")

        slots = list(generator.iter_slots_from("bay-1", friday_late, 60, 30, horizon_days=4))

        assert slots[0].start == pendulum.parse("2024-12-02 08:00", tz="Europe/Berlin")
        assert all(s.start >= friday_late for s in slots)
