"""
Tests for the suggestion engine.
"""

from datetime import date, time

import pendulum
import pytest

from bayplanner.domain.availability import AvailabilityChecker
from bayplanner.domain.exceptions import UnknownResourceError
from bayplanner.domain.models import (
    Booking,
    BookingSnapshot,
    OperatingHours,
    Priority,
    ProposalLabel,
    Resource,
    SchedulingRequest,
    SuggestionPreferences,
    TimeRange,
)
from bayplanner.domain.registry import ResourceRegistry
from bayplanner.domain.slot_generator import SlotGenerator
from bayplanner.domain.suggestion_engine import SuggestionEngine, SuggestionPolicy


MONDAY = date(2024, 11, 25)


def _dt(value: str):
    return pendulum.parse(value, tz="Europe/Berlin")


def _engine(policy: SuggestionPolicy | None = None, registry: ResourceRegistry | None = None) -> SuggestionEngine:
    registry = registry or ResourceRegistry.default()
    return SuggestionEngine(
        registry, SlotGenerator(registry), AvailabilityChecker(registry), policy
    )


def _booking(booking_id: str, start: str, end: str, resource_id: str = "bay-1") -> Booking:
    return Booking(
        id=booking_id,
        resource_id=resource_id,
        window=TimeRange(start=_dt(start), end=_dt(end)),
    )


class TestSuggest:
    """Tests for SuggestionEngine.suggest."""

    def test_empty_day_prefers_early_slots(self):
        """With no bookings, the earliest slots win and ties go to registry order."""
        proposals = _engine().suggest(SchedulingRequest(duration_hours=1), BookingSnapshot(), MONDAY)

        assert len(proposals) == 8
        assert [(p.resource_id, p.window.start.format("HH:mm")) for p in proposals[:4]] == [
            ("bay-1", "08:00"),
            ("bay-2", "08:00"),
            ("bay-1", "08:30"),
            ("bay-2", "08:30"),
        ]
        assert all(p.score == pytest.approx(0.55) for p in proposals)

    def test_labels(self):
        proposals = _engine().suggest(SchedulingRequest(duration_hours=1), BookingSnapshot(), MONDAY)

        assert proposals[0].label is ProposalLabel.NEXT_AVAILABLE
        assert {p.label for p in proposals[1:]} == {ProposalLabel.ALTERNATIVE}

    def test_thresholds_drive_labels(self):
        policy = SuggestionPolicy(optimal_threshold=0.6, efficient_threshold=0.5)
        request = SchedulingRequest(duration_hours=1, priority=Priority.HIGH)

        proposals = _engine(policy).suggest(request, BookingSnapshot(), MONDAY)

        assert proposals[0].score == pytest.approx(0.65)
        assert proposals[0].label is ProposalLabel.OPTIMAL
        assert "Priority job - expedited scheduling" in proposals[0].rationale.benefits

    def test_sorted_by_descending_score(self):
        snapshot = BookingSnapshot((_booking("b1", "2024-11-25 08:00", "2024-11-25 12:00"),))

        proposals = _engine().suggest(SchedulingRequest(duration_hours=2), snapshot, MONDAY)

        scores = [p.score for p in proposals]
        assert scores == sorted(scores, reverse=True)

    def test_never_proposes_a_busy_slot(self):
        busy = _booking("b1", "2024-11-25 08:00", "2024-11-25 10:00")
        snapshot = BookingSnapshot((busy,))

        proposals = _engine().suggest(SchedulingRequest(duration_hours=1), snapshot, MONDAY)

        assert proposals
        assert not any(
            p.resource_id == "bay-1" and p.window.overlaps(busy.window) for p in proposals
        )

    def test_new_booking_only_removes_overlapping_slots_on_its_bay(self):
        """Free slots shrink by exactly the windows the new booking overlaps."""
        registry = ResourceRegistry.default()
        generator = SlotGenerator(registry)
        checker = AvailabilityChecker(registry)
        added = _booking("w", "2024-11-25 10:00", "2024-11-25 12:00")

        def free(resource_id, snapshot):
            return {
                slot for slot in generator.generate_slots(resource_id, MONDAY, 1, 0.5)
                if checker.is_available(resource_id, slot, snapshot)
            }

        before = BookingSnapshot((_booking("b2", "2024-11-25 13:00", "2024-11-25 14:00", "bay-2"),))
        after = before.with_booking(added)

        removed = free("bay-1", before) - free("bay-1", after)

        assert free("bay-1", after) <= free("bay-1", before)
        assert removed == {slot for slot in free("bay-1", before) if slot.overlaps(added.window)}
        assert len(removed) == 5
        assert free("bay-2", after) == free("bay-2", before)

    def test_repeat_calls_are_identical(self):
        snapshot = BookingSnapshot((_booking("b1", "2024-11-25 09:00", "2024-11-25 10:00"),))
        engine = _engine()
        request = SchedulingRequest(duration_hours=1)

        assert engine.suggest(request, snapshot, MONDAY) == engine.suggest(request, snapshot, MONDAY)

    def test_min_score_filter(self):
        policy = SuggestionPolicy(min_score=0.56)

        assert _engine(policy).suggest(SchedulingRequest(duration_hours=1), BookingSnapshot(), MONDAY) == ()

    def test_top_k(self):
        proposals = _engine(SuggestionPolicy(top_k=3)).suggest(
            SchedulingRequest(duration_hours=1), BookingSnapshot(), MONDAY
        )

        assert len(proposals) == 3

    def test_closed_day_is_empty(self):
        assert _engine().suggest(SchedulingRequest(duration_hours=1), BookingSnapshot(), date(2024, 11, 30)) == ()

    def test_preferred_bay_bonus(self):
        preferences = SuggestionPreferences(preferred_resource_id="bay-2")

        proposals = _engine().suggest(
            SchedulingRequest(duration_hours=1), BookingSnapshot(), MONDAY, preferences
        )

        assert proposals[0].resource_id == "bay-2"
        assert "Preferred bay" in proposals[0].rationale.reasons

    def test_unknown_preferred_bay(self):
        with pytest.raises(UnknownResourceError):
            _engine().suggest(
                SchedulingRequest(duration_hours=1),
                BookingSnapshot(),
                MONDAY,
                SuggestionPreferences(preferred_resource_id="bay-9"),
            )

    def test_required_capabilities(self):
        hours = OperatingHours.uniform(time(8, 0), time(17, 0), [0, 1, 2, 3, 4])
        registry = ResourceRegistry([
            Resource(id="bay-1", label="Bay 1", hours=hours),
            Resource(id="bay-2", label="Bay 2", hours=hours, capabilities={"lift"}),
        ])
        engine = _engine(registry=registry)

        lift = engine.suggest(
            SchedulingRequest(duration_hours=1, required_capabilities={"lift"}), BookingSnapshot(), MONDAY
        )
        paint = engine.suggest(
            SchedulingRequest(duration_hours=1, required_capabilities={"paint"}), BookingSnapshot(), MONDAY
        )

        assert {p.resource_id for p in lift} == {"bay-2"}
        assert paint == ()

    def test_skips_slots_before_now(self):
        now = _dt("2024-11-25 10:10")

        proposals = _engine().suggest(SchedulingRequest(duration_hours=1), BookingSnapshot(), MONDAY, now=now)

        assert proposals
        assert all(p.window.start >= now for p in proposals)
        assert proposals[0].window.start == _dt("2024-11-25 10:30")

    def test_same_day_scheduling_disabled(self):
        engine = _engine(SuggestionPolicy(allow_same_day_scheduling=False))
        request = SchedulingRequest(duration_hours=1)

        assert engine.suggest(request, BookingSnapshot(), MONDAY, now=_dt("2024-11-25 07:00")) == ()
        assert engine.suggest(request, BookingSnapshot(), MONDAY, now=_dt("2024-11-24 18:00"))


class TestScoring:
    """Tests for the individual scoring factors."""

    def test_snug_slot_scores_gap_bonus(self):
        """Previous booking ends 20 min before, next starts 90 min after -> 0.5 + 0.3 - 0.1."""
        bookings = [
            _booking("a", "2024-11-25 08:00", "2024-11-25 09:10"),
            _booking("b", "2024-11-25 12:00", "2024-11-25 13:00"),
        ]
        slot = TimeRange.starting_at(_dt("2024-11-25 09:30"), 60)
        breakdown = _engine().score_slot(
            SchedulingRequest(duration_hours=1),
            "bay-1",
            slot,
            bookings,
            {"bay-1": 2, "bay-2": 0},
            SuggestionPreferences(),
        )

        assert breakdown.gap == pytest.approx(0.7)
        assert breakdown.load_balance == 0.5
        assert breakdown.time_of_day == 1.0

    def test_lunch_penalty(self):
        engine = _engine()
        slot = TimeRange.starting_at(_dt("2024-11-25 12:30"), 60)
        request = SchedulingRequest(duration_hours=1)

        avoid = engine.score_slot(request, "bay-1", slot, [], {"bay-1": 0, "bay-2": 0}, SuggestionPreferences())
        allow = engine.score_slot(
            request, "bay-1", slot, [], {"bay-1": 0, "bay-2": 0},
            SuggestionPreferences(avoid_lunch_hours=False),
        )

        assert avoid.lunch_penalty == 0.2
        assert allow.lunch_penalty == 0.0
        assert allow.total - avoid.total == pytest.approx(0.2)

    def test_disabled_preferences_are_neutral(self):
        slot = TimeRange.starting_at(_dt("2024-11-25 16:00"), 60)
        preferences = SuggestionPreferences(
            prioritize_early_slots=False, balance_workload=False, minimize_gaps=False,
        )

        breakdown = _engine().score_slot(
            SchedulingRequest(duration_hours=1), "bay-1", slot, [], {"bay-1": 3, "bay-2": 0}, preferences
        )

        assert (breakdown.time_of_day, breakdown.load_balance, breakdown.gap) == (0.5, 0.5, 0.5)

    @pytest.mark.parametrize("hour,expected", [(8, 1.0), (10, 1.0), (11, 0.8), (14, 0.8), (15, 0.6), (16, 0.6)])
    def test_time_of_day_bands(self, hour, expected):
        slot = TimeRange.starting_at(_dt("2024-11-25 00:00").set(hour=hour), 60)

        breakdown = _engine().score_slot(
            SchedulingRequest(duration_hours=1), "bay-1", slot, [], {"bay-1": 0}, SuggestionPreferences()
        )

        assert breakdown.time_of_day == expected

    def test_late_slot_warning(self):
        proposals = _engine(SuggestionPolicy(top_k=100)).suggest(
            SchedulingRequest(duration_hours=1), BookingSnapshot(), MONDAY
        )

        late = [p for p in proposals if p.window.start.hour == 16]
        assert late
        assert "Late afternoon - may affect completion time" in late[0].rationale.warnings
