"""
Multi-factor slot recommendations for a new job.

Independent of any explicit conflict, the engine scans every eligible bay's
slot grid for the target day, drops unavailable slots and ranks the rest by
a weighted score. It holds static configuration only; every call works on
the snapshot it is given, so results must be recomputed whenever the
booking set changes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from pendulum import DateTime

from .availability import AvailabilityChecker
from .exceptions import InvalidInputError
from .models import (
    Booking,
    BookingSnapshot,
    Priority,
    Proposal,
    ProposalLabel,
    Rationale,
    Resource,
    SchedulingRequest,
    SuggestionPreferences,
    TimeRange,
    hours_to_minutes,
)
from .registry import ResourceRegistry
from .slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

NEUTRAL = 0.5

# (latest start hour, score) - first match wins
TIME_OF_DAY_BANDS: Tuple[Tuple[int, float], ...] = ((10, 1.0), (14, 0.8), (16, 0.6))
LATE_DAY_SCORE = 0.3

CLOSE_GAP_MINUTES = 30
MODERATE_GAP_MINUTES = 60
LARGE_GAP_MINUTES = 120


@dataclass(frozen=True)
class SuggestionPolicy:
    """
    Static scoring configuration.

    Injected once at construction; nothing per-call lives here.
    """
    time_of_day_weight: float = 0.25
    load_balance_weight: float = 0.20
    gap_weight: float = 0.20
    priority_bonus: float = 0.1
    preferred_resource_bonus: float = 0.1
    lunch_penalty: float = 0.2
    lunch_start_hour: int = 12
    lunch_end_hour: int = 14
    min_score: float = 0.3
    optimal_threshold: float = 0.8
    efficient_threshold: float = 0.6
    top_k: int = 8
    granularity_hours: float = 0.5
    allow_same_day_scheduling: bool = True

    def __post_init__(self):
        if self.top_k < 1:
            raise InvalidInputError("top_k must be at least 1")
        if not 0 <= self.lunch_start_hour <= self.lunch_end_hour <= 24:
            raise InvalidInputError("lunch hours must satisfy 0 <= start <= end <= 24")
        hours_to_minutes(self.granularity_hours, "granularity_hours")


@dataclass(frozen=True)
class ScoreBreakdown:
    """Sub-scores behind one slot's final score."""
    time_of_day: float
    load_balance: float
    gap: float
    priority_bonus: float
    preferred_bonus: float
    lunch_penalty: float
    total: float


@dataclass(frozen=True)
class _Candidate:
    resource: Resource
    position: int
    window: TimeRange
    breakdown: ScoreBreakdown
    rationale: Rationale


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


def _gap_minutes(earlier: DateTime, later: DateTime) -> float:
    return (later - earlier).total_seconds() / 60


class SuggestionEngine:
    """
    Ranks free slots across bays for a scheduling request.

    Scoring (weights from the policy):
    - time of day: earlier starts score higher
    - load balance: favours the bay with the fewest bookings that day
    - gap: rewards slots snug against neighbouring bookings
    - bonuses: high/urgent priority, preferred bay
    - penalty: lunch-hour start when avoiding lunch
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        slot_generator: SlotGenerator,
        availability: AvailabilityChecker,
        policy: SuggestionPolicy | None = None,
    ):
        self.registry = registry
        self.slot_generator = slot_generator
        self.availability = availability
        self.policy = policy or SuggestionPolicy()
        self._step_minutes = hours_to_minutes(self.policy.granularity_hours, "granularity_hours")

    def suggest(
        self,
        request: SchedulingRequest,
        snapshot: BookingSnapshot,
        target_date: date,
        preferences: Optional[SuggestionPreferences] = None,
        now: Optional[DateTime] = None,
    ) -> Tuple[Proposal, ...]:
        """
        Recommend up to ``top_k`` slots for the request on ``target_date``.

        Args:
            request: Job constraints (duration, capabilities, priority)
            snapshot: Current booking set
            target_date: Day to search
            preferences: Optional scoring preferences
            now: Current time; slots starting earlier are skipped

        Returns:
            Proposals sorted by descending score. Empty when nothing useful
            is free, which is an expected outcome rather than an error.
        """
        preferences = preferences or SuggestionPreferences()
        day = self.registry.to_day(target_date)

        if preferences.preferred_resource_id is not None:
            self.registry.get(preferences.preferred_resource_id)

        if now is not None and not self.policy.allow_same_day_scheduling:
            if now.in_timezone(self.registry.timezone).date() >= day.date():
                logger.debug("Same-day scheduling disabled; skipping %s", day.to_date_string())
                return ()

        resources = self.registry.eligible(request.required_capabilities)
        if not resources:
            logger.info(
                "No active bay offers capabilities %s",
                ", ".join(sorted(request.required_capabilities)) or "(none)",
            )
            return ()

        day_bookings = {r.id: snapshot.on_day(r.id, day) for r in resources}
        day_counts = {rid: len(bookings) for rid, bookings in day_bookings.items()}
        preferred = preferences.preferred_resource_id or request.preferred_resource_id

        candidates: List[_Candidate] = []
        for resource in resources:
            position = self.registry.position(resource.id)
            slots = self.slot_generator.slots_in_minutes(
                resource.id, day, request.duration_minutes, self._step_minutes
            )
            for slot in slots:
                if now is not None and slot.start < now:
                    continue
                if not self.availability.is_available(resource.id, slot, snapshot):
                    continue

                breakdown = self.score_slot(
                    request, resource.id, slot, day_bookings[resource.id],
                    day_counts, preferences, preferred,
                )
                if breakdown.total < self.policy.min_score:
                    continue

                rationale = self._analyze(
                    request, resource.id, slot, day_bookings[resource.id],
                    day_counts, breakdown, preferred,
                )
                candidates.append(_Candidate(resource, position, slot, breakdown, rationale))

        logger.debug(
            "%d candidate slot(s) above %.2f on %s",
            len(candidates), self.policy.min_score, day.to_date_string(),
        )
        if not candidates:
            return ()

        earliest = min(candidates, key=lambda c: (c.window.start, c.position))
        ranked = sorted(
            candidates,
            key=lambda c: (-c.breakdown.total, c.window.start, c.position),
        )

        return tuple(
            Proposal(
                resource_id=c.resource.id,
                window=c.window,
                score=c.breakdown.total,
                label=self._label(c, earliest),
                rationale=c.rationale,
            )
            for c in ranked[: self.policy.top_k]
        )

    def score_slot(
        self,
        request: SchedulingRequest,
        resource_id: str,
        slot: TimeRange,
        bay_bookings: Sequence[Booking],
        day_counts: Dict[str, int],
        preferences: SuggestionPreferences,
        preferred_resource_id: Optional[str] = None,
    ) -> ScoreBreakdown:
        """
        Weighted score for one free slot, clamped to [0, 1].

        A preference flag that is switched off makes its factor neutral.
        """
        policy = self.policy
        hour = slot.start.hour

        time_score = self._time_of_day_score(hour) if preferences.prioritize_early_slots else NEUTRAL
        load_score = self._load_balance_score(resource_id, day_counts) if preferences.balance_workload else NEUTRAL
        gap_score = self._gap_score(slot, bay_bookings) if preferences.minimize_gaps else NEUTRAL

        priority_bonus = policy.priority_bonus if request.priority.rank >= Priority.HIGH.rank else 0.0
        preferred_bonus = (
            policy.preferred_resource_bonus
            if preferred_resource_id is not None and preferred_resource_id == resource_id
            else 0.0
        )
        lunch_penalty = (
            policy.lunch_penalty
            if preferences.avoid_lunch_hours and self._in_lunch(hour)
            else 0.0
        )

        raw = (
            time_score * policy.time_of_day_weight
            + load_score * policy.load_balance_weight
            + gap_score * policy.gap_weight
            + priority_bonus
            + preferred_bonus
            - lunch_penalty
        )

        return ScoreBreakdown(
            time_of_day=time_score,
            load_balance=load_score,
            gap=gap_score,
            priority_bonus=priority_bonus,
            preferred_bonus=preferred_bonus,
            lunch_penalty=lunch_penalty,
            total=round(_clamp(raw), 6),
        )

    @staticmethod
    def _time_of_day_score(hour: int) -> float:
        for latest_hour, score in TIME_OF_DAY_BANDS:
            if hour <= latest_hour:
                return score
        return LATE_DAY_SCORE

    @staticmethod
    def _is_least_loaded(resource_id: str, day_counts: Dict[str, int]) -> bool:
        peers = [count for rid, count in day_counts.items() if rid != resource_id]
        if not peers:
            return True
        return day_counts.get(resource_id, 0) <= min(peers)

    def _load_balance_score(self, resource_id: str, day_counts: Dict[str, int]) -> float:
        return 1.0 if self._is_least_loaded(resource_id, day_counts) else 0.5

    @staticmethod
    def _neighbours(slot: TimeRange, bay_bookings: Sequence[Booking]) -> Tuple[Booking | None, Booking | None]:
        before = [b for b in bay_bookings if b.end <= slot.start]
        after = [b for b in bay_bookings if b.start >= slot.end]
        previous = max(before, key=lambda b: b.end) if before else None
        following = min(after, key=lambda b: b.start) if after else None
        return previous, following

    def _gap_score(self, slot: TimeRange, bay_bookings: Sequence[Booking]) -> float:
        """
        Base 0.5, adjusted per adjacent booking.

        Example: previous booking ends 20 min before, next starts 90 min after
        -> 0.5 + 0.3 - 0.1 = 0.7
        """
        if not bay_bookings:
            return NEUTRAL

        previous, following = self._neighbours(slot, bay_bookings)
        score = NEUTRAL

        if previous is not None:
            score += self._gap_adjustment(_gap_minutes(previous.end, slot.start))
        if following is not None:
            score += self._gap_adjustment(_gap_minutes(slot.end, following.start))

        return _clamp(score)

    @staticmethod
    def _gap_adjustment(gap: float) -> float:
        if gap <= CLOSE_GAP_MINUTES:
            return 0.3
        if gap <= MODERATE_GAP_MINUTES:
            return 0.1
        return -0.1

    def _in_lunch(self, hour: int) -> bool:
        return self.policy.lunch_start_hour <= hour < self.policy.lunch_end_hour

    def _label(self, candidate: _Candidate, earliest: _Candidate) -> ProposalLabel:
        score = candidate.breakdown.total
        if score >= self.policy.optimal_threshold:
            return ProposalLabel.OPTIMAL
        if score >= self.policy.efficient_threshold:
            return ProposalLabel.EFFICIENT
        if candidate is earliest:
            return ProposalLabel.NEXT_AVAILABLE
        return ProposalLabel.ALTERNATIVE

    def _analyze(
        self,
        request: SchedulingRequest,
        resource_id: str,
        slot: TimeRange,
        bay_bookings: Sequence[Booking],
        day_counts: Dict[str, int],
        breakdown: ScoreBreakdown,
        preferred_resource_id: Optional[str],
    ) -> Rationale:
        reasons: List[str] = []
        benefits: List[str] = []
        warnings: List[str] = []

        hour = slot.start.hour
        weekday = slot.start.weekday()

        # Time of day
        if hour <= 10:
            reasons.append("Early morning slot - optimal productivity")
            benefits.append("Fresh technician focus")
        elif hour >= 16:
            warnings.append("Late afternoon - may affect completion time")

        # Workload
        if len(day_counts) > 1 and self._is_least_loaded(resource_id, day_counts):
            reasons.append("Balances workload between bays")
            benefits.append("Even bay utilization")

        # Gaps
        previous, _ = self._neighbours(slot, bay_bookings)
        if previous is not None:
            gap = _gap_minutes(previous.end, slot.start)
            if gap <= CLOSE_GAP_MINUTES:
                reasons.append("Minimal gap between appointments")
                benefits.append("Efficient schedule flow")
            elif gap >= LARGE_GAP_MINUTES:
                warnings.append("Large gap in schedule")

        if breakdown.preferred_bonus:
            reasons.append("Preferred bay")

        if breakdown.priority_bonus:
            benefits.append("Priority job - expedited scheduling")

        if breakdown.lunch_penalty:
            warnings.append("Starts during lunch hours")

        # Day of week
        if weekday == 0 and hour < 12:
            benefits.append("Monday morning - week starts fresh")
        elif weekday == 4 and hour >= 15:
            warnings.append("Friday afternoon - may rush completion")

        return Rationale(
            reasons=tuple(reasons),
            benefits=tuple(benefits),
            warnings=tuple(warnings),
            description=self._describe(reasons, benefits, request),
        )

    @staticmethod
    def _describe(reasons: Sequence[str], benefits: Sequence[str], request: SchedulingRequest) -> str:
        parts = []
        if reasons:
            parts.append(reasons[0])
        if benefits:
            parts.append(f"Benefits: {benefits[0]}")
        return " | ".join(parts) or f"Available {request.duration_hours:g}h slot"
