"""
Application service exposing the scheduling core to its caller.

The service wires the domain components together from static configuration
and offers the four query operations (slots, availability, conflict
resolution, suggestions) plus the commit-time guard. Booking data is always
passed in or read fresh from a snapshot source; nothing is cached between
calls, so a changed booking set is picked up on the next call.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional, Protocol, Tuple

from pendulum import DateTime

from ..config import AppConfig
from ..domain.availability import AvailabilityChecker, find_overlaps
from ..domain.conflict_resolver import (
    ConflictResolution,
    ConflictResolver,
    REQUESTED_PLACEHOLDER_ID,
    Resolution,
    apply_resolution,
)
from ..domain.exceptions import InvalidInputError, StaleSnapshotError
from ..domain.models import (
    Booking,
    BookingSnapshot,
    Proposal,
    SchedulingRequest,
    SuggestionPreferences,
    TimeRange,
)
from ..domain.registry import ResourceRegistry
from ..domain.slot_generator import SlotGenerator
from ..domain.suggestion_engine import SuggestionEngine, SuggestionPolicy

logger = logging.getLogger(__name__)


class SnapshotSourceProtocol(Protocol):
    """Protocol describing where the caller's current bookings come from."""

    def load_snapshot(self) -> BookingSnapshot:
        """Return the latest booking set."""


class SchedulingService:
    """
    Orchestrates snapshot retrieval and the scheduling components.

    Dependency inversion toward a protocol makes it easy to plug in the
    caller's storage or the JSON file adapter in tests.
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        policy: SuggestionPolicy | None = None,
        *,
        buffer_minutes: int = 0,
        search_horizon_days: int = 5,
        move_new_alternatives: int = 3,
        snapshot_source: Optional[SnapshotSourceProtocol] = None,
    ) -> None:
        self.registry = registry
        self.policy = policy or SuggestionPolicy()
        self._snapshot_source = snapshot_source

        self.slot_generator = SlotGenerator(registry)
        self.availability = AvailabilityChecker(registry, buffer_minutes=buffer_minutes)
        self.resolver = ConflictResolver(
            registry,
            self.slot_generator,
            self.availability,
            granularity_hours=self.policy.granularity_hours,
            search_horizon_days=search_horizon_days,
            move_new_alternatives=move_new_alternatives,
        )
        self.suggestion_engine = SuggestionEngine(
            registry, self.slot_generator, self.availability, self.policy
        )

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        snapshot_source: Optional[SnapshotSourceProtocol] = None,
    ) -> "SchedulingService":
        return cls(
            config.build_registry(),
            config.build_policy(),
            buffer_minutes=config.scheduling.buffer_minutes,
            search_horizon_days=config.scheduling.search_horizon_days,
            move_new_alternatives=config.scheduling.move_new_alternatives,
            snapshot_source=snapshot_source,
        )

    def load_snapshot(self) -> BookingSnapshot:
        """Read the latest bookings from the configured source."""
        if self._snapshot_source is None:
            raise InvalidInputError("No snapshot source configured")
        snapshot = self._snapshot_source.load_snapshot()
        logger.debug("Loaded snapshot with %d booking(s)", len(snapshot))
        return snapshot

    def generate_slots(
        self,
        resource_id: str,
        day: date,
        duration_hours: float,
        granularity_hours: float | None = None,
    ) -> Tuple[TimeRange, ...]:
        """Candidate windows on one bay for a day."""
        step = granularity_hours if granularity_hours is not None else self.policy.granularity_hours
        return self.slot_generator.generate_slots(resource_id, day, duration_hours, step)

    def check_availability(
        self,
        resource_id: str,
        window: TimeRange,
        snapshot: BookingSnapshot,
        exclude_booking_id: str | None = None,
    ) -> bool:
        """Whether the bay is free for the window in this snapshot."""
        return self.availability.is_available(resource_id, window, snapshot, exclude_booking_id)

    def resolve_conflict(
        self,
        request: SchedulingRequest,
        snapshot: BookingSnapshot,
        blocking: Optional[Iterable[Booking]] = None,
    ) -> ConflictResolution:
        """Ranked resolutions plus the force option for a requested booking."""
        return self.resolver.resolve(request, snapshot, blocking)

    def suggest_slots(
        self,
        request: SchedulingRequest,
        snapshot: BookingSnapshot,
        target_date: date,
        preferences: Optional[SuggestionPreferences] = None,
        now: Optional[DateTime] = None,
    ) -> Tuple[Proposal, ...]:
        """Top-ranked proposals for the request on the target date."""
        return self.suggestion_engine.suggest(request, snapshot, target_date, preferences, now)

    def find_suggestions(
        self,
        request: SchedulingRequest,
        target_date: date,
        preferences: Optional[SuggestionPreferences] = None,
        now: Optional[DateTime] = None,
    ) -> Tuple[Proposal, ...]:
        """
        Fetch a fresh snapshot and compute suggestions from it.
        """
        return self.suggest_slots(request, self.load_snapshot(), target_date, preferences, now)

    def find_resolutions(self, request: SchedulingRequest) -> ConflictResolution:
        """Fetch a fresh snapshot and resolve the request against it."""
        return self.resolve_conflict(request, self.load_snapshot())

    def verify_commit(
        self,
        resource_id: str,
        window: TimeRange,
        latest_snapshot: BookingSnapshot,
        exclude_booking_id: str | None = None,
    ) -> None:
        """
        Re-check a window against the latest snapshot right before commit.

        Raises:
            StaleSnapshotError: If another booking took the window meanwhile
        """
        conflicting = self.availability.find_blocking(
            resource_id, window, latest_snapshot, exclude_booking_id
        )
        if conflicting:
            ids = ", ".join(b.id for b in conflicting)
            logger.warning("Commit conflict on %s for %s: %s", resource_id, window, ids)
            raise StaleSnapshotError(
                f"{resource_id} is no longer free for {window} (conflicts with {ids})",
                conflicting,
            )

    def verify_resolution(
        self,
        request: SchedulingRequest,
        resolution: Resolution,
        latest_snapshot: BookingSnapshot,
    ) -> None:
        """
        Check that a resolution still applies cleanly to the latest snapshot.

        Every moved booking must still be where the resolution found it, and
        applying the resolution must not create an overlap.

        Raises:
            StaleSnapshotError: If the snapshot changed in a way that matters
        """
        for move in resolution.moves:
            current = latest_snapshot.get(move.booking_id)
            if current is None or not current.is_occupying or current.window != move.original:
                raise StaleSnapshotError(
                    f"Booking '{move.booking_id}' changed since the resolution was computed",
                    [current] if current is not None else [],
                )

        applied = apply_resolution(latest_snapshot, request, resolution, REQUESTED_PLACEHOLDER_ID)
        involved = {REQUESTED_PLACEHOLDER_ID} | {move.booking_id for move in resolution.moves}
        overlaps = [
            pair for pair in find_overlaps(applied)
            if pair[0].id in involved or pair[1].id in involved
        ]
        if overlaps:
            conflicting = {b.id: b for pair in overlaps for b in pair if b.id not in involved}
            raise StaleSnapshotError(
                "Resolution no longer applies cleanly to the latest bookings",
                list(conflicting.values()),
            )

    @staticmethod
    def apply_resolution(
        snapshot: BookingSnapshot,
        request: SchedulingRequest,
        resolution: Resolution,
        booking_id: str,
    ) -> BookingSnapshot:
        """Preview the snapshot after a resolution (does not persist anything)."""
        return apply_resolution(snapshot, request, resolution, booking_id)
