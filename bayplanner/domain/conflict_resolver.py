"""
Ranked resolutions for a requested booking that collides with existing work.

The resolver is a pure transform: it reads a snapshot and returns options.
It never mutates bookings and never forces a double-booking on its own; the
force-schedule override is always returned separately and must be confirmed
explicitly by the operator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from pendulum import DateTime

from .availability import AvailabilityChecker
from .exceptions import InvalidInputError
from .models import (
    Booking,
    BookingSnapshot,
    BookingStatus,
    Priority,
    Rationale,
    SchedulingRequest,
    TimeRange,
    hours_to_minutes,
)
from .registry import ResourceRegistry
from .slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

REQUESTED_PLACEHOLDER_ID = "__requested__"


class ResolutionKind(str, Enum):
    MOVE_EXISTING = "move-existing"
    MOVE_NEW = "move-new"
    SWITCH_RESOURCE = "switch-resource"

    @property
    def rank(self) -> int:
        return _KIND_RANK[self]

    @property
    def title(self) -> str:
        return _KIND_TITLE[self]


_KIND_RANK = {
    ResolutionKind.MOVE_EXISTING: 1,
    ResolutionKind.MOVE_NEW: 2,
    ResolutionKind.SWITCH_RESOURCE: 3,
}

_KIND_TITLE = {
    ResolutionKind.MOVE_EXISTING: "Move Conflicting Appointment",
    ResolutionKind.MOVE_NEW: "Reschedule New Job",
    ResolutionKind.SWITCH_RESOURCE: "Use Different Bay",
}


@dataclass(frozen=True)
class BookingMove:
    """Relocation of one existing booking."""
    booking_id: str
    resource_id: str
    original: TimeRange
    window: TimeRange


@dataclass(frozen=True)
class Resolution:
    """
    One non-forcing way out of a conflict.

    ``resource_id`` and ``window`` are where the new request lands; ``moves``
    lists the existing bookings that have to be relocated first.
    """
    kind: ResolutionKind
    resource_id: str
    window: TimeRange
    moves: Tuple[BookingMove, ...]
    score: float
    rationale: Rationale

    @property
    def rank(self) -> int:
        return self.kind.rank

    @property
    def title(self) -> str:
        return self.kind.title


@dataclass(frozen=True)
class ForceScheduleOption:
    """
    Book the request as asked, knowingly overlapping ``overlapping``.

    Always the least preferred option; never accept it without an explicit
    operator confirmation.
    """
    resource_id: str
    window: TimeRange
    overlapping: Tuple[Booking, ...]
    requires_confirmation: bool = True
    title: str = "Force Schedule (creates overlap)"


@dataclass(frozen=True)
class ConflictResolution:
    """Everything the resolver offers for one requested booking."""
    resource_id: str
    window: TimeRange
    blocking: Tuple[Booking, ...]
    resolutions: Tuple[Resolution, ...]
    force_option: ForceScheduleOption

    @property
    def has_conflict(self) -> bool:
        return bool(self.blocking)

    @property
    def best(self) -> Resolution | None:
        return self.resolutions[0] if self.resolutions else None


def _hhmm(window: TimeRange) -> str:
    return f"{window.start.format('HH:mm')}-{window.end.format('HH:mm')}"


def _describe(booking: Booking) -> str:
    return booking.title or booking.id


class ConflictResolver:
    """
    Enumerates and ranks resolutions for a colliding request.

    Candidate classes, in rank order:
    1. Move existing - relocate the blocking booking(s) to the next free
       grid window after the later of the request end and their own end
    2. Move new request - the next free grid windows after the requested start
    3. Switch resource - same time on the next eligible bay
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        slot_generator: SlotGenerator,
        availability: AvailabilityChecker,
        granularity_hours: float = 0.5,
        search_horizon_days: int = 5,
        move_new_alternatives: int = 3,
    ):
        if search_horizon_days < 1:
            raise InvalidInputError("search_horizon_days must be at least 1")
        if move_new_alternatives < 1:
            raise InvalidInputError("move_new_alternatives must be at least 1")
        self.registry = registry
        self.slot_generator = slot_generator
        self.availability = availability
        self.step_minutes = hours_to_minutes(granularity_hours, "granularity_hours")
        self.search_horizon_days = search_horizon_days
        self.move_new_alternatives = move_new_alternatives

    def resolve(
        self,
        request: SchedulingRequest,
        snapshot: BookingSnapshot,
        blocking: Optional[Iterable[Booking]] = None,
    ) -> ConflictResolution:
        """
        Build ranked resolutions for ``request``.

        Args:
            request: Must carry ``preferred_resource_id`` and ``preferred_start``
            snapshot: Current booking set
            blocking: Optional bookings the caller already knows collide; any
                that are missing from the snapshot are taken into account too

        Returns:
            A ConflictResolution. When nothing fits within the search horizon
            the resolution list is empty; the force option is always present.
        """
        resource_id, window = self._requested(request)
        snapshot = self._merge_known(snapshot, blocking)

        found = self.availability.find_blocking(resource_id, window, snapshot)
        force = ForceScheduleOption(
            resource_id=resource_id,
            window=window,
            overlapping=tuple(found),
        )
        if not found:
            logger.debug("No conflict for %s at %s", resource_id, window)
            return ConflictResolution(resource_id, window, (), (), force)

        logger.debug(
            "Resolving %d blocking booking(s) on %s for %s",
            len(found), resource_id, window,
        )

        within_hours = self._fits_operating_hours(resource_id, window)
        candidates: List[Tuple[ResolutionKind, str, TimeRange, Tuple[BookingMove, ...], Rationale]] = []

        if within_hours:
            moves = self._move_existing(resource_id, window, found, snapshot)
            if moves is not None:
                candidates.append((
                    ResolutionKind.MOVE_EXISTING,
                    resource_id,
                    window,
                    moves,
                    self._move_existing_rationale(request, found, moves),
                ))

        for slot in self._move_new(request, resource_id, window, snapshot):
            candidates.append((
                ResolutionKind.MOVE_NEW,
                resource_id,
                slot,
                (),
                self._move_new_rationale(request, resource_id, window, slot),
            ))

        switch = self._switch_resource(request, resource_id, window, snapshot)
        if switch is not None:
            candidates.append((
                ResolutionKind.SWITCH_RESOURCE,
                switch,
                window,
                (),
                self._switch_rationale(switch),
            ))

        candidates.sort(key=lambda c: (c[0].rank, c[2].start))
        total = len(candidates)
        resolutions = tuple(
            Resolution(
                kind=kind,
                resource_id=target,
                window=slot,
                moves=moves,
                score=round(1.0 - index / total, 4),
                rationale=rationale,
            )
            for index, (kind, target, slot, moves, rationale) in enumerate(candidates)
        )

        if not resolutions:
            logger.info(
                "No non-forcing resolution for %s on %s within %d day(s)",
                window, resource_id, self.search_horizon_days,
            )

        return ConflictResolution(resource_id, window, tuple(found), resolutions, force)

    def _requested(self, request: SchedulingRequest) -> Tuple[str, TimeRange]:
        if request.preferred_resource_id is None or request.preferred_start is None:
            raise InvalidInputError(
                "Conflict resolution needs a requested bay and start time"
            )
        self.registry.get(request.preferred_resource_id)
        return request.preferred_resource_id, request.requested_window()

    @staticmethod
    def _merge_known(
        snapshot: BookingSnapshot,
        blocking: Optional[Iterable[Booking]],
    ) -> BookingSnapshot:
        if not blocking:
            return snapshot
        merged = snapshot
        for booking in blocking:
            if merged.get(booking.id) is None:
                merged = merged.with_booking(booking)
        return merged

    def _fits_operating_hours(self, resource_id: str, window: TimeRange) -> bool:
        hours = self.registry.operating_window(resource_id, window.start)
        return hours is not None and hours.contains(window)

    def _move_existing(
        self,
        resource_id: str,
        window: TimeRange,
        blocking: Sequence[Booking],
        snapshot: BookingSnapshot,
    ) -> Tuple[BookingMove, ...] | None:
        """
        Relocate every blocking booking so the request fits as asked.

        Placement treats the request as already booked and accounts for the
        bookings relocated before, so the result is overlap-free.
        """
        if any(b.status == BookingStatus.IN_PROGRESS for b in blocking):
            logger.debug("Blocking work is already in progress on %s; not moving it", resource_id)
            return None

        blocking_ids = {b.id for b in blocking}
        working = BookingSnapshot(
            tuple(b for b in snapshot if b.id not in blocking_ids)
        )
        working = working.with_booking(
            Booking(id=REQUESTED_PLACEHOLDER_ID, resource_id=resource_id, window=window)
        )

        moves: List[BookingMove] = []
        for booking in blocking:
            bound = max(window.end, booking.end)
            target = self._first_free(
                resource_id, bound, booking.window.duration_minutes(), working
            )
            if target is None:
                logger.debug("No later window for booking %s on %s", booking.id, resource_id)
                return None
            working = working.with_booking(booking.moved_to(target))
            moves.append(BookingMove(
                booking_id=booking.id,
                resource_id=resource_id,
                original=booking.window,
                window=target,
            ))

        return tuple(moves)

    def _move_new(
        self,
        request: SchedulingRequest,
        resource_id: str,
        window: TimeRange,
        snapshot: BookingSnapshot,
    ) -> List[TimeRange]:
        found: List[TimeRange] = []
        slots = self.slot_generator.iter_slots_from(
            resource_id,
            window.start,
            request.duration_minutes,
            self.step_minutes,
            self.search_horizon_days,
        )
        for slot in slots:
            if slot.start <= window.start:
                continue
            if self.availability.is_available(resource_id, slot, snapshot):
                found.append(slot)
                if len(found) >= self.move_new_alternatives:
                    break
        return found

    def _switch_resource(
        self,
        request: SchedulingRequest,
        resource_id: str,
        window: TimeRange,
        snapshot: BookingSnapshot,
    ) -> str | None:
        alternate = self.registry.next_after(resource_id, request.required_capabilities)
        if alternate is None:
            return None
        if not self._fits_operating_hours(alternate.id, window):
            return None
        if not self.availability.is_available(alternate.id, window, snapshot):
            return None
        return alternate.id

    def _first_free(
        self,
        resource_id: str,
        bound: DateTime,
        duration_minutes: int,
        working: BookingSnapshot,
    ) -> TimeRange | None:
        for slot in self.slot_generator.iter_slots_from(
            resource_id, bound, duration_minutes, self.step_minutes, self.search_horizon_days
        ):
            if self.availability.is_available(resource_id, slot, working):
                return slot
        return None

    def _move_existing_rationale(
        self,
        request: SchedulingRequest,
        blocking: Sequence[Booking],
        moves: Sequence[BookingMove],
    ) -> Rationale:
        reasons = []
        warnings = []
        for booking, move in zip(blocking, moves):
            reasons.append(f"Moves \"{_describe(booking)}\" to {_hhmm(move.window)}")
            if move.window.start.date() != move.original.start.date():
                warnings.append(f"\"{_describe(booking)}\" moves to {move.window.start.format('DD.MM.YYYY')}")
            if booking.priority.rank > request.priority.rank:
                warnings.append(f"\"{_describe(booking)}\" has higher priority than the new job")
            if booking.status == BookingStatus.CONFIRMED:
                warnings.append(f"\"{_describe(booking)}\" is confirmed - notify the customer")
        benefits = ["New job keeps its requested time"]
        return Rationale(
            reasons=tuple(reasons),
            benefits=tuple(benefits),
            warnings=tuple(warnings),
            description=reasons[0] if len(reasons) == 1 else f"Moves {len(reasons)} appointments later",
        )

    def _move_new_rationale(
        self,
        request: SchedulingRequest,
        resource_id: str,
        requested: TimeRange,
        slot: TimeRange,
    ) -> Rationale:
        label = self.registry.get(resource_id).label
        warnings = []
        if slot.start.date() != requested.start.date():
            warnings.append(f"Different day than requested ({slot.start.format('DD.MM.YYYY')})")
        if request.priority.rank >= Priority.HIGH.rank:
            warnings.append(f"Delays a job with {request.priority.value} priority")
        return Rationale(
            reasons=(f"Next free window on {label}: {_hhmm(slot)}",),
            benefits=("Existing appointments stay untouched",),
            warnings=tuple(warnings),
            description=f"Schedule \"{request.title or 'New job'}\" at {_hhmm(slot)}",
        )

    def _switch_rationale(self, resource_id: str) -> Rationale:
        label = self.registry.get(resource_id).label
        return Rationale(
            reasons=(f"Requested time is free on {label}",),
            benefits=("Keeps the requested time", "Existing appointments stay untouched"),
            description=f"Schedule in {label}",
        )


def apply_resolution(
    snapshot: BookingSnapshot,
    request: SchedulingRequest,
    resolution: Resolution,
    booking_id: str,
) -> BookingSnapshot:
    """
    The snapshot after applying ``resolution``: moves first, then the new booking.

    Pure helper for callers that want to preview or verify a resolution before
    committing it through their own persistence layer.
    """
    result = snapshot
    for move in resolution.moves:
        existing = result.get(move.booking_id)
        if existing is None:
            raise InvalidInputError(f"Booking '{move.booking_id}' is not in the snapshot")
        result = result.replacing(existing.moved_to(move.window, move.resource_id))

    new_booking = Booking(
        id=booking_id,
        resource_id=resolution.resource_id,
        window=resolution.window,
        priority=request.priority,
        job_ref=request.job_ref,
        title=request.title,
    )
    return result.with_booking(new_booking)
