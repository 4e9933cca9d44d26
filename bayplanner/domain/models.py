"""
Domain models for bays, bookings, scheduling requests and proposals.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

import pendulum
from pendulum import DateTime

from .exceptions import InvalidInputError


def hours_to_minutes(hours: float, name: str = "duration") -> int:
    """
    Convert fractional hours to whole minutes.

    Raises InvalidInputError for non-positive values or values that are not a
    whole number of minutes (e.g. 0.01h).
    """
    if isinstance(hours, bool) or not isinstance(hours, (int, float)):
        raise InvalidInputError(f"{name} must be a number of hours, got {hours!r}")
    minutes = hours * 60
    rounded = round(minutes)
    if abs(minutes - rounded) > 1e-6:
        raise InvalidInputError(f"{name} must be a whole number of minutes, got {hours}h")
    if rounded <= 0:
        raise InvalidInputError(f"{name} must be greater than zero, got {hours}h")
    return int(rounded)


def to_day(value: date, timezone: str) -> DateTime:
    """
    Normalise a date or datetime to the start of its day in ``timezone``.

    Aware datetimes are converted first, so 23:30 UTC on Sunday is Monday in
    Berlin. Naive datetimes are read as local time in ``timezone``.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pendulum.instance(value, tz=timezone).start_of("day")
        return pendulum.instance(value).in_timezone(timezone).start_of("day")
    if isinstance(value, date):
        return pendulum.datetime(value.year, value.month, value.day, tz=timezone)
    raise InvalidInputError(f"Expected a date, got {value!r}")


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end. Overlap uses half-open semantics,
    so ranges that only touch at an endpoint do not overlap.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise InvalidInputError(f"Start time {self.start} must be before end time {self.end}")

    @classmethod
    def starting_at(cls, start: DateTime, minutes: int) -> "TimeRange":
        """Build a range of the given length from its start."""
        return cls(start=start, end=start.add(minutes=minutes))

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def contains(self, other: "TimeRange") -> bool:
        """Check if another range lies fully within this one."""
        return self.start <= other.start and other.end <= self.end

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        start = max(self.start, other.start)
        end = min(self.end, other.end)

        return TimeRange(start=start, end=end)

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('HH:mm')}"


@dataclass(frozen=True)
class DayHours:
    """Opening and closing time of day."""
    open: time
    close: time

    def __post_init__(self):
        if self.open >= self.close:
            raise InvalidInputError(f"Opening time {self.open} must be before closing time {self.close}")


@dataclass(frozen=True)
class OperatingHours:
    """
    Weekly operating-hours template.

    Maps weekday (0=Monday, 6=Sunday) to the hours the resource is open.
    Weekdays missing from the mapping are closed.
    """
    days: Dict[int, DayHours] = field(default_factory=dict)

    @classmethod
    def uniform(cls, open_time: time, close_time: time, days_of_week: Iterable[int]) -> "OperatingHours":
        """Same hours on every listed weekday."""
        hours = DayHours(open=open_time, close=close_time)
        return cls(days={day: hours for day in days_of_week})

    def is_working_day(self, dt: DateTime) -> bool:
        """Check if a given datetime falls on an open weekday."""
        return dt.weekday() in self.days

    def get_working_hours_for_day(self, day: DateTime) -> TimeRange | None:
        """
        Get the operating window for a specific day.
        Returns None if the resource is closed that weekday.
        """
        hours = self.days.get(day.weekday())
        if hours is None:
            return None

        start = day.set(
            hour=hours.open.hour,
            minute=hours.open.minute,
            second=0,
            microsecond=0
        )
        end = day.set(
            hour=hours.close.hour,
            minute=hours.close.minute,
            second=0,
            microsecond=0
        )

        return TimeRange(start=start, end=end)


@dataclass(frozen=True)
class Closure:
    """
    A holiday or downtime period (inclusive dates).

    An empty ``resource_ids`` closes the whole shop.
    """
    id: str
    name: str
    start_date: date
    end_date: date
    resource_ids: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if self.end_date < self.start_date:
            raise InvalidInputError(f"Closure '{self.id}' ends before it starts")
        object.__setattr__(self, "resource_ids", frozenset(self.resource_ids))

    def applies_to(self, resource_id: str, day: date) -> bool:
        if isinstance(day, datetime):
            day = day.date()
        if not self.start_date <= day <= self.end_date:
            return False
        return not self.resource_ids or resource_id in self.resource_ids


@dataclass(frozen=True)
class Resource:
    """A schedulable bay."""
    id: str
    label: str
    hours: OperatingHours
    capabilities: FrozenSet[str] = frozenset()
    active: bool = True

    def __post_init__(self):
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))

    def supports(self, required: Iterable[str]) -> bool:
        """Check that the bay offers every required capability tag."""
        return frozenset(required) <= self.capabilities


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    Priority.LOW: 0,
    Priority.MEDIUM: 1,
    Priority.HIGH: 2,
    Priority.URGENT: 3,
}


class BookingStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_occupying(self) -> bool:
        return self in OCCUPYING_STATUSES


OCCUPYING_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.SCHEDULED, BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS}
)
TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)


@dataclass(frozen=True)
class Booking:
    """
    One reservation of a bay for a time window.

    ``job_ref`` is an opaque reference to caller-owned job data.
    """
    id: str
    resource_id: str
    window: TimeRange
    priority: Priority = Priority.MEDIUM
    status: BookingStatus = BookingStatus.SCHEDULED
    job_ref: Optional[str] = None
    title: str = ""

    @property
    def start(self) -> DateTime:
        return self.window.start

    @property
    def end(self) -> DateTime:
        return self.window.end

    @property
    def is_occupying(self) -> bool:
        return self.status.is_occupying

    def moved_to(self, window: TimeRange, resource_id: str | None = None) -> "Booking":
        """Return a copy of this booking at a new window (and optionally bay)."""
        return replace(self, window=window, resource_id=resource_id or self.resource_id)


@dataclass(frozen=True)
class BookingSnapshot:
    """
    Immutable view of the caller's booking set for a single call.
    """
    bookings: Tuple[Booking, ...] = ()

    def __post_init__(self):
        bookings = tuple(self.bookings)
        seen: set[str] = set()
        for booking in bookings:
            if booking.id in seen:
                raise InvalidInputError(f"Duplicate booking id in snapshot: '{booking.id}'")
            seen.add(booking.id)
        object.__setattr__(self, "bookings", bookings)

    def __iter__(self) -> Iterator[Booking]:
        return iter(self.bookings)

    def __len__(self) -> int:
        return len(self.bookings)

    def get(self, booking_id: str) -> Booking | None:
        for booking in self.bookings:
            if booking.id == booking_id:
                return booking
        return None

    def occupying(self) -> List[Booking]:
        return [b for b in self.bookings if b.is_occupying]

    def for_resource(
        self,
        resource_id: str,
        exclude_booking_id: str | None = None,
    ) -> List[Booking]:
        """Occupying bookings on one bay, sorted by start."""
        selected = [
            b for b in self.bookings
            if b.resource_id == resource_id
            and b.is_occupying
            and b.id != exclude_booking_id
        ]
        return sorted(selected, key=lambda b: (b.start, b.end, b.id))

    def on_day(self, resource_id: str, day: DateTime) -> List[Booking]:
        """Occupying bookings on one bay that start on the given day, in the day's timezone."""
        return [
            b for b in self.for_resource(resource_id)
            if b.start.in_timezone(day.tz).date() == day.date()
        ]

    def with_booking(self, booking: Booking) -> "BookingSnapshot":
        """Return a new snapshot that also contains the booking."""
        return BookingSnapshot(self.bookings + (booking,))

    def replacing(self, booking: Booking) -> "BookingSnapshot":
        """Return a new snapshot with the booking of the same id swapped in."""
        if self.get(booking.id) is None:
            raise InvalidInputError(f"Booking '{booking.id}' is not in the snapshot")
        return BookingSnapshot(
            tuple(booking if b.id == booking.id else b for b in self.bookings)
        )


@dataclass(frozen=True)
class SchedulingRequest:
    """
    The job-side constraints for one scheduling attempt.

    ``preferred_resource_id`` and ``preferred_start`` together describe a
    concrete requested booking, which the conflict resolver requires.
    """
    duration_hours: float
    priority: Priority = Priority.MEDIUM
    required_capabilities: FrozenSet[str] = frozenset()
    job_ref: Optional[str] = None
    title: str = ""
    preferred_resource_id: Optional[str] = None
    preferred_start: Optional[DateTime] = None

    def __post_init__(self):
        hours_to_minutes(self.duration_hours, "duration_hours")
        object.__setattr__(self, "required_capabilities", frozenset(self.required_capabilities))

    @property
    def duration_minutes(self) -> int:
        return hours_to_minutes(self.duration_hours, "duration_hours")

    def requested_window(self) -> TimeRange | None:
        if self.preferred_start is None:
            return None
        return TimeRange.starting_at(self.preferred_start, self.duration_minutes)


@dataclass(frozen=True)
class SuggestionPreferences:
    """Caller-tunable knobs for the suggestion engine."""
    preferred_resource_id: Optional[str] = None
    avoid_lunch_hours: bool = True
    minimize_gaps: bool = True
    balance_workload: bool = True
    prioritize_early_slots: bool = True


class ProposalLabel(str, Enum):
    OPTIMAL = "optimal"
    EFFICIENT = "efficient"
    NEXT_AVAILABLE = "next-available"
    ALTERNATIVE = "alternative"

    @property
    def title(self) -> str:
        return _LABEL_TITLES[self]


_LABEL_TITLES = {
    ProposalLabel.OPTIMAL: "Optimal Slot",
    ProposalLabel.EFFICIENT: "Efficient Slot",
    ProposalLabel.NEXT_AVAILABLE: "Next Available",
    ProposalLabel.ALTERNATIVE: "Available Slot",
}


@dataclass(frozen=True)
class Rationale:
    """Ordered explanation of why a slot was proposed."""
    reasons: Tuple[str, ...] = ()
    benefits: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()
    description: str = ""


@dataclass(frozen=True)
class Proposal:
    """
    A scored recommendation to book a bay for a window.
    """
    resource_id: str
    window: TimeRange
    score: float
    label: ProposalLabel
    rationale: Rationale

    @property
    def id(self) -> str:
        return f"{self.resource_id}-{self.window.start.int_timestamp}"

    def format_display(self) -> str:
        """
        Format the proposal for display.
        Format: Weekday, DD.MM.YYYY | HH:MM - HH:MM (bay, score)
        """
        start = self.window.start
        end = self.window.end
        time_str = f"{start.format('HH:mm')} - {end.format('HH:mm')}"
        return (
            f"{start.format('dddd')}, {start.format('DD.MM.YYYY')} | {time_str} "
            f"({self.resource_id}, {self.score:.2f})"
        )
