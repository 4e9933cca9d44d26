"""
Domain layer - scheduling rules over immutable values, no I/O.
"""

from .availability import AvailabilityChecker, find_overlaps
from .conflict_resolver import (
    BookingMove,
    ConflictResolution,
    ConflictResolver,
    ForceScheduleOption,
    Resolution,
    ResolutionKind,
    apply_resolution,
)
from .models import (
    Booking,
    BookingSnapshot,
    BookingStatus,
    Closure,
    DayHours,
    OperatingHours,
    Priority,
    Proposal,
    ProposalLabel,
    Rationale,
    Resource,
    SchedulingRequest,
    SuggestionPreferences,
    TimeRange,
)
from .registry import ResourceRegistry
from .slot_generator import SlotGenerator
from .suggestion_engine import ScoreBreakdown, SuggestionEngine, SuggestionPolicy

__all__ = [
    "AvailabilityChecker",
    "Booking",
    "BookingMove",
    "BookingSnapshot",
    "BookingStatus",
    "Closure",
    "ConflictResolution",
    "ConflictResolver",
    "DayHours",
    "ForceScheduleOption",
    "OperatingHours",
    "Priority",
    "Proposal",
    "ProposalLabel",
    "Rationale",
    "Resolution",
    "ResolutionKind",
    "Resource",
    "ResourceRegistry",
    "SchedulingRequest",
    "ScoreBreakdown",
    "SlotGenerator",
    "SuggestionEngine",
    "SuggestionPolicy",
    "SuggestionPreferences",
    "TimeRange",
    "apply_resolution",
    "find_overlaps",
]
