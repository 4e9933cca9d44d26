"""
Domain-specific exception hierarchy for the bay scheduling core.
"""

from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .models import Booking


class SchedulingError(Exception):
    """Base class for all application-level errors."""


class InvalidInputError(SchedulingError, ValueError):
    """Raised when caller-supplied data is malformed or out of range."""


class UnknownResourceError(InvalidInputError):
    """Raised when a resource id is not present in the registry."""

    def __init__(self, resource_id: str):
        super().__init__(f"Unknown resource id: '{resource_id}'")
        self.resource_id = resource_id


class InvalidTransitionError(SchedulingError):
    """Raised when a booking status change is not allowed."""


class ConfigError(SchedulingError, ValueError):
    """Raised when configuration cannot be read or is invalid."""


class StaleSnapshotError(SchedulingError):
    """
    Raised at commit time when the latest snapshot no longer admits a window.

    This is the conflict-on-commit signal: the proposal was computed against
    an older snapshot and the caller should re-query instead of retrying.
    """

    def __init__(self, message: str, conflicting: Sequence["Booking"] = ()):
        super().__init__(message)
        self.conflicting = tuple(conflicting)
