"""
Service layer helpers that orchestrate snapshot sources and domain logic.
"""

from .scheduler import SchedulingService, SnapshotSourceProtocol

__all__ = ["SchedulingService", "SnapshotSourceProtocol"]
