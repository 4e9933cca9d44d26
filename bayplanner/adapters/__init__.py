"""
Adapters layer - Booking data sources.
"""

from .json_snapshot import JsonSnapshotSource, parse_booking

__all__ = ["JsonSnapshotSource", "parse_booking"]
