"""
Booking snapshot source backed by a JSON file.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum

from ..domain.exceptions import InvalidInputError
from ..domain.models import Booking, BookingSnapshot, BookingStatus, Priority, TimeRange

logger = logging.getLogger(__name__)

# Accepted spellings per field, first match wins
FIELD_ALIASES: Dict[str, tuple] = {
    "id": ("id", "appointmentId"),
    "resource_id": ("resource_id", "resourceId", "bay"),
    "start": ("start", "startAt"),
    "end": ("end", "endAt"),
    "job_ref": ("job_ref", "jobId", "job"),
}


def _field(record: Dict[str, Any], name: str) -> Any:
    for key in FIELD_ALIASES.get(name, (name,)):
        if key in record and record[key] is not None:
            return record[key]
    return None


def parse_booking(record: Dict[str, Any], timezone: str = "Europe/Berlin") -> Booking:
    """
    Convert one JSON record into a Booking.

    Args:
        record: Mapping with id, resource, start, end and optional
            priority, status, job reference and title
        timezone: IANA timezone used for timestamps without an offset

    Returns:
        Booking instance

    Raises:
        InvalidInputError: If a required field is missing or malformed
    """
    if not isinstance(record, dict):
        raise InvalidInputError(f"Booking record must be an object, got {type(record).__name__}")

    missing = [name for name in ("id", "resource_id", "start", "end") if _field(record, name) is None]
    if missing:
        raise InvalidInputError(f"Booking record is missing {', '.join(missing)}: {record}")

    try:
        start = pendulum.parse(str(_field(record, "start")), tz=timezone)
        end = pendulum.parse(str(_field(record, "end")), tz=timezone)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid timestamp in booking {_field(record, 'id')}: {exc}") from exc

    try:
        priority = Priority(record.get("priority", Priority.MEDIUM.value))
        status = BookingStatus(record.get("status", BookingStatus.SCHEDULED.value))
    except ValueError as exc:
        raise InvalidInputError(f"Booking {_field(record, 'id')}: {exc}") from exc

    job_ref = _field(record, "job_ref")
    return Booking(
        id=str(_field(record, "id")),
        resource_id=str(_field(record, "resource_id")),
        window=TimeRange(start=start, end=end),
        priority=priority,
        status=status,
        job_ref=str(job_ref) if job_ref is not None else None,
        title=str(record.get("title", "")),
    )


class JsonSnapshotSource:
    """
    Reads the booking set from a JSON file on every call.

    The file holds either a list of booking records or an object with a
    ``bookings`` list. In strict mode a malformed record fails the whole
    load; otherwise it is logged and skipped.
    """

    def __init__(self, path: Path, timezone: str = "Europe/Berlin", strict: bool = True):
        self.path = Path(path)
        self.timezone = timezone
        self.strict = strict

    def _load_records(self) -> List[Any]:
        if not self.path.exists():
            raise FileNotFoundError(f"Bookings file not found: {self.path}")

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as exc:
            raise InvalidInputError(f"Invalid JSON in {self.path}: {exc}") from exc

        if isinstance(data, dict):
            data = data.get("bookings", [])
        if not isinstance(data, list):
            raise InvalidInputError(f"{self.path} must contain a list of bookings")
        return data

    def load_snapshot(self, resource_id: Optional[str] = None) -> BookingSnapshot:
        """
        Load bookings from the JSON file.

        Args:
            resource_id: Optional bay filter

        Returns:
            BookingSnapshot with the parsed bookings
        """
        bookings: List[Booking] = []

        for record in self._load_records():
            try:
                booking = parse_booking(record, self.timezone)
            except InvalidInputError as exc:
                if self.strict:
                    raise
                logger.warning("Skipping booking record: %s", exc)
                continue

            if resource_id is not None and booking.resource_id != resource_id:
                continue
            bookings.append(booking)

        return BookingSnapshot(tuple(bookings))
