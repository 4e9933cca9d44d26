"""
Static registry of schedulable bays.

Loaded once at start-up from configuration and never mutated afterwards.
"""

from __future__ import annotations

from datetime import date, time
from typing import Iterable, Iterator, List, Sequence, Tuple

from pendulum import DateTime

from .exceptions import InvalidInputError, UnknownResourceError
from .models import Closure, OperatingHours, Resource, TimeRange, to_day


WEEKDAYS = (0, 1, 2, 3, 4)


def default_resources() -> List[Resource]:
    """The two-bay shop, open Monday to Friday 08:00-17:00."""
    hours = OperatingHours.uniform(time(8, 0), time(17, 0), WEEKDAYS)
    return [
        Resource(id="bay-1", label="Bay 1", hours=hours),
        Resource(id="bay-2", label="Bay 2", hours=hours),
    ]


class ResourceRegistry:
    """
    Ordered collection of bays plus shop closures.

    Registry order matters: it breaks ties in the suggestion engine and
    decides which bay the conflict resolver offers as the switch target.
    """

    def __init__(
        self,
        resources: Sequence[Resource],
        closures: Iterable[Closure] = (),
        timezone: str = "Europe/Berlin",
    ):
        if not resources:
            raise InvalidInputError("A registry needs at least one resource")

        ids = [resource.id for resource in resources]
        duplicates = sorted({rid for rid in ids if ids.count(rid) > 1})
        if duplicates:
            raise InvalidInputError(f"Duplicate resource ids: {', '.join(duplicates)}")

        self._resources: Tuple[Resource, ...] = tuple(resources)
        self._by_id = {resource.id: resource for resource in self._resources}
        self.closures: Tuple[Closure, ...] = tuple(closures)
        self.timezone = timezone

        for closure in self.closures:
            unknown = sorted(closure.resource_ids - set(self._by_id))
            if unknown:
                raise InvalidInputError(
                    f"Closure '{closure.id}' names unknown resources: {', '.join(unknown)}"
                )

    @classmethod
    def default(cls, timezone: str = "Europe/Berlin") -> "ResourceRegistry":
        return cls(default_resources(), timezone=timezone)

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources)

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._by_id

    @property
    def ids(self) -> List[str]:
        return [resource.id for resource in self._resources]

    def get(self, resource_id: str) -> Resource:
        try:
            return self._by_id[resource_id]
        except KeyError:
            raise UnknownResourceError(resource_id) from None

    def position(self, resource_id: str) -> int:
        return self.ids.index(self.get(resource_id).id)

    def eligible(self, required_capabilities: Iterable[str] = ()) -> List[Resource]:
        """Active bays offering every required capability, in registry order."""
        required = frozenset(required_capabilities)
        return [r for r in self._resources if r.active and r.supports(required)]

    def next_after(
        self,
        resource_id: str,
        required_capabilities: Iterable[str] = (),
    ) -> Resource | None:
        """
        The next eligible bay after ``resource_id`` in registry order, wrapping.

        With two bays this is simply the other one.
        """
        start = self.position(resource_id)
        required = frozenset(required_capabilities)
        count = len(self._resources)
        for offset in range(1, count):
            candidate = self._resources[(start + offset) % count]
            if candidate.active and candidate.supports(required):
                return candidate
        return None

    def to_day(self, day: date) -> DateTime:
        return to_day(day, self.timezone)

    def is_closed(self, resource_id: str, day: date) -> bool:
        """Check whether a closure covers the bay on that date."""
        return any(closure.applies_to(resource_id, day) for closure in self.closures)

    def operating_window(self, resource_id: str, day: date) -> TimeRange | None:
        """
        The bay's opening window on a date, or None when it is closed.
        """
        resource = self.get(resource_id)
        local_day = self.to_day(day)
        if self.is_closed(resource_id, local_day):
            return None
        return resource.hours.get_working_hours_for_day(local_day)
