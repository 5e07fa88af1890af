"""
LocationGraph — read-only query surface over the location catalog.

Pure data module with no HA dependencies. The graph is built once at setup and
never mutated afterwards, so it is safe to read from executor threads.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Iterable

from .errors import CatalogError
from .models import Location

_LOGGER = logging.getLogger(__name__)


class LocationGraph:
    """Static adjacency structure over named locations."""

    def __init__(self, locations: Iterable[Location]) -> None:
        self._locations: dict[str, Location] = {}
        self._by_serial: dict[str, Location] = {}
        for location in locations:
            if location.id in self._locations:
                raise CatalogError(f"Duplicate location id: {location.id}")
            self._locations[location.id] = location
            if location.tag_serial:
                self._by_serial[location.tag_serial.upper()] = location

        for location in self._locations.values():
            for neighbour_id in location.connected_ids:
                if neighbour_id not in self._locations:
                    _LOGGER.warning(
                        "Location %s lists unknown neighbour %s", location.id, neighbour_id
                    )

    @classmethod
    def from_dicts(cls, records: Iterable[dict[str, Any]]) -> "LocationGraph":
        return cls(Location.from_dict(record) for record in records)

    def __len__(self) -> int:
        return len(self._locations)

    def get_location(self, location_id: str) -> Location | None:
        return self._locations.get(location_id)

    def get_all_locations(self) -> list[Location]:
        return list(self._locations.values())

    def get_connected_locations(self, location_id: str) -> list[Location]:
        """Known neighbours in declaration order; unknown neighbour ids are skipped."""
        location = self._locations.get(location_id)
        if location is None:
            return []
        return [
            self._locations[n] for n in location.connected_ids if n in self._locations
        ]

    def location_exists(self, location_id: str) -> bool:
        return location_id in self._locations

    def get_location_by_tag_serial(self, serial: str) -> Location | None:
        if not serial:
            return None
        return self._by_serial.get(serial.upper())

    def is_directly_connected(self, from_id: str, to_id: str) -> bool:
        location = self._locations.get(from_id)
        if location is None or to_id not in self._locations:
            return False
        return to_id in location.connected_ids

    def straight_line_distance(self, from_id: str, to_id: str) -> float | None:
        """Euclidean distance in plan units, or None when either id is unknown."""
        a = self._locations.get(from_id)
        b = self._locations.get(to_id)
        if a is None or b is None:
            return None
        return math.hypot(b.x - a.x, b.y - a.y)
