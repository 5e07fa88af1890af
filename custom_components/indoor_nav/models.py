"""
Domain models for the indoor navigation integration.

Pure frozen dataclasses for locations, routes and navigation instructions.
No Home Assistant imports; routes and instructions are only ever built by the
route calculator and the route stitcher.
"""
from __future__ import annotations

import dataclasses
import enum
from datetime import timedelta
from typing import Any

from .errors import CatalogError


class LocationCategory(enum.StrEnum):
    ROOM = "room"
    HALLWAY = "hallway"
    ENTRANCE = "entrance"
    OFFICE = "office"


class InstructionKind(enum.StrEnum):
    START = "start"
    TURN = "turn"
    STRAIGHT = "straight"
    DESTINATION = "destination"
    REROUTE = "reroute"


class Direction(enum.StrEnum):
    FORWARD = "forward"
    LEFT = "left"
    RIGHT = "right"
    BACK = "back"


@dataclasses.dataclass(frozen=True)
class Location:
    """A checkpoint, room, entrance or office on the floor plan."""

    id: str
    name: str
    x: float
    y: float
    # Declared per node; not mirrored automatically.
    connected_ids: tuple[str, ...] = ()
    category: LocationCategory = LocationCategory.ROOM
    description: str = ""
    tag_serial: str | None = None

    @property
    def coordinates(self) -> tuple[float, float]:
        return (self.x, self.y)

    @classmethod
    def from_dict(cls, record: dict[str, Any]) -> "Location":
        """Build a Location from a catalog JSON record."""
        try:
            category = LocationCategory(record.get("category", LocationCategory.ROOM))
        except ValueError as exc:
            raise CatalogError(f"Unknown location category in {record!r}") from exc
        tag_serial = record.get("tag_serial")
        if tag_serial is not None and not isinstance(tag_serial, str):
            raise CatalogError(f"tag_serial must be a string in {record!r}")
        try:
            return cls(
                id=str(record["id"]),
                name=str(record.get("name") or record["id"]),
                x=float(record["x"]),
                y=float(record["y"]),
                connected_ids=tuple(str(c) for c in record.get("connected_ids", ())),
                category=category,
                description=str(record.get("description", "")),
                tag_serial=tag_serial,
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogError(f"Malformed location record {record!r}: {exc}") from exc

    def as_dict(self) -> dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "connected_ids": list(self.connected_ids),
            "category": str(self.category),
            "description": self.description,
        }
        if self.tag_serial is not None:
            data["tag_serial"] = self.tag_serial
        return data


@dataclasses.dataclass(frozen=True)
class NavigationInstruction:
    """One leg of a route, from one location to the next."""

    id: str
    kind: InstructionKind
    description: str
    from_location_id: str
    to_location_id: str
    direction: Direction
    distance: float


@dataclasses.dataclass(frozen=True)
class Route:
    """
    Ordered path between two locations with derived distance, time and instructions.

    Value object: a recalculation produces a new Route, never a mutated one.
    """

    id: str
    start_location_id: str
    end_location_id: str
    path: tuple[str, ...]
    estimated_distance: float
    estimated_duration: timedelta
    instructions: tuple[NavigationInstruction, ...] = ()

    def is_valid(self) -> bool:
        if not self.path:
            return False
        if self.path[0] != self.start_location_id or self.path[-1] != self.end_location_id:
            return False
        if self.estimated_distance < 0:
            return False
        if self.estimated_duration < timedelta(0):
            return False
        if not self.instructions and len(self.path) > 1:
            return False
        return True

    def contains_location(self, location_id: str) -> bool:
        return location_id in self.path

    def index_of(self, location_id: str) -> int:
        """Return the path index of location_id, or -1 when it is not on the route."""
        try:
            return self.path.index(location_id)
        except ValueError:
            return -1

    def next_instruction(self, location_id: str) -> NavigationInstruction | None:
        """Return the instruction leaving location_id; None at the terminal node or off route."""
        if location_id == self.end_location_id:
            return None
        for instruction in self.instructions:
            if instruction.from_location_id == location_id:
                return instruction
        return None

    def total_instruction_distance(self) -> float:
        return sum(instruction.distance for instruction in self.instructions)
