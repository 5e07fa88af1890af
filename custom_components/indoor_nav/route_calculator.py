"""
RouteCalculator — shortest paths and turn-by-turn instructions over a LocationGraph.

Pure computation with no HA dependencies. Every method is synchronous and only
reads the graph, so the navigation engine runs them in the executor.
"""
from __future__ import annotations

import heapq
import logging
import math
import uuid
from datetime import timedelta
from itertools import count

from .const import (
    ALTERNATIVE_EDGE_PENALTY,
    ALTERNATIVE_MAX_SIMILARITY,
    BACK_ANGLE_DEG,
    CHECKPOINT_DELAY_S,
    METERS_PER_UNIT,
    STRAIGHT_ANGLE_DEG,
    WALKING_SPEED_M_PER_MIN,
)
from .location_graph import LocationGraph
from .models import Direction, InstructionKind, Location, NavigationInstruction, Route

_LOGGER = logging.getLogger(__name__)


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def estimate_duration(distance_m: float, hops: int) -> timedelta:
    """Walking time plus a fixed orientation delay at every checkpoint hop."""
    minutes = distance_m / WALKING_SPEED_M_PER_MIN
    return timedelta(minutes=minutes, seconds=CHECKPOINT_DELAY_S * hops)


def classify_turn(prev: Location, current: Location, nxt: Location) -> Direction:
    """
    Classify the heading change at current.

    Plan coordinates have y pointing down, so a positive cross product of the
    incoming and outgoing deltas is a clockwise (right) turn on screen.
    """
    ax, ay = current.x - prev.x, current.y - prev.y
    bx, by = nxt.x - current.x, nxt.y - current.y
    cross = ax * by - ay * bx
    dot = ax * bx + ay * by
    if (ax == 0 and ay == 0) or (bx == 0 and by == 0):
        return Direction.FORWARD
    angle = math.degrees(math.atan2(abs(cross), dot))
    if angle < STRAIGHT_ANGLE_DEG:
        return Direction.FORWARD
    if angle > BACK_ANGLE_DEG:
        return Direction.BACK
    return Direction.RIGHT if cross > 0 else Direction.LEFT


_TURN_TEXT = {
    Direction.FORWARD: "Continue straight to {}",
    Direction.LEFT: "Turn left to {}",
    Direction.RIGHT: "Turn right to {}",
    Direction.BACK: "Turn around to {}",
}


class RouteCalculator:
    """Dijkstra over the declared adjacency, weighted by metres between locations."""

    def __init__(self, graph: LocationGraph, meters_per_unit: float = METERS_PER_UNIT) -> None:
        self.graph = graph
        self.meters_per_unit = meters_per_unit

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def calculate_route(self, from_id: str, to_id: str) -> Route | None:
        """Shortest route between two locations, or None when either is unknown or unreachable."""
        start = self.graph.get_location(from_id)
        end = self.graph.get_location(to_id)
        if start is None or end is None:
            _LOGGER.debug("Route requested for unknown location(s) %s -> %s", from_id, to_id)
            return None
        if from_id == to_id:
            return self._same_location_route(start)

        try:
            result = self._shortest_path(from_id, to_id)
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Path search %s -> %s failed: %s", from_id, to_id, exc)
            return None
        if result is None:
            _LOGGER.debug("No path between %s and %s", from_id, to_id)
            return None
        return self._build_route(result[0])

    def recalculate_from_current(self, current_id: str, destination_id: str) -> Route | None:
        """Fresh route from where the user actually is, marked as a reroute."""
        route = self.calculate_route(current_id, destination_id)
        if route is None:
            return None

        instructions = route.instructions
        # A lone destination instruction keeps its own wording
        if len(instructions) > 1:
            first = instructions[0]
            instructions = (
                NavigationInstruction(
                    id=first.id,
                    kind=InstructionKind.REROUTE,
                    description=f"Route recalculated. {first.description}",
                    from_location_id=first.from_location_id,
                    to_location_id=first.to_location_id,
                    direction=first.direction,
                    distance=first.distance,
                ),
            ) + instructions[1:]

        return Route(
            id=_new_id(f"reroute_{current_id}_to_{destination_id}"),
            start_location_id=route.start_location_id,
            end_location_id=route.end_location_id,
            path=route.path,
            estimated_distance=route.estimated_distance,
            estimated_duration=route.estimated_duration,
            instructions=instructions,
        )

    @staticmethod
    def get_next_instruction(route: Route, location_id: str) -> NavigationInstruction | None:
        return route.next_instruction(location_id)

    @staticmethod
    def get_instructions(route: Route) -> list[NavigationInstruction]:
        return list(route.instructions)

    def are_locations_connected(self, from_id: str, to_id: str) -> bool:
        return self.calculate_route(from_id, to_id) is not None

    def segment_distance(self, from_id: str, to_id: str) -> float | None:
        """Metres between two locations in a straight line."""
        distance = self.graph.straight_line_distance(from_id, to_id)
        if distance is None:
            return None
        return distance * self.meters_per_unit

    def find_alternative_routes(
        self, from_id: str, to_id: str, max_alternatives: int = 3
    ) -> list[Route]:
        """
        Up to max_alternatives distinct routes, best first.

        Each search penalises the edges of routes already found; a candidate
        sharing too many locations with an earlier one ends the search.
        """
        if not self.graph.location_exists(from_id) or not self.graph.location_exists(to_id):
            return []
        if from_id == to_id:
            return [self._same_location_route(self.graph.get_location(from_id))]

        found: list[Route] = []
        for _ in range(max_alternatives):
            penalised = {
                (route.path[i], route.path[i + 1])
                for route in found
                for i in range(len(route.path) - 1)
            }
            try:
                result = self._shortest_path(from_id, to_id, penalised)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("Alternative search %s -> %s failed: %s", from_id, to_id, exc)
                break
            if result is None:
                break
            path = result[0]
            if any(self._similarity(path, route.path) > ALTERNATIVE_MAX_SIMILARITY for route in found):
                break
            found.append(self._build_route(path))
        return found

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _edge_weight(self, a: Location, b: Location) -> float:
        return math.hypot(b.x - a.x, b.y - a.y) * self.meters_per_unit

    def _shortest_path(
        self,
        from_id: str,
        to_id: str,
        penalised: set[tuple[str, str]] | None = None,
    ) -> tuple[list[str], float] | None:
        """Dijkstra; equal-weight ties keep the first path discovered."""
        distances: dict[str, float] = {from_id: 0.0}
        previous: dict[str, str] = {}
        visited: set[str] = set()
        seq = count()
        heap: list[tuple[float, int, str]] = [(0.0, next(seq), from_id)]

        while heap:
            dist, _, node = heapq.heappop(heap)
            if node in visited:
                continue
            visited.add(node)
            if node == to_id:
                break
            current = self.graph.get_location(node)
            for neighbour in self.graph.get_connected_locations(node):
                if neighbour.id in visited:
                    continue
                weight = self._edge_weight(current, neighbour)
                if penalised and (node, neighbour.id) in penalised:
                    weight *= ALTERNATIVE_EDGE_PENALTY
                candidate = dist + weight
                if candidate < distances.get(neighbour.id, math.inf):
                    distances[neighbour.id] = candidate
                    previous[neighbour.id] = node
                    heapq.heappush(heap, (candidate, next(seq), neighbour.id))

        if to_id not in visited:
            return None

        path = [to_id]
        while path[-1] != from_id:
            path.append(previous[path[-1]])
        path.reverse()
        return path, distances[to_id]

    @staticmethod
    def _similarity(path: list[str] | tuple[str, ...], other: tuple[str, ...]) -> float:
        common = sum(1 for node in path if node in other)
        return common / max(len(path), len(other))

    def _build_route(self, path: list[str]) -> Route:
        locations = [self.graph.get_location(location_id) for location_id in path]
        # Recomputed from geometry so penalised searches report true distances
        distance = sum(
            self._edge_weight(a, b) for a, b in zip(locations, locations[1:])
        )
        return Route(
            id=_new_id("route"),
            start_location_id=path[0],
            end_location_id=path[-1],
            path=tuple(path),
            estimated_distance=distance,
            estimated_duration=estimate_duration(distance, len(path) - 1),
            instructions=tuple(self._build_instructions(locations)),
        )

    def _build_instructions(self, locations: list[Location]) -> list[NavigationInstruction]:
        instructions: list[NavigationInstruction] = []
        last = len(locations) - 2
        for i in range(len(locations) - 1):
            src, dst = locations[i], locations[i + 1]
            direction = Direction.FORWARD
            if i == 0 and i == last:
                kind = InstructionKind.DESTINATION
                description = f"Go directly to {dst.name}"
            elif i == 0:
                kind = InstructionKind.START
                description = f"Start at {src.name}"
            elif i == last:
                kind = InstructionKind.DESTINATION
                description = f"Arrive at {dst.name}"
            else:
                direction = classify_turn(locations[i - 1], src, dst)
                kind = InstructionKind.STRAIGHT if direction == Direction.FORWARD else InstructionKind.TURN
                description = _TURN_TEXT[direction].format(dst.name)

            instructions.append(
                NavigationInstruction(
                    id=_new_id(f"instruction_{i}"),
                    kind=kind,
                    description=description,
                    from_location_id=src.id,
                    to_location_id=dst.id,
                    direction=direction,
                    distance=self._edge_weight(src, dst),
                )
            )
        return instructions

    @staticmethod
    def _same_location_route(location: Location) -> Route:
        return Route(
            id=_new_id("route_same"),
            start_location_id=location.id,
            end_location_id=location.id,
            path=(location.id,),
            estimated_distance=0.0,
            estimated_duration=timedelta(0),
            instructions=(
                NavigationInstruction(
                    id=_new_id("instruction_same"),
                    kind=InstructionKind.DESTINATION,
                    description=f"You are already at {location.name}",
                    from_location_id=location.id,
                    to_location_id=location.id,
                    direction=Direction.FORWARD,
                    distance=0.0,
                ),
            ),
        )
