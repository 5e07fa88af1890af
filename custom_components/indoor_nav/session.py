"""
NavigationSession — immutable snapshot of the live navigation state.

This is a pure data module with no HA dependencies. The engine publishes a new
snapshot on every transition; entities only ever read them.
"""
from __future__ import annotations

import dataclasses
import enum

from .const import MINOR_DEVIATION_LIMIT, MODERATE_DEVIATION_LIMIT
from .models import NavigationInstruction, Route


class NavigationState(enum.StrEnum):
    IDLE = "idle"
    SELECTING_DESTINATION = "selecting_destination"
    CALCULATING = "calculating"
    NAVIGATING = "navigating"
    ARRIVED = "arrived"
    ERROR = "error"


class DeviationSeverity(enum.StrEnum):
    NONE = "none"
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    UNKNOWN = "unknown"


def classify_deviation(distance: float | None) -> DeviationSeverity:
    """Severity of an off-route reading from its plan-unit distance to the nearest route node."""
    if distance is None:
        return DeviationSeverity.UNKNOWN
    if distance < MINOR_DEVIATION_LIMIT:
        return DeviationSeverity.MINOR
    if distance < MODERATE_DEVIATION_LIMIT:
        return DeviationSeverity.MODERATE
    return DeviationSeverity.MAJOR


@dataclasses.dataclass(frozen=True)
class NavigationSession:
    """
    Copy-on-write session state.

    Always replace via dataclasses.replace(); never mutate in place.
    error_message is only set while state is ERROR.
    """

    current_location_id: str | None = None
    destination_location_id: str | None = None
    active_route: Route | None = None
    state: NavigationState = NavigationState.IDLE
    current_instruction: NavigationInstruction | None = None
    current_step_index: int = 0
    error_message: str | None = None

    @property
    def is_navigating(self) -> bool:
        return self.state == NavigationState.NAVIGATING

    @property
    def has_active_route(self) -> bool:
        return self.active_route is not None

    @property
    def has_current_location(self) -> bool:
        return self.current_location_id is not None

    @property
    def has_destination(self) -> bool:
        return self.destination_location_id is not None

    def with_error(self, message: str) -> "NavigationSession":
        return dataclasses.replace(self, state=NavigationState.ERROR, error_message=message)

    def without_error(self) -> "NavigationSession":
        """Leave the error state for idle; other states are returned unchanged."""
        if self.state != NavigationState.ERROR:
            return self
        return dataclasses.replace(self, state=NavigationState.IDLE, error_message=None)

    def remaining_distance(self) -> float | None:
        """Metres left on the active route from the current location."""
        route = self.active_route
        if route is None:
            return None
        if self.current_location_id == route.end_location_id:
            return 0.0
        idx = route.index_of(self.current_location_id) if self.current_location_id else -1
        if idx < 0:
            return route.estimated_distance
        return sum(
            instruction.distance
            for instruction in route.instructions
            if route.index_of(instruction.from_location_id) >= idx
        )
