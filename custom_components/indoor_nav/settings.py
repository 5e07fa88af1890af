"""NavigationSettings — typed view of a config entry's data."""
from __future__ import annotations

import dataclasses
from typing import Any, Mapping

from .const import (
    CONF_CATALOG_PATH,
    CONF_ENTRY_NAME,
    CONF_EVENT_QUEUE_SIZE,
    CONF_METERS_PER_UNIT,
    CONF_PROXIMITY_THRESHOLD,
    CONF_SHORT_RETURN_MAX_DISTANCE,
    DEFAULT_ENTRY_NAME,
    EVENT_QUEUE_SIZE,
    METERS_PER_UNIT,
    PROXIMITY_THRESHOLD,
    SHORT_RETURN_MAX_DISTANCE,
)


@dataclasses.dataclass(frozen=True)
class NavigationSettings:
    entry_name: str = DEFAULT_ENTRY_NAME
    catalog_path: str | None = None
    meters_per_unit: float = METERS_PER_UNIT
    proximity_threshold: float = PROXIMITY_THRESHOLD
    short_return_max_distance: float = SHORT_RETURN_MAX_DISTANCE
    event_queue_size: int = EVENT_QUEUE_SIZE

    @classmethod
    def from_entry_data(cls, data: Mapping[str, Any]) -> "NavigationSettings":
        """Missing keys fall back to defaults; an empty catalog path means the built-in catalog."""
        return cls(
            entry_name=data.get(CONF_ENTRY_NAME) or DEFAULT_ENTRY_NAME,
            catalog_path=data.get(CONF_CATALOG_PATH) or None,
            meters_per_unit=float(data.get(CONF_METERS_PER_UNIT, METERS_PER_UNIT)),
            proximity_threshold=float(data.get(CONF_PROXIMITY_THRESHOLD, PROXIMITY_THRESHOLD)),
            short_return_max_distance=float(
                data.get(CONF_SHORT_RETURN_MAX_DISTANCE, SHORT_RETURN_MAX_DISTANCE)
            ),
            event_queue_size=int(data.get(CONF_EVENT_QUEUE_SIZE, EVENT_QUEUE_SIZE)),
        )
