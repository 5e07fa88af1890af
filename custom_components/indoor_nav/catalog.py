"""
Location catalog loading.

The built-in catalog is the school floor plan in image pixel coordinates
(y axis pointing down). A config entry may point at a JSON file instead, either
a bare array of location records or an object with a "locations" array.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from homeassistant.core import HomeAssistant

from .errors import CatalogError
from .location_graph import LocationGraph
from .models import Location, LocationCategory

_LOGGER = logging.getLogger(__name__)

_ROOM = LocationCategory.ROOM
_OFFICE = LocationCategory.OFFICE
_ENTRANCE = LocationCategory.ENTRANCE
_HALLWAY = LocationCategory.HALLWAY

DEFAULT_LOCATIONS: tuple[Location, ...] = (
    # Rooms
    Location("Gym", "Gym", 378, 296, ("CP1",), _ROOM,
             "School gymnasium and sports facility", "04:A1:0A:01:92:44:03"),
    Location("Cafeteria", "Cafeteria", 562, 576, ("CP9",), _ROOM,
             "Student dining area", "04:A1:B7:01:D0:44:03"),
    Location("Auditorium", "Auditorium", 532, 1041, ("CP7",), _ROOM,
             "Main auditorium for assemblies and events", "04:A1:23:01:03:44:03"),
    Location("Main Office", "Main Office", 1014, 1107, ("CP5",), _OFFICE,
             "School administrative office", "04:A1:3B:01:2C:44:03"),
    Location("Nurse's Office", "Nurse's Office", 1031, 901, ("CP6",), _OFFICE,
             "School health office", "04:A1:66:01:AC:44:03"),
    Location("Media Center", "Media Center", 1031, 638, ("CP10",), _ROOM,
             "Library and media resources", "04:A1:28:01:FD:44:03"),
    Location("7 Red/7 Gold", "7 Red/7 Gold", 1264, 462, ("CP3",), _ROOM,
             "Seventh grade classrooms", "04:A1:70:01:E9:44:03"),
    # Entrances
    Location("Main Entrance", "Main Entrance", 968, 1162, ("CP5",), _ENTRANCE,
             "Primary school entrance", "04:A1:7E:01:E6:44:03"),
    Location("Auditorium Entrance", "Auditorium Entrance", 659, 1164, ("CP7",), _ENTRANCE,
             "Entrance to auditorium area", "04:A1:A2:A2:01:C4:44:03"),
    Location("Bus Entrance", "Bus Entrance", 364, 510, ("CP1",), _ENTRANCE,
             "Entrance near bus loading area", "04:A1:64:01:F2:44:03"),
    # Corridor checkpoints
    Location("CP1", "Checkpoint 1", 372, 458, ("Gym", "CP2", "Bus Entrance"), _HALLWAY,
             "Navigation checkpoint near gym area", "04:A1:1C:01:00:44:03"),
    Location("CP2", "Checkpoint 2", 658, 461, ("CP1", "CP9", "CP3", "CP4"), _HALLWAY,
             "Central corridor junction", "04:A1:06:01:3A:44:03"),
    Location("CP3", "Checkpoint 3", 969, 464, ("CP2", "CPA", "CP11", "7 Red/7 Gold"), _HALLWAY,
             "East corridor checkpoint", "04:A1:BA:01:E8:44:03"),
    Location("CPA", "Checkpoint A", 816, 465, ("CP3", "CP2", "CP11"), _HALLWAY,
             "Auxiliary checkpoint", "04:A1:67:01:3B:44:03"),
    Location("CP9", "Checkpoint 9", 658, 576, ("CP2", "Cafeteria", "CP4"), _HALLWAY,
             "Cafeteria area checkpoint", "04:A1:A6:01:DD:44:03"),
    Location("CP10", "Checkpoint 10", 970, 651, ("CP3", "CP11", "Media Center"), _HALLWAY,
             "Media center area checkpoint", "04:A1:5A:01:DA:44:03"),
    Location("CPB", "Checkpoint B", 813, 849, ("CP4", "CP11"), _HALLWAY,
             "Secondary auxiliary checkpoint", "04:A1:34:01:5E:44:03"),
    Location("CP4", "Checkpoint 4", 658, 850, ("CP2", "CP9", "CPB", "CP7"), _HALLWAY,
             "South corridor checkpoint", "04:A1:6E:01:CB:44:03"),
    Location("CP6", "Checkpoint 6", 967, 909, ("CP11", "Nurse's Office", "CP5"), _HALLWAY,
             "Administrative area checkpoint", "04:A1:98:01:DF:44:03"),
    Location("CP7", "Checkpoint 7", 658, 1012, ("CP4", "Auditorium", "Auditorium Entrance"), _HALLWAY,
             "Auditorium area checkpoint", "04:A1:50:01:D0:44:03"),
    Location("CP5", "Checkpoint 5", 968, 1115, ("CP6", "Main Office", "Main Entrance"), _HALLWAY,
             "Main entrance area checkpoint", "04:A1:36:01:B4:44:03"),
    Location("CP11", "Checkpoint 11", 967, 847, ("CP3", "CP10", "CP6", "CPB"), _HALLWAY,
             "East administrative checkpoint", "04:A1:15:01:D8:44:03"),
)


def default_graph() -> LocationGraph:
    return LocationGraph(DEFAULT_LOCATIONS)


def load_catalog_file(path: str | Path) -> LocationGraph:
    """Read a JSON catalog from disk. Blocking; call from the executor."""
    try:
        with open(path, encoding="utf-8") as handle:
            raw: Any = json.load(handle)
    except OSError as exc:
        raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc
    except ValueError as exc:
        raise CatalogError(f"Catalog {path} is not valid JSON: {exc}") from exc

    if isinstance(raw, dict):
        raw = raw.get("locations")
    if not isinstance(raw, list) or not raw:
        raise CatalogError(f"Catalog {path} must contain a non-empty list of locations")
    if not all(isinstance(record, dict) for record in raw):
        raise CatalogError(f"Catalog {path} contains non-object location records")

    graph = LocationGraph.from_dicts(raw)
    _LOGGER.debug("Loaded %d locations from %s", len(graph), path)
    return graph


async def async_load_catalog(hass: HomeAssistant, path: str | None) -> LocationGraph:
    """Load the configured catalog, or the built-in one when no path is set."""
    if not path:
        return default_graph()
    return await hass.async_add_executor_job(load_catalog_file, path)
