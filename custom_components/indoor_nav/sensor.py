"""
Platform for indoor navigation sensors.
Every sensor reads the NavigationSession snapshot pushed by the coordinator;
none of them poll.
"""
from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity, SensorStateClass
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import UnitOfLength
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .coordinator import IndoorNavCoordinator
from .session import NavigationSession, NavigationState

_LOGGER = logging.getLogger(__name__)


class IndoorNavSensor(CoordinatorEntity[IndoorNavCoordinator], SensorEntity):
    """Base class: unique id and device info derived from the config entry."""

    _key: str = ""

    def __init__(self, coordinator: IndoorNavCoordinator) -> None:
        super().__init__(coordinator)
        entry_id = coordinator.config_entry.entry_id
        self._attr_unique_id = f"indoor_nav_{entry_id}_{self._key}"
        self._attr_name = f"{coordinator.settings.entry_name} {self._key.replace('_', ' ').title()}"

    @property
    def session(self) -> NavigationSession:
        return self.coordinator.data

    @property
    def device_info(self) -> DeviceInfo | None:
        """Return the device info."""
        return self.coordinator.get_device_info()


class NavigationStateSensor(IndoorNavSensor):
    _key = "state"
    _attr_icon = "mdi:navigation-variant"
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [str(state) for state in NavigationState]

    @property
    def native_value(self) -> str:
        return str(self.session.state)

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        attrs: dict[str, Any] = {"error_message": self.session.error_message}
        reader_error = self.coordinator.engine.last_reader_error
        if self.session.state == NavigationState.ERROR and reader_error is not None:
            attrs["reader_error"] = str(reader_error.kind)
            attrs["recovery_suggestions"] = list(reader_error.recovery_suggestions)
        return attrs


class CurrentLocationSensor(IndoorNavSensor):
    _key = "current_location"
    _attr_icon = "mdi:map-marker"

    @property
    def native_value(self) -> str | None:
        return self.coordinator.location_name(self.session.current_location_id)

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        location_id = self.session.current_location_id
        attrs: dict[str, Any] = {"location_id": location_id}
        if location_id is not None and self.session.has_active_route:
            engine = self.coordinator.engine
            attrs["deviation_distance"] = engine.get_deviation_distance(location_id)
            attrs["significant_deviation"] = engine.is_significant_deviation(location_id)
        return attrs


class DestinationSensor(IndoorNavSensor):
    _key = "destination"
    _attr_icon = "mdi:flag-checkered"

    @property
    def native_value(self) -> str | None:
        return self.coordinator.location_name(self.session.destination_location_id)

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        route = self.session.active_route
        return {
            "location_id": self.session.destination_location_id,
            "route_id": route.id if route else None,
            "path": list(route.path) if route else [],
            "estimated_minutes": round(route.estimated_duration.total_seconds() / 60, 1) if route else None,
        }


class InstructionSensor(IndoorNavSensor):
    _key = "instruction"
    _attr_icon = "mdi:directions"

    @property
    def native_value(self) -> str | None:
        instruction = self.session.current_instruction
        return instruction.description if instruction else None

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        instruction = self.session.current_instruction
        if instruction is None:
            return {"step_index": self.session.current_step_index}
        return {
            "kind": str(instruction.kind),
            "direction": str(instruction.direction),
            "distance": round(instruction.distance, 1),
            "to_location_id": instruction.to_location_id,
            "step_index": self.session.current_step_index,
        }


class RemainingDistanceSensor(IndoorNavSensor):
    _key = "remaining_distance"
    _attr_icon = "mdi:map-marker-distance"
    _attr_device_class = SensorDeviceClass.DISTANCE
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = UnitOfLength.METERS

    @property
    def native_value(self) -> float | None:
        remaining = self.session.remaining_distance()
        if remaining is None:
            return None
        return round(remaining, 1)


SENSOR_TYPES = (
    NavigationStateSensor,
    CurrentLocationSensor,
    DestinationSensor,
    InstructionSensor,
    RemainingDistanceSensor,
)


async def async_setup_entry(
    hass: HomeAssistant,
    config_entry: ConfigEntry,
    async_add_entities,
):
    """Add sensors for passed config_entry in HA."""
    coordinator: IndoorNavCoordinator = config_entry.runtime_data
    entities = [sensor_type(coordinator) for sensor_type in SENSOR_TYPES]
    _LOGGER.debug("Adding %d indoor navigation sensors", len(entities))
    async_add_entities(entities)
