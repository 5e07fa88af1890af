"""
Home Assistant services for the indoor navigation integration.

Services act on the coordinator of the (single) loaded config entry and map
one-to-one onto NavigationEngine operations.
"""
from __future__ import annotations

import logging

import homeassistant.helpers.config_validation as cv
import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import ServiceValidationError

from .const import (
    ATTR_LOCATION_ID,
    ATTR_PAYLOAD,
    DOMAIN,
    SERVICE_CLEAR_ERROR,
    SERVICE_CLEAR_ROUTE,
    SERVICE_CLEAR_SESSION,
    SERVICE_SCAN_TAG,
    SERVICE_SET_CURRENT_LOCATION,
    SERVICE_SET_DESTINATION,
    SERVICE_START_NAVIGATION,
    SERVICE_STOP_NAVIGATION,
    SERVICE_TRIGGER_REROUTING,
)
from .coordinator import IndoorNavCoordinator
from .errors import DecodeError
from .tag_payload import MAX_PAYLOAD_BYTES, TagPayload, fits_budget

_LOGGER = logging.getLogger(__name__)

LOCATION_SCHEMA = vol.Schema({vol.Required(ATTR_LOCATION_ID): cv.string})
PAYLOAD_SCHEMA = vol.Schema({vol.Required(ATTR_PAYLOAD): cv.string})

# service name → engine coroutine taking no arguments
_SIMPLE_SERVICES = {
    SERVICE_START_NAVIGATION: "async_start_navigation",
    SERVICE_STOP_NAVIGATION: "async_stop_navigation",
    SERVICE_TRIGGER_REROUTING: "async_trigger_rerouting",
    SERVICE_CLEAR_ROUTE: "async_clear_route",
    SERVICE_CLEAR_ERROR: "async_clear_error",
    SERVICE_CLEAR_SESSION: "async_clear_session",
}


def _get_coordinator(hass: HomeAssistant) -> IndoorNavCoordinator:
    for entry in hass.config_entries.async_loaded_entries(DOMAIN):
        return entry.runtime_data
    raise ServiceValidationError("Indoor navigation is not set up")


def async_register_services(hass: HomeAssistant) -> None:
    """Register the integration's services once per Home Assistant instance."""
    if hass.services.has_service(DOMAIN, SERVICE_SET_CURRENT_LOCATION):
        return

    async def _set_current_location(call: ServiceCall) -> None:
        await _get_coordinator(hass).engine.async_set_current_location(call.data[ATTR_LOCATION_ID])

    async def _set_destination(call: ServiceCall) -> None:
        await _get_coordinator(hass).engine.async_set_destination(call.data[ATTR_LOCATION_ID])

    async def _scan_tag(call: ServiceCall) -> None:
        raw = call.data[ATTR_PAYLOAD].encode("utf-8")
        if not fits_budget(raw):
            raise ServiceValidationError(f"Tag payload exceeds {MAX_PAYLOAD_BYTES} bytes")
        try:
            payload = TagPayload.decode(raw)
        except DecodeError as exc:
            raise ServiceValidationError(str(exc)) from exc
        if not payload.is_valid():
            raise ServiceValidationError(
                f"Tag payload for {payload.location_id} failed the checksum check"
            )
        await _get_coordinator(hass).engine.async_handle_payload(payload)

    def _make_simple(method: str):
        async def _handler(call: ServiceCall) -> None:
            await getattr(_get_coordinator(hass).engine, method)()
        return _handler

    hass.services.async_register(
        DOMAIN, SERVICE_SET_CURRENT_LOCATION, _set_current_location, schema=LOCATION_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SET_DESTINATION, _set_destination, schema=LOCATION_SCHEMA
    )
    hass.services.async_register(DOMAIN, SERVICE_SCAN_TAG, _scan_tag, schema=PAYLOAD_SCHEMA)
    for service, method in _SIMPLE_SERVICES.items():
        hass.services.async_register(DOMAIN, service, _make_simple(method))

    _LOGGER.debug("Registered %s services", DOMAIN)
