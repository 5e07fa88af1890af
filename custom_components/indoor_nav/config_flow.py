"""Config flow for the Indoor Navigation integration."""
from __future__ import annotations
import logging
from typing import Any, Dict, Optional
import homeassistant.helpers.config_validation as cv
import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import HomeAssistant, callback

from .catalog import async_load_catalog
from .const import (
    CONF_CATALOG_PATH,
    CONF_ENTRY_NAME,
    CONF_EVENT_QUEUE_SIZE,
    CONF_METERS_PER_UNIT,
    CONF_PROXIMITY_THRESHOLD,
    CONF_SHORT_RETURN_MAX_DISTANCE,
    DEFAULT_ENTRY_NAME,
    DOMAIN,
    EVENT_QUEUE_SIZE,
    METERS_PER_UNIT,
    PROXIMITY_THRESHOLD,
    SHORT_RETURN_MAX_DISTANCE,
)
from .errors import CatalogError

positive_float = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))
queue_size = vol.All(vol.Coerce(int), vol.Range(min=1, max=1024))

_LOGGER = logging.getLogger(__name__)

FIELDS = (
    CONF_ENTRY_NAME,
    CONF_CATALOG_PATH,
    CONF_METERS_PER_UNIT,
    CONF_PROXIMITY_THRESHOLD,
    CONF_SHORT_RETURN_MAX_DISTANCE,
    CONF_EVENT_QUEUE_SIZE,
)

DEFAULTS: Dict[str, Any] = {
    CONF_ENTRY_NAME: DEFAULT_ENTRY_NAME,
    CONF_CATALOG_PATH: "",
    CONF_METERS_PER_UNIT: METERS_PER_UNIT,
    CONF_PROXIMITY_THRESHOLD: PROXIMITY_THRESHOLD,
    CONF_SHORT_RETURN_MAX_DISTANCE: SHORT_RETURN_MAX_DISTANCE,
    CONF_EVENT_QUEUE_SIZE: EVENT_QUEUE_SIZE,
}


def _build_schema(defaults: Dict[str, Any]) -> vol.Schema:
    return vol.Schema(
        {
            vol.Required(CONF_ENTRY_NAME, default=defaults[CONF_ENTRY_NAME]): cv.string,
            vol.Optional(CONF_CATALOG_PATH, default=defaults[CONF_CATALOG_PATH]): cv.string,
            vol.Required(CONF_METERS_PER_UNIT, default=defaults[CONF_METERS_PER_UNIT]): positive_float,
            vol.Required(CONF_PROXIMITY_THRESHOLD, default=defaults[CONF_PROXIMITY_THRESHOLD]): positive_float,
            vol.Required(
                CONF_SHORT_RETURN_MAX_DISTANCE, default=defaults[CONF_SHORT_RETURN_MAX_DISTANCE]
            ): positive_float,
            vol.Required(CONF_EVENT_QUEUE_SIZE, default=defaults[CONF_EVENT_QUEUE_SIZE]): queue_size,
        }
    )


CONFIG_SCHEMA = _build_schema(DEFAULTS)


async def _validate_catalog(hass: HomeAssistant, path: str | None) -> str | None:
    """
    Try to load the catalog at path.

    Returns None on success (or when the built-in catalog is used), otherwise
    an error key for the form.
    """
    if not path:
        return None
    try:
        await async_load_catalog(hass, path)
    except CatalogError as exc:
        _LOGGER.warning("Catalog %s rejected: %s", path, exc)
        return "invalid_catalog"
    except Exception:  # noqa: BLE001
        _LOGGER.exception("Unexpected error while loading catalog %s", path)
        return "unknown"
    return None


async def _validate_input(hass: HomeAssistant, user_input: Dict[str, Any]) -> Dict[str, str]:
    errors: Dict[str, str] = {}
    if not user_input.get(CONF_ENTRY_NAME):
        errors["base"] = "entry_name_required"
        return errors
    error = await _validate_catalog(hass, user_input.get(CONF_CATALOG_PATH))
    if error:
        errors[CONF_CATALOG_PATH] = error
    return errors


class IndoorNavFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    async def async_step_user(self, user_input: Optional[Dict[str, Any]] = None):
        errors: Dict[str, str] = {}
        if user_input is not None:
            data = {**DEFAULTS, **user_input}
            errors = await _validate_input(self.hass, data)
            if not errors:
                return self.async_create_entry(title=data[CONF_ENTRY_NAME], data=data)

        return self.async_show_form(step_id="user", data_schema=CONFIG_SCHEMA, errors=errors)

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        """Get the options flow for this handler."""
        return OptionsFlowHandler(config_entry)


class OptionsFlowHandler(config_entries.OptionsFlow):
    """Handles options flow for the component."""

    def __init__(self, config_entry: config_entries.ConfigEntry) -> None:
        self._entry = config_entry

    def _current_values(self) -> Dict[str, Any]:
        # Options win over data; both fall back to the defaults
        values = dict(DEFAULTS)
        for field in FIELDS:
            if field in self._entry.data:
                values[field] = self._entry.data[field]
            if field in self._entry.options:
                values[field] = self._entry.options[field]
        return values

    async def async_step_init(self, user_input: Dict[str, Any] = None):
        errors: Dict[str, str] = {}

        if user_input is not None:
            new_data = {**self._current_values(), **user_input}
            errors = await _validate_input(self.hass, new_data)
            if not errors:
                self.hass.config_entries.async_update_entry(
                    self._entry,
                    data=new_data,
                    title=new_data[CONF_ENTRY_NAME],
                )
                return self.async_create_entry(title=new_data[CONF_ENTRY_NAME], data=new_data)

        return self.async_show_form(
            step_id="init", data_schema=_build_schema(self._current_values()), errors=errors
        )
