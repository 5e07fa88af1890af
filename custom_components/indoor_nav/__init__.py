import logging

from homeassistant import config_entries, core
from homeassistant.const import Platform
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady

from .catalog import async_load_catalog
from .const import CONF_CATALOG_PATH, DOMAIN
from .coordinator import IndoorNavCoordinator
from .errors import CatalogError
from .location_graph import LocationGraph
from .services import async_register_services

PLATFORMS: list[Platform] = [Platform.SENSOR]
_LOGGER = logging.getLogger(__name__)


async def async_setup(hass: core.HomeAssistant, config: dict) -> bool:
    """Set up the integration."""
    hass.data.setdefault(DOMAIN, {})
    async_register_services(hass)
    return True


async def _load_graph(hass: HomeAssistant, entry: config_entries.ConfigEntry) -> LocationGraph:
    """Load the entry's catalog; a broken catalog keeps the entry from loading."""
    path = entry.data.get(CONF_CATALOG_PATH)
    try:
        return await async_load_catalog(hass, path)
    except CatalogError as exc:
        _LOGGER.error("Failed to load location catalog %s: %s", path, exc)
        raise ConfigEntryNotReady(f"Could not load the location catalog: {exc}") from exc


async def async_setup_entry(
    hass: core.HomeAssistant, entry: config_entries.ConfigEntry
) -> bool:
    """Set up platform from a ConfigEntry."""
    graph = await _load_graph(hass, entry)

    coordinator = IndoorNavCoordinator(hass, entry, graph)
    entry.runtime_data = coordinator

    entry.async_on_unload(
        entry.add_update_listener(_async_update_listener)
    )

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.debug("Indoor navigation ready with %d locations", len(graph))
    return True


async def _async_update_listener(hass: HomeAssistant, config_entry):
    """Handle config options update."""
    # Reload the integration when the options change.
    await hass.config_entries.async_reload(config_entry.entry_id)


async def async_unload_entry(
    hass: core.HomeAssistant, entry: config_entries.ConfigEntry
) -> bool:
    """Unload a config entry."""
    unloaded = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unloaded:
        await entry.runtime_data.async_shutdown()
    return unloaded
