"""
DataUpdateCoordinator for the indoor navigation integration.

Responsibilities:
- Own the NavigationEngine and its tag reader for the lifetime of a config entry.
- Forward every NavigationSession snapshot the engine publishes to entities.
- Nothing is polled: the engine pushes, so update_interval is None.
"""
from __future__ import annotations

import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator

from .const import DOMAIN, VERSION
from .location_graph import LocationGraph
from .navigation_engine import NavigationEngine
from .session import NavigationSession
from .settings import NavigationSettings
from .tag_reader import HomeAssistantTagReader, TagReader

_LOGGER = logging.getLogger(__name__)


class IndoorNavCoordinator(DataUpdateCoordinator[NavigationSession]):
    """Pushes navigation session snapshots to entities as the engine publishes them."""

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        graph: LocationGraph,
        reader: TagReader | None = None,
    ) -> None:
        super().__init__(
            hass,
            _LOGGER,
            config_entry=entry,
            name=DOMAIN,
            update_interval=None,
        )
        self.settings = NavigationSettings.from_entry_data(entry.data)
        self.graph = graph
        self.reader = reader or HomeAssistantTagReader(hass, graph)
        self.engine = NavigationEngine(graph, self.reader, self.settings)
        self._remove_listener = self.engine.add_listener(self._handle_session)

        # Entities read the blank session until the first transition
        self.data = self.engine.session

    def _handle_session(self, session: NavigationSession) -> None:
        self.async_set_updated_data(session)

    async def _async_update_data(self) -> NavigationSession:
        return self.engine.session

    # ------------------------------------------------------------------
    # Entity helpers
    # ------------------------------------------------------------------

    def get_device_info(self) -> dict:
        """Return the HA DeviceInfo dict for the navigation session device."""
        return {
            "identifiers": {(DOMAIN, self.config_entry.entry_id)},
            "name": self.settings.entry_name,
            "manufacturer": "Indoor Navigation",
            "model": f"{len(self.graph)} locations",
            "sw_version": VERSION,
        }

    def location_name(self, location_id: str | None) -> str | None:
        if location_id is None:
            return None
        location = self.graph.get_location(location_id)
        return location.name if location else location_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_shutdown(self) -> None:
        """Clean up all resources owned by this coordinator."""
        self._remove_listener()
        await self.engine.async_shutdown()
        await super().async_shutdown()
