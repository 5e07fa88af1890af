"""
Tag reader boundary.

A TagReader pushes decoded TagPayloads (or ReaderErrors) to a single registered
consumer while scanning. HomeAssistantTagReader turns Home Assistant
`tag_scanned` bus events into payloads.
"""
from __future__ import annotations

import dataclasses
import enum
import logging
from typing import Callable

from homeassistant.core import Event, HomeAssistant, callback

from .const import EVENT_TAG_SCANNED, TAG_DOMAIN
from .errors import DecodeError, ReaderError, ReaderErrorKind
from .location_graph import LocationGraph
from .tag_payload import TagPayload

_LOGGER = logging.getLogger(__name__)

PayloadCallback = Callable[[TagPayload], None]
ErrorCallback = Callable[[Exception], None]


class ReaderAvailability(enum.StrEnum):
    AVAILABLE = "available"
    DISABLED = "disabled"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True)
class ReaderErrorInfo:
    """Classified reader failure with text suitable for the user."""

    kind: ReaderErrorKind
    message: str
    user_message: str
    recovery_suggestions: tuple[str, ...]


_MANUAL = "Use the set_current_location service to select your location manually"

_ERROR_TEXT: dict[ReaderErrorKind, tuple[str, tuple[str, ...]]] = {
    ReaderErrorKind.HARDWARE_UNAVAILABLE: (
        "No tag reader is available",
        ("Check that a tag reader device is connected to Home Assistant", _MANUAL),
    ),
    ReaderErrorKind.PERMISSION_DENIED: (
        "Permission to use the tag reader was denied",
        ("Allow tag scanning for this device in the companion app", _MANUAL),
    ),
    ReaderErrorKind.READER_DISABLED: (
        "Tag scanning is turned off",
        ("Enable the Home Assistant tag integration", "Turn on NFC on the scanning device", _MANUAL),
    ),
    ReaderErrorKind.SCAN_TIMEOUT: (
        "No tag was scanned in time",
        ("Hold the device closer to the tag", "Try scanning again", _MANUAL),
    ),
    ReaderErrorKind.TAG_READ_ERROR: (
        "Failed to read the tag",
        ("Try scanning the tag again", "Ensure you are scanning a location tag", _MANUAL),
    ),
    ReaderErrorKind.UNKNOWN: (
        "An unexpected error occurred while scanning",
        ("Try again in a moment", _MANUAL),
    ),
}


def describe_reader_error(exc: Exception) -> ReaderErrorInfo:
    """Classify any reader failure; manual location entry is always suggested."""
    kind = exc.kind if isinstance(exc, ReaderError) else ReaderErrorKind.UNKNOWN
    user_message, suggestions = _ERROR_TEXT[kind]
    return ReaderErrorInfo(
        kind=kind,
        message=str(exc) or exc.__class__.__name__,
        user_message=user_message,
        recovery_suggestions=suggestions,
    )


class TagReader:
    """
    Base reader with a single consumer.

    Subclasses implement _async_start / _async_stop and call _emit_payload /
    _emit_error from their event source.
    """

    def __init__(self) -> None:
        self._on_payload: PayloadCallback | None = None
        self._on_error: ErrorCallback | None = None
        self._scanning = False

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def register_consumer(
        self, on_payload: PayloadCallback, on_error: ErrorCallback | None = None
    ) -> Callable[[], None]:
        """Register the one consumer; a later registration replaces the earlier one."""
        self._on_payload = on_payload
        self._on_error = on_error

        def _unregister() -> None:
            if self._on_payload is on_payload:
                self._on_payload = None
                self._on_error = None

        return _unregister

    async def async_check_availability(self) -> ReaderAvailability:
        return ReaderAvailability.UNKNOWN

    async def async_start_scanning(self) -> None:
        if self._scanning:
            return
        await self._async_start()
        self._scanning = True

    async def async_stop_scanning(self) -> None:
        if not self._scanning:
            return
        self._scanning = False
        await self._async_stop()

    async def _async_start(self) -> None:
        raise NotImplementedError

    async def _async_stop(self) -> None:
        raise NotImplementedError

    def _emit_payload(self, payload: TagPayload) -> None:
        if self._on_payload is None:
            _LOGGER.debug("No consumer for payload %s", payload.location_id)
            return
        self._on_payload(payload)

    def _emit_error(self, exc: Exception) -> None:
        if self._on_error is None:
            _LOGGER.warning("Unhandled tag reader error: %s", exc)
            return
        self._on_error(exc)


class HomeAssistantTagReader(TagReader):
    """Reader fed by the Home Assistant `tag_scanned` event."""

    def __init__(self, hass: HomeAssistant, graph: LocationGraph) -> None:
        super().__init__()
        self.hass = hass
        self.graph = graph
        self._unsub: Callable[[], None] | None = None

    async def async_check_availability(self) -> ReaderAvailability:
        if TAG_DOMAIN in self.hass.config.components:
            return ReaderAvailability.AVAILABLE
        return ReaderAvailability.DISABLED

    async def _async_start(self) -> None:
        if await self.async_check_availability() != ReaderAvailability.AVAILABLE:
            raise ReaderError(
                "The Home Assistant tag integration is not loaded",
                ReaderErrorKind.READER_DISABLED,
            )
        self._unsub = self.hass.bus.async_listen(EVENT_TAG_SCANNED, self._handle_tag_scanned)
        _LOGGER.debug("Listening for %s events", EVENT_TAG_SCANNED)

    async def _async_stop(self) -> None:
        if self._unsub is not None:
            self._unsub()
            self._unsub = None
        _LOGGER.debug("Stopped listening for %s events", EVENT_TAG_SCANNED)

    @callback
    def _handle_tag_scanned(self, event: Event) -> None:
        tag_id = event.data.get("tag_id")
        device_id = event.data.get("device_id")
        if not tag_id:
            return

        if tag_id.lstrip().startswith("{"):
            try:
                payload = TagPayload.decode(tag_id)
            except DecodeError as exc:
                self._emit_error(ReaderError(str(exc), ReaderErrorKind.TAG_READ_ERROR))
                return
            self._emit_payload(payload)
            return

        location = self.graph.get_location_by_tag_serial(tag_id) or self.graph.get_location(tag_id)
        if location is None:
            # Tags unrelated to navigation share the same event
            _LOGGER.debug("Ignoring tag %s, not a known checkpoint", tag_id)
            return

        self._emit_payload(
            TagPayload.create(
                location.id,
                additional_data={"tag_id": tag_id, "device_id": device_id},
            )
        )
