"""
Tests for the integration services: registration, dispatch to the engine,
and validation of scan_tag payloads.
"""

from __future__ import annotations

import unittest
from unittest.mock import AsyncMock, MagicMock

from homeassistant.exceptions import ServiceValidationError

from custom_components.indoor_nav.const import DOMAIN, MAX_PAYLOAD_BYTES
from custom_components.indoor_nav.services import async_register_services
from custom_components.indoor_nav.tag_payload import TagPayload


def _call(**data) -> MagicMock:
    call = MagicMock()
    call.data = data
    return call


class ServicesTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.engine = MagicMock()
        for name in (
            "async_set_current_location",
            "async_set_destination",
            "async_handle_payload",
            "async_start_navigation",
            "async_stop_navigation",
            "async_trigger_rerouting",
            "async_clear_route",
            "async_clear_error",
            "async_clear_session",
        ):
            setattr(self.engine, name, AsyncMock())

        entry = MagicMock()
        entry.runtime_data.engine = self.engine

        self.hass = MagicMock()
        self.hass.services.has_service = MagicMock(return_value=False)
        self.hass.config_entries.async_loaded_entries = MagicMock(return_value=[entry])

        async_register_services(self.hass)
        self.handlers = {
            call.args[1]: call.args[2]
            for call in self.hass.services.async_register.call_args_list
        }


class TestRegistration(ServicesTestCase):

    def test_all_services_registered_under_domain(self):
        self.assertEqual(
            set(self.handlers),
            {
                "set_current_location",
                "set_destination",
                "scan_tag",
                "start_navigation",
                "stop_navigation",
                "trigger_rerouting",
                "clear_route",
                "clear_error",
                "clear_session",
            },
        )
        for call in self.hass.services.async_register.call_args_list:
            self.assertEqual(call.args[0], DOMAIN)

    def test_registration_runs_once(self):
        self.hass.services.has_service = MagicMock(return_value=True)
        self.hass.services.async_register.reset_mock()
        async_register_services(self.hass)
        self.hass.services.async_register.assert_not_called()


class TestDispatch(ServicesTestCase):

    async def test_location_services(self):
        await self.handlers["set_current_location"](_call(location_id="A"))
        self.engine.async_set_current_location.assert_awaited_once_with("A")

        await self.handlers["set_destination"](_call(location_id="D"))
        self.engine.async_set_destination.assert_awaited_once_with("D")

    async def test_argument_less_services(self):
        for service, method in (
            ("start_navigation", "async_start_navigation"),
            ("stop_navigation", "async_stop_navigation"),
            ("trigger_rerouting", "async_trigger_rerouting"),
            ("clear_route", "async_clear_route"),
            ("clear_error", "async_clear_error"),
            ("clear_session", "async_clear_session"),
        ):
            await self.handlers[service](_call())
            getattr(self.engine, method).assert_awaited_once_with()

    async def test_not_set_up(self):
        self.hass.config_entries.async_loaded_entries = MagicMock(return_value=[])
        with self.assertRaises(ServiceValidationError):
            await self.handlers["start_navigation"](_call())


class TestScanTag(ServicesTestCase):

    async def test_valid_payload_is_handed_to_engine(self):
        payload = TagPayload.create("B", timestamp=1_700_000_000_000)
        await self.handlers["scan_tag"](_call(payload=payload.encode().decode("utf-8")))
        self.engine.async_handle_payload.assert_awaited_once_with(payload)

    async def test_malformed_payload(self):
        with self.assertRaises(ServiceValidationError) as ctx:
            await self.handlers["scan_tag"](_call(payload="not json"))
        self.assertIn("Failed to decode tag payload", str(ctx.exception))
        self.engine.async_handle_payload.assert_not_awaited()

    async def test_checksum_mismatch(self):
        forged = TagPayload.create("B").with_changes(location_id="D")
        with self.assertRaises(ServiceValidationError) as ctx:
            await self.handlers["scan_tag"](_call(payload=forged.encode().decode("utf-8")))
        self.assertIn("checksum", str(ctx.exception))
        self.engine.async_handle_payload.assert_not_awaited()

    async def test_oversized_payload(self):
        payload = TagPayload.create("B", additional_data={"note": "x" * MAX_PAYLOAD_BYTES})
        with self.assertRaises(ServiceValidationError):
            await self.handlers["scan_tag"](_call(payload=payload.encode().decode("utf-8")))
        self.engine.async_handle_payload.assert_not_awaited()
