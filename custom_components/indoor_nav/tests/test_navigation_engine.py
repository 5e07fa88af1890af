"""
Tests for NavigationEngine: direct operations, tag event handling, deviation
detection and rerouting, supersession, and reader release.

Fixture plan is described in test_common.
"""

from __future__ import annotations

import asyncio
import unittest
from unittest.mock import MagicMock, patch

from custom_components.indoor_nav.errors import ReaderError, ReaderErrorKind
from custom_components.indoor_nav.models import InstructionKind
from custom_components.indoor_nav.session import NavigationSession, NavigationState
from custom_components.indoor_nav.tag_payload import TagPayload

from .test_common import FakeTagReader, make_engine, start_navigation


class EngineTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.reader = FakeTagReader()
        self.engine = make_engine(self.reader)

    async def asyncTearDown(self):
        await self.engine.async_shutdown()

    async def scan(self, location_id: str) -> NavigationSession:
        """Scan through the reader and wait for the engine to handle it."""
        self.reader.scan(location_id)
        await self.engine.async_wait_idle()
        return self.engine.session


# ---------------------------------------------------------------------------
# Direct operations
# ---------------------------------------------------------------------------

class TestCurrentLocationAndDestination(EngineTestCase):

    async def test_set_current_location(self):
        session = await self.engine.async_set_current_location("A")
        self.assertEqual(session.current_location_id, "A")
        self.assertEqual(session.state, NavigationState.IDLE)

    async def test_unknown_current_location_is_an_error(self):
        session = await self.engine.async_set_current_location("nowhere")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(session.error_message, "Invalid location: nowhere")
        self.assertIsNone(session.current_location_id)

    async def test_valid_current_location_clears_error(self):
        await self.engine.async_set_current_location("nowhere")
        session = await self.engine.async_set_current_location("A")
        self.assertEqual(session.state, NavigationState.IDLE)
        self.assertIsNone(session.error_message)

    async def test_destination_without_current_location_waits_for_one(self):
        session = await self.engine.async_set_destination("D")
        self.assertEqual(session.state, NavigationState.SELECTING_DESTINATION)
        self.assertEqual(session.destination_location_id, "D")
        self.assertIsNone(session.active_route)

    async def test_destination_with_current_location_plans_route(self):
        await self.engine.async_set_current_location("A")
        session = await self.engine.async_set_destination("D")
        self.assertEqual(session.state, NavigationState.IDLE)
        self.assertEqual(session.active_route.path, ("A", "B", "C", "D"))

    async def test_destination_passes_through_calculating(self):
        states = []
        self.engine.add_listener(lambda s: states.append(s.state))
        await self.engine.async_set_current_location("A")
        await self.engine.async_set_destination("D")
        self.assertEqual(
            states[-3:],
            [NavigationState.SELECTING_DESTINATION, NavigationState.CALCULATING, NavigationState.IDLE],
        )

    async def test_unknown_destination_is_an_error(self):
        session = await self.engine.async_set_destination("nowhere")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(session.error_message, "Invalid destination: nowhere")

    async def test_unreachable_destination_is_an_error(self):
        await self.engine.async_set_current_location("A")
        session = await self.engine.async_set_destination("Z")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(session.error_message, "No route found to destination")

    async def test_route_calculation_exception_is_an_error(self):
        await self.engine.async_set_current_location("A")
        with patch.object(self.engine.calculator, "calculate_route", side_effect=RuntimeError("boom")):
            session = await self.engine.async_set_destination("D")
        self.assertEqual(session.error_message, "Route calculation failed: boom")

    async def test_new_destination_while_navigating_releases_reader(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.engine.async_set_destination("Y")
        self.assertFalse(self.reader.is_scanning)
        self.assertEqual(self.reader.stop_calls, 1)
        self.assertEqual(session.active_route.end_location_id, "Y")
        self.assertEqual(session.state, NavigationState.IDLE)


class TestStartStop(EngineTestCase):

    async def test_start_without_route(self):
        await self.engine.async_set_current_location("A")
        session = await self.engine.async_start_navigation()
        self.assertEqual(session.error_message, "No route available to start navigation")
        self.assertEqual(self.reader.start_calls, 0)

    async def test_start_sets_first_instruction(self):
        session = await start_navigation(self.engine, "A", "D")
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertEqual(session.current_step_index, 0)
        self.assertEqual(session.current_instruction.kind, InstructionKind.START)
        self.assertTrue(self.reader.is_scanning)

    async def test_start_after_moving_along_route_resumes_there(self):
        await self.engine.async_set_current_location("A")
        await self.engine.async_set_destination("D")
        await self.engine.async_set_current_location("C")
        session = await self.engine.async_start_navigation()
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertEqual(session.current_step_index, 2)
        self.assertEqual(session.current_instruction.from_location_id, "C")
        self.assertEqual(session.current_instruction.to_location_id, "D")

    async def test_start_from_off_route_location_uses_first_instruction(self):
        await self.engine.async_set_current_location("A")
        await self.engine.async_set_destination("D")
        await self.engine.async_set_current_location("X")
        session = await self.engine.async_start_navigation()
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertEqual(session.current_step_index, 0)
        self.assertEqual(session.current_instruction.from_location_id, "A")

    async def test_zero_length_route_arrives_without_scanning(self):
        session = await start_navigation(self.engine, "A", "A")
        self.assertEqual(session.state, NavigationState.ARRIVED)
        self.assertIsNone(session.current_instruction)
        self.assertEqual(self.reader.start_calls, 0)

    async def test_reader_failure_on_start(self):
        reader = FakeTagReader(fail_start=ReaderError("tag integration missing", ReaderErrorKind.READER_DISABLED))
        engine = make_engine(reader)
        session = await start_navigation(engine, "A", "D")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(session.error_message, "Failed to start navigation: tag integration missing")
        self.assertFalse(reader.is_scanning)
        await engine.async_shutdown()

    async def test_stop_keeps_route_and_destination(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.engine.async_stop_navigation()
        self.assertEqual(session.state, NavigationState.IDLE)
        self.assertIsNone(session.current_instruction)
        self.assertEqual(session.current_step_index, 0)
        self.assertEqual(session.destination_location_id, "D")
        self.assertIsNotNone(session.active_route)
        self.assertFalse(self.reader.is_scanning)

    async def test_stop_survives_reader_failure(self):
        reader = FakeTagReader(fail_stop=ReaderError("gone"))
        engine = make_engine(reader)
        await start_navigation(engine, "A", "D")
        session = await engine.async_stop_navigation()
        self.assertEqual(session.state, NavigationState.IDLE)
        self.assertEqual(reader.stop_calls, 1)
        await engine.async_shutdown()


class TestClearing(EngineTestCase):

    async def test_clear_route(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.engine.async_clear_route()
        self.assertIsNone(session.active_route)
        self.assertEqual(session.destination_location_id, "D")
        self.assertEqual(session.state, NavigationState.IDLE)
        self.assertFalse(self.reader.is_scanning)

    async def test_clear_error(self):
        await self.engine.async_set_current_location("nowhere")
        session = await self.engine.async_clear_error()
        self.assertEqual(session.state, NavigationState.IDLE)
        self.assertIsNone(session.error_message)

    async def test_clear_error_is_noop_outside_error(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.engine.async_clear_error()
        self.assertEqual(session.state, NavigationState.NAVIGATING)

    async def test_clear_session(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.engine.async_clear_session()
        self.assertEqual(session, NavigationSession())
        self.assertFalse(self.reader.is_scanning)


# ---------------------------------------------------------------------------
# Tag events
# ---------------------------------------------------------------------------

class TestTagEvents(EngineTestCase):

    async def test_scan_when_not_navigating_only_updates_location(self):
        session = await self.engine.async_handle_payload(TagPayload.create("C"))
        self.assertEqual(session.current_location_id, "C")
        self.assertEqual(session.state, NavigationState.IDLE)

    async def test_checksum_mismatch_is_dropped(self):
        await self.engine.async_set_current_location("A")
        forged = TagPayload.create("A").with_changes(location_id="B")
        session = await self.engine.async_handle_payload(forged)
        self.assertEqual(session.current_location_id, "A")
        self.assertEqual(session.state, NavigationState.IDLE)

    async def test_unknown_location_in_payload(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.scan("nowhere")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(session.error_message, "Invalid location detected: nowhere")
        self.assertEqual(session.current_location_id, "A")

    async def test_main_entrance_to_main_office_arrival(self):
        await self.engine.async_set_current_location("Main Entrance")
        session = await self.engine.async_set_destination("Main Office")
        self.assertEqual(session.active_route.path, ("Main Entrance", "Main Office"))

        session = await self.engine.async_start_navigation()
        self.assertEqual(session.current_instruction.kind, InstructionKind.DESTINATION)
        self.assertEqual(session.current_instruction.description, "Go directly to Main Office")

        session = await self.scan("Main Office")
        self.assertEqual(session.state, NavigationState.ARRIVED)
        self.assertEqual(session.current_location_id, "Main Office")
        self.assertIsNone(session.current_instruction)
        self.assertEqual(session.current_step_index, 1)
        self.assertFalse(self.reader.is_scanning)
        self.assertEqual(self.reader.stop_calls, 1)

    async def test_progress_along_route(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.scan("B")
        self.assertEqual(session.current_step_index, 1)
        self.assertEqual(session.current_instruction.from_location_id, "B")
        self.assertEqual(session.current_instruction.to_location_id, "C")
        self.assertEqual(session.state, NavigationState.NAVIGATING)

    async def test_stepping_back_is_tolerated(self):
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        await self.scan("C")
        session = await self.scan("B")
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertEqual(session.current_step_index, 1)
        self.assertEqual(session.active_route.path, ("A", "B", "C", "D"))

    async def test_reader_error_becomes_error_state(self):
        await start_navigation(self.engine, "A", "D")
        self.reader.fail(ReaderError("no tag", ReaderErrorKind.SCAN_TIMEOUT))
        await self.engine.async_wait_idle()
        session = self.engine.session
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(session.error_message, "Tag scanning error: No tag was scanned in time")
        self.assertEqual(self.engine.last_reader_error.kind, ReaderErrorKind.SCAN_TIMEOUT)


# ---------------------------------------------------------------------------
# Deviation and rerouting
# ---------------------------------------------------------------------------

class TestDeviation(EngineTestCase):

    async def test_moderate_deviation_reroutes_to_destination(self):
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        # X is 60 units from B, the nearest route location
        session = await self.scan("X")
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertEqual(session.current_location_id, "X")
        route = session.active_route
        self.assertTrue(route.id.startswith("reroute_"))
        self.assertEqual(route.start_location_id, "X")
        self.assertEqual(route.end_location_id, "D")
        self.assertEqual(route.path, ("X", "D"))
        self.assertEqual(session.current_step_index, 0)
        self.assertEqual(session.current_instruction, route.instructions[0])

    async def test_minor_deviation_stitches_return_leg(self):
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        await self.scan("C")
        # Y is 40 units from C
        session = await self.scan("Y")
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertTrue(session.active_route.id.startswith("combined_"))
        self.assertEqual(session.active_route.path, ("Y", "C", "D"))
        self.assertEqual(session.current_instruction.from_location_id, "Y")

    async def test_minor_deviation_with_long_return_does_full_reroute(self):
        engine = make_engine(self.reader, short_return_max_distance=10.0)
        await start_navigation(engine, "A", "D")
        for location_id in ("B", "C", "Y"):
            self.reader.scan(location_id)
            await engine.async_wait_idle()
        route = engine.session.active_route
        self.assertTrue(route.id.startswith("reroute_"))
        self.assertEqual(route.path, ("Y", "D"))
        await engine.async_shutdown()

    async def test_implausible_transition_is_rejected(self):
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        session = await self.scan("Z")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertIn("Invalid location transition detected", session.error_message)
        self.assertEqual(session.current_location_id, "B")

    async def test_nearby_but_unconnected_jump_is_accepted(self):
        # A -> X is 116.6 units and not an edge
        engine = make_engine(self.reader, proximity_threshold=120.0)
        await start_navigation(engine, "A", "D")
        self.reader.scan("X")
        await engine.async_wait_idle()
        self.assertEqual(engine.session.state, NavigationState.NAVIGATING)
        self.assertEqual(engine.session.current_location_id, "X")
        await engine.async_shutdown()

    async def test_unreachable_destination_after_deviation(self):
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        await self.scan("C")
        session = await self.scan("Q")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(
            session.error_message,
            "No route found from Q to D. Please navigate to a connected location and try again.",
        )
        self.assertIsNone(session.active_route)
        self.assertIsNone(session.current_instruction)
        self.assertEqual(session.destination_location_id, "D")
        self.assertEqual(session.current_location_id, "Q")

    async def test_recalculation_exception(self):
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        with patch.object(
            self.engine.calculator, "recalculate_from_current", side_effect=RuntimeError("boom")
        ):
            session = await self.scan("X")
        self.assertEqual(session.state, NavigationState.ERROR)
        self.assertEqual(session.error_message, "Route recalculation failed: boom")
        self.assertEqual(session.destination_location_id, "D")

    async def test_trigger_rerouting_is_noop_when_idle(self):
        await self.engine.async_set_current_location("A")
        await self.engine.async_set_destination("D")
        before = self.engine.session
        session = await self.engine.async_trigger_rerouting()
        self.assertIs(session, before)

    async def test_trigger_rerouting_while_navigating(self):
        await start_navigation(self.engine, "A", "D")
        session = await self.engine.async_trigger_rerouting()
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertTrue(session.active_route.id.startswith("reroute_"))
        self.assertEqual(session.current_instruction.kind, InstructionKind.REROUTE)

    async def test_superseded_reroute_is_discarded(self):
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        original_route = self.engine.session.active_route

        gate = asyncio.Event()
        real_calculate = self.engine._calculate
        recalc_calls = []

        async def slow_calculate(func, *args):
            if func == self.engine.calculator.recalculate_from_current:
                recalc_calls.append(args)
                await gate.wait()
            return await real_calculate(func, *args)

        self.engine._calculate = slow_calculate

        self.reader.scan("X")
        await asyncio.sleep(0.05)
        self.assertEqual(self.engine.session.state, NavigationState.CALCULATING)

        # a newer reading arrives while the reroute is still running
        self.reader.scan("B")
        gate.set()
        await self.engine.async_wait_idle()

        session = self.engine.session
        self.assertEqual(len(recalc_calls), 1)
        self.assertEqual(session.state, NavigationState.NAVIGATING)
        self.assertEqual(session.active_route, original_route)
        self.assertEqual(session.current_location_id, "B")


# ---------------------------------------------------------------------------
# Queries, listeners and lifecycle
# ---------------------------------------------------------------------------

class TestQueriesAndLifecycle(EngineTestCase):

    async def test_deviation_distance(self):
        self.assertIsNone(self.engine.get_deviation_distance("A"))
        await start_navigation(self.engine, "A", "D")
        self.assertEqual(self.engine.get_deviation_distance("C"), 0.0)
        self.assertAlmostEqual(self.engine.get_deviation_distance("X"), 60.0)
        self.assertIsNone(self.engine.get_deviation_distance("nowhere"))

    async def test_significant_deviation(self):
        self.assertFalse(self.engine.is_significant_deviation("A"))
        await start_navigation(self.engine, "A", "D")
        await self.scan("B")
        await self.scan("C")
        await self.scan("D")
        # arrived at step 3; A is three steps behind
        self.assertTrue(self.engine.is_significant_deviation("A"))
        self.assertFalse(self.engine.is_significant_deviation("B"))
        self.assertTrue(self.engine.is_significant_deviation("X"))

    async def test_listeners_receive_snapshots_until_removed(self):
        listener = MagicMock()
        remove = self.engine.add_listener(listener)
        await self.engine.async_set_current_location("A")
        listener.assert_called_with(self.engine.session)

        remove()
        listener.reset_mock()
        await self.engine.async_set_current_location("B")
        listener.assert_not_called()

    async def test_failing_listener_does_not_break_engine(self):
        self.engine.add_listener(MagicMock(side_effect=RuntimeError("entity gone")))
        session = await self.engine.async_set_current_location("A")
        self.assertEqual(session.current_location_id, "A")

    async def test_shutdown_releases_reader_and_stops_queue(self):
        await start_navigation(self.engine, "A", "D")
        await self.engine.async_shutdown()
        self.assertFalse(self.reader.is_scanning)
        # reader is disconnected from the engine
        self.reader.scan("B")
        await asyncio.sleep(0)
        self.assertEqual(self.engine.session.current_location_id, "A")
