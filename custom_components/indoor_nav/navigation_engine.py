"""
NavigationEngine — the navigation state machine.

Owns the live NavigationSession and is the only writer of it. Every public
operation is a coroutine that runs under one asyncio.Lock and returns the
snapshot after its transition. Reader events are funnelled through a
TagEventQueue so they are handled one at a time, in arrival order. Route
searches run in the executor; the graph they read is never mutated.

No HA dependencies: the coordinator subscribes with add_listener() and pushes
snapshots to entities.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Callable

from .const import MAX_BACKTRACK_STEPS
from .errors import NoRouteFound, TransitionRejected, ValidationError
from .location_graph import LocationGraph
from .models import Route
from .route_calculator import RouteCalculator
from .route_stitcher import combine
from .session import (
    DeviationSeverity,
    NavigationSession,
    NavigationState,
    classify_deviation,
)
from .settings import NavigationSettings
from .tag_event_queue import TagEventQueue
from .tag_payload import TagPayload
from .tag_reader import ReaderErrorInfo, TagReader, describe_reader_error

_LOGGER = logging.getLogger(__name__)

SessionListener = Callable[[NavigationSession], None]

_EVENT_PAYLOAD = "payload"
_EVENT_READER_ERROR = "reader_error"


class NavigationEngine:
    """
    Navigation state machine.

    States: idle → selecting_destination → calculating → navigating → arrived,
    with error reachable from any state and left through clear_error.
    """

    def __init__(
        self,
        graph: LocationGraph,
        reader: TagReader,
        settings: NavigationSettings | None = None,
        calculator: RouteCalculator | None = None,
    ) -> None:
        self.graph = graph
        self.settings = settings or NavigationSettings()
        self.calculator = calculator or RouteCalculator(graph, self.settings.meters_per_unit)
        self._reader = reader
        self._session = NavigationSession()
        self._lock = asyncio.Lock()
        self._listeners: list[SessionListener] = []
        # Bumped by every submitted event and every direct call; a reroute
        # finishing under an older token has been superseded.
        self._token = 0
        self._queue = TagEventQueue(self._process_event, self.settings.event_queue_size)
        self._unregister_reader = reader.register_consumer(
            self.submit_payload, self.submit_reader_error
        )
        self.last_reader_error: ReaderErrorInfo | None = None

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def session(self) -> NavigationSession:
        return self._session

    @property
    def reader(self) -> TagReader:
        return self._reader

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Call listener with every new snapshot; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _publish(self, session: NavigationSession) -> NavigationSession:
        self._session = session
        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("Session listener %s failed: %s", listener, exc)
        return session

    def _update(self, **changes: Any) -> NavigationSession:
        return self._publish(dataclasses.replace(self._session, **changes))

    def _fail(self, message: str) -> NavigationSession:
        _LOGGER.debug("Navigation error: %s", message)
        return self._publish(self._session.with_error(message))

    def _bump(self) -> int:
        self._token += 1
        return self._token

    # ------------------------------------------------------------------
    # Direct operations
    # ------------------------------------------------------------------

    async def async_set_current_location(self, location_id: str) -> NavigationSession:
        """Set the user's location manually, e.g. when scanning is unavailable."""
        self._bump()
        async with self._lock:
            if not self.graph.location_exists(location_id):
                return self._fail(str(ValidationError(location_id)))
            self._publish(
                dataclasses.replace(self._session, current_location_id=location_id).without_error()
            )
        return self._session

    async def async_set_destination(self, location_id: str) -> NavigationSession:
        """Choose a destination and, with a known current location, plan the route to it."""
        self._bump()
        async with self._lock:
            if not self.graph.location_exists(location_id):
                return self._fail(str(ValidationError(location_id, "destination")))

            if self._session.is_navigating:
                await self._release_reader()

            self._update(
                destination_location_id=location_id,
                active_route=None,
                current_instruction=None,
                current_step_index=0,
                state=NavigationState.SELECTING_DESTINATION,
                error_message=None,
            )

            current = self._session.current_location_id
            if current is None:
                return self._session

            self._update(state=NavigationState.CALCULATING)
            try:
                route = await self._calculate(self.calculator.calculate_route, current, location_id)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.warning("Route calculation %s -> %s failed: %s", current, location_id, exc)
                return self._fail(f"Route calculation failed: {exc}")

            if route is None:
                return self._fail("No route found to destination")
            _LOGGER.debug(
                "Route %s planned: %.1f m over %d locations",
                route.id, route.estimated_distance, len(route.path),
            )
            return self._update(active_route=route, state=NavigationState.IDLE)

    async def async_start_navigation(self) -> NavigationSession:
        """Begin following the active route and start listening for tags."""
        self._bump()
        async with self._lock:
            session = self._session
            route = session.active_route
            if route is None:
                return self._fail("No route available to start navigation")
            if session.current_location_id is None:
                return self._fail("Current location not set")

            if session.current_location_id == route.end_location_id:
                return self._update(
                    state=NavigationState.ARRIVED,
                    current_instruction=None,
                    current_step_index=route.index_of(route.end_location_id),
                    error_message=None,
                )

            try:
                await self._reader.async_start_scanning()
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Could not start tag scanning: %s", exc)
                return self._fail(f"Failed to start navigation: {exc}")

            # Pick up from wherever the user is now, which may be further along
            # than the route's start
            index = route.index_of(session.current_location_id)
            if index < 0:
                index = 0
                instruction = route.instructions[0] if route.instructions else None
            else:
                instruction = route.next_instruction(session.current_location_id)
            return self._update(
                state=NavigationState.NAVIGATING,
                current_instruction=instruction,
                current_step_index=index,
                error_message=None,
            )

    async def async_stop_navigation(self) -> NavigationSession:
        """Stop following the route; route and destination are kept."""
        self._bump()
        async with self._lock:
            try:
                await self._release_reader()
            finally:
                self._update(
                    state=NavigationState.IDLE,
                    current_instruction=None,
                    current_step_index=0,
                    error_message=None,
                )
        return self._session

    async def async_trigger_rerouting(self) -> NavigationSession:
        """Recalculate from the current location; no-op unless navigating."""
        token = self._bump()
        async with self._lock:
            session = self._session
            if (
                session.is_navigating
                and session.has_current_location
                and session.has_destination
                and session.has_active_route
            ):
                await self._full_reroute(token)
        return self._session

    async def async_clear_route(self) -> NavigationSession:
        self._bump()
        async with self._lock:
            try:
                await self._release_reader()
            finally:
                self._update(
                    active_route=None,
                    current_instruction=None,
                    current_step_index=0,
                    state=NavigationState.IDLE,
                    error_message=None,
                )
        return self._session

    async def async_clear_error(self) -> NavigationSession:
        self._bump()
        async with self._lock:
            if self._session.state == NavigationState.ERROR:
                self._publish(self._session.without_error())
        return self._session

    async def async_clear_session(self) -> NavigationSession:
        self._bump()
        async with self._lock:
            try:
                await self._release_reader()
            finally:
                self._publish(NavigationSession())
        return self._session

    # ------------------------------------------------------------------
    # Reader events
    # ------------------------------------------------------------------

    def submit_payload(self, payload: TagPayload) -> None:
        """Queue a scanned payload. Safe to call from a sync callback."""
        token = self._bump()
        self._queue.put((_EVENT_PAYLOAD, payload, token))

    def submit_reader_error(self, exc: Exception) -> None:
        token = self._bump()
        self._queue.put((_EVENT_READER_ERROR, exc, token))

    async def async_wait_idle(self) -> None:
        """Wait until every queued reader event has been handled."""
        await self._queue.join()

    async def _process_event(self, event: tuple[str, Any, int]) -> None:
        kind, value, token = event
        if kind == _EVENT_PAYLOAD:
            await self.async_handle_payload(value, token)
        else:
            await self._async_handle_reader_error(value)

    async def async_handle_payload(
        self, payload: TagPayload, token: int | None = None
    ) -> NavigationSession:
        """Process one checkpoint reading immediately, bypassing the queue."""
        if token is None:
            token = self._bump()
        if not payload.is_valid():
            _LOGGER.warning(
                "Dropping tag payload for %s with checksum mismatch", payload.location_id
            )
            return self._session

        async with self._lock:
            location_id = payload.location_id
            if not self.graph.location_exists(location_id):
                return self._fail(f"Invalid location detected: {location_id}")

            session = self._session
            route = session.active_route
            if not session.is_navigating or route is None:
                return self._update(current_location_id=location_id)

            if route.contains_location(location_id):
                await self._handle_on_route(location_id, route)
            else:
                await self._handle_deviation(
                    location_id, session.current_location_id, route, token
                )
        return self._session

    async def _async_handle_reader_error(self, exc: Exception) -> None:
        info = describe_reader_error(exc)
        self.last_reader_error = info
        _LOGGER.error("Tag reader error (%s): %s", info.kind, info.message)
        async with self._lock:
            self._fail(f"Tag scanning error: {info.user_message}")

    # ------------------------------------------------------------------
    # Navigation updates
    # ------------------------------------------------------------------

    async def _handle_on_route(self, location_id: str, route: Route) -> None:
        index = route.index_of(location_id)
        if location_id == route.end_location_id:
            try:
                await self._release_reader()
            finally:
                self._update(
                    current_location_id=location_id,
                    current_step_index=index,
                    current_instruction=None,
                    state=NavigationState.ARRIVED,
                )
            _LOGGER.debug("Arrived at %s", location_id)
            return

        # Stepping back along the route is tolerated
        self._update(
            current_location_id=location_id,
            current_step_index=index,
            current_instruction=route.next_instruction(location_id),
        )

    async def _handle_deviation(
        self, location_id: str, previous_id: str | None, route: Route, token: int
    ) -> None:
        if previous_id is not None and not self._is_plausible_transition(previous_id, location_id):
            self._fail(str(TransitionRejected(previous_id, location_id)))
            return

        self._update(current_location_id=location_id)
        nearest_id, distance = self._nearest_route_location(location_id, route)
        severity = classify_deviation(distance)
        _LOGGER.debug(
            "Off route at %s: nearest route location %s at %s units (%s)",
            location_id, nearest_id, distance, severity,
        )

        if severity == DeviationSeverity.MINOR and await self._try_short_return(
            location_id, nearest_id, route, token
        ):
            return
        await self._full_reroute(token)

    def _is_plausible_transition(self, from_id: str, to_id: str) -> bool:
        if self.graph.is_directly_connected(from_id, to_id):
            return True
        distance = self.graph.straight_line_distance(from_id, to_id)
        return distance is not None and distance <= self.settings.proximity_threshold

    def _nearest_route_location(
        self, location_id: str, route: Route
    ) -> tuple[str | None, float | None]:
        nearest_id: str | None = None
        nearest: float | None = None
        for route_location_id in route.path:
            distance = self.graph.straight_line_distance(location_id, route_location_id)
            if distance is not None and (nearest is None or distance < nearest):
                nearest, nearest_id = distance, route_location_id
        return nearest_id, nearest

    async def _try_short_return(
        self, location_id: str, rejoin_id: str | None, route: Route, token: int
    ) -> bool:
        """Splice a short leg back onto the route; False means a full reroute is needed."""
        if rejoin_id is None:
            return False
        try:
            return_route = await self._calculate(
                self.calculator.calculate_route, location_id, rejoin_id
            )
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Return route %s -> %s failed: %s", location_id, rejoin_id, exc)
            return False
        if return_route is None:
            return False
        if return_route.estimated_distance >= self.settings.short_return_max_distance:
            return False

        combined = combine(return_route, route, rejoin_id)
        if combined is None:
            return False
        if token != self._token:
            _LOGGER.debug("Short return from %s superseded, discarding", location_id)
            return True
        self._adopt(combined, "Minor reroute")
        return True

    async def _full_reroute(self, token: int) -> None:
        session = self._session
        current = session.current_location_id
        destination = session.destination_location_id
        if current is None or destination is None:
            return

        previous_route = session.active_route
        self._update(state=NavigationState.CALCULATING)

        failure: Exception | None = None
        route: Route | None = None
        try:
            route = await self._calculate(
                self.calculator.recalculate_from_current, current, destination
            )
        except Exception as exc:  # noqa: BLE001
            failure = exc

        if token != self._token:
            _LOGGER.debug("Reroute from %s superseded, keeping previous route", current)
            self._update(state=NavigationState.NAVIGATING, active_route=previous_route)
            return

        if failure is not None:
            _LOGGER.warning("Route recalculation from %s failed: %s", current, failure)
            self._fail(f"Route recalculation failed: {failure}")
            return

        if route is None or not route.is_valid():
            message = str(NoRouteFound(
                self._name_of(current),
                self._name_of(destination),
                "Please navigate to a connected location and try again.",
            ))
            _LOGGER.debug("Navigation error: %s", message)
            # Destination is kept so the user can retry from a connected location
            self._publish(dataclasses.replace(
                self._session.with_error(message),
                active_route=None,
                current_instruction=None,
                current_step_index=0,
            ))
            return

        self._adopt(route, "Full reroute")

    def _adopt(self, route: Route, label: str) -> None:
        self._update(
            active_route=route,
            state=NavigationState.NAVIGATING,
            current_instruction=route.instructions[0] if route.instructions else None,
            current_step_index=0,
            error_message=None,
        )
        _LOGGER.info(
            "%s at %s: %.1f m, about %d min",
            label,
            self._session.current_location_id,
            route.estimated_distance,
            route.estimated_duration.total_seconds() // 60,
        )

    def _name_of(self, location_id: str) -> str:
        location = self.graph.get_location(location_id)
        return location.name if location else location_id

    async def _calculate(self, func: Callable[..., Route | None], *args: Any) -> Route | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _release_reader(self) -> None:
        try:
            await self._reader.async_stop_scanning()
        except Exception as exc:  # noqa: BLE001
            _LOGGER.warning("Failed to stop tag scanning: %s", exc)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_deviation_distance(self, location_id: str) -> float | None:
        """Plan-unit distance from location_id to the nearest node of the active route."""
        route = self._session.active_route
        if route is None or not self.graph.location_exists(location_id):
            return None
        if route.contains_location(location_id):
            return 0.0
        return self._nearest_route_location(location_id, route)[1]

    def is_significant_deviation(self, location_id: str) -> bool:
        """Off the route entirely, or too many steps behind the current one."""
        route = self._session.active_route
        if route is None:
            return False
        index = route.index_of(location_id)
        if index < 0:
            return True
        return self._session.current_step_index - index > MAX_BACKTRACK_STEPS

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def async_shutdown(self) -> None:
        """Stop the event worker and release the reader."""
        self._bump()
        self._unregister_reader()
        await self._queue.shutdown()
        await self._release_reader()
        self._listeners.clear()
