"""
TagEventQueue — serialises tag reader events into the navigation engine.

This is a pure asyncio concurrency primitive with no HA dependencies.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .const import EVENT_QUEUE_SIZE

_LOGGER = logging.getLogger(__name__)


class TagEventQueue:
    """
    Bounded single-consumer queue for reader events.

    put() is synchronous and never blocks the producer: when the queue is full
    the oldest waiting event is dropped. One worker task drains events in
    arrival order and awaits the handler for each before taking the next.
    """

    def __init__(
        self,
        handler: Callable[[Any], Awaitable[None]],
        maxsize: int = EVENT_QUEUE_SIZE,
    ) -> None:
        self._handler = handler
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None
        self._closed = False
        self.dropped = 0

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def put(self, event: Any) -> bool:
        """Queue an event; returns False once the queue has been shut down."""
        if self._closed:
            _LOGGER.debug("Ignoring tag event after shutdown: %s", event)
            return False
        self._ensure_worker()
        if self._queue.full():
            oldest = self._queue.get_nowait()
            self._queue.task_done()
            self.dropped += 1
            _LOGGER.warning("Tag event queue full, dropping oldest event %s", oldest)
        self._queue.put_nowait(event)
        return True

    def qsize(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def shutdown(self) -> None:
        """Cancel the worker and discard pending events."""
        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            results = await asyncio.gather(self._worker, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                    _LOGGER.debug("TagEventQueue worker error during shutdown: %s", result)
            self._worker = None
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.ensure_future(self._run())

    async def _run(self) -> None:
        """Consume events indefinitely."""
        while True:
            event = await self._queue.get()
            try:
                await self._handler(event)
            except Exception as exc:  # noqa: BLE001
                _LOGGER.error("Unhandled error while processing tag event %s: %s", event, exc)
            finally:
                self._queue.task_done()
