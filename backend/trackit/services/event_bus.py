"""
backend/trackit/services/event_bus.py

Purpose:
    Process-local publish/subscribe for live updates. Publishing only enqueues
    on a bounded ingress queue; a dispatcher copies each event into the queue of
    every handler registered for its type, and each handler drains its own queue
    with its own workers. A slow or failing handler therefore never stalls the
    poller or the other handlers.

Dependencies:
    - asyncio
    - trackit.services.event_models
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter, deque
from collections.abc import Awaitable, Callable
from typing import Any

from trackit.services.event_models import BaseEvent, normalize_event_time
from trackit.utils import utcnow

logger = logging.getLogger("trackit.event_bus")

AsyncEventHandler = Callable[[BaseEvent], Awaitable[None]]


async def _cancel_all(tasks: list[asyncio.Task]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


class _HandlerRoute:
    """One registered handler: its queue, worker tasks and counters."""

    def __init__(self, bus: "InMemoryEventBus", event_type: str, name: str, handler: AsyncEventHandler, concurrency: int, maxsize: int):
        self.bus = bus
        self.event_type = event_type
        self.name = name
        self.handler = handler
        self.concurrency = max(1, int(concurrency))
        self.queue: asyncio.Queue[BaseEvent] = asyncio.Queue(maxsize=maxsize)
        self.tasks: list[asyncio.Task] = []
        self.counts = Counter(handled_total=0, failed_total=0, dropped_total=0)

    @property
    def key(self) -> str:
        return f"{self.event_type}:{self.name}"

    def offer(self, event: BaseEvent) -> bool:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.counts["dropped_total"] += 1
            logger.warning("Handler %s is backed up; dropped %s", self.key, event.event_id)
            return False
        return True

    def launch(self) -> None:
        if self.tasks:
            return
        self.tasks = [asyncio.create_task(self._drain(), name=f"bus:{self.key}:{n}") for n in range(self.concurrency)]

    async def halt(self) -> None:
        tasks, self.tasks = self.tasks, []
        await _cancel_all(tasks)

    async def _drain(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.handler(event)
            except Exception as exc:
                self.counts["failed_total"] += 1
                self.bus._record_failure(self, event, exc)
            else:
                self.counts["handled_total"] += 1

    def stats(self) -> dict[str, Any]:
        return {"queue_depth": self.queue.qsize(), "queue_limit": self.queue.maxsize, **self.counts}


class InMemoryEventBus:
    def __init__(self, *, ingress_maxsize: int, handler_maxsize: int, error_buffer_size: int) -> None:
        self._handler_maxsize = max(1, int(handler_maxsize))
        self._ingress: asyncio.Queue[BaseEvent] = asyncio.Queue(maxsize=max(1, int(ingress_maxsize)))
        self._routes: list[_HandlerRoute] = []
        self._dispatcher: asyncio.Task | None = None
        self._running = False
        self._published_by_type: Counter[str] = Counter()
        self._ingress_dropped = 0
        self._errors: deque[dict[str, Any]] = deque(maxlen=max(1, int(error_buffer_size)))

    @property
    def running(self) -> bool:
        return self._running

    def subscribe(self, event_type: str, handler: AsyncEventHandler, *, handler_name: str, concurrency: int = 1) -> None:
        route = _HandlerRoute(self, event_type, handler_name, handler, concurrency, self._handler_maxsize)
        self._routes.append(route)
        if self._running:
            route.launch()

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        for route in self._routes:
            route.launch()
        self._dispatcher = asyncio.create_task(self._dispatch(), name="bus:dispatcher")
        logger.info("Event bus started with %d handler(s)", len(self._routes))

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        dispatcher, self._dispatcher = self._dispatcher, None
        if dispatcher is not None:
            await _cancel_all([dispatcher])
        for route in self._routes:
            await route.halt()
        logger.info("Event bus stopped")

    async def publish(self, event: BaseEvent) -> None:
        """Enqueue without waiting. A full ingress queue drops the event."""
        event = normalize_event_time(event)
        try:
            self._ingress.put_nowait(event)
        except asyncio.QueueFull:
            self._ingress_dropped += 1
            logger.warning("Event bus ingress full; dropped %s", event.event_type)
            return
        self._published_by_type[event.event_type] += 1

    def stats(self) -> dict[str, Any]:
        per_handler = {route.key: route.stats() for route in self._routes}
        return {
            "running": self._running,
            "published_total": sum(self._published_by_type.values()),
            "handled_total": sum(s["handled_total"] for s in per_handler.values()),
            "failed_total": sum(s["failed_total"] for s in per_handler.values()),
            "dropped_total": self._ingress_dropped + sum(s["dropped_total"] for s in per_handler.values()),
            "ingress_queue_depth": self._ingress.qsize(),
            "ingress_queue_limit": self._ingress.maxsize,
            "per_event_type": dict(self._published_by_type),
            "per_handler": per_handler,
            "recent_errors": list(self._errors),
        }

    async def _dispatch(self) -> None:
        while True:
            event = await self._ingress.get()
            for route in self._routes:
                if route.event_type == event.event_type:
                    route.offer(event)

    def _record_failure(self, route: _HandlerRoute, event: BaseEvent, exc: Exception) -> None:
        self._errors.append(
            {
                "event_id": event.event_id,
                "event_type": event.event_type,
                "handler_name": route.name,
                "correlation_id": event.correlation_id,
                "ts": utcnow().isoformat(),
                "error": str(exc),
            }
        )
        logger.error("Handler %s failed on %s (correlation_id=%s)", route.key, event.event_id, event.correlation_id, exc_info=exc)
