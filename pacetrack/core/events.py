"""
Run Event Bus
=============

Message channel between a position source and the tracking session.

A single consumer task takes one event at a time off the queue and awaits
every handler for it before taking the next, so a handler that feeds a
TrackingSession sees fixes one by one and in arrival order.

Usage:
    bus = EventBus()
    bus.subscribe(EventType.POSITION_UPDATE, handle_fix)

    await bus.start()
    await bus.emit(EventType.POSITION_UPDATE, data=position)
    await bus.drain()  # handle_fix has run
    await bus.stop()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

Handler = Callable[["Event"], Awaitable[None]]


class EventType(str, Enum):
    """Messages exchanged during a run."""

    SESSION_STARTED = "session.started"
    SESSION_STOPPED = "session.stopped"
    POSITION_UPDATE = "position.update"
    SENSOR_ERROR = "sensor.error"
    STATS_UPDATED = "stats.updated"
    RUN_PERSISTED = "run.persisted"


@dataclass(frozen=True)
class Event:
    type: EventType
    data: Any = None
    source: str = "system"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventBus:
    """Queue of run events with priority-ordered handlers per event type."""

    def __init__(self) -> None:
        # (priority, handler), kept sorted; lower priority runs first
        self._handlers: dict[EventType, list[tuple[int, Handler]]] = {}
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None

    def subscribe(self, event_type: EventType, handler: Handler, priority: int = 100) -> None:
        """Register `handler` for `event_type`. Equal priorities keep subscription order."""
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append((priority, handler))
        handlers.sort(key=lambda entry: entry[0])
        logger.debug("Subscribed %s to %s", getattr(handler, "__name__", handler), event_type.value)

    async def emit(self, event_type: EventType, data: Any = None, source: str = "system") -> Event:
        """Queue an event for the consumer task."""
        return self.emit_sync(event_type, data, source)

    def emit_sync(self, event_type: EventType, data: Any = None, source: str = "system") -> Event:
        """Queue an event from synchronous code running on the bus loop (session and GPS callbacks)."""
        event = Event(type=event_type, data=data, source=source)
        self._queue.put_nowait(event)
        return event

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._consume())
        logger.info("Event bus started")

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait until every queued event, and any event its handlers queued, was handled."""
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Event queue drain timed out with %d pending", self._queue.qsize())

    async def stop(self, timeout: float = 5.0) -> None:
        """Handle what is queued, then stop the consumer task."""
        if self._task is None:
            return
        await self.drain(timeout)
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Event bus stopped")

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: Event) -> None:
        for _, handler in list(self._handlers.get(event.type, [])):
            try:
                await handler(event)
            except Exception as e:
                # Handlers are isolated from each other
                logger.error("Handler %s failed for %s: %s", getattr(handler, "__name__", handler), event.type.value, e)
