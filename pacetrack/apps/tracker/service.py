"""
Tracking Service
================

Host side of a tracking session: pulls fixes from a position source, passes
them as messages over the event bus into a single TrackingSession, and hands
the finished run to the repository.

Each fix is fully handled before the next one is read, so the session sees a
replayed file exactly as it would see the live sensor.

Usage:
    service = TrackingService(cfg, persister=RunRepository(cfg.storage.db_path))

    async def show(event: Event):
        print(event.data["distance_km"])

    service.bus.subscribe(EventType.STATS_UPDATED, show)
    summary = await service.run(MockGPSClient(), duration=60)
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional, Protocol

from ...config import PacetrackConfig
from ...core.events import Event, EventBus, EventType
from ...core.session import Clock, ErrorObserver, RunPersister, TrackingSession, utc_now
from ...domain.models import Position, RunSummary, SensorError
from ...infrastructure.gps.replay import ReplayClock

logger = logging.getLogger(__name__)


class PositionSource(Protocol):
    def stream_positions(self) -> AsyncIterator[Position]: ...

    async def stop(self) -> None: ...


class TrackingService:
    """Wires a position source, the event bus, a session and a persister."""

    def __init__(
        self,
        config: PacetrackConfig | None = None,
        persister: Optional[RunPersister] = None,
        bus: Optional[EventBus] = None,
        clock: Clock = utc_now,
        on_error: Optional[ErrorObserver] = None,
    ) -> None:
        self.config = config or PacetrackConfig()
        self.bus = bus or EventBus()
        self._persister = persister
        self._clock = clock
        self.last_run_id: object = None
        self.positions_received = 0

        self.session = TrackingSession(
            self.config.tracker,
            persister=self,
            clock=clock,
            on_error=on_error,
        )

        self.bus.subscribe(EventType.POSITION_UPDATE, self._handle_position, priority=10)
        self.bus.subscribe(EventType.SENSOR_ERROR, self._handle_sensor_error, priority=10)

    async def _handle_position(self, event: Event) -> None:
        position: Position = event.data
        # Recorded time moves only as fixes reach the session
        if isinstance(self._clock, ReplayClock):
            self._clock.advance(position.timestamp)
        self.session.on_position(position)
        if self.session.is_running:
            await self.bus.emit(EventType.STATS_UPDATED, data=self.session.snapshot(), source="session")

    async def _handle_sensor_error(self, event: Event) -> None:
        self.session.on_sensor_error(event.data)

    def report_error(self, error: SensorError) -> None:
        """Callback for position sources; queues the error on the bus."""
        self.bus.emit_sync(EventType.SENSOR_ERROR, data=error, source="gps")

    def persist_run(self, summary: RunSummary) -> object:
        """RunPersister hook called by the session at stop."""
        if self._persister is None:
            return None
        self.last_run_id = self._persister.persist_run(summary)
        self.bus.emit_sync(EventType.RUN_PERSISTED, data=self.last_run_id, source="storage")
        return self.last_run_id

    async def run(
        self,
        source: PositionSource,
        duration: float | None = None,
        max_positions: int | None = None,
    ) -> Optional[RunSummary]:
        """
        Track one run from `source` until it ends, `duration` seconds pass or
        `max_positions` fixes were received.

        Returns:
            The finished run summary
        """
        register = getattr(source, "on_error", None)
        if callable(register):
            register(self.report_error)

        await self.bus.start()
        self.session.start()
        await self.bus.emit(EventType.SESSION_STARTED, data=self.session.start_time, source="session")

        try:
            async with asyncio.timeout(duration):
                async for position in source.stream_positions():
                    self.positions_received += 1
                    await self.bus.emit(EventType.POSITION_UPDATE, data=position, source="gps")
                    await self.bus.drain()
                    if max_positions is not None and self.positions_received >= max_positions:
                        break
        except TimeoutError:
            logger.info("Tracking duration of %.1fs reached", duration)
        except Exception as e:
            # Run is abandoned, nothing is persisted
            logger.error("Position source failed: %s", e)
            await self.bus.stop()
            raise
        finally:
            await source.stop()

        await self.bus.drain()
        summary = self.session.stop()
        await self.bus.emit(EventType.SESSION_STOPPED, data=summary, source="session")
        await self.bus.stop()
        return summary
