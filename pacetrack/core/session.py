"""
Tracking Session
================

Owns all mutable state of one run and turns a stream of raw fixes into
distance, pace and a downsampled track.

Per fix:
    accuracy filter -> recency window -> rate gate -> best sample
    -> distance + pace (once the window is ready) -> downsampled track

The session is synchronous and never locks: the host must deliver fixes and
sensor errors one at a time.

Usage:
    session = TrackingSession(TrackerConfig(), persister=repository)
    session.start()

    for position in source:
        session.on_position(position)

    summary = session.stop()
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Protocol

from ..config import TrackerConfig
from ..domain.models import Position, RunSummary, SensorError, StoredSample
from .distance import DistanceAccumulator
from .filtering import AccuracyFilter, BestSampleSelector, RecencyWindow
from .stats import PaceTracker, TrackDownsampler

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
ErrorObserver = Callable[[SensorError], None]


class RunPersister(Protocol):
    """Receives the finished run when a session stops."""

    def persist_run(self, summary: RunSummary) -> object: ...


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


def utc_now() -> datetime:
    return datetime.now(UTC)


class TrackingSession:
    """
    Position filtering and statistics engine for a single run.

    Lifecycle is IDLE -> RUNNING -> IDLE. Starting again after a stop
    re-initialises all state. Fixes received while IDLE are ignored and
    stopping an idle session does nothing.
    """

    def __init__(
        self,
        config: TrackerConfig | None = None,
        persister: Optional[RunPersister] = None,
        clock: Clock = utc_now,
        on_error: Optional[ErrorObserver] = None,
    ) -> None:
        self.config = config or TrackerConfig()
        self._persister = persister
        self._clock = clock
        self._on_error = on_error

        self._filter = AccuracyFilter(self.config.max_horizontal_accuracy)
        self._selector = BestSampleSelector(
            self.config.max_horizontal_accuracy,
            timedelta(seconds=self.config.location_validity_secs),
        )
        self._stats_interval = timedelta(seconds=self.config.stats_interval_secs)

        self._state = SessionState.IDLE
        self._init_state()

    def _init_state(self) -> None:
        self._window = RecencyWindow(self.config.window_size)
        self._distance = DistanceAccumulator()
        self._pace = PaceTracker()
        self._track = TrackDownsampler(stride=self.config.downsample_stride)
        self._previous_chosen: Optional[Position] = None
        self._start_time: Optional[datetime] = None
        self._previous_distance_time: Optional[datetime] = None
        self._rejected_count = 0
        self._sensor_error_count = 0

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SessionState.RUNNING

    @property
    def start_time(self) -> Optional[datetime]:
        return self._start_time

    @property
    def cumulative_distance(self) -> float:
        """Distance covered so far in meters."""
        return self._distance.total_meters

    @property
    def current_pace(self) -> float:
        """Speed of the latest stats-updating fix (m/s)."""
        return self._pace.current

    @property
    def average_pace(self) -> float:
        """Mean of all recorded speeds (m/s), 0 before the first update."""
        return self._pace.average

    @property
    def pace_history(self) -> list[float]:
        return list(self._pace.history)

    @property
    def previous_chosen(self) -> Optional[Position]:
        return self._previous_chosen

    @property
    def route(self) -> list[Position]:
        return list(self._track.route)

    @property
    def stored_samples(self) -> list[StoredSample]:
        return list(self._track.stored)

    @property
    def sample_counter(self) -> int:
        return self._track.counter

    @property
    def window(self) -> list[Position]:
        return self._window.to_list()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Reset all statistics and begin accepting fixes."""
        if self.is_running:
            logger.info("Session already running, restarting")

        self._init_state()
        self._start_time = self._clock()
        self._previous_distance_time = self._start_time
        self._state = SessionState.RUNNING
        logger.info("Tracking session started at %s", self._start_time.isoformat())

    def stop(self) -> Optional[RunSummary]:
        """
        Stop accepting fixes and hand the finished run to the persister.

        Returns:
            The run summary, or None if the session was not running
        """
        if not self.is_running:
            logger.debug("stop() ignored, session is idle")
            return None

        self._state = SessionState.IDLE
        now = self._clock()
        started = self._start_time or now
        elapsed = (now - started).total_seconds()

        summary = RunSummary(
            run_date=started,
            distance_meters=self._distance.total_meters,
            average_pace_mps=self._pace.average,
            duration_seconds=max(0, round(elapsed)),
            samples=list(self._track.stored),
        )
        logger.info(
            "Tracking session stopped: %.1fm in %ds, %d stored samples (%d rejected fixes)",
            summary.distance_meters,
            summary.duration_seconds,
            len(summary.samples),
            self._rejected_count,
        )

        if self._persister is not None:
            try:
                self._persister.persist_run(summary)
            except Exception as e:
                logger.error("Failed to persist run: %s", e)

        self._init_state()
        return summary

    # ------------------------------------------------------------------
    # Event entry points
    # ------------------------------------------------------------------

    def on_position(self, position: Position) -> None:
        """Process one fix from the position source."""
        if not self.is_running:
            return

        if not self._filter.accept(position):
            self._rejected_count += 1
            logger.debug("Rejected fix with accuracy %.1f", position.accuracy)
            return

        self._window.push(position)
        can_update_stats = self._window.is_ready(self.config.min_positions_for_stats)

        last = self._previous_distance_time
        if last is not None and position.timestamp - last <= self._stats_interval:
            return
        self._previous_distance_time = position.timestamp

        best = self._selector.select(self._window, position, self._previous_chosen, self._clock())

        if can_update_stats and self._previous_chosen is not None:
            delta = self._distance.add(best, self._previous_chosen)
            self._pace.record(best.speed)
            logger.debug(
                "Moved %.2fm, total %.2fm, pace %.2fm/s",
                delta,
                self._distance.total_meters,
                best.speed,
            )

        self._track.add(best)
        self._previous_chosen = best

    def on_sensor_error(self, error: SensorError) -> None:
        """Report a sensor failure without touching tracking state."""
        self._sensor_error_count += 1
        logger.warning("Location sensor failed: %s", error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as e:
                logger.error("Sensor error observer failed: %s", e)

    def snapshot(self) -> dict:
        """Export live statistics as dictionary."""
        return {
            "state": self._state.value,
            "distance_meters": self._distance.total_meters,
            "distance_km": self._distance.total_km,
            "current_pace_mps": self._pace.current,
            "average_pace_mps": self._pace.average,
            "chosen_count": self._track.counter,
            "stored_count": len(self._track.stored),
            "window_size": len(self._window),
            "rejected_count": self._rejected_count,
            "sensor_errors": self._sensor_error_count,
        }
