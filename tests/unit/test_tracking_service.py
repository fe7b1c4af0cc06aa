"""
Tracking Service Unit Tests
===========================

Runs whole sessions through the event bus with replayed and simulated fixes.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import AsyncIterator

import pytest

from pacetrack.apps.tracker.service import TrackingService
from pacetrack.config import PacetrackConfig, TrackerConfig
from pacetrack.core.events import Event, EventType
from pacetrack.core.session import TrackingSession
from pacetrack.domain.models import Position, SensorError
from pacetrack.infrastructure.database.repository import RunRepository
from pacetrack.infrastructure.gps.gpsd_client import MockGPSClient
from pacetrack.infrastructure.gps.replay import CsvReplaySource, ReplayClock, write_positions

pytestmark = pytest.mark.asyncio

T0 = datetime(2024, 5, 1, 7, 0, 0, tzinfo=UTC)


def recorded_walk(count: int) -> list[Position]:
    return [
        Position(
            latitude=41.0 + i * 1e-4,
            longitude=29.0,
            accuracy=5.0,
            speed=2.5,
            timestamp=T0 + timedelta(seconds=2 * i),
        )
        for i in range(count)
    ]


def mixed_accuracy_walk() -> list[Position]:
    """The precise fix at 4.8s is throttled, then wins over the coarse trigger at 5.3s."""
    return [
        Position(latitude=41.0000, longitude=29.0, accuracy=20.0, speed=2.0, timestamp=T0 + timedelta(seconds=2)),
        Position(latitude=41.0001, longitude=29.0, accuracy=20.0, speed=2.1, timestamp=T0 + timedelta(seconds=4)),
        Position(latitude=41.0002, longitude=29.0, accuracy=2.0, speed=2.2, timestamp=T0 + timedelta(seconds=4.8)),
        Position(latitude=41.0003, longitude=29.001, accuracy=30.0, speed=2.3, timestamp=T0 + timedelta(seconds=5.3)),
        Position(latitude=41.0004, longitude=29.0, accuracy=30.0, speed=2.4, timestamp=T0 + timedelta(seconds=10)),
    ]


def replay_csv(tmp_path: Path, fixes: list[Position]) -> CsvReplaySource:
    csv_path = tmp_path / "walk.csv"
    write_positions(csv_path, fixes)
    return CsvReplaySource(csv_path)


class Recorder:
    def __init__(self) -> None:
        self.events: list[Event] = []

    async def __call__(self, event: Event) -> None:
        self.events.append(event)

    def of(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.type == event_type]


def record_all(service: TrackingService) -> Recorder:
    recorder = Recorder()
    for event_type in EventType:
        service.bus.subscribe(event_type, recorder, priority=200)
    return recorder


class ErroringSource:
    """Yields a few fixes and reports a sensor error midway."""

    def __init__(self, fixes: list[Position]) -> None:
        self._fixes = fixes
        self._callbacks = []
        self.stopped = False

    def on_error(self, callback) -> None:
        self._callbacks.append(callback)

    async def stream_positions(self) -> AsyncIterator[Position]:
        for i, fix in enumerate(self._fixes):
            if i == 2:
                for cb in self._callbacks:
                    cb(SensorError(code="gpsd", message="signal lost"))
            yield fix

    async def stop(self) -> None:
        self.stopped = True


class TestReplayRun:
    """Replay a recorded CSV through the full service."""

    async def test_replay_persists_run(self, tmp_path: Path):
        source = replay_csv(tmp_path, recorded_walk(12))
        clock = ReplayClock(source.first_timestamp())
        repo = RunRepository(tmp_path / "runs.db")

        service = TrackingService(persister=repo, clock=clock)
        summary = await service.run(source)

        assert summary is not None
        assert summary.distance_meters > 0
        assert summary.duration_seconds == 22
        assert summary.average_pace_mps == pytest.approx(2.5)
        assert service.positions_received == 12
        assert service.last_run_id == 1

        saved = repo.get_run(1)
        assert saved is not None
        assert saved.distance_meters == summary.distance_meters
        assert len(saved.samples) == len(summary.samples)

    async def test_clock_follows_handled_fixes(self, tmp_path: Path):
        source = replay_csv(tmp_path, recorded_walk(4))
        clock = ReplayClock(T0)
        service = TrackingService(clock=clock)
        seen: list[datetime] = []

        async def on_stats(event: Event) -> None:
            seen.append(clock())

        service.bus.subscribe(EventType.STATS_UPDATED, on_stats)
        await service.run(source)

        assert seen == [f.timestamp for f in recorded_walk(4)]

    async def test_best_fix_chosen_like_live_tracking(self, tmp_path: Path):
        fixes = mixed_accuracy_walk()
        cfg = PacetrackConfig(tracker=TrackerConfig(downsample_stride=1))

        direct_clock = ReplayClock(T0)
        direct = TrackingSession(cfg.tracker, clock=direct_clock)
        direct.start()
        for fix in fixes:
            direct_clock.advance(fix.timestamp)
            direct.on_position(fix)
        expected = direct.stop()

        service = TrackingService(cfg, clock=ReplayClock(T0))
        summary = await service.run(replay_csv(tmp_path, fixes))

        # The precise fix is stored in place of the coarse trigger
        assert [s.latitude for s in expected.samples] == [41.0000, 41.0001, 41.0002, 41.0004]
        assert summary.samples == expected.samples
        assert summary.distance_meters == expected.distance_meters
        assert summary.average_pace_mps == expected.average_pace_mps

    async def test_events_emitted(self, tmp_path: Path):
        source = replay_csv(tmp_path, recorded_walk(6))
        service = TrackingService(
            persister=RunRepository(tmp_path / "runs.db"),
            clock=ReplayClock(source.first_timestamp()),
        )
        recorder = record_all(service)
        await service.run(source)

        assert len(recorder.of(EventType.SESSION_STARTED)) == 1
        assert len(recorder.of(EventType.POSITION_UPDATE)) == 6
        assert len(recorder.of(EventType.STATS_UPDATED)) == 6
        assert [e.data for e in recorder.of(EventType.RUN_PERSISTED)] == [1]
        (stopped,) = recorder.of(EventType.SESSION_STOPPED)
        assert stopped.data.duration_seconds == 10
        assert recorder.events[-1] is stopped

    async def test_stats_snapshot_per_fix(self, tmp_path: Path):
        source = replay_csv(tmp_path, recorded_walk(5))
        service = TrackingService(clock=ReplayClock(T0))
        recorder = record_all(service)
        await service.run(source)

        counts = [e.data["chosen_count"] for e in recorder.of(EventType.STATS_UPDATED)]
        assert counts == [0, 1, 2, 3, 4]
        distances = [e.data["distance_meters"] for e in recorder.of(EventType.STATS_UPDATED)]
        assert distances == sorted(distances)

    async def test_without_persister(self, tmp_path: Path):
        source = replay_csv(tmp_path, recorded_walk(4))
        service = TrackingService(clock=ReplayClock(source.first_timestamp()))
        recorder = record_all(service)
        summary = await service.run(source)

        assert summary is not None
        assert service.last_run_id is None
        assert recorder.of(EventType.RUN_PERSISTED) == []

    async def test_bad_row_stops_run(self, tmp_path: Path):
        csv_path = tmp_path / "broken.csv"
        csv_path.write_text(
            "timestamp,latitude,longitude,accuracy,speed\n"
            "2024-05-01T07:00:00Z,41.0,29.0,5,2.5\n"
            "2024-05-01T07:00:02Z,not-a-number,29.0,5,2.5\n",
            encoding="utf-8",
        )
        service = TrackingService()
        with pytest.raises(ValueError, match="line 3"):
            await service.run(CsvReplaySource(csv_path))
        assert not service.bus.is_running


class TestSensorErrors:
    """Errors reported by the source reach the session."""

    async def test_errors_forwarded(self):
        seen: list[SensorError] = []
        source = ErroringSource(recorded_walk(4))

        service = TrackingService(clock=ReplayClock(T0), on_error=seen.append)
        recorder = record_all(service)
        summary = await service.run(source)

        assert source.stopped
        assert summary is not None
        assert [e.code for e in seen] == ["gpsd"]
        assert [e.data.message for e in recorder.of(EventType.SENSOR_ERROR)] == ["signal lost"]


class TestMockRun:
    """Simulated walker through the service."""

    async def test_max_positions(self):
        service = TrackingService()
        summary = await service.run(MockGPSClient(interval=0), max_positions=10)

        assert service.positions_received == 10
        assert summary is not None
        assert not service.session.is_running

    async def test_duration_limit(self):
        service = TrackingService()
        summary = await service.run(MockGPSClient(interval=0.01), duration=0.1)

        assert summary is not None
        assert service.positions_received > 0
        assert not service.bus.is_running
