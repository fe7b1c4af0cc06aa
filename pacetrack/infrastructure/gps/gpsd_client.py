"""Async gpsd client with auto-reconnect and out-of-band error reporting."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from datetime import UTC, datetime, timedelta
from typing import AsyncIterator, Callable, Optional

from ...config import GPSConfig
from ...core.distance import METERS_PER_DEGREE
from ...domain.models import Position, SensorError

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[SensorError], None]


def parse_gpsd_time(value: str | None) -> datetime:
    """Parse gpsd ISO-8601 time ("2024-05-01T10:00:00.000Z"), defaulting to now."""
    if not value:
        return datetime.now(UTC)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable gpsd time %r, using now", value)
        return datetime.now(UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def tpv_accuracy(data: dict) -> float:
    """
    Horizontal accuracy in meters from a TPV message.

    Uses `eph` when present, else the larger of `epx`/`epy`. Returns 0
    (unknown) when gpsd reports no error estimate.
    """
    eph = data.get("eph")
    if eph is not None:
        return max(0.0, float(eph))
    errors = [float(data[k]) for k in ("epx", "epy") if data.get(k) is not None]
    if errors:
        return max(0.0, max(errors))
    return 0.0


class AsyncGPSClient:
    """
    Async gpsd client with auto-reconnect.

    Features:
    - Non-blocking async connection
    - Automatic reconnection on disconnect
    - Sensor errors reported through callbacks, never raised
    - Graceful degradation when GPS unavailable

    Usage:
        client = AsyncGPSClient(cfg.gps)
        client.on_error(lambda err: print(err))

        async for position in client.stream_positions():
            session.on_position(position)
    """

    def __init__(self, config: GPSConfig | None = None) -> None:
        self.config = config or GPSConfig()
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._running = False
        self._error_callbacks: list[ErrorCallback] = []
        self._reconnect_attempts = 0

    def on_error(self, callback: ErrorCallback) -> None:
        """Register callback for sensor errors."""
        self._error_callbacks.append(callback)

    def _report_error(self, code: str, message: str) -> None:
        error = SensorError(code=code, message=message)
        for cb in self._error_callbacks:
            try:
                cb(error)
            except Exception as e:
                logger.error("GPS error callback failed: %s", e)

    async def connect(self) -> bool:
        """
        Connect to gpsd daemon.

        Returns:
            True if connected successfully, False otherwise.
        """
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.config.host, self.config.port),
                timeout=self.config.timeout,
            )

            # Enable JSON streaming mode
            self._writer.write(b'?WATCH={"enable":true,"json":true}\n')
            await self._writer.drain()

            self._reconnect_attempts = 0
            logger.info("Connected to gpsd at %s:%d", self.config.host, self.config.port)
            return True

        except asyncio.TimeoutError:
            logger.warning("GPS connection timeout to %s:%d", self.config.host, self.config.port)
            self._report_error("timeout", f"connection timeout to {self.config.host}:{self.config.port}")
            return False

        except ConnectionRefusedError:
            logger.warning("GPS connection refused - is gpsd running?")
            self._report_error("refused", "connection refused")
            return False

        except OSError as e:
            logger.warning("GPS connection failed: %s", e)
            self._report_error("connect", str(e))
            return False

    async def disconnect(self) -> None:
        """Disconnect from gpsd gracefully."""
        if self._writer:
            try:
                self._writer.write(b'?WATCH={"enable":false}\n')
                await self._writer.drain()
                self._writer.close()
                await self._writer.wait_closed()
            except (OSError, ConnectionError) as e:
                logger.debug("GPS disconnect error: %s", e)

        self._reader = None
        self._writer = None

    async def stream_positions(self) -> AsyncIterator[Position]:
        """
        Async generator that yields GPS positions.

        Handles reconnection automatically. Never raises - reports errors
        through the error callbacks and retries until stopped or the
        reconnect budget is spent.
        """
        self._running = True

        while self._running:
            if not self._reader:
                if not await self.connect():
                    self._reconnect_attempts += 1

                    if (
                        self.config.max_reconnect_attempts > 0
                        and self._reconnect_attempts >= self.config.max_reconnect_attempts
                    ):
                        logger.error("GPS max reconnect attempts reached, stopping")
                        break

                    await asyncio.sleep(self.config.reconnect_delay)
                    continue

            try:
                line = await asyncio.wait_for(
                    self._reader.readline(),  # type: ignore[union-attr]
                    timeout=self.config.timeout,
                )

                if not line:
                    raise ConnectionError("GPS connection closed by server")

                data = json.loads(line.decode("utf-8"))
                position = self.handle_message(data)
                if position is not None:
                    yield position

            except asyncio.TimeoutError:
                # Timeout is OK - just means no new data
                logger.debug("GPS read timeout, connection still alive")

            except json.JSONDecodeError as e:
                logger.warning("GPS JSON parse error: %s", e)

            except (ConnectionError, OSError) as e:
                logger.warning("GPS stream error: %s, reconnecting...", e)
                self._report_error("stream", str(e))
                await self.disconnect()
                await asyncio.sleep(self.config.reconnect_delay)

    def handle_message(self, data: dict) -> Optional[Position]:
        """Return a fix for TPV reports; report gpsd ERROR messages. Other classes are ignored."""
        cls = data.get("class")

        if cls == "TPV":
            return self._parse_tpv(data)

        if cls == "ERROR":
            message = str(data.get("message", ""))
            logger.warning("gpsd reported error: %s", message)
            self._report_error("gpsd", message)
        return None

    def _parse_tpv(self, data: dict) -> Optional[Position]:
        """
        Parse TPV (Time-Position-Velocity) message from gpsd.

        Returns:
            Position if a 2D/3D fix with lat/lon is present, None otherwise
        """
        try:
            if "lat" not in data or "lon" not in data:
                return None

            # Mode: 0=unknown, 1=no fix, 2=2D, 3=3D
            if data.get("mode", 0) < 2:
                return None

            speed = data.get("speed")
            return Position(
                latitude=float(data["lat"]),
                longitude=float(data["lon"]),
                accuracy=tpv_accuracy(data),
                speed=max(0.0, float(speed)) if speed is not None else 0.0,
                timestamp=parse_gpsd_time(data.get("time")),
            )

        except (KeyError, ValueError, TypeError) as e:
            logger.error("TPV parse error: %s - data: %s", e, data)
            return None

    async def stop(self) -> None:
        """Stop streaming and disconnect."""
        self._running = False
        await self.disconnect()


class MockGPSClient(AsyncGPSClient):
    """
    Mock GPS client for testing and simulation.

    Walks a circle of `radius_m` meters around the start point, covering
    `speed_mps * interval` meters of arc between fixes.
    """

    def __init__(
        self,
        start_lat: float = 41.0082,
        start_lon: float = 28.9784,
        speed_mps: float = 3.0,
        accuracy: float = 8.0,
        interval: float = 1.0,
        radius_m: float = 100.0,
    ) -> None:
        super().__init__()
        self._start_lat = start_lat
        self._start_lon = start_lon
        self._speed = speed_mps
        self._accuracy = accuracy
        self._interval = interval
        self._radius_m = radius_m
        # Radians of arc per fix
        self._step_angle = speed_mps * interval / radius_m
        self._step = 0

    @classmethod
    def from_config(cls, config: GPSConfig) -> MockGPSClient:
        return cls(
            start_lat=config.mock_lat,
            start_lon=config.mock_lon,
            speed_mps=config.mock_speed,
            accuracy=config.mock_accuracy,
        )

    async def connect(self) -> bool:
        """Mock always connects."""
        logger.info("Mock GPS connected (simulated)")
        return True

    def next_position(self, timestamp: datetime | None = None) -> Position:
        """Generate the next fix of the walk."""
        angle = self._step * self._step_angle
        radius_deg = self._radius_m / METERS_PER_DEGREE
        # Degrees of longitude shrink with latitude
        lon_scale = math.cos(math.radians(self._start_lat))
        position = Position(
            latitude=self._start_lat + radius_deg * math.sin(angle),
            longitude=self._start_lon + radius_deg * math.cos(angle) / lon_scale,
            accuracy=self._accuracy,
            speed=self._speed,
            timestamp=timestamp or datetime.now(UTC),
        )
        self._step += 1
        return position

    async def stream_positions(self) -> AsyncIterator[Position]:
        """Generate fake positions in a walking pattern."""
        self._running = True
        await self.connect()
        started = datetime.now(UTC)

        while self._running:
            yield self.next_position(started + timedelta(seconds=self._step * self._interval))
            await asyncio.sleep(self._interval)
