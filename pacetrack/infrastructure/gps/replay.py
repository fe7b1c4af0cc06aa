"""
CSV Replay Source
=================

Feeds recorded fixes back through a tracking session.

File format (header required, extra columns ignored):

    timestamp,latitude,longitude,accuracy,speed
    2024-05-01T07:00:00+00:00,41.0082,28.9784,6.0,2.8

`ReplayClock` follows the replayed timestamps so that fix freshness and run
duration are measured in recorded time rather than wall time. The tracking
service advances it as each fix is handled.
"""

from __future__ import annotations

import csv
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import AsyncIterator, Iterator, Optional

from pydantic import ValidationError

from ...domain.models import Position

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("timestamp", "latitude", "longitude")


class ReplayClock:
    """Clock that reports the timestamp of the last replayed fix."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime.now(UTC)

    def advance(self, timestamp: datetime) -> None:
        if timestamp > self._now:
            self._now = timestamp

    def __call__(self) -> datetime:
        return self._now


def _parse_timestamp(value: str) -> datetime:
    value = value.strip()
    try:
        # Epoch seconds
        return datetime.fromtimestamp(float(value), UTC)
    except ValueError:
        pass
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_row(row: dict[str, str], line_no: int) -> Position:
    """Build a Position from one CSV row; raise ValueError naming the line."""
    try:
        return Position(
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            accuracy=float(row.get("accuracy") or 0.0),
            speed=float(row.get("speed") or 0.0),
            timestamp=_parse_timestamp(row["timestamp"]),
        )
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        raise ValueError(f"invalid fix on line {line_no}: {e}") from e


class CsvReplaySource:
    """Read fixes from a CSV file in file order."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def __iter__(self) -> Iterator[Position]:
        with self.path.open("r", encoding="utf-8", newline="") as fp:
            reader = csv.DictReader(fp)
            missing = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
            if missing:
                raise ValueError(f"{self.path}: missing columns {', '.join(missing)}")

            # Line 1 is the header
            for line_no, row in enumerate(reader, start=2):
                yield parse_row(row, line_no)

    def first_timestamp(self) -> Optional[datetime]:
        """Timestamp of the first fix, used to start a ReplayClock."""
        with self.path.open("r", encoding="utf-8", newline="") as fp:
            for row in csv.DictReader(fp):
                return parse_row(row, 2).timestamp
        return None

    async def stream_positions(self) -> AsyncIterator[Position]:
        """Async view of the file, matching the live GPS clients."""
        count = 0
        for position in self:
            count += 1
            yield position
        logger.info("Replayed %d fixes from %s", count, self.path)

    async def stop(self) -> None:
        """Nothing to release; present for parity with the GPS clients."""


def write_positions(path: str | Path, positions: list[Position]) -> int:
    """Write fixes in replay format. Returns number of rows written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as fp:
        writer = csv.writer(fp)
        writer.writerow(["timestamp", "latitude", "longitude", "accuracy", "speed"])
        for p in positions:
            writer.writerow([p.timestamp.isoformat(), p.latitude, p.longitude, p.accuracy, p.speed])
    return len(positions)
