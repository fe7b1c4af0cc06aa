from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from pacetrack.domain.models import Position
from pacetrack.infrastructure.gps.replay import CsvReplaySource, ReplayClock, write_positions

T0 = datetime(2024, 5, 1, 7, 0, 0, tzinfo=UTC)


def test_reads_rows_in_order(tmp_path: Path):
    csv_path = tmp_path / "run.csv"
    csv_path.write_text(
        "timestamp,latitude,longitude,accuracy,speed\n"
        "2024-05-01T07:00:02Z,41.0,29.0,6.5,2.8\n"
        "1714546804,41.0001,29.0,8,3.1\n",
        encoding="utf-8",
    )
    fixes = list(CsvReplaySource(csv_path))

    assert len(fixes) == 2
    assert fixes[0].timestamp == T0 + timedelta(seconds=2)
    assert fixes[0].accuracy == 6.5
    assert fixes[1].timestamp == T0 + timedelta(seconds=4)
    assert fixes[1].speed == 3.1


def test_missing_accuracy_means_unknown(tmp_path: Path):
    csv_path = tmp_path / "run.csv"
    csv_path.write_text("timestamp,latitude,longitude\n2024-05-01T07:00:00,41.0,29.0\n", encoding="utf-8")
    (only,) = list(CsvReplaySource(csv_path))
    assert only.accuracy == 0.0
    assert only.timestamp.tzinfo is not None


def test_missing_columns_raise(tmp_path: Path):
    csv_path = tmp_path / "run.csv"
    csv_path.write_text("time,lat,lon\n1,2,3\n", encoding="utf-8")
    with pytest.raises(ValueError, match="missing columns"):
        list(CsvReplaySource(csv_path))


def test_bad_row_names_line(tmp_path: Path):
    csv_path = tmp_path / "run.csv"
    csv_path.write_text(
        "timestamp,latitude,longitude\n2024-05-01T07:00:00Z,41.0,29.0\n2024-05-01T07:00:02Z,95.0,29.0\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="line 3"):
        list(CsvReplaySource(csv_path))


def test_first_timestamp_starts_clock(tmp_path: Path):
    csv_path = tmp_path / "run.csv"
    fixes = [
        Position(latitude=41.0, longitude=29.0, accuracy=5, timestamp=T0 + timedelta(seconds=s))
        for s in (0, 2, 4)
    ]
    write_positions(csv_path, fixes)

    source = CsvReplaySource(csv_path)
    assert source.first_timestamp() == T0

    clock = ReplayClock(source.first_timestamp())
    list(source)
    # Reading the file does not move recorded time
    assert clock() == T0


def test_first_timestamp_of_empty_file(tmp_path: Path):
    csv_path = tmp_path / "empty.csv"
    csv_path.write_text("timestamp,latitude,longitude\n", encoding="utf-8")
    assert CsvReplaySource(csv_path).first_timestamp() is None


def test_clock_never_goes_backwards():
    clock = ReplayClock(T0)
    clock.advance(T0 + timedelta(seconds=5))
    clock.advance(T0 + timedelta(seconds=1))
    assert clock() == T0 + timedelta(seconds=5)


def test_round_trip_file(tmp_path: Path):
    fixes = [
        Position(latitude=41.0 + i * 1e-4, longitude=29.0, accuracy=5, speed=2.0, timestamp=T0 + timedelta(seconds=2 * i))
        for i in range(3)
    ]
    assert write_positions(tmp_path / "out" / "run.csv", fixes) == 3
    assert list(CsvReplaySource(tmp_path / "out" / "run.csv")) == fixes
