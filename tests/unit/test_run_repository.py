"""
Unit Tests for Run Repository
=============================

Tests SQLite persistence of finished runs.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from pacetrack.domain.models import RunSummary, StoredSample
from pacetrack.infrastructure.database.repository import RunRepository

T0 = datetime(2024, 5, 1, 7, 0, 0, tzinfo=UTC)


def make_summary(day: int = 0, samples: int = 3, distance: float = 5000.0) -> RunSummary:
    return RunSummary(
        run_date=T0 + timedelta(days=day),
        distance_meters=distance,
        average_pace_mps=2.9,
        duration_seconds=1800,
        samples=[
            StoredSample(
                speed=2.5 + i,
                latitude=41.0 + i * 1e-3,
                longitude=29.0,
                captured_at=T0 + timedelta(days=day, seconds=10 * i),
            )
            for i in range(samples)
        ],
    )


@pytest.fixture
def repo(tmp_path: Path) -> RunRepository:
    return RunRepository(tmp_path / "db" / "runs.db")


class TestRunRepository:
    """Tests for RunRepository."""

    def test_creates_database_file(self, tmp_path: Path):
        RunRepository(tmp_path / "nested" / "runs.db")
        assert (tmp_path / "nested" / "runs.db").exists()

    def test_persist_and_get_run(self, repo: RunRepository):
        summary = make_summary()
        run_id = repo.persist_run(summary)
        assert run_id > 0

        loaded = repo.get_run(run_id)
        assert loaded is not None
        assert loaded.id == run_id
        assert loaded.run_date == summary.run_date
        assert loaded.distance_meters == summary.distance_meters
        assert loaded.duration_seconds == 1800
        assert loaded.samples == summary.samples

    def test_get_missing_run(self, repo: RunRepository):
        assert repo.get_run(999) is None

    def test_run_without_samples(self, repo: RunRepository):
        run_id = repo.persist_run(make_summary(samples=0))
        loaded = repo.get_run(run_id)
        assert loaded is not None
        assert loaded.samples == []

    def test_list_runs_newest_first(self, repo: RunRepository):
        older = repo.persist_run(make_summary(day=0, samples=2))
        newer = repo.persist_run(make_summary(day=3, samples=4))

        runs = repo.list_runs()
        assert [r["id"] for r in runs] == [newer, older]
        assert [r["sample_count"] for r in runs] == [4, 2]

    def test_list_runs_pagination(self, repo: RunRepository):
        for day in range(5):
            repo.persist_run(make_summary(day=day))
        assert len(repo.list_runs(limit=2)) == 2
        assert len(repo.list_runs(limit=10, offset=4)) == 1

    def test_delete_run_cascades(self, repo: RunRepository):
        run_id = repo.persist_run(make_summary())
        assert repo.delete_run(run_id) is True
        assert repo.get_run(run_id) is None
        assert repo.delete_run(run_id) is False

        with repo._get_connection() as conn:
            left = conn.execute("SELECT COUNT(*) FROM run_samples").fetchone()[0]
        assert left == 0

    def test_totals(self, repo: RunRepository):
        assert repo.get_totals() == {"runs_total": 0, "distance_meters": 0, "duration_seconds": 0}
        repo.persist_run(make_summary(distance=5000.0))
        repo.persist_run(make_summary(day=1, distance=2500.0))

        totals = repo.get_totals()
        assert totals["runs_total"] == 2
        assert totals["distance_meters"] == pytest.approx(7500.0)
        assert totals["duration_seconds"] == 3600

    def test_export_gpx(self, repo: RunRepository, tmp_path: Path):
        run_id = repo.persist_run(make_summary(samples=3))
        out = tmp_path / "out" / "run.gpx"

        assert repo.export_gpx(run_id, out) == 3
        content = out.read_text(encoding="utf-8")
        assert content.count("<trkpt") == 3
        assert 'lat="41.0"' in content

    def test_export_gpx_missing_run(self, repo: RunRepository, tmp_path: Path):
        assert repo.export_gpx(42, tmp_path / "none.gpx") == 0
        assert not (tmp_path / "none.gpx").exists()
