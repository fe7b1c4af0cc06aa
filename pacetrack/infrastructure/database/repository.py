"""Run history data access repository."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator, Optional

from ...domain.models import RunSummary, StoredSample
from .schema import RUNS_SCHEMA

logger = logging.getLogger(__name__)


class RunRepository:
    """
    Repository for finished runs and their stored tracks.

    Opens a short-lived SQLite connection per operation. Satisfies the
    session's RunPersister protocol through persist_run().
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.executescript(RUNS_SCHEMA)
            conn.commit()
        logger.info("Run database initialized: %s", self.db_path)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    def persist_run(self, summary: RunSummary) -> int:
        """
        Save a run and its stored samples in one transaction.

        Returns:
            Run database ID
        """
        now = datetime.now(UTC).isoformat()

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO runs (run_date, distance_meters, average_pace_mps, duration_seconds, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    summary.run_date.isoformat(),
                    summary.distance_meters,
                    summary.average_pace_mps,
                    summary.duration_seconds,
                    now,
                ),
            )
            run_id = cursor.lastrowid or 0

            cursor.executemany(
                """
                INSERT INTO run_samples (run_id, seq, speed, latitude, longitude, captured_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (run_id, seq, s.speed, s.latitude, s.longitude, s.captured_at.isoformat())
                    for seq, s in enumerate(summary.samples)
                ],
            )
            conn.commit()

        logger.info(
            "Saved run %d: %.1fm, %ds, %d samples",
            run_id,
            summary.distance_meters,
            summary.duration_seconds,
            len(summary.samples),
        )
        return run_id

    @staticmethod
    def _row_to_summary(row: sqlite3.Row, samples: list[StoredSample]) -> RunSummary:
        return RunSummary(
            id=row["id"],
            run_date=datetime.fromisoformat(row["run_date"]),
            distance_meters=row["distance_meters"],
            average_pace_mps=row["average_pace_mps"],
            duration_seconds=row["duration_seconds"],
            samples=samples,
        )

    def get_run(self, run_id: int) -> Optional[RunSummary]:
        """Get a run with its stored track."""
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM runs WHERE id = ?", (run_id,)).fetchone()
            if row is None:
                return None
            sample_rows = conn.execute(
                """
                SELECT speed, latitude, longitude, captured_at
                FROM run_samples
                WHERE run_id = ?
                ORDER BY seq
                """,
                (run_id,),
            ).fetchall()

        samples = [
            StoredSample(
                speed=s["speed"],
                latitude=s["latitude"],
                longitude=s["longitude"],
                captured_at=datetime.fromisoformat(s["captured_at"]),
            )
            for s in sample_rows
        ]
        return self._row_to_summary(row, samples)

    def list_runs(self, limit: int = 100, offset: int = 0) -> list[dict]:
        """List runs, newest first, with their stored sample counts."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT r.*, COUNT(s.id) AS sample_count
                FROM runs r
                LEFT JOIN run_samples s ON s.run_id = r.id
                GROUP BY r.id
                ORDER BY r.run_date DESC, r.id DESC
                LIMIT ? OFFSET ?
                """,
                (limit, offset),
            ).fetchall()
            return [dict(row) for row in rows]

    def delete_run(self, run_id: int) -> bool:
        """Delete a run and its samples. Returns True if it existed."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM runs WHERE id = ?", (run_id,))
            conn.commit()
            deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Deleted run %d", run_id)
        return deleted

    def get_totals(self) -> dict:
        """Get lifetime totals across all runs."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT COUNT(*) AS runs_total,
                       COALESCE(SUM(distance_meters), 0) AS distance_meters,
                       COALESCE(SUM(duration_seconds), 0) AS duration_seconds
                FROM runs
                """
            ).fetchone()
            return dict(row)

    def export_gpx(self, run_id: int, output_path: str | Path) -> int:
        """
        Export a run's stored track to GPX format.

        Returns:
            Number of track points exported
        """
        output_path = Path(output_path)
        run = self.get_run(run_id)
        if run is None or not run.samples:
            return 0

        gpx_content = f"""<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="pacetrack">
  <trk>
    <name>Run {run_id} - {run.run_date.date().isoformat()}</name>
    <trkseg>
"""
        for s in run.samples:
            gpx_content += f"""      <trkpt lat="{s.latitude}" lon="{s.longitude}">
        <time>{s.captured_at.isoformat()}</time>
      </trkpt>
"""
        gpx_content += """    </trkseg>
  </trk>
</gpx>
"""
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(gpx_content, encoding="utf-8")
        logger.info("Exported %d track points to GPX: %s", len(run.samples), output_path)
        return len(run.samples)
