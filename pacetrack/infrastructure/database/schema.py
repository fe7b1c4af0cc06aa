"""SQLite database schema for saved runs."""

RUNS_SCHEMA = """
-- ============================================
-- pacetrack Run Database Schema
-- Version: 1.0.0
-- ============================================

-- One row per finished tracking session
CREATE TABLE IF NOT EXISTS runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_date TEXT NOT NULL,
    distance_meters REAL NOT NULL DEFAULT 0,
    average_pace_mps REAL NOT NULL DEFAULT 0,
    duration_seconds INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

-- Downsampled track of a run, in capture order
CREATE TABLE IF NOT EXISTS run_samples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id INTEGER NOT NULL,
    seq INTEGER NOT NULL,
    speed REAL NOT NULL DEFAULT 0,
    latitude REAL NOT NULL,
    longitude REAL NOT NULL,
    captured_at TEXT NOT NULL,

    FOREIGN KEY (run_id) REFERENCES runs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_run_samples_run ON run_samples(run_id, seq);
CREATE INDEX IF NOT EXISTS idx_runs_date ON runs(run_date);
"""
