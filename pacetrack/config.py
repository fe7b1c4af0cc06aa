from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .domain.models import MeasurementType

# Defaults for the tracking engine
POSITION_HISTORY_SIZE = 5
MIN_POSITIONS_FOR_STATS = 3
MAX_HORIZONTAL_ACCURACY = 40.0
STATS_INTERVAL_SECS = 1.0
LOCATION_VALIDITY_SECS = 1.0
DOWNSAMPLE_STRIDE = 5

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class TrackerConfig(BaseModel):
    """Thresholds for position filtering and stats recomputation."""

    window_size: int = Field(POSITION_HISTORY_SIZE, ge=1, le=100)
    min_positions_for_stats: int = Field(MIN_POSITIONS_FOR_STATS, ge=1)
    max_horizontal_accuracy: float = Field(MAX_HORIZONTAL_ACCURACY, gt=0)
    stats_interval_secs: float = Field(STATS_INTERVAL_SECS, ge=0)
    location_validity_secs: float = Field(LOCATION_VALIDITY_SECS, ge=0)
    downsample_stride: int = Field(DOWNSAMPLE_STRIDE, ge=1)

    @model_validator(mode="after")
    def _min_positions_fit_window(self) -> TrackerConfig:
        if self.min_positions_for_stats > self.window_size:
            raise ValueError("min_positions_for_stats must be <= window_size")
        return self


class GPSConfig(BaseModel):
    """GPS daemon configuration."""

    host: str = Field("localhost")
    port: int = Field(2947, ge=1, le=65535)
    timeout: float = Field(10.0, ge=1.0)
    reconnect_delay: float = Field(5.0, ge=0.0)
    max_reconnect_attempts: int = Field(0, ge=0)  # 0 = infinite
    mock_mode: bool = Field(False)
    mock_lat: float = Field(41.0082, ge=-90, le=90)
    mock_lon: float = Field(28.9784, ge=-180, le=180)
    mock_speed: float = Field(3.0, ge=0)
    mock_accuracy: float = Field(8.0, ge=0)

    @field_validator("host")
    @classmethod
    def _validate_host(cls, value: str) -> str:
        if not value or any(c.isspace() for c in value):
            raise ValueError("host must be a valid hostname or IP")
        return value


class StorageConfig(BaseModel):
    db_path: Path = Field(Path("data/runs.db"))

    @field_validator("db_path")
    @classmethod
    def _expand_db_path(cls, value: Path) -> Path:
        return value.expanduser()


class LoggingConfig(BaseModel):
    level: str = Field("INFO")
    file: Path | None = Field(None)

    @field_validator("level")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {value}")
        return level


class DisplayConfig(BaseModel):
    units: MeasurementType = Field(MeasurementType.METRIC)


class PacetrackConfig(BaseModel):
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    gps: GPSConfig = Field(default_factory=GPSConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    display: DisplayConfig = Field(default_factory=DisplayConfig)


def load_config(path: Path) -> PacetrackConfig:
    with Path(path).expanduser().open("r", encoding="utf-8") as fp:
        raw = yaml.safe_load(fp) or {}
    try:
        return PacetrackConfig.model_validate(raw)
    except ValidationError as exc:  # pragma: no cover - formatting
        raise ValueError(str(exc)) from exc


def resolve_config_path(cli_path: Path | None) -> Path:
    """Resolve config path by priority: CLI, env, user config dir, repo configs."""
    candidates: list[Path] = []
    if cli_path:
        p = Path(cli_path).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    env = os.environ.get("PACETRACK_CONFIG")
    if env:
        p = Path(env).expanduser()
        if p.exists():
            return p.resolve()
        candidates.append(p)
    for p in [Path("~/.config/pacetrack/pacetrack.yml").expanduser(), Path("configs/pacetrack.yml")]:
        if p.exists():
            return p.resolve()
        candidates.append(p)
    # Fallback to first candidate even if not exists to surface errors consistently
    return candidates[0] if candidates else Path("configs/pacetrack.yml").resolve()


def configure_logging(cfg: LoggingConfig) -> None:
    """Apply root logging configuration once per process."""
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if cfg.file is not None:
        log_file = cfg.file.expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, cfg.level),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        handlers=handlers,
        force=True,
    )
