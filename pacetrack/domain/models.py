"""pacetrack Domain Models - Pydantic models for run tracking entities."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MeasurementType(str, Enum):
    """Unit preference for displaying distance and pace."""

    METRIC = "metric"  # kilometres
    IMPERIAL = "imperial"  # miles


class Position(BaseModel):
    """One raw fix reported by the location sensor."""

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: float = Field(0.0, ge=0)  # horizontal radius in metres, 0 = unknown
    speed: float = Field(0.0, ge=0)  # m/s
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def to_stored(self) -> StoredSample:
        """Project this fix onto the persisted track sample."""
        return StoredSample(
            speed=self.speed,
            latitude=self.latitude,
            longitude=self.longitude,
            captured_at=self.timestamp,
        )


class StoredSample(BaseModel):
    """Reduced track point kept in a saved run."""

    speed: float = 0.0
    latitude: float
    longitude: float
    captured_at: datetime


class RunSummary(BaseModel):
    """Aggregate result of one tracking session."""

    id: int | None = None
    run_date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    distance_meters: float = Field(0.0, ge=0)
    average_pace_mps: float = Field(0.0, ge=0)
    duration_seconds: int = Field(0, ge=0)
    samples: list[StoredSample] = Field(default_factory=list)

    @property
    def distance_km(self) -> float:
        """Total distance in kilometers."""
        return self.distance_meters / 1000.0


class SensorError(BaseModel):
    """Error reported by the position source, delivered out of band."""

    code: str = "unknown"
    message: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        return f"{self.code}: {self.message}" if self.message else self.code
