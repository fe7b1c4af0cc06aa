"""pacetrack Domain Layer - Core value types for a tracked run."""

from .models import MeasurementType, Position, RunSummary, SensorError, StoredSample

__all__ = [
    "MeasurementType",
    "Position",
    "RunSummary",
    "SensorError",
    "StoredSample",
]
