"""
Run Distance
============

Great-circle distance between fixes using the spherical law of cosines,
scaled with the nautical-mile-per-degree approximation:

    meters = degrees(acos(...)) * 60 * 1.1515 * 1609.344

Usage:
    accumulator = DistanceAccumulator()
    delta = accumulator.add(current, previous)
    print(f"Moved {delta:.1f}m, total: {accumulator.total_km:.2f}km")
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..domain.models import Position

MINUTES_PER_DEGREE = 60.0
STATUTE_MILES_PER_NAUTICAL_MILE = 1.1515
METERS_PER_STATUTE_MILE = 1609.344
METERS_PER_DEGREE = MINUTES_PER_DEGREE * STATUTE_MILES_PER_NAUTICAL_MILE * METERS_PER_STATUTE_MILE


def distance_between(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Distance in meters between two coordinates (degrees).

    Returns 0.0 for identical coordinates and whenever rounding pushes the
    acos argument outside [-1, 1].
    """
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    theta = lon1 - lon2
    cosine = math.sin(math.radians(lat1)) * math.sin(math.radians(lat2)) + math.cos(
        math.radians(lat1)
    ) * math.cos(math.radians(lat2)) * math.cos(math.radians(theta))

    # math.acos raises instead of returning NaN outside its domain; NaN fails the check too
    if not -1.0 <= cosine <= 1.0:
        return 0.0
    angle = math.acos(cosine)

    return math.degrees(angle) * METERS_PER_DEGREE


def distance_in_meters(recent: Position, previous: Position) -> float:
    """Distance in meters between two fixes."""
    return distance_between(recent.latitude, recent.longitude, previous.latitude, previous.longitude)


@dataclass
class DistanceAccumulator:
    """Running total of the distance between consecutively chosen fixes."""

    total_meters: float = 0.0
    segments: int = 0

    def add(self, recent: Position, previous: Position) -> float:
        """
        Add the leg from `previous` to `recent`.

        Returns:
            Distance of the leg in meters
        """
        delta = distance_in_meters(recent, previous)
        self.total_meters += delta
        self.segments += 1
        return delta

    @property
    def total_km(self) -> float:
        """Total distance in kilometers."""
        return self.total_meters / 1000.0

    def reset(self) -> None:
        self.total_meters = 0.0
        self.segments = 0
