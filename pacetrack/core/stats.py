"""Pace statistics and track downsampling for a tracking session."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..config import DOWNSAMPLE_STRIDE
from ..domain.models import Position, StoredSample


@dataclass
class PaceTracker:
    """
    Record the speed of each stats-updating fix.

    Current pace is the speed of the latest recorded fix; average pace is the
    arithmetic mean of all recorded speeds (m/s).
    """

    current: float = 0.0
    history: list[float] = field(default_factory=list)

    def record(self, speed: float) -> None:
        self.history.append(speed)
        self.current = speed

    @property
    def average(self) -> float:
        if not self.history:
            return 0.0
        return sum(self.history) / len(self.history)

    def reset(self) -> None:
        self.current = 0.0
        self.history.clear()


@dataclass
class TrackDownsampler:
    """
    Keep every chosen fix in the route, but store only the first one and
    every `stride`-th one after that.
    """

    stride: int = DOWNSAMPLE_STRIDE
    counter: int = 0
    route: list[Position] = field(default_factory=list)
    stored: list[StoredSample] = field(default_factory=list)

    def add(self, position: Position) -> bool:
        """
        Register a chosen fix.

        Returns:
            True if a stored sample was recorded for it
        """
        self.route.append(position)
        self.counter += 1

        if not self.stored or self.counter % self.stride == 0:
            self.stored.append(position.to_stored())
            return True
        return False

    def reset(self) -> None:
        self.counter = 0
        self.route.clear()
        self.stored.clear()
