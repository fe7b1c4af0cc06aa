"""
Position Filtering
==================

Decides which raw fixes are trusted and which recent fix is used for
statistics on each processing cycle.

Usage:
    accuracy_filter = AccuracyFilter()
    window = RecencyWindow(capacity=5)
    selector = BestSampleSelector()

    if accuracy_filter.accept(position):
        window.push(position)
        best = selector.select(window, position, previous, now)
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterator, Optional

from ..config import LOCATION_VALIDITY_SECS, MAX_HORIZONTAL_ACCURACY, POSITION_HISTORY_SIZE
from ..domain.models import Position

logger = logging.getLogger(__name__)


class AccuracyFilter:
    """Reject fixes with unknown (0) or too coarse horizontal accuracy."""

    def __init__(self, max_horizontal_accuracy: float = MAX_HORIZONTAL_ACCURACY) -> None:
        self.max_horizontal_accuracy = max_horizontal_accuracy

    def accept(self, position: Position) -> bool:
        """Return True if the fix is accurate enough to be used."""
        # 0 means the sensor could not estimate accuracy, not a perfect fix
        if position.accuracy == 0.0:
            return False
        return position.accuracy <= self.max_horizontal_accuracy


class RecencyWindow:
    """
    Fixed-capacity ring buffer of the most recent accepted fixes.

    Once full, each push overwrites the oldest slot. Iteration yields
    entries oldest first.
    """

    def __init__(self, capacity: int = POSITION_HISTORY_SIZE) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._slots: list[Optional[Position]] = [None] * capacity
        self._head = 0  # index of the oldest entry
        self._size = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    def push(self, position: Position) -> Optional[Position]:
        """
        Append a fix, evicting the oldest one when full.

        Returns:
            The evicted fix, or None if nothing was evicted
        """
        if self._size < self._capacity:
            self._slots[(self._head + self._size) % self._capacity] = position
            self._size += 1
            return None

        evicted = self._slots[self._head]
        self._slots[self._head] = position
        self._head = (self._head + 1) % self._capacity
        return evicted

    def is_ready(self, min_count: int) -> bool:
        """True once the window holds at least `min_count` fixes."""
        return self._size >= min_count

    def clear(self) -> None:
        self._slots = [None] * self._capacity
        self._head = 0
        self._size = 0

    def newest(self) -> Optional[Position]:
        if self._size == 0:
            return None
        return self._slots[(self._head + self._size - 1) % self._capacity]

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[Position]:
        for offset in range(self._size):
            position = self._slots[(self._head + offset) % self._capacity]
            if position is not None:
                yield position

    def to_list(self) -> list[Position]:
        return list(self)


class BestSampleSelector:
    """
    Pick the most accurate fresh fix from the window.

    A window entry qualifies when it is no older than the validity interval,
    its accuracy is strictly better than the best seen so far (starting at
    the accuracy threshold) and it differs from the previously chosen fix.
    With no qualifying entry the triggering fix itself is used.
    """

    def __init__(
        self,
        max_horizontal_accuracy: float = MAX_HORIZONTAL_ACCURACY,
        validity_interval: timedelta = timedelta(seconds=LOCATION_VALIDITY_SECS),
    ) -> None:
        self.max_horizontal_accuracy = max_horizontal_accuracy
        self.validity_interval = validity_interval

    def select(
        self,
        window: RecencyWindow,
        trigger: Position,
        previous: Optional[Position],
        now: datetime,
    ) -> Position:
        best: Optional[Position] = None
        best_accuracy = self.max_horizontal_accuracy

        for position in window:
            if now - position.timestamp > self.validity_interval:
                continue
            if position.accuracy >= best_accuracy:
                continue
            if previous is not None and position == previous:
                continue
            best_accuracy = position.accuracy
            best = position

        if best is None:
            logger.debug("No fresh fix in window, using triggering fix")
            return trigger
        return best
