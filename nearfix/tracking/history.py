"""Bounded, time-ordered history of accepted fixes."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator

from nearfix.tracking.fixes import PositionFix


class HistoryBuffer:
    """FIFO ring buffer of accepted fixes for the local subject.

    Entries are kept in non-decreasing timestamp order; the oldest entry is
    evicted once capacity is reached.
    """

    def __init__(self, capacity: int = 12) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._fixes: deque[PositionFix] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._fixes.maxlen or 0

    def append(self, fix: PositionFix) -> PositionFix | None:
        """Add a fix. Returns the evicted entry when the buffer was full."""
        last = self.latest
        if last is not None and fix.timestamp < last.timestamp:
            raise ValueError("fix is older than the latest buffered entry")
        evicted = self._fixes[0] if len(self._fixes) == self.capacity else None
        self._fixes.append(fix)
        return evicted

    @property
    def latest(self) -> PositionFix | None:
        return self._fixes[-1] if self._fixes else None

    def snapshot(self) -> list[PositionFix]:
        return list(self._fixes)

    def clear(self) -> None:
        self._fixes.clear()

    def __len__(self) -> int:
        return len(self._fixes)

    def __iter__(self) -> Iterator[PositionFix]:
        return iter(self._fixes)
