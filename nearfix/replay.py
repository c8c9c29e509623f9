"""Recorded-trace provider and in-memory store for offline runs."""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from pathlib import Path

import numpy as np

from nearfix.config import AccuracyTier
from nearfix.errors import ProviderUnavailable
from nearfix.geo import Coordinate, destination, distance
from nearfix.tracking.fixes import PositionFix, RemotePosition

log = logging.getLogger(__name__)


def load_trace(path: Path) -> list[PositionFix]:
    """Read a JSON-lines fix trace, sorted by timestamp. Blank lines are skipped."""
    fixes: list[PositionFix] = []
    for lineno, line in enumerate(path.read_text().splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            fixes.append(PositionFix.from_dict(json.loads(line)))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            log.warning("%s:%d: malformed fix, skipping", path, lineno)
    fixes.sort(key=lambda fix: fix.timestamp)
    return fixes


def load_remotes(path: Path) -> list[RemotePosition]:
    """Read a JSON array of store records."""
    records = json.loads(path.read_text())
    return [RemotePosition.from_dict(record) for record in records]


class ReplaySubscription:
    """Streams queued fixes, pacing them by their recorded timestamps."""

    def __init__(self, provider: ReplayProvider) -> None:
        self._provider = provider
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    async def __aiter__(self):
        while not self._cancelled.is_set():
            fix = self._provider._next_fix()
            if fix is None:
                self._provider.finished.set()
                return
            delay = self._provider._delay_until(fix)
            if delay > 0:
                try:
                    await asyncio.wait_for(self._cancelled.wait(), timeout=delay)
                    self._provider._requeue(fix)
                    return
                except asyncio.TimeoutError:
                    pass
            self._provider._emit(fix)
            yield fix


class ReplayProvider:
    """Location provider backed by a recorded trace.

    One-shot requests and the subscription draw from the same queue, so every
    recorded fix is delivered exactly once. `clock()` reports trace time.
    """

    def __init__(self, fixes: list[PositionFix], speed: float = 1.0) -> None:
        self._queue: deque[PositionFix] = deque(sorted(fixes, key=lambda fix: fix.timestamp))
        self._speed = max(speed, 1e-3)
        self._now = self._queue[0].timestamp if self._queue else 0.0
        self.finished = asyncio.Event()
        self.subscriptions: list[ReplaySubscription] = []
        self.requests: list[AccuracyTier] = []

    def clock(self) -> float:
        return self._now

    @property
    def remaining(self) -> int:
        return len(self._queue)

    def _next_fix(self) -> PositionFix | None:
        return self._queue.popleft() if self._queue else None

    def _requeue(self, fix: PositionFix) -> None:
        self._queue.appendleft(fix)

    def _delay_until(self, fix: PositionFix) -> float:
        return max(fix.timestamp - self._now, 0.0) / self._speed

    def _emit(self, fix: PositionFix) -> None:
        self._now = max(self._now, fix.timestamp)

    async def get_current_fix(
        self,
        tier: AccuracyTier,
        max_age: float,
        timeout: float,
    ) -> PositionFix:
        self.requests.append(tier)
        fix = self._next_fix()
        if fix is None:
            self.finished.set()
            raise ProviderUnavailable("trace exhausted")
        self._emit(fix)
        return fix

    async def subscribe(
        self,
        tier: AccuracyTier,
        min_distance: float,
        min_interval: float,
    ) -> ReplaySubscription:
        subscription = ReplaySubscription(self)
        self.subscriptions.append(subscription)
        return subscription


class MemoryStore:
    """Remote store stand-in that keeps everything in process memory."""

    def __init__(self, remotes: list[RemotePosition] | None = None) -> None:
        self.remotes: list[RemotePosition] = list(remotes or [])
        self.published: list[dict] = []
        self.current: dict | None = None
        self.clear_count = 0

    async def publish(
        self,
        latitude: float,
        longitude: float,
        accuracy: float,
        altitude: float | None,
        heading: float | None,
        speed: float | None,
        timestamp: float,
    ) -> None:
        record = {
            "latitude": latitude,
            "longitude": longitude,
            "accuracy": accuracy,
            "altitude": altitude,
            "heading": heading,
            "speed": speed,
            "timestamp": timestamp,
        }
        self.published.append(record)
        self.current = record

    async def clear(self) -> None:
        self.current = None
        self.clear_count += 1

    async def fetch_nearby(self, radius: float) -> list[RemotePosition]:
        if self.current is None:
            return list(self.remotes)
        origin = (self.current["latitude"], self.current["longitude"])
        return [
            remote for remote in self.remotes
            if distance(origin, remote.coordinate) <= radius
        ]


def synthesize_trace(
    origin: Coordinate,
    count: int = 30,
    start: float = 0.0,
    interval: float = 1.0,
    noise_m: float = 4.0,
    outlier_rate: float = 0.1,
    seed: int | None = None,
) -> list[PositionFix]:
    """Noisy stationary trace around `origin` with occasional gross outliers."""
    rng = np.random.default_rng(seed)
    fixes: list[PositionFix] = []
    for idx in range(count):
        bearing = float(rng.uniform(0.0, 360.0))
        if rng.random() < outlier_rate:
            meters = float(rng.uniform(40.0, 400.0))
            accuracy = float(rng.uniform(30.0, 150.0))
        else:
            meters = abs(float(rng.normal(0.0, noise_m)))
            accuracy = float(np.clip(rng.normal(8.0, 3.0), 3.0, 25.0))
        lat, lon = destination(origin, bearing, meters)
        fixes.append(PositionFix(
            latitude=lat,
            longitude=lon,
            accuracy=round(accuracy, 1),
            timestamp=start + idx * interval,
        ))
    return fixes
