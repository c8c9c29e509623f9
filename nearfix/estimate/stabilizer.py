"""Cluster recent fixes and converge them into one trusted position.

The stabilizer only ever looks at the history buffer it owns. Each call to
``recompute`` is a pure function of the buffer contents and ``now``:

1. greedy first-match clustering with a fixed radius,
2. an accuracy- and recency-weighted centroid per cluster,
3. a confidence score mixing cluster size, best accuracy, spatial spread and
   the share of recent members,
4. the best cluster becomes the stable estimate once its confidence clears the
   publish threshold.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

import numpy as np

from nearfix.geo import distances_from, pairwise_distances
from nearfix.tracking.fixes import PositionFix
from nearfix.tracking.history import HistoryBuffer

log = logging.getLogger(__name__)

_MIN_ACCURACY_M = 1.0


@dataclass(frozen=True, slots=True)
class StableEstimate:
    latitude: float
    longitude: float
    accuracy: float  # best accuracy among the producing cluster
    confidence: float
    timestamp: float
    altitude: float | None = None
    heading: float | None = None
    speed: float | None = None

    @property
    def coordinate(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class Stabilizing:
    confidence: float


@dataclass(frozen=True, slots=True)
class Stable:
    estimate: StableEstimate

    @property
    def confidence(self) -> float:
        return self.estimate.confidence


StabilizationState = Stabilizing | Stable


@dataclass
class Cluster:
    members: list[PositionFix]
    center: tuple[float, float]
    best_accuracy: float
    spread: float  # mean member-to-center distance, meters
    recent_fraction: float
    confidence: float = 0.0

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def newest(self) -> PositionFix:
        return max(self.members, key=lambda fix: fix.timestamp)


def recency_weight(age: float, horizon: float, floor: float = 0.1) -> float:
    """Linear decay from 1 at age 0 down to `floor` at the recency horizon."""
    if horizon <= 0:
        return 1.0
    age = max(age, 0.0)
    return max(floor, 1.0 - (age / horizon))


def group_fixes(fixes: list[PositionFix], radius: float) -> list[list[int]]:
    """Greedy first-match grouping.

    Each fix joins the first group whose every member lies within `radius`
    meters of it, otherwise it opens a new group. Returns index lists into
    `fixes`, preserving input order inside each group.
    """
    if not fixes:
        return []
    lats = np.array([fix.latitude for fix in fixes], dtype=np.float64)
    lons = np.array([fix.longitude for fix in fixes], dtype=np.float64)
    matrix = pairwise_distances(lats, lons)

    groups: list[list[int]] = []
    for idx in range(len(fixes)):
        for group in groups:
            if bool(np.all(matrix[idx, group] <= radius)):
                group.append(idx)
                break
        else:
            groups.append([idx])
    return groups


def weighted_center(
    fixes: list[PositionFix],
    now: float,
    horizon: float,
    floor: float,
) -> tuple[float, float]:
    """Accuracy- and recency-weighted mean of member coordinates."""
    lats = np.array([fix.latitude for fix in fixes], dtype=np.float64)
    lons = np.array([fix.longitude for fix in fixes], dtype=np.float64)
    weights = np.array(
        [
            (1.0 / max(fix.effective_accuracy, _MIN_ACCURACY_M))
            * recency_weight(now - fix.timestamp, horizon, floor)
            for fix in fixes
        ],
        dtype=np.float64,
    )
    # Unwrap longitudes around the first member so a cluster straddling the
    # antimeridian does not average to the other side of the globe.
    ref = lons[0]
    unwrapped = ref + ((lons - ref + 180.0) % 360.0 - 180.0)

    total = float(np.sum(weights))
    lat = float(np.sum(weights * lats) / total)
    lon = float(np.sum(weights * unwrapped) / total)
    lon = (lon + 180.0) % 360.0 - 180.0
    return lat, lon


def cluster_confidence(
    size: int,
    best_accuracy: float,
    spread: float,
    recent_fraction: float,
    *,
    target_size: int = 5,
    accuracy_ceiling: float = 100.0,
    radius: float = 15.0,
    weights: tuple[float, float, float, float] = (0.3, 0.4, 0.2, 0.1),
) -> float:
    """Combine the four cluster factors into a score in [0, 1].

    Every factor is clamped to [0, 1] and enters with a non-negative weight, so
    the score never decreases when a factor improves.
    """
    size_factor = min(size / max(target_size, 1), 1.0)
    accuracy_factor = min(max(1.0 - (best_accuracy / accuracy_ceiling), 0.0), 1.0)
    consistency = min(max(1.0 - (spread / radius), 0.0), 1.0) if radius > 0 else 0.0
    recency = min(max(recent_fraction, 0.0), 1.0)

    w = np.clip(np.asarray(weights, dtype=np.float64), 0.0, None)
    total = float(np.sum(w))
    if total <= 0:
        return 0.0
    factors = np.array([size_factor, accuracy_factor, consistency, recency], dtype=np.float64)
    score = float(np.dot(w, factors) / total)
    return min(max(score, 0.0), 1.0)


class Stabilizer:
    """Owns the fix history and the current stable estimate."""

    def __init__(
        self,
        buffer: HistoryBuffer,
        min_cluster_size: int = 3,
        target_cluster_size: int = 5,
        cluster_radius: float = 15.0,
        accuracy_ceiling: float = 100.0,
        recency_horizon: float = 60.0,
        recency_floor: float = 0.1,
        recent_window: float = 10.0,
        publish_confidence: float = 0.8,
        weights: tuple[float, float, float, float] = (0.3, 0.4, 0.2, 0.1),
    ) -> None:
        self.buffer = buffer
        self.min_cluster_size = max(int(min_cluster_size), 1)
        self.target_cluster_size = target_cluster_size
        self.cluster_radius = cluster_radius
        self.accuracy_ceiling = accuracy_ceiling
        self.recency_horizon = recency_horizon
        self.recency_floor = recency_floor
        self.recent_window = recent_window
        self.publish_confidence = publish_confidence
        self.weights = weights
        self._estimate: StableEstimate | None = None

    @property
    def estimate(self) -> StableEstimate | None:
        return self._estimate

    def reset(self) -> None:
        """Drop history and estimate (tracking stopped or subject inactive)."""
        self.buffer.clear()
        self._estimate = None

    def expire(self, now: float, max_age: float) -> bool:
        """Drop the estimate once its newest fix is older than `max_age`. History is kept."""
        if self._estimate is None or now - self._estimate.timestamp <= max_age:
            return False
        self._estimate = None
        return True

    def _score(self, members: list[PositionFix], now: float) -> Cluster:
        center = weighted_center(members, now, self.recency_horizon, self.recency_floor)
        lats = np.array([fix.latitude for fix in members], dtype=np.float64)
        lons = np.array([fix.longitude for fix in members], dtype=np.float64)
        spread = float(np.mean(distances_from(center, lats, lons)))
        best_accuracy = min(fix.effective_accuracy for fix in members)
        recent = sum(1 for fix in members if now - fix.timestamp <= self.recent_window)
        cluster = Cluster(
            members=members,
            center=center,
            best_accuracy=best_accuracy,
            spread=spread,
            recent_fraction=recent / len(members),
        )
        cluster.confidence = cluster_confidence(
            cluster.size,
            best_accuracy,
            spread,
            cluster.recent_fraction,
            target_size=self.target_cluster_size,
            accuracy_ceiling=self.accuracy_ceiling,
            radius=self.cluster_radius,
            weights=self.weights,
        )
        return cluster

    def clusters(self, now: float | None = None) -> list[Cluster]:
        """Scored clusters that meet the minimum size, best first."""
        if now is None:
            now = time.time()
        fixes = self.buffer.snapshot()
        if len(fixes) < self.min_cluster_size:
            return []

        scored = [
            self._score([fixes[idx] for idx in group], now)
            for group in group_fixes(fixes, self.cluster_radius)
            if len(group) >= self.min_cluster_size
        ]
        scored.sort(
            key=lambda c: (c.confidence, c.size, c.newest.timestamp),
            reverse=True,
        )
        return scored

    def recompute(self, now: float | None = None) -> StabilizationState:
        if now is None:
            now = time.time()
        if len(self.buffer) < self.min_cluster_size:
            return Stabilizing(confidence=0.0)

        ranked = self.clusters(now)
        if not ranked:
            return Stabilizing(confidence=0.0)

        best = ranked[0]
        if best.confidence < self.publish_confidence:
            return Stabilizing(confidence=best.confidence)

        trigger = self.buffer.latest
        newest = best.newest
        self._estimate = StableEstimate(
            latitude=best.center[0],
            longitude=best.center[1],
            accuracy=best.best_accuracy,
            confidence=best.confidence,
            timestamp=trigger.timestamp if trigger is not None else newest.timestamp,
            altitude=newest.altitude,
            heading=newest.heading,
            speed=newest.speed,
        )
        log.debug(
            "stable at (%.6f, %.6f) acc=%.1fm conf=%.2f from %d fixes",
            best.center[0],
            best.center[1],
            best.best_accuracy,
            best.confidence,
            best.size,
        )
        return Stable(estimate=self._estimate)
