"""Distance buckets and liveness for other subjects' published positions."""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum

from nearfix.estimate.stabilizer import StableEstimate
from nearfix.geo import distance
from nearfix.tracking.fixes import RemotePosition


class ProximityBucket(Enum):
    VERY_CLOSE = "very-close"
    NEARBY = "nearby"
    IN_AREA = "in-area"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    ProximityBucket.VERY_CLOSE: "Very Close",
    ProximityBucket.NEARBY: "Nearby",
    ProximityBucket.IN_AREA: "In Area",
}


@dataclass(frozen=True, slots=True)
class ProximityResult:
    subject_id: str
    distance: float  # meters
    bucket: ProximityBucket
    active: bool
    last_seen: str


def bucket_for(meters: float, very_close: float = 100.0, nearby: float = 500.0) -> ProximityBucket:
    if meters < very_close:
        return ProximityBucket.VERY_CLOSE
    if meters < nearby:
        return ProximityBucket.NEARBY
    return ProximityBucket.IN_AREA


def last_seen_label(timestamp: float, now: float | None = None) -> str:
    """Coarse human-readable age: 'Just now', '12m ago', '3h ago', '2d ago'."""
    if now is None:
        now = time.time()
    minutes = int(max(now - timestamp, 0.0) // 60)
    hours = minutes // 60
    days = hours // 24
    if minutes < 5:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    return f"{days}d ago"


def classify(
    local: StableEstimate,
    remotes: list[RemotePosition],
    now: float | None = None,
    liveness_window: float = 300.0,
    very_close: float = 100.0,
    nearby: float = 500.0,
    exclude_subject: str | None = None,
) -> list[ProximityResult]:
    """Classify each remote position relative to the local estimate.

    Results keep the order of `remotes`.
    """
    if now is None:
        now = time.time()
    results: list[ProximityResult] = []
    for remote in remotes:
        if exclude_subject is not None and remote.subject_id == exclude_subject:
            continue
        meters = distance(local.coordinate, remote.coordinate)
        results.append(ProximityResult(
            subject_id=remote.subject_id,
            distance=meters,
            bucket=bucket_for(meters, very_close, nearby),
            active=(now - remote.timestamp) < liveness_window,
            last_seen=last_seen_label(remote.timestamp, now),
        ))
    return results
