from __future__ import annotations

import time
from enum import Enum

from nearfix.estimate.stabilizer import StableEstimate


class PublishDecision(Enum):
    PUBLISHED = "published"
    THROTTLED = "throttled"
    SKIPPED_LOW_ACCURACY = "skipped-low-accuracy"


class PublishThrottle:
    """Rate-limits how often a stable estimate reaches the remote store."""

    def __init__(self, publish_accuracy: float = 200.0, min_interval: float = 2.0) -> None:
        self.publish_accuracy = publish_accuracy
        self.min_interval = min_interval
        self._last_published: float | None = None

    @property
    def last_published(self) -> float | None:
        return self._last_published

    def maybe_publish(self, estimate: StableEstimate, now: float | None = None) -> PublishDecision:
        if estimate.accuracy > self.publish_accuracy:
            return PublishDecision.SKIPPED_LOW_ACCURACY
        if now is None:
            now = time.time()
        if self._last_published is not None and (now - self._last_published) < self.min_interval:
            return PublishDecision.THROTTLED
        self._last_published = now
        return PublishDecision.PUBLISHED

    def reset(self) -> None:
        self._last_published = None
