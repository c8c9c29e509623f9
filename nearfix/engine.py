"""Synchronous per-fix pipeline: ingest -> stabilize -> throttle."""

from __future__ import annotations

import time
from dataclasses import dataclass

from nearfix.config import NearfixConfig
from nearfix.estimate.stabilizer import (
    StabilizationState,
    Stabilizer,
    Stabilizing,
    Stable,
    StableEstimate,
)
from nearfix.estimate.throttle import PublishDecision, PublishThrottle
from nearfix.tracking.fixes import PositionFix
from nearfix.tracking.history import HistoryBuffer
from nearfix.tracking.ingest import Accepted, FixIngestor, IngestResult


@dataclass(frozen=True, slots=True)
class EngineUpdate:
    ingest: IngestResult
    state: StabilizationState
    # None unless the fix was accepted and produced a Stable state.
    publish: PublishDecision | None = None

    @property
    def accepted(self) -> bool:
        return isinstance(self.ingest, Accepted)


class LocationEngine:
    """One tracking subject's fix history, estimate and publish gate.

    `process` runs to completion for each fix; callers must not interleave
    calls from several tasks.
    """

    def __init__(self, config: NearfixConfig | None = None) -> None:
        self.config = config or NearfixConfig()
        cfg = self.config
        self.buffer = HistoryBuffer(cfg.history_capacity)
        self.ingestor = FixIngestor(
            self.buffer,
            hard_reject_accuracy=cfg.hard_reject_accuracy,
            max_jump_distance=cfg.max_jump_distance,
            gap_reset_window=cfg.gap_reset_window,
        )
        self.stabilizer = Stabilizer(
            self.buffer,
            min_cluster_size=cfg.min_cluster_size,
            target_cluster_size=cfg.target_cluster_size,
            cluster_radius=cfg.cluster_radius,
            accuracy_ceiling=cfg.hard_reject_accuracy,
            recency_horizon=cfg.recency_horizon,
            recency_floor=cfg.recency_floor,
            recent_window=cfg.recent_window,
            publish_confidence=cfg.publish_confidence,
            weights=cfg.confidence_weights,
        )
        self.throttle = PublishThrottle(
            publish_accuracy=cfg.publish_accuracy,
            min_interval=cfg.min_publish_interval,
        )
        self._state: StabilizationState = Stabilizing(confidence=0.0)
        self._stabilizing_since: float | None = None

    @property
    def state(self) -> StabilizationState:
        return self._state

    @property
    def estimate(self) -> StableEstimate | None:
        return self.stabilizer.estimate

    def stabilizing_for(self, now: float | None = None) -> float:
        """Seconds spent in Stabilizing since the session (re)started or last Stable."""
        if self._stabilizing_since is None or isinstance(self._state, Stable):
            return 0.0
        if now is None:
            now = time.time()
        return max(now - self._stabilizing_since, 0.0)

    def mark_stabilizing(self, now: float) -> None:
        """Restart the stabilizing clock (session start, escalation launched)."""
        self._stabilizing_since = now

    def process(self, fix: PositionFix, now: float | None = None) -> EngineUpdate:
        if now is None:
            now = time.time()
        result = self.ingestor.accept(fix)
        if not isinstance(result, Accepted):
            return EngineUpdate(ingest=result, state=self._state)

        state = self.stabilizer.recompute(now)
        if isinstance(state, Stable):
            self._stabilizing_since = None
        elif self._stabilizing_since is None:
            self._stabilizing_since = now
        self._state = state

        decision = None
        if isinstance(state, Stable):
            decision = self.throttle.maybe_publish(state.estimate, now)
        return EngineUpdate(ingest=result, state=state, publish=decision)

    def expire(self, now: float | None = None) -> bool:
        """Clear a stale estimate when no fix has been accepted for `estimate_max_age`."""
        if now is None:
            now = time.time()
        if not self.stabilizer.expire(now, self.config.estimate_max_age):
            return False
        self._state = Stabilizing(confidence=0.0)
        self._stabilizing_since = None
        return True

    def republish(self, now: float | None = None) -> PublishDecision | None:
        """Offer the current estimate to the throttle again (heartbeat)."""
        if now is None:
            now = time.time()
        self.expire(now)
        estimate = self.stabilizer.estimate
        if estimate is None:
            return None
        return self.throttle.maybe_publish(estimate, now)

    def reset(self) -> None:
        self.stabilizer.reset()
        self.throttle.reset()
        self._state = Stabilizing(confidence=0.0)
        self._stabilizing_since = None
