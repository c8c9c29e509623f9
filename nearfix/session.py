"""Tracking session: owns the subscription, timers and in-flight store calls."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from nearfix.config import NearfixConfig
from nearfix.engine import EngineUpdate, LocationEngine
from nearfix.errors import LocationError, StoreError
from nearfix.estimate.proximity import ProximityResult, classify
from nearfix.estimate.stabilizer import StabilizationState, StableEstimate, Stable
from nearfix.estimate.throttle import PublishDecision
from nearfix.interfaces import FixSubscription, LocationProvider, LocationStore
from nearfix.tracking.escalation import AccuracyEscalator
from nearfix.tracking.fixes import PositionFix

log = logging.getLogger(__name__)

RESUBSCRIBE_BASE = 1.0
RESUBSCRIBE_MAX = 30.0

# Store failures are logged and retried on the next timer tick.
_STORE_ERRORS = (StoreError, ConnectionError)


class TrackingSession:
    """One local subject's live tracking, from provider fixes to store writes.

    Everything that can outlive a call (the fix subscription, the publish
    heartbeat, the nearby refresh timer, escalation requests and store writes)
    is created in `start()` and torn down in `stop()`.
    """

    def __init__(
        self,
        provider: LocationProvider,
        store: LocationStore,
        config: NearfixConfig | None = None,
        subject_id: str | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or NearfixConfig()
        self.subject_id = subject_id
        self.engine = LocationEngine(self.config)
        self._provider = provider
        self._store = store
        self._clock = clock
        self._escalator = AccuracyEscalator(
            provider,
            retry_accuracy=self.config.retry_accuracy,
            max_attempts=self.config.max_retries,
            request_timeout=self.config.request_timeout,
            max_age=self.config.fix_max_age,
        )

        self._subscription: FixSubscription | None = None
        self._tasks: dict[str, asyncio.Task] = {}
        self._background: set[asyncio.Task] = set()
        self._escalation: asyncio.Task | None = None
        self._running = False
        self._stopped = asyncio.Event()

        self._update_callbacks: list[Callable[[EngineUpdate], Any]] = []
        self._nearby_callbacks: list[Callable[[list[ProximityResult]], Any]] = []

        self.error: LocationError | None = None
        self.nearby: list[ProximityResult] = []

    # -- Public API --

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> StabilizationState:
        return self.engine.state

    @property
    def estimate(self) -> StableEstimate | None:
        return self.engine.estimate

    def on_update(self, callback: Callable[[EngineUpdate], Any]) -> None:
        self._update_callbacks.append(callback)

    def on_nearby(self, callback: Callable[[list[ProximityResult]], Any]) -> None:
        self._nearby_callbacks.append(callback)

    async def start(self) -> None:
        """Acquire an initial fix, then arm the subscription and both timers.

        Raises PermissionDenied / ServicesDisabled; the session is left stopped.
        """
        if self._running:
            return
        self.error = None
        self._stopped.clear()
        self._running = True
        self.engine.mark_stabilizing(self._clock())

        # Tracked so that stop() during start() cancels the request.
        acquire = asyncio.create_task(self._escalator.acquire(self.config.initial_tier))
        self._tasks["acquire"] = acquire
        try:
            outcome = await acquire
        except asyncio.CancelledError:
            if self._running:
                self._running = False
                self._stopped.set()
                raise
            log.info("tracking stopped before the first fix")
            return
        except LocationError as exc:
            await self._fail(exc)
            raise
        finally:
            self._tasks.pop("acquire", None)
        if not self._running:
            return
        if outcome.fix is not None:
            self.handle_fix(outcome.fix, escalated=True)

        try:
            await self._open_subscription()
        except LocationError as exc:
            if exc.fatal:
                await self._fail(exc)
                raise
            log.warning("fix subscription unavailable: %s", exc)
        if not self._running:
            self._close_subscription()
            return

        self._tasks["watch"] = asyncio.create_task(self._watch_loop())
        self._tasks["heartbeat"] = asyncio.create_task(
            self._timer(self.config.publish_heartbeat, self._heartbeat)
        )
        self._tasks["refresh"] = asyncio.create_task(
            self._timer(self.config.refresh_interval, self.refresh_nearby)
        )
        log.info("tracking started (subject=%s)", self.subject_id or "local")

    async def stop(self, clear_remote: bool = True) -> None:
        """Cancel every in-flight task, release the subscription, clear state."""
        if not self._running:
            return
        self._running = False
        self._close_subscription()

        current = asyncio.current_task()
        pending = [
            task for task in [*self._tasks.values(), *self._background]
            if task is not current and not task.done()
        ]
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        self._background.clear()
        self._escalation = None
        self._escalator.reset()

        self.engine.reset()
        self.nearby = []

        if clear_remote:
            try:
                await self._store.clear()
            except _STORE_ERRORS as exc:
                log.warning("failed to clear published position: %s", exc)

        self._stopped.set()
        log.info("tracking stopped")

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    async def __aenter__(self) -> TrackingSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def handle_fix(self, fix: PositionFix, escalated: bool = False) -> EngineUpdate:
        """Run one fix through the engine and schedule any resulting publish."""
        now = self._clock()
        update = self.engine.process(fix, now)

        if update.publish is PublishDecision.PUBLISHED and self.engine.estimate is not None:
            self._spawn(self._publish(self.engine.estimate))

        if not escalated and not isinstance(update.state, Stable):
            too_coarse = fix.effective_accuracy > self.config.retry_accuracy
            too_slow = self.engine.stabilizing_for(now) > self.config.stabilization_timeout
            if too_coarse or too_slow:
                self._maybe_escalate(now)

        for callback in self._update_callbacks:
            callback(update)
        return update

    async def refresh_nearby(self) -> list[ProximityResult]:
        """Fetch remote positions and classify them against the current estimate."""
        self._expire_estimate(self._clock())
        estimate = self.engine.estimate
        if estimate is None:
            return self.nearby
        try:
            remotes = await self._store.fetch_nearby(self.config.nearby_radius)
        except _STORE_ERRORS as exc:
            log.warning("nearby fetch failed: %s", exc)
            return self.nearby

        self.nearby = classify(
            estimate,
            remotes,
            now=self._clock(),
            liveness_window=self.config.liveness_window,
            very_close=self.config.very_close_distance,
            nearby=self.config.nearby_distance,
            exclude_subject=self.subject_id,
        )
        log.debug("classified %d nearby subjects", len(self.nearby))
        for callback in self._nearby_callbacks:
            callback(self.nearby)
        return self.nearby

    # -- Internals --

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _fail(self, exc: LocationError) -> None:
        self.error = exc
        log.error("location unavailable: %s", exc)
        await self.stop()

    async def _open_subscription(self) -> None:
        self._subscription = await self._provider.subscribe(
            self.config.watch_tier,
            min_distance=self.config.watch_min_distance,
            min_interval=self.config.watch_min_interval,
        )

    def _close_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None

    async def _watch_loop(self) -> None:
        delay = RESUBSCRIBE_BASE
        while self._running:
            if self._subscription is None:
                try:
                    await self._open_subscription()
                except LocationError as exc:
                    if exc.fatal:
                        await self._fail(exc)
                        return
                    log.warning("resubscribe failed: %s, retrying in %.1fs", exc, delay)
                    await asyncio.sleep(delay)
                    delay = min(delay * 2, RESUBSCRIBE_MAX)
                    continue

            subscription = self._subscription
            try:
                async for fix in subscription:
                    delay = RESUBSCRIBE_BASE
                    self.handle_fix(fix)
            except LocationError as exc:
                if exc.fatal:
                    await self._fail(exc)
                    return
                log.warning("fix stream interrupted: %s", exc)

            if not self._running:
                break
            self._close_subscription()
            log.debug("fix stream ended, resubscribing in %.1fs", delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, RESUBSCRIBE_MAX)

    def _maybe_escalate(self, now: float) -> None:
        if not self._running:
            return
        if self._escalation is not None and not self._escalation.done():
            return
        self.engine.mark_stabilizing(now)
        self._escalation = self._spawn(self._escalate())

    async def _escalate(self) -> None:
        try:
            outcome = await self._escalator.acquire(self.config.initial_tier)
        except LocationError as exc:
            await self._fail(exc)
            return
        if outcome.fix is not None and self._running:
            self.handle_fix(outcome.fix, escalated=True)

    def _expire_estimate(self, now: float) -> None:
        if self.engine.expire(now):
            log.info("no fix for %.0fs, estimate dropped", self.config.estimate_max_age)
            self.nearby = []

    async def _publish(self, estimate: StableEstimate) -> None:
        try:
            await self._store.publish(
                latitude=estimate.latitude,
                longitude=estimate.longitude,
                accuracy=estimate.accuracy,
                altitude=estimate.altitude,
                heading=estimate.heading,
                speed=estimate.speed,
                timestamp=estimate.timestamp,
            )
        except _STORE_ERRORS as exc:
            log.warning("publish failed: %s", exc)

    async def _heartbeat(self) -> None:
        now = self._clock()
        self._expire_estimate(now)
        if self.engine.stabilizing_for(now) > self.config.stabilization_timeout:
            self._maybe_escalate(now)
        if self.engine.republish(now) is PublishDecision.PUBLISHED:
            estimate = self.engine.estimate
            if estimate is not None:
                await self._publish(estimate)

    async def _timer(self, interval: float, tick: Callable[[], Coroutine[Any, Any, Any]]) -> None:
        while self._running:
            await asyncio.sleep(interval)
            if not self._running:
                break
            try:
                await tick()
            except Exception:
                log.exception("timer tick failed")
