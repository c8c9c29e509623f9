"""One-shot fix requests that step down accuracy tiers until one succeeds."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from nearfix.config import AccuracyTier
from nearfix.errors import LocationError, ProviderTimeout, ProviderUnavailable
from nearfix.interfaces import LocationProvider
from nearfix.tracking.fixes import PositionFix

log = logging.getLogger(__name__)


class EscalationState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    SUCCEEDED = "succeeded"
    DEGRADING = "degrading"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class EscalationOutcome:
    state: EscalationState  # SUCCEEDED or EXHAUSTED
    fix: PositionFix | None
    tier: AccuracyTier  # tier of the last attempt
    attempts: int
    error: LocationError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is EscalationState.SUCCEEDED


class AccuracyEscalator:
    """Idle -> Requesting(tier) -> {Succeeded | Degrading(next tier) | Exhausted}.

    A fix counts as a success only when its accuracy meets `retry_accuracy`.
    Timeouts, unavailable providers and substandard fixes all step down one
    tier. Once `max_attempts` requests are spent, the last fix obtained (if
    any) is returned anyway. Permission and services errors are not retried.
    """

    def __init__(
        self,
        provider: LocationProvider,
        retry_accuracy: float = 50.0,
        max_attempts: int = 5,
        request_timeout: float = 10.0,
        max_age: float = 60.0,
    ) -> None:
        self._provider = provider
        self.retry_accuracy = retry_accuracy
        self.max_attempts = max(int(max_attempts), 1)
        self.request_timeout = request_timeout
        self.max_age = max_age
        self._state = EscalationState.IDLE
        self._tier: AccuracyTier | None = None

    @property
    def state(self) -> EscalationState:
        return self._state

    @property
    def tier(self) -> AccuracyTier | None:
        return self._tier

    async def _request(self, tier: AccuracyTier) -> PositionFix:
        try:
            return await asyncio.wait_for(
                self._provider.get_current_fix(
                    tier,
                    max_age=self.max_age,
                    timeout=self.request_timeout,
                ),
                timeout=self.request_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProviderTimeout(f"no fix within {self.request_timeout:.1f}s at {tier.value}") from exc

    async def acquire(self, start_tier: AccuracyTier = AccuracyTier.HIGHEST) -> EscalationOutcome:
        tier = start_tier
        last_fix: PositionFix | None = None
        last_error: LocationError | None = None
        attempts = 0

        try:
            while attempts < self.max_attempts:
                attempts += 1
                self._state = EscalationState.REQUESTING
                self._tier = tier
                try:
                    fix = await self._request(tier)
                except (ProviderTimeout, ProviderUnavailable) as exc:
                    last_error = exc
                    log.debug("fix request %d at %s failed: %s", attempts, tier.value, exc)
                else:
                    last_fix = fix
                    if fix.effective_accuracy <= self.retry_accuracy:
                        self._state = EscalationState.SUCCEEDED
                        return EscalationOutcome(
                            state=EscalationState.SUCCEEDED,
                            fix=fix,
                            tier=tier,
                            attempts=attempts,
                        )
                    log.debug(
                        "fix request %d at %s too coarse (%.1fm)",
                        attempts,
                        tier.value,
                        fix.effective_accuracy,
                    )

                if attempts < self.max_attempts:
                    self._state = EscalationState.DEGRADING
                    tier = tier.degrade()
        except BaseException:
            # Permission/services errors and cancellation propagate untouched.
            self._state = EscalationState.IDLE
            raise

        self._state = EscalationState.EXHAUSTED
        log.info(
            "fix escalation exhausted after %d attempts (last tier %s, fix=%s)",
            attempts,
            tier.value,
            "yes" if last_fix is not None else "none",
        )
        return EscalationOutcome(
            state=EscalationState.EXHAUSTED,
            fix=last_fix,
            tier=tier,
            attempts=attempts,
            error=last_error,
        )

    def reset(self) -> None:
        self._state = EscalationState.IDLE
        self._tier = None
