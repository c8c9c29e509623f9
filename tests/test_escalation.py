from __future__ import annotations

import asyncio

import pytest

from nearfix.config import AccuracyTier
from nearfix.errors import PermissionDenied, ProviderTimeout, ProviderUnavailable
from nearfix.tracking.escalation import AccuracyEscalator, EscalationState
from nearfix.tracking.fixes import PositionFix

_HANG = object()


def _fix(accuracy: float, ts: float = 0.0) -> PositionFix:
    return PositionFix(latitude=51.5074, longitude=-0.1278, accuracy=accuracy, timestamp=ts)


class ScriptedProvider:
    """One-shot provider that plays back a fixed list of responses."""

    def __init__(self, responses: list[object]) -> None:
        self._responses = list(responses)
        self.tiers: list[AccuracyTier] = []

    async def get_current_fix(self, tier: AccuracyTier, max_age: float, timeout: float) -> PositionFix:
        self.tiers.append(tier)
        response = self._responses.pop(0) if self._responses else ProviderUnavailable("empty")
        if response is _HANG:
            await asyncio.sleep(10.0)
        if isinstance(response, Exception):
            raise response
        assert isinstance(response, PositionFix)
        return response

    async def subscribe(self, tier: AccuracyTier, min_distance: float, min_interval: float):
        raise NotImplementedError


def test_first_good_fix_succeeds_at_best_tier() -> None:
    provider = ScriptedProvider([_fix(8.0)])
    escalator = AccuracyEscalator(provider, retry_accuracy=50.0)

    outcome = asyncio.run(escalator.acquire())
    assert outcome.succeeded
    assert outcome.fix == _fix(8.0)
    assert outcome.attempts == 1
    assert provider.tiers == [AccuracyTier.HIGHEST]
    assert escalator.state is EscalationState.SUCCEEDED


def test_timeouts_and_failures_step_down_tiers() -> None:
    provider = ScriptedProvider([_HANG, ProviderUnavailable("gps busy"), _fix(20.0)])
    escalator = AccuracyEscalator(provider, retry_accuracy=50.0, request_timeout=0.05)

    outcome = asyncio.run(escalator.acquire())
    assert outcome.succeeded
    assert outcome.attempts == 3
    assert outcome.tier is AccuracyTier.BALANCED
    assert provider.tiers == [AccuracyTier.HIGHEST, AccuracyTier.HIGH, AccuracyTier.BALANCED]


def test_exhaustion_surfaces_last_substandard_fix() -> None:
    responses = [_fix(90.0 + i, ts=float(i)) for i in range(6)]
    provider = ScriptedProvider(responses)
    escalator = AccuracyEscalator(provider, retry_accuracy=50.0, max_attempts=6)

    outcome = asyncio.run(escalator.acquire())
    assert outcome.state is EscalationState.EXHAUSTED
    assert outcome.fix == responses[-1]
    assert outcome.attempts == 6
    assert provider.tiers == [
        AccuracyTier.HIGHEST,
        AccuracyTier.HIGH,
        AccuracyTier.BALANCED,
        AccuracyTier.LOW,
        AccuracyTier.LOWEST,
        AccuracyTier.LOWEST,
    ]
    assert escalator.state is EscalationState.EXHAUSTED


def test_exhaustion_without_any_fix() -> None:
    provider = ScriptedProvider([])
    escalator = AccuracyEscalator(provider, max_attempts=5)

    outcome = asyncio.run(escalator.acquire(AccuracyTier.BALANCED))
    assert outcome.state is EscalationState.EXHAUSTED
    assert outcome.fix is None
    assert isinstance(outcome.error, ProviderUnavailable)
    assert len(provider.tiers) == 5


def test_timeout_error_is_reported() -> None:
    provider = ScriptedProvider([_HANG])
    escalator = AccuracyEscalator(provider, max_attempts=1, request_timeout=0.05)

    outcome = asyncio.run(escalator.acquire())
    assert outcome.fix is None
    assert isinstance(outcome.error, ProviderTimeout)


def test_permission_denied_is_not_retried() -> None:
    provider = ScriptedProvider([PermissionDenied("denied"), _fix(5.0)])
    escalator = AccuracyEscalator(provider)

    with pytest.raises(PermissionDenied):
        asyncio.run(escalator.acquire())
    assert provider.tiers == [AccuracyTier.HIGHEST]
    assert escalator.state is EscalationState.IDLE


def test_tier_degrade_floors_at_lowest() -> None:
    assert AccuracyTier.HIGHEST.degrade() is AccuracyTier.HIGH
    assert AccuracyTier.LOWEST.degrade() is AccuracyTier.LOWEST
