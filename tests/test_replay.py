from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from nearfix.config import AccuracyTier, NearfixConfig
from nearfix.errors import ProviderUnavailable
from nearfix.geo import destination
from nearfix.replay import MemoryStore, ReplayProvider, load_remotes, load_trace
from nearfix.session import TrackingSession
from nearfix.tracking.fixes import PositionFix, RemotePosition

ORIGIN = (51.5074, -0.1278)


def _trace(count: int = 6, start: float = 1_750_000_000.0) -> list[PositionFix]:
    fixes = []
    for idx in range(count):
        lat, lon = destination(ORIGIN, 45.0 * idx, 1.5)
        fixes.append(PositionFix(latitude=lat, longitude=lon, accuracy=6.0, timestamp=start + idx))
    return fixes


def test_load_trace_sorts_and_skips_malformed(tmp_path: Path) -> None:
    path = tmp_path / "trace.jsonl"
    lines = [
        json.dumps({"latitude": 1.0, "longitude": 2.0, "accuracy": 5, "timestamp": 20}),
        "not json",
        "",
        json.dumps({"latitude": 1.0, "longitude": 2.0, "timestamp": "2025-06-15T12:00:00Z"}),
        json.dumps({"latitude": 1.0}),
    ]
    path.write_text("\n".join(lines))

    fixes = load_trace(path)
    assert [fix.timestamp for fix in fixes] == [20.0, 1_749_988_800.0]
    assert fixes[0].accuracy == 5.0
    assert fixes[1].accuracy is None


def test_load_remotes_accepts_store_rows(tmp_path: Path) -> None:
    path = tmp_path / "remotes.json"
    path.write_text(json.dumps([
        {"user_id": "u-1", "latitude": 51.5, "longitude": -0.12, "timestamp": "2025-06-15T12:00:00+00:00"},
        {"subject_id": "u-2", "latitude": 51.6, "longitude": -0.13, "timestamp": 5},
    ]))

    remotes = load_remotes(path)
    assert [remote.subject_id for remote in remotes] == ["u-1", "u-2"]
    assert remotes[0].timestamp == 1_749_988_800.0


def test_provider_one_shots_consume_queue() -> None:
    provider = ReplayProvider(_trace(2))

    async def scenario() -> None:
        first = await provider.get_current_fix(AccuracyTier.HIGH, max_age=60.0, timeout=1.0)
        assert provider.clock() == first.timestamp
        await provider.get_current_fix(AccuracyTier.HIGH, max_age=60.0, timeout=1.0)
        with pytest.raises(ProviderUnavailable):
            await provider.get_current_fix(AccuracyTier.HIGH, max_age=60.0, timeout=1.0)
        assert provider.finished.is_set()

    asyncio.run(scenario())
    assert provider.requests == [AccuracyTier.HIGH] * 3


def test_subscription_streams_remaining_fixes() -> None:
    trace = _trace(4)
    provider = ReplayProvider(trace, speed=1000.0)

    async def scenario() -> list[PositionFix]:
        subscription = await provider.subscribe(AccuracyTier.HIGH, min_distance=0.0, min_interval=0.0)
        return [fix async for fix in subscription]

    assert asyncio.run(scenario()) == trace
    assert provider.finished.is_set()
    assert provider.remaining == 0


def test_memory_store_filters_by_radius() -> None:
    near = destination(ORIGIN, 0.0, 500.0)
    far = destination(ORIGIN, 0.0, 5000.0)
    store = MemoryStore([
        RemotePosition(subject_id="near", latitude=near[0], longitude=near[1], timestamp=0.0),
        RemotePosition(subject_id="far", latitude=far[0], longitude=far[1], timestamp=0.0),
    ])

    async def scenario() -> list[str]:
        await store.publish(ORIGIN[0], ORIGIN[1], 5.0, None, None, None, 0.0)
        return [remote.subject_id for remote in await store.fetch_nearby(2000.0)]

    assert asyncio.run(scenario()) == ["near"]


def test_replayed_trace_reaches_stable_and_publishes() -> None:
    trace = _trace(6)
    provider = ReplayProvider(trace, speed=1000.0)
    store = MemoryStore()
    config = NearfixConfig(publish_heartbeat=1000.0, refresh_interval=1000.0)

    async def scenario() -> None:
        session = TrackingSession(provider, store, config, clock=provider.clock)
        await session.start()
        await asyncio.wait_for(provider.finished.wait(), timeout=5.0)
        await asyncio.sleep(0.05)

        assert session.estimate is not None
        assert session.estimate.confidence >= 0.8
        assert store.published
        await session.stop()

    asyncio.run(scenario())
    assert store.current is None
    assert store.clear_count == 1


def test_synthesized_trace_is_reproducible_and_mostly_tight() -> None:
    from nearfix.geo import distance
    from nearfix.replay import synthesize_trace

    first = synthesize_trace(ORIGIN, count=40, start=100.0, outlier_rate=0.0, seed=7)
    second = synthesize_trace(ORIGIN, count=40, start=100.0, outlier_rate=0.0, seed=7)

    assert first == second
    assert [fix.timestamp for fix in first] == [100.0 + i for i in range(40)]
    assert all(3.0 <= (fix.accuracy or 0.0) <= 25.0 for fix in first)
    assert all(distance(ORIGIN, fix.coordinate) < 40.0 for fix in first)


def test_load_trace_parses_numeric_strings(tmp_path: Path) -> None:
    path = tmp_path / "trace.jsonl"
    path.write_text("\n".join([
        json.dumps({"latitude": 1.0, "longitude": 2.0, "accuracy": "8.5", "speed": "1", "timestamp": 1}),
        json.dumps({"latitude": 1.0, "longitude": 2.0, "accuracy": "about ten", "timestamp": 2}),
    ]))

    fixes = load_trace(path)
    assert len(fixes) == 1
    assert fixes[0].accuracy == 8.5
    assert fixes[0].speed == 1.0
