from __future__ import annotations

import asyncio

from rich.console import Console

from nearfix.estimate.proximity import ProximityBucket, ProximityResult
from nearfix.replay import MemoryStore, ReplayProvider
from nearfix.session import TrackingSession
from nearfix.tracking.fixes import PositionFix
from nearfix.ui.dashboard import proximity_table, render


def _text(renderable: object) -> str:
    console = Console(record=True, width=100)
    console.print(renderable)
    return console.export_text()


def test_render_shows_stable_estimate() -> None:
    async def scenario() -> str:
        session = TrackingSession(ReplayProvider([]), MemoryStore(), clock=lambda: 2.0)
        for ts, acc in ((0.0, 8.0), (1.0, 6.0), (2.0, 9.0)):
            session.handle_fix(PositionFix(latitude=51.5074, longitude=-0.1278, accuracy=acc, timestamp=ts))
        await asyncio.sleep(0)
        return _text(render(session))

    text = asyncio.run(scenario())
    assert "STABLE" in text
    assert "51.507400" in text


def test_render_before_any_fix() -> None:
    async def scenario() -> str:
        session = TrackingSession(ReplayProvider([]), MemoryStore())
        return _text(render(session))

    text = asyncio.run(scenario())
    assert "STABILIZING" in text
    assert "no stable estimate yet" in text


def test_proximity_table_lists_subjects() -> None:
    table = proximity_table([
        ProximityResult(
            subject_id="ana",
            distance=80.4,
            bucket=ProximityBucket.VERY_CLOSE,
            active=True,
            last_seen="Just now",
        ),
    ])
    text = _text(table)
    assert "ana" in text
    assert "80m" in text
    assert "Very Close" in text
