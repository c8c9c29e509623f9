"""Live terminal view of a tracking session using rich."""

from __future__ import annotations

import asyncio

from rich.console import Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from nearfix.estimate.proximity import ProximityBucket, ProximityResult
from nearfix.estimate.stabilizer import Stable
from nearfix.session import TrackingSession

_BUCKET_STYLE = {
    ProximityBucket.VERY_CLOSE: "bold green",
    ProximityBucket.NEARBY: "yellow",
    ProximityBucket.IN_AREA: "dim",
}


def _confidence_bar(confidence: float, bar_width: int = 10) -> Text:
    filled = int(round(min(max(confidence, 0.0), 1.0) * bar_width))
    if confidence >= 0.8:
        color = "green"
    elif confidence >= 0.5:
        color = "yellow"
    else:
        color = "red"
    text = Text()
    text.append("█" * filled, color)
    text.append("░" * (bar_width - filled), "dim")
    text.append(f" {confidence:.2f}")
    return text


def _status(session: TrackingSession) -> Panel:
    state = session.state
    text = Text()
    if isinstance(state, Stable):
        text.append("STABLE ", "bold green")
    else:
        text.append("STABILIZING ", "bold yellow")
    text.append_text(_confidence_bar(state.confidence))
    text.append(f"   {len(session.engine.buffer)}/{session.engine.buffer.capacity} fixes", "dim")
    if session.error is not None:
        text.append(f"\nerror: {session.error}", "bold red")
    return Panel(text, title="nearfix", title_align="left", height=4)


def _estimate(session: TrackingSession) -> Panel:
    estimate = session.estimate
    if estimate is None:
        return Panel(Text("no stable estimate yet", "dim"), title="estimate", border_style="dim")
    text = Text()
    text.append(f"{estimate.latitude:.6f}, {estimate.longitude:.6f}", "bold white")
    text.append(f"  ±{estimate.accuracy:.0f}m", "cyan")
    published = session.engine.throttle.last_published
    if published is not None:
        text.append(f"\nlast publish at {published:.0f}", "dim")
    return Panel(text, title="estimate", border_style="blue")


def proximity_table(results: list[ProximityResult]) -> Table:
    table = Table(expand=True, show_edge=False)
    table.add_column("subject")
    table.add_column("distance", justify="right")
    table.add_column("status")
    table.add_column("seen")
    for result in results:
        table.add_row(
            result.subject_id,
            f"{round(result.distance)}m",
            Text(result.bucket.label, _BUCKET_STYLE[result.bucket]),
            Text(result.last_seen, "green" if result.active else "dim"),
        )
    return table


def render(session: TrackingSession) -> Group:
    """Build one frame for the current session state."""
    nearby: Panel
    if session.nearby:
        nearby = Panel(proximity_table(session.nearby), title="nearby", border_style="blue")
    else:
        nearby = Panel(Text("nobody nearby", "dim"), title="nearby", border_style="dim")
    return Group(_status(session), _estimate(session), nearby)


class Dashboard:
    def __init__(self, session: TrackingSession, refresh: float = 0.5) -> None:
        self._session = session
        self._refresh = refresh

    async def run(self, done: asyncio.Event) -> None:
        """Redraw until `done` is set."""
        with Live(render(self._session), refresh_per_second=4) as live:
            while not done.is_set():
                live.update(render(self._session))
                try:
                    await asyncio.wait_for(done.wait(), timeout=self._refresh)
                except asyncio.TimeoutError:
                    pass
            live.update(render(self._session))
