"""Replay entry point: recorded fixes -> session -> dashboard / log."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path

from nearfix.config import NearfixConfig, apply_overrides, load_config_file
from nearfix.engine import EngineUpdate
from nearfix.errors import LocationError
from nearfix.estimate.stabilizer import Stable
from nearfix.replay import MemoryStore, ReplayProvider, load_remotes, load_trace
from nearfix.session import TrackingSession

log = logging.getLogger("nearfix")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nearfix", description="Location stabilization replay")
    parser.add_argument("command", choices=["replay"], help="Subcommand")
    parser.add_argument("trace", type=Path, help="JSON-lines file of position fixes")
    parser.add_argument("--remotes", type=Path, default=None, help="JSON array of remote positions")
    parser.add_argument("--subject", type=str, default=None, help="Local subject id")
    parser.add_argument("--speed", type=float, default=1.0, help="Replay speed multiplier")
    parser.add_argument("--config", type=Path, default=None, help="TOML config file")
    parser.add_argument("--headless", action="store_true", help="No dashboard, log only")
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> NearfixConfig:
    config = NearfixConfig()
    config_path = args.config or (config.data_dir / "config.toml")
    apply_overrides(config, load_config_file(config_path))
    return config


def _state_logger():
    last_kind = ""

    def on_update(update: EngineUpdate) -> None:
        nonlocal last_kind
        kind = "stable" if isinstance(update.state, Stable) else "stabilizing"
        if kind != last_kind:
            log.info("state -> %s (confidence %.2f)", kind, update.state.confidence)
            last_kind = kind
        if update.publish is not None:
            log.debug("publish decision: %s", update.publish.value)

    return on_update


def _log_summary(session: TrackingSession) -> None:
    estimate = session.estimate
    if estimate is None:
        log.info("no stable estimate reached")
        return
    log.info(
        "estimate %.6f, %.6f ±%.0fm (confidence %.2f)",
        estimate.latitude,
        estimate.longitude,
        estimate.accuracy,
        estimate.confidence,
    )
    for result in session.nearby:
        log.info(
            "  %s: %dm %s, %s",
            result.subject_id,
            round(result.distance),
            result.bucket.label,
            result.last_seen,
        )


async def run(config: NearfixConfig, args: argparse.Namespace) -> int:
    fixes = load_trace(args.trace)
    if not fixes:
        log.error("no usable fixes in %s", args.trace)
        return 1
    remotes = load_remotes(args.remotes) if args.remotes is not None else []

    provider = ReplayProvider(fixes, speed=args.speed)
    store = MemoryStore(remotes)
    session = TrackingSession(
        provider,
        store,
        config,
        subject_id=args.subject,
        clock=provider.clock,
    )
    session.on_update(_state_logger())

    shutdown = asyncio.Event()

    def handle_signal() -> None:
        log.info("shutting down...")
        shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    try:
        await session.start()
    except LocationError as exc:
        log.error("cannot start tracking: %s", exc)
        return 2
    log.info("replaying %d fixes at %.1fx", len(fixes), args.speed)

    done = asyncio.Event()
    ui_task: asyncio.Task | None = None
    if not args.headless:
        from nearfix.ui.dashboard import Dashboard

        ui_task = asyncio.create_task(Dashboard(session).run(done))

    waiters = [
        asyncio.create_task(provider.finished.wait()),
        asyncio.create_task(shutdown.wait()),
    ]
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        await session.refresh_nearby()
        _log_summary(session)
    finally:
        for waiter in waiters:
            waiter.cancel()
        done.set()
        if ui_task is not None:
            await ui_task
        await session.stop()
    log.info("published %d positions", len(store.published))
    return 0


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    config = build_config(args)
    raise SystemExit(asyncio.run(run(config, args)))


if __name__ == "__main__":
    main()
