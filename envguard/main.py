"""Entry point for the EnvGuard monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from envguard.config import ConfigExistsError, Settings, init_config
from envguard.monitor import EnvMonitor
from envguard.notifications import NotificationManager
from envguard.store import VariableStore

console = Console()
err_console = Console(stderr=True)

logger = logging.getLogger(__name__)


def build_monitor(settings: Settings) -> EnvMonitor:
    """Wire the monitor to its store and notifier."""
    return EnvMonitor(
        store=VariableStore(settings.database_path),
        settings=settings,
        notifier=NotificationManager.from_settings(settings),
        console=console,
        err_console=err_console,
    )


async def serve(monitor: EnvMonitor) -> None:
    """Run the monitor until SIGINT / SIGTERM."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(stop_event.set))

    try:
        await monitor.start()
        logger.info("Monitor running: %s", monitor.status())
        await stop_event.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        await monitor.stop()


def run_init(settings: Settings, force: bool) -> None:
    try:
        config = init_config(settings, force=force)
    except ConfigExistsError as exc:
        err_console.print(f"✗ {exc} (use --force to overwrite)", style="red", markup=False)
        sys.exit(1)
    console.print(Panel(
        f"Config: {settings.config_path}\nDatabase: {config.db_path}",
        title="EnvGuard initialized", style="bold green",
    ))


def run_set(settings: Settings, args: argparse.Namespace) -> None:
    build_monitor(settings).ensure_initialized()
    next_rotation = None
    if args.rotate_days is not None:
        next_rotation = datetime.now(timezone.utc) + timedelta(days=args.rotate_days)

    VariableStore(settings.database_path).set_variable(
        args.environment, args.key, args.value,
        is_secret=args.secret or next_rotation is not None,
        rotation_enabled=next_rotation is not None,
        next_rotation=next_rotation,
    )
    kind = "secret" if args.secret or next_rotation is not None else "variable"
    console.print(f"✓ Saved {kind} {args.environment}/{args.key}", style="green", markup=False)


def run_status(settings: Settings) -> None:
    monitor = build_monitor(settings)
    monitor.ensure_initialized()
    asyncio.run(monitor.display_status())


def run_check(settings: Settings) -> None:
    monitor = build_monitor(settings)
    asyncio.run(monitor.run_all_once())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="EnvGuard environment monitor")
    sub = parser.add_subparsers(dest="command")

    init_parser = sub.add_parser("init", help="Create the config and database")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing config")

    set_parser = sub.add_parser("set", help="Add or update a variable")
    set_parser.add_argument("environment")
    set_parser.add_argument("key")
    set_parser.add_argument("value")
    set_parser.add_argument("--secret", action="store_true", help="Mark the variable as a secret")
    set_parser.add_argument(
        "--rotate-days", type=int, default=None,
        help="Enable rotation, due this many days from now (implies --secret)",
    )

    sub.add_parser("monitor", help="Run the monitor until interrupted")
    sub.add_parser("status", help="Print the current status once")
    sub.add_parser("check", help="Run every check once and exit")

    args = parser.parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as exc:
        err_console.print(f"✗ Invalid EnvGuard settings:\n{exc}", style="red", markup=False)
        sys.exit(1)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )

    if args.command == "init":
        run_init(settings, args.force)
    elif args.command == "set":
        run_set(settings, args)
    elif args.command == "monitor":
        asyncio.run(serve(build_monitor(settings)))
        sys.exit(0)
    elif args.command == "status":
        run_status(settings)
    elif args.command == "check":
        run_check(settings)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
