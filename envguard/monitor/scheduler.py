"""Monitor scheduler — runs the store checks at fixed intervals.

Three independent tickers, one asyncio task each:

- rotation: secrets whose ``next_rotation`` has passed (every minute)
- unused: variables not updated for ``unused_days`` (every hour)
- duplicates: values shared by more than one variable (every hour)

Blocking SQLite calls run in the loop's default executor. Every check is a
no-op once the monitor is stopped, and ``stop()`` cancels the tickers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from rich.console import Console

from envguard.config import ProjectConfig, Settings, get_config
from .checks import (
    DuplicateGroup,
    StatusSummary,
    VariableRef,
    find_due_rotations,
    find_duplicates,
    find_unused,
    status_summary,
)

if TYPE_CHECKING:
    from envguard.notifications import NotificationManager
    from envguard.store import VariableStore

logger = logging.getLogger(__name__)

ROTATION_TITLE = "Rotation Required"


def _every_label(seconds: float) -> str:
    if seconds == 60:
        return "every minute"
    if seconds == 3600:
        return "every hour"
    if seconds % 3600 == 0:
        return f"every {int(seconds // 3600)} hours"
    if seconds % 60 == 0:
        return f"every {int(seconds // 60)} minutes"
    return f"every {seconds:g} seconds"


class EnvMonitor:
    """Periodically scans the variable store and reports problems.

    Lifecycle:
        monitor = EnvMonitor(store, settings, notifier)
        await monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        store: VariableStore,
        settings: Settings,
        notifier: NotificationManager | None = None,
        console: Console | None = None,
        err_console: Console | None = None,
        clock: Callable[[], datetime] | None = None,
        config_loader: Callable[[Settings], ProjectConfig | None] = get_config,
    ) -> None:
        self.store = store
        self.settings = settings
        self.notifier = notifier
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.config_loader = config_loader
        self.running = False
        self._tasks: list[asyncio.Task[None]] = []

    # -- lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        """Gate on config, schedule the tickers, then show the status once."""
        if self.running:
            return
        self._say("🔍 Starting EnvGuard Monitor...", "cyan")
        self.ensure_initialized()

        self.running = True
        s = self.settings
        schedule = (
            ("rotation", s.rotation_interval, self.check_rotation),
            ("unused", s.unused_interval, self.check_unused_variables),
            ("duplicates", s.duplicate_interval, self.check_duplicates),
        )
        for name, interval, check in schedule:
            self._tasks.append(asyncio.create_task(
                self._every(name, interval, check), name=f"envguard-{name}",
            ))
        logger.info(
            "Monitor started (rotation=%ss, unused=%ss, duplicates=%ss)",
            s.rotation_interval, s.unused_interval, s.duplicate_interval,
        )
        if self.notifier:
            logger.info("Notifications: %s", self.notifier.status())

        self._say("✓ Monitor started", "green")
        self._say(f"  - Checking rotation status {_every_label(s.rotation_interval)}", "dim")
        self._say(f"  - Checking unused variables {_every_label(s.unused_interval)}", "dim")
        self._say(f"  - Checking for duplicates {_every_label(s.duplicate_interval)}", "dim")

        await self.display_status()

    async def stop(self) -> None:
        """Stop reporting and cancel every ticker."""
        was_running = self.running
        self.running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self.notifier:
            await self.notifier.flush()
        if was_running:
            self._say("Monitor stopped", "yellow")
            logger.info("Monitor stopped")

    async def run_all_once(self) -> None:
        """Run every check a single time, without scheduling anything."""
        self.ensure_initialized()
        previous = self.running
        self.running = True
        try:
            await self.check_rotation()
            await self.check_unused_variables()
            await self.check_duplicates()
        finally:
            self.running = previous
        if self.notifier:
            await self.notifier.flush()

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "tickers": [t.get_name() for t in self._tasks if not t.done()],
            "db_path": str(self.store.db_path),
        }

    # -- checks ----------------------------------------------------------------

    async def check_rotation(self) -> list[VariableRef]:
        """Report secrets due for rotation and raise a desktop notification."""
        if not self.running:
            return []
        try:
            due = await self._query(find_due_rotations, self.store, self.clock())
        except Exception as exc:
            self._report_error("rotation", exc)
            return []
        if not self.running or not due:
            return []

        message = f"⚠️ {len(due)} secrets need rotation"
        self._say(message, "yellow")
        for ref in due:
            self._say(f"  - {ref.label}", "dim")
        self.send_notification(ROTATION_TITLE, message)
        return due

    async def check_unused_variables(self) -> list[VariableRef]:
        """Report variables that have not been updated recently."""
        if not self.running:
            return []
        days = self.settings.unused_days
        try:
            unused = await self._query(find_unused, self.store, self.clock(), days)
        except Exception as exc:
            self._report_error("unused", exc)
            return []
        if not self.running or not unused:
            return []

        self._say(f"📊 {len(unused)} variables unused for {days}+ days", "blue")
        for ref in unused[: self.settings.unused_display_limit]:
            self._say(f"  - {ref.label}", "dim")
        return unused

    async def check_duplicates(self) -> list[DuplicateGroup]:
        """Report values shared by more than one variable."""
        if not self.running:
            return []
        try:
            groups = await self._query(find_duplicates, self.store)
        except Exception as exc:
            self._report_error("duplicates", exc)
            return []
        if not self.running or not groups:
            return []

        self._say(f"🔴 {len(groups)} duplicate values found", "red")
        for group in groups[: self.settings.duplicate_display_limit]:
            self._say(f"  - {group.keys} ({group.count} times)", "dim")
        return groups

    async def display_status(self) -> StatusSummary | None:
        """Print the totals block. Failures are silent."""
        try:
            summary = await self._query(status_summary, self.store, self.clock())
        except Exception:
            logger.debug("Status display failed", exc_info=True)
            return None

        self._say("\n📊 Current Status:", "cyan")
        self._say(f"  Total Variables: {summary.total_variables}", "dim")
        self._say(f"  Secrets: {summary.secrets}", "dim")
        self._say(f"  Need Rotation: {summary.need_rotation}", "dim")
        self.console.print()
        return summary

    def send_notification(self, title: str, message: str) -> None:
        if self.notifier:
            self.notifier.notify(title, message, sound=True, wait=False)

    # -- internals -------------------------------------------------------------

    def ensure_initialized(self) -> ProjectConfig:
        config = self.config_loader(self.settings)
        if config is None:
            self.err_console.print(
                "✗ Not initialized (run `envguard init`)",
                style="red", markup=False, emoji=False, highlight=False, soft_wrap=True,
            )
            raise SystemExit(1)
        return config

    async def _every(
        self, name: str, interval: float, check: Callable[[], Awaitable[Any]],
    ) -> None:
        """Ticker: wait one interval, run the check, repeat until stopped."""
        while self.running:
            try:
                await asyncio.sleep(interval)
                if not self.running:
                    break
                await check()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Monitor check %s failed", name)

    async def _query(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.init_db)
        result = await loop.run_in_executor(None, fn, *args)
        logger.debug("%s returned %s", fn.__name__, len(result) if isinstance(result, list) else result)
        return result

    def _report_error(self, what: str, exc: BaseException) -> None:
        self.err_console.print(
            f"Error checking {what}: {exc}",
            style="red", markup=False, emoji=False, highlight=False, soft_wrap=True,
        )
        logger.debug("Check %s failed", what, exc_info=exc)

    def _say(self, text: str, style: str) -> None:
        self.console.print(
            text, style=style, markup=False, emoji=False, highlight=False, soft_wrap=True,
        )
