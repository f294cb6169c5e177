"""Shared test fixtures."""

from __future__ import annotations

import io
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console

from envguard.config import Settings, init_config
from envguard.monitor import EnvMonitor
from envguard.store import VariableStore

NOW = datetime.now(timezone.utc).replace(microsecond=0)


class FakeNotifier:
    """Records notifications instead of showing them."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.flushed = 0

    def notify(self, title: str, message: str, sound: bool = True, wait: bool = False) -> None:
        self.sent.append({"title": title, "message": message, "sound": sound, "wait": wait})

    def status(self) -> dict[str, Any]:
        return {"enabled": True, "desktop": False, "slack_configured": False, "fake": True}

    async def flush(self) -> None:
        self.flushed += 1


def make_console() -> Console:
    return Console(file=io.StringIO(), width=200, color_system=None, force_terminal=False)


def output(console: Console) -> str:
    return console.file.getvalue()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in a temp dir, not yet initialized."""
    return Settings(home=tmp_path / "envguard", _env_file=None)


@pytest.fixture
def initialized(settings: Settings) -> Settings:
    init_config(settings)
    return settings


@pytest.fixture
def store(initialized: Settings) -> VariableStore:
    s = VariableStore(initialized.database_path)
    s.init_db()
    return s


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def monitor(store: VariableStore, initialized: Settings, notifier: FakeNotifier) -> EnvMonitor:
    """Monitor wired to a temp store, capturing consoles and a pinned clock."""
    return EnvMonitor(
        store=store,
        settings=initialized,
        notifier=notifier,
        console=make_console(),
        err_console=make_console(),
        clock=lambda: NOW,
    )
