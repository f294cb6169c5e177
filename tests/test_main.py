"""Tests for the envguard CLI."""

from __future__ import annotations

import asyncio
import os
import signal
import sys
from datetime import timedelta
from pathlib import Path

import pytest
from conftest import NOW, FakeNotifier, make_console, output

from envguard import main as cli
from envguard.config import Settings
from envguard.monitor import EnvMonitor
from envguard.store import VariableStore


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a temp home and keep stray .env files out."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENVGUARD_HOME", str(tmp_path / "envguard"))
    monkeypatch.setenv("ENVGUARD_DESKTOP_NOTIFICATIONS", "false")
    return tmp_path / "envguard"


class TestMain:
    def test_no_command_prints_help(self, home: Path, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main([])
        assert exc_info.value.code == 1
        assert "usage" in capsys.readouterr().out

    def test_init(self, home: Path, capsys) -> None:
        cli.main(["init"])
        assert (home / "config.json").is_file()
        assert (home / "envguard.db").is_file()
        assert "EnvGuard initialized" in capsys.readouterr().out

    def test_init_twice_fails_without_force(self, home: Path) -> None:
        cli.main(["init"])
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["init"])
        assert exc_info.value.code == 1
        cli.main(["init", "--force"])

    def test_status_and_check_require_init(self, home: Path, capsys) -> None:
        for command in ("status", "check", "monitor"):
            with pytest.raises(SystemExit) as exc_info:
                cli.main([command])
            assert exc_info.value.code == 1
        assert "Not initialized" in capsys.readouterr().err

    def test_status(self, home: Path, capsys) -> None:
        cli.main(["init"])
        VariableStore(home / "envguard.db").set_variable("prod", "API_KEY", "x", is_secret=True)
        capsys.readouterr()

        cli.main(["status"])
        out = capsys.readouterr().out
        assert "Total Variables: 1" in out
        assert "Secrets: 1" in out

    def test_check(self, home: Path, capsys) -> None:
        cli.main(["init"])
        VariableStore(home / "envguard.db").set_variable(
            "prod", "API_KEY", "x", is_secret=True, rotation_enabled=True,
            next_rotation=NOW - timedelta(days=1),
        )
        capsys.readouterr()

        cli.main(["check"])
        out = capsys.readouterr().out
        assert "1 secrets need rotation" in out
        assert "prod/API_KEY" in out

    def test_set_plain_and_secret(self, home: Path, capsys) -> None:
        cli.main(["init"])
        cli.main(["set", "prod", "DB_URL", "postgres://db"])
        cli.main(["set", "prod", "API_KEY", "abc", "--rotate-days", "0"])
        assert "Saved secret prod/API_KEY" in capsys.readouterr().out

        rows = VariableStore(home / "envguard.db").all(
            "SELECT key, value, is_secret, rotation_enabled, next_rotation "
            "FROM variables ORDER BY key",
        )
        assert [r["key"] for r in rows] == ["API_KEY", "DB_URL"]
        assert rows[0]["is_secret"] == 1
        assert rows[0]["rotation_enabled"] == 1
        assert rows[0]["next_rotation"] is not None
        assert rows[1]["is_secret"] == 0
        assert rows[1]["next_rotation"] is None

        cli.main(["check"])
        assert "prod/API_KEY" in capsys.readouterr().out

    def test_set_requires_init(self, home: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["set", "prod", "K", "v"])
        assert exc_info.value.code == 1

    def test_invalid_settings_exit_cleanly(self, home: Path, monkeypatch, capsys) -> None:
        monkeypatch.setenv("ENVGUARD_ROTATION_INTERVAL", "0")
        with pytest.raises(SystemExit) as exc_info:
            cli.main(["status"])
        assert exc_info.value.code == 1
        assert "Invalid EnvGuard settings" in capsys.readouterr().err


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestServe:
    def test_sigterm_stops_monitor(self, store: VariableStore, initialized: Settings, caplog) -> None:
        notifier = FakeNotifier()
        monitor = EnvMonitor(
            store=store, settings=initialized, notifier=notifier,
            console=make_console(), err_console=make_console(), clock=lambda: NOW,
        )

        async def scenario() -> None:
            loop = asyncio.get_running_loop()
            loop.call_later(0.1, os.kill, os.getpid(), signal.SIGTERM)
            await asyncio.wait_for(cli.serve(monitor), timeout=5)

        with caplog.at_level("INFO", logger="envguard.main"):
            asyncio.run(scenario())
        assert "Monitor running:" in caplog.text
        out = output(monitor.console)
        assert "✓ Monitor started" in out
        assert "Monitor stopped" in out
        assert monitor.running is False
        assert monitor.status()["tickers"] == []

    def test_signal_during_startup_is_handled(self, store: VariableStore, initialized: Settings) -> None:
        monitor = EnvMonitor(
            store=store, settings=initialized, notifier=FakeNotifier(),
            console=make_console(), err_console=make_console(), clock=lambda: NOW,
        )
        real_start = monitor.start

        async def interrupted_start() -> None:
            os.kill(os.getpid(), signal.SIGINT)
            await asyncio.sleep(0.05)
            await real_start()

        monitor.start = interrupted_start

        asyncio.run(asyncio.wait_for(cli.serve(monitor), timeout=5))
        assert "Monitor stopped" in output(monitor.console)
        assert monitor.status()["tickers"] == []
