"""Desktop notifications via the platform's notification helper.

- macOS: ``osascript -e 'display notification ...'``
- Linux: ``notify-send``
- anything else: disabled (logged once at DEBUG)
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys

logger = logging.getLogger(__name__)

APP_NAME = "EnvGuard Monitor"


def _escape(s: str) -> str:
    return s.replace("\\", "\\\\").replace('"', '\\"')


class DesktopNotifier:
    """Fire-and-forget desktop notifications."""

    def __init__(self, app_name: str = APP_NAME, platform: str | None = None) -> None:
        self.app_name = app_name
        self.platform = platform or sys.platform

    def build_command(self, title: str, message: str, sound: bool = True) -> list[str] | None:
        """Return the helper command line for this platform, or None."""
        if self.platform == "darwin":
            script = (
                f'display notification "{_escape(message)}" '
                f'with title "{_escape(self.app_name)}" '
                f'subtitle "{_escape(title)}"'
            )
            if sound:
                script += ' sound name "default"'
            return ["osascript", "-e", script]

        if self.platform.startswith("linux"):
            binary = shutil.which("notify-send")
            if not binary:
                return None
            cmd = [binary, "--app-name", self.app_name]
            if sound:
                cmd += ["--hint", "string:sound-name:message-new-instant"]
            cmd += [f"{self.app_name}: {title}", message]
            return cmd

        return None

    def notify(self, title: str, message: str, sound: bool = True, wait: bool = False) -> bool:
        """Show a notification. Never raises; returns whether it was dispatched."""
        cmd = self.build_command(title, message, sound)
        if cmd is None:
            logger.debug("No desktop notifier available on %s", self.platform)
            return False
        try:
            if wait:
                subprocess.run(cmd, capture_output=True, timeout=10)
            else:
                subprocess.Popen(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except (OSError, subprocess.SubprocessError) as e:
            logger.warning("Failed to send notification: %s", e)
            return False
        return True
