"""Notifications — desktop alerts plus an optional Slack webhook mirror.

The desktop helper is spawned without waiting. Slack posts are
fire-and-forget tasks on the running event loop (httpx async).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .desktop import APP_NAME, DesktopNotifier

logger = logging.getLogger(__name__)


class NotificationManager:
    """Central dispatcher for desktop / Slack notifications."""

    def __init__(
        self,
        desktop: DesktopNotifier | None = None,
        slack_webhook: str = "",
    ) -> None:
        self.desktop = desktop
        self.slack_webhook = slack_webhook
        self._pending: set[asyncio.Task[None]] = set()

    @classmethod
    def from_settings(cls, settings: Any) -> "NotificationManager":
        desktop = DesktopNotifier() if settings.desktop_notifications else None
        return cls(desktop=desktop, slack_webhook=settings.slack_webhook_url)

    @property
    def is_enabled(self) -> bool:
        return bool(self.desktop or self.slack_webhook)

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self.is_enabled,
            "desktop": self.desktop is not None,
            "slack_configured": bool(self.slack_webhook),
        }

    def notify(self, title: str, message: str, sound: bool = True, wait: bool = False) -> None:
        """Dispatch to all configured channels without waiting on delivery."""
        if self.desktop:
            self.desktop.notify(title, message, sound=sound, wait=wait)

        if self.slack_webhook:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No running loop, skipping Slack notification")
                return
            task = loop.create_task(self._send_slack(f"*{APP_NAME}: {title}*\n{message}"))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for in-flight webhook posts to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _send_slack(self, text: str) -> None:
        """POST to Slack incoming webhook."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    self.slack_webhook,
                    json={"text": text, "mrkdwn": True},
                )
                if resp.status_code != 200:
                    logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except Exception as exc:
            logger.warning("Slack notification failed: %s", exc)


__all__ = ["APP_NAME", "DesktopNotifier", "NotificationManager"]
