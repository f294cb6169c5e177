"""Configuration — runtime settings plus the persisted project config.

`Settings` is loaded from the environment / `.env` (prefix ``ENVGUARD_``).
`ProjectConfig` is written by ``envguard init`` and its presence gates
whether the monitor may run at all.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from envguard import __version__

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "ENVGUARD_",
        "extra": "ignore",
    }

    # Storage
    home: Path = Path.home() / ".envguard"
    db_path: Path | None = None  # defaults to <home>/envguard.db

    # Check cadence (seconds)
    rotation_interval: float = Field(default=60, gt=0)
    unused_interval: float = Field(default=3600, gt=0)
    duplicate_interval: float = Field(default=3600, gt=0)

    # Check tuning
    unused_days: int = Field(default=30, ge=1)
    unused_display_limit: int = Field(default=10, ge=1)
    duplicate_display_limit: int = Field(default=5, ge=1)

    # Notifications
    desktop_notifications: bool = True
    slack_webhook_url: str = ""  # optional, mirrors rotation alerts to Slack

    # Logging
    log_level: str = "INFO"

    @property
    def config_path(self) -> Path:
        return self.home / CONFIG_FILENAME

    @property
    def database_path(self) -> Path:
        return self.db_path or self.home / "envguard.db"


class ProjectConfig(BaseModel):
    """Persisted marker that the store has been initialised."""

    version: str = __version__
    created_at: str = ""
    db_path: str = ""


class ConfigExistsError(RuntimeError):
    """Raised when `init_config` would overwrite an existing config."""


def get_config(settings: Settings) -> ProjectConfig | None:
    """Return the project config, or None when EnvGuard is not initialised."""
    path = settings.config_path
    if not path.is_file():
        return None
    try:
        return ProjectConfig.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return None


def init_config(settings: Settings, force: bool = False) -> ProjectConfig:
    """Write the project config and create the database schema."""
    from envguard.store import VariableStore

    path = settings.config_path
    if path.exists() and not force:
        raise ConfigExistsError(f"EnvGuard already initialized at {path}")

    settings.home.mkdir(parents=True, exist_ok=True)
    config = ProjectConfig(
        created_at=datetime.now(timezone.utc).isoformat(),
        db_path=str(settings.database_path),
    )
    path.write_text(config.model_dump_json(indent=2), encoding="utf-8")

    store = VariableStore(settings.database_path)
    store.init_db()
    logger.info("Initialized EnvGuard config at %s (db=%s)", path, config.db_path)
    return config

