"""Variable store — SQLite tables for environments and their variables.

The monitor only reads from here. Writes serve ``envguard init``
and ``envguard set``.

Timestamps are ISO-8601 strings in UTC (``+00:00``), so string comparison in
SQL matches chronological order.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS environments (
        id          INTEGER PRIMARY KEY AUTOINCREMENT,
        name        TEXT NOT NULL UNIQUE,
        created_at  TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS variables (
        id               INTEGER PRIMARY KEY AUTOINCREMENT,
        environment_id   INTEGER NOT NULL REFERENCES environments (id) ON DELETE CASCADE,
        key              TEXT NOT NULL,
        value            TEXT,
        is_secret        INTEGER NOT NULL DEFAULT 0,
        rotation_enabled INTEGER NOT NULL DEFAULT 0,
        next_rotation    TEXT,
        created_at       TEXT NOT NULL,
        updated_at       TEXT NOT NULL,
        UNIQUE (environment_id, key)
    );

    CREATE INDEX IF NOT EXISTS idx_variables_rotation
        ON variables (is_secret, rotation_enabled, next_rotation);

    CREATE INDEX IF NOT EXISTS idx_variables_updated
        ON variables (updated_at);
"""


def iso_utc(value: datetime | str | None = None) -> str:
    """Normalise a timestamp to the stored ISO-8601 UTC form.

    Naive datetimes are taken as UTC. Strings are parsed as ISO-8601 (``T`` or
    space separated) and go through the same conversion.
    """
    if isinstance(value, str):
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        value = datetime.fromisoformat(value)
    if value is None:
        value = datetime.now(timezone.utc)
    elif value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class VariableStore:
    """SQLite-backed environment/variable storage."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._initialized = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        # One connection per call: queries run on executor threads.
        conn = sqlite3.connect(str(self._db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create the schema if needed. Safe to call before every query."""
        if self._initialized:
            return
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        self._initialized = True
        logger.debug("Variable store ready at %s", self._db_path)

    # ── Generic queries ──────────────────────────────────────────────────

    def all(self, query: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        """Run a query and return every row as a dict."""
        with self._connect() as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [dict(r) for r in rows]

    def get(self, query: str, params: Sequence[Any] = ()) -> dict[str, Any] | None:
        """Run a query and return the first row, or None."""
        with self._connect() as conn:
            row = conn.execute(query, tuple(params)).fetchone()
        return dict(row) if row else None

    # ── Writes ───────────────────────────────────────────────────────────

    def add_environment(self, name: str) -> int:
        """Create an environment (or return the id of an existing one)."""
        self.init_db()
        with self._connect() as conn:
            conn.execute(
                "INSERT INTO environments (name, created_at) VALUES (?, ?) "
                "ON CONFLICT (name) DO NOTHING",
                (name, iso_utc()),
            )
            row = conn.execute(
                "SELECT id FROM environments WHERE name = ?", (name,),
            ).fetchone()
        return int(row["id"])

    def set_variable(
        self,
        environment: str,
        key: str,
        value: str | None,
        *,
        is_secret: bool = False,
        rotation_enabled: bool = False,
        next_rotation: datetime | str | None = None,
        updated_at: datetime | str | None = None,
    ) -> int:
        """Insert or update a variable in the named environment."""
        env_id = self.add_environment(environment)
        now = iso_utc()
        updated = iso_utc(updated_at) if updated_at is not None else now
        rotation = iso_utc(next_rotation) if next_rotation is not None else None

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO variables
                    (environment_id, key, value, is_secret, rotation_enabled,
                     next_rotation, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (environment_id, key) DO UPDATE SET
                    value = excluded.value,
                    is_secret = excluded.is_secret,
                    rotation_enabled = excluded.rotation_enabled,
                    next_rotation = excluded.next_rotation,
                    updated_at = excluded.updated_at
                """,
                (env_id, key, value, int(is_secret), int(rotation_enabled),
                 rotation, now, updated),
            )
            row = conn.execute(
                "SELECT id FROM variables WHERE environment_id = ? AND key = ?",
                (env_id, key),
            ).fetchone()
        return int(row["id"])
