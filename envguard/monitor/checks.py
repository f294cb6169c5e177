"""Monitor checks — the SQL behind each periodic scan.

Each function is synchronous and takes the store plus an explicit ``now`` so
the scheduler can run it on an executor thread and tests can pin the clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from envguard.store import iso_utc

if TYPE_CHECKING:
    from envguard.store import VariableStore


# ── Models ───────────────────────────────────────────────────────────────────


@dataclass
class VariableRef:
    """A variable addressed as ``<environment>/<key>``."""

    environment: str
    key: str

    @property
    def label(self) -> str:
        return f"{self.environment}/{self.key}"


@dataclass
class DuplicateGroup:
    """Keys that share one non-empty value."""

    keys: str  # comma-joined, as GROUP_CONCAT returns them
    count: int


@dataclass
class StatusSummary:
    total_variables: int = 0
    secrets: int = 0
    need_rotation: int = 0


# ── Queries ──────────────────────────────────────────────────────────────────

_DUE_ROTATION_WHERE = (
    "v.is_secret = 1 "
    "AND v.rotation_enabled = 1 "
    "AND v.next_rotation IS NOT NULL "
    "AND v.next_rotation <= ?"
)


def find_due_rotations(store: VariableStore, now: datetime) -> list[VariableRef]:
    """Secrets with rotation enabled whose next rotation is at or before now."""
    rows = store.all(
        "SELECT v.key, e.name AS env_name "
        "FROM variables v "
        "JOIN environments e ON v.environment_id = e.id "
        f"WHERE {_DUE_ROTATION_WHERE} "
        "ORDER BY v.next_rotation, e.name, v.key",
        (iso_utc(now),),
    )
    return [VariableRef(environment=r["env_name"], key=r["key"]) for r in rows]


def find_unused(store: VariableStore, now: datetime, days: int = 30) -> list[VariableRef]:
    """Variables whose last update is strictly older than ``now - days``."""
    cutoff = iso_utc(now - timedelta(days=days))
    rows = store.all(
        "SELECT v.key, e.name AS env_name "
        "FROM variables v "
        "JOIN environments e ON v.environment_id = e.id "
        "WHERE v.updated_at < ? "
        "ORDER BY v.updated_at, e.name, v.key",
        (cutoff,),
    )
    return [VariableRef(environment=r["env_name"], key=r["key"]) for r in rows]


def find_duplicates(store: VariableStore) -> list[DuplicateGroup]:
    """Groups of variables sharing the same non-null, non-empty value."""
    rows = store.all(
        "SELECT COUNT(*) AS count, GROUP_CONCAT(key) AS keys "
        "FROM variables "
        "WHERE value IS NOT NULL AND value != '' "
        "GROUP BY value "
        "HAVING COUNT(*) > 1 "
        "ORDER BY count DESC, keys",
    )
    return [DuplicateGroup(keys=r["keys"], count=int(r["count"])) for r in rows]


def _count(store: VariableStore, query: str, params: tuple = ()) -> int:
    row = store.get(query, params)
    return int(row["count"]) if row and row.get("count") else 0


def status_summary(store: VariableStore, now: datetime) -> StatusSummary:
    """Totals shown in the status block."""
    return StatusSummary(
        total_variables=_count(store, "SELECT COUNT(*) AS count FROM variables"),
        secrets=_count(store, "SELECT COUNT(*) AS count FROM variables WHERE is_secret = 1"),
        need_rotation=_count(
            store,
            f"SELECT COUNT(*) AS count FROM variables v WHERE {_DUE_ROTATION_WHERE}",
            (iso_utc(now),),
        ),
    )
