"""Storage subsystem — SQLite environments and variables."""

from .database import VariableStore, iso_utc
