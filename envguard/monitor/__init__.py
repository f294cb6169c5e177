"""Monitor subsystem — store checks and their scheduler."""

from .checks import DuplicateGroup, StatusSummary, VariableRef
from .scheduler import EnvMonitor
