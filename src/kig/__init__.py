"""
A cozy SQL poller: run a statement on a schedule, emit its rows as records,
and remember where the last run left off.
"""
from .core import (
    Coordinator,
    Poller,
    PollerConfig,
    PollerState,
    QueryExecutor,
    Record,
    RecordEmitter,
    Schedule,
    Statement,
    Workspace,
)

# Connection implementations register themselves by type name on import, so
# they must be imported for BaseConnection.create() to find them.
from .connections import (  # noqa: F401
    BaseConnection,
    MssqlConnection,
    OdbcConnection,
    SqliteConnection,
)

__version__ = "0.1.0"

__all__ = [
    # Core components
    "Coordinator",
    "Poller",
    "PollerState",
    "QueryExecutor",
    "RecordEmitter",
    "Record",
    "Schedule",
    "Statement",
    "Workspace",
    # Config classes
    "PollerConfig",
    # Connections
    "BaseConnection",
    "SqliteConnection",
    "OdbcConnection",
    "MssqlConnection",
]
