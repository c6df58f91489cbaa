"""
Core components of kig.
"""
from .coordinator import Coordinator, validate_config
from .configs import KigSettings, PollerConfig
from .executor import QueryExecutor
from .factory import PollerFactory
from .poller import CycleResult, Poller, PollerState
from .record import Decorator, Record, RecordEmitter
from .schedule import Schedule
from .sink import JsonLinesSink
from .statement import BoundStatement, Statement
from .watermark import update_watermarks
from .workspace import Workspace, WorkspaceConfig

__all__ = [
    "BoundStatement",
    "Coordinator",
    "CycleResult",
    "Decorator",
    "JsonLinesSink",
    "KigSettings",
    "Poller",
    "PollerConfig",
    "PollerFactory",
    "PollerState",
    "QueryExecutor",
    "Record",
    "RecordEmitter",
    "Schedule",
    "Statement",
    "Workspace",
    "WorkspaceConfig",
    "update_watermarks",
    "validate_config",
]
