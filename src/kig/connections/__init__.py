"""
Connection management for kig.

Key components:
- BaseConnection: Interface every polling connection implements
- SqliteConnection: SQLite via the standard library driver
- OdbcConnection: Any ODBC data source via pyodbc
- MssqlConnection: MS SQL Server (Azure AD or SQL authentication)
- ThreadPoolEngine: Runs blocking drivers off the event loop
"""
from .base import BaseConnection, BaseConnectionConfig, Row
from .constants import get_mssql_defaults
from .execution import ThreadPoolEngine
from .mssql import MssqlConnection, MssqlConnectionConfig
from .odbc import OdbcConnection, OdbcConnectionConfig
from .sqlite import SqliteConnection, SqliteConnectionConfig

__all__ = [
    "BaseConnection",
    "BaseConnectionConfig",
    "Row",
    "ThreadPoolEngine",
    "SqliteConnection",
    "SqliteConnectionConfig",
    "OdbcConnection",
    "OdbcConnectionConfig",
    "MssqlConnection",
    "MssqlConnectionConfig",
    "get_mssql_defaults",
]
