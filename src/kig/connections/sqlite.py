"""
SQLite connection.

Simple, file-based data source - perfect for local development, tests,
and small deployments.
"""
import asyncio
import sqlite3
from datetime import date, datetime
from pathlib import Path
from typing import Any, List, Sequence

from pydantic import Field, field_validator

from kig.utility.exceptions import QueryConnectionError

from .base import BaseConnection, BaseConnectionConfig


class SqliteConnectionConfig(BaseConnectionConfig):
    """
    Configuration for a SQLite connection.

    Example:
        ```yaml
        connections:
          local:
            type: sqlite
            path: data/warehouse.db
        ```
    """

    type: str = Field(default="sqlite", description="Connection type")
    path: str = Field(..., description="Database file path, or ':memory:'")
    timeout: float = Field(
        default=5.0, gt=0, description="Seconds to wait for a database lock"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v):
        """Validate path is not empty."""
        if not v or not v.strip():
            raise ValueError("SQLite path cannot be empty")
        return v


class SqliteConnection(BaseConnection, connection_type="sqlite"):
    """
    SQLite connection using the standard library driver.

    The connection is created with check_same_thread=False because cycles
    run their queries on the ThreadPoolEngine. Cycles of one poller never
    overlap, so the connection is never used by two threads at once.
    """

    config_class = SqliteConnectionConfig

    async def _connect(self) -> sqlite3.Connection:
        path = self.config.path
        if path != ":memory:" and not path.startswith("file:"):
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        try:
            return await asyncio.to_thread(
                sqlite3.connect,
                path,
                timeout=self.config.timeout,
                check_same_thread=False,
                uri=path.startswith("file:"),
            )
        except sqlite3.Error as e:
            raise QueryConnectionError(
                f"Failed to open SQLite database '{path}': {str(e)}", cause=e
            ) from e

    def _prepare_values(self, values: Sequence[Any]) -> List[Any]:
        # sqlite3 no longer adapts datetimes by default
        prepared = []
        for value in values:
            if isinstance(value, datetime):
                prepared.append(value.isoformat(" "))
            elif isinstance(value, date):
                prepared.append(value.isoformat())
            else:
                prepared.append(value)
        return prepared

    def describe(self) -> str:
        return f"sqlite {self.config.path}"
