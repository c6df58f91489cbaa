"""
Generic ODBC connection.

Connects with a plain ODBC connection string, which covers any database
that ships an ODBC driver (PostgreSQL, MySQL, SQL Server with SQL auth, ...).
"""
import asyncio
from typing import Any

from pydantic import Field, field_validator

from kig.utility.exceptions import QueryConnectionError

from .base import BaseConnection, BaseConnectionConfig


class OdbcConnectionConfig(BaseConnectionConfig):
    """
    Configuration for a generic ODBC connection.

    Example:
        ```yaml
        connections:
          crm:
            type: odbc
            connection_string: "DRIVER={PostgreSQL Unicode};SERVER=db;DATABASE=crm;UID=${CRM_USER};PWD=${CRM_PASSWORD}"
        ```
    """

    type: str = Field(default="odbc", description="Connection type")
    connection_string: str = Field(..., description="ODBC connection string")
    timeout: int = Field(default=30, ge=0, description="Login timeout in seconds")
    autocommit: bool = Field(
        default=True, description="Run statements outside explicit transactions"
    )

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v):
        """Validate connection string is not empty."""
        if not v or not v.strip():
            raise ValueError("ODBC connection_string cannot be empty")
        return v


class OdbcConnection(BaseConnection, connection_type="odbc"):
    """ODBC connection via pyodbc."""

    config_class = OdbcConnectionConfig

    async def _connect(self) -> Any:
        import pyodbc

        try:
            return await asyncio.to_thread(
                pyodbc.connect,
                self.config.connection_string,
                autocommit=self.config.autocommit,
                timeout=self.config.timeout,
            )
        except pyodbc.Error as e:
            raise QueryConnectionError(
                f"ODBC connection '{self.name}' failed: {str(e)}", cause=e
            ) from e

    def describe(self) -> str:
        # Only the driver part, the rest may hold credentials
        parts = [
            p for p in self.config.connection_string.split(";")
            if p.strip().upper().startswith("DRIVER=")
        ]
        return f"odbc {parts[0].strip()}" if parts else "odbc"
