"""
Shared constants and default configurations for database connections.

Configuration models for default values used across connection types, so
that defaults are validated and defined in exactly one place.
"""

from pydantic import BaseModel, Field


class MssqlConnectionDefaults(BaseModel):
    """Default MSSQL connection configuration."""

    driver: str = Field(
        default="ODBC Driver 18 for SQL Server",
        description="ODBC driver name for SQL Server connections",
    )
    encrypt: str = Field(
        default="Yes", description="Enable encryption for SQL Server connections"
    )
    trust_cert: str = Field(
        default="Yes", description="Trust server certificate for SQL Server connections"
    )
    timeout: int = Field(default=30, ge=1, description="Connection timeout in seconds")


class FetchDefaults(BaseModel):
    """Default row fetching configuration shared by every connection type."""

    fetch_size: int = Field(
        default=10_000, ge=1, description="Rows fetched from the driver per batch"
    )


MSSQL_CONNECTION_DEFAULTS = MssqlConnectionDefaults()
FETCH_DEFAULTS = FetchDefaults()


def get_mssql_defaults() -> dict:
    """
    Get default MSSQL connection options.

    Returns:
        Dictionary with default MSSQL connection options
    """
    return MSSQL_CONNECTION_DEFAULTS.model_dump()
