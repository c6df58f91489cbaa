"""
Configuration for pollers.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from kig.utility.exceptions import ConfigError

from ..schedule import Schedule
from .settings import KigSettings


class PollerConfig(BaseModel):
    """
    Configuration for one poller.

    Simple (a named connection, SQL inline):
    ```yaml
    pollers:
      new_orders:
        connection: shop
        statement: SELECT * FROM orders WHERE id > :last_max_id
        parameters:
          last_max_id: 0
        schedule: "*/5 * * * *"
    ```

    Advanced (inline connection, SQL in a file, decoration):
    ```yaml
    pollers:
      customers:
        connection:
          type: mssql
          server: ${MSSQL_SERVER}
          database: crm
        statement: sql/customers.sql
        schedule: "0 * * * *"
        type: customer
        tags: [crm, hourly]
        add_field:
          source: crm
        lowercase_column_names: true
    ```

    Without a schedule the poller runs once and stops.
    """

    name: Optional[str] = Field(
        default=None, description="Poller name (taken from the config key)"
    )
    connection: Union[str, Dict[str, Any]] = Field(
        ..., description="Connection name or inline connection configuration"
    )
    statement: str = Field(
        ..., description="SQL text, or path to a file containing the SQL"
    )
    parameters: Dict[str, Any] = Field(
        default_factory=dict, description="Initial statement parameters"
    )
    schedule: Optional[str] = Field(
        default=None, description="Cron expression (omit to run once)"
    )

    # Decoration
    type: Optional[str] = Field(default=None, description="Record type field")
    tags: List[str] = Field(default_factory=list, description="Record tags")
    add_field: Dict[str, Any] = Field(
        default_factory=dict, description="Extra fields added to every record"
    )

    # Execution options (None = workspace/connection defaults)
    lowercase_column_names: Optional[bool] = Field(default=None)
    fetch_size: Optional[int] = Field(default=None, ge=1)
    connection_retry_attempts: Optional[int] = Field(default=None, ge=1)
    connection_retry_attempts_wait_time: Optional[float] = Field(default=None, ge=0)

    @field_validator("statement")
    @classmethod
    def validate_statement(cls, v):
        """Validate statement is not empty."""
        if not v or not v.strip():
            raise ValueError("Statement cannot be empty")
        return v

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v):
        """Validate the cron expression up front."""
        if v is None:
            return v
        try:
            return Schedule(v).expression
        except ConfigError as e:
            raise ValueError(str(e)) from e

    @field_validator("connection")
    @classmethod
    def validate_connection(cls, v):
        """Validate connection reference."""
        if isinstance(v, str) and not v.strip():
            raise ValueError("Connection name cannot be empty")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def parse_tags(cls, v):
        """Accept a single tag as a plain string."""
        if isinstance(v, str):
            return [v]
        return v

    @property
    def schedule_spec(self) -> Optional[Schedule]:
        """The parsed schedule, None when the poller runs once."""
        return Schedule.parse(self.schedule)

    def options(self, defaults: KigSettings) -> Dict[str, Any]:
        """Execution options with unset values taken from the workspace settings."""
        own = {
            "lowercase_column_names": self.lowercase_column_names,
            "fetch_size": self.fetch_size,
            "connection_retry_attempts": self.connection_retry_attempts,
            "connection_retry_attempts_wait_time": (
                self.connection_retry_attempts_wait_time
            ),
        }
        return defaults.apply_poller_settings(
            {k: v for k, v in own.items() if v is not None}
        )
