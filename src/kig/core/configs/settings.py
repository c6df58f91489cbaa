"""
Centralized default settings for kig.

These are the values a poller uses when its configuration does not say
otherwise. A workspace can override them under `options:` in kig.yml.
"""
from typing import Any, Dict

from pydantic import BaseModel, Field


class KigSettings(BaseModel):
    """
    Defaults for pollers and the coordinator.

    Convention over configuration: these work for most sources and can be
    tuned per workspace or per poller.
    """

    # Executor settings
    fetch_size: int = Field(
        default=10_000, ge=1, description="Rows per driver fetch batch"
    )
    lowercase_column_names: bool = Field(
        default=False, description="Lowercase column names of result rows"
    )
    connection_retry_attempts: int = Field(
        default=1, ge=1, description="Attempts to open a connection"
    )
    connection_retry_attempts_wait_time: float = Field(
        default=0.5, ge=0, description="Seconds between connection attempts"
    )

    # Coordinator settings
    queue_size: int = Field(
        default=1000,
        ge=0,
        description="Capacity of the shared record queue (0 = unbounded)",
    )

    def get_poller_settings(self) -> Dict[str, Any]:
        """Get the options every poller falls back to."""
        return {
            "fetch_size": self.fetch_size,
            "lowercase_column_names": self.lowercase_column_names,
            "connection_retry_attempts": self.connection_retry_attempts,
            "connection_retry_attempts_wait_time": (
                self.connection_retry_attempts_wait_time
            ),
        }

    def apply_poller_settings(self, options: Dict[str, Any]) -> Dict[str, Any]:
        """Apply settings to poller options, preserving existing values."""
        return {**self.get_poller_settings(), **options}

    def merged(self, overrides: Dict[str, Any]) -> "KigSettings":
        """Return new settings with workspace overrides applied."""
        return KigSettings(**{**self.model_dump(), **overrides})


# Global settings instance
settings = KigSettings()
