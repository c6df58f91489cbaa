"""
Factory for creating pollers from configuration.

Everything a poller needs is wired here, explicitly: its own connection,
a query executor around it, a record emitter publishing to the shared
output, and the parsed schedule.
"""
from pathlib import Path
from typing import Any, Dict, Optional, Union

from kig.connections import BaseConnection
from kig.utility.exceptions import ConfigError

from .configs import KigSettings, PollerConfig, settings
from .executor import QueryExecutor
from .poller import Poller
from .record import Decorator, RecordEmitter


class PollerFactory:
    """
    Factory for creating Poller instances.

    Named connections are templates: every poller gets its own connection
    instance, so pollers never share a driver connection.
    """

    def __init__(
        self,
        connections: Optional[Dict[str, Dict[str, Any]]] = None,
        options: Optional[KigSettings] = None,
        base_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize the factory.

        Args:
            connections: Named connection configurations
            options: Defaults for options a poller does not set
            base_dir: Directory relative statement paths are resolved from
        """
        self.connections = connections or {}
        self.options = options or settings
        self.base_dir = base_dir

    def resolve_connection(
        self, name: str, config: PollerConfig
    ) -> Dict[str, Any]:
        """
        Build the connection configuration for one poller.

        fetch_size precedence: poller, then connection, then workspace options.

        Raises:
            ConfigError: If a named connection does not exist
        """
        if isinstance(config.connection, str):
            if config.connection not in self.connections:
                raise ConfigError(
                    f"Poller '{name}' refers to unknown connection "
                    f"'{config.connection}'"
                )
            connection = dict(self.connections[config.connection])
        else:
            connection = dict(config.connection)

        if config.fetch_size is not None:
            connection["fetch_size"] = config.fetch_size
        else:
            connection.setdefault("fetch_size", self.options.fetch_size)
        return connection

    def create_connection(self, name: str, config: PollerConfig) -> BaseConnection:
        """Create the connection of one poller."""
        return BaseConnection.create(name, self.resolve_connection(name, config))

    def create(self, name: str, config: PollerConfig, output) -> Poller:
        """
        Create a Poller from configuration.

        Args:
            name: Poller name
            config: Validated poller configuration
            output: Output boundary (anything with an async put())

        Returns:
            Poller in IDLE state

        Raises:
            ConfigError: If the connection cannot be configured
        """
        options = config.options(self.options)

        executor = QueryExecutor(
            name,
            self.create_connection(name, config),
            lowercase_column_names=options["lowercase_column_names"],
            connection_retry_attempts=options["connection_retry_attempts"],
            connection_retry_attempts_wait_time=options[
                "connection_retry_attempts_wait_time"
            ],
        )
        emitter = RecordEmitter(
            name,
            output,
            Decorator(type=config.type, tags=config.tags, add_field=config.add_field),
        )

        return Poller(
            name,
            config.statement,
            config.parameters,
            executor,
            emitter,
            schedule=config.schedule_spec,
            base_dir=self.base_dir,
        )
