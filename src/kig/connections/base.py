"""
Base connection interface for polling data sources.

A connection is opened once when a poller starts and closed when it stops.
In between, every polling cycle calls `execute()` to stream the rows of one
statement. Database-specific subclasses only need to know how to connect.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type, Union

from pydantic import BaseModel, Field, ValidationError

from kig.messages import get_logger
from kig.utility.exceptions import ConfigError, QueryConnectionError

from .constants import FETCH_DEFAULTS
from .execution import ThreadPoolEngine

Row = Dict[str, Any]


class BaseConnectionConfig(BaseModel):
    """Configuration shared by every connection type."""

    type: str = Field(..., description="Connection type (sqlite, odbc, mssql)")
    fetch_size: int = Field(
        default=FETCH_DEFAULTS.fetch_size,
        ge=1,
        description="Rows fetched from the driver per batch",
    )
    test_query: str = Field(
        default="SELECT 1", description="Query used by 'kig check --connections'"
    )


class BaseConnection(ABC):
    """
    Abstract base class for polling connections.

    Subclasses register themselves under a type name, which is what the
    `type:` key of a connection configuration refers to.

    Example:
        ```python
        class PostgresConnection(BaseConnection, connection_type="postgres"):
            config_class = PostgresConnectionConfig

            async def _connect(self) -> Any:
                return await asyncio.to_thread(psycopg.connect, self.config.dsn)
        ```
    """

    _registry: Dict[str, Type["BaseConnection"]] = {}
    config_class: Type[BaseConnectionConfig] = BaseConnectionConfig
    connection_type: str = ""

    def __init_subclass__(cls, connection_type: str = None):
        super().__init_subclass__()
        if connection_type:
            cls._registry[connection_type] = cls
            cls.connection_type = connection_type

    @classmethod
    def create(
        cls, name: str, config: Union[Dict[str, Any], BaseConnectionConfig]
    ) -> "BaseConnection":
        """
        Create a connection using the registry pattern.

        Args:
            name: Name for the connection (for logging)
            config: Connection configuration (dict or config model)

        Returns:
            Connection instance of the appropriate type

        Raises:
            ConfigError: If the type is unknown or the configuration is invalid
        """
        if isinstance(config, BaseConnectionConfig):
            connection_type = config.type
        elif isinstance(config, dict):
            connection_type = config.get("type")
        else:
            raise ConfigError(f"Invalid connection config for '{name}': {config!r}")

        if not connection_type:
            raise ConfigError(f"Connection '{name}' is missing a 'type'")
        if connection_type not in cls._registry:
            raise ConfigError(
                f"Unknown connection type '{connection_type}' for '{name}'. "
                f"Available types: {sorted(cls._registry)}"
            )

        connection_class = cls._registry[connection_type]
        if isinstance(config, dict):
            try:
                config = connection_class.config_class(**config)
            except ValidationError as e:
                raise ConfigError(
                    f"Invalid configuration for connection '{name}': {e}"
                ) from e

        return connection_class(name, config)

    @classmethod
    def available_types(cls) -> List[str]:
        """Get the registered connection type names."""
        return sorted(cls._registry)

    def __init__(self, name: str, config: BaseConnectionConfig):
        """
        Initialize base connection.

        Args:
            name: Name of this connection (for logging)
            config: Validated connection configuration
        """
        self.name = name
        self.config = config
        self.fetch_size = config.fetch_size
        self._connection: Optional[Any] = None
        self.logger = get_logger(f"kig.connections.{self.connection_type or 'base'}")

    @property
    def is_open(self) -> bool:
        """Whether open() has been called without a matching close()."""
        return self._connection is not None

    async def open(self) -> None:
        """
        Open the underlying driver connection.

        Calling open() on an open connection does nothing.

        Raises:
            QueryConnectionError: If the connection cannot be established
        """
        if self._connection is not None:
            return
        self._connection = await self._connect()
        self.logger.debug(f"Opened connection '{self.name}'")

    async def close(self) -> None:
        """Close the underlying driver connection, if open."""
        if self._connection is None:
            return

        connection, self._connection = self._connection, None
        try:
            await asyncio.to_thread(connection.close)
            self.logger.debug(f"Closed connection '{self.name}'")
        except Exception as e:
            self.logger.warning(f"Error closing connection '{self.name}': {str(e)}")

    @abstractmethod
    async def _connect(self) -> Any:
        """
        Create and return a new DBAPI connection.

        Should wrap all blocking I/O in asyncio.to_thread() and raise
        QueryConnectionError (chained) when the driver fails.
        """
        pass

    def execute(self, sql: str, values: Sequence[Any]) -> Iterator[Row]:
        """
        Run a qmark-style statement and lazily yield its rows as dicts.

        This is a blocking generator. The query executor runs it on the
        ThreadPoolEngine so the event loop keeps running.

        Args:
            sql: Statement with `?` placeholders
            values: Positional values for the placeholders

        Yields:
            One dict per result row, in the order the database returns them.
            Values are passed through exactly as the driver returns them.
        """
        if self._connection is None:
            raise QueryConnectionError(f"Connection '{self.name}' is not open")

        cursor = self._connection.cursor()
        try:
            prepared = self._prepare_values(values)
            if prepared:
                cursor.execute(sql, prepared)
            else:
                cursor.execute(sql)
            if cursor.description is None:
                return
            # A repeated column name keeps the value of its last occurrence
            columns = [column[0] for column in cursor.description]
            while True:
                batch = cursor.fetchmany(self.fetch_size)
                if not batch:
                    break
                for row in batch:
                    yield dict(zip(columns, row))
        finally:
            cursor.close()

    def _prepare_values(self, values: Sequence[Any]) -> List[Any]:
        """Convert bound values into types the driver accepts."""
        return list(values)

    async def test(self) -> List[Row]:
        """
        Open (if needed) and run the configured test query.

        Returns:
            The rows returned by the test query
        """
        await self.open()
        return await ThreadPoolEngine.execute(
            lambda: list(self.execute(self.config.test_query, []))
        )

    def describe(self) -> str:
        """Short, credential-free description for logs and `kig check`."""
        return self.connection_type
