"""
Query executor - binds a statement and streams its rows.

Every cycle gets a fresh query: the statement is bound against the
parameters of that cycle, run on the poller's connection, and its rows are
streamed back one at a time in the order the database returns them.
"""
from typing import Any, AsyncIterator, Mapping

from kig.connections import BaseConnection, Row, ThreadPoolEngine
from kig.messages import get_logger
from kig.utility.exceptions import QueryConnectionError, QueryError
from kig.utility.retry import with_retry

from .statement import Statement


class QueryExecutor:
    """
    Runs one statement on one connection.

    The executor owns the connection's lifecycle for its poller: open() when
    the poller starts and close() when it stops. Failures are wrapped in
    QueryError and never retried here; the poller's schedule is the retry
    boundary. Opening the connection may be retried when
    connection_retry_attempts > 1.

    Example:
        ```python
        executor = QueryExecutor("orders", SqliteConnection(...))
        await executor.open()
        async for row in executor.execute(statement, {"my_id": 231}):
            ...
        await executor.close()
        ```
    """

    def __init__(
        self,
        name: str,
        connection: BaseConnection,
        lowercase_column_names: bool = False,
        connection_retry_attempts: int = 1,
        connection_retry_attempts_wait_time: float = 0.5,
    ):
        self.name = name
        self.connection = connection
        self.lowercase_column_names = lowercase_column_names
        self.connection_retry_attempts = max(1, connection_retry_attempts)
        self.connection_retry_attempts_wait_time = connection_retry_attempts_wait_time
        self.logger = get_logger(f"kig.executor.{name}")

    async def open(self) -> None:
        """
        Open the connection, retrying connection failures if configured.

        Raises:
            QueryConnectionError: If every attempt fails
        """
        if self.connection.is_open:
            return

        opener = with_retry(
            retries=self.connection_retry_attempts,
            delay=self.connection_retry_attempts_wait_time,
            exceptions=(QueryConnectionError,),
            logger_name=f"kig.executor.{self.name}",
        )(self.connection.open)

        self.logger.debug(f"Opening connection ({self.connection.describe()})")
        await opener()

    async def close(self) -> None:
        """Close the connection."""
        await self.connection.close()

    async def execute(
        self, statement: Statement, parameters: Mapping[str, Any]
    ) -> AsyncIterator[Row]:
        """
        Bind the statement and stream its rows.

        Binding happens before any I/O, so an unresolved parameter fails the
        cycle without touching the database.

        Args:
            statement: Statement to run
            parameters: Parameters of this cycle

        Yields:
            Rows as dicts, in result order. The sequence is single-pass.

        Raises:
            BindingError: If a placeholder has no matching parameter
            QueryError: If the driver fails
        """
        bound = statement.bind(parameters)
        self.logger.debug(
            f"Executing: {' '.join(bound.sql.split())[:150]} "
            f"with {len(bound.values)} parameter(s)"
        )

        if not self.connection.is_open:
            raise QueryConnectionError(
                f"Connection for poller '{self.name}' is not open"
            )

        try:
            async for row in ThreadPoolEngine.execute_streaming(
                self.connection.execute, bound.sql, bound.values
            ):
                yield self._shape(row)
        except QueryError:
            raise
        except Exception as e:
            raise QueryError(
                f"Query failed for poller '{self.name}': {str(e)}", cause=e
            ) from e

    def _shape(self, row: Row) -> Row:
        if not self.lowercase_column_names:
            return row
        return {str(column).lower(): value for column, value in row.items()}
