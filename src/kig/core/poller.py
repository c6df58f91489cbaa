"""
Poller - runs one statement on one schedule, one cycle at a time.

The poller is the schedule controller of kig. It owns the parameters that
carry state from one cycle to the next, decides when cycles run, and makes
sure they never overlap.

Lifecycle:

    IDLE --start()--> ARMED --fire--> RUNNING --done--> ARMED ... --stop()--> STOPPED
    IDLE --start() without schedule--> RUNNING --done--> STOPPED

A cycle:
1. captures its start time once and stores it as `sql_last_start`
2. binds and runs the statement through the query executor
3. for every row, publishes a record and then folds the row into the
   watermarks, so a row's watermark only moves once it was published

Fires that arrive while a cycle is running are dropped, not queued, so a
slow query never builds up a backlog.
"""
import asyncio
from contextlib import aclosing
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Union

from kig.messages import KigLogger, get_logger
from kig.messages.logger import _get_event_loop_time
from kig.utility.exceptions import PollerStateError
from kig.utility.run_id import generate_run_id

from .executor import QueryExecutor
from .record import RecordEmitter
from .schedule import Schedule, utc_now
from .statement import Statement
from .watermark import SQL_LAST_START, update_watermarks


class PollerState(str, Enum):
    """Lifecycle states of a poller."""

    IDLE = "idle"
    ARMED = "armed"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class CycleResult:
    """What one completed cycle did."""

    cycle_id: str
    started_at: datetime
    rows: int
    duration: float


class Poller:
    """
    Runs one statement on one schedule and tracks watermarks across cycles.

    All collaborators are passed in explicitly. The statement may be given
    as a Statement or as the configured value (SQL text or a file path),
    which is resolved when the poller starts.

    Example:
        ```python
        poller = Poller(
            name="new_orders",
            statement="SELECT * FROM orders WHERE id > :last_max_id",
            parameters={"last_max_id": 0},
            executor=QueryExecutor("new_orders", connection),
            emitter=RecordEmitter("new_orders", queue),
            schedule=Schedule("*/5 * * * *"),
        )
        await poller.start()
        ...
        await poller.stop()
        ```
    """

    def __init__(
        self,
        name: str,
        statement: Union[Statement, str],
        parameters: Optional[Mapping[str, Any]],
        executor: QueryExecutor,
        emitter: RecordEmitter,
        schedule: Optional[Schedule] = None,
        base_dir: Optional[Union[str, Path]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize a poller.

        Args:
            name: Poller name (for logging and cycle ids)
            statement: Statement, SQL text, or path to a file holding SQL
            parameters: Initial parameters (user values, optional seeds)
            executor: Query executor bound to this poller's connection
            emitter: Record emitter publishing to the output queue
            schedule: Cron schedule, or None to run exactly once
            base_dir: Directory relative statement paths are resolved from
            clock: Wall clock used for `sql_last_start`
        """
        self.name = name
        self.executor = executor
        self.emitter = emitter
        self.schedule = schedule
        self.base_dir = base_dir
        self._clock = clock

        self._statement_source = statement
        self.statement: Optional[Statement] = (
            statement if isinstance(statement, Statement) else None
        )

        self._parameters: Dict[str, Any] = dict(parameters or {})
        self._state = PollerState.IDLE

        self._cycle_lock = asyncio.Lock()
        self._stop_requested = asyncio.Event()
        self._stopped = asyncio.Event()
        self._timer_task: Optional[asyncio.Task] = None

        # Running statistics
        self.cycles_run = 0
        self.cycles_failed = 0
        self.rows_total = 0
        self.fires_dropped = 0
        self.fires_skipped = 0
        self.last_error: Optional[BaseException] = None
        self.last_result: Optional[CycleResult] = None

        self.logger = get_logger(f"kig.poller.{name}")

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def parameters(self) -> Dict[str, Any]:
        """Snapshot of the current parameters, watermarks included."""
        return dict(self._parameters)

    async def start(self) -> None:
        """
        Load the statement, open the connection, then arm or run once.

        Without a schedule, exactly one cycle runs and the poller is STOPPED
        when start() returns. A failure of that cycle is re-raised after the
        poller stopped.

        Raises:
            PollerStateError: If the poller was already started
            ConfigError: If the statement is missing or empty
            QueryConnectionError: If the connection cannot be opened
        """
        if self._state is not PollerState.IDLE:
            raise PollerStateError(
                f"Poller '{self.name}' cannot start from state '{self._state.value}'"
            )

        try:
            self.statement = Statement.load(self._statement_source, self.base_dir)
            await self.executor.open()
        except Exception:
            self._mark_stopped()
            raise

        # stop() may have run while the connection was opening
        if self._stop_requested.is_set():
            await self._shutdown()
            return

        if self.statement.source:
            self.logger.debug(f"Loaded statement from {self.statement.source}")

        if self.schedule is None:
            self.logger.info("No schedule, running once")
            try:
                await self.run_cycle()
            finally:
                await self._shutdown()
            return

        self._state = PollerState.ARMED
        self._timer_task = asyncio.create_task(
            self._run_schedule(), name=f"kig-poller-{self.name}"
        )
        self.logger.info(
            f"Armed with schedule '{self.schedule.expression}', "
            f"next run at {self.schedule.next_fire():%Y-%m-%d %H:%M:%S}"
        )

    async def stop(self) -> None:
        """
        Cancel the schedule, wait for a running cycle, close the connection.

        There is no timeout: a cycle in flight always runs to completion.
        Calling stop() more than once is harmless.
        """
        if self._state is PollerState.STOPPED:
            return

        self._stop_requested.set()

        if self._timer_task is not None:
            await self._timer_task

        # A cycle started through fire() or run_cycle() may still be running
        async with self._cycle_lock:
            pass

        await self._shutdown()

    async def wait_stopped(self) -> None:
        """Wait until the poller reached STOPPED."""
        await self._stopped.wait()

    async def fire(self) -> bool:
        """
        Run a cycle now, unless one is already running.

        Returns:
            True if a cycle ran, False if the fire was dropped

        Raises:
            Whatever the cycle raised
        """
        if self._stop_requested.is_set() or self._state is PollerState.STOPPED:
            return False

        if self._cycle_lock.locked():
            self.fires_dropped += 1
            self.logger.warning("Previous cycle is still running, dropping this run")
            return False

        await self.run_cycle()
        return True

    async def run_cycle(self) -> CycleResult:
        """
        Run one cycle to completion.

        `sql_last_start` is written before the statement runs and stays
        written even when the cycle fails. Rows published before a failure
        keep their watermark updates.

        Returns:
            CycleResult describing the cycle

        Raises:
            PollerStateError: If the poller is stopped
            BindingError, QueryError, TypeMismatchError: Cycle failures
        """
        if self._state is PollerState.STOPPED:
            raise PollerStateError(f"Poller '{self.name}' is stopped")

        async with self._cycle_lock:
            if self._state is PollerState.STOPPED:
                raise PollerStateError(f"Poller '{self.name}' is stopped")
            if self.statement is None:
                self.statement = Statement.load(self._statement_source, self.base_dir)

            previous_state = self._state
            self._state = PollerState.RUNNING

            started_at = self._clock()
            self._parameters[SQL_LAST_START] = started_at
            cycle_id = generate_run_id([self.name, started_at.isoformat()])
            loop_start = _get_event_loop_time()
            rows = 0

            self.cycles_run += 1
            self.logger.start(f"Cycle {cycle_id[:8]}")

            try:
                async with aclosing(
                    self.executor.execute(self.statement, dict(self._parameters))
                ) as stream:
                    async for row in stream:
                        await self.emitter.publish(row)
                        self._parameters = update_watermarks(self._parameters, row)
                        rows += 1
            except Exception as e:
                self.cycles_failed += 1
                self.last_error = e
                raise
            finally:
                self.rows_total += rows
                if self._state is PollerState.RUNNING:
                    self._state = previous_state

            duration = _get_event_loop_time() - loop_start
            rate = rows / duration if duration > 0 else 0
            self.logger.success(KigLogger.CYCLE_TEMPLATE.format(rows, duration, rate))

            self.last_result = CycleResult(
                cycle_id=cycle_id, started_at=started_at, rows=rows, duration=duration
            )
            return self.last_result

    async def _run_schedule(self) -> None:
        """
        Timer loop of a scheduled poller.

        Cycles run inline, so the timer can never start a second cycle while
        one is running. Fire times that pass during a long cycle are counted
        as skipped. A failed cycle is logged and the schedule stays armed;
        the next fire time is the retry.
        """
        slot = self.schedule.next_fire()

        while not self._stop_requested.is_set():
            delay = max(0.0, (slot - datetime.now().astimezone()).total_seconds())
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=delay)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.fire()
            except Exception as e:
                self.logger.error(f"Cycle failed: {type(e).__name__}: {e}")

            now = datetime.now().astimezone()
            skipped = self.schedule.fires_between(slot, now)
            if skipped:
                self.fires_skipped += skipped
                self.logger.warning(
                    f"Cycle ran past {skipped} scheduled "
                    f"run{'s' if skipped != 1 else ''}, skipping "
                    f"{'them' if skipped != 1 else 'it'}"
                )
            slot = self.schedule.next_fire(max(slot, now))

    async def _shutdown(self) -> None:
        await self.executor.close()
        self._mark_stopped()
        self.logger.info(
            f"Stopped after {self.cycles_run:,} "
            f"cycle{'s' if self.cycles_run != 1 else ''} "
            f"({self.rows_total:,} rows)"
        )

    def _mark_stopped(self) -> None:
        self._state = PollerState.STOPPED
        self._stop_requested.set()
        self._stopped.set()

    def stats(self) -> Dict[str, Any]:
        """Running statistics for summaries and `kig check`."""
        return {
            "name": self.name,
            "state": self._state.value,
            "cycles": self.cycles_run,
            "failed_cycles": self.cycles_failed,
            "rows": self.rows_total,
            "dropped_fires": self.fires_dropped,
            "skipped_fires": self.fires_skipped,
            "error": str(self.last_error) if self.last_error else None,
        }
