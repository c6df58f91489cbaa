"""
Coordinator runs the pollers of a workspace.

The coordinator's responsibility is to:
1. Load the workspace configuration
2. Build every poller against one shared output queue
3. Drain that queue into a record sink
4. Start all pollers and stop them on SIGINT/SIGTERM or request_stop()
5. Report a summary when the run ends

Pollers without a schedule run once; when every poller has stopped the run
ends by itself. Scheduled pollers keep the run alive until it is stopped.
"""
import asyncio
import signal
from pathlib import Path
from typing import Any, Dict, List, Optional

from kig.connections import ThreadPoolEngine
from kig.messages import Summary, get_logger
from kig.messages.logger import _get_event_loop_time
from kig.utility.exceptions import ConfigError

from .factory import PollerFactory
from .poller import Poller
from .record import Record
from .sink import JsonLinesSink
from .workspace import Workspace, WorkspaceConfig


def validate_config(config: Dict[str, Any]) -> List[str]:
    """Validate configuration using Pydantic models."""
    try:
        WorkspaceConfig.from_dict(config)
        return []
    except ConfigError as e:
        return [str(e)]


class Coordinator:
    """
    Runs multiple pollers based on configuration.

    Example:
        ```python
        coordinator = Coordinator(config_path="kig.yml", output="out.jsonl")
        await coordinator.run()
        ```
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        config: Optional[WorkspaceConfig] = None,
        poller_filter: Optional[List[str]] = None,
        output: Optional[str] = None,
        sink: Optional[JsonLinesSink] = None,
        base_dir: Optional[Path] = None,
    ):
        """
        Initialize Coordinator.

        Args:
            config_path: Optional path to kig.yml (default: discover it)
            config: Optional WorkspaceConfig instance (takes precedence)
            poller_filter: Optional list of poller names to run
            output: Optional file records are written to (default: stdout)
            sink: Optional sink instance (takes precedence over output)
            base_dir: Directory statement files are resolved from
        """
        self.pollers: List[Poller] = []
        self.poller_filter = poller_filter or []
        self.sink = sink or JsonLinesSink(output)
        self.logger = get_logger("kig.coordinator")
        self.summary = Summary(logger=self.logger)

        self.poller_results: List[Dict[str, Any]] = []
        self.run_start_time: Optional[float] = None

        self._workspace: Optional[Workspace] = None
        self._stop_event = asyncio.Event()

        if config is not None:
            self.config: Optional[WorkspaceConfig] = config
            self.config_path = None
            self.base_dir = base_dir or Path.cwd()
        else:
            if config_path is None:
                workspace = Workspace.find()
            else:
                workspace = Workspace.from_path(Path(config_path))
            self.config = None  # Loaded in run() via workspace.prepare()
            self.config_path = workspace.kig_yml
            self.base_dir = base_dir or workspace.root
            self._workspace = workspace

    @property
    def failed(self) -> bool:
        """Whether any poller failed."""
        return any(r["status"] == "fail" for r in self.poller_results)

    def request_stop(self) -> None:
        """Ask a running coordinator to stop all pollers and finish."""
        if not self._stop_event.is_set():
            self.logger.info("Stop requested, finishing running cycles")
        self._stop_event.set()

    def load_config(self) -> WorkspaceConfig:
        """Load the workspace configuration if not already loaded."""
        if self.config is None:
            if self._workspace is None:
                raise ConfigError("No workspace available, kig.yml is required")
            self.config = self._workspace.prepare()
        return self.config

    def create_pollers(self, output) -> List[Poller]:
        """
        Build the configured pollers, honoring the poller filter.

        Raises:
            ConfigError: If the filter names a poller that does not exist
        """
        config = self.load_config()

        unknown = [name for name in self.poller_filter if name not in config.pollers]
        if unknown:
            raise ConfigError(
                f"No pollers matched: {', '.join(unknown)}. "
                f"Available pollers: {', '.join(sorted(config.pollers))}"
            )

        factory = PollerFactory(
            connections=config.connections,
            options=config.options,
            base_dir=self.base_dir,
        )
        self.pollers = [
            factory.create(name, poller_config, output)
            for name, poller_config in config.pollers.items()
            if not self.poller_filter or name in self.poller_filter
        ]
        return self.pollers

    async def run(self) -> List[Dict[str, Any]]:
        """
        Run all configured pollers until they stop.

        Returns:
            Poller result dictionaries (also used for the summary)
        """
        source = str(self.config_path) if self.config_path else "provided config"
        self.logger.info(f"Starting coordinator with config: {source}")

        config = self.load_config()
        queue: "asyncio.Queue[Record]" = asyncio.Queue(maxsize=config.options.queue_size)
        self.create_pollers(queue)

        if not ThreadPoolEngine.is_initialized():
            ThreadPoolEngine.initialize(pool_size=max(8, len(self.pollers) + 1))

        self.poller_results = []
        self.run_start_time = _get_event_loop_time()

        self.sink.open()
        self.logger.info(
            f"Running {len(self.pollers)} "
            f"poller{'s' if len(self.pollers) != 1 else ''}, "
            f"writing records to {self.sink.describe()}"
        )

        installed = self._install_signal_handlers()
        drain_task = asyncio.create_task(self._drain(queue), name="kig-sink")
        total = len(self.pollers)
        pollers_task = asyncio.gather(
            *(
                self._run_poller(poller, i, total)
                for i, poller in enumerate(self.pollers, 1)
            )
        )
        stop_task = asyncio.create_task(self._stop_event.wait())

        try:
            await asyncio.wait(
                {pollers_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
            await asyncio.gather(*(poller.stop() for poller in self.pollers))
            await pollers_task

            # Every record published before the stop reaches the sink
            join_task = asyncio.create_task(queue.join())
            await asyncio.wait(
                {join_task, drain_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if not join_task.done():
                join_task.cancel()
                drain_task.result()
        finally:
            stop_task.cancel()
            drain_task.cancel()
            await asyncio.gather(drain_task, stop_task, return_exceptions=True)
            self._remove_signal_handlers(installed)
            self.sink.close()

        self.summary.generate_summary(self.poller_results, self.run_start_time)
        return self.poller_results

    async def _run_poller(self, poller: Poller, number: int, total: int) -> None:
        """Run one poller to completion and record its result."""
        result: Dict[str, Any] = {
            "name": poller.name,
            "status": None,
            "cycles": 0,
            "rows": 0,
            "error": None,
        }
        self.logger.info(
            f"[{number} of {total}] STARTING poller {poller.name}",
            color_prefix="START",
        )

        try:
            await poller.start()
            await poller.wait_stopped()
        except Exception as e:
            result["error"] = f"{type(e).__name__}: {e}"
            self.logger.error(
                f"[{number} of {total}] FAILED poller {poller.name}: {e}"
            )
        else:
            if poller.last_error is not None:
                result["error"] = (
                    f"{type(poller.last_error).__name__}: {poller.last_error}"
                )

        result["cycles"] = poller.cycles_run
        result["rows"] = poller.rows_total
        result["status"] = "fail" if poller.cycles_failed or result["error"] else "pass"
        if result["status"] == "pass":
            self.logger.info(
                f"[{number} of {total}] FINISHED poller {poller.name} "
                f"({poller.rows_total:,} rows in {poller.cycles_run:,} "
                f"cycle{'s' if poller.cycles_run != 1 else ''})",
                color_prefix="OK",
            )
        self.poller_results.append(result)

    async def _drain(self, queue: "asyncio.Queue[Record]") -> None:
        """Move records from the output queue into the sink."""
        while True:
            record = await queue.get()
            try:
                self.sink.write(record)
            finally:
                queue.task_done()

    def _install_signal_handlers(self) -> List[signal.Signals]:
        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError, ValueError):
                # Not supported on this platform or outside the main thread
                self.logger.debug(f"Cannot handle {sig.name}, use request_stop()")
                continue
            installed.append(sig)
        return installed

    def _remove_signal_handlers(self, installed: List[signal.Signals]) -> None:
        loop = asyncio.get_running_loop()
        for sig in installed:
            loop.remove_signal_handler(sig)
