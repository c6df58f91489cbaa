"""
Execution engine for blocking database drivers.

Database drivers (sqlite3, pyodbc) block. ThreadPoolEngine runs them on a
shared thread pool and bridges their results back to the event loop, so a
poller's timer and the record consumer keep running while a query waits
on the database.
"""
import asyncio
import concurrent.futures
import threading
from typing import Any, AsyncIterator, Callable, Optional, TypeVar

from kig.messages import get_logger

T = TypeVar("T")

logger = get_logger("kig.connections.execution")

_END = object()


class ThreadPoolEngine:
    """
    Execution engine using a shared thread pool.

    Supports streaming: items are yielded as the driver produces them, with a
    small bounded buffer between the driver thread and the event loop.
    """

    _executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
    _pool_size: int = 8

    @classmethod
    def initialize(cls, pool_size: int = 8) -> None:
        """
        Initialize shared thread pool.

        Args:
            pool_size: Number of worker threads in the pool
        """
        if cls._executor is None:
            cls._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=pool_size, thread_name_prefix="kig-db"
            )
            cls._pool_size = pool_size
            logger.debug(f"Initialized ThreadPoolEngine with {pool_size} workers")
        else:
            logger.warning("ThreadPoolEngine already initialized")

    @classmethod
    async def execute(cls, func: Callable[..., T], *args, **kwargs) -> T:
        """
        Execute single synchronous operation in thread pool.

        Args:
            func: Synchronous function to execute
            *args, **kwargs: Arguments to pass to function

        Returns:
            Result of function execution
        """
        if cls._executor is None:
            cls.initialize()

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(cls._executor, lambda: func(*args, **kwargs))

    @classmethod
    async def execute_streaming(
        cls, extract_func: Callable[..., Any], *args, buffer_size: int = 5
    ) -> AsyncIterator:
        """
        Execute a synchronous generator in a thread and stream its items.

        The generator runs in the thread pool and hands items over through an
        asyncio.Queue. A full queue blocks the driver thread (backpressure).
        If the consumer stops early, the driver thread is told to stop and
        the generator is closed in its own thread, releasing the cursor.

        Args:
            extract_func: Synchronous generator function
            *args: Arguments to pass to extract_func
            buffer_size: Items buffered between thread and event loop

        Yields:
            Items as they're produced (streaming, not buffered)

        Example:
            ```python
            async for row in ThreadPoolEngine.execute_streaming(
                connection.execute, sql, values
            ):
                ...
            ```
        """
        if cls._executor is None:
            cls.initialize()

        queue: asyncio.Queue = asyncio.Queue(maxsize=buffer_size)
        loop = asyncio.get_running_loop()
        stop_requested = threading.Event()
        exception_holder = {"exception": None}

        def extract_to_queue():
            """Extract items in thread, put in queue."""
            iterator = None
            try:
                iterator = extract_func(*args)
                for item in iterator:
                    if stop_requested.is_set():
                        break
                    # .result() blocks the thread until put completes (backpressure)
                    asyncio.run_coroutine_threadsafe(queue.put(item), loop).result()
                    if stop_requested.is_set():
                        break
            except Exception as e:
                exception_holder["exception"] = e
            finally:
                close = getattr(iterator, "close", None)
                if close is not None:
                    close()
                if not stop_requested.is_set():
                    asyncio.run_coroutine_threadsafe(queue.put(_END), loop).result()

        extraction_task = loop.run_in_executor(cls._executor, extract_to_queue)

        try:
            while True:
                item = await queue.get()

                if item is _END:
                    if exception_holder["exception"] is not None:
                        raise exception_holder["exception"]
                    break

                yield item
        finally:
            if not extraction_task.done():
                stop_requested.set()
                # Unblock a driver thread waiting on a full queue
                while not queue.empty():
                    queue.get_nowait()
            await asyncio.shield(extraction_task)

    @classmethod
    def shutdown(cls) -> None:
        """Shutdown thread pool."""
        if cls._executor:
            logger.debug("Shutting down ThreadPoolEngine")
            cls._executor.shutdown(wait=True)
            cls._executor = None
            logger.debug("ThreadPoolEngine shutdown complete")

    @classmethod
    def is_initialized(cls) -> bool:
        """Check if thread pool is initialized."""
        return cls._executor is not None
