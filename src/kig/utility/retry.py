"""
Retry decorator with exponential backoff and timeout for async functions.

Polling cycles are never retried (the schedule is the retry boundary), so
this is only used around opening a poller's connection.
"""
import asyncio
import logging
from functools import wraps
from typing import Callable, Optional, Tuple, Type, Union

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from kig.messages import get_logger

from .exceptions import QueryConnectionError


def with_retry(
    timeout: float = 300,
    retries: int = 3,
    delay: float = 2,
    exceptions: Union[Type[Exception], Tuple[Type[Exception], ...]] = (
        QueryConnectionError,
    ),
    logger_name: str = "kig.retry",
    retry_if_func: Optional[Callable] = None,
):
    """
    Retry decorator with exponential backoff and timeout for async functions.

    Args:
        timeout: Maximum time in seconds for each attempt (default: 300)
        retries: Maximum number of attempts, including the first (default: 3)
        delay: Initial delay between attempts in seconds (default: 2)
        exceptions: Exception types to retry on (default: QueryConnectionError)
        logger_name: Name for logging retry attempts (default: kig.retry)
        retry_if_func: Optional predicate taking the exception. If provided,
            overrides exceptions.

    Example:
        opener = with_retry(retries=3, delay=0.5)(connection.open)
        await opener()

    Raises:
        TimeoutError: If an attempt exceeds the timeout period
        The last exception raised: If all attempts fail
    """
    logger = get_logger(logger_name)
    # tenacity logs through a standard logger, KigLogger wraps one
    standard_logger = logger.logger if hasattr(logger, "logger") else logger

    def decorator(func):
        if retry_if_func:
            retry_condition = retry_if_exception(retry_if_func)
        else:
            retry_condition = retry_if_exception_type(exceptions)

        @retry(
            stop=stop_after_attempt(max(1, retries)),
            wait=wait_exponential(multiplier=delay, min=delay, max=delay * 8),
            retry=retry_condition,
            before_sleep=before_sleep_log(standard_logger, logging.WARNING),
            reraise=True,
        )
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                async with asyncio.timeout(timeout):
                    return await func(*args, **kwargs)
            except asyncio.TimeoutError:
                raise TimeoutError(
                    f"Operation {func.__name__} timed out after {timeout} seconds"
                )

        return wrapper

    return decorator
