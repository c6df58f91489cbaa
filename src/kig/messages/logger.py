"""
Logging configuration for kig - comfortable, informative output.

KigLogger provides human-readable, color-coded logging that makes it easy
to see what each poller is doing: when a cycle starts, how many rows it
produced, and what went wrong when a cycle fails.
"""
import asyncio
import copy
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Union

import colorama

# Initialize colorama for cross-platform color support
colorama.init()

# Logger name prefixes that carry a poller name as their next component
_POLLER_PREFIXES = ("kig.poller.", "kig.executor.", "kig.emitter.")


def _get_event_loop_time() -> float:
    """
    Get current event loop time, handling both async and sync contexts.

    Falls back to time.monotonic() when no loop is running, which gives
    the same monotonic behavior in sync contexts and tests.
    """
    try:
        loop = asyncio.get_running_loop()
        return loop.time()
    except RuntimeError:
        return time.monotonic()


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors"""

    # Color codes - Blue and Green scheme
    COLORS = {
        "INFO": colorama.Fore.BLUE,
        "WARNING": colorama.Fore.YELLOW,
        "ERROR": colorama.Fore.RED,
        "DEBUG": colorama.Fore.BLUE,
        "START": colorama.Fore.BLUE,
        "OK": colorama.Fore.GREEN,
    }

    def format(self, record):
        # Every handler formats the same record, color a copy only
        record = copy.copy(record)

        # Extract poller name from logger name
        # (e.g., kig.poller.new_orders -> new_orders)
        record.poller_name = ""
        for prefix in _POLLER_PREFIXES:
            if record.name.startswith(prefix):
                poller_name = record.name[len(prefix):]
                white = colorama.Fore.WHITE
                reset = colorama.Style.RESET_ALL
                record.poller_name = f"{white}[{poller_name}]{reset} "
                break

        if record.levelname in self.COLORS:
            color = self.COLORS[record.levelname]
            record.levelname = f"{color}{record.levelname}{colorama.Style.RESET_ALL}"

        # Add color to message for START and OK prefixes
        if hasattr(record, "color_prefix"):
            color = self.COLORS.get(record.color_prefix, "")
            record.msg = f"{color}{record.msg}{colorama.Style.RESET_ALL}"

        return super().format(record)


class KigLogger:
    """
    Central logging class for kig - comfortable, informative output.

    Writes color-coded lines to the console and to logs/kig.log. Loggers
    named kig.poller.<name> (and the executor/emitter loggers of a poller)
    show the poller name in front of every message.
    """

    class Style:
        """ANSI color codes for paths"""

        CYAN = colorama.Fore.CYAN
        GREEN = colorama.Fore.GREEN
        YELLOW = colorama.Fore.YELLOW
        BLUE = colorama.Fore.BLUE
        MAGENTA = colorama.Fore.MAGENTA
        RED = colorama.Fore.RED
        RESET = colorama.Style.RESET_ALL

    # Logging templates for consistent formatting
    CYCLE_TEMPLATE = "Polled {:,} rows in {:.1f}s ({:,.0f} rows/s)"

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.style = self.Style()

        # Only set up handlers if they haven't been set up already
        if not self.logger.handlers:
            self.logger.setLevel(_level)

            log_dir = Path.cwd() / "logs"
            log_dir.mkdir(exist_ok=True)

            log_file = log_dir / "kig.log"
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                ColorFormatter(
                    "%(asctime)s  %(poller_name)s%(message)s", datefmt="%H:%M:%S"
                )
            )

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(logging.DEBUG)
            console_handler.setFormatter(
                ColorFormatter(
                    "%(asctime)s  %(poller_name)s%(message)s", datefmt="%H:%M:%S"
                )
            )

            self.logger.addHandler(file_handler)
            self.logger.addHandler(console_handler)

            # Prevent logs from being passed to root logger
            self.logger.propagate = False

            _configured.add(name)

    def info(self, msg: str, color_prefix: Optional[str] = None) -> None:
        """Log info message with optional color prefix"""
        extra = {"color_prefix": color_prefix} if color_prefix else None
        self.logger.info(msg, extra=extra)

    def start(self, msg: str) -> None:
        """Log start message in blue"""
        self.info(f"START {msg}", color_prefix="START")

    def success(self, msg: str) -> None:
        """Log success message in green"""
        self.info(f"OK {msg}", color_prefix="OK")

    def error(self, msg: str) -> None:
        """Log error message in red"""
        self.logger.error(msg)

    def warning(self, msg: str) -> None:
        """Log warning message in yellow"""
        self.logger.warning(msg)

    def debug(self, msg: str) -> None:
        """Log debug message in blue"""
        self.logger.debug(msg)

    def path(self, path: str, color: str = None) -> str:
        """Format a path with color"""
        if not color:
            color = self.style.CYAN
        return f"{color}{path}{self.style.RESET}"


_level = logging.INFO
_configured: set = set()


def set_level(level: Union[int, str]) -> None:
    """Set the level of every kig logger, including ones created later."""
    global _level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    _level = level
    for name in _configured:
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> KigLogger:
    """Get a configured logger instance."""
    return KigLogger(name)
