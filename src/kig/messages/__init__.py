"""
Message utilities for kig.

This submodule provides messaging utilities for kig:
- Logger: Human-readable output formatting with colors
- Summary: kig-style run summary formatting
- ErrorFormatter: Friendly error messages for the CLI
"""
from kig.messages.logger import KigLogger, get_logger, set_level
from kig.messages.summary import Summary  # noqa: E402
from kig.messages.errors import ErrorFormatter  # noqa: E402

__all__ = ["KigLogger", "get_logger", "set_level", "Summary", "ErrorFormatter"]
