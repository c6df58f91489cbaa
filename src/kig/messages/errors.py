"""
Error formatting for kig - friendly, helpful error messages.

ErrorFormatter turns exceptions into a short message plus a suggestion for
how to fix the problem, which is what the CLI prints when a run fails.
"""
import traceback
from typing import Optional, Tuple

from kig.utility.exceptions import (
    BindingError,
    ConfigError,
    QueryConnectionError,
    QueryError,
    TypeMismatchError,
)


class ErrorFormatter:
    """Formats errors into friendly, helpful messages."""

    @staticmethod
    def format_error(error: Exception) -> Tuple[str, Optional[str]]:
        """
        Format an error into a friendly message and optional suggestion.

        Args:
            error: The exception to format

        Returns:
            Tuple of (friendly_message, suggestion)
        """
        if isinstance(error, BindingError):
            return (
                str(error),
                f"Add '{error.parameter}' under 'parameters:' for this poller, "
                "or remove the placeholder from the statement.",
            )

        if isinstance(error, QueryConnectionError):
            return (
                "Couldn't connect to the data source.",
                "Check your connection settings, network connectivity, "
                "and credentials. Use 'kig check --connections' to test them.",
            )

        if isinstance(error, QueryError):
            return (
                f"The statement failed to run: {error}",
                "Check the SQL for syntax errors and that every table and "
                "column it references exists.",
            )

        if isinstance(error, TypeMismatchError):
            return (
                str(error),
                "A column returned values of different types across rows. "
                "Cast the column to one type in the statement.",
            )

        if isinstance(error, ConfigError):
            return (
                f"There's an issue with your configuration: {error}",
                "Check kig.yml and your poller files for syntax errors "
                "or missing required fields. Use 'kig check' to validate.",
            )

        if isinstance(error, FileNotFoundError):
            return (
                "Couldn't find a file or directory.",
                "Check that the path exists. Statement paths are relative to "
                "the directory that holds kig.yml.",
            )

        error_type = type(error).__name__
        friendly_msg = str(error) if str(error) else f"An error occurred: {error_type}"
        return (
            friendly_msg,
            "Check the error message above for details, "
            "or run with --verbose for more technical details.",
        )

    @staticmethod
    def format_with_stack_trace(error: Exception) -> str:
        """
        Format error with full stack trace for verbose mode.

        Args:
            error: The exception to format

        Returns:
            Formatted error with stack trace
        """
        tb_lines = traceback.format_exception(type(error), error, error.__traceback__)

        lines = [
            f"Error Type: {type(error).__name__}",
            f"Error Message: {error}",
            "",
            "Full Traceback:",
            "─" * 60,
        ]
        lines.extend(tb_lines)
        lines.append("─" * 60)

        return "\n".join(lines)
