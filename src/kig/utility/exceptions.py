"""
Custom exceptions for kig - clear, actionable error handling.

kig uses a small exception hierarchy so that callers can tell apart
problems that stop a poller from ever starting (configuration) from
problems that only spoil a single polling cycle (binding, query, watermark).

Exception Hierarchy:
    KigError (base)
    ├── ConfigError - Configuration errors, fatal at startup
    ├── PollerStateError - Lifecycle misuse (cycle after stop, double start)
    └── CycleError
        ├── BindingError - A :name placeholder has no parameter value
        ├── QueryError - The driver failed to execute the statement
        │   └── QueryConnectionError - The connection could not be used
        └── TypeMismatchError - Watermark values that cannot be compared

Usage Guidelines:
    - Always use exception chaining (`raise QueryError(...) from e`) when
      wrapping driver exceptions to preserve the original traceback.
    - Cycle errors are never retried inside a cycle. The next scheduled fire
      is the retry boundary.
"""
from typing import Any, Optional, Sequence


class KigError(Exception):
    """Base exception for all kig errors."""

    pass


class ConfigError(KigError):
    """Raised when there's an error in configuration."""

    pass


# Name used by the taxonomy in the docs
ConfigurationError = ConfigError


class PollerStateError(KigError):
    """Raised when a poller is driven in a way its lifecycle does not allow."""

    pass


class CycleError(KigError):
    """Base exception for errors that abort a single polling cycle."""

    pass


class BindingError(CycleError):
    """A named placeholder in the statement has no matching parameter."""

    def __init__(self, parameter: str, missing: Optional[Sequence[str]] = None):
        self.parameter = parameter
        self.missing = list(missing) if missing else [parameter]
        super().__init__(
            f"Unresolved statement parameter ':{parameter}'"
            + (
                f" (missing: {', '.join(self.missing)})"
                if len(self.missing) > 1
                else ""
            )
        )


class QueryError(CycleError):
    """The statement could not be executed. Carries the underlying cause."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class QueryConnectionError(QueryError):
    """The connection to the data source could not be opened or used."""

    pass


class TypeMismatchError(CycleError):
    """Two values of incompatible types were compared for a watermark."""

    def __init__(self, column: str, existing: Any, value: Any):
        self.column = column
        self.existing = existing
        self.value = value
        super().__init__(
            f"Cannot compare watermark values for column '{column}': "
            f"{existing!r} ({type(existing).__name__}) vs "
            f"{value!r} ({type(value).__name__})"
        )
