"""
Utility functions and classes for kig.
"""
from .exceptions import (
    BindingError,
    ConfigError,
    ConfigurationError,
    CycleError,
    KigError,
    PollerStateError,
    QueryConnectionError,
    QueryError,
    TypeMismatchError,
)

__all__ = [
    "KigError",
    "ConfigError",
    "ConfigurationError",
    "PollerStateError",
    "CycleError",
    "BindingError",
    "QueryError",
    "QueryConnectionError",
    "TypeMismatchError",
]
