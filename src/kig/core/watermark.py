"""
Watermark tracking for incremental polling.

Watermarks are the running minimum and maximum of every column a poller has
seen. They live in the poller's parameters under `last_min_<column>` and
`last_max_<column>`, so the next cycle's statement can select only new or
changed rows:

    SELECT * FROM orders WHERE id > :last_max_id

Rules:
- A column seen for the first time starts both watermarks at its value
- None values (and NaN, which has no order) never move a watermark
- Values compare by their natural order: numbers numerically, strings
  lexicographically, timestamps chronologically
- Comparing values of different kinds fails fast with TypeMismatchError
  instead of coercing
"""
import math
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from kig.utility.exceptions import TypeMismatchError

SQL_LAST_START = "sql_last_start"
MIN_PREFIX = "last_min_"
MAX_PREFIX = "last_max_"


def min_key(column: str) -> str:
    """Parameter name holding the minimum watermark of column."""
    return f"{MIN_PREFIX}{column}"


def max_key(column: str) -> str:
    """Parameter name holding the maximum watermark of column."""
    return f"{MAX_PREFIX}{column}"


def value_kind(value: Any) -> Optional[str]:
    """
    Classify a value into the family it can be ordered within.

    Returns:
        "boolean", "number", "string", "datetime", "date", "time",
        "timedelta", "bytes", the type name for anything else, or None
        for values that never move a watermark
    """
    if value is None:
        return None
    # bool is an int subclass, keep it apart from numbers
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float, Decimal)):
        if isinstance(value, float) and math.isnan(value):
            return None
        if isinstance(value, Decimal) and value.is_nan():
            return None
        return "number"
    if isinstance(value, str):
        return "string"
    # datetime is a date subclass, check it first
    if isinstance(value, datetime):
        return "datetime"
    if isinstance(value, date):
        return "date"
    if isinstance(value, time):
        return "time"
    if isinstance(value, timedelta):
        return "timedelta"
    if isinstance(value, (bytes, bytearray)):
        return "bytes"
    return type(value).__name__


def _fold(column: str, existing: Any, value: Any, pick) -> Any:
    if existing is None:
        return value

    if value_kind(existing) != value_kind(value):
        raise TypeMismatchError(column, existing, value)

    try:
        return pick(existing, value)
    except TypeError as e:
        # e.g. naive vs timezone-aware datetimes
        raise TypeMismatchError(column, existing, value) from e


def update_watermarks(parameters: Mapping[str, Any], row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Fold one row into the watermarks of a parameter mapping.

    This is a pure function: parameters is not modified, a new mapping is
    returned. A row either updates all of its watermarks or, if any column
    fails to compare, none of them.

    Args:
        parameters: Current parameters (user values and watermarks)
        row: One result row, column name to value

    Returns:
        New parameter mapping with last_min_<column> / last_max_<column>
        updated for every non-null column of row

    Raises:
        TypeMismatchError: If a value cannot be compared with the
            existing watermark of its column

    Example:
        >>> update_watermarks({}, {"id": 1, "val": None})
        {'last_min_id': 1, 'last_max_id': 1}
    """
    updated = dict(parameters)

    for column, value in row.items():
        if value_kind(value) is None:
            continue

        low, high = min_key(column), max_key(column)
        updated[low] = _fold(column, updated.get(low), value, min)
        updated[high] = _fold(column, updated.get(high), value, max)

    return updated


def watermarks(parameters: Mapping[str, Any]) -> Dict[str, Any]:
    """Get only the watermark entries of a parameter mapping."""
    return {
        key: value
        for key, value in parameters.items()
        if key.startswith(MIN_PREFIX) or key.startswith(MAX_PREFIX)
    }
