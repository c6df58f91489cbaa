"""
Cycle ID generation for comfortable, traceable polling logs.

Generates deterministic, hash-based IDs for polling cycles. The same
poller name and start time always give the same ID, so a cycle can be
found again in the log file from the values printed in a summary.
"""
import hashlib
from typing import List


def generate_run_id(components: List[str]) -> str:
    """
    Generate deterministic run ID from components.

    Args:
        components: List of string components to hash
            (e.g., [poller_name, cycle_start_time])

    Returns:
        32-character hex string (first 32 chars of SHA256 hash)

    Example:
        >>> cycle_id = generate_run_id(
        ...     ["new_orders", "2024-01-01T10:00:00+00:00"]
        ... )
    """
    combined = "|".join(str(c) for c in components)
    hash_obj = hashlib.sha256(combined.encode("utf-8"))
    return hash_obj.hexdigest()[:32]
