# PATH: core/time.py
"""
Time utilities for dexwatch.

All freshness checks work in integer milliseconds.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Get current Unix timestamp in milliseconds."""
    return int(time.time() * 1000)


def age_ms(timestamp_ms: int, current_ms: Optional[int] = None) -> int:
    """Milliseconds elapsed since timestamp_ms."""
    current = now_ms() if current_ms is None else current_ms
    return current - timestamp_ms


def is_fresh(
    timestamp_ms: int,
    max_age_ms: int,
    current_ms: Optional[int] = None,
) -> bool:
    """
    Check if a timestamp is fresh (within max_age_ms).

    Args:
        timestamp_ms: Unix timestamp in milliseconds
        max_age_ms: Maximum allowed age
        current_ms: Current time (defaults to now)

    Returns:
        True if timestamp is fresh
    """
    return age_ms(timestamp_ms, current_ms) <= max_age_ms


def session_id() -> str:
    """Sortable run identifier, e.g. 20260101_120000."""
    return now_utc().strftime("%Y%m%d_%H%M%S")
