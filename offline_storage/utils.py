"""Shared utility functions for offline storage."""

from __future__ import annotations

import time
from collections.abc import Callable

Clock = Callable[[], int]
"""Returns the current time as integer milliseconds since the epoch."""


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def is_expired(written_at: int, expiry_ms: int | None, now: int) -> bool:
    """Check whether a record written at ``written_at`` has expired.

    A record without an expiry never expires. An expiry of zero or less
    means the record is already stale when written.
    """
    if expiry_ms is None:
        return False
    if expiry_ms <= 0:
        return True
    return now - written_at > expiry_ms
