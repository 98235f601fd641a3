"""Time utilities for consistent timestamp handling."""

import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return current UTC timestamp (timezone-aware)."""
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Return current time as integer milliseconds since the epoch."""
    return time.time_ns() // 1_000_000
