"""Sliding-window rate limiting over client storage.

Each action key owns a JSON array of millisecond timestamps of recently
permitted actions. Entries older than the window are pruned on every check.

This is a best-effort UX throttle, not a security boundary: there is no
cross-process coordination, and two callers reading the same window at
the same time may both be admitted. Abuse prevention needs a server-side
enforcement point.
"""

from __future__ import annotations

import json

from notelink.infra.client_storage import ClientStorage
from notelink.infra.time import now_ms as _now_ms
from notelink.observability.logging import get_logger
from notelink.observability.redaction import safe_log_context

logger = get_logger(__name__)

STORAGE_KEY_PREFIX = "rate_limit_"


def _storage_key(action_key: str) -> str:
    return f"{STORAGE_KEY_PREFIX}{action_key}"


def _validate_args(limit: int, window_ms: int) -> None:
    if limit <= 0:
        raise ValueError(f"limit must be > 0, got {limit}")
    if window_ms <= 0:
        raise ValueError(f"window_ms must be > 0, got {window_ms}")


def _load_window(storage: ClientStorage, action_key: str) -> list[int]:
    """Read stored timestamps. Raises on storage or decoding errors."""
    raw = storage.get(_storage_key(action_key))
    if not raw:
        return []
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError("rate limit window is not a list")
    return [int(ts) for ts in data]


def _prune(timestamps: list[int], now: int, window_ms: int) -> list[int]:
    return [ts for ts in timestamps if now - ts < window_ms]


def check_rate_limit(
    storage: ClientStorage | None,
    action_key: str,
    limit: int,
    window_ms: int,
    now_ms: int | None = None,
) -> bool:
    """Check and record one action against a sliding window.

    A rejected attempt does not consume a slot. Storage faults fail open.

    Args:
        storage: Client storage, or None if unavailable.
        action_key: Name of the throttled action.
        limit: Maximum permitted actions per window (> 0).
        window_ms: Window length in milliseconds (> 0).
        now_ms: Current time override (milliseconds since epoch).

    Returns:
        True if the action is permitted (and recorded), False if rate limited.

    Raises:
        ValueError: If limit or window_ms is not positive.
    """
    _validate_args(limit, window_ms)

    if storage is None:
        logger.warning(
            "rate limit storage unavailable, allowing action",
            extra={"extra_fields": safe_log_context(action_key=action_key)},
        )
        return True

    now = _now_ms() if now_ms is None else now_ms

    try:
        timestamps = _prune(_load_window(storage, action_key), now, window_ms)

        if len(timestamps) >= limit:
            logger.info(
                "rate limit exceeded",
                extra={
                    "extra_fields": safe_log_context(
                        action_key=action_key, limit=limit, window_ms=window_ms
                    )
                },
            )
            return False

        timestamps.append(now)
        storage.set(_storage_key(action_key), json.dumps(timestamps))
        return True
    except Exception as e:
        logger.warning(
            "rate limiting failed due to storage error, allowing action",
            extra={
                "extra_fields": safe_log_context(
                    action_key=action_key, error_type=type(e).__name__
                )
            },
        )
        return True


def seconds_until_allowed(
    storage: ClientStorage | None,
    action_key: str,
    limit: int,
    window_ms: int,
    now_ms: int | None = None,
) -> int:
    """Seconds until the next action would be permitted. Read-only.

    Returns 0 when a slot is free or the window cannot be read.
    """
    _validate_args(limit, window_ms)

    if storage is None:
        return 0

    now = _now_ms() if now_ms is None else now_ms

    try:
        timestamps = sorted(_prune(_load_window(storage, action_key), now, window_ms))
    except Exception:
        return 0

    if len(timestamps) < limit:
        return 0

    # The slot frees up when enough of the oldest entries age out
    freeing_ts = timestamps[len(timestamps) - limit]
    remaining_ms = freeing_ts + window_ms - now
    return max(0, -(-remaining_ms // 1000))
