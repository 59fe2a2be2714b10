"""In-memory fixed-window rate limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a single lock covers lookup, reset, increment and sweep.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult


@dataclass
class _Counter:
    count: int
    window_reset_at: float


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Counts requests per key within a window that starts on first use.

    A key's window opens with its first request and lasts ``window_ms``.
    Once the clock moves past ``window_reset_at`` the next request starts a
    fresh window. Rejected requests still increment the counter, so a client
    hammering the API never sees its count drift back under the limit.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._counters: dict[str, _Counter] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    def check(self, key: str, *, window_ms: int, limit: int) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it is admitted.

        Lookup, window reset, increment and comparison happen under one lock,
        so two concurrent requests can never both observe the last free slot.

        Args:
            key: Unique identifier for rate limiting.
            window_ms: Window size in milliseconds.
            limit: Max admitted requests per window.

        Returns:
            RateLimitResult with the admission decision and quota metadata.

        Raises:
            ValueError: If key is empty or window/limit are invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if limit < 1:
            raise ValueError("limit must be >= 1")

        with self._lock:
            now = self._clock()
            counter = self._counters.get(key)
            if counter is None or now > counter.window_reset_at:
                counter = _Counter(count=0, window_reset_at=now + window_ms / 1000)
                self._counters[key] = counter

            counter.count += 1
            count = counter.count
            reset_at = counter.window_reset_at

        remaining = max(0, limit - count)
        if count <= limit:
            return RateLimitResult(
                allowed=True,
                limit=limit,
                count=count,
                remaining=remaining,
                reset_at=reset_at,
                retry_after_seconds=None,
            )

        # At the exact boundary the window is still live, so never advertise 0.
        retry_after = max(1, int(math.ceil(reset_at - now)))
        return RateLimitResult(
            allowed=False,
            limit=limit,
            count=count,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=retry_after,
        )

    def sweep(self) -> int:
        """Remove every counter whose window has ended.

        Returns:
            Number of counters removed.
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, c in self._counters.items() if now > c.window_reset_at]
            for key in expired:
                del self._counters[key]
            return len(expired)

    def reset(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def reset_all(self) -> None:
        with self._lock:
            self._counters.clear()
