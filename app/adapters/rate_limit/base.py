"""Rate limit store interfaces.

Limiter policies depend on this abstraction (not the concrete implementation)
so the counter storage can move to a shared backend later without touching
the HTTP layer.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a single admission check.

    Attributes:
        allowed: Whether the request is admitted.
        limit: Max requests per window.
        count: Requests counted in the current window, this one included.
        remaining: Requests left in the current window (0 when blocked).
        reset_at: UNIX epoch seconds at which the current window ends.
        retry_after_seconds: Suggested wait in seconds when blocked.
    """

    allowed: bool
    limit: int
    count: int
    remaining: int
    reset_at: float
    retry_after_seconds: int | None

    @property
    def reset_at_epoch(self) -> int:
        """Window end rounded up to whole epoch seconds (header friendly)."""
        return int(math.ceil(self.reset_at))


class AbstractRateLimitStore(ABC):
    """Interface for per-key fixed-window counters."""

    @abstractmethod
    def check(self, key: str, *, window_ms: int, limit: int) -> RateLimitResult:
        """Count one request for ``key`` and decide whether it is admitted.

        Args:
            key: Unique identifier (e.g., namespaced client address).
            window_ms: Window size in milliseconds.
            limit: Max admitted requests per window.

        Returns:
            RateLimitResult describing the admission decision.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Drop counters whose window has ended; return how many were removed."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget the counter for ``key``."""
        raise NotImplementedError

    @abstractmethod
    def reset_all(self) -> None:
        """Forget every counter."""
        raise NotImplementedError
