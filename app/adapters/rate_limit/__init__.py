"""Rate limiting adapters.

This package holds the counter storage behind the limiter policies: an
in-memory fixed-window store plus the background sweeper that evicts expired
counters. A shared store (e.g., Redis) can implement the same interface.
"""

from app.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.adapters.rate_limit.sweeper import RateLimitSweeper

__all__ = [
    "AbstractRateLimitStore",
    "InMemoryRateLimitStore",
    "RateLimitResult",
    "RateLimitSweeper",
]
