"""Background sweep of expired rate limit counters.

The sweeper is an asyncio task owned by the application lifespan: started
once the event loop is running and cancelled on shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from app.adapters.rate_limit.base import AbstractRateLimitStore

logger = logging.getLogger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60


class RateLimitSweeper:
    """Periodically calls ``store.sweep()`` to bound memory usage."""

    def __init__(
        self,
        store: AbstractRateLimitStore,
        *,
        interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")

        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the sweep loop on the running event loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="rate-limit-sweeper"
        )
        logger.debug("rate_limit.sweeper_started", extra={"interval_s": self._interval})

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("rate_limit.sweeper_stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                removed = self._store.sweep()
            except Exception:
                logger.exception("rate_limit.sweep_failed")
                continue
            if removed:
                logger.debug("rate_limit.swept", extra={"removed": removed})
