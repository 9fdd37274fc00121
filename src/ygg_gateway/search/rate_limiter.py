"""Process-wide admission gate for requests to the origin site."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

logger = logging.getLogger(__name__)


class RateLimiter:
    """Bound concurrency and spacing of outbound requests.

    At most ``max_concurrent`` permits are out at once, and consecutive
    permits are handed out at least ``min_interval`` seconds apart. Both
    waits are FIFO (``asyncio.Semaphore`` and ``asyncio.Lock`` wake waiters
    in arrival order), so no waiter is starved.

    Args:
        max_concurrent: Permits available at the same time.
        min_interval: Minimum spacing between two grants, in seconds. 0 disables pacing.
    """

    def __init__(self, max_concurrent: int = 2, min_interval: float = 0.5) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._pace_lock = asyncio.Lock()
        self._min_interval = max(0.0, min_interval)
        self._next_grant = 0.0

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[None]:
        """Hold a permit for the body of the ``async with`` block.

        The permit is released on every exit path, including errors and
        cancellation while waiting for the pacing slot.
        """
        await self._semaphore.acquire()
        try:
            await self._pace()
            yield
        finally:
            self._semaphore.release()

    async def _pace(self) -> None:
        if self._min_interval <= 0:
            return
        async with self._pace_lock:
            wait = self._next_grant - time.monotonic()
            if wait > 0:
                logger.debug("rate limiter pacing %.2fs", wait)
                await asyncio.sleep(wait)
            self._next_grant = time.monotonic() + self._min_interval
