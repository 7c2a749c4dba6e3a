"""Counting admission gate for concurrent benchmark jobs."""

import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, TypeVar

from core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConcurrencyLimiter:
    """
    Run at most ``concurrency`` coroutines at once; the rest wait in FIFO order.

    When a running call finishes, its slot is handed straight to the oldest
    waiter. No priorities and no cancellation: queued jobs are all roughly the
    same cost.
    """

    def __init__(self, concurrency: int):
        if concurrency < 1:
            raise ConfigurationError(f"concurrency must be a positive integer, got {concurrency}")
        self.concurrency = concurrency
        self.active = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def pending(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def run(self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        """Await ``fn(*args, **kwargs)`` once a slot is free and return its result."""
        await self._acquire()
        try:
            return await fn(*args, **kwargs)
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self.active < self.concurrency and not self._waiters:
            self.active += 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        # The releasing call keeps ``active`` unchanged and hands us its slot
        await waiter

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self.active -= 1
