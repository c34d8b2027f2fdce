"""
Rolling-window request rate limiter.
"""
import asyncio
import time
from collections import deque
from typing import Awaitable, Callable, Deque, Optional

from loguru import logger


class RateLimiter:
    """
    Gates outbound calls to one external API.

    Keeps the timestamps of calls made inside the rolling window. When the
    window is saturated the caller sleeps until the oldest call ages out.
    Each client owns the limiter it is given; nothing is shared at module level.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep or asyncio.sleep
        self._timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float):
        while self._timestamps and now - self._timestamps[0] >= self.window_seconds:
            self._timestamps.popleft()

    def wait_time(self) -> float:
        """Seconds the next caller would have to wait."""
        now = self._clock()
        self._prune(now)
        if len(self._timestamps) < self.max_requests:
            return 0.0
        return self.window_seconds - (now - self._timestamps[0])

    async def acquire(self):
        """Wait for a slot in the window and claim it."""
        async with self._lock:
            delay = self.wait_time()
            while delay > 0:
                logger.debug(f"Rate limit saturated, sleeping {delay:.2f}s")
                await self._sleep(delay)
                delay = self.wait_time()
            self._timestamps.append(self._clock())

    @property
    def in_window(self) -> int:
        self._prune(self._clock())
        return len(self._timestamps)
