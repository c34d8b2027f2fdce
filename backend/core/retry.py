"""
Bounded retry with exponential backoff.

The wrapper never raises: it returns a RetryResult and the call site decides
whether to propagate (`unwrap()`) or degrade.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from loguru import logger

from .errors import VenueRequestError

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation."""
    value: Optional[T] = None
    error: Optional[Exception] = None
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the last error."""
        if self.error is not None:
            raise self.error
        return self.value


def is_retryable(error: Exception) -> bool:
    """Network and server-side failures are retried; client rejections are not."""
    if isinstance(error, VenueRequestError):
        return error.retryable
    return isinstance(error, (asyncio.TimeoutError, ConnectionError, OSError))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    description: str = "request",
) -> RetryResult[T]:
    """
    Run `operation` up to `max_attempts` times.

    Delay before attempt n+1 is base_delay * 2**(n-1). Non-retryable errors end
    the loop immediately.
    """
    result: RetryResult[T] = RetryResult()
    for attempt in range(1, max_attempts + 1):
        result.attempts = attempt
        try:
            result.value = await operation()
            result.error = None
            return result
        except Exception as e:
            result.error = e
            if not is_retryable(e):
                logger.debug(f"{description}: not retrying ({e})")
                return result
            if attempt < max_attempts:
                delay = base_delay * 2 ** (attempt - 1)
                logger.warning(f"{description} failed (attempt {attempt}/{max_attempts}): {e}; retrying in {delay:.1f}s")
                await sleep(delay)
    return result
