"""
Backoff for units of work that lose a write-lock race.

Only ConcurrencyError is retried by default; every other failure surfaces on
the first attempt so that domain rejections are never replayed.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional

from ..utils.exceptions import ConcurrencyError

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Backoff parameters for lock-contention retries."""
    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0
    exponential_base: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given zero-based failed attempt."""
        delay = min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5
        return delay


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    config: RetryConfig,
    retryable_exceptions: tuple = (ConcurrencyError,),
    *args,
    operation: Optional[str] = None,
    **kwargs
) -> Any:
    """
    Await ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    The last retryable exception is re-raised once ``config.max_attempts``
    calls have failed.
    """
    name = operation or func.__name__
    attempt = 0

    while True:
        try:
            result = await func(*args, **kwargs)
        except retryable_exceptions as e:
            attempt += 1
            if attempt >= config.max_attempts:
                logger.error(f"{name} gave up after {attempt} attempts: {e}")
                raise

            delay = config.delay_for(attempt - 1)
            logger.warning(f"{name} attempt {attempt} lost a lock race, retrying in {delay:.3f}s")
            await asyncio.sleep(delay)
            continue

        if attempt:
            logger.info(f"{name} succeeded on attempt {attempt + 1}")
        return result


def retry_on_concurrency_error(
    max_attempts: int = 3,
    base_delay: float = 0.05,
    max_delay: float = 1.0,
    jitter: bool = True,
    operation: Optional[str] = None
):
    """Decorator form of ``retry_async`` for ConcurrencyError."""

    config = RetryConfig(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        jitter=jitter
    )

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            return await retry_async(
                func, config, (ConcurrencyError,), *args, operation=operation, **kwargs
            )
        return wrapper

    return decorator
