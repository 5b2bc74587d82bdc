"""
Retry utilities with exponential backoff for upstream reads.

Role and subscription lookups go through these helpers so that transient
store failures are retried with growing, jittered delays instead of
immediately surfacing as a blocked screen.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from bi_portal.utils.exceptions import FetchFailure
from bi_portal.utils.logger import get_logger


logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_retries: int = 3
    base_delay: float = 0.5  # Base delay in seconds
    max_delay: float = 5.0  # Maximum delay in seconds
    exponential_base: float = 2.0  # Exponential backoff multiplier
    jitter: bool = True  # Add random jitter to prevent thundering herd

    retry_on_exceptions: Tuple[Type[Exception], ...] = (
        FetchFailure,
        ConnectionError,
        TimeoutError
    )


class ExponentialBackoff:
    """
    Exponential backoff calculator with jitter.

    - Base delay doubles with every attempt
    - Random jitter of ±25% spreads out concurrent retries
    - Maximum delay cap prevents excessive waiting
    """

    def __init__(self, config: RetryConfig):
        self.config = config
        self.attempt = 0

    def reset(self) -> None:
        """Reset attempt counter."""
        self.attempt = 0

    def calculate_delay(self) -> float:
        """
        Calculate delay for current attempt.

        Returns:
            Delay in seconds
        """
        delay = self.config.base_delay * (self.config.exponential_base ** self.attempt)

        if self.config.jitter:
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        delay = max(0.0, min(delay, self.config.max_delay))

        self.attempt += 1

        logger.debug(f"Calculated retry delay: {delay:.2f}s (attempt {self.attempt})")
        return delay

    def should_retry(self, exception: Exception) -> bool:
        """
        Determine if we should retry after the given exception.

        Args:
            exception: Exception that occurred

        Returns:
            True if should retry, False otherwise
        """
        if self.attempt >= self.config.max_retries:
            logger.debug(f"Max retries ({self.config.max_retries}) exceeded")
            return False

        if isinstance(exception, self.config.retry_on_exceptions):
            logger.debug(f"Retrying on exception: {type(exception).__name__}")
            return True

        logger.debug(f"Not retrying exception: {type(exception).__name__}")
        return False


async def call_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    config: Optional[RetryConfig] = None,
    **kwargs
) -> T:
    """
    Await ``func(*args, **kwargs)`` retrying transient failures.

    Cancellation is never retried; it propagates to the caller immediately.

    Raises:
        Exception: The last failure once retries are exhausted or the
            failure is not retryable.
    """
    backoff = ExponentialBackoff(config or RetryConfig())

    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not backoff.should_retry(e):
                raise

            delay = backoff.calculate_delay()
            name = getattr(func, "__name__", repr(func))
            logger.info(f"Retrying {name} in {delay:.2f}s (attempt {backoff.attempt}): {e}")
            await asyncio.sleep(delay)
