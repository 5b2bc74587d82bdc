"""
Unit tests for retry with exponential backoff
"""
from unittest.mock import AsyncMock

import pytest

from bi_portal.utils.exceptions import FetchFailure
from bi_portal.utils.retry import (
    ExponentialBackoff,
    RetryConfig,
    call_with_backoff,
)


NO_DELAY = RetryConfig(max_retries=3, base_delay=0.0, jitter=False)


class TestExponentialBackoff:
    """Test delay calculation"""

    def test_delays_double(self):
        backoff = ExponentialBackoff(RetryConfig(base_delay=0.5, jitter=False))

        assert [backoff.calculate_delay() for _ in range(3)] == [0.5, 1.0, 2.0]

    def test_delay_capped(self):
        backoff = ExponentialBackoff(RetryConfig(base_delay=1.0, max_delay=3.0, jitter=False))

        delays = [backoff.calculate_delay() for _ in range(5)]

        assert max(delays) == 3.0

    def test_jitter_stays_within_range(self):
        backoff = ExponentialBackoff(RetryConfig(base_delay=1.0, jitter=True))

        delay = backoff.calculate_delay()

        assert 0.75 <= delay <= 1.25

    def test_should_retry_only_listed_exceptions(self):
        backoff = ExponentialBackoff(NO_DELAY)

        assert backoff.should_retry(FetchFailure("blip"))
        assert backoff.should_retry(ConnectionError())
        assert not backoff.should_retry(ValueError())

    def test_reset(self):
        backoff = ExponentialBackoff(RetryConfig(base_delay=0.5, jitter=False))
        backoff.calculate_delay()
        backoff.calculate_delay()

        backoff.reset()

        assert backoff.calculate_delay() == 0.5


class TestCallWithBackoff:
    """Test retried calls"""

    async def test_success_first_try(self):
        func = AsyncMock(return_value="ok")

        assert await call_with_backoff(func, "a", config=NO_DELAY, flag=True) == "ok"
        func.assert_awaited_once_with("a", flag=True)

    async def test_retries_until_success(self):
        func = AsyncMock(side_effect=[FetchFailure("1"), ConnectionError("2"), "ok"])

        assert await call_with_backoff(func, config=NO_DELAY) == "ok"
        assert func.await_count == 3

    async def test_gives_up_after_max_retries(self):
        func = AsyncMock(side_effect=FetchFailure("down"))

        with pytest.raises(FetchFailure):
            await call_with_backoff(func, config=NO_DELAY)

        assert func.await_count == 4

    async def test_non_retryable_raises_immediately(self):
        func = AsyncMock(side_effect=KeyError("bad"))

        with pytest.raises(KeyError):
            await call_with_backoff(func, config=NO_DELAY)

        func.assert_awaited_once()
