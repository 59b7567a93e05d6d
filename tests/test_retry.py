"""Tests for the bounded exponential-backoff retry policy."""

from unittest.mock import AsyncMock, call

import pytest

from vmemo.formatting.retry import RetryPolicy, with_retry


class TestDelaySchedule:

    def test_delays_double_from_base(self):
        policy = RetryPolicy(max_attempts=4, base_delay=1.0)

        assert policy.delay_for(1) == 0.0
        assert policy.delay_for(2) == 1.0
        assert policy.delay_for(3) == 2.0
        assert policy.delay_for(4) == 4.0

    def test_custom_base_delay(self):
        assert RetryPolicy(base_delay=0.5).delay_for(3) == 1.0

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)


class TestRun:

    @pytest.mark.asyncio
    async def test_first_success_does_not_sleep(self, no_sleep):
        operation = AsyncMock(return_value="ok")

        result = await RetryPolicy().run(operation, "a", key="b")

        assert result == "ok"
        operation.assert_awaited_once_with("a", key="b")
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_with_backoff_until_success(self, no_sleep):
        operation = AsyncMock(side_effect=[ConnectionError("one"), ConnectionError("two"), "ok"])

        result = await RetryPolicy(max_attempts=3, base_delay=1.0).run(operation)

        assert result == "ok"
        assert operation.await_count == 3
        assert no_sleep.await_args_list == [call(1.0), call(2.0)]

    @pytest.mark.asyncio
    async def test_last_error_propagates_unwrapped(self, no_sleep):
        error = ValueError("boom")
        operation = AsyncMock(side_effect=error)

        with pytest.raises(ValueError) as exc_info:
            await RetryPolicy(max_attempts=3).run(operation)

        assert exc_info.value is error
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_single_attempt_never_retries(self, no_sleep):
        operation = AsyncMock(side_effect=RuntimeError("nope"))

        with pytest.raises(RuntimeError):
            await RetryPolicy(max_attempts=1).run(operation)

        operation.assert_awaited_once()
        no_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_with_retry_wrapper(self, no_sleep):
        operation = AsyncMock(side_effect=[OSError("flaky"), 42])

        assert await with_retry(operation, max_attempts=2, base_delay=0.25) == 42
        no_sleep.assert_awaited_once_with(0.25)
