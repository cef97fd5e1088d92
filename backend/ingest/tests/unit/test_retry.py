"""Unit tests for the capped retry helper."""

from unittest.mock import AsyncMock

import pytest

from ingest.errors import RetryExhaustedError
from ingest.retry import RetryFailure, RetrySuccess, with_retry


class _Flaky:
    """Fails `failures` times, then returns "ok"."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.calls = 0
        self._failures = failures
        self._error = error or ConnectionError("reset by peer")

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self._failures:
            raise self._error
        return "ok"


class TestWithRetry:
    async def test_first_attempt_succeeds(self):
        sleep = AsyncMock()

        result = await with_retry(_Flaky(0), sleep=sleep)

        assert result == RetrySuccess(value="ok", attempts=1)
        sleep.assert_not_awaited()

    async def test_recovers_after_failures(self):
        sleep = AsyncMock()
        func = _Flaky(2)

        result = await with_retry(func, attempts=5, interval=5.0, sleep=sleep)

        assert result.unwrap() == "ok"
        assert result.attempts == 3
        assert sleep.await_count == 2
        sleep.assert_awaited_with(5.0)

    async def test_exhausted_budget(self):
        sleep = AsyncMock()
        func = _Flaky(100)

        result = await with_retry(func, attempts=20, sleep=sleep)

        assert isinstance(result, RetryFailure)
        assert result.attempts == 20
        assert result.permanent is False
        assert func.calls == 20
        assert sleep.await_count == 19

    async def test_permanent_failure_stops_immediately(self):
        sleep = AsyncMock()
        func = _Flaky(100, PermissionError("denied"))

        result = await with_retry(func, is_permanent=lambda e: isinstance(e, PermissionError), sleep=sleep)

        assert isinstance(result, RetryFailure)
        assert result.permanent is True
        assert result.attempts == 1
        assert func.calls == 1
        sleep.assert_not_awaited()

    async def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError, match="at least 1"):
            await with_retry(_Flaky(0), attempts=0)


class TestRetryFailureUnwrap:
    def test_exhausted_raises_retry_exhausted(self):
        error = ConnectionError("reset")
        failure = RetryFailure(error=error, attempts=20, permanent=False)

        with pytest.raises(RetryExhaustedError, match="gave up after 20 attempts") as exc_info:
            failure.unwrap()

        assert exc_info.value.last_error is error
        assert exc_info.value.__cause__ is error

    def test_permanent_reraises_original(self):
        error = PermissionError("denied")

        with pytest.raises(PermissionError, match="denied"):
            RetryFailure(error=error, attempts=1, permanent=True).unwrap()
