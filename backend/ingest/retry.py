"""Capped retry with fixed spacing.

with_retry() never raises on failure: it returns a RetrySuccess or a
RetryFailure, and the caller decides whether a failure is fatal. Failures the
`is_permanent` predicate accepts (e.g. HTTP 403) end the loop immediately.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, NoReturn, TypeVar

import structlog

from ingest.errors import RetryExhaustedError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class RetrySuccess(Generic[T]):
    value: T
    attempts: int

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class RetryFailure:
    error: BaseException
    attempts: int
    permanent: bool  # stopped by the non-retryable predicate, not by the attempt budget

    def unwrap(self) -> NoReturn:
        """Raise the failure: the original error if permanent, RetryExhaustedError otherwise."""
        if self.permanent:
            raise self.error
        raise RetryExhaustedError(self.attempts, self.error) from self.error


RetryResult = RetrySuccess[T] | RetryFailure


def _never_permanent(_error: Exception) -> bool:
    return False


async def with_retry(
    func: Callable[[], Awaitable[T]],
    *,
    attempts: int = 20,
    interval: float = 5.0,
    is_permanent: Callable[[Exception], bool] = _never_permanent,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryResult[T]:
    """Call `func` until it succeeds, at most `attempts` times, `interval` seconds apart."""
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")
    attempt = 0
    while True:
        attempt += 1
        try:
            return RetrySuccess(value=await func(), attempts=attempt)
        except Exception as exc:
            if is_permanent(exc):
                logger.warning("non-retryable failure", attempt=attempt, error=str(exc))
                return RetryFailure(error=exc, attempts=attempt, permanent=True)
            if attempt >= attempts:
                logger.warning("retries exhausted", attempts=attempt, error=str(exc))
                return RetryFailure(error=exc, attempts=attempt, permanent=False)
            logger.info("retrying", attempt=attempt, remaining=attempts - attempt, error=str(exc))
        await sleep(interval)
