"""Bounded retry for idempotent async operations.

Instead of re-raising the last exception, `retry_async` returns a typed
result so callers decide what an exhausted retry means for them.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from geoip_sync.log import log

logger = log("Retry")


@dataclass(frozen=True)
class Success[T]:
    value: T
    attempts: int


@dataclass(frozen=True)
class Exhausted:
    error: BaseException
    attempts: int


type RetryResult[T] = Success[T] | Exhausted


async def retry_async[T](
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    *,
    retry_if: Callable[[BaseException], bool] = lambda _: True,
    delay: float = 0.0,
) -> RetryResult[T]:
    """Run an operation until it succeeds or the attempts are used up.

    Args:
        operation: Zero-argument coroutine factory. Called once per attempt.
        attempts: Maximum number of attempts, at least 1.
        retry_if: Predicate deciding whether an exception is transient.
            Exceptions it rejects propagate immediately.
        delay: Seconds to sleep between attempts.

    Returns:
        Success with the value, or Exhausted with the last transient error.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    last_error: BaseException | None = None
    for attempt in range(1, attempts + 1):
        try:
            return Success(await operation(), attempt)
        except Exception as e:
            if not retry_if(e):
                raise
            last_error = e
            logger.warning(f"Attempt {attempt}/{attempts} failed: {e!r}")
            if attempt < attempts and delay > 0:
                await asyncio.sleep(delay)

    assert last_error is not None
    return Exhausted(last_error, attempts)
