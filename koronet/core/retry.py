"""
Bounded retry for startup connection attempts (shared by DB and Redis connectors).
Challenge: Fixed attempt budget, suspend only the retrying task between attempts.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DelayFn = Callable[[int], float]


class RetryExhausted(Exception):
    """All attempts failed. Carries the last error."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def constant_delay(seconds: float) -> DelayFn:
    return lambda attempt: seconds


def capped_linear_delay(step: float, cap: float) -> DelayFn:
    """min(attempt * step, cap), attempt counted from 1."""
    return lambda attempt: min(attempt * step, cap)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 5,
    delay: DelayFn = constant_delay(5.0),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """
    Await operation() up to `attempts` times.
    No sleep after the last failure; raises RetryExhausted instead.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            remaining = attempts - attempt
            logger.error("%s failed (%d retries left): %s", label, remaining, exc)
            if remaining == 0:
                raise RetryExhausted(attempts, exc) from exc
            await sleep(delay(attempt))
    raise AssertionError("unreachable")
