"""Backoff and timeout helpers."""

import asyncio
from collections.abc import Awaitable, Iterator
from typing import TypeVar

from .workflow import RetryPolicy

T = TypeVar("T")


def calculate_backoff(attempt: int, policy: RetryPolicy) -> float:
    """Delay before the retry following zero-indexed ``attempt``.

    ``min(initial_delay * backoff_multiplier ** attempt, max_delay)``
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    return min(policy.initial_delay * policy.backoff_multiplier**attempt, policy.max_delay)


def backoff_delays(policy: RetryPolicy) -> Iterator[float]:
    """Yield the delays slept between attempts (``max_attempts - 1`` values)."""
    for attempt in range(policy.max_attempts - 1):
        yield calculate_backoff(attempt, policy)


async def run_with_timeout(awaitable: Awaitable[T], timeout: float) -> T:
    """Await ``awaitable``, raising ``asyncio.TimeoutError`` after ``timeout`` seconds.

    The awaited call is cancelled when the timeout fires.
    """
    return await asyncio.wait_for(awaitable, timeout=timeout)
