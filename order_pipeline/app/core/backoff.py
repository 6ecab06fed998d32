"""Backoff utilities.

`exponential_backoff` is an async generator used for broker and database
connection attempts: it yields the current delay for the caller to attempt an
operation, then sleeps before the next attempt.

`linear_backoff_delay` is the per-message retry delay used by the retry
processor: the wait before attempt ``n`` is ``base * n``.
"""
import asyncio
from typing import AsyncIterator


async def exponential_backoff(
    initial_delay: float,
    max_delay: float,
    multiplier: float,
    max_attempts: int,
) -> AsyncIterator[float]:
    delay = initial_delay
    for attempt in range(1, max_attempts + 1):
        yield delay
        if attempt < max_attempts:
            delay = min(delay * multiplier, max_delay)
            await asyncio.sleep(delay)


def linear_backoff_delay(base_seconds: float, attempt: int) -> float:
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return max(0.0, float(base_seconds)) * attempt
