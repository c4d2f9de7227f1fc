from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


def exponential_backoff(base: float = 1.0, factor: float = 2.0, jitter: float = 0.1, max_backoff: float = 30.0) -> Callable[[int], float]:
    """Return a function that computes the delay before retry number ``attempt``.

    ``attempt`` counts completed tries, so the first retry uses ``base``.
    Deterministic when `jitter` is 0.0; otherwise adds uniform jitter in
    +/- jitter*delay.
    """

    def _delay(attempt: int) -> float:
        if attempt <= 0:
            return 0.0
        delay = base * (factor ** (attempt - 1))
        delay = min(delay, max_backoff)
        if jitter and jitter > 0:
            delta = (random.random() * 2 - 1) * jitter * delay
            delay = max(0.0, delay + delta)
        return delay

    return _delay


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 3,
    backoff_fn: Optional[Callable[[int], float]] = None,
    should_retry: Optional[Callable[[Exception], bool]] = None,
    on_retry: Optional[Callable[[int, Exception], None]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await `fn()` with retries. Returns its result or raises the last exception.

    `attempts` is the total number of tries including the first. Exceptions for
    which `should_retry` returns False are raised immediately.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    backoff_fn = backoff_fn or exponential_backoff()
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as exc:
            if should_retry is not None and not should_retry(exc):
                raise
            if attempt >= attempts:
                raise
            if on_retry:
                on_retry(attempt, exc)
            await sleep(backoff_fn(attempt))


__all__ = ["exponential_backoff", "retry_async"]
