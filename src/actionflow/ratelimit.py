from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Literal, Optional


class RateLimitError(RuntimeError):
    """Raised when a backend call cannot obtain capacity within its wait budget."""

    def __init__(self, message: str, retry_after_s: Optional[float] = None) -> None:
        super().__init__(message)
        self.retry_after_s = retry_after_s


@dataclass(frozen=True)
class RateLimitDecision:
    status: Literal["allowed", "rejected"]
    tokens: float
    retry_after_s: Optional[float] = None
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.status == "allowed"


class RateLimiter:
    """Pluggable rate limiter consulted by executors before each backend call."""

    def request(self, tokens: float = 1.0) -> RateLimitDecision:
        raise NotImplementedError()

    def allow(self, tokens: float = 1.0) -> bool:
        return self.request(tokens).allowed

    async def acquire(self, tokens: float = 1.0, *, max_wait_s: float = 30.0) -> None:
        """Wait until ``tokens`` are available or raise :class:`RateLimitError`."""

        deadline = time.monotonic() + max(max_wait_s, 0.0)
        while True:
            decision = self.request(tokens)
            if decision.allowed:
                return
            wait = decision.retry_after_s
            remaining = deadline - time.monotonic()
            if wait is None or wait > remaining:
                raise RateLimitError(
                    f"rate limit exceeded for {tokens} token(s)",
                    retry_after_s=wait,
                )
            await asyncio.sleep(wait)


class TokenBucketRateLimiter(RateLimiter):
    """In-memory token bucket.

    Not distributed. ``clock`` may be injected so tests control refill.
    """

    def __init__(self, rate: float, capacity: float, clock: Callable[[], float] = time.monotonic) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        self.rate = float(rate)
        self.capacity = float(capacity)
        self._clock = clock
        self._tokens = float(capacity)
        self._last = clock()

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def request(self, tokens: float = 1.0) -> RateLimitDecision:
        if tokens > self.capacity:
            return RateLimitDecision(status="rejected", tokens=tokens, reason="exceeds_capacity")
        self._refill()
        if self._tokens >= tokens:
            self._tokens -= tokens
            return RateLimitDecision(status="allowed", tokens=tokens)
        if self.rate <= 0:
            return RateLimitDecision(status="rejected", tokens=tokens, reason="rate_limited")
        deficit = tokens - self._tokens
        return RateLimitDecision(
            status="rejected",
            tokens=tokens,
            retry_after_s=deficit / self.rate,
            reason="rate_limited",
        )

    def _refill(self) -> None:
        now = self._clock()
        delta = max(now - self._last, 0.0)
        self._last = now
        self._tokens = min(self.capacity, self._tokens + delta * self.rate)


__all__ = [
    "RateLimitDecision",
    "RateLimitError",
    "RateLimiter",
    "TokenBucketRateLimiter",
]
