"""Shared executor plumbing: validation, caching, rate limiting and retries."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, ClassVar, Dict, List, Optional, Protocol, runtime_checkable

from ..ratelimit import RateLimiter
from ..retry import exponential_backoff, retry_async
from ..schemas import Action, AssetResult, CostEstimate, ValidationIssue, ValidationResult
from ..storage.base import AssetNotFoundError, AssetStorage

LOG = logging.getLogger(__name__)


class ExecutorError(RuntimeError):
    """Base error raised while executing one action."""


class AssetGenerationError(ExecutorError):
    """Generation failed. ``retryable`` tells the retry loop whether to try again."""

    def __init__(
        self,
        message: str,
        *,
        action_id: Optional[str] = None,
        retryable: bool = True,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.action_id = action_id
        self.retryable = retryable
        self.details = dict(details or {})


class ExecutorValidationError(ExecutorError):
    """The action payload failed the executor's own checks. Never retried."""

    def __init__(self, message: str, issues: Optional[List[ValidationIssue]] = None) -> None:
        super().__init__(message)
        self.issues = list(issues or [])


@runtime_checkable
class AssetExecutor(Protocol):
    """What the processor needs from a backend for one action type."""

    def validate(self, action: Action) -> ValidationResult: ...

    def estimate_cost(self, action: Action) -> CostEstimate: ...

    async def execute(self, action: Action) -> AssetResult: ...


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = 3
    backoff_base_s: float = 1.0
    backoff_max_s: float = 30.0
    jitter: float = 0.0

    def backoff(self) -> Callable[[int], float]:
        return exponential_backoff(base=self.backoff_base_s, factor=2.0, jitter=self.jitter, max_backoff=self.backoff_max_s)


class AssetCache:
    """In-process result cache keyed by a hash of the normalized action."""

    def __init__(self) -> None:
        self._items: Dict[str, AssetResult] = {}

    def __len__(self) -> int:
        return len(self._items)

    def get(self, key: str) -> Optional[AssetResult]:
        return self._items.get(key)

    def set(self, key: str, result: AssetResult) -> None:
        self._items[key] = result.model_copy(deep=True)

    def clear(self) -> None:
        self._items.clear()


def cache_key(action: Action) -> str:
    normalized = json.dumps(action.model_dump(mode="json"), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, (ExecutorValidationError, AssetNotFoundError)):
        return False
    if isinstance(exc, AssetGenerationError):
        return exc.retryable
    return True


class BaseExecutor:
    """Template for asset executors.

    Subclasses set ``action_type`` and ``asset_type`` and implement
    :meth:`validate`, :meth:`estimate_cost` and :meth:`_generate`.
    :meth:`execute` validates first, consults the cache, then runs
    ``_generate`` under the rate limiter with exponential backoff.
    """

    action_type: ClassVar[str] = ""
    asset_type: ClassVar[str] = ""
    operation: ClassVar[str] = "Asset generation"

    def __init__(
        self,
        storage: AssetStorage,
        *,
        retry: Optional[RetrySettings] = None,
        cache: Optional[AssetCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
        rate_limit_wait_s: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.storage = storage
        self.retry = retry or RetrySettings()
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.rate_limit_wait_s = rate_limit_wait_s
        self._sleep = sleep

    def validate(self, action: Action) -> ValidationResult:
        raise NotImplementedError

    def estimate_cost(self, action: Action) -> CostEstimate:
        raise NotImplementedError

    async def _generate(self, action: Action) -> AssetResult:
        raise NotImplementedError

    async def execute(self, action: Action) -> AssetResult:
        if action.type != self.action_type:
            raise ExecutorValidationError(
                f"{type(self).__name__} handles '{self.action_type}' actions, got '{action.type}'"
            )
        self.validate_action(action)

        key = cache_key(action) if self.cache is not None else None
        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                LOG.debug("Cache hit for action %s", action.id)
                metadata = dict(cached.metadata, cached=True)
                return cached.model_copy(update={"cost": 0.0, "metadata": metadata}, deep=True)

        start = time.perf_counter()

        def _on_retry(attempt: int, exc: Exception) -> None:
            LOG.warning(
                "%s attempt %d for %s failed: %s. Retrying.",
                self.operation,
                attempt,
                action.id,
                exc,
            )

        try:
            result = await retry_async(
                lambda: self._attempt(action),
                attempts=max(1, self.retry.max_attempts),
                backoff_fn=self.retry.backoff(),
                should_retry=_should_retry,
                on_retry=_on_retry,
                sleep=self._sleep,
            )
        except (ExecutorValidationError, AssetNotFoundError):
            raise
        except AssetGenerationError as exc:
            if not exc.retryable:
                raise
            raise self._exhausted(action, exc) from exc
        except Exception as exc:
            raise self._exhausted(action, exc) from exc

        if key is not None:
            self.cache.set(key, result)
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        LOG.info("Executed %s for %s in %.1fms, cost: $%.4f", action.type, action.id, elapsed_ms, result.cost)
        return result

    async def _attempt(self, action: Action) -> AssetResult:
        if self.rate_limiter is not None:
            await self.rate_limiter.acquire(1, max_wait_s=self.rate_limit_wait_s)
        return await self._generate(action)

    def _exhausted(self, action: Action, exc: Exception) -> AssetGenerationError:
        attempts = max(1, self.retry.max_attempts)
        return AssetGenerationError(
            f"{self.operation} failed after {attempts} attempts: {exc}",
            action_id=action.id,
            retryable=False,
            details={"attempts": attempts, "original_error": type(exc).__name__},
        )

    def validate_action(self, action: Action) -> None:
        result = self.validate(action)
        if not result.valid:
            summary = ", ".join(f"{issue.field}: {issue.message}" for issue in result.errors)
            raise ExecutorValidationError(f"Validation failed: {summary}", result.errors)

    def base_metadata(self, action: Action, **extra: Any) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "action_id": action.id,
            "action_type": action.type,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        metadata.update(extra)
        return metadata


def issue(field: str, message: str, code: str = "invalid") -> ValidationIssue:
    return ValidationIssue(field=field, message=message, code=code)


__all__ = [
    "AssetCache",
    "AssetExecutor",
    "AssetGenerationError",
    "BaseExecutor",
    "ExecutorError",
    "ExecutorValidationError",
    "RetrySettings",
    "cache_key",
    "issue",
]
