"""Batch entry point: parse, order, dispatch and aggregate."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Any, Dict, List, Mapping, Optional

from . import telemetry
from .config import ProcessorConfig
from .dependencies import DependencyGraph, build_dependency_graph
from .executors.base import AssetCache, issue
from .executors.registry import ExecutorRegistry
from .parser import ParseError, RawBatch, parse_actions
from .scheduler import execution_order
from .schemas import (
    ASSET_ACTION_TYPES,
    Action,
    AssetResult,
    CostBreakdown,
    CostBucket,
    ExecutionError,
    ExecutionReport,
    ProcessorStatus,
    ValidationResult,
)
from .storage.base import AssetStorage, InMemoryAssetStorage
from .tracker import StatusTracker

LOG = logging.getLogger(__name__)

_BUCKETS = {"asset_image": "images", "asset_subtitle": "audio", "asset_cutscene": "cutscenes"}


class ProcessorBusyError(RuntimeError):
    """Raised when a batch is submitted while another is still running on the same processor."""


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ActionProcessor:
    """Runs action batches one action at a time in dependency order.

    One failing action never stops the batch: its error is recorded and the
    next action in order starts. Only input that cannot be parsed or ordered
    aborts a batch, and it does so before any executor is called.
    """

    def __init__(
        self,
        registry: Optional[ExecutorRegistry] = None,
        *,
        storage: Optional[AssetStorage] = None,
        config: Optional[ProcessorConfig] = None,
    ) -> None:
        self.config = config or ProcessorConfig()
        self.storage = storage if storage is not None else InMemoryAssetStorage()
        if registry is None:
            registry = ExecutorRegistry.with_defaults(
                self.storage,
                retry=self.config.retry_settings(),
                cache=AssetCache() if self.config.cache_enabled else None,
            )
        self.registry = registry
        self._tracker = StatusTracker()
        self._batch_lock = threading.Lock()
        self._cancel = threading.Event()

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **kwargs: Any) -> "ActionProcessor":
        return cls(config=ProcessorConfig.from_env(env), **kwargs)

    def get_status(self) -> ProcessorStatus:
        return self._tracker.status()

    def get_cost_breakdown(self) -> CostBreakdown:
        return self._tracker.cost_breakdown()

    def cancel(self) -> None:
        """Ask the running batch to stop after the current action finishes."""

        self._cancel.set()

    async def process_actions(self, raw: RawBatch) -> ExecutionReport:
        if not self._batch_lock.acquire(blocking=False):
            raise ProcessorBusyError("A batch is already running on this processor")
        self._cancel.clear()
        started = time.perf_counter()
        errors: List[ExecutionError] = []
        assets: List[AssetResult] = []
        executed: List[str] = []
        self._tracker.begin(queue_length=0)
        telemetry.emit_event("actions.batch_started", {})
        try:
            try:
                actions = parse_actions(raw)
                graph = build_dependency_graph(actions)
                order = execution_order(graph)
            except ParseError as exc:
                LOG.warning("Rejected action batch: %s", exc)
                telemetry.emit_event(
                    "actions.parse_failed",
                    {"error_type": type(exc).__name__, "message": str(exc), "errors": exc.errors},
                )
                errors.append(
                    ExecutionError(action_id=None, message=f"Parse error: {exc}", error_type=type(exc).__name__)
                )
                return self._report(errors, assets, executed, started)

            LOG.info("Processing %d actions", len(order))
            self._tracker.set_queue_length(len(order))
            failed: set[str] = set()
            for action_id in order:
                action = graph.actions[action_id]
                blocked_by = self._blocking_dependency(graph, action_id, failed)
                if self._cancel.is_set():
                    failed.add(action_id)
                    errors.append(
                        ExecutionError(action_id=action_id, message="cancelled before start", error_type="Cancelled")
                    )
                    telemetry.emit_event("actions.action_skipped", {"action_id": action_id, "reason": "cancelled"})
                elif blocked_by is not None:
                    failed.add(action_id)
                    errors.append(
                        ExecutionError(
                            action_id=action_id,
                            message=f"skipped: dependency {blocked_by} failed",
                            error_type="DependencySkipped",
                        )
                    )
                    LOG.warning("Skipping %s because %s failed", action_id, blocked_by)
                    telemetry.emit_event(
                        "actions.action_skipped",
                        {"action_id": action_id, "reason": "dependency_failed", "dependency": blocked_by},
                    )
                else:
                    self._tracker.start_action(action_id)
                    try:
                        result = await self._run_action(action)
                    except asyncio.CancelledError:
                        raise
                    except Exception as exc:
                        failed.add(action_id)
                        error = self._error_for(action_id, exc)
                        errors.append(error)
                        LOG.warning("Action %s (%s) failed: %s", action_id, action.type, error.message)
                        telemetry.emit_event(
                            "actions.action_failed",
                            {"action_id": action_id, "type": action.type, "error_type": error.error_type},
                        )
                    else:
                        if result is not None:
                            assets.append(result)
                        executed.append(action_id)
                        telemetry.emit_event(
                            "actions.action_succeeded",
                            {
                                "action_id": action_id,
                                "type": action.type,
                                "cost": result.cost if result is not None else 0.0,
                            },
                        )
                self._tracker.complete_action()
            return self._report(errors, assets, executed, started)
        finally:
            self._tracker.finish(assets)
            self._batch_lock.release()

    async def _run_action(self, action: Action) -> Optional[AssetResult]:
        if action.type not in ASSET_ACTION_TYPES:
            return None
        executor = self.registry.require(action.type)
        call = executor.execute(action)
        if self.config.action_timeout_s is not None:
            result = await asyncio.wait_for(call, timeout=self.config.action_timeout_s)
        else:
            result = await call
        if not isinstance(result, AssetResult):
            result = AssetResult.model_validate(result)
        return result

    def _error_for(self, action_id: str, exc: Exception) -> ExecutionError:
        if isinstance(exc, asyncio.TimeoutError) and self.config.action_timeout_s is not None:
            return ExecutionError(
                action_id=action_id,
                message=f"timed out after {self.config.action_timeout_s}s",
                error_type="TimeoutError",
            )
        return ExecutionError(action_id=action_id, message=_describe(exc), error_type=type(exc).__name__)

    def _blocking_dependency(self, graph: DependencyGraph, action_id: str, failed: set[str]) -> Optional[str]:
        if self.config.on_dependency_failure != "skip":
            return None
        for producer in graph.producers_of(action_id):
            if producer in failed:
                return producer
        return None

    def _report(
        self,
        errors: List[ExecutionError],
        assets: List[AssetResult],
        executed: List[str],
        started: float,
    ) -> ExecutionReport:
        report = ExecutionReport(
            success=not errors,
            errors=list(errors),
            assets_generated=list(assets),
            actions_executed=list(executed),
            total_cost=sum(asset.cost for asset in assets),
            execution_time_ms=(time.perf_counter() - started) * 1000.0,
        )
        LOG.info(
            "Batch finished: %d executed, %d failed, $%.4f in %.1fms",
            len(report.actions_executed),
            len(report.errors),
            report.total_cost,
            report.execution_time_ms,
        )
        telemetry.emit_event(
            "actions.batch_completed",
            {
                "success": report.success,
                "executed": len(report.actions_executed),
                "failed": len(report.errors),
                "total_cost": report.total_cost,
                "execution_time_ms": report.execution_time_ms,
            },
        )
        return report

    def estimate_costs(self, raw: RawBatch) -> CostBreakdown:
        """Advisory cost preview from each executor's estimate; nothing is executed."""

        actions = parse_actions(raw)
        execution_order(build_dependency_graph(actions))
        buckets: Dict[str, CostBucket] = {name: CostBucket() for name in set(_BUCKETS.values())}
        for action in actions:
            bucket_name = _BUCKETS.get(action.type)
            executor = self.registry.get(action.type)
            if bucket_name is None or executor is None:
                continue
            bucket = buckets[bucket_name]
            bucket.count += 1
            bucket.cost += executor.estimate_cost(action).estimated
        return CostBreakdown(
            images=buckets["images"],
            audio=buckets["audio"],
            cutscenes=buckets["cutscenes"],
            total=buckets["images"].cost + buckets["audio"].cost + buckets["cutscenes"].cost,
        )

    def validate_actions(self, raw: RawBatch) -> Dict[str, ValidationResult]:
        """Pre-flight check of every action against its executor's own rules."""

        results: Dict[str, ValidationResult] = {}
        actions = parse_actions(raw)
        execution_order(build_dependency_graph(actions))
        for action in actions:
            if action.type not in ASSET_ACTION_TYPES:
                results[action.id] = ValidationResult(valid=True)
                continue
            executor = self.registry.get(action.type)
            if executor is None:
                results[action.id] = ValidationResult.from_issues(
                    [issue("type", f"No executor registered for action type '{action.type}'", "no_executor")]
                )
                continue
            results[action.id] = executor.validate(action)
        return results


__all__ = ["ActionProcessor", "ProcessorBusyError"]
