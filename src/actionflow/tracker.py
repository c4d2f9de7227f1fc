from __future__ import annotations

import threading
from typing import List, Optional

from .schemas import AssetResult, CostBreakdown, ProcessorStatus


class StatusTracker:
    """Live progress and last-batch aggregates for one processor.

    Writers are the processor's own coroutine; readers may be other
    coroutines or threads. Every read returns a copy taken under the lock, so
    a poller never sees a half-updated status.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = ProcessorStatus()
        self._breakdown = CostBreakdown()
        self._completed = 0

    def begin(self, queue_length: int) -> None:
        with self._lock:
            self._completed = 0
            self._status = ProcessorStatus(is_processing=True, progress=0.0, queue_length=queue_length)

    def set_queue_length(self, queue_length: int) -> None:
        with self._lock:
            self._status = self._status.model_copy(update={"queue_length": queue_length})

    def start_action(self, action_id: str) -> None:
        with self._lock:
            self._status = self._status.model_copy(update={"current_action": action_id})

    def complete_action(self) -> float:
        """Count one finished action (success or failure) and return the new progress."""

        with self._lock:
            self._completed += 1
            total = self._status.queue_length
            progress = 100.0 if total == 0 else min(100.0, self._completed / total * 100.0)
            progress = max(progress, self._status.progress)
            self._status = self._status.model_copy(update={"progress": progress, "current_action": None})
            return progress

    def finish(self, assets: Optional[List[AssetResult]] = None) -> None:
        breakdown = CostBreakdown.from_assets(list(assets or []))
        with self._lock:
            self._breakdown = breakdown
            self._status = ProcessorStatus(
                is_processing=False,
                progress=100.0,
                current_action=None,
                queue_length=0,
            )

    def status(self) -> ProcessorStatus:
        with self._lock:
            return self._status.model_copy()

    def cost_breakdown(self) -> CostBreakdown:
        with self._lock:
            return self._breakdown.model_copy(deep=True)


__all__ = ["StatusTracker"]
