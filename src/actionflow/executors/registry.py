from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

from ..storage.base import AssetStorage
from .base import AssetCache, AssetExecutor, ExecutorError, RetrySettings
from .cutscene import CutsceneAssetExecutor
from .image import ImageAssetExecutor
from .stub import StubImageGenerator, StubSpeechSynthesizer
from .subtitle import SubtitleAssetExecutor


class ExecutorNotFoundError(ExecutorError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"No executor registered for action type '{action_type}'")
        self.action_type = action_type


class ExecutorRegistry:
    """Explicit ``action type -> executor`` map consulted by the processor."""

    def __init__(self, executors: Optional[Dict[str, AssetExecutor]] = None) -> None:
        self._executors: Dict[str, AssetExecutor] = {}
        for action_type, executor in (executors or {}).items():
            self.register(action_type, executor)

    def register(self, action_type: str, executor: AssetExecutor) -> None:
        if not action_type:
            raise ValueError("action_type must be a non-empty string")
        self._executors[action_type] = executor

    def unregister(self, action_type: str) -> Optional[AssetExecutor]:
        return self._executors.pop(action_type, None)

    def get(self, action_type: str) -> Optional[AssetExecutor]:
        return self._executors.get(action_type)

    def require(self, action_type: str) -> AssetExecutor:
        executor = self._executors.get(action_type)
        if executor is None:
            raise ExecutorNotFoundError(action_type)
        return executor

    def types(self) -> List[str]:
        return sorted(self._executors)

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._executors

    def __iter__(self) -> Iterator[str]:
        return iter(self.types())

    @classmethod
    def with_defaults(
        cls,
        storage: AssetStorage,
        *,
        image_generator: Any = None,
        speech_synthesizer: Any = None,
        retry: Optional[RetrySettings] = None,
        cache: Optional[AssetCache] = None,
        **executor_kwargs: Any,
    ) -> "ExecutorRegistry":
        """Register the image, narration and cutscene executors against ``storage``.

        Missing backends fall back to the deterministic stubs.
        """
        shared = dict(executor_kwargs, retry=retry, cache=cache)
        registry = cls()
        registry.register(
            "asset_image",
            ImageAssetExecutor(storage, image_generator or StubImageGenerator(), **shared),
        )
        registry.register(
            "asset_subtitle",
            SubtitleAssetExecutor(storage, speech_synthesizer or StubSpeechSynthesizer(), **shared),
        )
        registry.register("asset_cutscene", CutsceneAssetExecutor(storage, **shared))
        return registry


__all__ = ["ExecutorNotFoundError", "ExecutorRegistry"]
