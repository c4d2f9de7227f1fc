"""Executors turn asset-generating actions into stored assets."""

from .base import (
    AssetCache,
    AssetExecutor,
    AssetGenerationError,
    BaseExecutor,
    ExecutorError,
    ExecutorValidationError,
    RetrySettings,
)
from .cutscene import CutsceneAssetExecutor
from .image import GeneratedImage, ImageAssetExecutor, ImageGenerator
from .registry import ExecutorNotFoundError, ExecutorRegistry
from .stub import StubImageGenerator, StubSpeechSynthesizer
from .subtitle import SpeechSynthesizer, SubtitleAssetExecutor, SynthesizedSpeech

__all__ = [
    "AssetCache",
    "AssetExecutor",
    "AssetGenerationError",
    "BaseExecutor",
    "CutsceneAssetExecutor",
    "ExecutorError",
    "ExecutorNotFoundError",
    "ExecutorRegistry",
    "ExecutorValidationError",
    "GeneratedImage",
    "ImageAssetExecutor",
    "ImageGenerator",
    "RetrySettings",
    "SpeechSynthesizer",
    "StubImageGenerator",
    "StubSpeechSynthesizer",
    "SubtitleAssetExecutor",
    "SynthesizedSpeech",
]
