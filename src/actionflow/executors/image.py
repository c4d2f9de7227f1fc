from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from ..schemas import Action, AssetResult, CostEstimate, ImageAction, ValidationResult
from ..storage.base import AssetStorage
from .base import BaseExecutor, issue

VALID_SIZES = ("1024x768", "768x1024", "1024x1024")
VALID_MODELS = ("flux-schnell", "sdxl")
MAX_PROMPT_CHARS = 1000

# USD per generated image.
MODEL_COSTS = {
    "flux-schnell": 0.0,
    "sdxl": 0.009,
}

STYLE_MODIFIERS = (
    "high quality",
    "detailed",
    "cinematic lighting",
    "professional photography",
)

_BLOCKED_TERMS = re.compile(
    r"\b(violence|violent|gore|blood|nude|naked|nsfw|sexual|hate|racist|discrimination)\b",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"
    width: Optional[int] = None
    height: Optional[int] = None


class ImageGenerator(Protocol):
    async def generate(self, prompt: str, *, width: int, height: int, model: str) -> GeneratedImage: ...


def parse_size(size: str) -> tuple[int, int]:
    width, _, height = size.partition("x")
    return int(width), int(height)


def enhance_prompt(prompt: str) -> str:
    """Append house style modifiers unless the prompt already names one."""

    lowered = prompt.lower()
    if any(modifier in lowered for modifier in STYLE_MODIFIERS):
        return prompt
    return f"{prompt}, {', '.join(STYLE_MODIFIERS)}"


class ImageAssetExecutor(BaseExecutor):
    action_type = "asset_image"
    asset_type = "image"
    operation = "Image generation"

    def __init__(self, storage: AssetStorage, generator: ImageGenerator, **kwargs: Any) -> None:
        super().__init__(storage, **kwargs)
        self.generator = generator

    def validate(self, action: Action) -> ValidationResult:
        issues = []
        if not isinstance(action, ImageAction):
            return ValidationResult.from_issues([issue("type", f"expected asset_image, got {action.type}", "wrong_type")])
        if not (action.id or "").strip():
            issues.append(issue("id", "ID is required and cannot be empty", "required"))
        if not action.prompt.strip():
            issues.append(issue("prompt", "Prompt is required and cannot be empty", "required"))
        if action.size not in VALID_SIZES:
            issues.append(issue("size", f"Size must be one of: {', '.join(VALID_SIZES)}", "invalid_value"))
        if action.model not in VALID_MODELS:
            issues.append(issue("model", f"Model must be one of: {', '.join(VALID_MODELS)}", "invalid_value"))
        if len(action.prompt) > MAX_PROMPT_CHARS:
            issues.append(issue("prompt", f"Prompt must be {MAX_PROMPT_CHARS} characters or less", "too_long"))
        if _BLOCKED_TERMS.search(action.prompt):
            issues.append(issue("prompt", "Prompt contains potentially problematic content", "content_violation"))
        return ValidationResult.from_issues(issues)

    def estimate_cost(self, action: Action) -> CostEstimate:
        model = getattr(action, "model", None)
        if model in MODEL_COSTS:
            return CostEstimate(estimated=MODEL_COSTS[model], confidence="high")
        return CostEstimate(estimated=max(MODEL_COSTS.values()), confidence="low")

    async def _generate(self, action: ImageAction) -> AssetResult:
        enhanced = enhance_prompt(action.prompt)
        width, height = parse_size(action.size)
        image = await self.generator.generate(enhanced, width=width, height=height, model=action.model)
        metadata = self.base_metadata(
            action,
            format="png" if image.mime_type == "image/png" else image.mime_type.rpartition("/")[2],
            width=width,
            height=height,
            model=action.model,
            prompt=action.prompt,
            enhanced_prompt=enhanced,
        )
        url = await self.storage.store(
            action.id,
            image.data,
            asset_type=self.asset_type,
            mime_type=image.mime_type,
            metadata=metadata,
        )
        return AssetResult(
            id=action.id,
            type="image",
            url=url,
            metadata=metadata,
            cost=MODEL_COSTS[action.model],
        )


__all__ = [
    "GeneratedImage",
    "ImageAssetExecutor",
    "ImageGenerator",
    "MODEL_COSTS",
    "enhance_prompt",
    "parse_size",
]
