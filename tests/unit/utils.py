"""Scripted executors and payload builders shared by unit tests."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from actionflow.schemas import Action, AssetResult, CostEstimate, ValidationResult

_ASSET_TYPES = {"asset_image": "image", "asset_subtitle": "audio", "asset_cutscene": "cutscene"}


class RecordingExecutor:
    """Succeeds for every action except ids listed in ``fail_ids``.

    ``on_execute`` runs before each call so tests can observe processor state
    mid-batch.
    """

    def __init__(
        self,
        *,
        cost: float = 0.01,
        fail_ids: Optional[set[str]] = None,
        on_execute: Optional[Callable[[Action], Any]] = None,
    ) -> None:
        self.cost = cost
        self.fail_ids = set(fail_ids or ())
        self.on_execute = on_execute
        self.calls: List[str] = []

    def validate(self, action: Action) -> ValidationResult:
        return ValidationResult(valid=True)

    def estimate_cost(self, action: Action) -> CostEstimate:
        return CostEstimate(estimated=self.cost, confidence="high")

    async def execute(self, action: Action) -> AssetResult:
        self.calls.append(action.id)
        if self.on_execute is not None:
            self.on_execute(action)
        if action.id in self.fail_ids:
            raise RuntimeError(f"backend rejected {action.id}")
        asset_type = _ASSET_TYPES[action.type]
        return AssetResult(
            id=action.id,
            type=asset_type,
            url=f"/assets/{action.id}",
            cost=0.0 if asset_type == "cutscene" else self.cost,
        )


def image(action_id: str, prompt: str = "A quiet moon over a red desert", **extra: Any) -> Dict[str, Any]:
    payload = {"type": "asset_image", "id": action_id, "prompt": prompt, "size": "1024x768", "model": "flux-schnell"}
    payload.update(extra)
    return payload


def subtitle(action_id: str, text: str = "The first dawn breaks over the ocean.", **extra: Any) -> Dict[str, Any]:
    payload = {
        "type": "asset_subtitle",
        "id": action_id,
        "text": text,
        "voice_tone": "calm",
        "voice_gender": "neutral",
        "voice_pace": "normal",
        "model": "openai-tts",
    }
    payload.update(extra)
    return payload


def cutscene(action_id: str, *pairs: tuple[str, str], duration: float = 5.0) -> Dict[str, Any]:
    return {
        "type": "asset_cutscene",
        "id": action_id,
        "shots": [
            {"image_id": image_id, "subtitle_id": subtitle_id, "duration": duration, "animation": "fade"}
            for image_id, subtitle_id in pairs
        ],
    }
