from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..schemas import Action, AssetResult, CostEstimate, CutsceneAction, ValidationResult
from .base import AssetGenerationError, BaseExecutor, issue

LOG = logging.getLogger(__name__)

VALID_ANIMATIONS = ("none", "slow_zoom", "pan_left", "pan_right", "fade")
MAX_SHOT_SECONDS = 30.0
MAX_TOTAL_SECONDS = 300.0
MAX_SHOTS = 50
SHORT_SHOT_SECONDS = 2.0


def timing_warnings(shots: List[Dict[str, Any]]) -> List[str]:
    """Pacing problems worth surfacing; none of them block assembly."""

    warnings = []
    for index, shot in enumerate(shots):
        audio, duration = shot["audio_duration"], shot["duration"]
        if audio > duration:
            warnings.append(
                f"Shot {index}: audio duration ({audio}s) exceeds shot duration ({duration}s); audio will be cut off"
            )
        if 0 < audio < duration * 0.5:
            warnings.append(
                f"Shot {index}: audio duration ({audio}s) is much shorter than shot duration ({duration}s)"
            )
        if duration < SHORT_SHOT_SECONDS:
            warnings.append(f"Shot {index}: very short duration ({duration}s)")
    return warnings


class CutsceneAssetExecutor(BaseExecutor):
    """Assembles a JSON cutscene manifest from already stored images and narration.

    No generation backend is involved; every referenced id must already be
    in storage, otherwise the action fails without retrying.
    """

    action_type = "asset_cutscene"
    asset_type = "cutscene"
    operation = "Cutscene assembly"

    def validate(self, action: Action) -> ValidationResult:
        if not isinstance(action, CutsceneAction):
            return ValidationResult.from_issues([issue("type", f"expected asset_cutscene, got {action.type}", "wrong_type")])
        issues = []
        if not (action.id or "").strip():
            issues.append(issue("id", "ID is required and cannot be empty", "required"))
        if not action.shots:
            issues.append(issue("shots", "Cutscene must have at least one shot", "required"))
        if len(action.shots) > MAX_SHOTS:
            issues.append(issue("shots", f"Cutscene should not have more than {MAX_SHOTS} shots", "too_many"))
        for index, shot in enumerate(action.shots):
            prefix = f"shots[{index}]"
            if not shot.image_id.strip():
                issues.append(issue(f"{prefix}.image_id", "Image ID is required for each shot", "required"))
            if not shot.subtitle_id.strip():
                issues.append(issue(f"{prefix}.subtitle_id", "Subtitle ID is required for each shot", "required"))
            if shot.duration <= 0:
                issues.append(issue(f"{prefix}.duration", "Duration must be a positive number", "invalid_value"))
            elif shot.duration > MAX_SHOT_SECONDS:
                issues.append(
                    issue(f"{prefix}.duration", f"Shot duration should not exceed {MAX_SHOT_SECONDS:g} seconds", "too_long")
                )
            if shot.animation not in VALID_ANIMATIONS:
                issues.append(
                    issue(f"{prefix}.animation", f"Animation must be one of: {', '.join(VALID_ANIMATIONS)}", "invalid_value")
                )
        total = sum(shot.duration for shot in action.shots)
        if total > MAX_TOTAL_SECONDS:
            issues.append(
                issue("shots", f"Total cutscene duration should not exceed {MAX_TOTAL_SECONDS:g} seconds", "too_long")
            )
        return ValidationResult.from_issues(issues)

    def estimate_cost(self, action: Action) -> CostEstimate:
        return CostEstimate(estimated=0.0, confidence="high")

    async def _generate(self, action: CutsceneAction) -> AssetResult:
        missing = []
        for shot in action.shots:
            if not await self.storage.exists(shot.image_id):
                missing.append(f"image: {shot.image_id}")
            if not await self.storage.exists(shot.subtitle_id):
                missing.append(f"subtitle: {shot.subtitle_id}")
        if missing:
            raise AssetGenerationError(
                f"Missing referenced assets: {', '.join(missing)}",
                action_id=action.id,
                retryable=False,
                details={"missing_assets": missing},
            )

        shots: List[Dict[str, Any]] = []
        for shot in action.shots:
            shots.append(
                {
                    "image_id": shot.image_id,
                    "subtitle_id": shot.subtitle_id,
                    "image_url": await self.storage.get_url(shot.image_id),
                    "audio_url": await self.storage.get_url(shot.subtitle_id),
                    "duration": shot.duration,
                    "animation": shot.animation,
                    "audio_duration": await self.storage.get_duration(shot.subtitle_id) or 0.0,
                }
            )
        warnings = timing_warnings(shots)
        for warning in warnings:
            LOG.warning("Cutscene %s: %s", action.id, warning)

        total_duration = sum(shot["duration"] for shot in shots)
        definition = {"id": action.id, "total_duration": total_duration, "shots": shots}
        metadata = self.base_metadata(
            action,
            total_duration=total_duration,
            shot_count=len(shots),
            shots=shots,
            warnings=warnings,
        )
        url = await self.storage.store_json(
            action.id,
            definition,
            asset_type=self.asset_type,
            metadata={"duration": total_duration, "shot_count": len(shots)},
        )
        return AssetResult(
            id=action.id,
            type="cutscene",
            url=url,
            duration=total_duration,
            metadata=metadata,
            cost=0.0,
        )


__all__ = ["CutsceneAssetExecutor", "VALID_ANIMATIONS", "timing_warnings"]
