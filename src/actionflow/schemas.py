from __future__ import annotations

from typing import Any, Dict, List, Optional, Literal, Annotated, Union

from pydantic import BaseModel, Field, ConfigDict, model_validator

# Dotted identifier path such as "game.planet_just_created".
_PATH_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$"

ImageSize = Literal["1024x768", "768x1024", "1024x1024"]
ImageModel = Literal["flux-schnell", "sdxl"]
VoiceTone = Literal["epic", "mysterious", "calm", "urgent", "triumphant"]
VoiceGender = Literal["neutral", "feminine", "masculine"]
VoicePace = Literal["slow", "normal", "fast"]
SpeechModel = Literal["openai-tts", "google-tts"]
Animation = Literal["none", "slow_zoom", "pan_left", "pan_right", "fade"]
AssetType = Literal["image", "audio", "cutscene"]

ASSET_ACTION_TYPES = ("asset_image", "asset_subtitle", "asset_cutscene")


class _ActionBase(BaseModel):
    """Fields shared by every action.

    ``id`` is optional at the model level because nested actions (inside
    ``when_then`` or player-choice reactions) may omit it. The parser assigns
    an id to every top-level action before validation.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(default=None, min_length=1)

    @property
    def is_asset(self) -> bool:
        return getattr(self, "type") in ASSET_ACTION_TYPES


class ImageAction(_ActionBase):
    """Generate one still image from a text prompt."""

    type: Literal["asset_image"] = "asset_image"
    prompt: str = Field(..., min_length=1)
    size: ImageSize = "1024x768"
    model: ImageModel = "flux-schnell"


class SubtitleAction(_ActionBase):
    """Synthesize a narrated speech clip."""

    type: Literal["asset_subtitle"] = "asset_subtitle"
    text: str = Field(..., min_length=1)
    voice_tone: VoiceTone = "calm"
    voice_gender: VoiceGender = "neutral"
    voice_pace: VoicePace = "normal"
    model: SpeechModel = "openai-tts"


class CutsceneShot(BaseModel):
    """One shot of a cutscene pairing an image with a narration clip."""

    image_id: str = Field(..., min_length=1)
    subtitle_id: str = Field(..., min_length=1)
    duration: float = Field(..., gt=0)
    animation: Animation = "none"


class CutsceneAction(_ActionBase):
    type: Literal["asset_cutscene"] = "asset_cutscene"
    shots: List[CutsceneShot] = Field(..., min_length=1)


class PlayCutsceneAction(_ActionBase):
    type: Literal["play_cutscene"] = "play_cutscene"
    cutscene_id: str = Field(..., min_length=1)


class ReasonAction(_ActionBase):
    type: Literal["reason"] = "reason"
    ephemeral_reasoning: str


class ShowModalAction(_ActionBase):
    type: Literal["show_modal"] = "show_modal"
    title: str
    content: str
    image_id: Optional[str] = None
    subtitle_id: Optional[str] = None


class AddFeatureAction(_ActionBase):
    type: Literal["add_feature"] = "add_feature"
    feature_type: str = Field(..., min_length=1)
    feature_data: Dict[str, Any] = Field(default_factory=dict)
    target: str = Field(..., pattern=_PATH_PATTERN)


class RemoveFeatureAction(_ActionBase):
    type: Literal["remove_feature"] = "remove_feature"
    feature_type: str = Field(..., min_length=1)
    target: str = Field(..., pattern=_PATH_PATTERN)


class WhenThenAction(_ActionBase):
    """Conditional rule kept as data for the game engine; never executed here."""

    type: Literal["when_then"] = "when_then"
    condition: str = Field(..., pattern=_PATH_PATTERN)
    action: Action


class PlayerChoiceOption(BaseModel):
    label: str
    description: str = ""
    reactions: List[Action] = Field(default_factory=list)


class AddPlayerChoiceAction(_ActionBase):
    type: Literal["add_player_choice"] = "add_player_choice"
    prompt: str
    options: List[PlayerChoiceOption] = Field(..., min_length=1)


Action = Annotated[
    Union[
        ImageAction,
        SubtitleAction,
        CutsceneAction,
        PlayCutsceneAction,
        ReasonAction,
        ShowModalAction,
        AddFeatureAction,
        RemoveFeatureAction,
        WhenThenAction,
        AddPlayerChoiceAction,
    ],
    Field(discriminator="type"),
]

ACTION_MODELS: Dict[str, type[_ActionBase]] = {
    "asset_image": ImageAction,
    "asset_subtitle": SubtitleAction,
    "asset_cutscene": CutsceneAction,
    "play_cutscene": PlayCutsceneAction,
    "reason": ReasonAction,
    "show_modal": ShowModalAction,
    "add_feature": AddFeatureAction,
    "remove_feature": RemoveFeatureAction,
    "when_then": WhenThenAction,
    "add_player_choice": AddPlayerChoiceAction,
}


WhenThenAction.model_rebuild()
PlayerChoiceOption.model_rebuild()
AddPlayerChoiceAction.model_rebuild()


class AssetResult(BaseModel):
    """A stored asset produced by one asset-generating action."""

    id: str
    type: AssetType
    url: str
    duration: Optional[float] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    cost: float = Field(default=0.0, ge=0)


class ExecutionError(BaseModel):
    action_id: Optional[str] = None
    message: str
    error_type: Optional[str] = None


class ExecutionReport(BaseModel):
    """Aggregate outcome of one batch."""

    success: bool
    errors: List[ExecutionError] = Field(default_factory=list)
    assets_generated: List[AssetResult] = Field(default_factory=list)
    actions_executed: List[str] = Field(default_factory=list)
    total_cost: float = Field(default=0.0, ge=0)
    execution_time_ms: float = Field(default=0.0, ge=0)

    @model_validator(mode="after")
    def _success_matches_errors(self) -> "ExecutionReport":
        if self.success and self.errors:
            raise ValueError("success must be False when errors are present")
        return self


class CostBucket(BaseModel):
    count: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0)


class CostBreakdown(BaseModel):
    images: CostBucket = Field(default_factory=CostBucket)
    audio: CostBucket = Field(default_factory=CostBucket)
    cutscenes: CostBucket = Field(default_factory=CostBucket)
    total: float = Field(default=0.0, ge=0)

    @classmethod
    def from_assets(cls, assets: List[AssetResult]) -> "CostBreakdown":
        buckets = {"image": CostBucket(), "audio": CostBucket(), "cutscene": CostBucket()}
        for asset in assets:
            bucket = buckets[asset.type]
            bucket.count += 1
            bucket.cost += asset.cost
        images, audio, cutscenes = buckets["image"], buckets["audio"], buckets["cutscene"]
        return cls(
            images=images,
            audio=audio,
            cutscenes=cutscenes,
            total=images.cost + audio.cost + cutscenes.cost,
        )


class ProcessorStatus(BaseModel):
    is_processing: bool = False
    progress: float = Field(default=0.0, ge=0, le=100)
    current_action: Optional[str] = None
    queue_length: int = Field(default=0, ge=0)


class CostEstimate(BaseModel):
    estimated: float = Field(..., ge=0)
    confidence: Literal["high", "medium", "low"] = "medium"


class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str = "invalid"


class ValidationResult(BaseModel):
    valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def from_issues(cls, issues: List[ValidationIssue]) -> "ValidationResult":
        return cls(valid=not issues, errors=list(issues))


__all__ = [
    "Action",
    "ACTION_MODELS",
    "ASSET_ACTION_TYPES",
    "ImageAction",
    "SubtitleAction",
    "CutsceneShot",
    "CutsceneAction",
    "PlayCutsceneAction",
    "ReasonAction",
    "ShowModalAction",
    "AddFeatureAction",
    "RemoveFeatureAction",
    "WhenThenAction",
    "PlayerChoiceOption",
    "AddPlayerChoiceAction",
    "AssetResult",
    "ExecutionError",
    "ExecutionReport",
    "CostBucket",
    "CostBreakdown",
    "ProcessorStatus",
    "CostEstimate",
    "ValidationIssue",
    "ValidationResult",
]
