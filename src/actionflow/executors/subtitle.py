from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from ..schemas import Action, AssetResult, CostEstimate, SubtitleAction, ValidationResult
from ..storage.base import AssetStorage
from .base import BaseExecutor, issue

VALID_GENDERS = ("neutral", "feminine", "masculine")
VALID_TONES = ("epic", "calm", "mysterious", "urgent", "triumphant")
VALID_PACES = ("slow", "normal", "fast")
VALID_MODELS = ("openai-tts", "google-tts")
MAX_TEXT_CHARS = 4000
DEFAULT_SAMPLE_RATE = 22050

# USD per million characters.
MODEL_COSTS_PER_MILLION = {
    "openai-tts": 15.0,
    "google-tts": 4.0,
}

VOICE_MAP: Dict[str, Dict[str, str]] = {
    "openai-tts": {
        "neutral-epic": "onyx",
        "neutral-calm": "nova",
        "feminine-mysterious": "shimmer",
        "feminine-calm": "nova",
        "feminine-epic": "shimmer",
        "feminine-urgent": "shimmer",
        "masculine-urgent": "echo",
        "masculine-calm": "onyx",
        "masculine-epic": "onyx",
        "masculine-mysterious": "echo",
    },
    "google-tts": {
        "neutral-epic": "en-US-Journey-F",
        "neutral-calm": "en-US-Neural2-C",
        "feminine-mysterious": "en-US-Neural2-F",
        "feminine-calm": "en-US-Neural2-A",
        "feminine-epic": "en-US-Neural2-F",
        "feminine-urgent": "en-US-Neural2-G",
        "masculine-urgent": "en-US-Neural2-D",
        "masculine-calm": "en-US-Neural2-J",
        "masculine-epic": "en-US-Neural2-I",
        "masculine-mysterious": "en-US-Neural2-D",
    },
}
FALLBACK_VOICE_KEY = "neutral-calm"

PACE_SPEED = {"slow": 0.8, "normal": 1.0, "fast": 1.2}
PACE_WORDS_PER_MINUTE = {"slow": 120, "normal": 150, "fast": 180}
TONE_PITCH = {"epic": 0.0, "calm": -0.1, "mysterious": -0.2, "urgent": 0.1}
# Tones without a dedicated voice borrow another tone's profile.
TONE_ALIASES = {"triumphant": "epic"}

_AUDIO_FORMATS = {"audio/mpeg": "mp3", "audio/wav": "wav", "audio/x-wav": "wav"}


@dataclass(frozen=True)
class SynthesizedSpeech:
    data: bytes
    mime_type: str = "audio/mpeg"
    duration_s: Optional[float] = None
    sample_rate: int = DEFAULT_SAMPLE_RATE


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, *, voice: str, speed: float, pitch: float, model: str) -> SynthesizedSpeech: ...


@dataclass(frozen=True)
class VoiceConfig:
    voice: str
    speed: float
    pitch: float


def resolve_voice(model: str, gender: str, tone: str, pace: str) -> VoiceConfig:
    tone = TONE_ALIASES.get(tone, tone)
    voices = VOICE_MAP[model]
    voice = voices.get(f"{gender}-{tone}") or voices[FALLBACK_VOICE_KEY]
    return VoiceConfig(
        voice=voice,
        speed=PACE_SPEED.get(pace, 1.0),
        pitch=TONE_PITCH.get(tone, 0.0),
    )


def estimate_speech_duration(text: str, pace: str = "normal") -> float:
    """Seconds of speech for ``text`` at ``pace``, rounded, never below one."""

    words = len(text.split())
    minutes = words / PACE_WORDS_PER_MINUTE.get(pace, 150)
    return float(max(1, round(minutes * 60)))


def clean_text_for_speech(text: str) -> str:
    cleaned = re.sub(r"[*_`]", "", text)
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = re.sub(r"\.{2,}", ".", cleaned).strip()
    if cleaned and cleaned[-1] not in ".!?":
        cleaned += "."
    return cleaned


def speech_cost(model: str, text: str) -> float:
    per_million = MODEL_COSTS_PER_MILLION.get(model, MODEL_COSTS_PER_MILLION["openai-tts"])
    return len(text) * per_million / 1_000_000


class SubtitleAssetExecutor(BaseExecutor):
    """Narrated speech through a :class:`SpeechSynthesizer` backend."""

    action_type = "asset_subtitle"
    asset_type = "audio"
    operation = "Speech synthesis"

    def __init__(self, storage: AssetStorage, synthesizer: SpeechSynthesizer, **kwargs: Any) -> None:
        super().__init__(storage, **kwargs)
        self.synthesizer = synthesizer

    def validate(self, action: Action) -> ValidationResult:
        if not isinstance(action, SubtitleAction):
            return ValidationResult.from_issues([issue("type", f"expected asset_subtitle, got {action.type}", "wrong_type")])
        issues = []
        if not (action.id or "").strip():
            issues.append(issue("id", "ID is required and cannot be empty", "required"))
        if not action.text.strip():
            issues.append(issue("text", "Text is required and cannot be empty", "required"))
        if len(action.text) > MAX_TEXT_CHARS:
            issues.append(issue("text", f"Text must be {MAX_TEXT_CHARS} characters or less", "too_long"))
        if action.voice_gender not in VALID_GENDERS:
            issues.append(issue("voice_gender", f"Voice gender must be one of: {', '.join(VALID_GENDERS)}", "invalid_value"))
        if action.voice_tone not in VALID_TONES:
            issues.append(issue("voice_tone", f"Voice tone must be one of: {', '.join(VALID_TONES)}", "invalid_value"))
        if action.voice_pace not in VALID_PACES:
            issues.append(issue("voice_pace", f"Voice pace must be one of: {', '.join(VALID_PACES)}", "invalid_value"))
        if action.model not in VALID_MODELS:
            issues.append(issue("model", f"Model must be one of: {', '.join(VALID_MODELS)}", "invalid_value"))
        return ValidationResult.from_issues(issues)

    def estimate_cost(self, action: Action) -> CostEstimate:
        text = getattr(action, "text", "") or ""
        model = getattr(action, "model", "openai-tts")
        confidence = "high" if model in MODEL_COSTS_PER_MILLION else "low"
        return CostEstimate(estimated=speech_cost(model, text), confidence=confidence)

    async def _generate(self, action: SubtitleAction) -> AssetResult:
        voice = resolve_voice(action.model, action.voice_gender, action.voice_tone, action.voice_pace)
        speech = await self.synthesizer.synthesize(
            clean_text_for_speech(action.text),
            voice=voice.voice,
            speed=voice.speed,
            pitch=voice.pitch,
            model=action.model,
        )
        duration = speech.duration_s
        if duration is None or duration <= 0:
            duration = estimate_speech_duration(action.text, action.voice_pace)
        metadata = self.base_metadata(
            action,
            format=_AUDIO_FORMATS.get(speech.mime_type, speech.mime_type.rpartition("/")[2]),
            model=action.model,
            voice=voice.voice,
            speed=voice.speed,
            pitch=voice.pitch,
            text=action.text,
            sample_rate=speech.sample_rate,
            voice_gender=action.voice_gender,
            voice_tone=action.voice_tone,
            voice_pace=action.voice_pace,
            character_count=len(action.text),
            duration=duration,
        )
        url = await self.storage.store(
            action.id,
            speech.data,
            asset_type=self.asset_type,
            mime_type=speech.mime_type,
            metadata=metadata,
        )
        return AssetResult(
            id=action.id,
            type="audio",
            url=url,
            duration=duration,
            metadata=metadata,
            cost=speech_cost(action.model, action.text),
        )


__all__ = [
    "SpeechSynthesizer",
    "SubtitleAssetExecutor",
    "SynthesizedSpeech",
    "VOICE_MAP",
    "VoiceConfig",
    "clean_text_for_speech",
    "estimate_speech_duration",
    "resolve_voice",
    "speech_cost",
]
