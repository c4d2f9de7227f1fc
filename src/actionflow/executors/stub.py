"""Deterministic generation backends for tests and offline runs."""

from __future__ import annotations

import base64
import io
import wave
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict

from .image import GeneratedImage
from .subtitle import SynthesizedSpeech, estimate_speech_duration

# Only the most recent calls are kept.
CALL_HISTORY = 50

# Minimal valid 1x1 PNG used as deterministic image bytes.
_ONE_PIXEL_PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR4nGNgYAAAAAMAASsJTYQAAAAASUVORK5CYII="
)


@dataclass
class StubImageGenerator:
    """Returns the same tiny PNG for every prompt and records recent calls."""

    calls: Deque[Dict[str, Any]] = field(default_factory=lambda: deque(maxlen=CALL_HISTORY))

    async def generate(self, prompt: str, *, width: int, height: int, model: str) -> GeneratedImage:
        self.calls.append({"prompt": prompt, "width": width, "height": height, "model": model})
        return GeneratedImage(data=_ONE_PIXEL_PNG, mime_type="image/png", width=width, height=height)


@dataclass
class StubSpeechSynthesizer:
    """Writes a silent mono 16-bit WAV whose length follows the text's word count."""

    sample_rate: int = 8000
    calls: Deque[Dict[str, Any]] = field(default_factory=lambda: deque(maxlen=CALL_HISTORY))

    async def synthesize(self, text: str, *, voice: str, speed: float, pitch: float, model: str) -> SynthesizedSpeech:
        self.calls.append({"text": text, "voice": voice, "speed": speed, "pitch": pitch, "model": model})
        duration = estimate_speech_duration(text) / speed
        frames = max(int(self.sample_rate * duration), 1)
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav_file:
            wav_file.setnchannels(1)
            wav_file.setsampwidth(2)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(b"\x00\x00" * frames)
        return SynthesizedSpeech(
            data=buffer.getvalue(),
            mime_type="audio/wav",
            duration_s=frames / self.sample_rate,
            sample_rate=self.sample_rate,
        )


__all__ = ["StubImageGenerator", "StubSpeechSynthesizer"]
