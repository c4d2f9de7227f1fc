"""Pydantic models shared by the asset storage backends."""

from __future__ import annotations

import mimetypes
import re
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..schemas import AssetType

ASSET_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

DEFAULT_MIME_TYPES: dict[str, str] = {
    "image": "image/png",
    "audio": "audio/mpeg",
    "cutscene": "application/json",
}

_EXTENSION_OVERRIDES: dict[str, str] = {
    "audio/mpeg": ".mp3",
    "audio/wav": ".wav",
    "audio/x-wav": ".wav",
    "application/json": ".json",
    "image/png": ".png",
}


class StoredAsset(BaseModel):
    """Index entry describing one persisted asset."""

    asset_id: str = Field(pattern=ASSET_ID_PATTERN.pattern)
    asset_type: AssetType
    mime_type: str = Field(min_length=1)
    url: str
    size_bytes: int = Field(ge=0)
    checksum_sha256: str
    created_at: float
    metadata: dict[str, Any] = Field(default_factory=dict)
    relative_path: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        value = self.metadata.get("duration")
        return float(value) if isinstance(value, (int, float)) else None


def extension_for(mime_type: str) -> str:
    if mime_type in _EXTENSION_OVERRIDES:
        return _EXTENSION_OVERRIDES[mime_type]
    guessed = mimetypes.guess_extension(mime_type)
    return guessed or ".bin"


def resolve_mime_type(asset_type: str, mime_type: Optional[str]) -> str:
    return mime_type or DEFAULT_MIME_TYPES.get(asset_type, "application/octet-stream")


__all__ = [
    "ASSET_ID_PATTERN",
    "DEFAULT_MIME_TYPES",
    "StoredAsset",
    "extension_for",
    "resolve_mime_type",
]
