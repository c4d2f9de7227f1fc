from __future__ import annotations

"""Configuration helpers for the filesystem asset store."""

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from ..utils.env import env_int, environ

_DEFAULT_MAX_BYTES = 512 * 1024 * 1024


@dataclass(frozen=True)
class FilesystemStorageConfig:
    """Resolved configuration for :class:`FilesystemAssetStorage`."""

    root: Path
    index_path: Path
    base_url: str
    max_payload_bytes: int = _DEFAULT_MAX_BYTES

    @classmethod
    def for_root(cls, root: Path | str, *, base_url: str = "/assets") -> FilesystemStorageConfig:
        resolved = Path(root).expanduser().resolve()
        return cls(root=resolved, index_path=resolved / "index.db", base_url=base_url.rstrip("/"))

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> FilesystemStorageConfig:
        data = environ(env)
        root_hint = data.get("ACTIONFLOW_STORAGE_ROOT") or "./public/assets"
        root = Path(root_hint).expanduser().resolve()
        index_hint = data.get("ACTIONFLOW_STORAGE_INDEX") or str(root / "index.db")
        index_path = Path(index_hint).expanduser().resolve()
        base_url = data.get("ACTIONFLOW_STORAGE_BASE_URL") or "/assets"
        max_payload_bytes = env_int(
            data.get("ACTIONFLOW_STORAGE_MAX_BYTES"),
            default=_DEFAULT_MAX_BYTES,
            name="ACTIONFLOW_STORAGE_MAX_BYTES",
        )
        if max_payload_bytes <= 0:
            raise ValueError("ACTIONFLOW_STORAGE_MAX_BYTES must be greater than zero")
        return cls(
            root=root,
            index_path=index_path,
            base_url=base_url.rstrip("/"),
            max_payload_bytes=max_payload_bytes,
        )
