"""Asset storage interface and an in-process implementation."""

from __future__ import annotations

import hashlib
import json
import time
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple, runtime_checkable

from .models import ASSET_ID_PATTERN, StoredAsset, extension_for, resolve_mime_type


class StorageError(RuntimeError):
    """Base class for asset persistence failures."""


class AssetNotFoundError(StorageError):
    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Asset '{asset_id}' not found")
        self.asset_id = asset_id


class PayloadTooLargeError(StorageError):
    """Raised when a payload exceeds the configured byte limit."""


@runtime_checkable
class AssetStorage(Protocol):
    """Persistence used by executors. Every method is a coroutine."""

    async def store(
        self,
        asset_id: str,
        data: bytes,
        *,
        asset_type: str,
        mime_type: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str: ...

    async def store_json(
        self,
        asset_id: str,
        document: Any,
        *,
        asset_type: str = "cutscene",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str: ...

    async def get_url(self, asset_id: str) -> str: ...

    async def exists(self, asset_id: str) -> bool: ...

    async def retrieve(self, asset_id: str) -> bytes: ...

    async def delete(self, asset_id: str) -> bool: ...

    async def list(self, asset_type: Optional[str] = None) -> List[str]: ...

    async def get_metadata(self, asset_id: str) -> Dict[str, Any]: ...

    async def get_duration(self, asset_id: str) -> Optional[float]: ...


def validate_asset_id(asset_id: str) -> str:
    if not isinstance(asset_id, str) or not ASSET_ID_PATTERN.match(asset_id):
        raise StorageError(f"Invalid asset id {asset_id!r}; expected letters, digits, '.', '_' or '-'")
    return asset_id


def checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def encode_json(document: Any) -> bytes:
    try:
        return json.dumps(document, ensure_ascii=False, indent=2).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise StorageError(f"Document is not JSON serialisable: {exc}") from exc


class InMemoryAssetStorage:
    """Keeps payloads in a dict. Used by tests and for dry runs."""

    def __init__(self, base_url: str = "/assets", max_payload_bytes: Optional[int] = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_payload_bytes = max_payload_bytes
        self._items: Dict[str, Tuple[bytes, StoredAsset]] = {}

    def __len__(self) -> int:
        return len(self._items)

    async def store(
        self,
        asset_id: str,
        data: bytes,
        *,
        asset_type: str,
        mime_type: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        validate_asset_id(asset_id)
        if self.max_payload_bytes is not None and len(data) > self.max_payload_bytes:
            raise PayloadTooLargeError(f"Payload for '{asset_id}' exceeds {self.max_payload_bytes} bytes")
        resolved_mime = resolve_mime_type(asset_type, mime_type)
        filename = f"{asset_id}{extension_for(resolved_mime)}"
        record = StoredAsset(
            asset_id=asset_id,
            asset_type=asset_type,
            mime_type=resolved_mime,
            url=f"{self.base_url}/{filename}",
            size_bytes=len(data),
            checksum_sha256=checksum(data),
            created_at=time.time(),
            metadata=dict(metadata or {}),
            relative_path=filename,
        )
        self._items[asset_id] = (bytes(data), record)
        return record.url

    async def store_json(
        self,
        asset_id: str,
        document: Any,
        *,
        asset_type: str = "cutscene",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        return await self.store(
            asset_id,
            encode_json(document),
            asset_type=asset_type,
            mime_type="application/json",
            metadata=metadata,
        )

    def _record(self, asset_id: str) -> Tuple[bytes, StoredAsset]:
        try:
            return self._items[asset_id]
        except KeyError:
            raise AssetNotFoundError(asset_id) from None

    async def get_url(self, asset_id: str) -> str:
        return self._record(asset_id)[1].url

    async def exists(self, asset_id: str) -> bool:
        return asset_id in self._items

    async def retrieve(self, asset_id: str) -> bytes:
        return self._record(asset_id)[0]

    async def delete(self, asset_id: str) -> bool:
        return self._items.pop(asset_id, None) is not None

    async def list(self, asset_type: Optional[str] = None) -> List[str]:
        return [
            aid
            for aid, (_, record) in self._items.items()
            if asset_type is None or record.asset_type == asset_type
        ]

    async def get_metadata(self, asset_id: str) -> Dict[str, Any]:
        return dict(self._record(asset_id)[1].metadata)

    async def get_duration(self, asset_id: str) -> Optional[float]:
        return self._record(asset_id)[1].duration


__all__ = [
    "AssetNotFoundError",
    "AssetStorage",
    "InMemoryAssetStorage",
    "PayloadTooLargeError",
    "StorageError",
    "checksum",
    "encode_json",
    "validate_asset_id",
]
