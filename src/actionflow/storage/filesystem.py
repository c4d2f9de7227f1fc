"""Filesystem-backed asset persistence with a SQLite index."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .base import (
    AssetNotFoundError,
    PayloadTooLargeError,
    StorageError,
    checksum,
    encode_json,
    validate_asset_id,
)
from .config import FilesystemStorageConfig
from .models import StoredAsset, extension_for, resolve_mime_type

LOG = logging.getLogger(__name__)

_SQLITE_DDL = """
CREATE TABLE IF NOT EXISTS assets (
  asset_id TEXT PRIMARY KEY,
  asset_type TEXT NOT NULL,
  mime_type TEXT NOT NULL,
  relative_path TEXT NOT NULL,
  size_bytes INTEGER NOT NULL,
  checksum_sha256 TEXT NOT NULL,
  created_at REAL NOT NULL,
  metadata TEXT
);
CREATE INDEX IF NOT EXISTS ix_assets_type ON assets(asset_type);
"""


@dataclass
class FilesystemAssetStorage:
    """Writes payloads under ``config.root/<asset_type>/`` and indexes them in SQLite.

    Each payload gets a ``<id>.meta.json`` sidecar so the directory stays
    readable without the index. Storing an existing id replaces it.
    File and index I/O runs in a worker thread so the event loop stays free.
    """

    config: FilesystemStorageConfig

    def __post_init__(self) -> None:
        self.config.root.mkdir(parents=True, exist_ok=True)
        self.config.index_path.parent.mkdir(parents=True, exist_ok=True)
        with self._conn() as conn:
            conn.executescript(_SQLITE_DDL)
            conn.commit()

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
        return await asyncio.to_thread(self._store, asset_id, data, asset_type, mime_type, metadata)

    def _store(
        self,
        asset_id: str,
        data: bytes,
        asset_type: str,
        mime_type: Optional[str],
        metadata: Optional[Mapping[str, Any]],
    ) -> str:
        if len(data) > self.config.max_payload_bytes:
            raise PayloadTooLargeError(
                f"Payload for '{asset_id}' exceeds ACTIONFLOW_STORAGE_MAX_BYTES ({self.config.max_payload_bytes})"
            )
        resolved_mime = resolve_mime_type(asset_type, mime_type)
        existing = self._fetch(asset_id)
        if existing is not None:
            self._unlink(existing.relative_path)

        relative_path = f"{asset_type}/{asset_id}{extension_for(resolved_mime)}"
        payload_path = self.config.root / relative_path
        payload_path.parent.mkdir(parents=True, exist_ok=True)
        meta = dict(metadata or {})
        record = StoredAsset(
            asset_id=asset_id,
            asset_type=asset_type,
            mime_type=resolved_mime,
            url=self._url_for(relative_path),
            size_bytes=len(data),
            checksum_sha256=checksum(data),
            created_at=time.time(),
            metadata=meta,
            relative_path=relative_path,
        )
        try:
            payload_path.write_bytes(data)
            self._sidecar(payload_path).write_text(
                json.dumps(record.model_dump(), ensure_ascii=False, indent=2, default=str),
                encoding="utf-8",
            )
        except OSError as exc:
            raise StorageError(f"Failed to write asset '{asset_id}': {exc}") from exc

        with self._conn() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO assets (
                    asset_id, asset_type, mime_type, relative_path,
                    size_bytes, checksum_sha256, created_at, metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.asset_id,
                    record.asset_type,
                    record.mime_type,
                    relative_path,
                    record.size_bytes,
                    record.checksum_sha256,
                    record.created_at,
                    json.dumps(meta, ensure_ascii=False, default=str) if meta else None,
                ),
            )
            conn.commit()
        LOG.debug("Stored asset %s (%s, %d bytes)", asset_id, asset_type, record.size_bytes)
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

    async def get_url(self, asset_id: str) -> str:
        return (await asyncio.to_thread(self._require, asset_id)).url

    async def exists(self, asset_id: str) -> bool:
        return await asyncio.to_thread(self._fetch, asset_id) is not None

    async def retrieve(self, asset_id: str) -> bytes:
        return await asyncio.to_thread(self._retrieve, asset_id)

    def _retrieve(self, asset_id: str) -> bytes:
        record = self._require(asset_id)
        path = self.config.root / (record.relative_path or "")
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageError(f"Asset '{asset_id}' is indexed but {path} is missing") from exc

    async def delete(self, asset_id: str) -> bool:
        return await asyncio.to_thread(self._delete, asset_id)

    def _delete(self, asset_id: str) -> bool:
        record = self._fetch(asset_id)
        if record is None:
            return False
        self._unlink(record.relative_path)
        with self._conn() as conn:
            conn.execute("DELETE FROM assets WHERE asset_id = ?", (asset_id,))
            conn.commit()
        return True

    async def list(self, asset_type: Optional[str] = None) -> List[str]:
        return await asyncio.to_thread(self._list, asset_type)

    def _list(self, asset_type: Optional[str]) -> List[str]:
        sql = "SELECT asset_id FROM assets"
        params: list[Any] = []
        if asset_type:
            sql += " WHERE asset_type = ?"
            params.append(asset_type)
        sql += " ORDER BY created_at ASC, asset_id ASC"
        with self._conn() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [row["asset_id"] for row in rows]

    async def get_metadata(self, asset_id: str) -> Dict[str, Any]:
        return dict((await asyncio.to_thread(self._require, asset_id)).metadata)

    async def get_duration(self, asset_id: str) -> Optional[float]:
        return (await asyncio.to_thread(self._require, asset_id)).duration

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.config.index_path), timeout=5.0, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _fetch(self, asset_id: str) -> Optional[StoredAsset]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM assets WHERE asset_id = ?", (asset_id,)).fetchone()
        return self._row_to_record(dict(row)) if row else None

    def _require(self, asset_id: str) -> StoredAsset:
        record = self._fetch(asset_id)
        if record is None:
            raise AssetNotFoundError(asset_id)
        return record

    def _row_to_record(self, row: dict[str, Any]) -> StoredAsset:
        return StoredAsset(
            asset_id=row["asset_id"],
            asset_type=row["asset_type"],
            mime_type=row["mime_type"],
            url=self._url_for(row["relative_path"]),
            size_bytes=row["size_bytes"],
            checksum_sha256=row["checksum_sha256"],
            created_at=row["created_at"],
            metadata=json.loads(row["metadata"]) if row.get("metadata") else {},
            relative_path=row["relative_path"],
        )

    def _url_for(self, relative_path: str) -> str:
        return f"{self.config.base_url}/{relative_path}"

    def _unlink(self, relative_path: Optional[str]) -> None:
        if not relative_path:
            return
        payload_path = self.config.root / relative_path
        for path in (payload_path, self._sidecar(payload_path)):
            path.unlink(missing_ok=True)

    @staticmethod
    def _sidecar(payload_path: Path) -> Path:
        return payload_path.with_name(f"{payload_path.stem}.meta.json")


__all__ = ["FilesystemAssetStorage"]
