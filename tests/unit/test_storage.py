from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from pathlib import Path

import pytest

from actionflow.storage import (
    AssetNotFoundError,
    FilesystemAssetStorage,
    FilesystemStorageConfig,
    InMemoryAssetStorage,
    PayloadTooLargeError,
    StorageError,
)


def _filesystem(tmp_path: Path, **overrides) -> FilesystemAssetStorage:
    config = FilesystemStorageConfig.for_root(tmp_path / "assets")
    if overrides:
        config = FilesystemStorageConfig(
            root=config.root,
            index_path=config.index_path,
            base_url=overrides.get("base_url", config.base_url),
            max_payload_bytes=overrides.get("max_payload_bytes", config.max_payload_bytes),
        )
    return FilesystemAssetStorage(config)


@pytest.fixture(params=["memory", "filesystem"])
def storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryAssetStorage()
    return _filesystem(tmp_path)


def test_store_and_read_back(storage) -> None:
    async def scenario():
        url = await storage.store("hero", b"png-bytes", asset_type="image", metadata={"width": 1024})
        assert url.endswith("hero.png")
        assert await storage.exists("hero")
        assert await storage.get_url("hero") == url
        assert await storage.retrieve("hero") == b"png-bytes"
        assert await storage.get_metadata("hero") == {"width": 1024}
        assert await storage.get_duration("hero") is None

    asyncio.run(scenario())


def test_duration_comes_from_metadata(storage) -> None:
    async def scenario():
        await storage.store("line", b"audio", asset_type="audio", mime_type="audio/wav", metadata={"duration": 4.5})
        assert await storage.get_duration("line") == pytest.approx(4.5)
        assert (await storage.get_url("line")).endswith("line.wav")

    asyncio.run(scenario())


def test_store_json_round_trips_document(storage) -> None:
    async def scenario():
        url = await storage.store_json("scene", {"id": "scene", "shots": []})
        assert url.endswith("scene.json")
        assert json.loads(await storage.retrieve("scene")) == {"id": "scene", "shots": []}

    asyncio.run(scenario())


def test_list_and_delete(storage) -> None:
    async def scenario():
        await storage.store("a", b"1", asset_type="image")
        await storage.store("b", b"2", asset_type="audio")
        assert sorted(await storage.list()) == ["a", "b"]
        assert await storage.list("audio") == ["b"]
        assert await storage.delete("a") is True
        assert await storage.delete("a") is False
        assert not await storage.exists("a")
        assert await storage.list() == ["b"]

    asyncio.run(scenario())


def test_missing_asset_raises(storage) -> None:
    async def scenario():
        with pytest.raises(AssetNotFoundError):
            await storage.get_url("ghost")
        with pytest.raises(AssetNotFoundError):
            await storage.retrieve("ghost")

    asyncio.run(scenario())


def test_invalid_asset_id_rejected(storage) -> None:
    with pytest.raises(StorageError):
        asyncio.run(storage.store("../escape", b"x", asset_type="image"))


def test_storing_same_id_replaces_payload(storage) -> None:
    async def scenario():
        await storage.store("hero", b"old", asset_type="image")
        await storage.store("hero", b"new", asset_type="image")
        assert await storage.retrieve("hero") == b"new"
        assert await storage.list() == ["hero"]

    asyncio.run(scenario())


def test_filesystem_layout_and_index(tmp_path: Path) -> None:
    store = _filesystem(tmp_path)
    url = asyncio.run(store.store("hero", b"png", asset_type="image", metadata={"model": "sdxl"}))

    payload = tmp_path / "assets" / "image" / "hero.png"
    sidecar = tmp_path / "assets" / "image" / "hero.meta.json"
    assert url == "/assets/image/hero.png"
    assert payload.read_bytes() == b"png"
    assert json.loads(sidecar.read_text(encoding="utf-8"))["metadata"] == {"model": "sdxl"}

    with sqlite3.connect(tmp_path / "assets" / "index.db") as conn:
        rows = conn.execute("SELECT asset_id, asset_type, size_bytes FROM assets").fetchall()
    assert rows == [("hero", "image", 3)]

    reopened = _filesystem(tmp_path)
    assert asyncio.run(reopened.exists("hero"))

    asyncio.run(reopened.delete("hero"))
    assert not payload.exists()
    assert not sidecar.exists()


def test_filesystem_payload_limit(tmp_path: Path) -> None:
    store = _filesystem(tmp_path, max_payload_bytes=4)
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(store.store("big", b"12345", asset_type="image"))


def test_memory_payload_limit() -> None:
    store = InMemoryAssetStorage(max_payload_bytes=2)
    with pytest.raises(PayloadTooLargeError):
        asyncio.run(store.store("big", b"123", asset_type="image"))


def test_config_reads_env(monkeypatch, tmp_path: Path) -> None:
    root = tmp_path / "fs"
    monkeypatch.setenv("ACTIONFLOW_STORAGE_ROOT", str(root))
    monkeypatch.setenv("ACTIONFLOW_STORAGE_BASE_URL", "https://cdn.example.test/assets/")
    monkeypatch.delenv("ACTIONFLOW_STORAGE_INDEX", raising=False)
    cfg = FilesystemStorageConfig.from_env()
    assert cfg.root == root.resolve()
    assert cfg.index_path == (root / "index.db").resolve()
    assert cfg.base_url == "https://cdn.example.test/assets"


def test_config_rejects_non_positive_limit() -> None:
    with pytest.raises(ValueError):
        FilesystemStorageConfig.from_env({"ACTIONFLOW_STORAGE_MAX_BYTES": "0"})


def test_filesystem_io_runs_off_the_event_loop_thread(tmp_path: Path) -> None:
    store = _filesystem(tmp_path)
    original_conn = store._conn
    threads = []

    def tracking_conn():
        threads.append(threading.get_ident())
        return original_conn()

    store._conn = tracking_conn

    async def scenario():
        loop_thread = threading.get_ident()
        await store.store("hero", b"png", asset_type="image")
        assert await store.retrieve("hero") == b"png"
        assert await store.list() == ["hero"]
        return loop_thread

    loop_thread = asyncio.run(scenario())
    assert threads
    assert loop_thread not in threads
