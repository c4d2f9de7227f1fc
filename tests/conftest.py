"""Test configuration helpers."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_src_on_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    for entry in (src, root):
        entry_str = str(entry)
        if entry_str not in sys.path:
            sys.path.insert(0, entry_str)


_ensure_src_on_path()


@pytest.fixture(autouse=True)
def _isolated_telemetry(monkeypatch: pytest.MonkeyPatch):
    """Every test starts with an empty event buffer and no telemetry log file."""

    from actionflow import telemetry

    monkeypatch.delenv("ACTIONFLOW_TELEMETRY_LOG", raising=False)
    telemetry.clear_events()
    yield
    telemetry.clear_events()


@pytest.fixture
def memory_storage():
    from actionflow.storage import InMemoryAssetStorage

    return InMemoryAssetStorage()


@pytest.fixture
def fast_config():
    """Processor config with a single attempt so failing backends fail immediately."""

    from actionflow.config import ProcessorConfig

    return ProcessorConfig(max_attempts=1, backoff_base_s=0.0, backoff_max_s=0.0)
