"""Bundled example batches and a loader for scenario files on disk."""

from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List

from .parser import ParseError

_DATA_PACKAGE = "actionflow"
_DATA_DIR = "data"


def list_scenarios() -> List[str]:
    root = resources.files(_DATA_PACKAGE).joinpath(_DATA_DIR)
    return sorted(entry.name[: -len(".json")] for entry in root.iterdir() if entry.name.endswith(".json"))


def load_scenario(name_or_path: str | Path) -> Dict[str, Any]:
    """Return the raw ``{"actions": [...]}`` document for a bundled name or a JSON path.

    Bundled names accept either dashes or underscores (``planet-creation``).
    """

    candidate = Path(name_or_path)
    if candidate.suffix == ".json" and candidate.exists():
        text = candidate.read_text(encoding="utf-8")
        source = str(candidate)
    else:
        name = str(name_or_path).replace("-", "_")
        resource = resources.files(_DATA_PACKAGE).joinpath(_DATA_DIR).joinpath(f"{name}.json")
        if not resource.is_file():
            available = ", ".join(list_scenarios())
            raise FileNotFoundError(f"Unknown scenario '{name_or_path}'. Available: {available}")
        text = resource.read_text(encoding="utf-8")
        source = name
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Scenario {source} is not valid JSON: {exc.msg}") from exc
    if not isinstance(document, dict):
        raise ParseError(f"Scenario {source} must be a JSON object")
    return document


__all__ = ["list_scenarios", "load_scenario"]
