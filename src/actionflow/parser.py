"""Turn raw batch input into validated, id-bearing actions."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Union

from pydantic import TypeAdapter, ValidationError

from .schemas import ACTION_MODELS, Action

LOG = logging.getLogger(__name__)

RawBatch = Union[str, bytes, bytearray, Mapping[str, Any]]

_ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)


class ParseError(ValueError):
    """Raised when a batch cannot be turned into a list of actions.

    ``errors`` holds one ``{"index": int | None, "message": str}`` entry per
    problem found. ``index`` is the 0-based position in the input array.
    """

    def __init__(self, message: str, errors: List[Dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.errors: List[Dict[str, Any]] = list(errors or [{"index": None, "message": message}])


def synthesize_id(action_type: str, position: int) -> str:
    """Deterministic id for an action without one; ``position`` is 1-based."""

    return f"{action_type}_{position}"


def _load(raw: RawBatch) -> Any:
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"Input is not valid UTF-8: {exc}") from exc
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Invalid JSON: {exc.msg} (line {exc.lineno} column {exc.colno})") from exc
    return raw


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "") or "root"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def parse_actions(raw: RawBatch) -> List[Action]:
    """Parse ``{"actions": [...]}`` from a JSON string or an already-decoded mapping.

    Every top-level action without an ``id`` receives ``"{type}_{position}"``
    where position is its 1-based index in the input array. All problems are
    collected before raising a single :class:`ParseError`.
    """

    data = _load(raw)
    if not isinstance(data, Mapping):
        raise ParseError("Batch must be a JSON object with an 'actions' array")
    items = data.get("actions")
    if not isinstance(items, list):
        raise ParseError("Batch is missing the 'actions' array")

    errors: List[Dict[str, Any]] = []
    actions: List[Action] = []
    seen: Dict[str, int] = {}
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            errors.append({"index": index, "message": f"actions[{index}] must be an object"})
            continue
        action_type = item.get("type")
        if not isinstance(action_type, str) or action_type not in ACTION_MODELS:
            errors.append({"index": index, "message": f"actions[{index}] has unknown type {action_type!r}"})
            continue
        payload = dict(item)
        if not payload.get("id"):
            payload["id"] = synthesize_id(action_type, index + 1)
        try:
            action = _ACTION_ADAPTER.validate_python(payload)
        except ValidationError as exc:
            errors.append(
                {"index": index, "message": f"actions[{index}] ({action_type}) invalid: {_format_validation_error(exc)}"}
            )
            continue
        if action.id in seen:
            errors.append(
                {
                    "index": index,
                    "message": f"Duplicate action id '{action.id}' (first declared at actions[{seen[action.id]}])",
                }
            )
            continue
        seen[action.id] = index
        actions.append(action)

    if errors:
        summary = errors[0]["message"] if len(errors) == 1 else f"{len(errors)} invalid actions; first: {errors[0]['message']}"
        raise ParseError(summary, errors)
    LOG.debug("Parsed %d actions", len(actions))
    return actions


__all__ = ["ParseError", "RawBatch", "parse_actions", "synthesize_id"]
