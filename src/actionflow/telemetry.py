from __future__ import annotations

import json
import logging
import os
import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

LOG = logging.getLogger(__name__)

TELEMETRY_LOG_ENV = "ACTIONFLOW_TELEMETRY_LOG"

# Oldest events are dropped once the buffer is full.
MAX_EVENTS = 1000

_EVENTS: Deque[Dict[str, Any]] = deque(maxlen=MAX_EVENTS)
_LOCK = threading.Lock()


def emit_event(name: str, payload: Optional[Dict[str, Any]] = None) -> None:
    """Record a telemetry event in-process and optionally append it to a log file.

    Tests inspect `get_events()` to verify expected emissions. When
    ``ACTIONFLOW_TELEMETRY_LOG`` is set each event is also written as one JSON
    line to that path.
    """
    ev: Dict[str, Any] = {"name": name, "payload": dict(payload or {})}
    with _LOCK:
        _EVENTS.append(ev)
    log_path = os.environ.get(TELEMETRY_LOG_ENV)
    if log_path:
        try:
            with open(log_path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(ev, default=str) + "\n")
        except OSError as exc:
            LOG.warning("Failed to append telemetry event %s to %s: %s", name, log_path, exc)


def get_events(name: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return a copy of recorded events, optionally filtered by name."""
    with _LOCK:
        events = list(_EVENTS)
    if name is None:
        return events
    return [ev for ev in events if ev["name"] == name]


def clear_events() -> None:
    """Clear the in-memory event buffer."""
    with _LOCK:
        _EVENTS.clear()


__all__ = ["emit_event", "get_events", "clear_events", "TELEMETRY_LOG_ENV", "MAX_EVENTS"]
