"""Environment helpers shared across runtime modules."""

from __future__ import annotations

from typing import Iterable, Mapping, MutableMapping, Optional
import os

TRUTHY = {"1", "true", "yes", "on"}
FALSY = {"0", "false", "no", "off"}

EnvMapping = Mapping[str, str] | MutableMapping[str, str]


def _normalize(value: str | None) -> str:
    return (value or "").strip().lower()


def env_flag(value: str | None, *, default: bool = False) -> bool:
    token = _normalize(value)
    if not token:
        return default
    if token in TRUTHY:
        return True
    if token in FALSY:
        return False
    return default


def env_float(value: str | None, *, default: Optional[float], name: str = "value") -> Optional[float]:
    token = (value or "").strip()
    if not token:
        return default
    try:
        return float(token)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def env_int(value: str | None, *, default: int, name: str = "value") -> int:
    token = (value or "").strip()
    if not token:
        return default
    try:
        return int(token)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def env_choice(value: str | None, *, choices: Iterable[str], default: str, name: str = "value") -> str:
    """Return ``value`` lower-cased if it is one of ``choices``."""

    token = _normalize(value)
    if not token:
        return default
    allowed = set(choices)
    if token not in allowed:
        joined = ", ".join(sorted(allowed))
        raise ValueError(f"Unsupported {name} '{token}'. Expected one of: {joined}.")
    return token


def environ(env: EnvMapping | None = None) -> EnvMapping:
    return os.environ if env is None else env


__all__ = [
    "TRUTHY",
    "FALSY",
    "env_flag",
    "env_float",
    "env_int",
    "env_choice",
    "environ",
]
