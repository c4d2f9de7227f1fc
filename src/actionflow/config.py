"""Processor settings resolved from the environment or a YAML file."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Literal, Mapping, Optional, cast

import yaml

from .executors.base import RetrySettings
from .utils.env import env_choice, env_flag, env_float, env_int, environ

DependencyFailurePolicy = Literal["run", "skip"]
_POLICIES = ("run", "skip")


class ConfigError(ValueError):
    """Raised when processor configuration is malformed."""


@dataclass(frozen=True)
class ProcessorConfig:
    """How :class:`~actionflow.processor.ActionProcessor` runs a batch.

    ``on_dependency_failure`` decides what happens to actions that reference
    an action which failed earlier in the same batch: ``"run"`` attempts them
    anyway, ``"skip"`` records them as failed without calling an executor.
    ``action_timeout_s`` bounds each executor call; ``None`` means no bound.
    """

    on_dependency_failure: DependencyFailurePolicy = "run"
    action_timeout_s: Optional[float] = None
    max_attempts: int = 3
    backoff_base_s: float = 1.0
    backoff_max_s: float = 30.0
    cache_enabled: bool = False

    def __post_init__(self) -> None:
        if self.on_dependency_failure not in _POLICIES:
            raise ConfigError(
                f"on_dependency_failure must be one of {', '.join(_POLICIES)}, got {self.on_dependency_failure!r}"
            )
        if self.action_timeout_s is not None and self.action_timeout_s <= 0:
            raise ConfigError("action_timeout_s must be > 0 when set")
        if self.max_attempts < 1:
            raise ConfigError("max_attempts must be >= 1")
        if self.backoff_base_s < 0 or self.backoff_max_s < 0:
            raise ConfigError("backoff values must be >= 0")

    def retry_settings(self) -> RetrySettings:
        return RetrySettings(
            max_attempts=self.max_attempts,
            backoff_base_s=self.backoff_base_s,
            backoff_max_s=self.backoff_max_s,
        )

    def with_overrides(self, **overrides: Any) -> "ProcessorConfig":
        return replace(self, **overrides)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "ProcessorConfig":
        data = environ(env)
        defaults = cls()
        try:
            return cls(
                on_dependency_failure=cast(
                    DependencyFailurePolicy,
                    env_choice(
                        data.get("ACTIONFLOW_ON_DEPENDENCY_FAILURE"),
                        choices=_POLICIES,
                        default=defaults.on_dependency_failure,
                        name="ACTIONFLOW_ON_DEPENDENCY_FAILURE",
                    ),
                ),
                action_timeout_s=env_float(
                    data.get("ACTIONFLOW_ACTION_TIMEOUT_S"),
                    default=defaults.action_timeout_s,
                    name="ACTIONFLOW_ACTION_TIMEOUT_S",
                ),
                max_attempts=env_int(
                    data.get("ACTIONFLOW_MAX_ATTEMPTS"),
                    default=defaults.max_attempts,
                    name="ACTIONFLOW_MAX_ATTEMPTS",
                ),
                backoff_base_s=env_float(
                    data.get("ACTIONFLOW_BACKOFF_BASE_S"),
                    default=defaults.backoff_base_s,
                    name="ACTIONFLOW_BACKOFF_BASE_S",
                ),
                backoff_max_s=env_float(
                    data.get("ACTIONFLOW_BACKOFF_MAX_S"),
                    default=defaults.backoff_max_s,
                    name="ACTIONFLOW_BACKOFF_MAX_S",
                ),
                cache_enabled=env_flag(data.get("ACTIONFLOW_CACHE"), default=defaults.cache_enabled),
            )
        except ConfigError:
            raise
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProcessorConfig":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown processor settings: {', '.join(unknown)}")
        try:
            return cls(**dict(data))
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ProcessorConfig":
        """Load settings from a YAML file; a top-level ``processor`` key is optional."""

        resolved = Path(path)
        if not resolved.exists():
            raise ConfigError(f"Config file not found: {resolved}")
        try:
            document = yaml.safe_load(resolved.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc
        if not isinstance(document, Mapping):
            raise ConfigError(f"{resolved} must contain a mapping")
        section = document.get("processor", document)
        if not isinstance(section, Mapping):
            raise ConfigError(f"'processor' section in {resolved} must be a mapping")
        return cls.from_mapping(section)


__all__ = ["ConfigError", "DependencyFailurePolicy", "ProcessorConfig"]
