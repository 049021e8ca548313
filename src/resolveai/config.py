from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

import yaml

from .actions import get_input
from .errors import ConfigurationError
from .retry import DEFAULT_BACKOFF_MS, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT_SECONDS, RetryConfig
from .schemas import action_inputs_schema, validation_errors

INPUT_NAMES = (
    "ecs_endpoint",
    "ecs_api_token",
    "ecs_hmac_secret",
    "action",
    "timeout_seconds",
    "max_retries",
    "backoff_ms",
    "llm_provider",
    "model",
    "allow_write_paths",
    "deny_write_paths",
    "vectordb_url",
    "vectordb_token",
    "tenant",
    "openai_api_key",
    "llm_api_key",
    "post_comment",
)
_INT_INPUTS = ("timeout_seconds", "max_retries", "backoff_ms")
_LIST_INPUTS = ("allow_write_paths", "deny_write_paths")
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class ActionInputs:
    ecs_endpoint: str
    ecs_api_token: str = field(repr=False)
    ecs_hmac_secret: str = field(repr=False)
    action: str = "run"
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_ms: int = DEFAULT_BACKOFF_MS
    llm_provider: str | None = None
    model: str | None = None
    allow_write_paths: tuple[str, ...] = ()
    deny_write_paths: tuple[str, ...] = ()
    vectordb_url: str | None = None
    vectordb_token: str | None = field(default=None, repr=False)
    tenant: str | None = None
    openai_api_key: str | None = field(default=None, repr=False)
    llm_api_key: str | None = field(default=None, repr=False)
    post_comment: bool = False

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.max_retries,
            backoff_base_ms=self.backoff_ms,
            timeout_seconds=self.timeout_seconds,
        ).validate()

    def secret_values(self) -> list[str]:
        candidates = (
            self.ecs_api_token,
            self.ecs_hmac_secret,
            self.vectordb_token,
            self.openai_api_key,
            self.llm_api_key,
        )
        return [value for value in candidates if value]


def _resolve_env_var(value: Any, environ: Mapping[str, str]) -> Any:
    """Resolve ``$NAME`` references against the environment."""
    if isinstance(value, str) and value.startswith("$") and len(value) > 1:
        return environ.get(value[1:], value)
    return value


def parse_comma_separated(value: str) -> list[str]:
    if not value.strip():
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_bool(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY or not lowered:
        return False
    return value  # left for schema validation to reject


def _load_file(path: str | Path, environ: Mapping[str, str]) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Configuration file not found: {p}")
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {p}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {p} must contain a mapping")
    section = cast(dict[str, Any], raw.get("inputs", raw) or {})
    unknown = sorted(set(section) - set(INPUT_NAMES))
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys in {p}: {', '.join(unknown)}")
    return {k: _resolve_env_var(v, environ) for k, v in section.items()}


def _coerce(raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    doc: dict[str, Any] = {}
    problems: list[str] = []
    for name, value in raw.items():
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if name in _INT_INPUTS and isinstance(value, str):
            try:
                value = int(value.strip(), 10)
            except ValueError:
                problems.append(f"{name}: must be an integer, got {value!r}")
                continue
        elif name in _LIST_INPUTS and isinstance(value, str):
            value = parse_comma_separated(value)
        elif name == "post_comment":
            value = _parse_bool(value)
        elif isinstance(value, str):
            value = value.strip()
        doc[name] = value
    return doc, problems


def load_inputs(
    environ: Mapping[str, str] | None = None,
    config_path: str | Path | None = None,
) -> ActionInputs:
    """Collect, coerce and validate action inputs.

    Values from ``config_path`` (YAML, optionally nested under ``inputs:``)
    act as defaults and non-empty ``INPUT_*`` variables override them. All
    violations are reported together in one :class:`ConfigurationError`.
    """
    env = os.environ if environ is None else environ
    raw: dict[str, Any] = _load_file(config_path, env) if config_path else {}
    for name in INPUT_NAMES:
        value = get_input(name, environ=env)
        if value:
            raw[name] = value
    doc, problems = _coerce(raw)
    problems.extend(validation_errors(action_inputs_schema(), doc))
    if problems:
        raise ConfigurationError("Invalid inputs: " + "; ".join(problems))
    for name in _LIST_INPUTS:
        if name in doc:
            doc[name] = tuple(doc[name])
    return ActionInputs(**doc)


__all__ = ["ActionInputs", "INPUT_NAMES", "load_inputs", "parse_comma_separated"]
