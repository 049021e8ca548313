"""Retry policy: configuration, status classification and jittered backoff.

Backoff before the retry that follows attempt ``n`` (0-indexed) is
``backoff_base_ms * 2**n`` scaled by a uniform jitter in ``[0.85, 1.15]``
and floored to whole milliseconds.

Environment overrides (read by ``RetryConfig.from_env``):
  RESOLVEAI_MAX_RETRIES (default 4)
  RESOLVEAI_BACKOFF_MS (default 500)
  RESOLVEAI_TIMEOUT_SECONDS (default 120)
"""

from __future__ import annotations

import math
import os
import random
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigurationError

DEFAULT_MAX_RETRIES = 4
DEFAULT_BACKOFF_MS = 500
DEFAULT_TIMEOUT_SECONDS = 120

JITTER_MIN = 0.85
JITTER_MAX = 1.15

RETRYABLE_STATUSES = frozenset({408, 429})
_JITTER = random.SystemRandom()


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = DEFAULT_MAX_RETRIES
    backoff_base_ms: int = DEFAULT_BACKOFF_MS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    def validate(self) -> RetryConfig:
        problems: list[str] = []
        if not _is_int(self.max_retries) or self.max_retries < 0:
            problems.append(f"max_retries must be a non-negative integer, got {self.max_retries!r}")
        if not _is_int(self.backoff_base_ms) or self.backoff_base_ms < 0:
            problems.append(
                f"backoff_base_ms must be a non-negative integer, got {self.backoff_base_ms!r}"
            )
        timeout = self.timeout_seconds
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, (int, float))
            or not math.isfinite(timeout)
            or timeout <= 0
        ):
            problems.append(
                f"timeout_seconds must be a positive number of seconds, got {timeout!r}"
            )
        if problems:
            raise ConfigurationError("invalid retry configuration: " + "; ".join(problems))
        return self

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> RetryConfig:
        env = os.environ if environ is None else environ
        try:
            cfg = cls(
                max_retries=int(env.get("RESOLVEAI_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
                backoff_base_ms=int(env.get("RESOLVEAI_BACKOFF_MS", DEFAULT_BACKOFF_MS)),
                timeout_seconds=float(env.get("RESOLVEAI_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
            )
        except ValueError as exc:
            raise ConfigurationError(f"invalid retry environment override: {exc}") from exc
        return cfg.validate()


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES or 500 <= status <= 599


def compute_backoff_ms(
    attempt: int, base_ms: int, rng: random.Random | None = None
) -> int:
    jitter = (rng or _JITTER).uniform(JITTER_MIN, JITTER_MAX)
    return int(math.floor(base_ms * (2**attempt) * jitter))


__all__ = [
    "DEFAULT_BACKOFF_MS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_TIMEOUT_SECONDS",
    "RetryConfig",
    "compute_backoff_ms",
    "is_retryable_status",
]
