"""Error taxonomy & redaction for job submission.

Every failure the submission pipeline can surface is a ``SubmissionError``
subclass carrying a stable ``kind`` string, a ``retryable`` flag, the HTTP
``status`` when one was observed and the number of ``attempts`` consumed.
The transport decides retries from ``retryable``; callers render a single
terminal message with :meth:`SubmissionError.summary`.

Public API:
- SubmissionError and its subclasses
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
- redact_secrets(mapping) -> dict
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

# Token shapes that may show up in response bodies or exception text
_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"gh[pousr]_[A-Za-z0-9]{20,255}"),  # GitHub classic / app tokens
    re.compile(r"github_pat_\w{20,}"),  # GitHub fine-grained tokens
    re.compile(r"sk-(?:ant-)?[A-Za-z0-9_\-]{16,}"),  # OpenAI / Anthropic keys
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]{8,}"),
    re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----[\s\S]*?-----END [A-Z ]*PRIVATE KEY-----"),
]

_REDACTION_PLACEHOLDER = "<redacted>"
_SECRET_VALUE_PLACEHOLDER = "[REDACTED]"

SENSITIVE_KEYS = (
    "ecs_api_token",
    "ecs_hmac_secret",
    "hmac_secret",
    "vectordb_token",
    "openai_api_key",
    "llm_api_key",
    "token",
    "forwarded",
)


class SubmissionError(RuntimeError):
    """Base class for every terminal failure of a submission."""

    kind = "submission"
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        attempts: int = 0,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.attempts = attempts
        self.retryable = self.default_retryable if retryable is None else retryable

    def summary(self) -> str:
        head = self.kind
        if self.attempts:
            plural = "attempt" if self.attempts == 1 else "attempts"
            head += f" after {self.attempts} {plural}"
        if self.status is not None:
            head += f": HTTP {self.status}"
        return redact(f"{head}: {self.message}")


class ConfigurationError(SubmissionError):
    """Malformed caller input; fatal before any request is made."""

    kind = "configuration"


class NetworkError(SubmissionError):
    """Connection refused, host unresolved, connection reset."""

    kind = "network"
    default_retryable = True


class RequestTimeoutError(NetworkError):
    """An attempt exceeded its per-attempt deadline."""

    kind = "timeout"


class HTTPStatusError(SubmissionError):
    """A completed HTTP response with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        response_text: str | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message, status=status, attempts=attempts)
        self.response_text = response_text


class RetryableHTTPError(HTTPStatusError):
    kind = "http_retryable"
    default_retryable = True


class NonRetryableHTTPError(HTTPStatusError):
    kind = "http_error"


class ResponseShapeError(SubmissionError):
    """2xx status but the body does not match the expected schema."""

    kind = "response_shape"


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    status: int | None = None


def redact(text: str) -> str:
    """Redact sensitive tokens in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


def is_sensitive_key(key: str) -> bool:
    low = key.lower()
    return any(sensitive in low for sensitive in SENSITIVE_KEYS)


def _redact_value(value: Any) -> Any:
    if isinstance(value, Mapping):
        return redact_secrets(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(v) for v in value]
    return value


def redact_secrets(obj: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``obj`` with secret-bearing keys masked at any depth.

    A key is secret-bearing when its lower-cased name contains one of
    ``SENSITIVE_KEYS``; the whole value under such a key is replaced, so a
    ``forwarded`` block disappears entirely rather than key by key.
    """
    out: dict[str, Any] = {}
    for key, value in obj.items():
        if is_sensitive_key(str(key)):
            out[key] = _SECRET_VALUE_PLACEHOLDER
        else:
            out[key] = _redact_value(value)
    return out


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception.

    Submission errors map straight from their ``kind``; anything else is
    classified by keywords so that unexpected failures still get a category.
    """
    msg = str(exc) if exc else ""
    if isinstance(exc, SubmissionError):
        return ErrorInfo(
            exc.kind,
            redact(msg),
            exc.__class__.__name__,
            transient=exc.retryable,
            status=exc.status,
        )
    low = msg.lower()
    if "rate limit" in low:
        return ErrorInfo("rate_limit", redact(msg), exc.__class__.__name__, transient=True)
    if any(k in low for k in ("timed out", "timeout")):
        return ErrorInfo("timeout", redact(msg), exc.__class__.__name__, transient=True)
    if any(
        k in low
        for k in ("connection reset", "connection refused", "name or service not known", "temporarily unavailable")
    ):
        return ErrorInfo("network", redact(msg), exc.__class__.__name__, transient=True)
    if any(k in low for k in ("json", "expecting value", "decode")):
        return ErrorInfo("parse", redact(msg), exc.__class__.__name__)
    return ErrorInfo("generic", redact(msg), exc.__class__.__name__)


__all__ = [
    "ConfigurationError",
    "ErrorInfo",
    "HTTPStatusError",
    "NetworkError",
    "NonRetryableHTTPError",
    "RequestTimeoutError",
    "ResponseShapeError",
    "RetryableHTTPError",
    "SENSITIVE_KEYS",
    "SubmissionError",
    "classify_error",
    "is_sensitive_key",
    "redact",
    "redact_secrets",
]
