"""Structured logging for resolveai (text or JSON lines on stdout)."""

from __future__ import annotations

import json
import logging
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from .errors import redact

_RESERVED = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "exc_info",
    "exc_text",
    "stack_info",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "funcName",
    "taskName",
    "message",
    "asctime",
}


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return redact(value)
    return value


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": redact(record.getMessage()),
        }
        # Known structured attributes first so they keep a stable position
        for attr in (
            "operation",
            "idempotency_key",
            "attempt",
            "status",
            "delay_ms",
            "duration_ms",
            "job_id",
            "error",
        ):
            if hasattr(record, attr):
                entry[attr] = _scrub(getattr(record, attr))
        for k, v in record.__dict__.items():
            if k not in _RESERVED and not k.startswith("_") and k not in entry:
                entry[k] = _scrub(v)
        return json.dumps(entry, default=str)


class RedactingFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        return redact(super().format(record))


class StructuredLogger:
    def __init__(
        self, name: str = "resolveai", json_logging: bool = False, level: str = "INFO"
    ) -> None:
        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        for h in list(self._logger.handlers):
            self._logger.removeHandler(h)
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if json_logging
            else RedactingFormatter("%(asctime)s %(levelname)s %(message)s")
        )
        self._logger.addHandler(handler)
        self._logger.propagate = False

    @property
    def level(self) -> int:
        return self._logger.level

    def log_operation(self, operation: str, **kw: Any) -> None:
        extra = {"operation": operation, **kw}
        self._logger.info(f"Operation: {operation}", extra=extra)

    def log_attempt(
        self,
        attempt: int,
        outcome: str,
        *,
        status: int | None = None,
        delay_ms: int | None = None,
        **kw: Any,
    ) -> None:
        extra: dict[str, Any] = {"operation": "submit_attempt", "attempt": attempt, **kw}
        msg = f"attempt {attempt}: {outcome}"
        if status is not None:
            extra["status"] = status
            msg += f" (HTTP {status})"
        if delay_ms is not None:
            extra["delay_ms"] = delay_ms
            msg += f", retrying in {delay_ms}ms"
        level = logging.INFO if outcome == "ok" else logging.WARNING
        self._logger.log(level, msg, extra=extra)

    def log_performance(self, operation: str, duration_ms: float, **kw: Any) -> None:
        extra = {"operation": operation, "duration_ms": round(duration_ms, 2), **kw}
        self._logger.info(
            f"Performance: {operation} completed in {duration_ms:.2f}ms", extra=extra
        )

    def log_error(self, message: str, error: str | None = None, **kw: Any) -> None:
        extra = dict(kw)
        if error:
            extra["error"] = error
        self._logger.error(message, extra=extra)

    def debug(self, message: str, **kw: Any) -> None:
        self._logger.debug(message, extra=kw)

    def info(self, message: str, **kw: Any) -> None:
        self._logger.info(message, extra=kw)

    def warning(self, message: str, **kw: Any) -> None:
        self._logger.warning(message, extra=kw)

    def error(self, message: str, **kw: Any) -> None:  # noqa: D401
        self._logger.error(message, extra=kw)

    @contextmanager
    def timed_operation(self, operation: str, **kw: Any) -> Iterator[None]:  # noqa: D401
        start = time.perf_counter()
        self.log_operation(f"{operation}_start", **kw)
        try:
            yield
            self.log_performance(operation, (time.perf_counter() - start) * 1000, **kw)
        except Exception as exc:
            self.log_error(f"operation {operation} failed", error=str(exc), **kw)
            raise


_GLOBAL: StructuredLogger | None = None


def _env_level() -> str:
    if os.environ.get("RUNNER_DEBUG") == "1":
        return "DEBUG"
    return os.environ.get("RESOLVEAI_LOG_LEVEL", "INFO")


def get_logger() -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    if _GLOBAL is None:
        _GLOBAL = StructuredLogger(
            json_logging=os.environ.get("RESOLVEAI_LOG_JSON") == "1",
            level=_env_level(),
        )
    return _GLOBAL


def configure_logging(json_logging: bool = False, level: str | None = None) -> StructuredLogger:
    global _GLOBAL  # noqa: PLW0603
    _GLOBAL = StructuredLogger(json_logging=json_logging, level=level or _env_level())
    return _GLOBAL


__all__ = ["JSONFormatter", "StructuredLogger", "configure_logging", "get_logger"]
