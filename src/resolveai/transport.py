"""Retrying HTTP transport for signed submissions.

One logical request is sent as a strictly sequential series of attempts
(``0..max_retries`` inclusive). Transport failures and 408/429/5xx responses
are retried after a jittered exponential backoff; any other non-2xx status
ends the loop at once. The request body is sent as the exact bytes supplied
by the caller so the signature computed over them stays valid on every
attempt. Each attempt is bounded by ``timeout_seconds`` of wall-clock time,
including the time spent streaming the response body.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import requests

from .errors import (
    NetworkError,
    NonRetryableHTTPError,
    RequestTimeoutError,
    RetryableHTTPError,
    SubmissionError,
)
from .logging import get_logger
from .retry import RetryConfig, compute_backoff_ms, is_retryable_status

_MAX_ERROR_TEXT = 2000
# One byte per read: the attempt deadline is checked between socket reads
_READ_CHUNK_SIZE = 1


@dataclass(frozen=True)
class TransportResponse:
    status: int
    text: str
    headers: Mapping[str, str] = field(default_factory=dict)
    attempts: int = 1


def _is_success(status: int) -> bool:
    return 200 <= status <= 299


class RetryingTransport:
    """Send one logical request honoring a :class:`RetryConfig`.

    ``sleep`` and ``rng`` are injectable so tests observe backoff without
    waiting. ``deadline_seconds`` bounds the whole multi-attempt submission:
    no further attempt is scheduled once the elapsed time plus the pending
    backoff would exceed it.
    """

    def __init__(
        self,
        retry_config: RetryConfig,
        *,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
        deadline_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retry_config = retry_config.validate()
        self.session = session or requests.Session()
        self._sleep = sleep
        self._rng = rng
        self.deadline_seconds = deadline_seconds
        self._clock = clock
        self.logger = get_logger()

    def close(self) -> None:
        self.session.close()

    def _timeout_error(self) -> RequestTimeoutError:
        return RequestTimeoutError(
            f"Request timeout after {self.retry_config.timeout_seconds}s: "
            "response not received before the attempt deadline"
        )

    def _read_body(self, response: Any, deadline: float) -> str:
        if self._clock() > deadline:
            raise self._timeout_error()
        chunks: list[bytes] = []
        for chunk in response.iter_content(chunk_size=_READ_CHUNK_SIZE):
            if self._clock() > deadline:
                raise self._timeout_error()
            chunks.append(chunk)
        return b"".join(chunks).decode("utf-8", errors="replace")

    def _attempt(
        self, method: str, url: str, headers: Mapping[str, str], body: bytes, attempt: int
    ) -> TransportResponse:
        """Run one attempt bounded by a wall-clock deadline of ``timeout_seconds``.

        ``requests`` only bounds the connect and each individual socket read,
        so the body is streamed and the deadline is re-checked between reads.
        An overrun closes the response and counts as a timeout.
        """
        timeout = self.retry_config.timeout_seconds
        deadline = self._clock() + timeout
        try:
            response = self.session.request(
                method,
                url,
                headers=dict(headers),
                data=body,
                timeout=timeout,
                stream=True,
            )
            try:
                status = int(response.status_code)
                text = self._read_body(response, deadline)
                response_headers = dict(getattr(response, "headers", None) or {})
            finally:
                response.close()
        except requests.exceptions.Timeout as exc:
            raise RequestTimeoutError(f"Request timeout after {timeout}s: {exc}") from exc
        except (requests.exceptions.ConnectionError, requests.exceptions.ChunkedEncodingError) as exc:
            raise NetworkError(f"Connection failed: {exc}") from exc
        except requests.exceptions.RequestException as exc:
            raise NetworkError(f"Request failed: {exc}", retryable=False) from exc

        if _is_success(status):
            return TransportResponse(
                status=status,
                text=text,
                headers=response_headers,
                attempts=attempt + 1,
            )
        text = text[:_MAX_ERROR_TEXT]
        message = f"HTTP {status}: {text}"
        if is_retryable_status(status):
            raise RetryableHTTPError(message, status=status, response_text=text)
        raise NonRetryableHTTPError(message, status=status, response_text=text)

    def _deadline_allows(self, started: float, delay_ms: int) -> bool:
        if self.deadline_seconds is None:
            return True
        elapsed = self._clock() - started
        return elapsed + delay_ms / 1000.0 <= self.deadline_seconds

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str],
        body: bytes,
    ) -> TransportResponse:
        cfg = self.retry_config
        started = self._clock()
        last_error: SubmissionError | None = None
        for attempt in range(cfg.max_retries + 1):
            try:
                response = self._attempt(method, url, headers, body, attempt)
            except SubmissionError as exc:
                exc.attempts = attempt + 1
                last_error = exc
                if not exc.retryable or attempt >= cfg.max_retries:
                    self.logger.log_attempt(attempt, exc.kind, status=exc.status)
                    raise
                delay_ms = compute_backoff_ms(attempt, cfg.backoff_base_ms, self._rng)
                if not self._deadline_allows(started, delay_ms):
                    self.logger.log_attempt(attempt, f"{exc.kind}, submission deadline reached", status=exc.status)
                    raise
                self.logger.log_attempt(attempt, exc.kind, status=exc.status, delay_ms=delay_ms)
                self._sleep(delay_ms / 1000.0)
                continue
            self.logger.log_attempt(attempt, "ok", status=response.status)
            return response
        # max_retries >= 0 guarantees at least one attempt ran
        raise RuntimeError(f"retry loop exited without a result: {last_error!r}")


__all__ = ["RetryingTransport", "TransportResponse"]
