"""Concurrent submission support.

The submission pipeline is blocking (``requests`` plus ``time.sleep`` for
backoff), so async callers run each submission on a worker thread. Network
waits and backoff sleeps of one submission then never stall the event loop
or other submissions. Every submission gets its own HTTP session; nothing
mutable is shared between them.
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from types import TracebackType

import requests

from .errors import SubmissionError
from .logging import get_logger
from .models import JobDescription, SubmissionResult
from .retry import RetryConfig
from .submitter import submit_job


class ConcurrencyConfig:
    """Configuration for concurrency settings."""

    def __init__(self, max_workers: int = 4):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.max_workers = max_workers


class AsyncJobSubmitter:
    """Run independent submissions to one endpoint on a thread pool."""

    def __init__(
        self,
        endpoint: str,
        retry_config: RetryConfig,
        concurrency_config: ConcurrencyConfig | None = None,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.endpoint = endpoint
        self.retry_config = retry_config.validate()
        self.config = concurrency_config or ConcurrencyConfig()
        self._session_factory = session_factory
        self.logger = get_logger()
        self._executor: ThreadPoolExecutor | None = None

    def __enter__(self) -> AsyncJobSubmitter:
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="resolveai-submit"
        )
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None

    async def __aenter__(self) -> AsyncJobSubmitter:
        return self.__enter__()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    def _submit_blocking(
        self, description: JobDescription, api_token: str, hmac_secret: str
    ) -> SubmissionResult:
        session = self._session_factory()
        try:
            return submit_job(
                description,
                endpoint=self.endpoint,
                api_token=api_token,
                hmac_secret=hmac_secret,
                retry_config=self.retry_config,
                session=session,
            )
        finally:
            session.close()

    async def submit_async(
        self, description: JobDescription, *, api_token: str, hmac_secret: str
    ) -> SubmissionResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            functools.partial(self._submit_blocking, description, api_token, hmac_secret),
        )

    async def submit_many(
        self,
        descriptions: Sequence[JobDescription],
        *,
        api_token: str,
        hmac_secret: str,
    ) -> list[SubmissionResult | SubmissionError]:
        """Submit every description; results keep input order.

        A submission that fails terminally yields its ``SubmissionError`` in
        place of a result; other exceptions propagate.
        """
        self.logger.log_operation(
            "concurrent_submit_start",
            submission_count=len(descriptions),
            max_workers=self.config.max_workers,
        )
        start = time.perf_counter()
        tasks = [
            self.submit_async(d, api_token=api_token, hmac_secret=hmac_secret)
            for d in descriptions
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        results: list[SubmissionResult | SubmissionError] = []
        for description, outcome in zip(descriptions, outcomes):
            if isinstance(outcome, SubmissionError):
                self.logger.log_error(
                    f"submission for {description.github.repository} failed",
                    error=outcome.summary(),
                )
                results.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                results.append(outcome)
        self.logger.log_performance(
            "concurrent_submit",
            (time.perf_counter() - start) * 1000,
            submission_count=len(descriptions),
        )
        return results


__all__ = ["AsyncJobSubmitter", "ConcurrencyConfig"]
