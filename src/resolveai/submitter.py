"""Job submission pipeline.

``prepare_submission`` turns a :class:`JobDescription` into signed request
bytes plus headers; :class:`JobSubmitter` sends them through the retrying
transport and validates the response shape. The API token and signing
secret are passed per call and never stored on the submitter.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

import requests

from . import __version__
from .canonical import stable_json_bytes
from .errors import ConfigurationError, ResponseShapeError, SubmissionError
from .idempotency import build_idempotency_key
from .logging import get_logger
from .models import JobDescription, SubmissionResult
from .retry import RetryConfig
from .schemas import submission_response_schema, validation_errors
from .signing import sign_payload
from .transport import RetryingTransport

USER_AGENT = f"resolveai-action/{__version__} (+github actions)"

HEADER_TOKEN = "X-ResolveAI-Token"
HEADER_SIGNATURE = "X-ResolveAI-Signature"
HEADER_IDEMPOTENCY_KEY = "X-ResolveAI-Idempotency-Key"
HEADER_REPO = "X-ResolveAI-Repo"
HEADER_ISSUE = "X-ResolveAI-Issue"
HEADER_REF = "X-ResolveAI-Ref"
HEADER_SHA = "X-ResolveAI-Sha"
HEADER_TENANT = "X-ResolveAI-Tenant"
HEADER_POST_COMMENT = "X-ResolveAI-Post-Comment"
HEADER_EVENT = "X-ResolveAI-Event"

SECRET_HEADERS = frozenset({HEADER_TOKEN})


@dataclass(frozen=True)
class PreparedSubmission:
    body: bytes
    idempotency_key: str
    headers: dict[str, str] = field(repr=False)

    def public_headers(self) -> dict[str, str]:
        """Headers safe to print: the token is masked."""
        return {k: ("[REDACTED]" if k in SECRET_HEADERS else v) for k, v in self.headers.items()}


def build_headers(
    description: JobDescription,
    *,
    api_token: str,
    signature: str,
    idempotency_key: str,
) -> dict[str, str]:
    github = description.github
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        HEADER_TOKEN: api_token,
        HEADER_SIGNATURE: signature,
        HEADER_IDEMPOTENCY_KEY: idempotency_key,
        HEADER_REPO: github.repository,
    }
    if github.issue_number is not None:
        headers[HEADER_ISSUE] = str(github.issue_number)
    if github.ref:
        headers[HEADER_REF] = github.ref
    if github.sha:
        headers[HEADER_SHA] = github.sha
    if description.tenant:
        headers[HEADER_TENANT] = description.tenant
    if description.post_comment:
        headers[HEADER_POST_COMMENT] = "1"
    if github.event_name:
        headers[HEADER_EVENT] = github.event_name
    return headers


def prepare_submission(
    description: JobDescription, *, api_token: str, hmac_secret: str
) -> PreparedSubmission:
    github = description.github
    key = build_idempotency_key(
        github.owner, github.repo, github.issue_number, github.workflow_run.id
    )
    body = stable_json_bytes(description.to_payload(key))
    signature = sign_payload(body, hmac_secret)
    headers = build_headers(
        description, api_token=api_token, signature=signature, idempotency_key=key
    )
    return PreparedSubmission(body=body, idempotency_key=key, headers=headers)


def parse_response(text: str) -> dict[str, Any]:
    """Decode a 2xx body and check it against the response schema."""
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise ResponseShapeError(f"response body is not valid JSON: {exc}") from exc
    problems = validation_errors(submission_response_schema(), data)
    if problems:
        raise ResponseShapeError("unexpected response shape: " + "; ".join(problems))
    return data


class JobSubmitter:
    """Submit job descriptions to one endpoint with one retry policy.

    An injected ``transport`` must already carry that same policy.
    """

    def __init__(
        self,
        endpoint: str,
        retry_config: RetryConfig,
        *,
        transport: RetryingTransport | None = None,
    ) -> None:
        self.endpoint = endpoint
        self.retry_config = retry_config.validate()
        if transport is not None and transport.retry_config != self.retry_config:
            raise ConfigurationError(
                f"transport retry policy {transport.retry_config} does not match "
                f"submitter retry policy {self.retry_config}"
            )
        self.transport = transport or RetryingTransport(self.retry_config)
        self.logger = get_logger()

    def close(self) -> None:
        self.transport.close()

    def __enter__(self) -> JobSubmitter:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def submit(
        self, description: JobDescription, *, api_token: str, hmac_secret: str
    ) -> SubmissionResult:
        prepared = prepare_submission(
            description, api_token=api_token, hmac_secret=hmac_secret
        )
        return self.send_prepared(prepared)

    def send_prepared(self, prepared: PreparedSubmission) -> SubmissionResult:
        """Send an already signed submission and validate the response."""
        key = prepared.idempotency_key
        self.logger.debug("Submitting job", idempotency_key=key, bytes=len(prepared.body))
        with self.logger.timed_operation("submit_job", idempotency_key=key):
            response = self.transport.send(
                "POST", self.endpoint, headers=prepared.headers, body=prepared.body
            )
            try:
                data = parse_response(response.text)
            except SubmissionError as exc:
                exc.status = response.status
                exc.attempts = response.attempts
                raise
        result = SubmissionResult(
            job_id=data["job_id"],
            status=data["status"],
            idempotency_key=key,
            attempts=response.attempts,
        )
        self.logger.log_operation(
            "job_submitted", job_id=result.job_id, status=result.status, idempotency_key=key
        )
        return result


def submit_job(
    description: JobDescription,
    *,
    endpoint: str,
    api_token: str,
    hmac_secret: str,
    retry_config: RetryConfig,
    session: requests.Session | None = None,
) -> SubmissionResult:
    transport = RetryingTransport(retry_config, session=session)
    submitter = JobSubmitter(endpoint, retry_config, transport=transport)
    try:
        return submitter.submit(description, api_token=api_token, hmac_secret=hmac_secret)
    finally:
        if session is None:
            submitter.close()


__all__ = [
    "JobSubmitter",
    "PreparedSubmission",
    "USER_AGENT",
    "build_headers",
    "parse_response",
    "prepare_submission",
    "submit_job",
]
