from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

import pytest

from resolveai.errors import (
    ConfigurationError,
    NonRetryableHTTPError,
    ResponseShapeError,
    RetryableHTTPError,
)
from resolveai.models import GitHubContext, JobDescription, JobSpec, LLMSelection, WorkflowRun
from resolveai.retry import RetryConfig
from resolveai.schemas import job_payload_schema, validation_errors
from resolveai.signing import sign_payload
from resolveai.submitter import (
    HEADER_EVENT,
    HEADER_IDEMPOTENCY_KEY,
    HEADER_ISSUE,
    HEADER_POST_COMMENT,
    HEADER_REF,
    HEADER_REPO,
    HEADER_SHA,
    HEADER_SIGNATURE,
    HEADER_TENANT,
    HEADER_TOKEN,
    USER_AGENT,
    JobSubmitter,
    parse_response,
    prepare_submission,
    submit_job,
)
from resolveai.transport import RetryingTransport

ENDPOINT = "https://jobs.example.com/v1/jobs"
SHA = "0123456789abcdef0123456789abcdef01234567"
API_TOKEN = "api-token-value"
SECRET = "hmac-secret-value"


@dataclass
class _Resp:
    status_code: int
    text: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        data = self.text.encode("utf-8")
        for start in range(0, len(data), chunk_size):
            yield data[start : start + chunk_size]

    def close(self) -> None:
        pass


class _Session:
    def __init__(self, *responses: _Resp):
        self.responses = list(responses)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> _Resp:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self.responses.pop(0)

    def close(self) -> None:
        self.closed = True


def _description(**overrides: Any) -> JobDescription:
    github = GitHubContext(
        repository="acme/widgets",
        issue_number=overrides.pop("issue_number", 42),
        ref="refs/heads/main",
        sha=SHA,
        workflow_run=WorkflowRun(id="789", attempt="2"),
        actor="octocat",
        token="gh-installation-token",
        event_name=overrides.pop("event_name", "issues"),
    )
    job = JobSpec(
        action="run",
        allow_write_paths=("src/**",),
        deny_write_paths=(".github/**",),
        llm=LLMSelection(provider="openai", model="gpt-4o"),
        vectordb_url=None,
    )
    return JobDescription(github=github, job=job, timestamp="2025-03-01T12:00:00.000Z", **overrides)


def _submitter(session: _Session, max_retries: int = 2) -> JobSubmitter:
    cfg = RetryConfig(max_retries=max_retries, backoff_base_ms=10, timeout_seconds=5)
    transport = RetryingTransport(cfg, session=session, sleep=lambda _s: None)  # type: ignore[arg-type]
    return JobSubmitter(ENDPOINT, cfg, transport=transport)


def test_prepared_headers_for_issue_event():
    prepared = prepare_submission(
        _description(tenant="team-a", post_comment=True), api_token=API_TOKEN, hmac_secret=SECRET
    )
    h = prepared.headers
    assert h["Content-Type"] == "application/json"
    assert h["User-Agent"] == USER_AGENT
    assert h[HEADER_TOKEN] == API_TOKEN
    assert h[HEADER_IDEMPOTENCY_KEY] == "acme/widgets/42/789"
    assert h[HEADER_REPO] == "acme/widgets"
    assert h[HEADER_ISSUE] == "42"
    assert h[HEADER_REF] == "refs/heads/main"
    assert h[HEADER_SHA] == SHA
    assert h[HEADER_TENANT] == "team-a"
    assert h[HEADER_POST_COMMENT] == "1"
    assert h[HEADER_EVENT] == "issues"


def test_optional_headers_absent_when_unset():
    prepared = prepare_submission(
        _description(issue_number=None, event_name=None), api_token=API_TOKEN, hmac_secret=SECRET
    )
    for name in (HEADER_ISSUE, HEADER_TENANT, HEADER_POST_COMMENT, HEADER_EVENT):
        assert name not in prepared.headers
    assert prepared.idempotency_key == "acme/widgets/null/789"


def test_signature_covers_exact_body_bytes():
    prepared = prepare_submission(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    assert prepared.headers[HEADER_SIGNATURE] == sign_payload(prepared.body, SECRET)
    payload = json.loads(prepared.body)
    assert payload["idempotency_key"] == prepared.idempotency_key
    assert list(payload) == sorted(payload)
    assert list(payload["github"]) == sorted(payload["github"])


def test_body_matches_payload_schema():
    prepared = prepare_submission(
        _description(tenant="t", openai_api_key="sk-test", post_comment=True),
        api_token=API_TOKEN,
        hmac_secret=SECRET,
    )
    assert validation_errors(job_payload_schema(), json.loads(prepared.body)) == []


def test_prepared_submission_repr_and_public_headers_hide_token():
    prepared = prepare_submission(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    assert API_TOKEN not in repr(prepared)
    assert prepared.public_headers()[HEADER_TOKEN] == "[REDACTED]"
    assert prepared.public_headers()[HEADER_REPO] == "acme/widgets"


def test_resubmitting_same_description_gives_identical_body():
    desc = _description()
    first = prepare_submission(desc, api_token=API_TOKEN, hmac_secret=SECRET)
    second = prepare_submission(desc, api_token=API_TOKEN, hmac_secret=SECRET)
    assert first.body == second.body
    assert first.headers == second.headers


def test_parse_response_accepts_valid_body():
    assert parse_response('{"job_id":"j-1","status":"accepted","extra":1}')["job_id"] == "j-1"


@pytest.mark.parametrize(
    "text",
    [
        '{"status":"accepted"}',
        '{"job_id":"j","status":"queued"}',
        '{"job_id":7,"status":"accepted"}',
        "[]",
        "not json",
        "",
    ],
)
def test_parse_response_rejects_bad_shapes(text):
    with pytest.raises(ResponseShapeError):
        parse_response(text)


def test_submit_success_returns_result():
    session = _Session(_Resp(202, '{"job_id":"job-1","status":"accepted"}'))
    with _submitter(session) as sub:
        result = sub.submit(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    assert result.job_id == "job-1"
    assert result.accepted
    assert result.idempotency_key == "acme/widgets/42/789"
    assert result.attempts == 1
    assert session.calls[0]["method"] == "POST"
    assert session.calls[0]["url"] == ENDPOINT
    assert session.closed


def test_submit_rejected_status_is_a_result_not_an_error():
    session = _Session(_Resp(200, '{"job_id":"job-2","status":"rejected"}'))
    result = _submitter(session).submit(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    assert result.status == "rejected"
    assert not result.accepted


def test_submit_retries_reuse_identical_bytes_and_headers():
    session = _Session(
        _Resp(503, "unavailable"),
        _Resp(502, "bad gateway"),
        _Resp(202, '{"job_id":"job-3","status":"accepted"}'),
    )
    result = _submitter(session).submit(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    assert result.attempts == 3
    bodies = {call["data"] for call in session.calls}
    signatures = {call["headers"][HEADER_SIGNATURE] for call in session.calls}
    assert len(bodies) == 1
    assert len(signatures) == 1


def test_submit_2xx_without_job_id_is_shape_error():
    session = _Session(_Resp(202, '{"status":"accepted"}'))
    with pytest.raises(ResponseShapeError) as info:
        _submitter(session).submit(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    assert info.value.status == 202
    assert info.value.attempts == 1
    assert len(session.calls) == 1


def test_submit_non_retryable_status():
    session = _Session(_Resp(401, "bad token"))
    with pytest.raises(NonRetryableHTTPError) as info:
        _submitter(session).submit(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    assert info.value.status == 401
    assert len(session.calls) == 1


def test_submit_exhausted_summary_does_not_leak_secrets():
    leaked = "ghp_" + "A" * 36
    session = _Session(*[_Resp(500, f"upstream echoed {leaked}") for _ in range(3)])
    with pytest.raises(RetryableHTTPError) as info:
        _submitter(session).submit(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    summary = info.value.summary()
    assert "3 attempts" in summary
    assert "HTTP 500" in summary
    assert leaked not in summary
    assert SECRET not in summary
    assert API_TOKEN not in summary


def test_submit_job_closes_only_its_own_session(monkeypatch):
    session = _Session(_Resp(202, '{"job_id":"job-4","status":"accepted"}'))
    result = submit_job(
        _description(),
        endpoint=ENDPOINT,
        api_token=API_TOKEN,
        hmac_secret=SECRET,
        retry_config=RetryConfig(max_retries=0, timeout_seconds=5),
        session=session,  # type: ignore[arg-type]
    )
    assert result.job_id == "job-4"
    assert not session.closed

    owned = _Session(_Resp(202, '{"job_id":"job-5","status":"accepted"}'))
    monkeypatch.setattr("resolveai.transport.requests.Session", lambda: owned)
    result = submit_job(
        _description(),
        endpoint=ENDPOINT,
        api_token=API_TOKEN,
        hmac_secret=SECRET,
        retry_config=RetryConfig(max_retries=0, timeout_seconds=5),
    )
    assert result.job_id == "job-5"
    assert owned.closed


def test_injected_transport_must_share_the_retry_policy():
    session = _Session()
    transport = RetryingTransport(
        RetryConfig(max_retries=0, backoff_base_ms=10, timeout_seconds=5),
        session=session,  # type: ignore[arg-type]
    )
    with pytest.raises(ConfigurationError) as info:
        JobSubmitter(
            ENDPOINT,
            RetryConfig(max_retries=3, backoff_base_ms=10, timeout_seconds=5),
            transport=transport,
        )
    assert "max_retries=0" in str(info.value)
    assert "max_retries=3" in str(info.value)

    same = JobSubmitter(
        ENDPOINT,
        RetryConfig(max_retries=0, backoff_base_ms=10, timeout_seconds=5),
        transport=transport,
    )
    assert same.transport is transport


def test_send_prepared_posts_the_prepared_bytes():
    session = _Session(_Resp(202, '{"job_id":"job-6","status":"accepted"}'))
    prepared = prepare_submission(_description(), api_token=API_TOKEN, hmac_secret=SECRET)
    result = _submitter(session).send_prepared(prepared)
    assert result.job_id == "job-6"
    assert result.idempotency_key == prepared.idempotency_key
    assert session.calls[0]["data"] == prepared.body
    assert session.calls[0]["headers"] == prepared.headers
