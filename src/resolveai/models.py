from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

JobAction = Literal["run", "plan"]
SubmissionStatus = Literal["accepted", "rejected"]


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class WorkflowRun:
    id: str
    attempt: str = "1"


@dataclass(frozen=True)
class GitHubContext:
    """Identifiers of the workflow run that triggered the submission."""

    repository: str  # owner/repo
    issue_number: int | None
    ref: str
    sha: str
    workflow_run: WorkflowRun
    actor: str
    token: str = field(default="", repr=False)
    event_name: str | None = None

    @property
    def owner(self) -> str:
        return self.repository.split("/", 1)[0]

    @property
    def repo(self) -> str:
        return self.repository.split("/", 1)[1] if "/" in self.repository else ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "repository": self.repository,
            "issue_number": self.issue_number,
            "ref": self.ref,
            "sha": self.sha,
            "workflow_run": {"id": self.workflow_run.id, "attempt": self.workflow_run.attempt},
            "actor": self.actor,
            "token": self.token,
            "event_name": self.event_name or None,
        }


@dataclass(frozen=True)
class LLMSelection:
    provider: str | None = None
    model: str | None = None


@dataclass(frozen=True)
class JobSpec:
    action: JobAction = "run"
    allow_write_paths: tuple[str, ...] = ()
    deny_write_paths: tuple[str, ...] = ()
    llm: LLMSelection = field(default_factory=LLMSelection)
    vectordb_url: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "allow_write_paths": list(self.allow_write_paths),
            "deny_write_paths": list(self.deny_write_paths),
            "llm": {"provider": self.llm.provider, "model": self.llm.model},
            "vectordb": {"url": self.vectordb_url},
        }


@dataclass(frozen=True)
class JobDescription:
    """Immutable description of one job to hand to the job service.

    Re-submitting means building the wire payload again from the same value;
    nothing here is ever mutated after construction.
    """

    github: GitHubContext
    job: JobSpec = field(default_factory=JobSpec)
    timestamp: str = field(default_factory=utc_timestamp)
    tenant: str | None = None
    vectordb_token: str | None = field(default=None, repr=False)
    openai_api_key: str | None = field(default=None, repr=False)
    llm_api_key: str | None = field(default=None, repr=False)
    post_comment: bool = False

    def to_payload(self, idempotency_key: str) -> dict[str, Any]:
        """Build the wire payload; optional keys are omitted when unset."""
        payload: dict[str, Any] = {
            "idempotency_key": idempotency_key,
            "timestamp": self.timestamp,
            "github": self.github.to_payload(),
            "job": self.job.to_payload(),
            "secrets": {"forwarded": {"vectordb_token": self.vectordb_token or None}},
        }
        if self.github.issue_number is not None:
            payload["issue_number"] = self.github.issue_number
        if self.tenant:
            payload["tenant"] = self.tenant
        if self.openai_api_key:
            payload["openai_api_key"] = self.openai_api_key
        elif self.llm_api_key:
            payload["llm_api_key"] = self.llm_api_key
        if self.post_comment:
            payload["post_comment"] = True
        return payload


@dataclass(frozen=True)
class SubmissionResult:
    job_id: str
    status: SubmissionStatus
    idempotency_key: str
    attempts: int = 1

    @property
    def accepted(self) -> bool:
        return self.status == "accepted"

    def as_outputs(self) -> dict[str, str]:
        return {"job_id": self.job_id, "status": self.status}


__all__ = [
    "GitHubContext",
    "JobAction",
    "JobDescription",
    "JobSpec",
    "LLMSelection",
    "SubmissionResult",
    "SubmissionStatus",
    "WorkflowRun",
    "utc_timestamp",
]
