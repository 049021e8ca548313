"""resolveai - signed, idempotent job submission for GitHub Actions.

High-level public API:

from resolveai import RetryConfig, submit_job

result = submit_job(
    description,
    endpoint="https://jobs.example.com/submit",
    api_token=token,
    hmac_secret=secret,
    retry_config=RetryConfig(max_retries=4, backoff_base_ms=500, timeout_seconds=120),
)
print(result.job_id, result.status)

The CLI (``python -m resolveai submit``) wires the same pipeline to action
inputs and the workflow-run environment.
"""

from __future__ import annotations

# Defined before the submodule imports; submitter builds its User-Agent from it
__version__ = "1.0.0"

from .canonical import canonicalize, stable_json, stable_json_bytes  # noqa: E402
from .errors import (  # noqa: E402
    ConfigurationError,
    NetworkError,
    NonRetryableHTTPError,
    RequestTimeoutError,
    ResponseShapeError,
    RetryableHTTPError,
    SubmissionError,
)
from .idempotency import build_idempotency_key  # noqa: E402
from .models import (  # noqa: E402
    GitHubContext,
    JobDescription,
    JobSpec,
    LLMSelection,
    SubmissionResult,
    WorkflowRun,
)
from .retry import RetryConfig  # noqa: E402
from .signing import sign_payload  # noqa: E402
from .submitter import JobSubmitter, submit_job  # noqa: E402

__all__ = [
    "ConfigurationError",
    "GitHubContext",
    "JobDescription",
    "JobSpec",
    "JobSubmitter",
    "LLMSelection",
    "NetworkError",
    "NonRetryableHTTPError",
    "RequestTimeoutError",
    "ResponseShapeError",
    "RetryConfig",
    "RetryableHTTPError",
    "SubmissionError",
    "SubmissionResult",
    "WorkflowRun",
    "__version__",
    "build_idempotency_key",
    "canonicalize",
    "sign_payload",
    "stable_json",
    "stable_json_bytes",
    "submit_job",
]
