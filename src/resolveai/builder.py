"""Map validated action inputs and run context onto a job description."""

from __future__ import annotations

from .config import ActionInputs
from .models import GitHubContext, JobDescription, JobSpec, LLMSelection, utc_timestamp


def build_job_description(
    inputs: ActionInputs, context: GitHubContext, *, timestamp: str | None = None
) -> JobDescription:
    # An explicit OpenAI key takes precedence over the generic provider key
    llm_api_key = None if inputs.openai_api_key else inputs.llm_api_key
    return JobDescription(
        github=context,
        job=JobSpec(
            action="plan" if inputs.action == "plan" else "run",
            allow_write_paths=tuple(inputs.allow_write_paths),
            deny_write_paths=tuple(inputs.deny_write_paths),
            llm=LLMSelection(provider=inputs.llm_provider, model=inputs.model),
            vectordb_url=inputs.vectordb_url,
        ),
        timestamp=timestamp or utc_timestamp(),
        tenant=inputs.tenant,
        vectordb_token=inputs.vectordb_token,
        openai_api_key=inputs.openai_api_key,
        llm_api_key=llm_api_key,
        post_comment=inputs.post_comment,
    )


__all__ = ["build_job_description"]
