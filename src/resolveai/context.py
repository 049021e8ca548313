"""Workflow-run context for job submissions.

Reads the identifiers GitHub Actions exports for every job (repository,
event, ref, commit, run id / attempt, actor, token) plus the issue or pull
request number from the event payload file. Local runs can supply the same
variables through a ``.env`` file.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigurationError
from .logging import get_logger
from .models import GitHubContext, WorkflowRun
from .schemas import github_context_schema, validation_errors

ISSUE_EVENTS = frozenset({"issues", "issue_comment"})
PULL_REQUEST_EVENTS = frozenset({"pull_request", "pull_request_target"})
TOKEN_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
DOTENV_LOCATIONS = (".env", ".env.local")


def load_dotenv_files(locations: tuple[str, ...] = DOTENV_LOCATIONS) -> Path | None:
    """Load the first ``.env`` file found; existing variables win."""
    for location in locations:
        env_path = Path(location)
        if env_path.is_file():
            load_dotenv(str(env_path), override=False)
            get_logger().debug(f"Loaded environment variables from {env_path}")
            return env_path
    return None


def _read_event(path: str | None) -> dict[str, Any]:
    if not path:
        return {}
    event_file = Path(path)
    if not event_file.is_file():
        get_logger().debug(f"GitHub event payload not found: {event_file}")
        return {}
    try:
        data = json.loads(event_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Unreadable GitHub event payload {event_file}: {exc}") from exc
    return data if isinstance(data, dict) else {}


def issue_number_from_event(event_name: str | None, event: Mapping[str, Any]) -> int | None:
    """Issue number for issue events, pull request number for PR events."""
    if event_name in ISSUE_EVENTS:
        source = event.get("issue")
    elif event_name in PULL_REQUEST_EVENTS:
        source = event.get("pull_request")
    else:
        return None
    if not isinstance(source, dict):
        return None
    number = source.get("number")
    if isinstance(number, int) and not isinstance(number, bool) and number > 0:
        return number
    return None


def _first(env: Mapping[str, str], names: tuple[str, ...]) -> str:
    for name in names:
        value = env.get(name, "").strip()
        if value:
            return value
    return ""


def load_github_context(
    environ: Mapping[str, str] | None = None, *, load_dotenv_file: bool = True
) -> GitHubContext:
    if environ is None:
        if load_dotenv_file:
            load_dotenv_files()
        environ = os.environ
    event_name = environ.get("GITHUB_EVENT_NAME", "").strip() or None
    event = _read_event(environ.get("GITHUB_EVENT_PATH"))
    context = GitHubContext(
        repository=environ.get("GITHUB_REPOSITORY", "").strip(),
        issue_number=issue_number_from_event(event_name, event),
        ref=environ.get("GITHUB_REF", "").strip(),
        sha=environ.get("GITHUB_SHA", "").strip(),
        workflow_run=WorkflowRun(
            id=environ.get("GITHUB_RUN_ID", "").strip(),
            attempt=environ.get("GITHUB_RUN_ATTEMPT", "").strip() or "1",
        ),
        actor=environ.get("GITHUB_ACTOR", "").strip(),
        token=_first(environ, TOKEN_VARS),
        event_name=event_name,
    )
    problems = validation_errors(github_context_schema(), context.to_payload())
    if problems:
        raise ConfigurationError("Invalid GitHub context: " + "; ".join(problems))
    if not context.workflow_run.id:
        raise ConfigurationError("Invalid GitHub context: GITHUB_RUN_ID is not set")
    return context


__all__ = ["issue_number_from_event", "load_dotenv_files", "load_github_context"]
