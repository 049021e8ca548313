"""JSON Schemas for the documents resolveai reads and writes.

The response schema is enforced on every successful submission; the input
and context schemas validate what the runner hands us before anything is
signed. The payload schema documents the wire format for the job service.
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator

from .errors import is_sensitive_key
from .schema_registry import get_schema_descriptor

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"

_NULLABLE_STRING = {"type": ["string", "null"]}
_STRING_LIST = {"type": "array", "items": {"type": "string"}}
_HTTP_URL = {"type": "string", "pattern": r"^https?://[^\s/$.?#][^\s]*$"}


def _header(name: str, title: str) -> dict[str, Any]:
    descriptor = get_schema_descriptor(name)
    return {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"resolveai {name} schema v{descriptor.version}",
        "title": title,
    }


def submission_response_schema() -> dict[str, Any]:
    return {
        **_header("submission_response", "SubmissionResponse"),
        "type": "object",
        "required": ["job_id", "status"],
        "properties": {
            "job_id": {"type": "string"},
            "status": {"type": "string", "enum": ["accepted", "rejected"]},
        },
    }


def github_context_schema() -> dict[str, Any]:
    return {
        **_header("github_context", "GitHubContext"),
        "type": "object",
        "required": ["repository", "issue_number", "ref", "sha", "workflow_run", "actor", "token"],
        "properties": {
            "repository": {"type": "string", "pattern": r"^[^/]+/[^/]+$"},
            "issue_number": {"type": ["integer", "null"]},
            "ref": {"type": "string"},
            "sha": {"type": "string", "pattern": r"^[a-f0-9]{40}$"},
            "workflow_run": {
                "type": "object",
                "required": ["id", "attempt"],
                "properties": {"id": {"type": "string"}, "attempt": {"type": "string"}},
            },
            "actor": {"type": "string"},
            "token": {"type": "string"},
            "event_name": _NULLABLE_STRING,
        },
    }


def action_inputs_schema() -> dict[str, Any]:
    return {
        **_header("action_inputs", "ActionInputs"),
        "type": "object",
        "required": ["ecs_endpoint", "ecs_api_token", "ecs_hmac_secret"],
        "properties": {
            "ecs_endpoint": _HTTP_URL,
            "ecs_api_token": {"type": "string", "minLength": 1},
            "ecs_hmac_secret": {"type": "string", "minLength": 1},
            "action": {"type": "string", "enum": ["run", "plan"]},
            "timeout_seconds": {"type": "integer", "minimum": 1, "maximum": 600},
            "max_retries": {"type": "integer", "minimum": 0, "maximum": 10},
            "backoff_ms": {"type": "integer", "minimum": 0, "maximum": 5000},
            "llm_provider": {"type": "string", "enum": ["openai", "anthropic"]},
            "model": {"type": "string"},
            "allow_write_paths": _STRING_LIST,
            "deny_write_paths": _STRING_LIST,
            "vectordb_url": _HTTP_URL,
            "vectordb_token": {"type": "string"},
            "tenant": {"type": "string"},
            "openai_api_key": {"type": "string"},
            "llm_api_key": {"type": "string"},
            "post_comment": {"type": "boolean"},
        },
    }


def job_payload_schema() -> dict[str, Any]:
    github = github_context_schema()
    for key in (SCHEMA_KEY, "$comment", "title"):
        github.pop(key, None)
    return {
        **_header("job_payload", "JobPayload"),
        "type": "object",
        "required": ["idempotency_key", "timestamp", "github", "job", "secrets"],
        "additionalProperties": False,
        "properties": {
            "idempotency_key": {"type": "string"},
            "timestamp": {"type": "string"},
            "github": github,
            "job": {
                "type": "object",
                "required": ["action", "allow_write_paths", "deny_write_paths", "llm", "vectordb"],
                "properties": {
                    "action": {"type": "string", "enum": ["run", "plan"]},
                    "allow_write_paths": _STRING_LIST,
                    "deny_write_paths": _STRING_LIST,
                    "llm": {
                        "type": "object",
                        "required": ["provider", "model"],
                        "properties": {"provider": _NULLABLE_STRING, "model": _NULLABLE_STRING},
                    },
                    "vectordb": {
                        "type": "object",
                        "required": ["url"],
                        "properties": {"url": _NULLABLE_STRING},
                    },
                },
            },
            "secrets": {
                "type": "object",
                "required": ["forwarded"],
                "properties": {
                    "forwarded": {
                        "type": "object",
                        "required": ["vectordb_token"],
                        "properties": {"vectordb_token": _NULLABLE_STRING},
                    }
                },
            },
            "issue_number": {"type": "integer"},
            "tenant": {"type": "string"},
            "openai_api_key": {"type": "string"},
            "llm_api_key": {"type": "string"},
            "post_comment": {"const": True},
        },
    }


def get_schemas() -> dict[str, dict[str, Any]]:
    """Return a mapping of schema name -> JSON Schema dictionary."""
    return {
        "action_inputs": action_inputs_schema(),
        "github_context": github_context_schema(),
        "job_payload": job_payload_schema(),
        "submission_response": submission_response_schema(),
    }


def validation_errors(schema: dict[str, Any], document: Any) -> list[str]:
    """Validate ``document`` and return ``path: message`` strings, sorted.

    Messages for secret-bearing fields never echo the offending value.
    """
    validator = Draft7Validator(schema)
    errors: list[str] = []
    for err in validator.iter_errors(document):
        path = "/".join(str(p) for p in err.absolute_path) or "<root>"
        if any(str(p) and is_sensitive_key(str(p)) for p in err.absolute_path):
            errors.append(f"{path}: invalid value ({err.validator} constraint)")
        else:
            errors.append(f"{path}: {err.message}")
    return sorted(errors)


__all__ = [
    "action_inputs_schema",
    "get_schemas",
    "github_context_schema",
    "job_payload_schema",
    "submission_response_schema",
    "validation_errors",
]
