"""Central schema registry with version metadata and filenames."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class SchemaDescriptor:
    """Describes a schema artifact shipped with resolveai."""

    name: str
    version: str
    filename: str
    description: str


_REGISTRY: dict[str, SchemaDescriptor] = {
    "action_inputs": SchemaDescriptor(
        name="action_inputs",
        version="20250301",
        filename="action_inputs.schema.json",
        description="Action inputs accepted by the submit command.",
    ),
    "github_context": SchemaDescriptor(
        name="github_context",
        version="20250301",
        filename="github_context.schema.json",
        description="Identifiers of the triggering workflow run.",
    ),
    "job_payload": SchemaDescriptor(
        name="job_payload",
        version="20250301",
        filename="job_payload.schema.json",
        description="Signed request body sent to the job service.",
    ),
    "submission_response": SchemaDescriptor(
        name="submission_response",
        version="20250301",
        filename="submission_response.schema.json",
        description="Successful response returned by the job service.",
    ),
}


def get_schema_descriptor(name: str) -> SchemaDescriptor:
    """Return a copy of a schema descriptor by name."""

    try:
        descriptor = _REGISTRY[name]
    except KeyError as exc:
        raise KeyError(f"Unknown schema '{name}'") from exc
    return replace(descriptor)


def get_schema_registry() -> dict[str, SchemaDescriptor]:
    return {name: replace(descriptor) for name, descriptor in _REGISTRY.items()}


def iter_schema_descriptors() -> Iterable[SchemaDescriptor]:
    for descriptor in _REGISTRY.values():
        yield replace(descriptor)


__all__ = [
    "SchemaDescriptor",
    "get_schema_descriptor",
    "get_schema_registry",
    "iter_schema_descriptors",
]
