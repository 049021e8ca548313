"""Idempotency key derivation.

The key identifies one logical trigger (repository + issue + workflow run)
so the job service can collapse duplicate deliveries caused by retries.
"""

from __future__ import annotations


def build_idempotency_key(
    owner: str, repo: str, issue_number: int | None, run_id: str
) -> str:
    issue = "null" if issue_number is None else str(issue_number)
    return f"{owner}/{repo}/{issue}/{run_id}"


__all__ = ["build_idempotency_key"]
