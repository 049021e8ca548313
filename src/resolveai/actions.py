"""GitHub Actions runner protocol helpers.

Inputs arrive as ``INPUT_<NAME>`` environment variables; outputs are appended
to the file named by ``GITHUB_OUTPUT``; masks, errors and debug lines are
workflow commands written to stdout.
"""

from __future__ import annotations

import os
import sys
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import TextIO

from .errors import ConfigurationError, redact
from .logging import get_logger


def _input_var(name: str) -> str:
    return "INPUT_" + name.replace(" ", "_").upper()


def get_input(
    name: str, *, required: bool = False, environ: Mapping[str, str] | None = None
) -> str:
    env = os.environ if environ is None else environ
    value = env.get(_input_var(name), "").strip()
    if required and not value:
        raise ConfigurationError(f"Input required and not supplied: {name}")
    return value


def _escape_command(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def set_output(
    name: str, value: str, *, environ: Mapping[str, str] | None = None
) -> None:
    env = os.environ if environ is None else environ
    output_file = env.get("GITHUB_OUTPUT")
    if not output_file:
        get_logger().info(f"output {name}={value}")
        return
    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    if delimiter in name or delimiter in value:  # pragma: no cover - uuid collision
        raise ValueError("output value contains the generated delimiter")
    with Path(output_file).open("a", encoding="utf-8") as fh:
        fh.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")


def add_mask(value: str, *, stream: TextIO | None = None) -> None:
    if not value:
        return
    print(f"::add-mask::{_escape_command(value)}", file=stream or sys.stdout)


def debug(message: str, *, stream: TextIO | None = None) -> None:
    print(f"::debug::{_escape_command(redact(message))}", file=stream or sys.stdout)


def set_failed(message: str, *, stream: TextIO | None = None) -> int:
    """Report a terminal failure and return the process exit code."""
    print(f"::error::{_escape_command(redact(message))}", file=stream or sys.stdout)
    return 1


__all__ = ["add_mask", "debug", "get_input", "set_failed", "set_output"]
