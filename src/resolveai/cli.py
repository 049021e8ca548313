"""resolveai CLI.

Subcommands:
  submit        -> submit the job described by action inputs + run context
  canonicalize  -> print the canonical JSON encoding of a JSON document
  sign          -> print the signature header value for a JSON document
  key           -> print the idempotency key for a trigger
  schema        -> write JSON Schemas for inputs, context, payload, response

Exit codes: 0 on success, 1 on any terminal failure, 2 on usage errors.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from resolveai import actions
from resolveai.builder import build_job_description
from resolveai.canonical import stable_json, stable_json_bytes
from resolveai.config import load_inputs
from resolveai.context import load_github_context
from resolveai.errors import (
    ConfigurationError,
    SubmissionError,
    classify_error,
    redact_secrets,
)
from resolveai.idempotency import build_idempotency_key
from resolveai.logging import configure_logging, get_logger
from resolveai.schema_registry import get_schema_descriptor
from resolveai.schemas import get_schemas
from resolveai.signing import sign_payload
from resolveai.submitter import JobSubmitter, prepare_submission

SECRET_ENV_DEFAULT = "RESOLVEAI_HMAC_SECRET"

_MAX_HELP_WIDTH = 100


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    p = _FormatterArgumentParser(
        prog="resolveai", description="Submit signed jobs to the ResolveAI job service"
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and errors (env: RESOLVEAI_QUIET=1)",
    )
    p.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    p.add_argument("--log-level", help="Log level (env: RESOLVEAI_LOG_LEVEL)")
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    ps = sub.add_parser("submit", help="Submit the job described by the action inputs")
    ps.add_argument("--config", help="YAML file with default inputs")
    ps.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the redacted payload and headers without sending",
    )

    pc = sub.add_parser("canonicalize", help="Print canonical JSON for a JSON document")
    pc.add_argument("--input", type=Path, help="JSON file (default: stdin)")

    psg = sub.add_parser("sign", help="Print the signature header value for a JSON document")
    psg.add_argument("--input", type=Path, help="JSON file (default: stdin)")
    psg.add_argument(
        "--secret-env",
        default=SECRET_ENV_DEFAULT,
        help=f"Environment variable holding the signing secret (default {SECRET_ENV_DEFAULT})",
    )

    pk = sub.add_parser("key", help="Print the idempotency key for a trigger")
    pk.add_argument("--owner", required=True)
    pk.add_argument("--repo", required=True)
    pk.add_argument("--issue", type=int)
    pk.add_argument("--run-id", required=True)

    sch = sub.add_parser("schema", help="Write JSON Schema files")
    sch.add_argument("--output-dir", type=Path, default=Path("."))
    sch.add_argument("--stdout", action="store_true")
    return p


def _read_json(path: Path | None) -> Any:
    text = path.read_text(encoding="utf-8") if path else sys.stdin.read()
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ConfigurationError(f"input is not valid JSON: {exc}") from exc


def _cmd_submit(args: argparse.Namespace) -> int:
    logger = get_logger()
    try:
        inputs = load_inputs(config_path=args.config)
        for secret in inputs.secret_values():
            actions.add_mask(secret)
        context = load_github_context()
        if context.token:
            actions.add_mask(context.token)
        description = build_job_description(inputs, context)
        prepared = prepare_submission(
            description,
            api_token=inputs.ecs_api_token,
            hmac_secret=inputs.ecs_hmac_secret,
        )
        payload = redact_secrets(json.loads(prepared.body))
        if args.dry_run:
            preview = {
                "endpoint": inputs.ecs_endpoint,
                "headers": prepared.public_headers(),
                "payload": payload,
            }
            print(json.dumps(preview, indent=2, sort_keys=True))
            return 0
        actions.debug(json.dumps(payload, sort_keys=True))
        logger.info("Submitting job to ECS service...")
        with JobSubmitter(inputs.ecs_endpoint, inputs.retry_config()) as submitter:
            result = submitter.send_prepared(prepared)
    except SubmissionError as exc:
        logger.log_error("job submission failed", error=exc.summary(), kind=exc.kind)
        return actions.set_failed(f"Action failed: {exc.summary()}")
    logger.info(f"Job submitted successfully: {result.job_id} ({result.status})")
    for name, value in result.as_outputs().items():
        actions.set_output(name, value)
    return 0


def _cmd_canonicalize(args: argparse.Namespace) -> int:
    print(stable_json(_read_json(args.input)))
    return 0


def _cmd_sign(args: argparse.Namespace) -> int:
    secret = os.environ.get(args.secret_env, "")
    if not secret:
        raise ConfigurationError(f"signing secret not set in ${args.secret_env}")
    print(sign_payload(stable_json_bytes(_read_json(args.input)), secret))
    return 0


def _cmd_key(args: argparse.Namespace) -> int:
    print(build_idempotency_key(args.owner, args.repo, args.issue, args.run_id))
    return 0


def _cmd_schema(args: argparse.Namespace) -> int:
    schemas = get_schemas()
    if args.stdout:
        print(json.dumps(schemas, indent=2))
        return 0
    args.output_dir.mkdir(parents=True, exist_ok=True)
    for name, schema in schemas.items():
        target = args.output_dir / get_schema_descriptor(name).filename
        target.write_text(json.dumps(schema, indent=2) + "\n", encoding="utf-8")
        if not args.quiet:
            print(f"Wrote {target}")
    return 0


def _build_handlers(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "submit": lambda: _cmd_submit(args),
        "canonicalize": lambda: _cmd_canonicalize(args),
        "sign": lambda: _cmd_sign(args),
        "key": lambda: _cmd_key(args),
        "schema": lambda: _cmd_schema(args),
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.quiet and os.environ.get("RESOLVEAI_QUIET") == "1":
        args.quiet = True
    level = "WARNING" if args.quiet else args.log_level
    configure_logging(
        json_logging=args.json_logs or os.environ.get("RESOLVEAI_LOG_JSON") == "1",
        level=level,
    )
    handler = _build_handlers(args).get(args.cmd)
    if handler is None:  # pragma: no cover - argparse enforces valid choices
        parser.print_help()
        return 2
    try:
        return int(handler())
    except ConfigurationError as exc:
        print(f"[resolveai] {exc.summary()}", file=sys.stderr)
        return 1
    except Exception as exc:
        info = classify_error(exc)
        get_logger().log_error(
            "command_failed",
            command=args.cmd,
            category=info.category,
            transient=info.transient,
            original_type=info.original_type,
            error=info.message,
        )
        message = f"{info.category} error ({info.original_type}): {info.message}"
        if args.cmd == "submit":
            return actions.set_failed(f"Action failed: {message}")
        print(f"[resolveai] {message}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
