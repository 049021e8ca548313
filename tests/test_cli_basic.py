from __future__ import annotations

import io
import json
import os
import subprocess
import sys
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from resolveai.cli import main
from resolveai.signing import sign_payload

SRC = Path(__file__).resolve().parents[1] / "src"
SHA = "0123456789abcdef0123456789abcdef01234567"


def _run(
    cmd: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
) -> tuple[int, str]:
    result = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True, env=env, check=False)
    return result.returncode, result.stdout + result.stderr


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
    responses: list[_Resp] = []
    calls: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _Resp:
        type(self).calls.append({"method": method, "url": url, **kwargs})
        return type(self).responses.pop(0)

    def close(self) -> None:
        pass


@pytest.fixture
def runner_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    event = tmp_path / "event.json"
    event.write_text(json.dumps({"issue": {"number": 42}}), encoding="utf-8")
    output = tmp_path / "github_output"
    values = {
        "INPUT_ECS_ENDPOINT": "https://jobs.example.com/v1/jobs",
        "INPUT_ECS_API_TOKEN": "api-token-value",
        "INPUT_ECS_HMAC_SECRET": "hmac-secret-value",
        "INPUT_MAX_RETRIES": "1",
        "INPUT_BACKOFF_MS": "0",
        "INPUT_OPENAI_API_KEY": "sk-openai-value",
        "GITHUB_REPOSITORY": "acme/widgets",
        "GITHUB_EVENT_NAME": "issues",
        "GITHUB_EVENT_PATH": str(event),
        "GITHUB_REF": "refs/heads/main",
        "GITHUB_SHA": SHA,
        "GITHUB_RUN_ID": "789",
        "GITHUB_ACTOR": "octocat",
        "GITHUB_TOKEN": "ghs_installationtoken",
        "GITHUB_OUTPUT": str(output),
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    _Session.responses = []
    _Session.calls = []
    monkeypatch.setattr("resolveai.transport.requests.Session", _Session)
    return output


def test_key_command(capsys):
    assert main(["key", "--owner", "acme", "--repo", "widgets", "--issue", "5", "--run-id", "9"]) == 0
    assert capsys.readouterr().out.strip() == "acme/widgets/5/9"
    assert main(["key", "--owner", "acme", "--repo", "widgets", "--run-id", "9"]) == 0
    assert capsys.readouterr().out.strip() == "acme/widgets/null/9"


def test_canonicalize_from_stdin(monkeypatch, capsys):
    monkeypatch.setattr(sys, "stdin", io.StringIO('{"b": {"y": 1, "x": 2}, "a": [3, 1]}'))
    assert main(["canonicalize"]) == 0
    assert capsys.readouterr().out.strip() == '{"a":[3,1],"b":{"x":2,"y":1}}'


def test_canonicalize_rejects_invalid_json(tmp_path: Path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text("{nope", encoding="utf-8")
    assert main(["canonicalize", "--input", str(bad)]) == 1
    assert "not valid JSON" in capsys.readouterr().err


def test_sign_command(tmp_path: Path, monkeypatch, capsys):
    doc = tmp_path / "doc.json"
    doc.write_text('{"b": 1, "a": 2}', encoding="utf-8")
    monkeypatch.setenv("RESOLVEAI_HMAC_SECRET", "k")
    assert main(["sign", "--input", str(doc)]) == 0
    assert capsys.readouterr().out.strip() == sign_payload(b'{"a":2,"b":1}', "k")


def test_sign_without_secret_fails(tmp_path: Path, capsys):
    doc = tmp_path / "doc.json"
    doc.write_text("{}", encoding="utf-8")
    assert main(["sign", "--input", str(doc), "--secret-env", "UNSET_SECRET_VAR"]) == 1
    assert "UNSET_SECRET_VAR" in capsys.readouterr().err


def test_schema_command_writes_files(tmp_path: Path):
    out_dir = tmp_path / "schemas"
    assert main(["--quiet", "schema", "--output-dir", str(out_dir)]) == 0
    written = sorted(p.name for p in out_dir.iterdir())
    assert written == [
        "action_inputs.schema.json",
        "github_context.schema.json",
        "job_payload.schema.json",
        "submission_response.schema.json",
    ]
    schema = json.loads((out_dir / "submission_response.schema.json").read_text(encoding="utf-8"))
    assert schema["required"] == ["job_id", "status"]


def test_schema_command_stdout(capsys):
    assert main(["schema", "--stdout"]) == 0
    assert "job_payload" in json.loads(capsys.readouterr().out)


def test_submit_dry_run_prints_redacted_preview(runner_env: Path, capsys):
    assert main(["submit", "--dry-run"]) == 0
    out = capsys.readouterr().out
    preview = json.loads(out[out.index("{\n"):])
    assert preview["endpoint"] == "https://jobs.example.com/v1/jobs"
    assert preview["headers"]["X-ResolveAI-Token"] == "[REDACTED]"
    assert preview["headers"]["X-ResolveAI-Idempotency-Key"] == "acme/widgets/42/789"
    assert preview["payload"]["openai_api_key"] == "[REDACTED]"
    assert preview["payload"]["github"]["token"] == "[REDACTED]"
    assert "::add-mask::api-token-value" in out
    assert "::add-mask::ghs_installationtoken" in out
    assert _Session.calls == []


def test_submit_success_writes_outputs(runner_env: Path, capsys):
    _Session.responses = [_Resp(202, '{"job_id":"job-77","status":"accepted"}')]
    assert main(["submit"]) == 0
    out = capsys.readouterr().out
    debug_lines = [line for line in out.splitlines() if line.startswith("::debug::")]
    assert len(debug_lines) == 1
    logged = json.loads(debug_lines[0][len("::debug::"):])
    assert logged["openai_api_key"] == "[REDACTED]"
    assert logged["github"]["token"] == "[REDACTED]"
    assert logged["idempotency_key"] == "acme/widgets/42/789"
    assert "sk-openai-value" not in debug_lines[0]
    assert "api-token-value" not in debug_lines[0]
    content = runner_env.read_text(encoding="utf-8")
    assert "job_id<<" in content
    assert "\njob-77\n" in content
    assert "\naccepted\n" in content
    call = _Session.calls[0]
    assert call["url"] == "https://jobs.example.com/v1/jobs"
    assert call["headers"]["X-ResolveAI-Signature"] == sign_payload(call["data"], "hmac-secret-value")


def test_submit_failure_sets_failed(runner_env: Path, capsys):
    _Session.responses = [_Resp(500, "boom"), _Resp(503, "still down")]
    assert main(["submit"]) == 1
    out = capsys.readouterr().out
    assert "::error::Action failed: http_retryable after 2 attempts: HTTP 503" in out
    assert "hmac-secret-value" not in out.replace("::add-mask::hmac-secret-value", "")
    assert not runner_env.exists()


def test_submit_with_invalid_inputs_fails_before_network(runner_env: Path, monkeypatch, capsys):
    monkeypatch.setenv("INPUT_ECS_ENDPOINT", "ftp://nope")
    assert main(["submit"]) == 1
    assert "::error::Action failed: configuration: Invalid inputs" in capsys.readouterr().out
    assert _Session.calls == []


def test_module_entrypoint_runs(tmp_path: Path):
    env = os.environ.copy()
    env["PYTHONPATH"] = str(SRC) + os.pathsep + env.get("PYTHONPATH", "")
    rc, out = _run(
        [sys.executable, "-m", "resolveai", "key", "--owner", "o", "--repo", "r", "--run-id", "1"],
        cwd=tmp_path,
        env=env,
    )
    assert rc == 0, out
    assert out.strip() == "o/r/null/1"


def test_submit_unexpected_error_is_classified(runner_env: Path, monkeypatch, capsys):
    def _explode(*_args: Any, **_kwargs: Any) -> Any:
        raise ValueError("Expecting value: line 1 column 1 (char 0)")

    monkeypatch.setattr("resolveai.cli.build_job_description", _explode)
    assert main(["submit"]) == 1
    out = capsys.readouterr().out
    assert "::error::Action failed: parse error (ValueError): Expecting value" in out
    assert _Session.calls == []


def test_unexpected_error_outside_submit_goes_to_stderr(monkeypatch, capsys):
    def _explode(*_args: Any, **_kwargs: Any) -> str:
        raise RuntimeError("connection reset by peer")

    monkeypatch.setattr("resolveai.cli.build_idempotency_key", _explode)
    assert main(["key", "--owner", "o", "--repo", "r", "--run-id", "1"]) == 1
    captured = capsys.readouterr()
    assert "[resolveai] network error (RuntimeError): connection reset by peer" in captured.err
    assert "::error::" not in captured.out
