"""Tests for the convo-memory CLI."""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture()
def tmp_cwd(tmp_path, monkeypatch):
    """Run test in a clean temporary directory."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def _run_cli(*args: str, stdin: str | None = None) -> subprocess.CompletedProcess:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
    env.pop("ANTHROPIC_API_KEY", None)
    return subprocess.run(
        [sys.executable, "-m", "convo_memory.cli.main", "--state-root", "state", *args],
        capture_output=True,
        text=True,
        input=stdin,
        env=env,
    )


def test_no_command_prints_help(tmp_cwd):
    result = _run_cli()
    assert result.returncode == 1
    assert "usage:" in result.stdout


def test_append_and_show(tmp_cwd):
    result = _run_cli("append", "run-1", "-m", "hello there")
    assert result.returncode == 0, result.stderr
    assert "Saved 1 messages" in result.stdout
    assert (tmp_cwd / "state" / "conversations" / "run-1.json").is_file()

    _run_cli("append", "run-1", "--role", "assistant", "-m", "general kenobi")
    result = _run_cli("show", "run-1")
    assert result.returncode == 0, result.stderr
    assert "Run: run-1" in result.stdout
    assert "Messages: 2 (summaries: 0)" in result.stdout
    assert "assistant: general kenobi" in result.stdout


def test_append_reads_stdin(tmp_cwd):
    result = _run_cli("append", "run-1", "--kind", "task", "--protected", stdin="from stdin\n")
    assert result.returncode == 0, result.stderr
    data = json.loads((tmp_cwd / "state" / "conversations" / "run-1.json").read_text())
    message = data["conversation"]["messages"][data["conversation"]["ids"][0]]
    assert message["content"] == "from stdin\n"
    assert message["metadata"] == {"kind": "task", "protected": True}


def test_append_empty_content_fails(tmp_cwd):
    result = _run_cli("append", "run-1", stdin="   ")
    assert result.returncode == 1
    assert "empty" in result.stderr


def test_show_json(tmp_cwd):
    _run_cli("append", "run-1", "-m", "hello")
    result = _run_cli("show", "run-1", "--json")
    assert result.returncode == 0, result.stderr
    data = json.loads(result.stdout)
    assert data["run_id"] == "run-1"
    assert data["summary"]["message_count"] == 1


def test_show_unknown_run(tmp_cwd):
    result = _run_cli("show", "missing")
    assert result.returncode == 1
    assert "No conversation found" in result.stderr


def test_export_formats(tmp_cwd):
    _run_cli("append", "run-1", "-m", "hello")

    result = _run_cli("export", "run-1")
    assert result.returncode == 0, result.stderr
    envelope = json.loads(result.stdout)
    assert envelope["run_id"] == "run-1"
    assert envelope["version"] == "1.0.0"

    result = _run_cli("export", "run-1", "--format", "md")
    assert result.returncode == 0, result.stderr
    assert result.stdout.startswith("# convo:run-1")
    assert "### User" in result.stdout


def test_optimize_within_limits(tmp_cwd):
    _run_cli("append", "run-1", "-m", "hello")
    result = _run_cli("optimize", "run-1")
    assert result.returncode == 0, result.stderr
    assert "Messages:    1 -> 1" in result.stdout
    assert "already within retention limits" in result.stdout


def test_optimize_json(tmp_cwd):
    _run_cli("append", "run-1", "-m", "hello")
    result = _run_cli("optimize", "run-1", "--json")
    assert result.returncode == 0, result.stderr
    data = json.loads(result.stdout)
    assert data["metrics"]["changed"] is False
    assert data["backup_path"] is None


def test_optimize_without_api_key_fails_cleanly(tmp_cwd):
    (tmp_cwd / "convo-memory.yaml").write_text(
        "conversation:\n"
        "  pruning:\n"
        "    keep_last_turns: 1\n"
        "  optimization:\n"
        "    retention: {system: 0, user: 0, assistant: 0, tool: 0, error: 0, correction: 0}\n"
    )
    _run_cli("append", "run-1", "-m", "one")
    _run_cli("append", "run-1", "-m", "two")
    before = (tmp_cwd / "state" / "conversations" / "run-1.json").read_text()

    result = _run_cli("optimize", "run-1", "--force")

    assert result.returncode == 1
    assert "Optimization failed" in result.stderr
    assert (tmp_cwd / "state" / "conversations" / "run-1.json").read_text() == before


def test_audit_log_written(tmp_cwd):
    _run_cli("append", "run-1", "-m", "hello")
    lines = (tmp_cwd / "state" / "audit" / "run-1.jsonl").read_text().splitlines()
    event = json.loads(lines[-1])
    assert event["type"] == "run.step"
    assert event["payload"]["step_id"] == "ai.conversation.snapshot"
    assert event["context"]["run_id"] == "run-1"


def test_config_validate_ok(tmp_cwd):
    (tmp_cwd / "convo-memory.yaml").write_text("conversation:\n  pruning:\n    max_turns: 40\n")
    result = _run_cli("config", "validate")
    assert result.returncode == 0, result.stderr
    assert "Config is valid." in result.stdout
    assert "Max turns / bytes: 40 / 200,000" in result.stdout


def test_config_validate_errors(tmp_cwd):
    (tmp_cwd / "convo-memory.yaml").write_text(
        "conversation:\n  pruning:\n    max_turns: 5\n    keep_last_turns: 10\n"
    )
    result = _run_cli("config", "validate")
    assert result.returncode == 1
    assert "keep_last_turns" in result.stdout
