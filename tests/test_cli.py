from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from cmdgov import cli


def _run(workspace: Path, *argv: str) -> int:
    return cli.main(["--root", str(workspace), *argv])


def _json(capsys: pytest.CaptureFixture[str]) -> Any:
    return json.loads(capsys.readouterr().out)


def _request(workspace: Path, capsys: pytest.CaptureFixture[str], cmd: str, *extra: str) -> dict:
    assert _run(workspace, "approvals", "request", "--cmd", cmd, "--json", *extra) == 0
    return _json(capsys)


def test_policy_eval_json(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = _run(workspace, "policy", "eval", "--cmd", "git push origin main", "--json")
    assert code == 0
    assert _json(capsys) == {
        "decision": "require_approval",
        "class": "class2_sensitive",
        "reason": "sensitive command requires approval",
    }


def test_policy_eval_accepts_words(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "policy", "eval", "--", "git", "status") == 0
    out = capsys.readouterr().out
    assert "Decision: allow" in out
    assert "Class: class0_safe" in out


def test_policy_eval_uses_rules(
    workspace: Path, write_policy, capsys: pytest.CaptureFixture[str]
) -> None:
    write_policy(
        {
            "rules": [
                {
                    "id": "mayor-push",
                    "decision": "allow_with_justification",
                    "match": {"agents": ["mayor"], "command_prefixes": ["git push"]},
                }
            ]
        }
    )
    assert _run(workspace, "policy", "eval", "--agent", "mayor", "--cmd", "git push") == 0
    out = capsys.readouterr().out
    assert "Decision: allow_with_justification" in out
    assert "Rule: mayor-push" in out


def test_policy_eval_without_command_is_usage_error(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(workspace, "policy", "eval") == 2
    assert "error: command is required" in capsys.readouterr().err


def test_approvals_list_empty(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "approvals", "list") == 0
    assert "No approval requests found." in capsys.readouterr().out


def test_request_list_and_show(
    workspace: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("COLUMNS", "200")
    created = _request(workspace, capsys, "git push origin main", "--by", "mayor")
    assert created["status"] == "pending"
    assert created["class"] == "class2_sensitive"
    assert created["requested_by"] == "mayor"

    assert _run(workspace, "approvals", "list", "--status", "pending", "--json") == 0
    assert [r["id"] for r in _json(capsys)] == [created["id"]]

    assert _run(workspace, "approvals", "list") == 0
    table = capsys.readouterr().out
    assert created["id"] in table
    assert "git push origin main" in table

    assert _run(workspace, "approvals", "show", created["id"]) == 0
    shown = capsys.readouterr().out
    assert f"ID: {created['id']}" in shown
    assert "Status: pending" in shown


def test_list_rejects_unknown_status(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "approvals", "list", "--status", "done") == 2
    assert "invalid status" in capsys.readouterr().err


def test_approve_then_second_decision_fails(
    workspace: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    created = _request(workspace, capsys, "git push")

    assert _run(workspace, "approvals", "approve", created["id"], "--by", "alice") == 0
    assert f"Approved {created['id']}" in capsys.readouterr().out

    assert _run(workspace, "approvals", "deny", created["id"], "--by", "bob") == 1
    assert "expected pending" in capsys.readouterr().err

    assert _run(workspace, "approvals", "show", created["id"], "--json") == 0
    shown = _json(capsys)
    assert shown["status"] == "approved"
    assert shown["decided_by"] == "alice"


def test_deny_defaults_approver_from_user(
    workspace: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("USER", "carol")
    created = _request(workspace, capsys, "curl example.com")
    assert _run(workspace, "approvals", "deny", created["id"], "--reason", "no", "--json") == 0
    denied = _json(capsys)
    assert denied["status"] == "denied"
    assert denied["decided_by"] == "carol"
    assert denied["decision_rationale"] == "no"


def test_show_unknown_id(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "approvals", "show", "apr-missing") == 1
    assert "not found" in capsys.readouterr().err


def test_executed_and_replay(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    created = _request(workspace, capsys, "git push", "--run-id", "run-cli")
    assert _run(workspace, "approvals", "approve", created["id"]) == 0
    capsys.readouterr()
    assert _run(workspace, "approvals", "executed", created["id"]) == 0
    assert f"Marked {created['id']} executed" in capsys.readouterr().out

    assert _run(workspace, "runs", "replay", "--run-id", "run-cli", "--json") == 0
    replay = _json(capsys)
    assert replay["run_id"] == "run-cli"
    assert [e["event_type"] for e in replay["events"]] == [
        "approval_requested",
        "approval_decided",
        "command_executed",
    ]

    assert _run(workspace, "runs", "replay", "run-cli") == 0
    assert "approval_decided" in capsys.readouterr().out


def test_replay_unknown_run(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "runs", "replay", "run-nope") == 0
    assert "No events found for run run-nope" in capsys.readouterr().out


def test_replay_requires_run_id(workspace: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(workspace, "runs", "replay") == 2
    assert "run id is required" in capsys.readouterr().err


def test_root_from_environment(
    workspace: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("CMDGOV_ROOT", str(workspace))
    assert cli.main(["approvals", "request", "--cmd", "git push", "--json"]) == 0
    capsys.readouterr()
    assert (workspace / "daemon" / "approvals.json").exists()
