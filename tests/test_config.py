from __future__ import annotations

from pathlib import Path

import pytest

from cmdgov.config import DASHBOARD_TOKEN_ENV, ROOT_ENV, WorkspaceConfig


def test_explicit_root_wins(tmp_path: Path) -> None:
    config = WorkspaceConfig.resolve(tmp_path, environ={ROOT_ENV: "/somewhere/else"})
    assert config.root == tmp_path.resolve()


def test_root_from_environment(tmp_path: Path) -> None:
    config = WorkspaceConfig.resolve(environ={ROOT_ENV: f"  {tmp_path}  "})
    assert config.root == tmp_path.resolve()


def test_root_defaults_to_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert WorkspaceConfig.resolve(environ={}).root == tmp_path.resolve()


def test_paths_and_token(tmp_path: Path) -> None:
    config = WorkspaceConfig.resolve(tmp_path, environ={DASHBOARD_TOKEN_ENV: " abc "})
    root = tmp_path.resolve()
    assert config.policy_path == root / "mayor" / "policy.json"
    assert config.approvals_path == root / "daemon" / "approvals.json"
    assert config.runlog_path == root / "daemon" / "command-events.jsonl"
    assert config.dashboard_token == "abc"
    assert "abc" not in repr(config)
