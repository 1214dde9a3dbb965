from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from cmdgov.config import DASHBOARD_TOKEN_ENV, ROOT_ENV, WorkspaceConfig


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer environment settings out of the tests."""
    monkeypatch.delenv(ROOT_ENV, raising=False)
    monkeypatch.delenv(DASHBOARD_TOKEN_ENV, raising=False)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "town"
    root.mkdir()
    return root


@pytest.fixture
def config(workspace: Path) -> WorkspaceConfig:
    return WorkspaceConfig.resolve(workspace, environ={})


@pytest.fixture
def write_policy(config: WorkspaceConfig):
    """Write a policy document into the workspace and return its path."""

    def _write(document: dict[str, Any]) -> Path:
        path = config.policy_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write
