"""Workspace configuration.

All three backing files live under one workspace root:

    <root>/mayor/policy.json             rule document (optional)
    <root>/daemon/approvals.json         approval store
    <root>/daemon/command-events.jsonl   run log

The root comes from an explicit argument, else ``CMDGOV_ROOT``, else the
current directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .approvals.store import default_approvals_path
from .policies import default_policy_path
from .runlog.jsonl import default_runlog_path

ROOT_ENV = "CMDGOV_ROOT"
DASHBOARD_TOKEN_ENV = "CMDGOV_DASHBOARD_TOKEN"


@dataclass(frozen=True)
class WorkspaceConfig:
    root: Path
    dashboard_token: str = field(default="", repr=False)

    @classmethod
    def resolve(
        cls, root: str | Path | None = None, *, environ: Mapping[str, str] | None = None
    ) -> "WorkspaceConfig":
        env = os.environ if environ is None else environ
        raw_root = root if root not in (None, "") else env.get(ROOT_ENV, "").strip()
        resolved = Path(raw_root).expanduser() if raw_root else Path.cwd()
        return cls(
            root=resolved.resolve(),
            dashboard_token=env.get(DASHBOARD_TOKEN_ENV, "").strip(),
        )

    @property
    def policy_path(self) -> Path:
        return default_policy_path(self.root)

    @property
    def approvals_path(self) -> Path:
        return default_approvals_path(self.root)

    @property
    def runlog_path(self) -> Path:
        return default_runlog_path(self.root)
