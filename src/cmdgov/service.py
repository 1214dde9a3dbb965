"""Governance flows shared by the CLI and the HTTP API.

The approval store is authoritative; the run log is best-effort audit. An
audit append that fails after an approval write is logged and swallowed, so a
crash between the two writes can leave an approval without its audit event.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from .approvals import ApprovalStore
from .config import WorkspaceConfig
from .errors import CmdGovError
from .policies import Evaluator, load_evaluator, normalize_repo
from .runlog import RunLog, new_run_id
from .types import ApprovalRequest, ApprovalStatus, EvalRequest, EvalResult, Event

_logger = logging.getLogger(__name__)


class Governor:
    """Evaluate commands, track approvals and record their audit trail."""

    def __init__(
        self,
        *,
        evaluator: Evaluator,
        approvals: ApprovalStore,
        runlog: RunLog,
        default_repo: str = "",
    ) -> None:
        self.evaluator = evaluator
        self.approvals = approvals
        self.runlog = runlog
        self.default_repo = default_repo

    @classmethod
    def from_config(cls, config: WorkspaceConfig) -> "Governor":
        return cls(
            evaluator=load_evaluator(config.policy_path),
            approvals=ApprovalStore(config.approvals_path),
            runlog=RunLog(config.runlog_path),
            default_repo=str(config.root),
        )

    def evaluate(
        self,
        command: str,
        *,
        agent: str = "",
        repo: str | None = None,
        args: Sequence[str] = (),
        requested_by: str = "",
    ) -> EvalResult:
        return self.evaluator.evaluate(
            EvalRequest(
                agent=agent.strip(),
                repo=self._repo(repo),
                command=command,
                args=tuple(args),
                requested_by=requested_by.strip(),
                timestamp=datetime.now(timezone.utc),
            )
        )

    def request_approval(
        self,
        command: str,
        *,
        agent: str = "dashboard",
        requested_by: str | None = None,
        repo: str | None = None,
        run_id: str | None = None,
        reason: str | None = None,
        ttl: timedelta | None = None,
    ) -> tuple[ApprovalRequest, EvalResult]:
        """Evaluate ``command`` and open a pending approval carrying the result."""
        result = self.evaluate(command, agent=agent, repo=repo, requested_by=requested_by or "")
        request = self.approvals.create(
            command,
            risk_class=result.risk_class,
            requested_by=requested_by or agent,
            repo=self._repo(repo),
            run_id=(run_id or "").strip() or new_run_id(),
            policy_decision=result.decision,
            reason=(reason or "").strip() or result.reason,
            ttl=ttl,
        )
        self._audit(
            request,
            event_type="approval_requested",
            state="awaiting_approval",
            payload={
                "approval_id": request.id,
                "command": request.command,
                "class": request.risk_class.value,
            },
        )
        return request, result

    def decide(
        self,
        approval_id: str,
        decision: ApprovalStatus | str,
        *,
        approver: str | None = None,
        rationale: str | None = None,
    ) -> ApprovalRequest:
        request = self.approvals.decide(
            approval_id, decision, approver=approver, rationale=rationale
        )
        self._audit(
            request,
            event_type="approval_decided",
            state="approval_decided",
            payload={
                "approval_id": request.id,
                "status": request.status.value,
                "approver": request.decided_by,
                "rationale": request.decision_rationale or "",
            },
        )
        return request

    def mark_executed(self, approval_id: str, run_id: str | None = None) -> ApprovalRequest:
        request = self.approvals.mark_executed(approval_id, run_id)
        self._audit(
            request,
            event_type="command_executed",
            state="executed",
            payload={"approval_id": request.id, "command": request.command},
        )
        return request

    def replay(self, run_id: str) -> list[Event]:
        return self.runlog.read_run(run_id)

    def _repo(self, repo: str | None) -> str:
        return normalize_repo(repo if repo and repo.strip() else self.default_repo)

    def _audit(
        self,
        request: ApprovalRequest,
        *,
        event_type: str,
        state: str,
        payload: dict[str, Any],
    ) -> None:
        event = Event(
            run_id=request.run_id or new_run_id(),
            event_type=event_type,
            state=state,
            policy_decision=request.policy_decision.value if request.policy_decision else None,
            payload=payload,
        )
        try:
            self.runlog.append(event)
        except CmdGovError as exc:
            _logger.warning("failed to append %s audit event for %s: %s", event_type, request.id, exc)
