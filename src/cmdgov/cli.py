"""Command-line interface for cmdgov."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timedelta
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .approvals.common import parse_status
from .config import WorkspaceConfig
from .errors import CmdGovError, ValidationError
from .service import Governor
from .types import ApprovalRequest, ApprovalStatus, EvalResult, Event

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _default_approver() -> str:
    return os.environ.get("USER", "").strip() or "operator"


def _console() -> Console:
    return Console(highlight=False, soft_wrap=True)


def _print_json(value: Any) -> None:
    print(json.dumps(value, ensure_ascii=False))


def _fmt_time(value: datetime | None) -> str:
    return value.strftime(_TIME_FORMAT) if value is not None else ""


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="cmdgov", add_help=True)
    parser.add_argument("--root", help="Workspace root (default: $CMDGOV_ROOT or cwd)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    policy_parser = subparsers.add_parser("policy", help="Evaluate command policy decisions")
    policy_sub = policy_parser.add_subparsers(dest="action", required=True)
    eval_parser = policy_sub.add_parser("eval", help="Evaluate policy for a command")
    eval_parser.add_argument("--agent", default="dashboard", help="Agent identity to evaluate for")
    eval_parser.add_argument("--repo", default="", help="Repository/workspace path")
    eval_parser.add_argument("--cmd", dest="cmd", default="", help="Command to evaluate")
    eval_parser.add_argument("words", nargs="*", help="Command words (when --cmd is omitted)")
    eval_parser.add_argument("--json", action="store_true", help="Output JSON")

    approvals_parser = subparsers.add_parser(
        "approvals", help="Manage approval requests for policy-gated commands"
    )
    approvals_sub = approvals_parser.add_subparsers(dest="action", required=True)

    list_parser = approvals_sub.add_parser("list", help="List approval requests")
    list_parser.add_argument(
        "--status",
        default="",
        help="Filter by status (pending|approved|denied|expired|executed)",
    )
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    show_parser = approvals_sub.add_parser("show", help="Show a single approval request")
    show_parser.add_argument("approval_id", help="Approval request id")
    show_parser.add_argument("--json", action="store_true", help="Output JSON")

    request_parser = approvals_sub.add_parser("request", help="Evaluate a command and request approval")
    request_parser.add_argument("--cmd", dest="cmd", required=True, help="Command needing approval")
    request_parser.add_argument("--agent", default="cli", help="Agent identity")
    request_parser.add_argument("--by", dest="requested_by", default="", help="Requester identity")
    request_parser.add_argument("--repo", default="", help="Repository/workspace path")
    request_parser.add_argument("--run-id", dest="run_id", default="", help="Run id to attach")
    request_parser.add_argument("--reason", default="", help="Why the command is needed")
    request_parser.add_argument("--ttl", type=int, default=0, help="Seconds until the request expires")
    request_parser.add_argument("--json", action="store_true", help="Output JSON")

    for name, label in (("approve", "Approve"), ("deny", "Deny")):
        decide_parser = approvals_sub.add_parser(name, help=f"{label} a pending request")
        decide_parser.add_argument("approval_id", help="Approval request id")
        decide_parser.add_argument("--by", dest="approver", default=None, help="Approver identity")
        decide_parser.add_argument("--reason", default="", help=f"{label} rationale")
        decide_parser.add_argument("--json", action="store_true", help="Output JSON")

    executed_parser = approvals_sub.add_parser("executed", help="Mark a request as executed")
    executed_parser.add_argument("approval_id", help="Approval request id")
    executed_parser.add_argument("--run-id", dest="run_id", default="", help="Run id to attach")
    executed_parser.add_argument("--json", action="store_true", help="Output JSON")

    runs_parser = subparsers.add_parser("runs", help="Inspect command run audit trails")
    runs_sub = runs_parser.add_subparsers(dest="action", required=True)
    replay_parser = runs_sub.add_parser("replay", help="Replay audit events for a run id")
    replay_parser.add_argument("--run-id", dest="run_id", default="", help="Run id to replay")
    replay_parser.add_argument("run_id_arg", nargs="?", default="", help=argparse.SUPPRESS)
    replay_parser.add_argument("--json", action="store_true", help="Output JSON")

    serve_parser = subparsers.add_parser("serve", help="Serve the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8787, help="Bind port")

    return parser.parse_args(argv)


def _cmd_policy_eval(governor: Governor, args: argparse.Namespace) -> int:
    command = args.cmd.strip() or " ".join(args.words).strip()
    if not command:
        raise ValidationError("command is required via --cmd")
    result = governor.evaluate(
        command,
        agent=args.agent,
        repo=args.repo or os.getcwd(),
        requested_by="cli",
    )
    if args.json:
        _print_json(result.to_dict())
        return 0
    _render_eval(result)
    return 0


def _render_eval(result: EvalResult) -> None:
    console = _console()
    console.print(f"Decision: {result.decision.value}")
    console.print(f"Class: {result.risk_class.value}")
    if result.reason:
        console.print(f"Reason: {escape(result.reason)}")
    if result.rule_id:
        console.print(f"Rule: {escape(result.rule_id)}")


def _cmd_approvals_list(governor: Governor, args: argparse.Namespace) -> int:
    requests = governor.approvals.list(parse_status(args.status))
    if args.json:
        _print_json([r.to_dict() for r in requests])
        return 0
    console = _console()
    if not requests:
        console.print("No approval requests found.")
        return 0
    table = Table(box=None, pad_edge=False)
    for column in ("ID", "STATUS", "CLASS", "REQUESTED BY", "CREATED", "COMMAND"):
        table.add_column(column, no_wrap=column != "COMMAND")
    for request in requests:
        table.add_row(
            request.id,
            request.status.value,
            request.risk_class.value,
            escape(request.requested_by),
            _fmt_time(request.created_at),
            escape(request.command),
        )
    console.print(table)
    return 0


def _render_request(request: ApprovalRequest) -> None:
    console = _console()
    console.print(f"ID: {request.id}")
    console.print(f"Status: {request.status.value}")
    console.print(f"Class: {request.risk_class.value}")
    console.print(f"Command: {escape(request.command)}")
    console.print(f"Requested by: {escape(request.requested_by)}")
    if request.run_id:
        console.print(f"Run: {escape(request.run_id)}")
    if request.policy_decision is not None:
        console.print(f"Policy decision: {request.policy_decision.value}")
    if request.reason:
        console.print(f"Reason: {escape(request.reason)}")
    if request.decided_by:
        console.print(f"Decided by: {escape(request.decided_by)}")
    if request.decision_rationale:
        console.print(f"Rationale: {escape(request.decision_rationale)}")
    console.print(f"Created: {_fmt_time(request.created_at)}")
    console.print(f"Expires: {_fmt_time(request.expires_at)}")


def _cmd_approvals_show(governor: Governor, args: argparse.Namespace) -> int:
    request = governor.approvals.get(args.approval_id)
    if args.json:
        _print_json(request.to_dict())
        return 0
    _render_request(request)
    return 0


def _cmd_approvals_request(governor: Governor, args: argparse.Namespace) -> int:
    request, _ = governor.request_approval(
        args.cmd,
        agent=args.agent,
        requested_by=args.requested_by or None,
        repo=args.repo or None,
        run_id=args.run_id or None,
        reason=args.reason or None,
        ttl=timedelta(seconds=args.ttl) if args.ttl > 0 else None,
    )
    if args.json:
        _print_json(request.to_dict())
        return 0
    _console().print(
        f"Created {request.id} ({request.status.value}, {request.risk_class.value}, "
        f"run {escape(request.run_id or '-')})"
    )
    return 0


def _cmd_approvals_decide(
    governor: Governor, args: argparse.Namespace, decision: ApprovalStatus
) -> int:
    request = governor.decide(
        args.approval_id,
        decision,
        approver=args.approver if args.approver is not None else _default_approver(),
        rationale=args.reason,
    )
    if args.json:
        _print_json(request.to_dict())
        return 0
    verb = "Approved" if decision is ApprovalStatus.APPROVED else "Denied"
    _console().print(f"{verb} {request.id}")
    return 0


def _cmd_approvals_executed(governor: Governor, args: argparse.Namespace) -> int:
    request = governor.mark_executed(args.approval_id, args.run_id or None)
    if args.json:
        _print_json(request.to_dict())
        return 0
    _console().print(f"Marked {request.id} executed")
    return 0


def _render_events(run_id: str, events: list[Event]) -> None:
    console = _console()
    if not events:
        console.print(f"No events found for run {escape(run_id)}")
        return
    console.print(f"Run {escape(run_id)}")
    for event in events:
        console.print(
            f"  {_fmt_time(event.timestamp)}  {escape(event.event_type):<18} "
            f"state={escape(event.state or '')} decision={escape(event.policy_decision or '')}"
        )
        if event.payload:
            console.print(f"    payload: {escape(json.dumps(event.payload, ensure_ascii=False))}")


def _cmd_runs_replay(governor: Governor, args: argparse.Namespace) -> int:
    run_id = args.run_id.strip() or args.run_id_arg.strip()
    if not run_id:
        raise ValidationError("run id is required via --run-id")
    events = governor.replay(run_id)
    if args.json:
        _print_json({"run_id": run_id, "events": [e.to_dict() for e in events]})
        return 0
    _render_events(run_id, events)
    return 0


def _cmd_serve(config: WorkspaceConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from .api import create_app

    uvicorn.run(create_app(config), host=args.host, port=args.port)
    return 0


def _dispatch(config: WorkspaceConfig, args: argparse.Namespace) -> int:
    if args.command == "serve":
        return _cmd_serve(config, args)
    governor = Governor.from_config(config)
    if args.command == "policy" and args.action == "eval":
        return _cmd_policy_eval(governor, args)
    if args.command == "approvals":
        if args.action == "list":
            return _cmd_approvals_list(governor, args)
        if args.action == "show":
            return _cmd_approvals_show(governor, args)
        if args.action == "request":
            return _cmd_approvals_request(governor, args)
        if args.action == "approve":
            return _cmd_approvals_decide(governor, args, ApprovalStatus.APPROVED)
        if args.action == "deny":
            return _cmd_approvals_decide(governor, args, ApprovalStatus.DENIED)
        if args.action == "executed":
            return _cmd_approvals_executed(governor, args)
    if args.command == "runs" and args.action == "replay":
        return _cmd_runs_replay(governor, args)
    print("unknown command", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    config = WorkspaceConfig.resolve(args.root)
    try:
        return _dispatch(config, args)
    except ValidationError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except CmdGovError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
