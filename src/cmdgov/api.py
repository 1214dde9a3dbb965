"""HTTP API for policy evaluation, approvals and run audit.

Local-dashboard security:
- requests without an ``Origin`` header (non-browser clients) pass the CORS check
- browser origins are only accepted from localhost, 127.0.0.1 and ::1
- when ``CMDGOV_DASHBOARD_TOKEN`` is set, every ``/v1`` request must present it
  in ``X-Cmdgov-Dashboard-Token`` or as ``Authorization: Bearer <token>``
"""

from __future__ import annotations

import hmac
from datetime import timedelta
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import urlsplit

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .approvals.common import parse_decision, parse_status
from .config import WorkspaceConfig
from .errors import CmdGovError, ConflictError, NotFoundError, ValidationError
from .service import Governor

TOKEN_HEADER = "X-Cmdgov-Dashboard-Token"
_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "::1"})


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class PolicyEvaluateBody(BaseModel):
    agent: str = ""
    repo: str = ""
    command: str = ""
    args: list[str] = []
    requested_by: str = ""


class ApprovalCreateBody(BaseModel):
    run_id: str = ""
    command: str = ""
    requested_by: str = ""
    repo: str = ""
    reason: str = ""
    ttl_seconds: int = 0


class ApprovalDecisionBody(BaseModel):
    decision: str = ""
    approver: str = ""
    rationale: str = ""


# ---------------------------------------------------------------------------
# Security helpers
# ---------------------------------------------------------------------------

def is_local_origin(origin: str) -> bool:
    try:
        host = (urlsplit(origin).hostname or "").lower()
    except ValueError:
        return False
    return host in _LOCAL_HOSTS


def request_has_token(headers: Mapping[str, str], expected: str) -> bool:
    if not expected:
        return True
    token = (headers.get(TOKEN_HEADER) or "").strip()
    if not token:
        auth = (headers.get("Authorization") or "").strip()
        if auth.lower().startswith("bearer "):
            token = auth[len("Bearer "):].strip()
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


def _apply_cors(response: Response, origin: str) -> None:
    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Vary"] = "Origin"
    response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    response.headers["Access-Control-Allow-Headers"] = f"Content-Type, Authorization, {TOKEN_HEADER}"


def _http_error(exc: CmdGovError) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    config: WorkspaceConfig | None = None, *, governor: Governor | None = None
) -> FastAPI:
    config = config or WorkspaceConfig.resolve()
    governor = governor or Governor.from_config(config)
    token = config.dashboard_token

    app = FastAPI(title="cmdgov", version="0.1.0")

    @app.middleware("http")
    async def local_security(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        origin = (request.headers.get("origin") or "").strip()
        if origin and not is_local_origin(origin):
            return JSONResponse({"detail": "origin not allowed"}, status_code=403)
        response: Response
        if request.method == "OPTIONS":
            response = Response(status_code=204)
        elif request.url.path.startswith("/v1/") and not request_has_token(request.headers, token):
            response = JSONResponse({"detail": "unauthorized"}, status_code=401)
        else:
            response = await call_next(request)
        if origin:
            _apply_cors(response, origin)
        return response

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/v1/policy/evaluate")
    def evaluate(body: PolicyEvaluateBody) -> dict[str, Any]:
        if not body.command.strip() and not body.args:
            raise HTTPException(status_code=400, detail="command is required")
        result = governor.evaluate(
            body.command,
            agent=body.agent,
            repo=body.repo or None,
            args=body.args,
            requested_by=body.requested_by,
        )
        return result.to_dict()

    @app.post("/v1/approvals", status_code=201)
    def create_approval(body: ApprovalCreateBody) -> dict[str, Any]:
        if not body.command.strip():
            raise HTTPException(status_code=400, detail="command is required")
        try:
            request, _ = governor.request_approval(
                body.command,
                agent="dashboard",
                requested_by=body.requested_by.strip() or "dashboard",
                repo=body.repo or None,
                run_id=body.run_id or None,
                reason=body.reason or None,
                ttl=timedelta(seconds=body.ttl_seconds) if body.ttl_seconds > 0 else None,
            )
        except CmdGovError as exc:
            raise _http_error(exc) from exc
        return request.to_dict()

    @app.get("/v1/approvals")
    def list_approvals(status: str = "") -> list[dict[str, Any]]:
        try:
            requests = governor.approvals.list(parse_status(status))
        except CmdGovError as exc:
            raise _http_error(exc) from exc
        return [r.to_dict() for r in requests]

    @app.get("/v1/approvals/{approval_id}")
    def get_approval(approval_id: str) -> dict[str, Any]:
        try:
            return governor.approvals.get(approval_id).to_dict()
        except CmdGovError as exc:
            raise _http_error(exc) from exc

    @app.post("/v1/approvals/{approval_id}/decision")
    def decide_approval(approval_id: str, body: ApprovalDecisionBody) -> dict[str, Any]:
        try:
            decision = parse_decision(body.decision)
            updated = governor.decide(
                approval_id,
                decision,
                approver=body.approver.strip() or "dashboard",
                rationale=body.rationale,
            )
        except CmdGovError as exc:
            raise _http_error(exc) from exc
        return updated.to_dict()

    @app.get("/v1/runs/{run_id}/audit")
    def run_audit(run_id: str) -> dict[str, Any]:
        try:
            events = governor.replay(run_id)
        except CmdGovError as exc:
            raise _http_error(exc) from exc
        return {"run_id": run_id.strip(), "events": [e.to_dict() for e in events]}

    return app
