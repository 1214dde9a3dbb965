"""JSON-file approval store with lock-guarded read-modify-write.

Design notes:
- The whole collection lives in one ``{version, requests[]}`` document.
- Every operation takes the store's advisory lock, loads the document and runs
  the lazy-expiry pass before doing anything else. There is no timer.
- Mutations rewrite the document atomically before releasing the lock. A
  mutation that fails (validation, conflict, not found) writes nothing.
- Read-only operations apply expiry in memory only; the next mutation persists it.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

from pydantic import ValidationError as PydanticValidationError

from ..errors import ConflictError, NotFoundError, StorageError
from ..filelock import lock_path_for, locked
from ..storage import DocumentRepository, JSONDocumentFile
from ..types import ApprovalRequest, ApprovalStatus, Decision, RiskClass
from .common import (
    DEFAULT_APPROVER,
    DEFAULT_REQUESTER,
    EXECUTABLE_STATES,
    STORE_VERSION,
    default_value,
    expire_pending,
    hash_command,
    new_request_id,
    parse_decision,
    parse_status,
    resolve_ttl,
    validate_nonempty_str,
)

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_approvals_path(root: Path) -> Path:
    return Path(root) / "daemon" / "approvals.json"


@dataclass
class ApprovalStore:
    """Durable approval requests for one workspace.

    State machine::

        pending -> approved | denied      (decide)
        pending -> expired                (lazy, on access)
        approved | pending -> executed    (mark_executed)
    """

    path: Path
    now: Callable[[], datetime] = field(default=_utcnow, repr=False)
    repository: DocumentRepository | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        if self.repository is None:
            self.repository = JSONDocumentFile(self.path)

    @classmethod
    def for_workspace(cls, root: Path, **kwargs: Any) -> "ApprovalStore":
        return cls(default_approvals_path(root), **kwargs)

    @property
    def lock_path(self) -> Path:
        return lock_path_for(self.path)

    def create(
        self,
        command: str,
        *,
        risk_class: RiskClass,
        requested_by: str | None = None,
        repo: str | None = None,
        run_id: str | None = None,
        policy_decision: Decision | None = None,
        reason: str | None = None,
        ttl: timedelta | None = None,
    ) -> ApprovalRequest:
        """Create a new pending request. TTL defaults to 15 minutes."""
        command = validate_nonempty_str("command", command)
        ttl = resolve_ttl(ttl)
        with self._locked_requests(write=True) as (requests, now):
            request = ApprovalRequest(
                id=new_request_id(),
                run_id=(run_id or "").strip() or None,
                command=command,
                command_hash=hash_command(command),
                risk_class=risk_class,
                requested_by=default_value(requested_by, DEFAULT_REQUESTER),
                repo=(repo or "").strip() or None,
                status=ApprovalStatus.PENDING,
                policy_decision=policy_decision,
                reason=(reason or "").strip() or None,
                created_at=now,
                expires_at=now + ttl,
            )
            requests.append(request)
        _logger.info("approval %s created for %r (%s)", request.id, command, risk_class.value)
        return request

    def get(self, request_id: str) -> ApprovalRequest:
        request_id = validate_nonempty_str("approval id", request_id)
        with self._locked_requests(write=False) as (requests, _):
            return _find(requests, request_id)

    def list(self, status: ApprovalStatus | str | None = None) -> list[ApprovalRequest]:
        """Return requests newest-created first, optionally filtered by status.

        ``status`` may be an ``ApprovalStatus`` or its string value; an unknown
        string raises ``ValidationError``.
        """
        wanted = parse_status(status)
        with self._locked_requests(write=False) as (requests, _):
            selected = [r for r in requests if wanted is None or r.status is wanted]
        return sorted(selected, key=lambda r: r.created_at, reverse=True)

    def decide(
        self,
        request_id: str,
        decision: ApprovalStatus | str,
        *,
        approver: str | None = None,
        rationale: str | None = None,
    ) -> ApprovalRequest:
        """Approve or deny a pending request."""
        status = parse_decision(decision)
        request_id = validate_nonempty_str("approval id", request_id)
        with self._locked_requests(write=True) as (requests, now):
            request = _find(requests, request_id)
            if request.status is not ApprovalStatus.PENDING:
                raise ConflictError(
                    f"approval {request.id!r} is {request.status.value} (expected pending)"
                )
            request.status = status
            request.decided_by = default_value(approver, DEFAULT_APPROVER)
            request.decision_rationale = (rationale or "").strip() or None
            request.decision_at = now
        _logger.info("approval %s %s by %s", request.id, status.value, request.decided_by)
        return request

    def mark_executed(self, request_id: str, run_id: str | None = None) -> ApprovalRequest:
        """Record execution of an approved (or still pending) request.

        NOTE: pending -> executed is allowed, so ``executed`` does not imply the
        request was ever approved.
        """
        request_id = validate_nonempty_str("approval id", request_id)
        with self._locked_requests(write=True) as (requests, _):
            request = _find(requests, request_id)
            if request.status not in EXECUTABLE_STATES:
                raise ConflictError(
                    f"approval {request.id!r} is {request.status.value} (cannot mark executed)"
                )
            if request.status is ApprovalStatus.PENDING:
                _logger.warning("approval %s marked executed without a decision", request.id)
            request.status = ApprovalStatus.EXECUTED
            if run_id and run_id.strip():
                request.run_id = run_id.strip()
        return request

    @contextmanager
    def _locked_requests(
        self, *, write: bool
    ) -> Iterator[tuple[list[ApprovalRequest], datetime]]:
        with locked(self.path):
            requests = self._load()
            now = self.now()
            expired = expire_pending(requests, now)
            if expired:
                _logger.debug("expired %d pending approval(s)", expired)
            yield requests, now
            if write:
                self._save(requests)

    def _load(self) -> list[ApprovalRequest]:
        assert self.repository is not None
        document = self.repository.load()
        if document is None:
            return []
        raw_requests = document.get("requests") or []
        if not isinstance(raw_requests, list):
            raise StorageError(f"parsing {self.path.name}: requests is not a list")
        try:
            return [ApprovalRequest.model_validate(item) for item in raw_requests]
        except PydanticValidationError as exc:
            raise StorageError(f"parsing {self.path.name}: {exc}") from exc

    def _save(self, requests: list[ApprovalRequest]) -> None:
        assert self.repository is not None
        self.repository.rewrite(
            {"version": STORE_VERSION, "requests": [r.to_dict() for r in requests]}
        )


def _find(requests: list[ApprovalRequest], request_id: str) -> ApprovalRequest:
    for request in requests:
        if request.id == request_id:
            return request
    raise NotFoundError(f"approval {request_id!r} not found")
