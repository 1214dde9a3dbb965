"""Shared approval store constants, validators and the lazy-expiry pass."""

from __future__ import annotations

import hashlib
from datetime import datetime, timedelta
from typing import Iterable
from uuid import uuid4

from ..errors import ValidationError
from ..types import ApprovalRequest, ApprovalStatus

DEFAULT_TTL: timedelta = timedelta(minutes=15)
ID_PREFIX = "apr-"
STORE_VERSION = 1
DEFAULT_REQUESTER = "system"
DEFAULT_APPROVER = "operator"

DECISION_STATES: frozenset[ApprovalStatus] = frozenset(
    {ApprovalStatus.APPROVED, ApprovalStatus.DENIED}
)
EXECUTABLE_STATES: frozenset[ApprovalStatus] = frozenset(
    {ApprovalStatus.APPROVED, ApprovalStatus.PENDING}
)

_DECISION_ALIASES: dict[str, ApprovalStatus] = {
    "approve": ApprovalStatus.APPROVED,
    "approved": ApprovalStatus.APPROVED,
    "deny": ApprovalStatus.DENIED,
    "denied": ApprovalStatus.DENIED,
}


def validate_nonempty_str(name: str, value: str | None) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value.strip()


def default_value(value: str | None, fallback: str) -> str:
    v = (value or "").strip()
    return v or fallback


def parse_decision(value: str | ApprovalStatus) -> ApprovalStatus:
    """Map ``approve``/``deny`` (or the status names) to a decision status."""
    if isinstance(value, ApprovalStatus):
        if value in DECISION_STATES:
            return value
    else:
        status = _DECISION_ALIASES.get(str(value).strip().lower())
        if status is not None:
            return status
    raise ValidationError(f"invalid decision {value!r} (expected approve or deny)")


def parse_status(value: str | None) -> ApprovalStatus | None:
    """Parse an optional status filter; blank means no filter."""
    text = (value or "").strip().lower()
    if not text:
        return None
    try:
        return ApprovalStatus(text)
    except ValueError:
        allowed = "|".join(s.value for s in ApprovalStatus)
        raise ValidationError(f"invalid status {value!r} (expected {allowed})") from None


def resolve_ttl(ttl: timedelta | None) -> timedelta:
    if ttl is None or ttl <= timedelta(0):
        return DEFAULT_TTL
    return ttl


def hash_command(command: str) -> str:
    """Stable content hash of the trimmed command, for correlation only."""
    return hashlib.sha256(command.strip().encode("utf-8")).hexdigest()


def new_request_id() -> str:
    return ID_PREFIX + uuid4().hex[:10]


def expire_pending(requests: Iterable[ApprovalRequest], now: datetime) -> int:
    """Flip pending requests whose expiry is at or before ``now``. Returns count."""
    expired = 0
    for request in requests:
        if request.status is ApprovalStatus.PENDING and request.expires_at <= now:
            request.status = ApprovalStatus.EXPIRED
            expired += 1
    return expired
