"""Durable approval requests with a lifecycle state machine."""

from .common import DEFAULT_TTL, expire_pending, hash_command, parse_decision, parse_status
from .store import ApprovalStore, default_approvals_path

__all__ = (
    "ApprovalStore",
    "DEFAULT_TTL",
    "default_approvals_path",
    "expire_pending",
    "hash_command",
    "parse_decision",
    "parse_status",
)
