"""Typed models for cmdgov."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Decision(str, Enum):
    """Governance outcome for a proposed command."""

    ALLOW = "allow"
    ALLOW_WITH_JUSTIFICATION = "allow_with_justification"
    REQUIRE_APPROVAL = "require_approval"
    DENY = "deny"


class RiskClass(str, Enum):
    """Severity tier assigned to a command, least to most severe."""

    SAFE = "class0_safe"
    CONTROLLED_WRITE = "class1_controlled_write"
    SENSITIVE = "class2_sensitive"
    CRITICAL = "class3_critical"


class ApprovalStatus(str, Enum):
    """Lifecycle status of an approval request."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    EXPIRED = "expired"
    EXECUTED = "executed"


def _require_aware(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValueError("timestamp must be timezone-aware")
    return value


class EvalRequest(BaseModel):
    """A command proposed by an agent, built once per evaluation."""

    model_config = ConfigDict(frozen=True)

    agent: str = ""
    repo: str = ""
    command: str = ""
    args: tuple[str, ...] = ()
    requested_by: str = ""
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _require_aware(value)


class EvalResult(BaseModel):
    """Decision and risk class for one evaluated command."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    decision: Decision
    risk_class: RiskClass = Field(alias="class")
    reason: str = ""
    rule_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ApprovalRequest(BaseModel):
    """A persisted request for human sign-off on one command instance.

    ``created_at`` and ``expires_at`` never change after creation. The decision
    fields are written at most once, by ``ApprovalStore.decide``.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    run_id: str | None = None
    command: str
    command_hash: str
    risk_class: RiskClass = Field(alias="class")
    requested_by: str = "system"
    repo: str | None = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    policy_decision: Decision | None = None
    reason: str | None = None
    created_at: datetime
    expires_at: datetime
    decision_at: datetime | None = None
    decided_by: str | None = None
    decision_rationale: str | None = None

    @field_validator("id", "command")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Event(BaseModel):
    """One append-only run log entry.

    ``run_id`` and ``event_type`` are checked for blankness by the run log,
    ``event_id`` and ``timestamp`` are filled in on append when missing.
    """

    model_config = ConfigDict(frozen=True)

    event_id: str | None = None
    run_id: str
    tenant_id: str | None = None
    agent_id: str | None = None
    state: str | None = None
    policy_decision: str | None = None
    attempt: int | None = None
    event_type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def _timestamp_timezone_aware(cls, value: datetime | None) -> datetime | None:
        return _require_aware(value)

    @field_validator("payload", mode="before")
    @classmethod
    def _payload_not_none(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        raise ValueError("payload must be a dict")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def to_json_line(self) -> str:
        """Render the event as a single JSON line."""
        return self.model_dump_json(exclude_none=True)
