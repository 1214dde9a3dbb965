"""Policy evaluation: risk classification plus an optional rule document.

``Evaluator.evaluate`` never raises. Anything wrong with the rule document
degrades towards the classifier's own decision:

- a document that cannot be loaded yields a zero-rule evaluator
- a rule with a malformed regex never matches
- disabled or expired rules are skipped

``default_decision`` only applies to documents that carry at least one rule.
"""

from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Pattern, Sequence
from urllib.parse import urlsplit

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from .classify import classify_command, decision_for_class, normalize_command
from .errors import PolicyError
from .types import Decision, EvalRequest, EvalResult, RiskClass

_logger = logging.getLogger(__name__)


class RuleMatch(BaseModel):
    """Conjunctive match predicate. Empty lists impose no constraint."""

    agents: list[str] = Field(default_factory=list)
    repos: list[str] = Field(default_factory=list)
    command_prefixes: list[str] = Field(default_factory=list)
    command_regex: str = ""
    classes: list[RiskClass] = Field(default_factory=list)


class Rule(BaseModel):
    id: str
    decision: Decision
    reason: str = ""
    match: RuleMatch = Field(default_factory=RuleMatch)
    enabled: bool | None = None
    until: datetime | None = None

    @field_validator("until")
    @classmethod
    def _until_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_active(self, now: datetime) -> bool:
        if self.enabled is False:
            return False
        if self.until is not None and now > self.until:
            return False
        return True


class PolicyDocument(BaseModel):
    version: int = 1
    default_decision: Decision | None = None
    rules: list[Rule] = Field(default_factory=list)

    @field_validator("version")
    @classmethod
    def _version_default(cls, value: int) -> int:
        return value or 1

    @field_validator("default_decision", mode="before")
    @classmethod
    def _blank_default_decision(cls, value: object) -> object:
        if value == "":
            return None
        return value


def default_policy_path(root: Path) -> Path:
    """Return the policy document location for a workspace root."""
    return Path(root) / "mayor" / "policy.json"


def load_document(path: Path) -> PolicyDocument:
    """Load and validate a policy document, raising ``PolicyError`` on any failure."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise PolicyError(f"reading policy document: {exc.strerror or exc}") from exc
    try:
        return PolicyDocument.model_validate(json.loads(raw))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        raise PolicyError(f"parsing policy document: {exc}") from exc


def load_evaluator(path: Path) -> "Evaluator":
    """Return an evaluator for ``path``, or a zero-rule one if it cannot be loaded."""
    try:
        document = load_document(path)
    except PolicyError as exc:
        if isinstance(exc.__cause__, FileNotFoundError):
            _logger.debug("no policy document at %s; using defaults", path)
        else:
            _logger.warning("ignoring policy document %s: %s", path, exc)
        return Evaluator()
    return Evaluator(document)


@lru_cache(maxsize=256)
def _compile(pattern: str) -> Pattern[str] | None:
    try:
        return re.compile(pattern)
    except re.error as exc:
        _logger.warning("policy rule regex %r is invalid: %s", pattern, exc)
        return None


def matches_pattern_list(patterns: Sequence[str], value: str) -> bool:
    """Match ``value`` against glob-style patterns: exact, ``*``, ``prefix*``, ``*.suffix``."""
    v = value.strip().lower()
    if not v:
        return False
    for raw in patterns:
        p = raw.strip().lower()
        if not p:
            continue
        if p == "*" or p == v:
            return True
        if p.startswith("*.") and v.endswith(p[1:]):
            return True
        if p.endswith("*") and v.startswith(p[:-1]):
            return True
    return False


def rule_matches(match: RuleMatch, request: EvalRequest, risk_class: RiskClass) -> bool:
    if match.classes and risk_class not in match.classes:
        return False
    if match.agents and not matches_pattern_list(match.agents, request.agent):
        return False
    if match.repos and not matches_pattern_list(match.repos, request.repo):
        return False

    command = normalize_command(request.command, request.args)
    if match.command_prefixes:
        prefixes = [p.strip().lower() for p in match.command_prefixes]
        if not any(p and command.startswith(p) for p in prefixes):
            return False

    if match.command_regex:
        compiled = _compile(match.command_regex)
        if compiled is None or compiled.search(command) is None:
            return False

    return True


class Evaluator:
    """Evaluates commands against default classification plus document rules."""

    def __init__(self, document: PolicyDocument | None = None) -> None:
        self.document = document if document is not None else PolicyDocument()

    @classmethod
    def from_path(cls, path: Path) -> "Evaluator":
        return load_evaluator(path)

    def evaluate(self, request: EvalRequest) -> EvalResult:
        risk_class, reason = classify_command(request.command, request.args)
        result = EvalResult(
            decision=decision_for_class(risk_class),
            risk_class=risk_class,
            reason=reason,
        )
        # A document without rules never overrides the base class mapping.
        if not self.document.rules:
            return result
        now = request.timestamp or datetime.now(timezone.utc)
        for rule in self.document.rules:
            if not rule.is_active(now):
                continue
            if not rule_matches(rule.match, request, risk_class):
                continue
            _logger.debug("policy rule %s matched %r", rule.id, request.command)
            return result.model_copy(
                update={
                    "decision": rule.decision,
                    "reason": rule.reason or result.reason,
                    "rule_id": rule.id,
                }
            )

        if self.document.default_decision is not None:
            return result.model_copy(update={"decision": self.document.default_decision})
        return result


def normalize_repo(raw: str | None) -> str:
    """Coerce a repository path or URL into a comparable identifier."""
    s = (raw or "").strip()
    if not s:
        return ""
    parts = urlsplit(s)
    if parts.netloc:
        return (parts.netloc + parts.path).rstrip("/").lower()
    return os.path.normpath(s).lower()
