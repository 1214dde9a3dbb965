"""Risk classification of agent commands.

Tiers are checked from most to least severe, so a command matching both a
critical pattern and a read-only prefix is always critical. Within a tier,
list order only affects which pattern is reported, never the class.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Pattern, Sequence

from .types import Decision, RiskClass

# Agents reach the platform through its wrapper CLI; both "gt status" and the
# bare "status" must classify the same way.
WRAPPER_PREFIX = "gt "

EMPTY_COMMAND_REASON = "empty command is denied"
DEFAULT_REASON = "default controlled-write policy (allow with audit)"


@dataclass(frozen=True)
class Tier:
    risk_class: RiskClass
    reason: str
    prefixes: tuple[str, ...]
    patterns: tuple[Pattern[str], ...] = ()

    def matches(self, command: str) -> bool:
        if command.startswith(self.prefixes):
            return True
        return any(pattern.search(command) for pattern in self.patterns)


CRITICAL_TIER = Tier(
    risk_class=RiskClass.CRITICAL,
    reason="critical/destructive command pattern",
    prefixes=(
        "chown ",
        "dd ",
        "git clean -fd",
        "git reset --hard",
        "mkfs ",
        "reboot",
        "rm ",
        "shutdown",
        "sudo ",
    ),
    patterns=(
        re.compile(r"\brm\s+-rf\b"),
        re.compile(r"\bchmod\s+777\b"),
        re.compile(r"\b(?:cat|less|more)\s+~?/.+/(?:\.ssh|\.aws|\.gnupg)/"),
        re.compile(r"\bexport\s+[^=\s]*(?:token|secret|password|key)[^=\s]*="),
    ),
)

SENSITIVE_TIER = Tier(
    risk_class=RiskClass.SENSITIVE,
    reason="sensitive command requires approval",
    prefixes=(
        "apt ",
        "brew ",
        "curl ",
        "deacon start",
        "docker push",
        "git fetch",
        "git pull",
        "git push",
        "go get ",
        "gt deacon start",
        "gt refinery start",
        "gt rig boot",
        "gt rig start",
        "gt witness start",
        "kubectl apply",
        "launchctl ",
        "npm install",
        "pip install",
        "pnpm install",
        "refinery start",
        "rig boot",
        "rig start",
        "service ",
        "systemctl ",
        "wget ",
        "witness start",
        "yarn add ",
    ),
    patterns=(
        re.compile(r"(?<![\w-])--(?:token|password|secret)\b"),
        re.compile(r"\b(?:npm|pnpm|yarn)\s+add\b"),
    ),
)

SAFE_TIER = Tier(
    risk_class=RiskClass.SAFE,
    reason="read-only command",
    prefixes=(
        "activity",
        "audit",
        "cat ",
        "date",
        "doctor",
        "echo ",
        "find ",
        "git branch",
        "git diff",
        "git log",
        "git show",
        "git status",
        "gt activity",
        "gt audit",
        "gt doctor",
        "gt info",
        "gt log",
        "gt status",
        "head ",
        "info",
        "log",
        "ls",
        "ps ",
        "pwd",
        "rg ",
        "status",
        "tail ",
        "wc ",
        "whoami",
    ),
)

CONTROLLED_WRITE_TIER = Tier(
    risk_class=RiskClass.CONTROLLED_WRITE,
    reason="controlled repo-local write operation",
    prefixes=(
        "git add",
        "git checkout ",
        "git commit",
        "git restore ",
        "hook ",
        "mail ",
        "notify ",
        "gt hook ",
        "gt mail ",
        "gt notify ",
        "gt rig ",
        "gt sling",
        "gt unsling",
        "make ",
        "npm test",
        "node --test",
        "rig ",
        "sling",
        "unsling",
    ),
)

# Severity order. Keep critical first.
TIERS: tuple[Tier, ...] = (CRITICAL_TIER, SENSITIVE_TIER, SAFE_TIER, CONTROLLED_WRITE_TIER)

_DECISION_FOR_CLASS: dict[RiskClass, Decision] = {
    RiskClass.SAFE: Decision.ALLOW,
    RiskClass.CONTROLLED_WRITE: Decision.ALLOW_WITH_JUSTIFICATION,
    RiskClass.SENSITIVE: Decision.REQUIRE_APPROVAL,
    RiskClass.CRITICAL: Decision.DENY,
}


def normalize_command(command: str | None, args: Sequence[str] | None = None) -> str:
    """Return the lowercased command text, falling back to joined args."""
    text = (command or "").strip()
    if not text and args:
        text = " ".join(args).strip()
    return text.lower()


def strip_wrapper(normalized: str) -> str:
    if normalized.startswith(WRAPPER_PREFIX):
        return normalized[len(WRAPPER_PREFIX):].strip()
    return normalized


def classify_command(
    command: str | None, args: Sequence[str] | None = None
) -> tuple[RiskClass, str]:
    """Classify a command into a risk class and a human-readable reason."""
    normalized = normalize_command(command, args)
    if not normalized:
        return RiskClass.CRITICAL, EMPTY_COMMAND_REASON
    candidates = (normalized, strip_wrapper(normalized))
    for tier in TIERS:
        if any(tier.matches(candidate) for candidate in candidates):
            return tier.risk_class, tier.reason
    return RiskClass.CONTROLLED_WRITE, DEFAULT_REASON


def decision_for_class(risk_class: RiskClass) -> Decision:
    """Base decision for a risk class, before any rule overlay."""
    return _DECISION_FOR_CLASS[risk_class]
