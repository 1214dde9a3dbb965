from __future__ import annotations

import pytest

from cmdgov.classify import (
    DEFAULT_REASON,
    EMPTY_COMMAND_REASON,
    TIERS,
    classify_command,
    decision_for_class,
    normalize_command,
)
from cmdgov.types import Decision, RiskClass


@pytest.mark.parametrize(
    ("command", "expected"),
    [
        ("gt status --json", RiskClass.SAFE),
        ("git log --oneline", RiskClass.SAFE),
        ("git commit -m test", RiskClass.CONTROLLED_WRITE),
        ("git push origin main", RiskClass.SENSITIVE),
        ("rig boot testrig", RiskClass.SENSITIVE),
        ("gt rig boot testrig", RiskClass.SENSITIVE),
        ("rm -rf /tmp/foo", RiskClass.CRITICAL),
        ("sudo apt update", RiskClass.CRITICAL),
        ("go test ./...", RiskClass.CONTROLLED_WRITE),
    ],
)
def test_classify_command(command: str, expected: RiskClass) -> None:
    got, _ = classify_command(command)
    assert got is expected


def test_empty_command_is_critical() -> None:
    assert classify_command("   ") == (RiskClass.CRITICAL, EMPTY_COMMAND_REASON)
    assert classify_command("", []) == (RiskClass.CRITICAL, EMPTY_COMMAND_REASON)


def test_args_used_when_command_blank() -> None:
    got, _ = classify_command("", ["git", "push", "origin", "main"])
    assert got is RiskClass.SENSITIVE


def test_normalize_lowercases_and_trims() -> None:
    assert normalize_command("  Git Status  ") == "git status"
    assert normalize_command(None, ["LS", "-la"]) == "ls -la"


def test_critical_beats_safe_prefix() -> None:
    # "cat " is a read-only prefix, but reading ~/.ssh is critical.
    got, reason = classify_command("cat ~/home/.ssh/id_rsa")
    assert got is RiskClass.CRITICAL
    assert reason == "critical/destructive command pattern"


def test_critical_pattern_inside_safe_command() -> None:
    got, _ = classify_command("echo hi && rm -rf build")
    assert got is RiskClass.CRITICAL


@pytest.mark.parametrize(
    "command",
    [
        "chmod 777 /etc/shadow",
        "export GITHUB_TOKEN=abc",
        "git reset --hard HEAD~3",
        "gt git clean -fdx",
    ],
)
def test_critical_patterns(command: str) -> None:
    got, _ = classify_command(command)
    assert got is RiskClass.CRITICAL


@pytest.mark.parametrize(
    "command",
    [
        "deploy --token abc123",
        "npm add left-pad",
        "pnpm add zod",
        "pip install requests",
    ],
)
def test_sensitive_patterns(command: str) -> None:
    got, _ = classify_command(command)
    assert got is RiskClass.SENSITIVE


def test_unmatched_command_uses_default_reason() -> None:
    assert classify_command("cargo build") == (RiskClass.CONTROLLED_WRITE, DEFAULT_REASON)


def test_classification_is_deterministic() -> None:
    results = {classify_command("gt sling task-1") for _ in range(5)}
    assert len(results) == 1


def test_tiers_are_in_severity_order() -> None:
    assert [tier.risk_class for tier in TIERS] == [
        RiskClass.CRITICAL,
        RiskClass.SENSITIVE,
        RiskClass.SAFE,
        RiskClass.CONTROLLED_WRITE,
    ]


def test_decision_for_every_class() -> None:
    assert {rc: decision_for_class(rc) for rc in RiskClass} == {
        RiskClass.SAFE: Decision.ALLOW,
        RiskClass.CONTROLLED_WRITE: Decision.ALLOW_WITH_JUSTIFICATION,
        RiskClass.SENSITIVE: Decision.REQUIRE_APPROVAL,
        RiskClass.CRITICAL: Decision.DENY,
    }
