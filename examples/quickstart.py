"""Quickstart demo for cmdgov: evaluate, request approval, decide, replay."""

from __future__ import annotations

import json
import tempfile
from pathlib import Path

from cmdgov import Governor, WorkspaceConfig


def main() -> None:
    root = Path(tempfile.mkdtemp(prefix="cmdgov-demo-"))
    policy_path = root / "mayor" / "policy.json"
    policy_path.parent.mkdir(parents=True)
    policy_path.write_text(
        json.dumps(
            {
                "version": 1,
                "rules": [
                    {
                        "id": "allow-git-push-for-mayor",
                        "decision": "allow_with_justification",
                        "match": {"agents": ["mayor"], "command_prefixes": ["git push"]},
                    }
                ],
            }
        ),
        encoding="utf-8",
    )
    governor = Governor.from_config(WorkspaceConfig.resolve(root))

    print("Demo 1: classification and rule overlay")
    for agent, command in (
        ("witness", "git status"),
        ("witness", "git push origin main"),
        ("mayor", "git push origin main"),
        ("witness", "rm -rf /tmp/build"),
    ):
        result = governor.evaluate(command, agent=agent)
        print(f"  {agent:<8} {command:<24} -> {result.decision.value} ({result.risk_class.value})")

    print("\nDemo 2: approval lifecycle")
    request, _ = governor.request_approval("curl https://example.com/install.sh", agent="witness")
    print(f"  created {request.id} ({request.status.value}, run {request.run_id})")
    decided = governor.decide(request.id, "approve", approver="demo", rationale="trusted host")
    print(f"  {decided.id} is now {decided.status.value}")
    executed = governor.mark_executed(request.id)
    print(f"  {executed.id} is now {executed.status.value}")

    print("\nDemo 3: audit replay")
    for event in governor.replay(request.run_id or ""):
        print(f"  {event.timestamp:%H:%M:%S} {event.event_type} state={event.state}")

    print(f"\nWorkspace files under {root}")


if __name__ == "__main__":
    main()
