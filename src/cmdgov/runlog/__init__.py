"""Append-only audit log of command runs."""

from .jsonl import RunLog, default_runlog_path, new_event_id, new_run_id

__all__ = (
    "RunLog",
    "default_runlog_path",
    "new_event_id",
    "new_run_id",
)
