"""Append-only JSONL run log with locking and payload redaction."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, TextIO
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from ..errors import StorageError, ValidationError, sanitize_exception
from ..filelock import lock_path_for, locked
from ..redaction import redact_payload
from ..types import Event

_logger = logging.getLogger(__name__)

LOG_FILE_MODE = 0o600


def default_runlog_path(root: Path) -> Path:
    return Path(root) / "daemon" / "command-events.jsonl"


def new_run_id() -> str:
    """Return a unique, time-prefixed run identifier."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dt%H%M%S")
    return f"run-{stamp}-{uuid4().hex[:12]}"


def new_event_id() -> str:
    return "evt-" + uuid4().hex[:10]


@dataclass(frozen=True)
class RunLog:
    """Lock-guarded append-only event stream shared by all runs of a workspace.

    Lines are never rewritten or reordered. Readers tolerate a torn final line
    left by a writer that crashed mid-append.
    """

    path: Path

    @classmethod
    def for_workspace(cls, root: Path) -> "RunLog":
        return cls(default_runlog_path(root))

    @property
    def lock_path(self) -> Path:
        return lock_path_for(self.path)

    def append(self, event: Event) -> Event:
        """Validate, complete and redact ``event``, then append it as one line."""
        if not event.run_id.strip():
            raise ValidationError("run_id is required")
        if not event.event_type.strip():
            raise ValidationError("event_type is required")
        stored = event.model_copy(
            update={
                "run_id": event.run_id.strip(),
                "event_id": event.event_id or new_event_id(),
                "timestamp": event.timestamp or datetime.now(timezone.utc),
                "payload": redact_payload(event.payload),
            }
        )
        line = stored.to_json_line()
        try:
            with locked(self.path):
                fd = os.open(self.path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, LOG_FILE_MODE)
                with os.fdopen(fd, "a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
                    handle.flush()
                    os.fsync(handle.fileno())
        except OSError as exc:
            raise StorageError(f"appending run log: {sanitize_exception(exc)}") from exc
        return stored

    def read_run(self, run_id: str) -> list[Event]:
        """Return the events of one run, oldest first."""
        if not isinstance(run_id, str) or not run_id.strip():
            raise ValidationError("run id is required")
        run_id = run_id.strip()
        if not self.path.exists():
            return []
        try:
            with locked(self.path):
                with self.path.open("r", encoding="utf-8", errors="replace") as handle:
                    events = [e for e in _iter_events(handle) if e.run_id == run_id]
        except OSError as exc:
            raise StorageError(f"reading run log: {sanitize_exception(exc)}") from exc

        # Concurrent writers may append slightly out of time order.
        events.sort(key=lambda e: e.timestamp or datetime.min.replace(tzinfo=timezone.utc))
        return [e.model_copy(update={"payload": redact_payload(e.payload)}) for e in events]


def _iter_events(handle: TextIO) -> Iterator[Event]:
    for line_number, raw_line in enumerate(handle, start=1):
        line = raw_line.strip()
        if not line:
            continue
        try:
            yield Event.model_validate_json(line)
        except PydanticValidationError:
            _logger.debug("skipping unparseable run log line %d", line_number)
