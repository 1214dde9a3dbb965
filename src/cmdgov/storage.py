"""Whole-document JSON persistence.

The approval store only needs two things from its backing storage: load the
current document and atomically replace it. ``DocumentRepository`` names that
seam so another backend can sit under the same state machine.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from uuid import uuid4

from .errors import StorageError, sanitize_exception

DEFAULT_FILE_MODE = 0o600


class DocumentRepository(Protocol):
    """Load and atomically rewrite one JSON object document."""

    def load(self) -> dict[str, Any] | None:
        """Return the stored document, or None when nothing is stored yet."""

    def rewrite(self, document: dict[str, Any]) -> None:
        """Replace the stored document in one atomic step."""


def atomic_write_json(path: Path, data: Any, *, mode: int = DEFAULT_FILE_MODE) -> None:
    """Write ``data`` as JSON to a sibling temp file, then rename it over ``path``.

    Readers see either the old document or the new one, never a torn write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{uuid4().hex[:8]}.tmp")
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            json.dump(data, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp, mode)
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


@dataclass(frozen=True)
class JSONDocumentFile:
    """``DocumentRepository`` backed by a single JSON file.

    Callers are responsible for holding the store lock around load/rewrite.
    """

    path: Path
    mode: int = DEFAULT_FILE_MODE

    def load(self) -> dict[str, Any] | None:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"reading {self.path.name}: {sanitize_exception(exc)}") from exc
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError(f"parsing {self.path.name}: {exc}") from exc
        if not isinstance(document, dict):
            raise StorageError(f"parsing {self.path.name}: document is not an object")
        return document

    def rewrite(self, document: dict[str, Any]) -> None:
        try:
            atomic_write_json(self.path, document, mode=self.mode)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(f"writing {self.path.name}: {sanitize_exception(exc)}") from exc
