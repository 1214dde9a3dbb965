"""Exception types for cmdgov."""

from __future__ import annotations


class CmdGovError(Exception):
    """Base exception for all cmdgov errors."""


class ValidationError(CmdGovError, ValueError):
    """Raised when input is rejected before touching any store."""


class NotFoundError(CmdGovError):
    """Raised when an approval request id is unknown."""


class ConflictError(CmdGovError):
    """Raised when a request is not in the state an operation requires.

    Callers must re-fetch the current state before retrying.
    """


class StorageError(CmdGovError):
    """Raised when locking, reading or writing a backing file fails."""


class PolicyError(CmdGovError):
    """Raised when a policy document cannot be loaded."""


def sanitize_exception(exc: Exception) -> str:
    """Return a safe error message without filesystem paths."""
    if isinstance(exc, OSError):
        parts: list[str] = [exc.__class__.__name__]
        if exc.errno is not None:
            parts.append(f"errno={exc.errno}")
        if exc.strerror:
            parts.append(exc.strerror)
        return " ".join(parts).strip()
    return str(exc)
