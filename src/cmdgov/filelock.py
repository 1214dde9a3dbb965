"""Cross-platform advisory file locking for the shared JSON stores.

Provides an exclusive lock over a dedicated lock file (``<store>.lock``) that
works on both Windows (msvcrt) and Unix-like systems (fcntl). Both stores take
the lock around every read and every read-modify-write.

Design notes:
- Locking is advisory: only processes that also take the lock are excluded.
  A writer that bypasses it can corrupt the store.
- Acquisition blocks with no timeout. If a holder crashes, the OS normally
  drops the lock when the process exits.
- LOCK_LENGTH_BYTES: On Windows, msvcrt.locking() requires a byte count.
  We use 1 byte because we're locking for exclusive access, not range locking.
"""

from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Protocol, cast

from .errors import StorageError, sanitize_exception

# Windows msvcrt.locking() requires byte count. We use 1 for exclusive access.
LOCK_LENGTH_BYTES: int = 1


class _LockStrategy(Protocol):
    """Platform-specific file lock strategy."""

    def acquire(self, file_handle: IO[bytes]) -> None:
        """Acquire exclusive lock on file. Blocks until acquired."""
        ...

    def release(self, file_handle: IO[bytes]) -> None:
        """Release exclusive lock on file."""
        ...


class _MsvcrtModule(Protocol):
    LK_LOCK: int
    LK_UNLCK: int

    def locking(self, fd: int, mode: int, nbytes: int) -> None:
        ...


class _FcntlModule(Protocol):
    LOCK_EX: int
    LOCK_UN: int

    def flock(self, fd: int, operation: int) -> None:
        ...


class _WindowsLockStrategy:
    """Windows file lock strategy using msvcrt.locking."""

    def __init__(self) -> None:
        import msvcrt
        self._msvcrt: _MsvcrtModule = cast(_MsvcrtModule, msvcrt)

    def acquire(self, file_handle: IO[bytes]) -> None:
        file_handle.seek(0)
        # LK_LOCK retries for ~10s then raises; loop to keep blocking semantics.
        while True:
            try:
                self._msvcrt.locking(file_handle.fileno(), self._msvcrt.LK_LOCK, LOCK_LENGTH_BYTES)
                return
            except OSError:
                continue

    def release(self, file_handle: IO[bytes]) -> None:
        file_handle.seek(0)
        self._msvcrt.locking(file_handle.fileno(), self._msvcrt.LK_UNLCK, LOCK_LENGTH_BYTES)


class _UnixLockStrategy:
    """Unix file lock strategy using fcntl.flock."""

    def __init__(self) -> None:
        import fcntl
        self._fcntl: _FcntlModule = cast(_FcntlModule, fcntl)

    def acquire(self, file_handle: IO[bytes]) -> None:
        self._fcntl.flock(file_handle.fileno(), self._fcntl.LOCK_EX)

    def release(self, file_handle: IO[bytes]) -> None:
        self._fcntl.flock(file_handle.fileno(), self._fcntl.LOCK_UN)


_LOCK_STRATEGY: _LockStrategy
if os.name == "nt":
    _LOCK_STRATEGY = _WindowsLockStrategy()
else:
    _LOCK_STRATEGY = _UnixLockStrategy()


def lock_path_for(path: Path) -> Path:
    """Return the lock file guarding ``path``."""
    return path.with_name(path.name + ".lock")


class FileLock:
    """Exclusive advisory lock on a named lock file.

    A ``FileLock`` is a releasable handle: ``acquire()`` blocks until the lock
    is held and ``release()`` gives it up. It is also a context manager.
    Each instance opens its own descriptor, so two instances in the same
    process exclude each other just like two processes do.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._handle: IO[bytes] | None = None

    @property
    def locked(self) -> bool:
        return self._handle is not None

    def acquire(self) -> "FileLock":
        if self._handle is not None:
            raise StorageError("lock already held by this handle")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle = self.path.open("a+b")
        except OSError as exc:
            raise StorageError(f"opening lock file: {sanitize_exception(exc)}") from exc
        try:
            _LOCK_STRATEGY.acquire(handle)
        except OSError as exc:
            handle.close()
            raise StorageError(f"acquiring lock: {sanitize_exception(exc)}") from exc
        self._handle = handle
        return self

    def release(self) -> None:
        handle = self._handle
        if handle is None:
            return
        self._handle = None
        try:
            _LOCK_STRATEGY.release(handle)
        finally:
            handle.close()

    def __enter__(self) -> "FileLock":
        return self.acquire()

    def __exit__(self, *exc_info: object) -> None:
        self.release()


@contextmanager
def locked(path: Path) -> Iterator[FileLock]:
    """Hold the exclusive lock guarding ``path`` for the duration of the block.

    Usage:
        with locked(Path("daemon/approvals.json")):
            document = repo.load()
            ...
            repo.rewrite(document)
    """
    lock = FileLock(lock_path_for(Path(path)))
    lock.acquire()
    try:
        yield lock
    finally:
        lock.release()
