"""Append locks shared by a store's blob directory and its logs.

A mutation (blob write plus every related log append) runs inside one
``with lock:`` block. FileLock holds ``flock(LOCK_EX)`` on a sidecar file for
cross-process exclusion and an RLock for threads; nested acquisitions from the
same thread only bump a depth counter, so a cascade delete can call the
single-item write paths without deadlocking.
"""

from __future__ import annotations

import fcntl
import threading
from typing import IO, TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path
    from types import TracebackType


class StoreLock(Protocol):
    def __enter__(self) -> StoreLock: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None: ...


class NullLock:
    """No locking at all: concurrent writers may interleave appends."""

    def __enter__(self) -> NullLock:
        return self

    def __exit__(self, *exc: object) -> None:
        return None


class FileLock:
    """Reentrant exclusive lock backed by flock on ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._mutex = threading.RLock()
        self._depth = 0
        self._fh: IO[str] | None = None

    def __enter__(self) -> FileLock:
        self._mutex.acquire()
        if self._depth == 0:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                fh = self.path.open("a")
                fcntl.flock(fh, fcntl.LOCK_EX)
            except BaseException:
                self._mutex.release()
                raise
            self._fh = fh
        self._depth += 1
        return self

    def __exit__(self, *exc: object) -> None:
        self._depth -= 1
        try:
            if self._depth == 0 and self._fh is not None:
                fcntl.flock(self._fh, fcntl.LOCK_UN)
                self._fh.close()
                self._fh = None
        finally:
            self._mutex.release()


def make_lock(structure_dir: Path, *, enabled: bool = True) -> StoreLock:
    """Lock for one store instance, stored next to its logs."""
    if not enabled:
        return NullLock()
    return FileLock(structure_dir / ".lock")
