"""Exclusive lock around a stack's state file."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import IO, TYPE_CHECKING

from cluster_provisioner.engine.errors import StateLockError

if TYPE_CHECKING:
    from types import TracebackType

try:
    import fcntl  # type: ignore[attr-defined]
except ImportError:  # pragma: no cover
    fcntl = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


class StateLock:
    """Exclusive advisory lock held for the duration of a run.

    With ``wait=False`` a lock already held by another process fails fast
    with ``StateLockError`` instead of blocking.
    """

    def __init__(self, state_path: Path, *, wait: bool = True) -> None:
        self._lock_path = Path(str(state_path) + ".lock")
        self._wait = wait
        self._file: IO[str] | None = None

    @property
    def locked(self) -> bool:
        return self._file is not None

    def __enter__(self) -> StateLock:
        # Keep fd open for lifetime of the lock.
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self._lock_path.open("a+", encoding="utf-8")
        try:
            self._acquire(self._file)
        except Exception as e:
            try:
                self._file.close()
            finally:
                self._file = None
            raise StateLockError(f"Cannot lock {self._lock_path}: {e}") from e
        logger.debug("Acquired state lock %s", self._lock_path)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is None:
            return
        try:
            self._release(self._file)
        finally:
            self._file.close()
            self._file = None
            logger.debug("Released state lock %s", self._lock_path)

    def _acquire(self, f: IO[str]) -> None:
        if fcntl is not None:
            flags = fcntl.LOCK_EX if self._wait else fcntl.LOCK_EX | fcntl.LOCK_NB
            fcntl.flock(f.fileno(), flags)
            return

        if sys.platform == "win32":  # pragma: no cover
            import msvcrt

            mode = msvcrt.LK_LOCK if self._wait else msvcrt.LK_NBLCK
            msvcrt.locking(f.fileno(), mode, 1)
            return

        raise StateLockError("State locking is not supported on this platform")

    def _release(self, f: IO[str]) -> None:
        if fcntl is not None:
            fcntl.flock(f.fileno(), fcntl.LOCK_UN)
            return

        if sys.platform == "win32":  # pragma: no cover
            import msvcrt

            msvcrt.locking(f.fileno(), msvcrt.LK_UNLCK, 1)
