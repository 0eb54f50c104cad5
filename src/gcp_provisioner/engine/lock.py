"""Local state locking.

The lock is a token file next to the state file, created with ``O_EXCL`` so
exactly one session can hold it. The token records who holds the lock and
since when. A lock older than the configured timeout is reported as stale,
never broken implicitly: only ``force_unlock`` with the matching lock id
removes someone else's lock.
"""

from __future__ import annotations

import contextlib
import logging
import os
import socket
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from gcp_provisioner.engine.errors import LockHeldError, StateLockError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)


class LockInfo(BaseModel):
    id: str
    holder: str
    acquired_at: datetime
    operation: str = ""

    def age_seconds(self, now: datetime | None = None) -> float:
        now = now or datetime.now(UTC)
        return (now - self.acquired_at).total_seconds()

    def held_error(self, timeout: float | None) -> LockHeldError:
        stale = timeout is not None and self.age_seconds() > timeout
        if stale:
            logger.warning(
                "State lock %s held by %s since %s exceeds the lock timeout",
                self.id,
                self.holder,
                self.acquired_at.isoformat(),
            )
        return LockHeldError(
            lock_id=self.id, holder=self.holder, acquired_at=self.acquired_at, stale=stale
        )


def default_holder() -> str:
    user = os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"
    return f"{user}@{socket.gethostname()}:{os.getpid()}"


def new_lock_info(holder: str | None = None, operation: str = "") -> LockInfo:
    return LockInfo(
        id=str(uuid.uuid4()),
        holder=holder or default_holder(),
        acquired_at=datetime.now(UTC),
        operation=operation,
    )


class StateLock:
    """Exclusive lock for a local state file."""

    def __init__(
        self,
        state_path: Path,
        *,
        holder: str | None = None,
        operation: str = "",
        timeout: float | None = None,
    ) -> None:
        self._lock_path = lock_path_for(state_path)
        self._holder = holder
        self._operation = operation
        self._timeout = timeout
        self._info: LockInfo | None = None

    @property
    def info(self) -> LockInfo | None:
        return self._info

    def acquire(self) -> LockInfo:
        self._lock_path.parent.mkdir(parents=True, exist_ok=True)
        info = new_lock_info(self._holder, self._operation)
        try:
            fd = os.open(self._lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise read_lock(self._lock_path).held_error(self._timeout) from None
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(info.model_dump_json())
            f.flush()
            os.fsync(f.fileno())
        self._info = info
        logger.debug("State lock %s acquired by %s", info.id, info.holder)
        return info

    def release(self) -> None:
        if self._info is None:
            return
        current = read_lock(self._lock_path) if self._lock_path.exists() else None
        if current is None:
            self._info = None
            raise StateLockError("State lock disappeared while held")
        if current.id != self._info.id:
            self._info = None
            raise StateLockError(f"State lock was taken over by {current.holder}")
        self._lock_path.unlink()
        logger.debug("State lock %s released", self._info.id)
        self._info = None

    def __enter__(self) -> StateLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()


def lock_path_for(state_path: Path) -> Path:
    return Path(str(state_path) + ".lock")


def read_lock(lock_path: Path) -> LockInfo:
    """Read a lock token; a torn or foreign file is reported with its mtime."""
    try:
        return LockInfo.model_validate_json(lock_path.read_text(encoding="utf-8"))
    except (OSError, ValidationError):
        mtime = datetime.now(UTC)
        with contextlib.suppress(OSError):
            mtime = datetime.fromtimestamp(lock_path.stat().st_mtime, UTC)
        return LockInfo(id="unknown", holder="unknown", acquired_at=mtime)


def force_unlock(state_path: Path, lock_id: str) -> None:
    """Remove a lock held by another session. The lock id must match."""
    lock_path = lock_path_for(state_path)
    if not lock_path.exists():
        raise StateLockError("State is not locked")
    current = read_lock(lock_path)
    if current.id != lock_id:
        raise StateLockError(f"Lock id mismatch: state is locked with id {current.id}")
    lock_path.unlink()
    logger.warning("State lock %s held by %s was force-unlocked", current.id, current.holder)
