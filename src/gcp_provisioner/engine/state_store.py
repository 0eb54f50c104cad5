"""State stores: durable ``LiveRecord`` storage with exclusive sessions.

A plan/apply cycle runs inside a session. ``begin_session`` takes the
exclusive lock and loads a working copy of the state; every ``commit_step``
writes one record (or tombstone) through to durable storage immediately, so
a later run resumes from exactly the last successful step.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from gcp_provisioner.core.state import State, compute_attributes_hash
from gcp_provisioner.engine.errors import StateConflictError, StateLockError
from gcp_provisioner.engine.lock import LockInfo, StateLock, force_unlock, new_lock_info

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

    from gcp_provisioner.core.state import LiveRecord

logger = logging.getLogger(__name__)

DEFAULT_LOCK_TIMEOUT = 3600.0


class StateStore:
    """Base class for state stores.

    Subclasses implement the four storage primitives (``_read``, ``_write``,
    ``_acquire``, ``_release``); session bookkeeping and record versioning
    live here. Writes are serialized by an internal lock so commits can come
    from executor worker threads.
    """

    def __init__(self, *, lock_timeout: float | None = DEFAULT_LOCK_TIMEOUT) -> None:
        self.lock_timeout = lock_timeout
        self._mutex = threading.RLock()
        self._session: LockInfo | None = None
        self._state: State | None = None

    # ── storage primitives ──────────────────────────────────────────

    def _read(self) -> State:
        raise NotImplementedError

    def _write(self, state: State) -> None:
        raise NotImplementedError

    def _acquire(self, holder: str | None, operation: str) -> LockInfo:
        raise NotImplementedError

    def _release(self) -> None:
        raise NotImplementedError

    def force_unlock(self, lock_id: str) -> None:
        raise NotImplementedError

    # ── public API ──────────────────────────────────────────────────

    def load(self) -> State:
        """Return a copy of the current state (the session's working copy if open)."""
        with self._mutex:
            if self._state is not None:
                return self._state.model_copy(deep=True)
            return self._read()

    @property
    def in_session(self) -> bool:
        return self._session is not None

    @property
    def lock_info(self) -> LockInfo | None:
        return self._session

    def begin_session(self, *, holder: str | None = None, operation: str = "") -> LockInfo:
        """Take the exclusive lock. Raises ``LockHeldError`` if another session holds it."""
        with self._mutex:
            if self._session is not None:
                raise StateLockError("A session is already open on this store")
            info = self._acquire(holder, operation)
            try:
                self._state = self._read()
            except Exception:
                self._release()
                raise
            self._session = info
            logger.debug(
                "Session %s started: serial=%d, %d records",
                info.id,
                self._state.serial,
                len(self._state.records),
            )
            return info

    def end_session(self) -> None:
        with self._mutex:
            if self._session is None:
                return
            try:
                self._release()
            finally:
                logger.debug("Session %s ended", self._session.id)
                self._session = None
                self._state = None

    @contextlib.contextmanager
    def session(self, *, holder: str | None = None, operation: str = "") -> Iterator[State]:
        self.begin_session(holder=holder, operation=operation)
        try:
            yield self.load()
        finally:
            self.end_session()

    def commit_step(self, address: str, record: LiveRecord | None) -> LiveRecord | None:
        """Persist one record, or a tombstone when *record* is ``None``.

        The record version continues from the stored record. Returns the
        committed record.
        """
        with self._mutex:
            state = self._working_state().model_copy(deep=True)
            prior = state.records.get(address)
            if record is None:
                state.records.pop(address, None)
                committed = None
            else:
                committed = record.model_copy(deep=True)
                if prior is not None:
                    committed.version = max(prior.version + 1, record.version)
                committed.attributes_hash = compute_attributes_hash(committed.attributes)
                committed.updated_at = datetime.now(UTC)
                state.records[address] = committed
            self._persist(state)
            logger.debug(
                "Committed %s (%s) at serial %d",
                address,
                "tombstone" if committed is None else f"version {committed.version}",
                state.serial,
            )
            return committed.model_copy(deep=True) if committed is not None else None

    def commit_deposed(self, address: str, record: LiveRecord | None) -> None:
        """Track (or clear) the previous object of a create-first replacement."""
        with self._mutex:
            state = self._working_state().model_copy(deep=True)
            if record is None:
                state.deposed.pop(address, None)
            else:
                state.deposed[address] = record.model_copy(deep=True)
            self._persist(state)

    def set_outputs(self, outputs: dict[str, Any]) -> None:
        with self._mutex:
            state = self._working_state().model_copy(deep=True)
            if state.outputs == outputs:
                return
            state.outputs = dict(outputs)
            self._persist(state)

    def adopt_lineage(self, lineage: str) -> None:
        """Give a never-persisted state the lineage of a saved plan."""
        with self._mutex:
            state = self._working_state()
            if state.serial == 0 and not state.records and not state.deposed:
                state.lineage = lineage

    def replace(self, state: State) -> None:
        """Persist a whole state (e.g. after a refresh) within the session."""
        with self._mutex:
            current = self._working_state()
            if state.lineage != current.lineage:
                raise StateConflictError("Cannot replace state with a different lineage")
            new_state = state.model_copy(deep=True)
            new_state.serial = current.serial
            self._persist(new_state)

    # ── internals ───────────────────────────────────────────────────

    def _working_state(self) -> State:
        if self._session is None or self._state is None:
            raise StateLockError("No open session; call begin_session() first")
        return self._state

    def _persist(self, state: State) -> None:
        """Write *state* as the next serial and make it the working copy.

        Callers mutate a copy of the working state; if the write fails the
        working copy is left as it was.
        """
        state.serial += 1
        self._write(state)
        self._state = state


class FileStateStore(StateStore):
    """State persisted as a JSON file, locked with a token file next to it."""

    def __init__(
        self, path: Path, *, lock_timeout: float | None = DEFAULT_LOCK_TIMEOUT
    ) -> None:
        super().__init__(lock_timeout=lock_timeout)
        self.path = path
        self._lock: StateLock | None = None
        self._persisted_serial: int | None = None

    def _read(self) -> State:
        state = State.load_or_create(self.path)
        self._persisted_serial = state.serial if self.path.exists() else None
        return state

    def _write(self, state: State) -> None:
        # Optimistic check: nobody may have written behind our lock.
        if self.path.exists():
            on_disk = State.load(self.path)
            if self._persisted_serial is None or on_disk.serial != self._persisted_serial:
                raise StateConflictError(
                    f"State file {self.path} changed outside this session "
                    f"(serial {on_disk.serial}, expected {self._persisted_serial})"
                )
        state.save(self.path)
        self._persisted_serial = state.serial

    def _acquire(self, holder: str | None, operation: str) -> LockInfo:
        lock = StateLock(self.path, holder=holder, operation=operation, timeout=self.lock_timeout)
        info = lock.acquire()
        self._lock = lock
        return info

    def _release(self) -> None:
        if self._lock is None:
            return
        try:
            self._lock.release()
        finally:
            self._lock = None

    def force_unlock(self, lock_id: str) -> None:
        force_unlock(self.path, lock_id)


class MemoryStateStore(StateStore):
    """In-process state, for tests and independent fixtures."""

    def __init__(
        self, state: State | None = None, *, lock_timeout: float | None = DEFAULT_LOCK_TIMEOUT
    ) -> None:
        super().__init__(lock_timeout=lock_timeout)
        self._data = (state or State()).model_copy(deep=True)
        self._held: LockInfo | None = None
        self.writes = 0

    def _read(self) -> State:
        return self._data.model_copy(deep=True)

    def _write(self, state: State) -> None:
        if state.serial != self._data.serial + 1:
            raise StateConflictError(
                f"State changed outside this session (serial {self._data.serial})"
            )
        self._data = state.model_copy(deep=True)
        self.writes += 1

    def _acquire(self, holder: str | None, operation: str) -> LockInfo:
        if self._held is not None:
            raise self._held.held_error(self.lock_timeout)
        self._held = new_lock_info(holder, operation)
        return self._held

    def _release(self) -> None:
        self._held = None

    def hold_lock(self, info: LockInfo) -> None:
        """Mark the store as locked by another session."""
        self._held = info

    def force_unlock(self, lock_id: str) -> None:
        if self._held is None:
            raise StateLockError("State is not locked")
        if self._held.id != lock_id:
            raise StateLockError(f"Lock id mismatch: state is locked with id {self._held.id}")
        logger.warning("State lock %s held by %s was force-unlocked", lock_id, self._held.holder)
        self._held = None
