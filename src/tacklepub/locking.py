"""Cooperative cross-process lock guarding store mutations.

The lock is a sentinel file created with ``O_CREAT | O_EXCL``: the
exclusive create *is* the mutex.  The file records who holds it::

    {"lockId": "1739...-k3j9x", "processId": "pid-4242", "createdAt": "..."}

Release re-reads the file and deletes it only when the stored lock id
is still the holder's own.  A lock older than the stale threshold is
presumed abandoned by a crashed holder and forcibly removed, loudly.

The lock is not reentrant: a holder that calls ``acquire()`` again
before releasing waits on itself until the timeout.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import secrets
import time
from collections.abc import Callable, Iterator
from datetime import UTC, datetime
from typing import TypeVar

import pydantic

from tacklepub.config import StoreConfig
from tacklepub.content.models import CamelModel
from tacklepub.errors import LockTimeout, OwnershipVerificationFailed
from tacklepub.metrics import MetricsRecorder

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LockRecord(CamelModel):
    """Contents of the lock file."""

    lock_id: str
    process_id: str
    created_at: str

    def age_seconds(self, now: float) -> float:
        created = datetime.fromisoformat(self.created_at.replace("Z", "+00:00"))
        return now - created.timestamp()


def _process_id() -> str:
    return f"pid-{os.getpid()}"


def _new_lock_id(now: float) -> str:
    return f"{int(now * 1000)}-{secrets.token_hex(6)}"


class LockHandle:
    """Proof of ownership returned by ``IndexLock.acquire``."""

    def __init__(self, lock: IndexLock, record: LockRecord) -> None:
        self._lock = lock
        self.record = record

    @property
    def lock_id(self) -> str:
        return self.record.lock_id

    def release(self) -> None:
        self._lock.release(self)


class IndexLock:
    """Named mutual-exclusion token for content index (and ledger) mutation."""

    def __init__(
        self,
        config: StoreConfig,
        metrics: MetricsRecorder | None = None,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.path = config.lock_path
        self.metrics = metrics
        self._clock = clock
        self._sleep = sleep

    # ── Private helpers ──────────────────────────────────────────

    def _try_create(self, record: LockRecord) -> bool:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(record.model_dump_json(indent=2, by_alias=True))
            f.flush()
            os.fsync(f.fileno())
        return True

    def _mtime_age(self) -> float | None:
        try:
            return self._clock() - self.path.stat().st_mtime
        except FileNotFoundError:
            return None

    def _cleanup_stale(self, existing: LockRecord | None) -> bool:
        """Remove the current lock file if it is older than the threshold.

        Returns True when a stale lock was removed and acquisition
        should be retried immediately.
        """
        threshold = self.config.stale_threshold
        now = self._clock()

        if existing is None:
            # Unparseable lock file; fall back to its mtime.
            age = self._mtime_age()
            if age is None:
                return True
            if age <= threshold:
                return False
            logger.warning("Removing unparseable lock file %s (%ds old)", self.path, age)
            with contextlib.suppress(FileNotFoundError):
                self.path.unlink()
            return True

        try:
            age = existing.age_seconds(now)
        except ValueError:
            age = self._mtime_age() or 0.0
        if age <= threshold:
            return False

        # Narrow the window in which another process reclaimed the lock
        # between our read and our unlink.
        current = self.read()
        if current is None or current.lock_id != existing.lock_id:
            return True

        logger.error(
            "STALE LOCK DETECTED: removing lock %s held by %s "
            "(created %s, age %ds, threshold %ds)",
            existing.lock_id,
            existing.process_id,
            existing.created_at,
            age,
            threshold,
        )
        if self.metrics is not None:
            self.metrics.record_lock_cleanup(
                lock_id=existing.lock_id,
                process_id=existing.process_id,
                created_at=existing.created_at,
                age_ms=age * 1000,
            )
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()
        return True

    # ── Public API ───────────────────────────────────────────────

    def read(self) -> LockRecord | None:
        """Return the current lock record, or None if absent/unparseable."""
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return LockRecord.model_validate(json.loads(raw))
        except (json.JSONDecodeError, pydantic.ValidationError):
            return None

    def is_locked(self) -> bool:
        return self.path.exists()

    def acquire(self) -> LockHandle:
        """Block until the lock is ours, or raise ``LockTimeout``."""
        start = self._clock()
        record = LockRecord(
            lock_id=_new_lock_id(start),
            process_id=_process_id(),
            created_at=datetime.fromtimestamp(start, tz=UTC).isoformat(),
        )

        while True:
            if self._try_create(record):
                logger.debug("Lock acquired (%s)", record.lock_id)
                return LockHandle(self, record)

            if self._cleanup_stale(self.read()):
                continue

            if self._clock() - start >= self.config.lock_timeout:
                raise LockTimeout(self.config.lock_timeout)
            self._sleep(self.config.lock_poll_interval)

    def release(self, handle: LockHandle) -> None:
        """Delete the lock file if, and only if, ``handle`` still owns it.

        Raises:
            OwnershipVerificationFailed: the lock file now belongs to
                someone else (typically after a stale-lock reclaim).
        """
        current = self.read()
        if current is None:
            logger.warning(
                "Lock file missing or invalid during release of %s "
                "(may have been reclaimed as stale)",
                handle.lock_id,
            )
            return

        if current.lock_id != handle.lock_id:
            logger.error(
                "OWNERSHIP VERIFICATION FAILED: expected lock %s, found %s owned by %s",
                handle.lock_id,
                current.lock_id,
                current.process_id,
            )
            raise OwnershipVerificationFailed(
                handle.lock_id, current.lock_id, current.process_id
            )

        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()
        logger.debug("Lock released (%s)", handle.lock_id)

    @contextlib.contextmanager
    def hold(self) -> Iterator[LockHandle]:
        """Acquire for the duration of a ``with`` block; release on every exit path.

        If the block raises and the lock turns out to have changed hands,
        the block's exception propagates and the lost ownership is logged.
        """
        handle = self.acquire()
        try:
            yield handle
        except BaseException:
            try:
                self.release(handle)
            except OwnershipVerificationFailed:
                logger.error(
                    "Lock %s was lost while the guarded block was failing",
                    handle.lock_id,
                    exc_info=True,
                )
            raise
        self.release(handle)

    def with_lock(self, fn: Callable[[], T]) -> T:
        """Run ``fn`` while holding the lock."""
        with self.hold():
            return fn()

    def force_release(self) -> bool:
        """Delete the lock regardless of owner. Returns False if none existed."""
        existing = self.read()
        if existing is not None:
            logger.warning(
                "FORCE RELEASING LOCK %s held by %s (created %s)",
                existing.lock_id,
                existing.process_id,
                existing.created_at,
            )
        try:
            self.path.unlink()
        except FileNotFoundError:
            logger.info("No lock to force release")
            return False
        return True
