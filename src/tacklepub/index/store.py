"""Content index store with backup and rebuild-from-source recovery.

``load()`` never raises: it walks primary -> backup -> rebuild and, if
even the rebuild fails, logs loudly and hands back an empty index so
read paths can keep serving degraded results.  Every mutation runs
load -> backup -> mutate -> atomic write under the ``IndexLock``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from tacklepub.config import StoreConfig
from tacklepub.content.models import PageType
from tacklepub.content.store import DocumentStore
from tacklepub.errors import IndexRecoveryExhausted, TacklepubError, ValidationError
from tacklepub.index.models import ContentIndex, ContentIndexEntry
from tacklepub.index.rebuild import RebuildStats, rebuild_index
from tacklepub.index.recovery import (
    BackupStrategy,
    PrimaryStrategy,
    RebuildStrategy,
    RecoveryResult,
    RecoveryStrategy,
)
from tacklepub.index.sanitize import sanitize_index_entry, validate_index_entry
from tacklepub.locking import IndexLock
from tacklepub.storage import AtomicFileStore, dump_json

logger = logging.getLogger(__name__)


class ContentIndexStore:
    """Aggregate listing index persisted as one JSON file."""

    def __init__(
        self,
        config: StoreConfig,
        lock: IndexLock | None = None,
        files: AtomicFileStore | None = None,
        documents: DocumentStore | None = None,
    ) -> None:
        self.config = config
        self.files = files or AtomicFileStore()
        self.lock = lock or IndexLock(config)
        self.documents = documents or DocumentStore(config, self.files)
        self.strategies: list[RecoveryStrategy] = [
            PrimaryStrategy(self.files, config.index_path),
            BackupStrategy(self.files, config.index_backup_path),
            RebuildStrategy(self.documents),
        ]

    # ── Private helpers ──────────────────────────────────────────

    def _recover(self) -> tuple[ContentIndex, RecoveryResult]:
        for strategy in self.strategies:
            result = strategy.attempt()
            if result.index is not None:
                if strategy.name != "primary":
                    logger.warning("Content index recovered from %s", strategy.name)
                return result.index, result
            logger.warning("Content index %s unavailable: %s", strategy.name, result.reason)

        error = IndexRecoveryExhausted(
            "Primary index, backup and rebuild from files all failed; serving an empty index"
        )
        logger.error("INDEX RECOVERY EXHAUSTED: %s", error)
        empty = ContentIndex()
        return empty, RecoveryResult(source="empty", index=empty)

    def _persist_recovered(self, index: ContentIndex, result: RecoveryResult) -> None:
        """Write a recovered index back. Caller must hold the lock."""
        if result.restore_primary:
            self._write_primary(index)
            logger.info("Restored primary index from %s", result.source)
        if result.refresh_backup:
            self._backup(index)

    def _write_primary(self, index: ContentIndex) -> None:
        self.files.write(self.config.index_path, dump_json(index))

    def _backup(self, index: ContentIndex) -> bool:
        """Best-effort copy of ``index`` to the backup file."""
        try:
            self.files.write(self.config.index_backup_path, dump_json(index))
        except Exception:
            logger.warning("Failed to back up content index", exc_info=True)
            return False
        return True

    def _mutate(self, fn: Callable[[ContentIndex], bool]) -> bool:
        with self.lock.hold():
            index, result = self._recover()
            if result.restore_primary:
                self._persist_recovered(index, result)
            else:
                self._backup(index)
            changed = fn(index)
            if changed:
                self._write_primary(index)
            return changed

    # ── Public API ───────────────────────────────────────────────

    def load(self) -> ContentIndex:
        """Return a valid index, recovering (and persisting the recovery) if needed."""
        index, result = self._recover()
        if result.restore_primary or result.refresh_backup:
            try:
                with self.lock.hold():
                    self._persist_recovered(index, result)
            except (TacklepubError, OSError):
                logger.warning("Could not persist recovered index", exc_info=True)
        return index

    def find(self, page_type: PageType | str, slug: str) -> ContentIndexEntry | None:
        return self.load().find(page_type, slug)

    def entries(self, page_type: PageType | str) -> list[ContentIndexEntry]:
        return list(self.load().bucket(page_type))

    def backup(self) -> bool:
        """Copy the current (valid) index to the backup file."""
        return self._backup(self.load())

    def append(
        self, page_type: PageType | str, entry: ContentIndexEntry | Mapping[str, Any]
    ) -> ContentIndexEntry:
        """Sanitize ``entry`` and upsert it by slug under the lock.

        Raises:
            ValidationError: the sanitized entry is still not listing data.
            LockTimeout: the lock could not be acquired.
        """
        clean = sanitize_index_entry(entry)
        problems = validate_index_entry(clean, page_type)
        if problems:
            raise ValidationError(f"Invalid index entry for slug={clean.slug!r}", problems)

        def apply(index: ContentIndex) -> bool:
            replaced = index.upsert(page_type, clean)
            logger.info(
                "%s index entry %s/%s", "Replaced" if replaced else "Added", page_type, clean.slug
            )
            return True

        self._mutate(apply)
        return clean

    def remove(self, page_type: PageType | str, slug: str) -> bool:
        """Drop the entry for ``slug``. Returns False if none existed."""
        return self._mutate(lambda index: index.remove(page_type, slug))

    def rebuild_and_save(self) -> RebuildStats:
        """Rebuild from document files and overwrite primary and backup."""
        index, stats = rebuild_index(self.documents)
        with self.lock.hold():
            self._write_primary(index)
            self._backup(index)
        logger.info("Index rebuild complete: %d entries", index.total_entries())
        return stats
