"""JSON-backed topic ledger.

Persists every TopicLedgerRecord in one JSON array, rewritten whole
through the atomic file store on each mutation.  When constructed with
an ``IndexLock`` every read-modify-write runs under that lock, so two
processes updating different topics cannot lose each other's records.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Callable, Iterator
from datetime import UTC, datetime

import pydantic

from tacklepub.config import StoreConfig
from tacklepub.content.models import page_type_from_topic_key
from tacklepub.errors import NotFound, StoreCorrupted
from tacklepub.ledger.models import LedgerStatus, TopicLedgerRecord
from tacklepub.locking import IndexLock
from tacklepub.storage import AtomicFileStore, dump_json

logger = logging.getLogger(__name__)

_records_adapter = pydantic.TypeAdapter(list[TopicLedgerRecord])


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


class TopicLedger:
    """Per-topic-key status records."""

    def __init__(
        self,
        config: StoreConfig,
        lock: IndexLock | None = None,
        files: AtomicFileStore | None = None,
    ) -> None:
        self.path = config.ledger_path
        self.lock = lock
        self.files = files or AtomicFileStore()

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> list[TopicLedgerRecord]:
        try:
            raw = self.files.read_json(self.path)
        except NotFound:
            return []
        except json.JSONDecodeError as exc:
            raise StoreCorrupted(self.path, str(exc)) from exc
        try:
            return _records_adapter.validate_python(raw)
        except pydantic.ValidationError as exc:
            raise StoreCorrupted(self.path, str(exc)) from exc

    def _save(self, records: list[TopicLedgerRecord]) -> None:
        self.files.write(self.path, dump_json(records))
        logger.debug("Saved topic ledger with %d records", len(records))

    @contextlib.contextmanager
    def _locked(self) -> Iterator[None]:
        if self.lock is None:
            yield
            return
        with self.lock.hold():
            yield

    def _mutate(
        self, fn: Callable[[list[TopicLedgerRecord]], TopicLedgerRecord]
    ) -> TopicLedgerRecord:
        with self._locked():
            records = self._load()
            result = fn(records)
            self._save(records)
        return result

    @staticmethod
    def _merge(
        records: list[TopicLedgerRecord], record: TopicLedgerRecord
    ) -> TopicLedgerRecord:
        for i, existing in enumerate(records):
            if existing.topic_key == record.topic_key:
                changes = {name: getattr(record, name) for name in record.model_fields_set}
                changes["last_updated_at"] = _now()
                merged = existing.model_copy(update=changes)
                records[i] = merged
                return merged
        created = record.model_copy(update={"last_updated_at": _now()})
        records.append(created)
        return created

    # ── Read operations ──────────────────────────────────────────

    def all(self) -> list[TopicLedgerRecord]:
        return self._load()

    def get(self, topic_key: str) -> TopicLedgerRecord | None:
        """Return the record for ``topic_key``, or None."""
        for record in self._load():
            if record.topic_key == topic_key:
                return record
        return None

    def published(self) -> list[TopicLedgerRecord]:
        return [r for r in self._load() if r.is_published]

    def find_published_by_slug(self, page_type: str, slug: str) -> TopicLedgerRecord | None:
        """Return the published record that owns ``slug`` within a content type."""
        for record in self._load():
            if record.is_published and record.slug == slug and record.page_type == page_type:
                return record
        return None

    # ── Write operations ─────────────────────────────────────────

    def upsert(self, record: TopicLedgerRecord) -> TopicLedgerRecord:
        """Insert or merge a record by topic key; bumps ``last_updated_at``.

        Only fields explicitly set on ``record`` overwrite the stored
        record; everything else is preserved.
        """
        return self._mutate(lambda records: self._merge(records, record))

    def mark_published(
        self,
        topic_key: str,
        slug: str,
        content_hash: str,
        sources_used: list[str],
        fingerprint: list[int] | None = None,
    ) -> TopicLedgerRecord:
        """Set status=published and clear ``last_error``."""
        now = _now()
        record = TopicLedgerRecord(
            topic_key=topic_key,
            page_type=page_type_from_topic_key(topic_key),
            slug=slug,
            status=LedgerStatus.PUBLISHED,
            content_hash=content_hash,
            sources_used=list(sources_used),
            last_published_at=now,
            last_updated_at=now,
            last_error=None,
        )
        if fingerprint is not None:
            record.fingerprint = list(fingerprint)
        result = self._mutate(lambda records: self._merge(records, record))
        logger.info("Marked topic as published: %s -> %s", topic_key, slug)
        return result

    def mark_failed(self, topic_key: str, error: str) -> TopicLedgerRecord:
        """Set status=failed and bump ``attempts``.

        A prior slug, content hash and publish time survive, so a retried
        topic stays distinguishable from a first-time failure.
        """

        def apply(records: list[TopicLedgerRecord]) -> TopicLedgerRecord:
            existing = next((r for r in records if r.topic_key == topic_key), None)
            record = TopicLedgerRecord(
                topic_key=topic_key,
                page_type=page_type_from_topic_key(topic_key),
                status=LedgerStatus.FAILED,
                last_updated_at=_now(),
                last_error=error,
                attempts=(existing.attempts if existing else 0) + 1,
            )
            return self._merge(records, record)

        result = self._mutate(apply)
        logger.warning("Marked topic as failed: %s - %s", topic_key, error)
        return result
