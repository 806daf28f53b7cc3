"""Publish coordinator: one logical publish across file, ledger and index.

A publish first inspects three facts about the document's slug: is the
file on disk, is there an index entry, and does the ledger hold this
exact ``(topic_key, slug)``.  Those facts select a state:

    ALREADY_PUBLISHED  file, index entry and ledger all match the document
    CHANGED            all three exist but the document differs
    PARTIAL            some but not all exist; finish the missing steps
    NOT_PUBLISHED      none exist
    CONFLICT           the slug belongs to a different topic, or the topic
                       is already live under a different slug

Steps run in order: quality gate, duplicate check, file write, ledger,
index.  If anything fails after the file write, only the file this
call wrote is rolled back; ledger and index writes are idempotent and
stay.  Link suggestions, cache revalidation and caller hooks run after
the commit and can never fail the publish.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from tacklepub.config import TacklepubConfig
from tacklepub.content.models import Document, PageType
from tacklepub.content.schema import parse_document, validate_document_schema
from tacklepub.content.store import DocumentStore
from tacklepub.dedupe import Deduplicator, content_hash, fingerprint
from tacklepub.errors import (
    DuplicateContent,
    NotFound,
    QualityGateBlocked,
    SlugTopicKeyConflict,
    TacklepubError,
    TopicSlugChanged,
    ValidationError,
)
from tacklepub.index.models import ContentIndexEntry
from tacklepub.index.sanitize import entry_from_document
from tacklepub.index.store import ContentIndexStore
from tacklepub.ledger.models import LedgerStatus, TopicLedgerRecord
from tacklepub.ledger.store import TopicLedger
from tacklepub.locking import IndexLock
from tacklepub.metrics import MetricsRecorder, PublishStatus
from tacklepub.publish.links import LinkSuggestion, suggest_links
from tacklepub.publish.revalidation import RevalidationClient
from tacklepub.quality.gate import run_quality_gate
from tacklepub.storage import AtomicFileStore, dump_json

logger = logging.getLogger(__name__)

PostPublishHook = Callable[[Document, "PublishResult"], None]


class PublishState(StrEnum):
    ALREADY_PUBLISHED = "already_published"
    CHANGED = "changed"
    PARTIAL = "partial"
    NOT_PUBLISHED = "not_published"
    CONFLICT = "conflict"


class PublishResult(BaseModel):
    topic_key: str
    slug: str
    page_type: str
    route_path: str
    file_path: str
    state: PublishState
    content_hash: str
    skipped: bool = False
    file_written: bool = False
    ledger_updated: bool = False
    index_updated: bool = False
    warnings: list[str] = Field(default_factory=list)
    link_suggestions: list[LinkSuggestion] = Field(default_factory=list)
    duration_ms: float = 0.0


class _Facts(BaseModel):
    """What already exists for a document before this publish."""

    file_exists: bool = False
    file_current: bool = False
    index_entry: ContentIndexEntry | None = None
    index_current: bool = False
    ledger_present: bool = False
    ledger_current: bool = False
    conflict_owner: str | None = None
    # Slug this topic is already live under, when it differs from the document.
    live_slug: str | None = None

    @property
    def present(self) -> tuple[bool, bool, bool]:
        return (self.file_exists, self.index_entry is not None, self.ledger_present)


def _ledger_status_for(doc: Document) -> LedgerStatus:
    return LedgerStatus.PUBLISHED if doc.is_listable else LedgerStatus.DRAFT


def _failure_code(exc: Exception) -> str:
    if isinstance(exc, TacklepubError):
        return exc.code
    if isinstance(exc, OSError):
        return "write"
    return "other"


class PublishCoordinator:
    """Commits documents through the atomic file store, ledger and index."""

    def __init__(
        self,
        config: TacklepubConfig | None = None,
        *,
        files: AtomicFileStore | None = None,
        lock: IndexLock | None = None,
        metrics: MetricsRecorder | None = None,
        documents: DocumentStore | None = None,
        ledger: TopicLedger | None = None,
        index: ContentIndexStore | None = None,
        revalidation: RevalidationClient | None = None,
        hooks: list[PostPublishHook] | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config or TacklepubConfig()
        store_config = self.config.store
        self.files = files or AtomicFileStore()
        self.metrics = metrics or MetricsRecorder(store_config, self.files)
        self.lock = lock or IndexLock(store_config, self.metrics)
        self.documents = documents or DocumentStore(store_config, self.files)
        self.ledger = ledger or TopicLedger(store_config, self.lock, self.files)
        self.index = index or ContentIndexStore(
            store_config, self.lock, self.files, self.documents
        )
        self.deduplicator = Deduplicator(self.ledger)
        self.revalidation = revalidation or RevalidationClient(
            self.config.revalidation, self.metrics
        )
        self.hooks = list(hooks or [])
        self._clock = clock

    # ── State inspection ─────────────────────────────────────────

    def _inspect(self, doc: Document, path: Path, digest: str) -> _Facts:
        topic_key = doc.topic_key
        facts = _Facts()

        try:
            on_disk = self.files.read(path)
        except NotFound:
            on_disk = None
        if on_disk is not None:
            facts.file_exists = True
            facts.file_current = on_disk == dump_json(doc)
            raw = self.documents.read_raw(path)
            existing = validate_document_schema(raw).document if raw is not None else None
            if existing is not None and existing.topic_key != topic_key:
                facts.conflict_owner = existing.topic_key

        owner = self.ledger.find_published_by_slug(doc.page_type, doc.slug)
        if owner is not None and owner.topic_key != topic_key:
            facts.conflict_owner = facts.conflict_owner or owner.topic_key

        entry = self.index.find(doc.page_type, doc.slug)
        if (
            entry is not None
            and doc.page_type == PageType.LOCATION
            and (entry.state, entry.city) != (doc.state_slug, doc.city_slug)
        ):
            facts.conflict_owner = facts.conflict_owner or f"location::{entry.state}::{entry.city}"
        facts.index_entry = entry
        expected = entry_from_document(doc) if doc.is_listable else None
        facts.index_current = entry == expected

        record = self.ledger.get(topic_key)
        if record is not None and record.slug == doc.slug and record.status in (
            LedgerStatus.PUBLISHED,
            LedgerStatus.DRAFT,
        ):
            facts.ledger_present = True
            facts.ledger_current = (
                record.status == _ledger_status_for(doc) and record.content_hash == digest
            )
        elif record is not None and record.slug and record.slug != doc.slug:
            # A failed retry leaves the old slug in the ledger; the index
            # entry tells whether that slug is still served.
            if record.status in (LedgerStatus.PUBLISHED, LedgerStatus.DRAFT) or (
                self.index.find(doc.page_type, record.slug) is not None
            ):
                facts.live_slug = record.slug
        return facts

    @staticmethod
    def _classify(facts: _Facts) -> PublishState:
        if facts.conflict_owner or facts.live_slug:
            return PublishState.CONFLICT
        if facts.file_current and facts.index_current and facts.ledger_current:
            return PublishState.ALREADY_PUBLISHED
        if all(facts.present):
            return PublishState.CHANGED
        if any(facts.present):
            return PublishState.PARTIAL
        return PublishState.NOT_PUBLISHED

    # ── Commit steps ─────────────────────────────────────────────

    def _check_quality(self, doc: Document, result: PublishResult) -> None:
        verdict = run_quality_gate(doc, self.config.quality)
        if verdict.blocked:
            raise QualityGateBlocked(doc.slug, verdict)
        result.warnings.extend(verdict.warnings)

    def _check_duplicates(self, doc: Document, result: PublishResult) -> None:
        check = self.deduplicator.is_near_duplicate(
            doc.body,
            self.config.pipeline.duplicate_similarity_threshold,
            exclude_topic_key=doc.topic_key,
        )
        if not check.is_duplicate or check.similar_topic_key is None:
            return
        if check.exact:
            raise DuplicateContent(doc.topic_key, check.similar_topic_key)
        result.warnings.append(
            f"Near-duplicate of {check.similar_topic_key} (similarity {check.similarity:.2f})"
        )

    def _update_ledger(self, doc: Document, digest: str) -> None:
        sources = [s.url for s in doc.sources]
        if doc.is_listable:
            self.ledger.mark_published(
                doc.topic_key, doc.slug, digest, sources, fingerprint(doc.body)
            )
            return
        self.ledger.upsert(
            TopicLedgerRecord(
                topic_key=doc.topic_key,
                page_type=doc.page_type,
                slug=doc.slug,
                status=LedgerStatus.DRAFT,
                content_hash=digest,
                sources_used=sources,
                fingerprint=fingerprint(doc.body),
                last_updated_at=datetime.now(tz=UTC).isoformat(),
                last_error=None,
            )
        )
        logger.info("Recorded draft for %s", doc.topic_key)

    def _rollback(self, path: Path, previous: bytes | None) -> None:
        """Undo this call's file write: restore the old bytes or remove the new file."""
        try:
            if previous is None:
                self.files.delete(path)
                logger.warning("Rolled back: deleted %s", path)
            else:
                self.files.write(path, previous)
                logger.warning("Rolled back: restored previous content of %s", path)
        except OSError:
            logger.error("Rollback of %s failed", path, exc_info=True)

    def _run_post_publish(self, doc: Document, result: PublishResult) -> None:
        try:
            result.link_suggestions = suggest_links(doc, self.index.load())
            if result.link_suggestions:
                logger.info(
                    "Link suggestions for %s: %s",
                    doc.slug,
                    ", ".join(s.url for s in result.link_suggestions),
                )
        except Exception:
            logger.warning("Link suggestion failed for %s", doc.slug, exc_info=True)

        try:
            self.revalidation.revalidate_document(doc)
        except Exception:
            logger.warning("Revalidation failed for %s", doc.slug, exc_info=True)

        for hook in self.hooks:
            try:
                hook(doc, result)
            except Exception:
                logger.warning("Post-publish hook %r failed", hook, exc_info=True)

    def _record_failure(
        self, doc: Document, exc: Exception, started: float, *, mark_ledger: bool = True
    ) -> None:
        self.metrics.record_publish(
            doc.slug,
            doc.page_type,
            PublishStatus.FAILURE,
            (self._clock() - started) * 1000,
            failure_reason=str(exc),
            failure_code=_failure_code(exc),
        )
        if not mark_ledger:
            return
        try:
            self.ledger.mark_failed(doc.topic_key, str(exc))
        except (TacklepubError, OSError):
            logger.warning("Could not record failure for %s in ledger", doc.topic_key, exc_info=True)

    def _record_invalid(self, raw: Any, exc: ValidationError, started: float) -> None:
        """Count a document that never decoded; there is no topic key to mark."""
        fields = raw if isinstance(raw, Mapping) else {}
        self.metrics.record_publish(
            str(fields.get("slug") or "?"),
            str(fields.get("pageType") or fields.get("page_type") or "unknown"),
            PublishStatus.FAILURE,
            (self._clock() - started) * 1000,
            failure_reason=str(exc),
            failure_code=exc.code,
        )

    # ── Public API ───────────────────────────────────────────────

    def inspect(self, doc: Document | Mapping[str, Any]) -> PublishState:
        """Classify ``doc`` against the store without changing anything."""
        doc = parse_document(doc)
        facts = self._inspect(doc, self.documents.path_for(doc), content_hash(doc.body))
        return self._classify(facts)

    def publish(self, doc: Document | Mapping[str, Any]) -> PublishResult:
        """Publish one document idempotently.

        Raises:
            ValidationError: the document does not decode.
            QualityGateBlocked: the gate rejected it; nothing was written.
            SlugTopicKeyConflict: the slug belongs to another topic.
            TopicSlugChanged: the topic is already live under another slug.
            DuplicateContent: the body exactly matches another topic's.
            WriteVerificationFailed, LockTimeout: a commit step failed.
        """
        started = self._clock()
        try:
            doc = parse_document(doc)
        except ValidationError as exc:
            self._record_invalid(doc, exc, started)
            raise
        path = self.documents.path_for(doc)
        digest = content_hash(doc.body)
        logger.info("Publishing %s:%s", doc.page_type, doc.slug)

        try:
            facts = self._inspect(doc, path, digest)
        except TacklepubError as exc:
            self._record_failure(doc, exc, started)
            raise
        state = self._classify(facts)

        result = PublishResult(
            topic_key=doc.topic_key,
            slug=doc.slug,
            page_type=doc.page_type,
            route_path=doc.route_path,
            file_path=str(path),
            state=state,
            content_hash=digest,
        )

        if state == PublishState.ALREADY_PUBLISHED:
            result.skipped = True
            result.duration_ms = (self._clock() - started) * 1000
            self.metrics.record_publish(
                doc.slug, doc.page_type, PublishStatus.SKIPPED, result.duration_ms
            )
            logger.info("Already published, skipping: %s", doc.topic_key)
            return result

        if facts.live_slug is not None:
            # The live record stays as it is; only the attempt is counted.
            changed = TopicSlugChanged(doc.topic_key, facts.live_slug, doc.slug)
            logger.error("%s", changed)
            self._record_failure(doc, changed, started, mark_ledger=False)
            raise changed

        if facts.conflict_owner is not None:
            conflict = SlugTopicKeyConflict(doc.slug, doc.topic_key, facts.conflict_owner)
            logger.error("%s", conflict)
            self._record_failure(doc, conflict, started)
            raise conflict

        previous: bytes | None = None
        try:
            self._check_quality(doc, result)
            self._check_duplicates(doc, result)

            if not facts.file_current:
                if facts.file_exists:
                    previous = self.files.read(path)
                self.documents.write(doc)
                result.file_written = True
                logger.info("Written to: %s", path)

            if not facts.ledger_current:
                self._update_ledger(doc, digest)
                result.ledger_updated = True

            if not facts.index_current:
                if doc.is_listable:
                    self.index.append(doc.page_type, entry_from_document(doc))
                else:
                    self.index.remove(doc.page_type, doc.slug)
                result.index_updated = True
        except Exception as exc:
            if result.file_written:
                self._rollback(path, previous)
                result.file_written = False
            self._record_failure(doc, exc, started)
            raise

        self._run_post_publish(doc, result)

        result.duration_ms = (self._clock() - started) * 1000
        self.metrics.record_publish(
            doc.slug, doc.page_type, PublishStatus.SUCCESS, result.duration_ms
        )
        logger.info("Published %s (%s) -> %s", doc.topic_key, state, doc.route_path)
        return result
