"""Read-only drift audit between the index, the files and the ledger.

Nothing here mutates state; the report is diagnostic and is meant for
batch maintenance runs, not the publish hot path.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from tacklepub.content.models import Document, PageType, page_type_from_topic_key
from tacklepub.content.schema import validate_document_schema
from tacklepub.content.store import DocumentStore
from tacklepub.index.models import ContentIndex, ContentIndexEntry
from tacklepub.index.sanitize import entry_from_document
from tacklepub.ledger.store import TopicLedger

logger = logging.getLogger(__name__)


class IndexOnlyEntry(BaseModel):
    page_type: str
    slug: str
    reason: str


class FileOnlyEntry(BaseModel):
    page_type: str
    slug: str
    file_path: str
    reason: str


class MetadataMismatch(BaseModel):
    page_type: str
    slug: str
    field: str
    index_value: Any = None
    file_value: Any = None


class DuplicateEntry(BaseModel):
    page_type: str
    slug: str
    count: int
    locations: list[str]


class InvalidSchemaEntry(BaseModel):
    page_type: str
    slug: str
    file_path: str
    errors: list[str]
    warnings: list[str] = Field(default_factory=list)


class LedgerIssue(BaseModel):
    topic_key: str
    slug: str
    issue: str


class DriftSummary(BaseModel):
    total_index_entries: int = 0
    total_files: int = 0
    index_only_count: int = 0
    file_only_count: int = 0
    metadata_mismatch_count: int = 0
    duplicate_count: int = 0
    invalid_schema_count: int = 0
    ledger_issue_count: int = 0
    valid_count: int = 0


class DriftReport(BaseModel):
    index_only: list[IndexOnlyEntry] = Field(default_factory=list)
    file_only: list[FileOnlyEntry] = Field(default_factory=list)
    metadata_mismatches: list[MetadataMismatch] = Field(default_factory=list)
    duplicates: list[DuplicateEntry] = Field(default_factory=list)
    invalid_schema: list[InvalidSchemaEntry] = Field(default_factory=list)
    ledger_issues: list[LedgerIssue] = Field(default_factory=list)
    summary: DriftSummary = Field(default_factory=DriftSummary)

    @property
    def has_drift(self) -> bool:
        s = self.summary
        return bool(
            s.index_only_count
            or s.file_only_count
            or s.metadata_mismatch_count
            or s.duplicate_count
            or s.invalid_schema_count
            or s.ledger_issue_count
        )


_COMPARED_FIELDS = ("slug", "title", "description", "category", "state", "city", "published_at")


def _entry_path(documents: DocumentStore, page_type: PageType, entry: ContentIndexEntry) -> Path:
    return documents.config.document_path(page_type, entry.slug, entry.state, entry.city)


def _topic_path(documents: DocumentStore, topic_key: str, slug: str) -> Path:
    page_type = page_type_from_topic_key(topic_key)
    parts = topic_key.split("::")
    if page_type == PageType.LOCATION and len(parts) == 3:
        return documents.config.document_path(page_type, slug, parts[1], parts[2])
    return documents.config.document_path(page_type, slug)


def _compare(
    report: DriftReport, page_type: PageType, entry: ContentIndexEntry, doc: Document
) -> bool:
    expected = entry_from_document(doc)
    clean = True
    for field in _COMPARED_FIELDS:
        index_value = getattr(entry, field)
        file_value = getattr(expected, field)
        if index_value != file_value:
            report.metadata_mismatches.append(
                MetadataMismatch(
                    page_type=page_type,
                    slug=entry.slug,
                    field=field,
                    index_value=index_value,
                    file_value=file_value,
                )
            )
            clean = False
    return clean


def audit_drift(
    index: ContentIndex, documents: DocumentStore, ledger: TopicLedger | None = None
) -> DriftReport:
    """Compare ``index`` against the document files and, if given, the ledger."""
    report = DriftReport()
    summary = report.summary
    seen_files: set[Path] = set()

    for page_type in PageType:
        bucket = index.bucket(page_type)
        summary.total_index_entries += len(bucket)

        counts = Counter(e.slug for e in bucket)
        for slug, count in counts.items():
            if count > 1:
                report.duplicates.append(
                    DuplicateEntry(
                        page_type=page_type,
                        slug=slug,
                        count=count,
                        locations=[f"{page_type}[{i}]" for i, e in enumerate(bucket) if e.slug == slug],
                    )
                )

        for entry in bucket:
            path = _entry_path(documents, page_type, entry)
            seen_files.add(path)
            if not path.is_file():
                report.index_only.append(
                    IndexOnlyEntry(page_type=page_type, slug=entry.slug, reason="File not found")
                )
                continue
            raw = documents.read_raw(path)
            if raw is None:
                report.index_only.append(
                    IndexOnlyEntry(
                        page_type=page_type,
                        slug=entry.slug,
                        reason="File exists but failed to load",
                    )
                )
                continue
            result = validate_document_schema(raw, page_type)
            if result.document is None:
                report.invalid_schema.append(
                    InvalidSchemaEntry(
                        page_type=page_type,
                        slug=entry.slug,
                        file_path=str(path),
                        errors=result.errors,
                        warnings=result.warnings,
                    )
                )
                continue
            if _compare(report, page_type, entry, result.document):
                summary.valid_count += 1

    indexed = {(pt, e.slug) for pt in PageType for e in index.bucket(pt)}
    for page_type, path in documents.iter_files():
        summary.total_files += 1
        if path in seen_files:
            continue
        raw = documents.read_raw(path)
        result = validate_document_schema(raw, page_type) if raw is not None else None
        if result is None or result.document is None:
            report.invalid_schema.append(
                InvalidSchemaEntry(
                    page_type=page_type,
                    slug=path.stem,
                    file_path=str(path),
                    errors=result.errors if result else ["Failed to load document"],
                    warnings=result.warnings if result else [],
                )
            )
            continue
        doc = result.document
        if doc.is_listable and (page_type, doc.slug) not in indexed:
            report.file_only.append(
                FileOnlyEntry(
                    page_type=page_type,
                    slug=doc.slug,
                    file_path=str(path),
                    reason="Published file has no index entry",
                )
            )

    if ledger is not None:
        for record in ledger.published():
            if not _topic_path(documents, record.topic_key, record.slug).is_file():
                report.ledger_issues.append(
                    LedgerIssue(
                        topic_key=record.topic_key,
                        slug=record.slug,
                        issue="Ledger says published but file is missing",
                    )
                )
            if (record.page_type, record.slug) not in indexed:
                report.ledger_issues.append(
                    LedgerIssue(
                        topic_key=record.topic_key,
                        slug=record.slug,
                        issue="Ledger says published but index entry is missing",
                    )
                )

    summary.index_only_count = len(report.index_only)
    summary.file_only_count = len(report.file_only)
    summary.metadata_mismatch_count = len(report.metadata_mismatches)
    summary.duplicate_count = len(report.duplicates)
    summary.invalid_schema_count = len(report.invalid_schema)
    summary.ledger_issue_count = len(report.ledger_issues)

    if report.has_drift:
        logger.warning(
            "Index drift: %d index-only, %d file-only, %d mismatches, %d duplicates, "
            "%d invalid, %d ledger issues",
            summary.index_only_count,
            summary.file_only_count,
            summary.metadata_mismatch_count,
            summary.duplicate_count,
            summary.invalid_schema_count,
            summary.ledger_issue_count,
        )
    return report
