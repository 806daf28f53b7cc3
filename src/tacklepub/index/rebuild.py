"""Rebuild the content index from the document files on disk."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from tacklepub.content.schema import validate_document_schema
from tacklepub.content.store import DocumentStore
from tacklepub.errors import ValidationError
from tacklepub.index.models import ContentIndex
from tacklepub.index.sanitize import entry_from_document, validate_index_entry

logger = logging.getLogger(__name__)


class RebuildError(BaseModel):
    slug: str
    file_path: str
    reason: str
    errors: list[str] = Field(default_factory=list)


class RebuildStats(BaseModel):
    total_files: int = 0
    valid: int = 0
    invalid: int = 0
    quarantined: int = 0
    drafts: int = 0
    errors: list[RebuildError] = Field(default_factory=list)


def rebuild_index(documents: DocumentStore) -> tuple[ContentIndex, RebuildStats]:
    """Scan every page-type directory and project valid, listable documents.

    Unreadable files count as invalid, schema failures as quarantined,
    drafts and noindex pages are skipped.  None of these stop the scan.

    Raises:
        OSError: a content directory could not be listed.
    """
    index = ContentIndex()
    stats = RebuildStats()

    for page_type, path in documents.iter_files():
        stats.total_files += 1
        slug = path.stem

        raw = documents.read_raw(path)
        if raw is None:
            stats.invalid += 1
            stats.errors.append(
                RebuildError(slug=slug, file_path=str(path), reason="Failed to load document")
            )
            continue

        result = validate_document_schema(raw, page_type)
        if result.document is None:
            stats.quarantined += 1
            stats.errors.append(
                RebuildError(
                    slug=slug,
                    file_path=str(path),
                    reason="Schema validation failed (quarantined)",
                    errors=result.errors,
                )
            )
            logger.error("Quarantined %s: %s", path, ", ".join(result.errors))
            continue

        doc = result.document
        if not doc.is_listable:
            stats.drafts += 1
            continue

        try:
            entry = entry_from_document(doc)
        except ValidationError as exc:
            stats.invalid += 1
            stats.errors.append(
                RebuildError(slug=slug, file_path=str(path), reason=str(exc), errors=exc.errors)
            )
            continue
        problems = validate_index_entry(entry, page_type)
        if problems:
            stats.invalid += 1
            stats.errors.append(
                RebuildError(
                    slug=slug, file_path=str(path), reason="Invalid index entry", errors=problems
                )
            )
            continue

        index.upsert(page_type, entry)
        stats.valid += 1

    logger.info(
        "Rebuilt index from %d files: %d valid, %d invalid, %d quarantined, %d drafts",
        stats.total_files,
        stats.valid,
        stats.invalid,
        stats.quarantined,
        stats.drafts,
    )
    return index, stats
