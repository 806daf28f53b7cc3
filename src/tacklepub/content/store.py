"""Canonical on-disk layout for document files.

``documents/<type>/<slug>.json``, except locations which nest by
state: ``documents/locations/<state>/<city>.json``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from tacklepub.config import PAGE_TYPE_DIRS, StoreConfig
from tacklepub.content.models import Document, PageType
from tacklepub.content.schema import SchemaValidationResult, validate_document_schema
from tacklepub.errors import NotFound
from tacklepub.storage import AtomicFileStore, dump_json

logger = logging.getLogger(__name__)


class DocumentStore:
    """Read and write document files through the atomic file store."""

    def __init__(self, config: StoreConfig, files: AtomicFileStore | None = None) -> None:
        self.config = config
        self.files = files or AtomicFileStore()

    def path_for(self, doc: Document) -> Path:
        return self.config.document_path(doc.page_type, doc.slug, doc.state_slug, doc.city_slug)

    def exists(self, doc: Document) -> bool:
        return self.files.exists(self.path_for(doc))

    def write(self, doc: Document) -> Path:
        path = self.path_for(doc)
        self.files.write(path, dump_json(doc))
        return path

    def read_raw(self, path: Path) -> Any | None:
        """Return parsed JSON at ``path``, or None if missing/unparseable.

        Failures are logged with the path and reason.
        """
        try:
            return self.files.read_json(path)
        except NotFound:
            logger.error("Failed to load content: file not found (%s)", path)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.error("Failed to load content: invalid JSON in %s: %s", path, exc)
        except OSError as exc:
            logger.error("Failed to load content: cannot read %s: %s", path, exc)
        return None

    def load(self, path: Path, expected_page_type: str | None = None) -> SchemaValidationResult:
        """Load and validate one document file.

        Invalid documents are quarantined: the result is not valid and
        the reason is logged, but nothing is raised.
        """
        raw = self.read_raw(path)
        if raw is None:
            return SchemaValidationResult(valid=False, errors=["Failed to load document"])
        result = validate_document_schema(raw, expected_page_type)
        if not result.valid:
            logger.error(
                "Content validation failed for %s (quarantined): %s",
                path,
                ", ".join(result.errors),
            )
        elif result.warnings:
            logger.warning("Schema warnings for %s: %s", path, ", ".join(result.warnings))
        return result

    def iter_files(self, page_type: str | None = None) -> Iterator[tuple[PageType, Path]]:
        """Yield ``(page_type, path)`` for every document file on disk."""
        types = [PageType(page_type)] if page_type else list(PageType)
        for pt in types:
            type_dir = self.config.documents_dir / PAGE_TYPE_DIRS[pt]
            if not type_dir.is_dir():
                continue
            for path in sorted(type_dir.rglob("*.json")):
                yield pt, path
