"""Ordered recovery strategies for loading the content index.

Each strategy reports success or failure through a ``RecoveryResult``
instead of raising, so the store can walk the chain
primary -> backup -> rebuild with a plain loop.  A successful result
also says whether the recovered index must be written back.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

import pydantic

from tacklepub.content.store import DocumentStore
from tacklepub.errors import NotFound
from tacklepub.index.models import ContentIndex
from tacklepub.index.rebuild import RebuildStats, rebuild_index
from tacklepub.storage import AtomicFileStore

logger = logging.getLogger(__name__)

_BUCKET_KEYS = ("species", "howTo", "locations", "blogPosts")


@dataclass
class RecoveryResult:
    """Outcome of one recovery strategy."""

    source: str
    index: ContentIndex | None = None
    reason: str | None = None
    restore_primary: bool = False
    refresh_backup: bool = False
    stats: RebuildStats | None = None

    @property
    def ok(self) -> bool:
        return self.index is not None


def read_index_file(files: AtomicFileStore, path: Path, source: str) -> RecoveryResult:
    """Decode an index file, filling in missing buckets."""
    try:
        raw = files.read_json(path)
    except NotFound:
        return RecoveryResult(source=source, reason=f"{path} does not exist")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return RecoveryResult(source=source, reason=f"invalid JSON in {path}: {exc}")
    except OSError as exc:
        return RecoveryResult(source=source, reason=f"cannot read {path}: {exc}")

    if not isinstance(raw, dict):
        return RecoveryResult(source=source, reason=f"{path} is not a JSON object")

    missing = [key for key in _BUCKET_KEYS if key not in raw]
    try:
        index = ContentIndex.model_validate(raw)
    except pydantic.ValidationError as exc:
        return RecoveryResult(source=source, reason=f"invalid index shape in {path}: {exc}")

    if missing:
        logger.warning("Index %s missing buckets %s; treating as empty", path, ", ".join(missing))
    return RecoveryResult(source=source, index=index)


class RecoveryStrategy(ABC):
    """One way of producing a valid content index."""

    name: str

    @abstractmethod
    def attempt(self) -> RecoveryResult:
        """Try to produce an index; never raises."""


class PrimaryStrategy(RecoveryStrategy):
    name = "primary"

    def __init__(self, files: AtomicFileStore, path: Path) -> None:
        self.files = files
        self.path = path

    def attempt(self) -> RecoveryResult:
        return read_index_file(self.files, self.path, self.name)


class BackupStrategy(RecoveryStrategy):
    """Load the backup and ask for it to be restored as the primary."""

    name = "backup"

    def __init__(self, files: AtomicFileStore, path: Path) -> None:
        self.files = files
        self.path = path

    def attempt(self) -> RecoveryResult:
        result = read_index_file(self.files, self.path, self.name)
        if result.ok:
            result.restore_primary = True
        return result


class RebuildStrategy(RecoveryStrategy):
    """Rebuild from the document files, then rewrite primary and backup."""

    name = "rebuild"

    def __init__(self, documents: DocumentStore) -> None:
        self.documents = documents

    def attempt(self) -> RecoveryResult:
        try:
            index, stats = rebuild_index(self.documents)
        except OSError as exc:
            return RecoveryResult(source=self.name, reason=f"rebuild from files failed: {exc}")
        return RecoveryResult(
            source=self.name,
            index=index,
            restore_primary=True,
            refresh_backup=True,
            stats=stats,
        )
