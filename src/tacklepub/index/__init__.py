"""Content index: listing projection, recovery, rebuild and drift audit."""

from tacklepub.index.audit import DriftReport, audit_drift
from tacklepub.index.models import ContentIndex, ContentIndexEntry
from tacklepub.index.rebuild import RebuildStats, rebuild_index
from tacklepub.index.sanitize import entry_from_document, sanitize_index_entry, validate_index_entry
from tacklepub.index.store import ContentIndexStore

__all__ = [
    "ContentIndex",
    "ContentIndexEntry",
    "ContentIndexStore",
    "DriftReport",
    "RebuildStats",
    "audit_drift",
    "entry_from_document",
    "rebuild_index",
    "sanitize_index_entry",
    "validate_index_entry",
]
