"""Content documents: models, schema validation, and canonical file layout."""

from tacklepub.content.models import (
    Author,
    Document,
    DocumentDates,
    DocumentFlags,
    FaqItem,
    Heading,
    PageType,
    RelatedLinks,
    Source,
)
from tacklepub.content.schema import SchemaValidationResult, parse_document, validate_document_schema
from tacklepub.content.store import DocumentStore

__all__ = [
    "Author",
    "Document",
    "DocumentDates",
    "DocumentFlags",
    "DocumentStore",
    "FaqItem",
    "Heading",
    "PageType",
    "RelatedLinks",
    "SchemaValidationResult",
    "Source",
    "parse_document",
    "validate_document_schema",
]
