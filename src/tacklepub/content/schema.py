"""Strict decode of documents at the store boundary.

Raw JSON either decodes into a ``Document`` or is rejected with an
itemized list of problems.  Nothing is coerced into shape here; the
only repair anywhere in the package is the content index filling in
missing bucket arrays.
"""

from __future__ import annotations

import logging
from typing import Any

import pydantic
from pydantic import BaseModel, Field

from tacklepub.content.models import Document
from tacklepub.errors import ValidationError

logger = logging.getLogger(__name__)


class SchemaValidationResult(BaseModel):
    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    document: Document | None = None


def _format_errors(exc: pydantic.ValidationError) -> list[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "document"
        messages.append(f"{loc}: {err['msg']}")
    return messages


def _optional_field_warnings(raw: dict[str, Any]) -> list[str]:
    warnings = []
    if not isinstance(raw.get("faqs"), list):
        warnings.append("Optional field faqs is not an array")
    if not isinstance(raw.get("headings"), list):
        warnings.append("Optional field headings is not an array")
    if "sources" in raw and not isinstance(raw["sources"], list):
        warnings.append("Optional field sources is not an array")
    if "related" in raw and not isinstance(raw["related"], dict):
        warnings.append("Optional field related is not an object")
    return warnings


def validate_document_schema(
    raw: Any, expected_page_type: str | None = None
) -> SchemaValidationResult:
    """Check that ``raw`` has the structure of a publishable document.

    Args:
        raw: Parsed JSON (usually a dict loaded from a document file).
        expected_page_type: When given, the document's pageType must match.

    Returns:
        A result with ``valid``, itemized ``errors`` and advisory
        ``warnings``. When valid, ``document`` holds the decoded model.
    """
    if not isinstance(raw, dict):
        return SchemaValidationResult(valid=False, errors=["Document is not an object"])

    warnings = _optional_field_warnings(raw)
    try:
        doc = Document.model_validate(raw)
    except pydantic.ValidationError as exc:
        return SchemaValidationResult(valid=False, errors=_format_errors(exc), warnings=warnings)

    if expected_page_type and doc.page_type != expected_page_type:
        return SchemaValidationResult(
            valid=False,
            errors=[f'Expected pageType="{expected_page_type}", got "{doc.page_type}"'],
            warnings=warnings,
        )

    return SchemaValidationResult(valid=True, warnings=warnings, document=doc)


def parse_document(raw: Any) -> Document:
    """Decode ``raw`` into a Document or raise ``ValidationError``."""
    if isinstance(raw, Document):
        return raw
    result = validate_document_schema(raw)
    if result.document is None:
        slug = raw.get("slug", "?") if isinstance(raw, dict) else "?"
        raise ValidationError(f"Invalid document '{slug}'", result.errors)
    return result.document
