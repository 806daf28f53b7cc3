"""Keep index entries to listing data only.

``sanitize_index_entry`` copies the allowed fields and truncates the
array fields; ``validate_index_entry`` rejects anything still heavy or
incomplete.  Every write path goes through both.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pydantic

from tacklepub.content.models import Document, PageType
from tacklepub.errors import ValidationError
from tacklepub.index.models import ContentIndexEntry

MAX_KEYWORDS_IN_INDEX = 10
MAX_TAGS_IN_INDEX = 5

FORBIDDEN_FIELDS = (
    "body",
    "faqs",
    "sources",
    "related",
    "headings",
    "vibeTest",
    "alternativeRecommendations",
)

_ALLOWED_FIELDS = (
    "slug",
    "title",
    "description",
    "category",
    "state",
    "city",
    "publishedAt",
    "updatedAt",
    "wordCount",
    "author",
    "heroImage",
    "featuredImage",
)


def _as_raw(entry: ContentIndexEntry | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(entry, ContentIndexEntry):
        return entry.model_dump(by_alias=True, exclude_none=True)
    return dict(entry)


def validate_index_entry(
    entry: ContentIndexEntry | Mapping[str, Any], page_type: PageType | str | None = None
) -> list[str]:
    """Return every reason ``entry`` is not acceptable listing data.

    An empty list means the entry is valid.
    """
    raw = _as_raw(entry)
    errors: list[str] = []

    for field in FORBIDDEN_FIELDS:
        if field in raw:
            errors.append(
                f'Forbidden field "{field}" found in index entry. '
                "Index should only contain listing data."
            )

    keywords = raw.get("keywords") or []
    if len(keywords) > MAX_KEYWORDS_IN_INDEX:
        errors.append(
            f"Keywords array too long ({len(keywords)} items, max {MAX_KEYWORDS_IN_INDEX})"
        )
    tags = raw.get("tags") or []
    if len(tags) > MAX_TAGS_IN_INDEX:
        errors.append(f"Tags array too long ({len(tags)} items, max {MAX_TAGS_IN_INDEX})")

    for field in ("slug", "title", "description", "publishedAt"):
        if not raw.get(field):
            errors.append(f"Missing required field: {field}")
    if page_type in (PageType.BLOG, PageType.HOW_TO) and not raw.get("category"):
        errors.append("Missing required field: category")
    if page_type == PageType.LOCATION and not (raw.get("state") and raw.get("city")):
        errors.append("Missing required field: state/city")

    return errors


def sanitize_index_entry(entry: ContentIndexEntry | Mapping[str, Any]) -> ContentIndexEntry:
    """Project ``entry`` onto the allowed listing fields.

    Raises:
        ValidationError: required listing fields are missing or malformed.
    """
    raw = _as_raw(entry)
    clean: dict[str, Any] = {k: raw[k] for k in _ALLOWED_FIELDS if raw.get(k) is not None}

    flags = raw.get("flags")
    if isinstance(flags, Mapping):
        clean["flags"] = {
            "draft": bool(flags.get("draft", False)),
            "noindex": bool(flags.get("noindex", False)),
        }
    if isinstance(raw.get("keywords"), list):
        clean["keywords"] = raw["keywords"][:MAX_KEYWORDS_IN_INDEX]
    if isinstance(raw.get("tags"), list):
        clean["tags"] = raw["tags"][:MAX_TAGS_IN_INDEX]

    try:
        return ContentIndexEntry.model_validate(clean)
    except pydantic.ValidationError as exc:
        slug = raw.get("slug", "?")
        raise ValidationError(
            f"Invalid index entry for slug={slug!r}",
            [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()],
        ) from exc


def entry_from_document(doc: Document) -> ContentIndexEntry:
    """Build the sanitized listing entry for a document."""
    raw: dict[str, Any] = {
        "slug": doc.slug,
        "title": doc.title,
        "description": doc.description,
        "publishedAt": doc.dates.published_at,
        "updatedAt": doc.dates.updated_at,
        "wordCount": doc.word_count,
        "author": doc.author.name,
        "heroImage": doc.hero_image,
        "featuredImage": doc.featured_image,
        "keywords": doc.keywords,
        "tags": doc.tags,
        "flags": doc.flags.model_dump(),
    }
    if doc.page_type == PageType.LOCATION:
        raw["state"] = doc.state_slug
        raw["city"] = doc.city_slug
    else:
        raw["category"] = doc.listing_category
    return sanitize_index_entry(raw)
