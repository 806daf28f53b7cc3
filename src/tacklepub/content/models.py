"""Content document models — pure Pydantic v2 data types.

A Document is the unit of publication: one blog post, species profile,
how-to guide, or location page.  On disk every document is a single
JSON file with camelCase keys; in Python the fields are snake_case.

Each document has a stable *topic key* (its logical identity across
regenerations) and a *slug* (its URL-facing file/index key).
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models persisted with camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageType(StrEnum):
    """Kinds of published pages."""

    BLOG = "blog"
    SPECIES = "species"
    HOW_TO = "how-to"
    LOCATION = "location"


class Heading(CamelModel):
    level: int = Field(ge=1, le=3)
    text: str
    id: str | None = None


class FaqItem(CamelModel):
    question: str
    answer: str


class Source(CamelModel):
    """A citation backing the document."""

    label: str
    url: str
    id: str | None = None
    publisher: str | None = None
    retrieved_at: str | None = None
    notes: str | None = None


class RelatedLinks(CamelModel):
    species_slugs: list[str] = Field(default_factory=list)
    how_to_slugs: list[str] = Field(default_factory=list)
    location_slugs: list[str] = Field(default_factory=list)
    post_slugs: list[str] = Field(default_factory=list)


class Author(CamelModel):
    name: str = Field(min_length=1)
    url: str | None = None


class DocumentDates(CamelModel):
    """ISO 8601 timestamps, kept as the exact strings written to disk."""

    published_at: str
    updated_at: str

    @field_validator("published_at", "updated_at")
    @classmethod
    def _iso8601(cls, value: str) -> str:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
        return value


class DocumentFlags(CamelModel):
    draft: bool = False
    noindex: bool = False


class Document(CamelModel):
    """A fully generated page, ready to publish.

    Type-specific fields are optional at the model level; the
    per-type requirements are enforced by the model validator.
    Unknown top-level keys are preserved so that a document round-trips
    through the store unchanged.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    id: str = Field(min_length=1)
    slug: str = Field(min_length=1, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    page_type: PageType
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    body: str = Field(min_length=1)
    primary_keyword: str = Field(min_length=1)
    secondary_keywords: list[str] = Field(default_factory=list)
    headings: list[Heading] = Field(default_factory=list)
    faqs: list[FaqItem] = Field(default_factory=list)
    sources: list[Source] = Field(default_factory=list)
    related: RelatedLinks = Field(default_factory=RelatedLinks)
    author: Author
    dates: DocumentDates
    flags: DocumentFlags = Field(default_factory=DocumentFlags)
    hero_image: str | None = None

    # blog
    category_slug: str | None = None
    tags: list[str] | None = None
    featured_image: str | None = None
    # how-to
    category: str | None = None
    # species
    species_meta: dict[str, Any] | None = None
    # location
    state_slug: str | None = None
    city_slug: str | None = None
    geo: dict[str, Any] | None = None

    @field_validator("title", "description", "body")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @model_validator(mode="after")
    def _type_specific_fields(self) -> Document:
        if self.page_type == PageType.BLOG and not self.category_slug:
            raise ValueError("blog documents require categorySlug")
        if self.page_type == PageType.LOCATION and not (self.state_slug and self.city_slug):
            raise ValueError("location documents require stateSlug and citySlug")
        return self

    # ── Identity ─────────────────────────────────────────────────

    @property
    def topic_key(self) -> str:
        """Deterministic ``"<type>::<identifier...>"`` identity."""
        match self.page_type:
            case PageType.SPECIES:
                return f"species::{self.slug}::global"
            case PageType.HOW_TO:
                return f"howto::{self.slug}"
            case PageType.LOCATION:
                return f"location::{self.state_slug}::{self.city_slug}"
            case _:
                return f"blog::{self.slug}"

    @property
    def route_path(self) -> str:
        match self.page_type:
            case PageType.SPECIES:
                return f"/species/{self.slug}"
            case PageType.HOW_TO:
                return f"/how-to/{self.slug}"
            case PageType.LOCATION:
                return f"/locations/{self.state_slug}/{self.city_slug}"
            case _:
                return f"/blog/{self.slug}"

    @property
    def keywords(self) -> list[str]:
        return [self.primary_keyword, *self.secondary_keywords]

    @property
    def word_count(self) -> int:
        return len(self.body.split())

    @property
    def listing_category(self) -> str:
        """Category used for listing pages."""
        return self.category_slug or self.category or "uncategorized"

    @property
    def is_listable(self) -> bool:
        """Drafts and noindex pages never appear in the index."""
        return not (self.flags.draft or self.flags.noindex)


def page_type_from_topic_key(topic_key: str) -> PageType:
    """Recover the page type encoded in a topic key prefix."""
    prefix = topic_key.split("::", 1)[0]
    if prefix == "howto":
        return PageType.HOW_TO
    return PageType(prefix)
