"""Content index models.

The index is a listing projection: one small JSON document holding a
bucket of entries per page type.  Entries carry only what a listing
page needs; body text, FAQs and sources never enter the index.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import Field

from tacklepub.content.models import CamelModel, DocumentFlags, PageType

INDEX_VERSION = "1.0.0"

# Page type -> attribute holding its bucket.
BUCKETS: dict[PageType, str] = {
    PageType.SPECIES: "species",
    PageType.HOW_TO: "how_to",
    PageType.LOCATION: "locations",
    PageType.BLOG: "blog_posts",
}


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


class ContentIndexEntry(CamelModel):
    """Minimal listing data for one published page."""

    slug: str
    title: str
    description: str
    category: str | None = None
    state: str | None = None
    city: str | None = None
    published_at: str
    updated_at: str | None = None
    word_count: int = 0
    author: str | None = None
    hero_image: str | None = None
    featured_image: str | None = None
    keywords: list[str] = Field(default_factory=list)
    tags: list[str] | None = None
    flags: DocumentFlags = Field(default_factory=DocumentFlags)


class ContentIndex(CamelModel):
    """All listing entries, bucketed by page type.

    Missing buckets decode as empty lists; that is the only repair
    applied to an index file.
    """

    version: str = INDEX_VERSION
    last_updated: str = Field(default_factory=_now)
    species: list[ContentIndexEntry] = Field(default_factory=list)
    how_to: list[ContentIndexEntry] = Field(default_factory=list)
    locations: list[ContentIndexEntry] = Field(default_factory=list)
    blog_posts: list[ContentIndexEntry] = Field(default_factory=list)

    def bucket(self, page_type: PageType | str) -> list[ContentIndexEntry]:
        return getattr(self, BUCKETS[PageType(page_type)])

    def find(self, page_type: PageType | str, slug: str) -> ContentIndexEntry | None:
        for entry in self.bucket(page_type):
            if entry.slug == slug:
                return entry
        return None

    def upsert(self, page_type: PageType | str, entry: ContentIndexEntry) -> bool:
        """Insert or replace by slug. Returns True if an entry was replaced.

        Every existing entry with the same slug is dropped, so a bucket
        that already held duplicates heals on the next write.
        """
        bucket = self.bucket(page_type)
        kept = [e for e in bucket if e.slug != entry.slug]
        replaced = len(kept) != len(bucket)
        kept.append(entry)
        bucket[:] = kept
        self.last_updated = _now()
        return replaced

    def remove(self, page_type: PageType | str, slug: str) -> bool:
        bucket = self.bucket(page_type)
        kept = [e for e in bucket if e.slug != slug]
        if len(kept) == len(bucket):
            return False
        bucket[:] = kept
        self.last_updated = _now()
        return True

    def total_entries(self) -> int:
        return sum(len(self.bucket(pt)) for pt in BUCKETS)
