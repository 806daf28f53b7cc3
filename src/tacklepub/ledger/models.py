"""Topic ledger records.

One record per topic key holding only the latest state plus an
attempt counter; no history is kept.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from tacklepub.content.models import CamelModel, PageType


class LedgerStatus(StrEnum):
    PUBLISHED = "published"
    DRAFT = "draft"
    FAILED = "failed"
    ARCHIVED = "archived"


class TopicLedgerRecord(CamelModel):
    topic_key: str
    page_type: PageType
    slug: str = ""
    status: LedgerStatus
    content_hash: str = ""
    sources_used: list[str] = Field(default_factory=list)
    # Bottom-k MinHash sketch of the body tokens, for near-duplicate checks.
    fingerprint: list[int] = Field(default_factory=list)
    last_published_at: str | None = None
    last_updated_at: str
    last_error: str | None = None
    attempts: int = 0

    @property
    def is_published(self) -> bool:
        return self.status == LedgerStatus.PUBLISHED
