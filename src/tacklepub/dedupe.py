"""Exact and near-duplicate detection against the topic ledger.

``content_hash`` is authoritative: two bodies that normalize to the
same text are duplicates.  Near-duplicates are found with a bottom-k
MinHash sketch of the body's word tokens, stored on each ledger record,
so similarity can be estimated without keeping full bodies around.
"""

from __future__ import annotations

import hashlib
import logging
import re

from pydantic import BaseModel

from tacklepub.content.models import PageType
from tacklepub.ledger.store import TopicLedger

logger = logging.getLogger(__name__)

FINGERPRINT_SIZE = 128
DEFAULT_SIMILARITY_THRESHOLD = 0.85

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")


class DuplicateCheck(BaseModel):
    is_duplicate: bool
    similar_topic_key: str | None = None
    similarity: float = 0.0
    exact: bool = False


def normalize_text_for_hash(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _PUNCTUATION_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", text).strip()


def content_hash(text: str) -> str:
    """SHA-256 hex digest of the normalized text."""
    return hashlib.sha256(normalize_text_for_hash(text).encode("utf-8")).hexdigest()


def _tokens(text: str) -> set[str]:
    return set(normalize_text_for_hash(text).split())


def _token_hash(token: str) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big")


def fingerprint(text: str, size: int = FINGERPRINT_SIZE) -> list[int]:
    """Bottom-k MinHash sketch: the ``size`` smallest token hashes, sorted."""
    return sorted({_token_hash(t) for t in _tokens(text)})[:size]


def estimate_similarity(a: list[int], b: list[int], size: int = FINGERPRINT_SIZE) -> float:
    """Estimate Jaccard similarity of two token sets from their sketches."""
    if not a or not b:
        return 0.0
    set_a, set_b = set(a), set(b)
    union_bottom = sorted(set_a | set_b)[:size]
    if not union_bottom:
        return 0.0
    shared = sum(1 for h in union_bottom if h in set_a and h in set_b)
    return shared / len(union_bottom)


def calculate_similarity(text1: str, text2: str) -> float:
    """Exact Jaccard similarity of the word-token sets of two texts."""
    words1, words2 = _tokens(text1), _tokens(text2)
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


class Deduplicator:
    """Answers duplicate/collision questions from ledger state."""

    def __init__(self, ledger: TopicLedger) -> None:
        self.ledger = ledger

    def is_near_duplicate(
        self,
        text: str,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        exclude_topic_key: str | None = None,
    ) -> DuplicateCheck:
        """Compare ``text`` against every ledger record that has a hash.

        An exact normalized-hash match wins outright.  Otherwise the
        record with the highest estimated similarity at or above
        ``threshold`` is reported.  ``exclude_topic_key`` skips the
        caller's own record so a republish never matches itself.
        """
        digest = content_hash(text)
        sketch = fingerprint(text)
        best: DuplicateCheck = DuplicateCheck(is_duplicate=False)

        for record in self.ledger.all():
            if record.topic_key == exclude_topic_key or not record.content_hash:
                continue
            if record.content_hash == digest:
                return DuplicateCheck(
                    is_duplicate=True,
                    similar_topic_key=record.topic_key,
                    similarity=1.0,
                    exact=True,
                )
            similarity = estimate_similarity(sketch, record.fingerprint)
            if similarity >= threshold and similarity > best.similarity:
                best = DuplicateCheck(
                    is_duplicate=True,
                    similar_topic_key=record.topic_key,
                    similarity=similarity,
                )

        if best.is_duplicate:
            logger.info(
                "Near-duplicate of %s (similarity %.2f)", best.similar_topic_key, best.similarity
            )
        return best

    def topic_key_exists(self, topic_key: str) -> bool:
        """True only if the topic is currently published."""
        record = self.ledger.get(topic_key)
        return record is not None and record.is_published

    def resolve_slug_collision(
        self, desired_slug: str, page_type: PageType | str, topic_key: str | None = None
    ) -> str:
        """Return ``desired_slug`` or the first free ``<slug>-N`` (N >= 2).

        A slug already owned by ``topic_key`` itself is not a collision.
        """
        owned = {
            r.slug: r.topic_key
            for r in self.ledger.published()
            if r.page_type == page_type
        }
        candidate = desired_slug
        counter = 2
        while candidate in owned and owned[candidate] != topic_key:
            candidate = f"{desired_slug}-{counter}"
            counter += 1
        if candidate != desired_slug:
            logger.info("Slug collision: %s -> %s", desired_slug, candidate)
        return candidate
