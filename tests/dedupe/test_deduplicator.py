"""Tests for content hashing, fingerprints and the Deduplicator."""

import pytest
from tacklepub.config import StoreConfig
from tacklepub.dedupe import (
    FINGERPRINT_SIZE,
    Deduplicator,
    calculate_similarity,
    content_hash,
    estimate_similarity,
    fingerprint,
    normalize_text_for_hash,
)
from tacklepub.ledger.store import TopicLedger


@pytest.fixture
def text(words_factory):
    def build(start: int, count: int = 400) -> str:
        return " ".join(words_factory(count, start))

    return build


class TestHashing:
    def test_normalize_strips_case_punctuation_and_whitespace(self):
        assert normalize_text_for_hash("  Hello,   World!\n\nAgain. ") == "hello world again"

    def test_hash_ignores_formatting_differences(self):
        assert content_hash("Redfish love  tides.") == content_hash("redfish LOVE tides")

    def test_hash_differs_for_different_words(self):
        assert content_hash("redfish") != content_hash("snook")

    def test_hash_is_sha256_hex(self):
        assert len(content_hash("x")) == 64


class TestSimilarity:
    def test_jaccard_of_identical_text(self):
        assert calculate_similarity("a b c", "c b a") == 1.0

    def test_jaccard_of_partial_overlap(self):
        assert calculate_similarity("a b c d", "c d e f") == pytest.approx(2 / 6)

    def test_jaccard_of_empty_text(self):
        assert calculate_similarity("", "") == 0.0

    def test_fingerprint_is_bounded_and_sorted(self, text):
        sketch = fingerprint(text(0, 1000))
        assert len(sketch) == FINGERPRINT_SIZE
        assert sketch == sorted(sketch)

    def test_estimate_for_identical_text(self, text):
        sketch = fingerprint(text(0))
        assert estimate_similarity(sketch, sketch) == 1.0

    def test_estimate_for_disjoint_text(self, text):
        assert estimate_similarity(fingerprint(text(0)), fingerprint(text(5000))) == 0.0

    def test_estimate_tracks_jaccard(self, text):
        a, b = text(0, 1000), text(100, 1000)
        exact = calculate_similarity(a, b)
        assert estimate_similarity(fingerprint(a), fingerprint(b)) == pytest.approx(exact, abs=0.15)

    def test_estimate_with_empty_sketch(self):
        assert estimate_similarity([], [1, 2]) == 0.0


class TestDeduplicator:
    def _publish(self, ledger: TopicLedger, topic_key: str, slug: str, text: str) -> None:
        ledger.mark_published(topic_key, slug, content_hash(text), [], fingerprint(text))

    def test_exact_match_wins(self, store_config: StoreConfig, text):
        ledger = TopicLedger(store_config)
        self._publish(ledger, "blog::a", "a", text(0))

        check = Deduplicator(ledger).is_near_duplicate(text(0).upper())

        assert check.is_duplicate and check.exact
        assert check.similar_topic_key == "blog::a"
        assert check.similarity == 1.0

    def test_near_duplicate_above_threshold(self, store_config: StoreConfig, text):
        ledger = TopicLedger(store_config)
        self._publish(ledger, "blog::a", "a", text(0, 1000))

        check = Deduplicator(ledger).is_near_duplicate(text(10, 1000), threshold=0.85)

        assert check.is_duplicate
        assert not check.exact
        assert check.similar_topic_key == "blog::a"

    def test_unrelated_text_is_not_duplicate(self, store_config: StoreConfig, text):
        ledger = TopicLedger(store_config)
        self._publish(ledger, "blog::a", "a", text(0))

        check = Deduplicator(ledger).is_near_duplicate(text(5000))

        assert check.is_duplicate is False
        assert check.similar_topic_key is None

    def test_excludes_own_topic(self, store_config: StoreConfig, text):
        ledger = TopicLedger(store_config)
        self._publish(ledger, "blog::a", "a", text(0))

        check = Deduplicator(ledger).is_near_duplicate(text(0), exclude_topic_key="blog::a")
        assert check.is_duplicate is False

    def test_topic_key_exists_only_when_published(self, store_config: StoreConfig, text):
        ledger = TopicLedger(store_config)
        dedupe = Deduplicator(ledger)
        ledger.mark_failed("blog::b", "boom")
        self._publish(ledger, "blog::a", "a", text(0))

        assert dedupe.topic_key_exists("blog::a") is True
        assert dedupe.topic_key_exists("blog::b") is False
        assert dedupe.topic_key_exists("blog::c") is False


class TestSlugCollision:
    def test_free_slug_is_returned_unchanged(self, store_config: StoreConfig):
        dedupe = Deduplicator(TopicLedger(store_config))
        assert dedupe.resolve_slug_collision("redfish", "blog") == "redfish"

    def test_appends_first_free_suffix(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        ledger.mark_published("blog::redfish", "redfish", "h1", [])
        ledger.mark_published("blog::redfish-again", "redfish-2", "h2", [])

        assert Deduplicator(ledger).resolve_slug_collision("redfish", "blog") == "redfish-3"

    def test_own_slug_is_not_a_collision(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        ledger.mark_published("blog::redfish", "redfish", "h1", [])

        dedupe = Deduplicator(ledger)
        assert dedupe.resolve_slug_collision("redfish", "blog", "blog::redfish") == "redfish"

    def test_other_page_types_do_not_collide(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        ledger.mark_published("species::redfish::global", "redfish", "h1", [])

        assert Deduplicator(ledger).resolve_slug_collision("redfish", "blog") == "redfish"
