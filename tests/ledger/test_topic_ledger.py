"""Tests for TopicLedger — per-topic status records."""

import json

import pytest
from tacklepub.config import StoreConfig
from tacklepub.errors import LockTimeout, StoreCorrupted
from tacklepub.ledger.models import LedgerStatus, TopicLedgerRecord
from tacklepub.ledger.store import TopicLedger
from tacklepub.locking import IndexLock


def _make_record(
    topic_key: str = "blog::redfish-tips",
    slug: str = "redfish-tips",
    status: LedgerStatus = LedgerStatus.DRAFT,
    **kwargs: object,
) -> TopicLedgerRecord:
    return TopicLedgerRecord(
        topic_key=topic_key,
        page_type="blog",
        slug=slug,
        status=status,
        last_updated_at="2026-01-01T00:00:00+00:00",
        **kwargs,  # type: ignore[arg-type]
    )


class TestLoad:
    def test_missing_file_is_empty(self, store_config: StoreConfig):
        assert TopicLedger(store_config).all() == []

    def test_corrupt_file_fails_closed(self, store_config: StoreConfig):
        store_config.ledger_path.parent.mkdir(parents=True)
        store_config.ledger_path.write_text("{oops", encoding="utf-8")

        with pytest.raises(StoreCorrupted):
            TopicLedger(store_config).all()

    def test_wrong_shape_fails_closed(self, store_config: StoreConfig):
        store_config.ledger_path.parent.mkdir(parents=True)
        store_config.ledger_path.write_text('[{"topicKey": 1}]', encoding="utf-8")

        with pytest.raises(StoreCorrupted):
            TopicLedger(store_config).get("blog::x")


class TestUpsert:
    def test_inserts_and_persists_camel_case(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        ledger.upsert(_make_record())

        data = json.loads(store_config.ledger_path.read_text(encoding="utf-8"))
        assert data[0]["topicKey"] == "blog::redfish-tips"
        assert data[0]["status"] == "draft"

    def test_merges_only_set_fields(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        ledger.upsert(_make_record(content_hash="abc", sources_used=["https://a"]))
        ledger.upsert(
            TopicLedgerRecord(
                topic_key="blog::redfish-tips",
                page_type="blog",
                status=LedgerStatus.PUBLISHED,
                last_updated_at="2026-01-02T00:00:00+00:00",
            )
        )

        record = ledger.get("blog::redfish-tips")
        assert record is not None
        assert record.status == LedgerStatus.PUBLISHED
        assert record.slug == "redfish-tips"
        assert record.content_hash == "abc"
        assert record.sources_used == ["https://a"]
        assert len(ledger.all()) == 1

    def test_bumps_last_updated(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        stored = ledger.upsert(_make_record())
        assert stored.last_updated_at != "2026-01-01T00:00:00+00:00"

    def test_runs_under_lock_when_given(self, store_config: StoreConfig):
        lock = IndexLock(store_config)
        ledger = TopicLedger(store_config, lock)
        lock.acquire()

        with pytest.raises(LockTimeout):
            ledger.upsert(_make_record())
        assert not store_config.ledger_path.exists()


class TestMarkPublished:
    def test_sets_published_and_clears_error(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        ledger.mark_failed("blog::redfish-tips", "boom")

        record = ledger.mark_published(
            "blog::redfish-tips", "redfish-tips", "hash1", ["https://src"], [3, 1, 2]
        )

        assert record.status == LedgerStatus.PUBLISHED
        assert record.last_error is None
        assert record.content_hash == "hash1"
        assert record.fingerprint == [3, 1, 2]
        assert record.last_published_at is not None
        assert record.page_type == "blog"
        assert record.attempts == 1

    def test_page_type_from_topic_key(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        record = ledger.mark_published("howto::tie-a-knot", "tie-a-knot", "h", [])
        assert record.page_type == "how-to"

    def test_find_published_by_slug(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        ledger.mark_published("blog::redfish-tips", "redfish-tips", "h", [])
        ledger.upsert(_make_record(topic_key="blog::other", slug="other"))

        assert ledger.find_published_by_slug("blog", "redfish-tips").topic_key == (
            "blog::redfish-tips"
        )
        assert ledger.find_published_by_slug("blog", "other") is None
        assert ledger.find_published_by_slug("how-to", "redfish-tips") is None
        assert [r.topic_key for r in ledger.published()] == ["blog::redfish-tips"]


class TestMarkFailed:
    def test_creates_failed_record(self, store_config: StoreConfig):
        record = TopicLedger(store_config).mark_failed("species::snook::global", "gate")

        assert record.status == LedgerStatus.FAILED
        assert record.last_error == "gate"
        assert record.attempts == 1
        assert record.page_type == "species"

    def test_increments_attempts_and_keeps_prior_publish(self, store_config: StoreConfig):
        ledger = TopicLedger(store_config)
        published = ledger.mark_published("blog::redfish-tips", "redfish-tips", "h1", [])
        ledger.mark_failed("blog::redfish-tips", "first")
        record = ledger.mark_failed("blog::redfish-tips", "second")

        assert record.attempts == 2
        assert record.last_error == "second"
        assert record.slug == "redfish-tips"
        assert record.content_hash == "h1"
        assert record.last_published_at == published.last_published_at
        assert ledger.find_published_by_slug("blog", "redfish-tips") is None
