"""Tests for index entry sanitization and validation."""

import pytest
from tacklepub.content.models import PageType
from tacklepub.errors import ValidationError
from tacklepub.index.sanitize import (
    MAX_KEYWORDS_IN_INDEX,
    MAX_TAGS_IN_INDEX,
    entry_from_document,
    sanitize_index_entry,
    validate_index_entry,
)


def _raw_entry(**overrides: object) -> dict:
    raw = {
        "slug": "redfish-tips",
        "title": "Redfish Tips",
        "description": "All about redfish.",
        "category": "inshore",
        "publishedAt": "2026-01-05T12:00:00Z",
    }
    raw.update(overrides)
    return raw


class TestValidateIndexEntry:
    def test_valid_entry_has_no_errors(self):
        assert validate_index_entry(_raw_entry(), PageType.BLOG) == []

    @pytest.mark.parametrize("field", ["body", "faqs", "sources", "related", "headings", "vibeTest"])
    def test_rejects_forbidden_fields(self, field: str):
        errors = validate_index_entry(_raw_entry(**{field: "x"}))
        assert any(f'"{field}"' in e for e in errors)

    def test_rejects_long_arrays(self):
        errors = validate_index_entry(
            _raw_entry(
                keywords=[f"k{i}" for i in range(MAX_KEYWORDS_IN_INDEX + 1)],
                tags=[f"t{i}" for i in range(MAX_TAGS_IN_INDEX + 1)],
            )
        )
        assert len(errors) == 2

    def test_requires_listing_fields(self):
        errors = validate_index_entry({"slug": "x"})
        assert "Missing required field: title" in errors
        assert "Missing required field: publishedAt" in errors

    def test_requires_category_for_blog_and_how_to(self):
        raw = _raw_entry(category=None)
        assert "Missing required field: category" in validate_index_entry(raw, PageType.BLOG)
        assert "Missing required field: category" in validate_index_entry(raw, PageType.HOW_TO)
        assert validate_index_entry(raw, PageType.SPECIES) == []

    def test_requires_state_and_city_for_location(self):
        errors = validate_index_entry(_raw_entry(state="fl"), PageType.LOCATION)
        assert errors == ["Missing required field: state/city"]


class TestSanitizeIndexEntry:
    def test_drops_heavy_fields_and_truncates(self):
        entry = sanitize_index_entry(
            _raw_entry(
                body="long text",
                faqs=[{"question": "q", "answer": "a"}],
                keywords=[f"k{i}" for i in range(20)],
                tags=[f"t{i}" for i in range(8)],
            )
        )

        assert len(entry.keywords) == MAX_KEYWORDS_IN_INDEX
        assert entry.tags is not None and len(entry.tags) == MAX_TAGS_IN_INDEX
        assert validate_index_entry(entry, PageType.BLOG) == []

    def test_raises_on_missing_required(self):
        with pytest.raises(ValidationError) as excinfo:
            sanitize_index_entry({"slug": "x"})
        assert excinfo.value.errors


class TestEntryFromDocument:
    def test_blog_entry(self, doc_factory):
        doc = doc_factory("redfish-tips", "blog")
        entry = entry_from_document(doc)

        assert entry.slug == "redfish-tips"
        assert entry.category == "inshore"
        assert entry.state is None
        assert entry.word_count == doc.word_count
        assert entry.author == "Tackle Team"
        assert entry.keywords == ["redfish", "inshore fishing"]

    def test_location_entry_uses_state_and_city(self, doc_factory):
        entry = entry_from_document(doc_factory("tampa", "location"))

        assert (entry.state, entry.city) == ("fl", "tampa")
        assert entry.category is None

    def test_species_entry_is_uncategorized(self, doc_factory):
        assert entry_from_document(doc_factory("snook", "species")).category == "uncategorized"
