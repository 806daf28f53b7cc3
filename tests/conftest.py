"""Shared fixtures: an isolated content root and document factories."""

from pathlib import Path
from typing import Any

import pytest
from tacklepub.config import RevalidationConfig, StoreConfig, TacklepubConfig
from tacklepub.content.models import Document, PageType

# Filler words are built from these syllables only, so generated text can
# never spell a month, a keyword or any phrase the quality gate looks for.
_CONSONANTS = "bdfgklrtvz"
_VOWELS = "aiu"
_SYLLABLES = [c + v for c in _CONSONANTS for v in _VOWELS]
_SENTENCE_LENGTHS = (5, 12, 8, 19, 6, 14, 9, 23)
_WORDS_PER_SEED = 1500


def filler_words(count: int, start: int = 0) -> list[str]:
    """``count`` distinct six-letter words, starting at word number ``start``."""
    n = len(_SYLLABLES)
    return [
        _SYLLABLES[(i // (n * n)) % n] + _SYLLABLES[(i // n) % n] + _SYLLABLES[i % n]
        for i in range(start, start + count)
    ]


def make_body(words: int = 1300, seed: int = 0) -> str:
    """A body that passes the quality gate for every page type.

    Bodies with different ``seed`` values share no filler words.
    """
    filler = filler_words(words, seed * _WORDS_PER_SEED)
    sentences = []
    pos = 0
    k = 0
    while pos < len(filler):
        length = _SENTENCE_LENGTHS[k % len(_SENTENCE_LENGTHS)]
        sentences.append(" ".join(filler[pos : pos + length]).capitalize() + ".")
        pos += length
        k += 1
    paragraphs = [" ".join(sentences[i : i + 8]) for i in range(0, len(sentences), 8)]

    intro = "Download Tackle for real-time tide charts before you head out."
    steps = "\n".join(
        [
            "Step 1: Check the tide chart.",
            "Step 2: Rig a light leader.",
            "Step 3: Work the edges slowly.",
        ]
    )
    outro = "See local regulations before every trip. Download Tackle to plan the next outing."
    return "\n\n".join([intro, *paragraphs[:2], steps, *paragraphs[2:], outro])


def make_raw_document(
    slug: str = "redfish-tips",
    page_type: PageType | str = PageType.BLOG,
    *,
    seed: int = 0,
    words: int = 1300,
    **overrides: Any,
) -> dict[str, Any]:
    """Camel-cased document JSON with sensible defaults; ``overrides`` win."""
    page_type = PageType(page_type)
    raw: dict[str, Any] = {
        "id": f"{page_type}-{slug}",
        "slug": slug,
        "pageType": str(page_type),
        "title": slug.replace("-", " ").title(),
        "description": f"Everything about {slug.replace('-', ' ')}.",
        "body": make_body(words, seed),
        "primaryKeyword": "redfish",
        "secondaryKeywords": ["inshore fishing"],
        "headings": [{"level": 2, "text": "Getting started"}],
        "faqs": [],
        "sources": [{"label": "State agency", "url": "https://example.org/agency"}],
        "related": {},
        "author": {"name": "Tackle Team"},
        "dates": {
            "publishedAt": "2026-01-05T12:00:00Z",
            "updatedAt": "2026-01-05T12:00:00Z",
        },
        "flags": {"draft": False, "noindex": False},
    }
    if page_type == PageType.BLOG:
        raw["categorySlug"] = "inshore"
        raw["tags"] = ["redfish", "inshore"]
    elif page_type == PageType.HOW_TO:
        raw["category"] = "rigging"
    elif page_type == PageType.SPECIES:
        raw["speciesMeta"] = {"scientificName": "Sciaenops ocellatus"}
    elif page_type == PageType.LOCATION:
        raw["stateSlug"] = "fl"
        raw["citySlug"] = slug
    raw.update(overrides)
    return raw


def make_document(
    slug: str = "redfish-tips",
    page_type: PageType | str = PageType.BLOG,
    **kwargs: Any,
) -> Document:
    return Document.model_validate(make_raw_document(slug, page_type, **kwargs))


@pytest.fixture
def store_config(tmp_path: Path) -> StoreConfig:
    return StoreConfig(
        root_dir=tmp_path / "content",
        lock_timeout=0.5,
        lock_poll_interval=0.01,
    )


@pytest.fixture
def config(store_config: StoreConfig) -> TacklepubConfig:
    return TacklepubConfig(
        store=store_config,
        revalidation=RevalidationConfig(enabled=False),
    )


@pytest.fixture
def doc_factory():
    """Build a validated ``Document``; see ``make_raw_document`` for arguments."""
    return make_document


@pytest.fixture
def raw_doc_factory():
    return make_raw_document


@pytest.fixture
def body_factory():
    return make_body


@pytest.fixture
def words_factory():
    return filler_words
