"""Internal link suggestions for a freshly published document.

Suggestions come from the content index only and are informational:
they are logged and returned, never written back into the document.
"""

from __future__ import annotations

from pydantic import BaseModel

from tacklepub.content.models import Document, PageType
from tacklepub.index.models import ContentIndex, ContentIndexEntry

MAX_SUGGESTIONS = 5


class LinkSuggestion(BaseModel):
    slug: str
    title: str
    url: str
    page_type: PageType
    reason: str | None = None


def _listable(entry: ContentIndexEntry) -> bool:
    return not (entry.flags.draft or entry.flags.noindex)


def _find_location(index: ContentIndex, ref: str) -> ContentIndexEntry | None:
    if "/" in ref:
        state, city = ref.split("/", 1)
        return next(
            (e for e in index.locations if e.state == state and e.city == city), None
        )
    return index.find(PageType.LOCATION, ref)


def suggest_links(doc: Document, index: ContentIndex) -> list[LinkSuggestion]:
    """Up to five related pages: explicit ``related`` slugs first, then same-category posts."""
    suggestions: list[LinkSuggestion] = []
    related = doc.related

    for slug in related.species_slugs[:3]:
        entry = index.find(PageType.SPECIES, slug)
        if entry and _listable(entry):
            suggestions.append(
                LinkSuggestion(
                    slug=slug,
                    title=entry.title,
                    url=f"/species/{slug}",
                    page_type=PageType.SPECIES,
                    reason=f"Learn about {entry.title}",
                )
            )

    for ref in related.location_slugs[:2]:
        entry = _find_location(index, ref)
        if entry and _listable(entry):
            suggestions.append(
                LinkSuggestion(
                    slug=entry.slug,
                    title=entry.title,
                    url=f"/locations/{entry.state}/{entry.city}",
                    page_type=PageType.LOCATION,
                    reason=f"Fishing in {entry.title}",
                )
            )

    for slug in related.how_to_slugs[:3]:
        entry = index.find(PageType.HOW_TO, slug)
        if entry and _listable(entry):
            suggestions.append(
                LinkSuggestion(
                    slug=slug,
                    title=entry.title,
                    url=f"/how-to/{slug}",
                    page_type=PageType.HOW_TO,
                    reason=f"Learn {entry.title}",
                )
            )

    for slug in related.post_slugs[:3]:
        entry = index.find(PageType.BLOG, slug)
        if entry and _listable(entry) and slug != doc.slug:
            suggestions.append(
                LinkSuggestion(
                    slug=slug,
                    title=entry.title,
                    url=f"/blog/{slug}",
                    page_type=PageType.BLOG,
                    reason=f"Related: {entry.category}",
                )
            )

    if doc.page_type == PageType.BLOG and len(suggestions) < MAX_SUGGESTIONS:
        taken = {s.slug for s in suggestions}
        for entry in index.blog_posts:
            if len(suggestions) >= MAX_SUGGESTIONS:
                break
            if (
                _listable(entry)
                and entry.slug != doc.slug
                and entry.slug not in taken
                and entry.category == doc.category_slug
            ):
                suggestions.append(
                    LinkSuggestion(
                        slug=entry.slug,
                        title=entry.title,
                        url=f"/blog/{entry.slug}",
                        page_type=PageType.BLOG,
                        reason=f"More {entry.category} tips",
                    )
                )

    return suggestions[:MAX_SUGGESTIONS]
