"""Publish coordination: the commit state machine and its post-publish collaborators."""

from tacklepub.publish.coordinator import PublishCoordinator, PublishResult, PublishState
from tacklepub.publish.links import LinkSuggestion, suggest_links
from tacklepub.publish.revalidation import RevalidationClient, paths_for

__all__ = [
    "LinkSuggestion",
    "PublishCoordinator",
    "PublishResult",
    "PublishState",
    "RevalidationClient",
    "paths_for",
    "suggest_links",
]
