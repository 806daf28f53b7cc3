"""Error taxonomy for the publish subsystem.

Every error carries a stable ``code`` so the publish metrics can
classify failures without string matching.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from tacklepub.quality.models import QualityGateResult


class TacklepubError(Exception):
    """Base error for the publish subsystem."""

    code = "other"


class ValidationError(TacklepubError):
    """A document is missing or has malformed required fields."""

    code = "validation"

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = list(errors or [])
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


class QualityGateBlocked(TacklepubError):
    """The quality gate rejected a document."""

    code = "quality_gate"

    def __init__(self, slug: str, result: QualityGateResult) -> None:
        self.slug = slug
        self.result = result
        super().__init__(
            f"Quality gate blocked '{slug}': " + "; ".join(result.errors)
        )

    @property
    def reasons(self) -> list[str]:
        return list(self.result.errors)


class WriteVerificationFailed(TacklepubError):
    """Read-back of a freshly written temp file did not match."""

    code = "write"

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Write verification failed for {path}")


class NotFound(TacklepubError):
    """A file the caller asked for does not exist."""

    code = "not_found"

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"File not found: {path}")


class LockTimeout(TacklepubError):
    """The index lock could not be acquired in time."""

    code = "lock"

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(
            f"Failed to acquire index lock within {timeout:.1f}s. "
            "Another process may be updating the index."
        )


class OwnershipVerificationFailed(TacklepubError):
    """A lock holder tried to release a lock it no longer owns."""

    code = "lock"

    def __init__(self, expected_lock_id: str, actual_lock_id: str, owner: str) -> None:
        self.expected_lock_id = expected_lock_id
        self.actual_lock_id = actual_lock_id
        self.owner = owner
        super().__init__(
            "Cannot release lock: ownership verification failed. "
            f"Expected lock_id={expected_lock_id!r}, got {actual_lock_id!r} "
            f"(owned by {owner})"
        )


class SlugTopicKeyConflict(TacklepubError):
    """Two distinct topics want the same slug."""

    code = "conflict"

    def __init__(self, slug: str, topic_key: str, owner_topic_key: str) -> None:
        self.slug = slug
        self.topic_key = topic_key
        self.owner_topic_key = owner_topic_key
        super().__init__(
            f"Slug '{slug}' is owned by topic {owner_topic_key!r}; "
            f"refusing to publish {topic_key!r} over it"
        )


class TopicSlugChanged(TacklepubError):
    """A topic already live under one slug is being published under another."""

    code = "conflict"

    def __init__(self, topic_key: str, current_slug: str, slug: str) -> None:
        self.topic_key = topic_key
        self.current_slug = current_slug
        self.slug = slug
        super().__init__(
            f"Topic {topic_key!r} is live as '{current_slug}'; "
            f"refusing to republish it as '{slug}'"
        )


class IndexRecoveryExhausted(TacklepubError):
    """Primary, backup and rebuild-from-source all failed."""

    code = "index_update"


class JobNotFound(TacklepubError):
    """No job with the given id exists in the queue."""

    code = "other"

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class StoreCorrupted(TacklepubError):
    """A persisted store file exists but cannot be decoded."""

    code = "other"

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"Store file {path} is corrupt: {reason}")


class DuplicateContent(TacklepubError):
    """The body is identical to one already published under another topic."""

    code = "conflict"

    def __init__(self, topic_key: str, duplicate_of: str) -> None:
        self.topic_key = topic_key
        self.duplicate_of = duplicate_of
        super().__init__(
            f"Content for {topic_key!r} duplicates already-published topic {duplicate_of!r}"
        )
