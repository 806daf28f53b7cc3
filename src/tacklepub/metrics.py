"""Publishing and lock metrics — minimal observability on flat JSON files.

Aggregate counters are unbounded integers; event lists are rolling
windows so the files never grow without limit.  Recording is always
best effort: a metrics failure is logged and swallowed.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import Path
from typing import TypeVar

import pydantic
from pydantic import BaseModel, Field

from tacklepub.config import StoreConfig
from tacklepub.errors import NotFound
from tacklepub.storage import AtomicFileStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

MAX_RECENT_PUBLISHES = 100
MAX_RECENT_CLEANUPS = 100
MAX_RECENT_REVALIDATION_FAILURES = 50

FAILURE_CATEGORIES = (
    "validation",
    "quality_gate",
    "conflict",
    "write",
    "lock",
    "index_update",
    "other",
)


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


class PublishStatus(StrEnum):
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILURE = "failure"
    QUARANTINED = "quarantined"


class PublishEvent(BaseModel):
    timestamp: str = Field(default_factory=_now)
    slug: str
    page_type: str
    status: PublishStatus
    duration_ms: float
    failure_reason: str | None = None
    failure_code: str | None = None


class PublishSummary(BaseModel):
    total_attempts: int = 0
    total_successes: int = 0
    total_skipped: int = 0
    total_failures: int = 0
    total_quarantined: int = 0
    average_publish_time_ms: float = 0.0


class RevalidationFailure(BaseModel):
    timestamp: str = Field(default_factory=_now)
    paths: list[str]
    error: str
    retry_attempt: int = 0


class RevalidationMetrics(BaseModel):
    total_attempts: int = 0
    total_successes: int = 0
    total_failures: int = 0
    recent_failures: list[RevalidationFailure] = Field(default_factory=list)


class PublishMetrics(BaseModel):
    version: str = "1.0.0"
    last_updated: str = Field(default_factory=_now)
    summary: PublishSummary = Field(default_factory=PublishSummary)
    failures: dict[str, int] = Field(
        default_factory=lambda: dict.fromkeys(FAILURE_CATEGORIES, 0)
    )
    revalidation: RevalidationMetrics = Field(default_factory=RevalidationMetrics)
    recent_publishes: list[PublishEvent] = Field(default_factory=list)


class LockCleanupEvent(BaseModel):
    timestamp: str = Field(default_factory=_now)
    lock_id: str
    process_id: str
    created_at: str
    age_ms: float


class LockMetrics(BaseModel):
    version: str = "1.0.0"
    last_updated: str = Field(default_factory=_now)
    total_cleanups: int = 0
    recent_cleanups: list[LockCleanupEvent] = Field(default_factory=list)


def categorize_failure(code: str | None) -> str:
    """Map an error code onto a failure taxonomy bucket."""
    return code if code in FAILURE_CATEGORIES else "other"


class MetricsRecorder:
    """Append-style recorder for publish, revalidation and lock events."""

    def __init__(self, config: StoreConfig, files: AtomicFileStore | None = None) -> None:
        self.config = config
        self.files = files or AtomicFileStore()

    # ── Private helpers ──────────────────────────────────────────

    def _load(self, path: Path, model: type[M]) -> M:
        try:
            return model.model_validate(self.files.read_json(path))
        except NotFound:
            return model()
        except (json.JSONDecodeError, pydantic.ValidationError, OSError):
            logger.warning("Corrupt metrics file at %s, starting fresh", path)
            return model()

    def _save(self, path: Path, metrics: BaseModel) -> None:
        self.files.write(path, metrics.model_dump_json(indent=2).encode("utf-8"))

    # ── Publish metrics ──────────────────────────────────────────

    def load_publish_metrics(self) -> PublishMetrics:
        return self._load(self.config.publish_metrics_path, PublishMetrics)

    def record_publish(
        self,
        slug: str,
        page_type: str,
        status: PublishStatus,
        duration_ms: float,
        failure_reason: str | None = None,
        failure_code: str | None = None,
    ) -> None:
        """Record one publish attempt. Never raises."""
        try:
            metrics = self.load_publish_metrics()
            summary = metrics.summary
            summary.total_attempts += 1

            if status == PublishStatus.SUCCESS:
                summary.total_successes += 1
                n = summary.total_successes
                summary.average_publish_time_ms = (
                    summary.average_publish_time_ms * (n - 1) + duration_ms
                ) / n
            elif status == PublishStatus.SKIPPED:
                summary.total_skipped += 1
            elif status == PublishStatus.QUARANTINED:
                summary.total_quarantined += 1
            else:
                summary.total_failures += 1
                bucket = categorize_failure(failure_code)
                metrics.failures[bucket] = metrics.failures.get(bucket, 0) + 1

            metrics.recent_publishes.insert(
                0,
                PublishEvent(
                    slug=slug,
                    page_type=page_type,
                    status=status,
                    duration_ms=round(duration_ms, 3),
                    failure_reason=failure_reason,
                    failure_code=failure_code,
                ),
            )
            del metrics.recent_publishes[MAX_RECENT_PUBLISHES:]
            metrics.last_updated = _now()
            self._save(self.config.publish_metrics_path, metrics)
        except Exception:
            logger.warning("Failed to record publish metric for %s", slug, exc_info=True)

    def record_revalidation(
        self, paths: list[str], error: str | None = None, retry_attempt: int = 0
    ) -> None:
        """Record a revalidation outcome (``error`` None means success)."""
        try:
            metrics = self.load_publish_metrics()
            reval = metrics.revalidation
            reval.total_attempts += 1
            if error is None:
                reval.total_successes += 1
            else:
                reval.total_failures += 1
                reval.recent_failures.insert(
                    0,
                    RevalidationFailure(paths=list(paths), error=error, retry_attempt=retry_attempt),
                )
                del reval.recent_failures[MAX_RECENT_REVALIDATION_FAILURES:]
            metrics.last_updated = _now()
            self._save(self.config.publish_metrics_path, metrics)
        except Exception:
            logger.warning("Failed to record revalidation metric", exc_info=True)

    # ── Lock metrics ─────────────────────────────────────────────

    def load_lock_metrics(self) -> LockMetrics:
        return self._load(self.config.lock_metrics_path, LockMetrics)

    def record_lock_cleanup(
        self, lock_id: str, process_id: str, created_at: str, age_ms: float
    ) -> None:
        """Record that a stale lock was forcibly removed. Never raises."""
        try:
            metrics = self.load_lock_metrics()
            metrics.total_cleanups += 1
            metrics.recent_cleanups.insert(
                0,
                LockCleanupEvent(
                    lock_id=lock_id,
                    process_id=process_id,
                    created_at=created_at,
                    age_ms=age_ms,
                ),
            )
            del metrics.recent_cleanups[MAX_RECENT_CLEANUPS:]
            metrics.last_updated = _now()
            self._save(self.config.lock_metrics_path, metrics)
            logger.info(
                "Recorded lock cleanup event: lock_id=%s, age=%ds", lock_id, age_ms / 1000
            )
        except Exception:
            logger.warning("Failed to record lock cleanup event", exc_info=True)
