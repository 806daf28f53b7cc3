"""Batch runner: drain the job queue through the publish coordinator.

Jobs run one at a time.  The run stops when the queue is empty, the
daily cap is reached, or the consecutive-failure circuit breaker trips.
A failed job is recorded and the run moves on to the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, Field

from tacklepub.content.models import Document
from tacklepub.errors import TacklepubError
from tacklepub.publish.coordinator import PublishCoordinator
from tacklepub.scheduler import Job, JobOutputs, JobScheduler, JobStatus

logger = logging.getLogger(__name__)

DocumentBuilder = Callable[[Job], "Document | dict[str, Any]"]


class PublishedItem(BaseModel):
    job_id: str
    topic_key: str
    slug: str
    route: str
    state: str


class SkippedItem(BaseModel):
    job_id: str
    topic_key: str
    reason: str


class FailedItem(BaseModel):
    job_id: str
    topic_key: str
    error: str
    code: str = "other"


class BatchResult(BaseModel):
    processed: int = 0
    published: list[PublishedItem] = Field(default_factory=list)
    skipped: list[SkippedItem] = Field(default_factory=list)
    failed: list[FailedItem] = Field(default_factory=list)
    stopped_reason: str | None = None


def run_batch(
    scheduler: JobScheduler,
    coordinator: PublishCoordinator,
    build_document: DocumentBuilder,
    max_jobs: int | None = None,
) -> BatchResult:
    """Publish pending jobs in priority order.

    Args:
        scheduler: Source of jobs; also enforces the daily cap and the
            circuit breaker.
        coordinator: Commits each built document.
        build_document: Turns a job into a document (generation lives
            outside this package).
        max_jobs: Stop after this many jobs, if given.

    Returns:
        What was published, skipped and failed, and why the run stopped.
    """
    result = BatchResult()

    while max_jobs is None or result.processed < max_jobs:
        if not scheduler.can_publish_today():
            result.stopped_reason = "daily_cap"
            logger.warning(
                "Daily limit reached: %d/%d published today; stopping",
                scheduler.published_today(),
                scheduler.pipeline.daily_publish_cap,
            )
            break

        failures = scheduler.check_consecutive_failures()
        if failures >= scheduler.pipeline.failure_stop_threshold:
            result.stopped_reason = "consecutive_failures"
            logger.error("Circuit breaker: %d consecutive failures; halting batch", failures)
            break

        job = scheduler.get_next_job()
        if job is None:
            break
        result.processed += 1

        if coordinator.deduplicator.topic_key_exists(job.topic_key):
            scheduler.update_job_status(
                job.job_id, JobStatus.CANCELLED, error="Topic already published"
            )
            result.skipped.append(
                SkippedItem(
                    job_id=job.job_id, topic_key=job.topic_key, reason="Topic already published"
                )
            )
            logger.warning("Already exists, skipping: %s", job.topic_key)
            continue

        scheduler.update_job_status(job.job_id, JobStatus.RUNNING)
        logger.info("Running job %s (%s)", job.job_id, job.topic_key)

        try:
            published = coordinator.publish(build_document(job))
        except Exception as exc:
            if isinstance(exc, TacklepubError):
                code = exc.code
                logger.error("Job %s failed: %s", job.job_id, exc)
            else:
                code = "other"
                logger.exception("Job %s failed unexpectedly", job.job_id)
            scheduler.update_job_status(
                job.job_id,
                JobStatus.FAILED,
                error=str(exc),
                outputs=JobOutputs(errors=[str(exc)]),
            )
            result.failed.append(
                FailedItem(job_id=job.job_id, topic_key=job.topic_key, error=str(exc), code=code)
            )
            continue

        scheduler.update_job_status(
            job.job_id,
            JobStatus.COMPLETED,
            outputs=JobOutputs(slug=published.slug, url=published.route_path),
        )
        result.published.append(
            PublishedItem(
                job_id=job.job_id,
                topic_key=job.topic_key,
                slug=published.slug,
                route=published.route_path,
                state=published.state,
            )
        )
        logger.info("Published: %s", published.route_path)

    logger.info(
        "Batch finished: %d processed, %d published, %d skipped, %d failed",
        result.processed,
        len(result.published),
        len(result.skipped),
        len(result.failed),
    )
    return result
