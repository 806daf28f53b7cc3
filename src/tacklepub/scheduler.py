"""Priority job queue with a daily publish cap and failure circuit breaker.

The queue is one flat JSON array of jobs rewritten through the atomic
file store.  It is meant for a single batch runner; it takes no lock.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum

import pydantic
from pydantic import Field, field_validator

from tacklepub.config import PipelineConfig, StoreConfig
from tacklepub.content.models import CamelModel, PageType
from tacklepub.errors import JobNotFound, NotFound, StoreCorrupted, ValidationError
from tacklepub.storage import AtomicFileStore, dump_json

logger = logging.getLogger(__name__)


class JobStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


class JobOutputs(CamelModel):
    slug: str | None = None
    url: str | None = None
    errors: list[str] | None = None


class Job(CamelModel):
    job_id: str
    type: PageType
    topic_key: str
    status: JobStatus = JobStatus.PENDING
    priority: int = Field(default=5, ge=1, le=10)
    attempts: int = 0
    max_attempts: int = 3
    last_error: str | None = None
    scheduled_at: datetime
    run_at: datetime | None = None
    completed_at: datetime | None = None
    outputs: JobOutputs | None = None

    @field_validator("scheduled_at", "run_at", "completed_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        """Naive stamps are taken as UTC; aware ones are converted to it."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def last_activity(self) -> datetime:
        return self.completed_at or self.run_at or self.scheduled_at


_jobs_adapter = pydantic.TypeAdapter(list[Job])


def calculate_priority(page_type: PageType | str, topic_key: str) -> int:
    """Default priority for a new job (higher runs first)."""
    if page_type == PageType.HOW_TO and "beginner" in topic_key:
        return 10
    if page_type == PageType.LOCATION and topic_key.split("::")[1:2] == ["fl"]:
        return 9
    if page_type == PageType.SPECIES:
        return 8
    if page_type == PageType.BLOG:
        return 7
    return 5


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class JobScheduler:
    """Persisted job queue."""

    def __init__(
        self,
        config: StoreConfig,
        pipeline: PipelineConfig | None = None,
        files: AtomicFileStore | None = None,
        *,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.path = config.job_queue_path
        self.pipeline = pipeline or PipelineConfig()
        self.files = files or AtomicFileStore()
        self._now = now

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> list[Job]:
        try:
            raw = self.files.read_json(self.path)
        except NotFound:
            return []
        except json.JSONDecodeError as exc:
            raise StoreCorrupted(self.path, str(exc)) from exc
        try:
            return _jobs_adapter.validate_python(raw)
        except pydantic.ValidationError as exc:
            raise StoreCorrupted(self.path, str(exc)) from exc

    def _save(self, jobs: list[Job]) -> None:
        self.files.write(self.path, dump_json(jobs) if jobs else b"[]")

    def _stamp(self) -> datetime:
        return self._now().astimezone(UTC)

    # ── Queue operations ─────────────────────────────────────────

    def add_job(
        self,
        page_type: PageType | str,
        topic_key: str,
        priority: int | None = None,
        scheduled_at: datetime | str | None = None,
        max_attempts: int = 3,
    ) -> Job:
        """Append a pending job with a fresh id.

        Raises:
            ValidationError: a field (priority, ``scheduled_at``) is invalid;
                the queue is left untouched.
        """
        if priority is None:
            priority = calculate_priority(page_type, topic_key)
        try:
            job = Job(
                job_id=str(uuid.uuid4()),
                type=PageType(page_type),
                topic_key=topic_key,
                priority=priority,
                max_attempts=max_attempts,
                scheduled_at=scheduled_at or self._stamp(),
            )
        except pydantic.ValidationError as exc:
            errors = [f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()]
            raise ValidationError(f"Invalid job for {topic_key}", errors) from exc
        jobs = self._load()
        jobs.append(job)
        self._save(jobs)
        logger.info("Added job: %s (%s:%s)", job.job_id, job.type, job.topic_key)
        return job

    def get_job(self, job_id: str) -> Job:
        for job in self._load():
            if job.job_id == job_id:
                return job
        raise JobNotFound(job_id)

    def list_jobs(self, status: JobStatus | str | None = None) -> list[Job]:
        jobs = self._load()
        if status is None:
            return jobs
        return [j for j in jobs if j.status == status]

    def get_next_job(self) -> Job | None:
        """Highest priority pending job; ties go to the earliest ``scheduled_at``."""
        pending = self.list_jobs(JobStatus.PENDING)
        if not pending:
            return None
        pending.sort(key=lambda j: (-j.priority, j.scheduled_at))
        return pending[0]

    def update_job_status(
        self,
        job_id: str,
        status: JobStatus | str,
        error: str | None = None,
        outputs: JobOutputs | None = None,
    ) -> Job:
        """Record a status change.

        Moving to ``running`` counts an attempt and stamps ``run_at``;
        any terminal status stamps ``completed_at``.

        Raises:
            JobNotFound: no job has ``job_id``.
        """
        status = JobStatus(status)
        jobs = self._load()
        job = next((j for j in jobs if j.job_id == job_id), None)
        if job is None:
            raise JobNotFound(job_id)

        job.status = status
        if error:
            job.last_error = error
        if outputs is not None:
            job.outputs = outputs
        if status == JobStatus.RUNNING:
            job.attempts += 1
            job.run_at = self._stamp()
        elif status in TERMINAL_STATUSES:
            job.completed_at = self._stamp()

        self._save(jobs)
        logger.debug("Job %s -> %s", job_id, status)
        return job

    def requeue(self, job_id: str) -> bool:
        """Put a failed job back to pending if it has attempts left."""
        jobs = self._load()
        job = next((j for j in jobs if j.job_id == job_id), None)
        if job is None:
            raise JobNotFound(job_id)
        if job.status != JobStatus.FAILED or job.attempts >= job.max_attempts:
            return False
        job.status = JobStatus.PENDING
        job.completed_at = None
        self._save(jobs)
        logger.info("Requeued job %s (attempt %d/%d)", job_id, job.attempts, job.max_attempts)
        return True

    # ── Cadence controls ─────────────────────────────────────────

    def published_today(self) -> int:
        today = self._stamp().date()
        return sum(
            1
            for j in self._load()
            if (
                j.status == JobStatus.COMPLETED
                and j.completed_at is not None
                and j.completed_at.date() == today
            )
        )

    def can_publish_today(self) -> bool:
        """True while fewer than the daily cap of jobs completed this UTC day."""
        return self.published_today() < self.pipeline.daily_publish_cap

    def check_consecutive_failures(self) -> int:
        """Length of the failure run among the most recent terminal jobs.

        Looks at the newest ``failure_stop_threshold`` completed or
        failed jobs and counts failures until the first completion.
        """
        recent = sorted(
            (j for j in self._load() if j.status in (JobStatus.FAILED, JobStatus.COMPLETED)),
            key=lambda j: j.last_activity(),
            reverse=True,
        )[: self.pipeline.failure_stop_threshold]

        failures = 0
        for job in recent:
            if job.status != JobStatus.FAILED:
                break
            failures += 1
        return failures

    def should_halt(self) -> bool:
        return self.check_consecutive_failures() >= self.pipeline.failure_stop_threshold
