"""Tests for the persisted job queue, daily cap and circuit breaker."""

import json
from datetime import UTC, datetime, timedelta

import pytest
from tacklepub.config import PipelineConfig, StoreConfig
from tacklepub.errors import JobNotFound, StoreCorrupted, ValidationError
from tacklepub.scheduler import JobOutputs, JobScheduler, JobStatus, calculate_priority


class SteppingClock:
    """Returns a time one second later on every call."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC))


@pytest.fixture
def scheduler(store_config: StoreConfig, clock: SteppingClock) -> JobScheduler:
    return JobScheduler(store_config, PipelineConfig(daily_publish_cap=2), now=clock)


def _finish(scheduler: JobScheduler, status: JobStatus, topic_key: str = "blog::post") -> None:
    job = scheduler.add_job("blog", topic_key)
    scheduler.update_job_status(job.job_id, JobStatus.RUNNING)
    scheduler.update_job_status(job.job_id, status, error="boom" if status == "failed" else None)


class TestCalculatePriority:
    @pytest.mark.parametrize(
        ("page_type", "topic_key", "expected"),
        [
            ("how-to", "howto::beginner-knots", 10),
            ("how-to", "howto::advanced-knots", 5),
            ("location", "location::fl::tampa", 9),
            ("location", "location::ga::savannah", 5),
            ("location", "location::fla::tampa", 5),
            ("species", "species::snook::global", 8),
            ("blog", "blog::redfish-tips", 7),
        ],
    )
    def test_defaults(self, page_type: str, topic_key: str, expected: int):
        assert calculate_priority(page_type, topic_key) == expected


class TestQueue:
    def test_add_job_persists_pending(self, scheduler: JobScheduler, store_config: StoreConfig):
        job = scheduler.add_job("species", "species::snook::global")

        assert job.status == JobStatus.PENDING
        assert job.priority == 8
        assert job.attempts == 0
        assert store_config.job_queue_path.exists()
        assert scheduler.get_job(job.job_id) == job

    def test_explicit_priority_wins(self, scheduler: JobScheduler):
        assert scheduler.add_job("blog", "blog::x", priority=2).priority == 2

    def test_next_job_by_priority_then_age(self, scheduler: JobScheduler):
        scheduler.add_job("blog", "blog::older")
        scheduler.add_job("species", "species::snook::global")
        scheduler.add_job("blog", "blog::newer")

        assert scheduler.get_next_job().topic_key == "species::snook::global"
        first = scheduler.get_next_job()
        scheduler.update_job_status(first.job_id, JobStatus.RUNNING)
        assert scheduler.get_next_job().topic_key == "blog::older"

    def test_naive_scheduled_at_is_taken_as_utc(self, scheduler: JobScheduler):
        naive = scheduler.add_job("blog", "blog::naive", scheduled_at="2026-03-01T08:00:00")
        scheduler.add_job("blog", "blog::offset", scheduled_at="2026-03-01T09:30:00+02:00")

        assert naive.scheduled_at == datetime(2026, 3, 1, 8, 0, tzinfo=UTC)
        assert scheduler.get_job(naive.job_id).scheduled_at == naive.scheduled_at
        assert scheduler.get_next_job().topic_key == "blog::offset"

    def test_mixed_stamps_on_disk_still_order(
        self, scheduler: JobScheduler, store_config: StoreConfig
    ):
        jobs = [
            {"jobId": job_id, "type": "blog", "topicKey": f"blog::{job_id}", "scheduledAt": stamp}
            for job_id, stamp in (("a", "2026-03-01T10:00:00"), ("b", "2026-03-01T09:00:00Z"))
        ]
        store_config.job_queue_path.parent.mkdir(parents=True)
        store_config.job_queue_path.write_text(json.dumps(jobs), encoding="utf-8")

        assert scheduler.get_next_job().job_id == "b"

    def test_invalid_scheduled_at_leaves_queue_untouched(self, scheduler: JobScheduler):
        scheduler.add_job("blog", "blog::kept")

        with pytest.raises(ValidationError) as excinfo:
            scheduler.add_job("blog", "blog::bad", scheduled_at="tomorrow")

        assert any("scheduled" in e for e in excinfo.value.errors)
        assert [j.topic_key for j in scheduler.list_jobs()] == ["blog::kept"]
        assert scheduler.get_next_job().topic_key == "blog::kept"

    def test_next_job_empty_queue(self, scheduler: JobScheduler):
        assert scheduler.get_next_job() is None

    def test_list_by_status(self, scheduler: JobScheduler):
        job = scheduler.add_job("blog", "blog::a")
        scheduler.add_job("blog", "blog::b")
        scheduler.update_job_status(job.job_id, JobStatus.RUNNING)

        assert [j.topic_key for j in scheduler.list_jobs(JobStatus.PENDING)] == ["blog::b"]
        assert len(scheduler.list_jobs()) == 2

    def test_missing_job_raises(self, scheduler: JobScheduler):
        with pytest.raises(JobNotFound):
            scheduler.get_job("nope")
        with pytest.raises(JobNotFound):
            scheduler.update_job_status("nope", JobStatus.RUNNING)

    def test_corrupt_queue_fails_closed(self, scheduler: JobScheduler, store_config: StoreConfig):
        store_config.job_queue_path.parent.mkdir(parents=True)
        store_config.job_queue_path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StoreCorrupted):
            scheduler.list_jobs()


class TestStatusTransitions:
    def test_running_counts_attempt(self, scheduler: JobScheduler):
        job = scheduler.add_job("blog", "blog::a")

        running = scheduler.update_job_status(job.job_id, JobStatus.RUNNING)

        assert running.attempts == 1
        assert running.run_at is not None
        assert running.completed_at is None

    def test_terminal_status_stamps_completion(self, scheduler: JobScheduler):
        job = scheduler.add_job("blog", "blog::a")
        scheduler.update_job_status(job.job_id, JobStatus.RUNNING)

        done = scheduler.update_job_status(
            job.job_id, "completed", outputs=JobOutputs(slug="a", url="/blog/a")
        )

        assert done.status == JobStatus.COMPLETED
        assert done.completed_at is not None
        assert scheduler.get_job(job.job_id).outputs.url == "/blog/a"

    def test_failure_keeps_error(self, scheduler: JobScheduler):
        job = scheduler.add_job("blog", "blog::a")
        scheduler.update_job_status(job.job_id, JobStatus.FAILED, error="gate blocked")
        assert scheduler.get_job(job.job_id).last_error == "gate blocked"


class TestRequeue:
    def test_failed_job_with_attempts_left(self, scheduler: JobScheduler):
        job = scheduler.add_job("blog", "blog::a")
        scheduler.update_job_status(job.job_id, JobStatus.RUNNING)
        scheduler.update_job_status(job.job_id, JobStatus.FAILED, error="x")

        assert scheduler.requeue(job.job_id) is True
        requeued = scheduler.get_job(job.job_id)
        assert requeued.status == JobStatus.PENDING
        assert requeued.completed_at is None

    def test_exhausted_job_stays_failed(self, scheduler: JobScheduler):
        job = scheduler.add_job("blog", "blog::a", max_attempts=1)
        scheduler.update_job_status(job.job_id, JobStatus.RUNNING)
        scheduler.update_job_status(job.job_id, JobStatus.FAILED, error="x")

        assert scheduler.requeue(job.job_id) is False

    def test_pending_job_not_requeued(self, scheduler: JobScheduler):
        job = scheduler.add_job("blog", "blog::a")
        assert scheduler.requeue(job.job_id) is False


class TestDailyCap:
    def test_cap_reached(self, scheduler: JobScheduler):
        assert scheduler.can_publish_today()
        _finish(scheduler, JobStatus.COMPLETED, "blog::a")
        _finish(scheduler, JobStatus.COMPLETED, "blog::b")

        assert scheduler.published_today() == 2
        assert scheduler.can_publish_today() is False

    def test_failures_do_not_count(self, scheduler: JobScheduler):
        _finish(scheduler, JobStatus.FAILED)
        _finish(scheduler, JobStatus.FAILED)
        assert scheduler.can_publish_today()

    def test_cap_resets_next_day(self, scheduler: JobScheduler, clock: SteppingClock):
        _finish(scheduler, JobStatus.COMPLETED, "blog::a")
        _finish(scheduler, JobStatus.COMPLETED, "blog::b")

        clock.current += timedelta(days=1)

        assert scheduler.published_today() == 0


class TestCircuitBreaker:
    def test_trips_after_threshold(self, scheduler: JobScheduler):
        for _ in range(3):
            _finish(scheduler, JobStatus.FAILED)

        assert scheduler.check_consecutive_failures() == 3
        assert scheduler.should_halt()

    def test_success_resets_run(self, scheduler: JobScheduler):
        _finish(scheduler, JobStatus.FAILED)
        _finish(scheduler, JobStatus.FAILED)
        _finish(scheduler, JobStatus.COMPLETED)
        _finish(scheduler, JobStatus.FAILED)

        assert scheduler.check_consecutive_failures() == 1
        assert scheduler.should_halt() is False

    def test_cancelled_jobs_are_ignored(self, scheduler: JobScheduler):
        _finish(scheduler, JobStatus.FAILED)
        _finish(scheduler, JobStatus.CANCELLED)
        _finish(scheduler, JobStatus.FAILED)

        assert scheduler.check_consecutive_failures() == 2
