"""Tests for the batch runner that drains the job queue."""

import pytest
from tacklepub.batch import run_batch
from tacklepub.config import PipelineConfig, TacklepubConfig
from tacklepub.publish import PublishCoordinator
from tacklepub.scheduler import Job, JobScheduler, JobStatus


@pytest.fixture
def coordinator(config: TacklepubConfig) -> PublishCoordinator:
    return PublishCoordinator(config)


def _scheduler(config: TacklepubConfig, **pipeline) -> JobScheduler:
    return JobScheduler(config.store, PipelineConfig(**pipeline))


def _builder(doc_factory):
    """Build a blog document from the job's topic key, one seed per slug."""
    seeds: dict[str, int] = {}

    def build(job: Job):
        slug = job.topic_key.split("::", 1)[1]
        seeds.setdefault(slug, len(seeds))
        return doc_factory(slug, seed=seeds[slug])

    return build


class TestRunBatch:
    def test_publishes_pending_jobs(self, config, coordinator, doc_factory):
        scheduler = _scheduler(config)
        scheduler.add_job("blog", "blog::redfish-tips")
        scheduler.add_job("blog", "blog::trout-tips")

        result = run_batch(scheduler, coordinator, _builder(doc_factory))

        assert result.processed == 2
        assert [p.route for p in result.published] == ["/blog/redfish-tips", "/blog/trout-tips"]
        assert result.stopped_reason is None
        assert all(j.status == JobStatus.COMPLETED for j in scheduler.list_jobs())
        assert scheduler.list_jobs()[0].outputs.slug == "redfish-tips"

    def test_stops_at_daily_cap(self, config, coordinator, doc_factory):
        scheduler = _scheduler(config, daily_publish_cap=2)
        for slug in ("first-post", "second-post", "third-post"):
            scheduler.add_job("blog", f"blog::{slug}")

        result = run_batch(scheduler, coordinator, _builder(doc_factory))

        assert len(result.published) == 2
        assert result.stopped_reason == "daily_cap"
        assert len(scheduler.list_jobs(JobStatus.PENDING)) == 1

    def test_circuit_breaker_halts_after_failures(self, config, coordinator):
        scheduler = _scheduler(config)
        for i in range(5):
            scheduler.add_job("blog", f"blog::post-{i}")

        result = run_batch(scheduler, coordinator, lambda job: {"slug": "broken"})

        assert result.processed == 3
        assert len(result.failed) == 3
        assert {f.code for f in result.failed} == {"validation"}
        assert result.stopped_reason == "consecutive_failures"
        assert len(scheduler.list_jobs(JobStatus.PENDING)) == 2

    def test_failure_does_not_stop_run(self, config, coordinator, doc_factory):
        scheduler = _scheduler(config)
        scheduler.add_job("blog", "blog::bad-post", priority=9)
        scheduler.add_job("blog", "blog::good-post")
        build = _builder(doc_factory)

        def builder(job: Job):
            if job.topic_key == "blog::bad-post":
                raise RuntimeError("generator crashed")
            return build(job)

        result = run_batch(scheduler, coordinator, builder)

        assert [f.code for f in result.failed] == ["other"]
        assert [p.slug for p in result.published] == ["good-post"]
        failed = scheduler.list_jobs(JobStatus.FAILED)[0]
        assert failed.last_error == "generator crashed"
        assert failed.attempts == 1

    def test_already_published_topic_is_cancelled(self, config, coordinator, doc_factory):
        coordinator.publish(doc_factory("redfish-tips"))
        scheduler = _scheduler(config)
        job = scheduler.add_job("blog", "blog::redfish-tips")

        result = run_batch(scheduler, coordinator, _builder(doc_factory))

        assert [s.reason for s in result.skipped] == ["Topic already published"]
        cancelled = scheduler.get_job(job.job_id)
        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.attempts == 0

    def test_max_jobs(self, config, coordinator, doc_factory):
        scheduler = _scheduler(config)
        scheduler.add_job("blog", "blog::first-post")
        scheduler.add_job("blog", "blog::second-post")

        result = run_batch(scheduler, coordinator, _builder(doc_factory), max_jobs=1)

        assert result.processed == 1
        assert len(scheduler.list_jobs(JobStatus.PENDING)) == 1

    def test_empty_queue(self, config, coordinator, doc_factory):
        result = run_batch(_scheduler(config), coordinator, _builder(doc_factory))
        assert result.processed == 0
        assert result.stopped_reason is None
