"""Unit tests for the job tracker - scripted runner and orchestrator, no internet."""

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from conftest import FakeStore
from gramingest.core.images import ImageAcquirer
from gramingest.core.ingestion import IngestionOrchestrator
from gramingest.core.tracker import JobTracker
from gramingest.exceptions import ConfigError, RunnerError
from gramingest.models.job import JobStatus
from gramingest.models.result import IngestionResult, RunStatus
from gramingest.repository.sqlite_repo import SQLiteRepository


def status(value: JobStatus, raw: str | None = None, dataset_id: str | None = None) -> RunStatus:
    return RunStatus(status=value, raw_status=raw or value.value.upper(), dataset_id=dataset_id)


class ScriptedRunner:
    """Returns queued statuses per run id; the last one repeats."""

    def __init__(self):
        self.scripts: dict[str, list] = {}
        self.started: list[str] = []
        self.start_error: Exception | None = None
        self.on_check = None
        self.items: dict[str, list] = {}

    async def start_run(self, username: str, results_limit: int | None = None) -> str:
        if self.start_error:
            raise self.start_error
        run_id = f"run-{username}"
        self.started.append(username)
        return run_id

    async def check_status(self, run_id: str) -> RunStatus:
        if self.on_check:
            await self.on_check(run_id)
        script = self.scripts[run_id]
        step = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(step, Exception):
            raise step
        return step

    async def fetch_items(self, dataset_id: str) -> list[dict]:
        return self.items[dataset_id]


class FakeOrchestrator:
    def __init__(self, tracker_ref: list | None = None, success: bool = True):
        self.success = success
        self.calls: list[str] = []
        self.seen_processing: list[bool] = []
        self.tracker_ref = tracker_ref

    async def ingest(self, dataset_id: str) -> IngestionResult:
        self.calls.append(dataset_id)
        if self.tracker_ref:
            self.seen_processing.append(any(j.processing for j in self.tracker_ref[0].jobs))
        return IngestionResult(
            success=self.success,
            dataset_id=dataset_id,
            error=None if self.success else "No Instagram profile data received",
            ingested_at=datetime.now(),
        )


@pytest.fixture
def config(config):
    config.poll_interval_seconds = 3600
    return config


@pytest.fixture
def runner():
    return ScriptedRunner()


@pytest.fixture
def orchestrator():
    return FakeOrchestrator()


@pytest_asyncio.fixture
async def tracker(runner, orchestrator, config):
    tracker = JobTracker(runner, orchestrator, config)
    yield tracker
    await tracker.aclose()


class TestStart:
    """Test job creation."""

    @pytest.mark.asyncio
    async def test_start_registers_running_job(self, tracker, runner):
        result = await tracker.start("@alice")

        assert result.success is True
        assert result.job.run_id == "run-alice"
        assert result.job.profile_username == "alice"
        assert [j.status for j in tracker.jobs] == [JobStatus.RUNNING]
        assert tracker.is_polling

    @pytest.mark.asyncio
    async def test_missing_credentials(self, tracker, runner):
        runner.start_error = ConfigError("No active Apify API key found. Add an Apify API key in your settings.")

        result = await tracker.start("alice")

        assert result.success is False
        assert "No active Apify API key" in result.error
        assert tracker.jobs == []
        assert not tracker.is_polling

    @pytest.mark.asyncio
    async def test_platform_rejection(self, tracker, runner):
        runner.start_error = RunnerError("Failed to start Instagram scraper")
        result = await tracker.start("alice")
        assert result.error == "Failed to start Instagram scraper"

    @pytest.mark.asyncio
    async def test_blank_username(self, tracker, runner):
        result = await tracker.start("  @ ")
        assert result.success is False
        assert runner.started == []


class TestStatusTransitions:
    """Test one polling cycle per scenario."""

    @pytest.mark.asyncio
    async def test_unknown_status_keeps_running(self, tracker, runner, orchestrator):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.RUNNING, raw="ABORTING")]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.RUNNING
        assert orchestrator.calls == []

    @pytest.mark.asyncio
    async def test_succeeded_is_ingested_and_removed(self, tracker, runner, orchestrator):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.SUCCEEDED, dataset_id="ds-1")]

        jobs = await tracker.check_active_jobs()

        assert jobs == []
        assert orchestrator.calls == ["ds-1"]
        completed = tracker.completed_jobs
        assert len(completed) == 1
        assert completed[0].status == JobStatus.SUCCEEDED
        assert completed[0].finished_at is not None

    @pytest.mark.asyncio
    async def test_succeeded_without_dataset(self, tracker, runner, orchestrator):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.SUCCEEDED)]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.FAILED
        assert jobs[0].error == "No dataset ID found for completed job"
        assert orchestrator.calls == []

    @pytest.mark.asyncio
    async def test_ingest_failure_marks_failed(self, tracker, runner, orchestrator):
        orchestrator.success = False
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.SUCCEEDED, dataset_id="ds-1")]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.FAILED
        assert jobs[0].error == "No Instagram profile data received"
        assert tracker.completed_jobs == []

    @pytest.mark.parametrize("value,raw", [
        (JobStatus.FAILED, "FAILED"),
        (JobStatus.TIMEOUT, "TIMED-OUT"),
        (JobStatus.TIMEOUT, "ABORTED"),
    ])
    @pytest.mark.asyncio
    async def test_platform_terminal_states(self, tracker, runner, value, raw):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(value, raw=raw)]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == value
        assert jobs[0].error == f"Job {raw}"
        assert jobs[0].finished_at is not None

    @pytest.mark.asyncio
    async def test_early_extraction(self, tracker, runner, orchestrator):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.RUNNING, dataset_id="ds-early")]

        jobs = await tracker.check_active_jobs()

        assert jobs == []
        assert orchestrator.calls == ["ds-early"]
        assert tracker.completed_jobs[0].status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_early_extraction_failure_keeps_polling(self, tracker, runner, orchestrator):
        orchestrator.success = False
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.RUNNING, dataset_id="ds-early")]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.RUNNING
        assert jobs[0].dataset_id == "ds-early"
        assert jobs[0].error is None

    @pytest.mark.asyncio
    async def test_transient_error_keeps_running(self, tracker, runner):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [RunnerError("GET /actor-runs/run-alice failed: HTTP 503")]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.RUNNING

    @pytest.mark.asyncio
    async def test_credential_error_fails_job(self, tracker, runner):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [ConfigError("No active Apify API key found.")]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.FAILED
        assert "No active Apify API key" in jobs[0].error

    @pytest.mark.asyncio
    async def test_long_running_unrecognized_status_stays_running(self, tracker, runner):
        await tracker.start("alice")
        tracker._jobs[0] = tracker._jobs[0].model_copy(
            update={"started_at": datetime.now(timezone.utc) - timedelta(hours=2)}
        )
        runner.scripts["run-alice"] = [status(JobStatus.RUNNING, raw="QUEUED_V2")]

        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.RUNNING
        assert jobs[0].error is None
        assert tracker.has_running_jobs

    @pytest.mark.asyncio
    async def test_terminal_jobs_not_polled_again(self, tracker, runner):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.FAILED)]
        await tracker.check_active_jobs()

        runner.scripts["run-alice"] = [status(JobStatus.SUCCEEDED, dataset_id="ds-1")]
        jobs = await tracker.check_active_jobs()

        assert jobs[0].status == JobStatus.FAILED


class TestRegistry:
    """Test registry bookkeeping across a cycle."""

    @pytest.mark.asyncio
    async def test_job_added_mid_cycle_is_kept(self, tracker, runner):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.FAILED)]

        async def start_bob(run_id):
            runner.on_check = None
            await tracker.start("bob")

        runner.on_check = start_bob
        jobs = await tracker.check_active_jobs()

        by_run = {j.run_id: j.status for j in jobs}
        assert by_run == {"run-alice": JobStatus.FAILED, "run-bob": JobStatus.RUNNING}

    @pytest.mark.asyncio
    async def test_get_job_finds_active_and_completed(self, tracker, runner):
        await tracker.start("alice")
        await tracker.start("bob")
        runner.scripts["run-alice"] = [status(JobStatus.SUCCEEDED, dataset_id="ds-1")]
        runner.scripts["run-bob"] = [status(JobStatus.RUNNING)]

        await tracker.check_active_jobs()

        assert tracker.get_job("run-alice").status == JobStatus.SUCCEEDED
        assert tracker.get_job("run-bob").status == JobStatus.RUNNING
        assert tracker.get_job("run-nobody") is None

    @pytest.mark.asyncio
    async def test_processing_overlay(self, runner, config):
        ref = []
        orchestrator = FakeOrchestrator(tracker_ref=ref)
        tracker = JobTracker(runner, orchestrator, config)
        ref.append(tracker)
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.SUCCEEDED, dataset_id="ds-1")]

        await tracker.check_active_jobs()
        await tracker.aclose()

        assert orchestrator.seen_processing == [True]
        assert all(not j.processing for j in tracker.completed_jobs)

    @pytest.mark.asyncio
    async def test_completed_recorded_once(self, tracker, runner, orchestrator):
        await tracker.start("alice")
        runner.scripts["run-alice"] = [status(JobStatus.SUCCEEDED, dataset_id="ds-1")]

        await tracker.check_active_jobs()
        await tracker.check_active_jobs()

        assert len(tracker.completed_jobs) == 1
        assert orchestrator.calls == ["ds-1"]

    @pytest.mark.asyncio
    async def test_dismiss_only_terminal(self, tracker, runner):
        await tracker.start("alice")
        assert tracker.dismiss("run-alice") is False

        runner.scripts["run-alice"] = [status(JobStatus.FAILED)]
        await tracker.check_active_jobs()

        assert tracker.dismiss("run-alice") is True
        assert tracker.jobs == []


class TestPollingLoop:
    """Test the self-terminating loop."""

    @pytest.mark.asyncio
    async def test_loop_stops_when_nothing_runs(self, runner, orchestrator, config):
        config.poll_interval_seconds = 0.01
        tracker = JobTracker(runner, orchestrator, config)
        runner.scripts["run-alice"] = [
            status(JobStatus.RUNNING),
            status(JobStatus.RUNNING),
            status(JobStatus.SUCCEEDED, dataset_id="ds-1"),
        ]

        await tracker.start("alice")
        await asyncio.wait_for(tracker.wait_until_idle(), timeout=5)

        assert not tracker.is_polling
        assert tracker.jobs == []
        assert orchestrator.calls == ["ds-1"]

    @pytest.mark.asyncio
    async def test_single_loop_for_many_jobs(self, tracker, runner):
        await tracker.start("alice")
        first = tracker._poll_task
        await tracker.start("bob")
        assert tracker._poll_task is first

    @pytest.mark.asyncio
    async def test_aclose_cancels_loop(self, tracker):
        await tracker.start("alice")
        await tracker.aclose()
        assert not tracker.is_polling


class TestTrackerWithIngestion:
    """Drive a job from start to stored rows with the real orchestrator and SQLite."""

    @pytest.mark.asyncio
    async def test_early_dataset_is_ingested_and_job_retired(self, runner, config, alice_items):
        config.image_batch_pause_seconds = 0
        runner.items = {"d1": alice_items}
        repo = SQLiteRepository(config.sqlite_path)
        cdn = httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, content=b"\xff\xd8jpeg-bytes", headers={"content-type": "image/jpeg"})
        ))
        acquirer = ImageAcquirer(config, store=FakeStore(), http_client=cdn)
        tracker = JobTracker(runner, IngestionOrchestrator(runner, repo, acquirer, config), config)

        async with repo:
            started = await tracker.start("alice")
            runner.scripts["run-alice"] = [
                status(JobStatus.RUNNING),
                status(JobStatus.RUNNING, dataset_id="d1"),
            ]

            after_first = await tracker.check_active_jobs()
            after_second = await tracker.check_active_jobs()
            await tracker.aclose()

            profiles = await repo.list_profiles("local")
            posts = await repo.list_posts(profiles[0].id)

        assert started.job.run_id == "run-alice"
        assert after_first[0].status == JobStatus.RUNNING
        assert after_first[0].dataset_id is None
        assert after_second == []
        assert not tracker.has_running_jobs

        done, = tracker.completed_jobs
        assert done.status == JobStatus.SUCCEEDED
        assert done.dataset_id == "d1"

        assert [p.username for p in profiles] == ["alice"]
        assert profiles[0].profile_image_stored is True
        assert len(posts) == 4
        assert all(p.media_stored for p in posts)
