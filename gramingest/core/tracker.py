"""In-memory registry of scrape jobs and the polling loop that drives them."""

import asyncio
from datetime import datetime, timezone

import structlog

from gramingest.config import GramingestConfig
from gramingest.core.ingestion import IngestionOrchestrator
from gramingest.core.runner import JobRunnerClient
from gramingest.exceptions import ConfigError, GramingestError
from gramingest.logging import get_logger
from gramingest.models.job import JobStatus, ScrapeJob
from gramingest.models.result import IngestionResult, JobStartResult


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobTracker:
    """
    Tracks in-flight scrape jobs for one process.

    A polling task runs only while some job is RUNNING and exits on its
    own afterwards. Each cycle collects its updates and merges them into
    the registry in one step.

    Example:
        tracker = JobTracker(runner, orchestrator, config)
        result = await tracker.start("alice")
        await tracker.wait_until_idle()
    """

    def __init__(
        self,
        runner: JobRunnerClient,
        orchestrator: IngestionOrchestrator,
        config: GramingestConfig | None = None,
    ):
        self.config = config or GramingestConfig()
        self._runner = runner
        self._orchestrator = orchestrator
        self._jobs: list[ScrapeJob] = []
        self._completed: list[ScrapeJob] = []
        self._processing: set[str] = set()
        self._poll_task: asyncio.Task | None = None
        self._cycle_lock = asyncio.Lock()
        self._log = get_logger("tracker")

    @property
    def jobs(self) -> list[ScrapeJob]:
        """Snapshot of active jobs, with the processing overlay applied."""
        return [
            job.model_copy(update={"processing": job.run_id in self._processing})
            for job in self._jobs
        ]

    @property
    def completed_jobs(self) -> list[ScrapeJob]:
        """Jobs removed from the active set after successful ingestion."""
        return [job.model_copy() for job in self._completed]

    @property
    def has_running_jobs(self) -> bool:
        return any(job.status == JobStatus.RUNNING for job in self._jobs)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def get_job(self, run_id: str) -> ScrapeJob | None:
        """Active or completed job by run id."""
        for job in self.jobs + self.completed_jobs:
            if job.run_id == run_id:
                return job
        return None

    async def start(self, username: str) -> JobStartResult:
        """
        Start a scrape for ``username`` and begin polling.

        Returns:
            JobStartResult; configuration and platform errors come back
            as ``success=False`` and are not retried
        """
        username = username.strip().lstrip("@")
        if not username:
            return JobStartResult(success=False, error="Username is required")

        try:
            run_id = await self._runner.start_run(username, self.config.results_limit)
        except GramingestError as e:
            self._log.error("job_start_failed", username=username, error=str(e))
            return JobStartResult(success=False, error=str(e))

        job = ScrapeJob(run_id=run_id, profile_username=username, started_at=_now())
        self._jobs.append(job)
        self._log.info("job_started", username=username, run_id=run_id)

        self._ensure_polling()
        return JobStartResult(success=True, job=job.model_copy())

    def dismiss(self, run_id: str) -> bool:
        """Remove a terminal job from the active list."""
        for job in self._jobs:
            if job.run_id == run_id and job.status.is_terminal:
                self._jobs = [j for j in self._jobs if j.run_id != run_id]
                return True
        return False

    def _ensure_polling(self) -> None:
        if not self.is_polling:
            self._poll_task = asyncio.create_task(self._poll_loop())

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.poll_interval_seconds)
            try:
                await self.check_active_jobs()
            except Exception as e:
                self._log.error("poll_cycle_failed", error=str(e), exc_info=True)

            if not self.has_running_jobs:
                self._log.info("polling_stopped")
                break
            self._log.debug("polling_rescheduled", interval=self.config.poll_interval_seconds)

    async def wait_until_idle(self) -> None:
        """Wait until the polling loop has exited."""
        while self.is_polling:
            await asyncio.shield(self._poll_task)

    async def aclose(self) -> None:
        """Cancel the polling loop; tracked jobs are abandoned."""
        if self.is_polling:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None

    async def check_active_jobs(self) -> list[ScrapeJob]:
        """
        Run one polling cycle over every RUNNING job.

        Returns:
            Snapshot of the active jobs after the cycle
        """
        async with self._cycle_lock:
            running = [job.model_copy() for job in self._jobs if job.status == JobStatus.RUNNING]
            updates: dict[str, ScrapeJob] = {}
            finished: set[str] = set()

            for job in running:
                with structlog.contextvars.bound_contextvars(run_id=job.run_id):
                    updated, ingested = await self._check_job(job)
                updates[job.run_id] = updated
                if ingested:
                    finished.add(job.run_id)

            # Single write-back; jobs started during the cycle are kept
            merged = []
            for job in self._jobs:
                job = updates.get(job.run_id, job)
                if job.run_id in finished:
                    self._completed.append(job)
                else:
                    merged.append(job)
            self._jobs = merged

        return self.jobs

    async def _check_job(self, job: ScrapeJob) -> tuple[ScrapeJob, bool]:
        """
        Advance one RUNNING job.

        Returns:
            Tuple of (updated job, whether it was ingested and can leave the active set)
        """
        self._log.debug("job_check", run_id=job.run_id, username=job.profile_username)

        try:
            status = await self._runner.check_status(job.run_id)
        except ConfigError as e:
            self._log.error("job_check_config_error", run_id=job.run_id, error=str(e))
            return self._terminal(job, JobStatus.FAILED, str(e)), False
        except Exception as e:
            self._log.warning("job_check_failed", run_id=job.run_id, error=str(e))
            return job, False

        if status.dataset_id and not job.dataset_id:
            job = job.model_copy(update={"dataset_id": status.dataset_id})

        self._log.info(
            "job_status",
            run_id=job.run_id,
            status=status.status.value,
            raw_status=status.raw_status,
            dataset_id=job.dataset_id,
        )

        if status.status == JobStatus.SUCCEEDED:
            finished_at = status.finished_at or _now()
            job = job.model_copy(update={
                "status": JobStatus.SUCCEEDED,
                "finished_at": finished_at,
                "dataset_id": status.dataset_id or job.dataset_id,
            })
            if not job.dataset_id:
                self._log.error("job_missing_dataset", run_id=job.run_id)
                return job.model_copy(update={
                    "status": JobStatus.FAILED,
                    "error": "No dataset ID found for completed job",
                }), False

            result = await self._ingest(job)
            if result.success:
                return job, True
            return job.model_copy(update={"status": JobStatus.FAILED, "error": result.error}), False

        if status.status in (JobStatus.FAILED, JobStatus.TIMEOUT):
            raw = (status.raw_status or status.status.value).upper()
            self._log.warning("job_ended", run_id=job.run_id, status=raw)
            finished = self._terminal(job, status.status, f"Job {raw}")
            return finished.model_copy(update={"finished_at": status.finished_at or finished.finished_at}), False

        # Still running: try the dataset early when one is already exposed
        if job.dataset_id:
            self._log.info("job_early_extraction", run_id=job.run_id, dataset_id=job.dataset_id)
            result = await self._ingest(job)
            if result.success:
                return job.model_copy(update={
                    "status": JobStatus.SUCCEEDED,
                    "finished_at": _now(),
                }), True
            self._log.info("job_early_extraction_deferred", run_id=job.run_id, error=result.error)

        return job, False

    async def _ingest(self, job: ScrapeJob) -> IngestionResult:
        self._processing.add(job.run_id)
        try:
            return await self._orchestrator.ingest(job.dataset_id)
        finally:
            self._processing.discard(job.run_id)

    def _terminal(self, job: ScrapeJob, status: JobStatus, error: str) -> ScrapeJob:
        return job.model_copy(update={"status": status, "finished_at": _now(), "error": error})
