"""Scrape job model."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel


class JobStatus(str, Enum):
    """Canonical run states, normalized from the actor platform's vocabulary."""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING


class ScrapeJob(BaseModel):
    """One actor run for a single profile username."""

    run_id: str
    profile_username: str
    status: JobStatus = JobStatus.RUNNING
    started_at: datetime
    finished_at: datetime | None = None
    dataset_id: str | None = None
    error: str | None = None
    processing: bool = False

    @property
    def display_status(self) -> str:
        """Human-readable status for dashboards."""
        if self.processing:
            return "Processing data..."
        if self.status == JobStatus.RUNNING:
            return "Scraping in progress"
        if self.status == JobStatus.SUCCEEDED:
            return "Completed"
        label = "Failed" if self.status == JobStatus.FAILED else "Timed out"
        return f"{label}: {self.error}" if self.error else label
