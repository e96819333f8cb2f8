"""Result wrappers returned across component boundaries."""

from datetime import datetime

from pydantic import BaseModel

from gramingest.models.job import JobStatus, ScrapeJob
from gramingest.models.profile import ProfileRecord


class ImageAcquisitionResult(BaseModel):
    """Where an image ended up and whether it lives in owned storage."""

    final_ref: str
    stored: bool = False


class ImageOutcome(BaseModel):
    """Acquisition result for the post at ``index`` in the ingested post list."""

    index: int
    result: ImageAcquisitionResult


class RunStatus(BaseModel):
    """Normalized status of an actor run."""

    status: JobStatus
    raw_status: str | None = None
    dataset_id: str | None = None
    finished_at: datetime | None = None
    stats_url: str | None = None
    details_url: str | None = None


class JobStartResult(BaseModel):
    """Outcome of requesting a new scrape."""

    success: bool
    job: ScrapeJob | None = None
    error: str | None = None


class IngestionResult(BaseModel):
    """Outcome of ingesting one dataset."""

    success: bool
    dataset_id: str
    profile: ProfileRecord | None = None
    post_count: int = 0
    stored_image_count: int = 0
    total_image_count: int = 0
    message: str | None = None
    error: str | None = None
    ingested_at: datetime
    duration_ms: float = 0.0


class MigrationResult(BaseModel):
    """Outcome of moving previously referenced images into owned storage."""

    success: bool
    profiles_migrated: int = 0
    posts_migrated: int = 0
    error: str | None = None
