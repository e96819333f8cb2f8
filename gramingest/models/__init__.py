"""Pydantic models for gramingest."""

from gramingest.models.job import JobStatus, ScrapeJob
from gramingest.models.post import PostDraft, PostRecord
from gramingest.models.profile import ProfileDraft, ProfileRecord
from gramingest.models.result import (
    ImageAcquisitionResult,
    ImageOutcome,
    IngestionResult,
    JobStartResult,
    MigrationResult,
    RunStatus,
)

__all__ = [
    "JobStatus",
    "ScrapeJob",
    "PostDraft",
    "PostRecord",
    "ProfileDraft",
    "ProfileRecord",
    "ImageAcquisitionResult",
    "ImageOutcome",
    "IngestionResult",
    "JobStartResult",
    "MigrationResult",
    "RunStatus",
]
