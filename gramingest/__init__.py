"""gramingest - Instagram scraping-job lifecycle and image ingestion."""

from gramingest.models.job import JobStatus, ScrapeJob
from gramingest.models.post import PostRecord
from gramingest.models.profile import ProfileRecord
from gramingest.models.result import IngestionResult, JobStartResult, MigrationResult
from gramingest.config import GramingestConfig
from gramingest.core.service import IngestService
from gramingest.core.exporter import to_json, to_dict, save_json, export_profiles

__version__ = "0.1.0"

__all__ = [
    # Main interface
    "IngestService",
    "GramingestConfig",
    # Models
    "JobStatus",
    "ScrapeJob",
    "ProfileRecord",
    "PostRecord",
    "IngestionResult",
    "JobStartResult",
    "MigrationResult",
    # Export utilities
    "to_json",
    "to_dict",
    "save_json",
    "export_profiles",
    "__version__",
]
