"""Service facade - wires runner, acquirer, repository and tracker from config."""

from gramingest.clients import create_service_client, create_user_client
from gramingest.config import GramingestConfig, StoreBackend
from gramingest.core import exporter
from gramingest.core.images import ImageAcquirer
from gramingest.core.ingestion import IngestionOrchestrator
from gramingest.core.runner import JobRunnerClient
from gramingest.core.tracker import JobTracker
from gramingest.exceptions import AuthenticationError, ConfigError, ProfileNotFoundError
from gramingest.logging import configure_logging, get_logger
from gramingest.models.job import ScrapeJob
from gramingest.models.post import PostRecord
from gramingest.models.profile import ProfileRecord
from gramingest.models.result import IngestionResult, JobStartResult, MigrationResult, RunStatus
from gramingest.repository.base import ProfileRepository
from gramingest.repository.sqlite_repo import SQLiteRepository
from gramingest.repository.supabase_repo import SupabaseRepository
from gramingest.storage.base import DelegatedFetcher, ObjectStore
from gramingest.storage.supabase_bucket import EdgeFunctionFetcher, SupabaseBucketGateway


class IngestService:
    """
    High-level interface over the scraping-job lifecycle.

    Components not passed in are built from configuration on entry.

    Example:
        async with IngestService() as service:
            started = await service.start_scrape("alice")
            await service.wait_for_jobs()
    """

    def __init__(
        self,
        config: GramingestConfig | None = None,
        repository: ProfileRepository | None = None,
        store: ObjectStore | None = None,
        delegate: DelegatedFetcher | None = None,
    ):
        """
        Initialize service with optional configuration and collaborators.

        Args:
            config: GramingestConfig instance, uses defaults if None
            repository: Persistence backend, built from config if None
            store: Object store for relayed images, built from config if None
            delegate: Server-side image fetcher, built from config if None
        """
        self.config = config or GramingestConfig()
        self._repository = repository
        self._store = store
        self._delegate = delegate
        self._runner: JobRunnerClient | None = None
        self._acquirer: ImageAcquirer | None = None
        self._orchestrator: IngestionOrchestrator | None = None
        self._tracker: JobTracker | None = None
        self._log = get_logger("service")

    async def __aenter__(self) -> "IngestService":
        """Async context manager entry - initialize components."""
        configure_logging(self.config)

        if self._repository is None:
            self._repository = self._build_repository()

        if self._store is None and self._delegate is None and self.config.supabase_configured:
            self._store, self._delegate = self._build_storage()

        self._runner = JobRunnerClient(self.config, self._repository)
        self._acquirer = ImageAcquirer(self.config, self._store, self._delegate)
        self._orchestrator = IngestionOrchestrator(
            self._runner,
            self._repository,
            self._acquirer,
            self.config,
        )
        self._tracker = JobTracker(self._runner, self._orchestrator, self.config)

        self._log.info(
            "service_ready",
            store_backend=self.config.store_backend.value,
            object_store=self._store is not None,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit - cleanup resources."""
        if self._tracker:
            await self._tracker.aclose()
        if self._acquirer:
            await self._acquirer.close()
        if self._runner:
            await self._runner.close()
        if self._repository:
            await self._repository.close()

    def _build_repository(self) -> ProfileRepository:
        tables = {
            "profiles_table": self.config.profiles_table,
            "posts_table": self.config.posts_table,
            "api_keys_table": self.config.api_keys_table,
        }
        if self.config.store_backend == StoreBackend.SQLITE:
            return SQLiteRepository(self.config.sqlite_path, self.config.user_id, **tables)

        return SupabaseRepository(
            create_user_client(self.config),
            user_id=self.config.user_id,
            access_token=self.config.supabase_access_token,
            **tables,
        )

    def _build_storage(self) -> tuple[ObjectStore, DelegatedFetcher]:
        # Storage writes need the service role; fall back to the user client without one
        if self.config.supabase_service_key:
            client = create_service_client(self.config)
        else:
            self._log.warning("storage_without_service_key")
            client = create_user_client(self.config)

        store = SupabaseBucketGateway(client, self.config.bucket_name, self.config.supabase_url)
        delegate = EdgeFunctionFetcher(client, self.config.delegated_fetch_function)
        return store, delegate

    def _require_started(self) -> None:
        if self._tracker is None:
            raise RuntimeError("IngestService must be used as an async context manager")

    @property
    def repository(self) -> ProfileRepository:
        self._require_started()
        return self._repository

    # Jobs

    async def start_scrape(self, username: str) -> JobStartResult:
        """Start a scrape job and begin polling it."""
        self._require_started()
        return await self._tracker.start(username)

    @property
    def jobs(self) -> list[ScrapeJob]:
        self._require_started()
        return self._tracker.jobs

    @property
    def completed_jobs(self) -> list[ScrapeJob]:
        self._require_started()
        return self._tracker.completed_jobs

    async def check_jobs(self) -> list[ScrapeJob]:
        """Run one polling cycle now."""
        self._require_started()
        return await self._tracker.check_active_jobs()

    async def wait_for_jobs(self) -> None:
        """Wait until no job is left running."""
        self._require_started()
        await self._tracker.wait_until_idle()

    def dismiss_job(self, run_id: str) -> bool:
        self._require_started()
        return self._tracker.dismiss(run_id)

    def get_job(self, run_id: str) -> ScrapeJob | None:
        self._require_started()
        return self._tracker.get_job(run_id)

    async def check_status(self, run_id: str) -> RunStatus:
        """
        Fetch the normalized status of any run.

        Raises:
            ConfigError: If no API credential is configured
            RunnerError: If the platform request fails
        """
        self._require_started()
        return await self._runner.check_status(run_id)

    # Data

    async def ingest(self, dataset_id: str) -> IngestionResult:
        """Ingest a dataset directly, outside the polling loop."""
        self._require_started()
        return await self._orchestrator.ingest(dataset_id)

    async def _user_id(self) -> str:
        user_id = await self._repository.current_user_id()
        if not user_id:
            raise AuthenticationError("User not authenticated")
        return user_id

    async def _owned_profile(self, profile_id: str) -> ProfileRecord:
        user_id = await self._user_id()
        profile = await self._repository.get_profile(profile_id)
        if profile is None or profile.user_id != user_id:
            raise ProfileNotFoundError(f"Profile {profile_id} not found")
        return profile

    async def list_profiles(self) -> list[ProfileRecord]:
        """Profiles of the acting user, newest first."""
        self._require_started()
        return await self._repository.list_profiles(await self._user_id())

    async def list_posts(self, profile_id: str) -> list[PostRecord]:
        """
        Posts of one of the acting user's profiles, newest first.

        Raises:
            ProfileNotFoundError: If the profile does not exist or belongs to another user
        """
        self._require_started()
        profile = await self._owned_profile(profile_id)
        return await self._repository.list_posts(profile.id)

    async def delete_profile(self, profile_id: str) -> None:
        """Delete one of the acting user's profiles and its posts."""
        self._require_started()
        profile = await self._owned_profile(profile_id)
        await self._repository.delete_profile(profile.id)
        self._log.info("profile_deleted", profile_id=profile.id, username=profile.username)

    async def export_profiles(self) -> dict:
        """All of the acting user's profiles with their posts, ready for JSON."""
        self._require_started()
        profiles = await self._repository.list_profiles(await self._user_id())
        posts_by_profile = {
            profile.id: await self._repository.list_posts(profile.id)
            for profile in profiles
        }
        return exporter.export_profiles(profiles, posts_by_profile)

    # Images

    async def migrate_images(self) -> MigrationResult:
        """Relay images still referenced from the CDN into owned storage."""
        self._require_started()
        return await self._orchestrator.migrate_existing_images()

    async def ensure_bucket(self) -> bool:
        """
        Make sure the image bucket exists.

        Raises:
            ConfigError: If no object store is configured
        """
        self._require_started()
        if self._store is None:
            raise ConfigError("No object store configured; set the Supabase URL and keys")
        return await self._store.ensure_bucket()

    def proxied_image_url(self, ref: str) -> str:
        """Display URL for a stored image reference."""
        self._require_started()
        return self._acquirer.proxied_image_url(ref)
