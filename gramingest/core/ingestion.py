"""Ingestion orchestrator - turns an actor dataset into profile and post rows."""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Sequence, TypeVar

from gramingest.config import GramingestConfig
from gramingest.core.images import ImageAcquirer, is_absolute_http_url
from gramingest.core.runner import JobRunnerClient
from gramingest.core.transformer import transform_record
from gramingest.exceptions import AuthenticationError, ParseError, RepositoryError
from gramingest.logging import get_logger
from gramingest.models.post import PostDraft
from gramingest.models.profile import ProfileDraft, ProfileRecord
from gramingest.models.result import (
    ImageAcquisitionResult,
    ImageOutcome,
    IngestionResult,
    MigrationResult,
)
from gramingest.repository.base import ProfileRepository
from gramingest.repository.rows import post_row, profile_row

T = TypeVar("T")
R = TypeVar("R")


def apply_image_outcomes(posts: list[PostDraft], outcomes: list[ImageOutcome]) -> list[PostDraft]:
    """
    Merge acquisition outcomes into the post list by index.

    Only stored results replace the reference; every other post keeps
    its original URL and is marked as not stored.
    """
    by_index = {outcome.index: outcome.result for outcome in outcomes}
    merged = []
    for index, post in enumerate(posts):
        result = by_index.get(index)
        if result is not None and result.stored:
            merged.append(post.model_copy(update={
                "media_ref": result.final_ref,
                "media_stored": True,
            }))
        else:
            merged.append(post.model_copy(update={"media_stored": False}))
    return merged


class IngestionOrchestrator:
    """
    Reconciles a scraped dataset into the repository.

    Images are acquired in fixed-size batches with a pause between
    batches; the profile image is fetched alongside the first batches.
    """

    def __init__(
        self,
        runner: JobRunnerClient,
        repository: ProfileRepository,
        acquirer: ImageAcquirer,
        config: GramingestConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or GramingestConfig()
        self._runner = runner
        self._repository = repository
        self._acquirer = acquirer
        self._sleep = sleep
        self._log = get_logger("ingestion")

    async def ingest(self, dataset_id: str) -> IngestionResult:
        """
        Ingest one dataset.

        Never raises; every failure is reported as ``success=False``.

        Args:
            dataset_id: Actor dataset holding the scraped profile

        Returns:
            IngestionResult with provenance counters
        """
        start = datetime.now()
        self._log.info("ingest_start", dataset_id=dataset_id)

        try:
            result = await self._ingest(dataset_id, start)
        except Exception as e:
            self._log.error("ingest_failed", dataset_id=dataset_id, error=str(e), exc_info=True)
            return IngestionResult(
                success=False,
                dataset_id=dataset_id,
                error=str(e) or type(e).__name__,
                ingested_at=datetime.now(),
                duration_ms=(datetime.now() - start).total_seconds() * 1000,
            )

        self._log.info(
            "ingest_complete",
            dataset_id=dataset_id,
            username=result.profile.username if result.profile else None,
            posts=result.post_count,
            stored_images=result.stored_image_count,
            total_images=result.total_image_count,
            duration_ms=result.duration_ms,
        )
        return result

    async def _ingest(self, dataset_id: str, start: datetime) -> IngestionResult:
        items = await self._runner.fetch_items(dataset_id)
        if not items:
            raise ParseError("No Instagram profile data received")

        profile, posts = transform_record(items[0])

        user_id = await self._repository.current_user_id()
        if not user_id:
            raise AuthenticationError("User not authenticated")

        profile_task = asyncio.create_task(self._acquire_profile_image(profile))
        try:
            outcomes = await self.acquire_post_images(posts, profile.username)
        finally:
            profile_image = await profile_task

        merged_posts = apply_image_outcomes(posts, outcomes)

        record = await self._upsert_profile(profile, user_id, profile_image)

        post_count, message = await self._replace_posts(record, merged_posts)

        stored = int(profile_image.stored) + sum(1 for post in merged_posts if post.media_stored)
        return IngestionResult(
            success=True,
            dataset_id=dataset_id,
            profile=record,
            post_count=post_count,
            stored_image_count=stored,
            total_image_count=1 + len(merged_posts),
            message=message,
            ingested_at=datetime.now(),
            duration_ms=(datetime.now() - start).total_seconds() * 1000,
        )

    async def _acquire_profile_image(self, profile: ProfileDraft) -> ImageAcquisitionResult:
        url = profile.profile_image_url
        if not url:
            self._log.warning("profile_image_missing", username=profile.username)
            return ImageAcquisitionResult(final_ref="", stored=False)

        try:
            return await self._acquirer.acquire(url, f"profiles/{profile.username}")
        except Exception as e:
            self._log.warning("profile_image_failed", username=profile.username, error=str(e))
            return ImageAcquisitionResult(final_ref=url, stored=False)

    async def _acquire_post_image(self, index: int, post: PostDraft, username: str) -> ImageOutcome | None:
        if not post.display_url:
            return None

        hint = f"posts/{username}/{post.short_code or post.external_id}"
        try:
            result = await self._acquirer.acquire(post.display_url, hint)
        except Exception as e:
            self._log.warning("post_image_failed", post_id=post.external_id, error=str(e))
            result = ImageAcquisitionResult(final_ref=post.display_url, stored=False)
        return ImageOutcome(index=index, result=result)

    async def _in_batches(
        self,
        items: Sequence[T],
        worker: Callable[[int, T], Awaitable[R]],
    ) -> list[R]:
        """
        Run ``worker`` over items, ``image_batch_size`` at a time.

        Batches run one after another with a pause between them, never
        after the last one. Results keep input order.
        """
        batch_size = max(self.config.image_batch_size, 1)
        results: list[R] = []

        for offset in range(0, len(items), batch_size):
            batch = items[offset:offset + batch_size]
            results.extend(await asyncio.gather(
                *(worker(offset + i, item) for i, item in enumerate(batch))
            ))

            if offset + batch_size < len(items) and self.config.image_batch_pause_seconds > 0:
                await self._sleep(self.config.image_batch_pause_seconds)

        return results

    async def acquire_post_images(self, posts: list[PostDraft], username: str) -> list[ImageOutcome]:
        """Acquire post images in paced batches; one outcome per post with a display URL."""
        results = await self._in_batches(
            posts,
            lambda index, post: self._acquire_post_image(index, post, username),
        )
        return [outcome for outcome in results if outcome is not None]

    async def _upsert_profile(
        self,
        profile: ProfileDraft,
        user_id: str,
        image: ImageAcquisitionResult,
    ) -> ProfileRecord:
        # Unstored images keep the source URL; proxying happens at display time
        image_ref = image.final_ref if image.stored else profile.profile_image_url or ""
        row = profile_row(profile, user_id, image_ref, image.stored)

        # Explicit lookup: the table's unique key may not include user_id

        existing = await self._repository.find_profile(profile.external_id, user_id)
        if existing:
            record = await self._repository.update_profile(existing.id, row)
            self._log.info("profile_updated", username=profile.username, profile_id=record.id)
        else:
            record = await self._repository.insert_profile(row)
            self._log.info("profile_created", username=profile.username, profile_id=record.id)
        return record

    async def _replace_posts(self, record: ProfileRecord, posts: list[PostDraft]) -> tuple[int, str | None]:
        """Delete then insert the profile's posts; a failure keeps the profile update."""
        rows = [post_row(record.id, post) for post in posts]
        try:
            await self._repository.delete_posts(record.id)
            inserted = await self._repository.insert_posts(rows)
        except RepositoryError as e:
            self._log.error("posts_write_failed", profile_id=record.id, error=str(e))
            return 0, f"Profile saved but posts could not be stored: {e}"
        return inserted, None

    async def migrate_existing_images(self) -> MigrationResult:
        """
        Move images still referenced from their source into owned storage.

        Only rows whose acquisition lands in owned storage are rewritten.
        """
        try:
            user_id = await self._repository.current_user_id()
            if not user_id:
                raise AuthenticationError("User not authenticated")

            profiles_migrated = 0
            posts_migrated = 0

            for profile in await self._repository.list_profiles(user_id):
                ref = profile.profile_image_ref
                if not profile.profile_image_stored and is_absolute_http_url(ref):
                    result = await self._acquirer.acquire(ref, f"profiles/{profile.username}")
                    if result.stored:
                        await self._repository.update_profile(profile.id, {
                            "profile_pic_url": result.final_ref,
                            "profile_pic_from_supabase": True,
                        })
                        profiles_migrated += 1

                pending = [
                    post for post in await self._repository.list_posts(profile.id)
                    if not post.media_stored and is_absolute_http_url(post.media_ref)
                ]

                async def migrate_post(index, post, username=profile.username):
                    hint = f"posts/{username}/{post.short_code or post.external_id}"
                    return post, await self._acquirer.acquire(post.media_ref, hint)

                for post, result in await self._in_batches(pending, migrate_post):
                    if result.stored:
                        await self._repository.update_post_media(post.id, result.final_ref, True)
                        posts_migrated += 1

        except Exception as e:
            self._log.error("migration_failed", error=str(e))
            return MigrationResult(success=False, error=str(e) or type(e).__name__)

        self._log.info("migration_complete", profiles=profiles_migrated, posts=posts_migrated)
        return MigrationResult(
            success=True,
            profiles_migrated=profiles_migrated,
            posts_migrated=posts_migrated,
        )
