"""Supabase (PostgREST) repository."""

import asyncio
from typing import Callable

from supabase import Client

from gramingest.exceptions import RepositoryError
from gramingest.models.post import PostRecord
from gramingest.models.profile import ProfileRecord
from gramingest.repository.base import ProfileRepository
from gramingest.repository.rows import post_from_row, profile_from_row


def _api_error_message(error: Exception) -> str:
    payload = error.args[0] if error.args else None
    if isinstance(payload, dict):
        return payload.get("message") or str(payload)
    return getattr(error, "message", None) or str(error)


class SupabaseRepository(ProfileRepository):
    """
    Repository over the hosted Postgres tables.

    Row writes use the user client so row-level security scopes them to
    the acting user.
    """

    def __init__(
        self,
        client: Client,
        user_id: str | None = None,
        access_token: str | None = None,
        profiles_table: str = "instagram_profiles",
        posts_table: str = "instagram_posts",
        api_keys_table: str = "apify_keys",
    ):
        super().__init__()
        self._client = client
        self._user_id = user_id
        self._access_token = access_token
        self.profiles_table = profiles_table
        self.posts_table = posts_table
        self.api_keys_table = api_keys_table

    async def _execute(self, build: Callable) -> list[dict]:
        """Run a query builder in a worker thread and return its rows."""
        try:
            response = await asyncio.to_thread(lambda: build().execute())
        except Exception as e:
            raise RepositoryError(_api_error_message(e)) from e
        data = response.data
        if data is None:
            return []
        return data if isinstance(data, list) else [data]

    def _table(self, name: str):
        return self._client.table(name)

    async def current_user_id(self) -> str | None:
        if self._user_id:
            return self._user_id

        try:
            response = await asyncio.to_thread(self._client.auth.get_user, self._access_token)
        except Exception as e:
            self._log.warning("auth_lookup_failed", error=str(e))
            return None

        user = getattr(response, "user", None)
        if user is None:
            return None
        self._user_id = str(user.id)
        return self._user_id

    async def get_active_api_key(self) -> str | None:
        rows = await self._execute(
            lambda: self._table(self.api_keys_table)
            .select("api_key")
            .eq("is_active", True)
            .limit(1)
        )
        return rows[0].get("api_key") if rows else None

    async def find_profile(self, external_id: str, user_id: str) -> ProfileRecord | None:
        rows = await self._execute(
            lambda: self._table(self.profiles_table)
            .select("*")
            .eq("instagram_id", external_id)
            .eq("user_id", user_id)
            .limit(1)
        )
        return profile_from_row(rows[0]) if rows else None

    async def get_profile(self, profile_id: str) -> ProfileRecord | None:
        rows = await self._execute(
            lambda: self._table(self.profiles_table).select("*").eq("id", profile_id).limit(1)
        )
        return profile_from_row(rows[0]) if rows else None

    async def insert_profile(self, row: dict) -> ProfileRecord:
        rows = await self._write_tolerant(
            self.profiles_table,
            [row],
            lambda batch: self._execute(lambda: self._table(self.profiles_table).insert(batch[0])),
        )
        if not rows:
            raise RepositoryError("Profile insert returned no row")
        return profile_from_row(rows[0])

    async def update_profile(self, profile_id: str, row: dict) -> ProfileRecord:
        rows = await self._write_tolerant(
            self.profiles_table,
            [row],
            lambda batch: self._execute(
                lambda: self._table(self.profiles_table).update(batch[0]).eq("id", profile_id)
            ),
        )
        if not rows:
            raise RepositoryError(f"Profile {profile_id} update returned no row")
        return profile_from_row(rows[0])

    async def delete_posts(self, profile_id: str) -> None:
        await self._execute(
            lambda: self._table(self.posts_table).delete().eq("profile_id", profile_id)
        )

    async def insert_posts(self, rows: list[dict]) -> int:
        if not rows:
            return 0
        await self._write_tolerant(
            self.posts_table,
            rows,
            lambda batch: self._execute(lambda: self._table(self.posts_table).insert(batch)),
        )
        return len(rows)

    async def list_profiles(self, user_id: str) -> list[ProfileRecord]:
        rows = await self._execute(
            lambda: self._table(self.profiles_table)
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
        )
        return [profile_from_row(row) for row in rows]

    async def list_posts(self, profile_id: str) -> list[PostRecord]:
        rows = await self._execute(
            lambda: self._table(self.posts_table)
            .select("*")
            .eq("profile_id", profile_id)
            .order("timestamp", desc=True)
        )
        return [post_from_row(row) for row in rows]

    async def update_post_media(self, post_id: str, media_ref: str, stored: bool) -> None:
        await self._write_tolerant(
            self.posts_table,
            [{"display_url": media_ref, "image_from_supabase": stored}],
            lambda batch: self._execute(
                lambda: self._table(self.posts_table).update(batch[0]).eq("id", post_id)
            ),
        )

    async def delete_profile(self, profile_id: str) -> None:
        await self.delete_posts(profile_id)
        await self._execute(
            lambda: self._table(self.profiles_table).delete().eq("id", profile_id)
        )

    async def close(self) -> None:
        """The supabase client holds no resources that need explicit release."""
