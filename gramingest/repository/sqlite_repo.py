"""SQLite-backed repository for local, single-user runs."""

import json
import sqlite3
import uuid
from pathlib import Path

import aiosqlite

from gramingest.exceptions import RepositoryError
from gramingest.models.post import PostRecord
from gramingest.models.profile import ProfileRecord
from gramingest.repository.base import ProfileRepository
from gramingest.repository.rows import post_from_row, profile_from_row, utcnow_iso

LOCAL_USER_ID = "local"


def _sql_value(value):
    # List columns are stored as JSON text
    if isinstance(value, list):
        return json.dumps(value)
    return value


class SQLiteRepository(ProfileRepository):
    """
    Local repository using aiosqlite, mirroring the hosted table layout.

    Example:
        async with SQLiteRepository(".gramingest.db") as repo:
            profiles = await repo.list_profiles("local")
    """

    def __init__(
        self,
        db_path: str = ".gramingest.db",
        user_id: str | None = None,
        profiles_table: str = "instagram_profiles",
        posts_table: str = "instagram_posts",
        api_keys_table: str = "apify_keys",
    ):
        """
        Initialize SQLite repository.

        Args:
            db_path: Path to SQLite database file
            user_id: Acting user; defaults to a single local user
            profiles_table: Profile table name
            posts_table: Post table name
            api_keys_table: Actor credential table name
        """
        super().__init__()
        self.db_path = Path(db_path)
        self.user_id = user_id or LOCAL_USER_ID
        self.profiles_table = profiles_table
        self.posts_table = posts_table
        self.api_keys_table = api_keys_table
        self._db: aiosqlite.Connection | None = None

    async def _ensure_db(self) -> aiosqlite.Connection:
        """Ensure database connection and schema exist."""
        if self._db is None:
            self._db = await aiosqlite.connect(self.db_path)
            self._db.row_factory = aiosqlite.Row
            await self._db.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.profiles_table} (
                    id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    instagram_id TEXT NOT NULL,
                    username TEXT NOT NULL,
                    full_name TEXT,
                    biography TEXT,
                    followers_count INTEGER DEFAULT 0,
                    follows_count INTEGER DEFAULT 0,
                    posts_count INTEGER DEFAULT 0,
                    profile_pic_url TEXT,
                    profile_pic_from_supabase INTEGER DEFAULT 0,
                    is_business_account INTEGER DEFAULT 0,
                    business_category_name TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            await self._db.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.posts_table} (
                    id TEXT PRIMARY KEY,
                    profile_id TEXT NOT NULL,
                    instagram_id TEXT,
                    short_code TEXT,
                    type TEXT,
                    url TEXT,
                    caption TEXT,
                    timestamp TEXT,
                    likes_count INTEGER DEFAULT 0,
                    comments_count INTEGER DEFAULT 0,
                    video_view_count INTEGER,
                    display_url TEXT,
                    is_video INTEGER DEFAULT 0,
                    hashtags TEXT,
                    mentions TEXT,
                    product_type TEXT,
                    is_comments_disabled INTEGER DEFAULT 0,
                    image_from_supabase INTEGER DEFAULT 0
                )
            """)
            await self._db.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.api_keys_table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    api_key TEXT NOT NULL,
                    is_active INTEGER DEFAULT 1
                )
            """)
            await self._db.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.profiles_table}_owner "
                f"ON {self.profiles_table}(user_id, instagram_id)"
            )
            await self._db.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.posts_table}_profile "
                f"ON {self.posts_table}(profile_id)"
            )
            await self._db.commit()
        return self._db

    async def _fetch_all(self, sql: str, params: tuple = ()) -> list[dict]:
        db = await self._ensure_db()
        try:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise RepositoryError(str(e)) from e
        return [dict(row) for row in rows]

    async def current_user_id(self) -> str | None:
        return self.user_id

    async def get_active_api_key(self) -> str | None:
        rows = await self._fetch_all(
            f"SELECT api_key FROM {self.api_keys_table} WHERE is_active = 1 ORDER BY id DESC LIMIT 1"
        )
        return rows[0]["api_key"] if rows else None

    async def add_api_key(self, api_key: str) -> None:
        """Store a key as the only active one."""
        db = await self._ensure_db()
        await db.execute(f"UPDATE {self.api_keys_table} SET is_active = 0")
        await db.execute(
            f"INSERT INTO {self.api_keys_table} (api_key, is_active) VALUES (?, 1)", (api_key,)
        )
        await db.commit()

    async def find_profile(self, external_id: str, user_id: str) -> ProfileRecord | None:
        rows = await self._fetch_all(
            f"SELECT * FROM {self.profiles_table} WHERE instagram_id = ? AND user_id = ? LIMIT 1",
            (external_id, user_id),
        )
        return profile_from_row(rows[0]) if rows else None

    async def get_profile(self, profile_id: str) -> ProfileRecord | None:
        rows = await self._fetch_all(
            f"SELECT * FROM {self.profiles_table} WHERE id = ?", (profile_id,)
        )
        return profile_from_row(rows[0]) if rows else None

    async def _insert(self, table: str, rows: list[dict]) -> None:
        if not rows:
            return
        db = await self._ensure_db()
        columns = list(rows[0].keys())
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        try:
            await db.executemany(sql, [tuple(_sql_value(row[c]) for c in columns) for row in rows])
            await db.commit()
        except sqlite3.Error as e:
            await db.rollback()
            raise RepositoryError(str(e)) from e

    async def _update(self, table: str, row_id: str, row: dict) -> None:
        db = await self._ensure_db()
        assignments = ", ".join(f"{column} = ?" for column in row)
        try:
            await db.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                (*(_sql_value(v) for v in row.values()), row_id),
            )
            await db.commit()
        except sqlite3.Error as e:
            await db.rollback()
            raise RepositoryError(str(e)) from e

    async def insert_profile(self, row: dict) -> ProfileRecord:
        profile_id = str(uuid.uuid4())
        now = utcnow_iso()
        full = {"id": profile_id, "created_at": now, **row}
        await self._write_tolerant(
            self.profiles_table, [full], lambda rows: self._insert(self.profiles_table, rows)
        )
        profile = await self.get_profile(profile_id)
        if profile is None:
            raise RepositoryError("Inserted profile could not be read back")
        return profile

    async def update_profile(self, profile_id: str, row: dict) -> ProfileRecord:
        await self._write_tolerant(
            self.profiles_table, [row], lambda rows: self._update(self.profiles_table, profile_id, rows[0])
        )
        profile = await self.get_profile(profile_id)
        if profile is None:
            raise RepositoryError(f"Profile {profile_id} not found after update")
        return profile

    async def delete_posts(self, profile_id: str) -> None:
        db = await self._ensure_db()
        try:
            await db.execute(f"DELETE FROM {self.posts_table} WHERE profile_id = ?", (profile_id,))
            await db.commit()
        except sqlite3.Error as e:
            raise RepositoryError(str(e)) from e

    async def insert_posts(self, rows: list[dict]) -> int:
        if not rows:
            return 0
        with_ids = [{"id": str(uuid.uuid4()), **row} for row in rows]
        await self._write_tolerant(
            self.posts_table, with_ids, lambda batch: self._insert(self.posts_table, batch)
        )
        return len(with_ids)

    async def list_profiles(self, user_id: str) -> list[ProfileRecord]:
        rows = await self._fetch_all(
            f"SELECT * FROM {self.profiles_table} WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        )
        return [profile_from_row(row) for row in rows]

    async def list_posts(self, profile_id: str) -> list[PostRecord]:
        rows = await self._fetch_all(
            f"SELECT * FROM {self.posts_table} WHERE profile_id = ? ORDER BY timestamp DESC",
            (profile_id,),
        )
        return [post_from_row(row) for row in rows]

    async def update_post_media(self, post_id: str, media_ref: str, stored: bool) -> None:
        await self._write_tolerant(
            self.posts_table,
            [{"display_url": media_ref, "image_from_supabase": stored}],
            lambda rows: self._update(self.posts_table, post_id, rows[0]),
        )

    async def delete_profile(self, profile_id: str) -> None:
        await self.delete_posts(profile_id)
        db = await self._ensure_db()
        try:
            await db.execute(f"DELETE FROM {self.profiles_table} WHERE id = ?", (profile_id,))
            await db.commit()
        except sqlite3.Error as e:
            raise RepositoryError(str(e)) from e

    async def close(self) -> None:
        """Close database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None
