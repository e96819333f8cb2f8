"""Abstract profile repository interface."""

import re
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, TypeVar

from gramingest.logging import get_logger
from gramingest.models.post import PostRecord
from gramingest.models.profile import ProfileRecord
from gramingest.repository.rows import OPTIONAL_COLUMNS

T = TypeVar("T")

# PostgREST, Postgres and SQLite phrasings of "this column is not in the table"
_MISSING_COLUMN_PATTERNS = [
    re.compile(r"Could not find the '(\w+)' column"),
    re.compile(r'column "?(?:\w+\.)?(\w+)"? (?:of relation "?\w+"? )?does not exist'),
    re.compile(r"has no column named (\w+)"),
    re.compile(r"no such column: (?:\w+\.)?(\w+)"),
]


def missing_column(message: str) -> str | None:
    """
    Extract the column name from a schema-mismatch error message.

    Returns:
        Column name, or None if the message is not a schema mismatch
    """
    for pattern in _MISSING_COLUMN_PATTERNS:
        match = pattern.search(message)
        if match:
            return match.group(1)
    return None


class ProfileRepository(ABC):
    """Persistence for profiles, posts and actor credentials."""

    def __init__(self):
        self._log = get_logger("repository")

    @abstractmethod
    async def current_user_id(self) -> str | None:
        """Id of the acting user, or None if unauthenticated."""
        ...

    @abstractmethod
    async def get_active_api_key(self) -> str | None:
        """Active actor-platform API key stored for the user, if any."""
        ...

    @abstractmethod
    async def find_profile(self, external_id: str, user_id: str) -> ProfileRecord | None:
        """Look up a profile by Instagram id within one user's rows."""
        ...

    @abstractmethod
    async def get_profile(self, profile_id: str) -> ProfileRecord | None:
        ...

    @abstractmethod
    async def insert_profile(self, row: dict) -> ProfileRecord:
        ...

    @abstractmethod
    async def update_profile(self, profile_id: str, row: dict) -> ProfileRecord:
        ...

    @abstractmethod
    async def delete_posts(self, profile_id: str) -> None:
        """Remove every post owned by a profile."""
        ...

    @abstractmethod
    async def insert_posts(self, rows: list[dict]) -> int:
        """
        Bulk insert post rows.

        Returns:
            Number of rows inserted
        """
        ...

    @abstractmethod
    async def list_profiles(self, user_id: str) -> list[ProfileRecord]:
        """Profiles of a user, newest first."""
        ...

    @abstractmethod
    async def list_posts(self, profile_id: str) -> list[PostRecord]:
        """Posts of a profile, newest first."""
        ...

    @abstractmethod
    async def update_post_media(self, post_id: str, media_ref: str, stored: bool) -> None:
        ...

    @abstractmethod
    async def delete_profile(self, profile_id: str) -> None:
        """Remove a profile and its posts."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Cleanup connections and resources."""
        ...

    async def _write_tolerant(
        self,
        table: str,
        rows: list[dict],
        write: Callable[[list[dict]], Awaitable[T]],
    ) -> T:
        """
        Run ``write`` and retry once without an optional column the table lacks.

        Raises:
            RepositoryError: If the write fails for any other reason or twice
        """
        try:
            return await write(rows)
        except Exception as e:
            column = missing_column(str(e))
            if column is None or column not in OPTIONAL_COLUMNS or not any(column in r for r in rows):
                raise
            self._log.warning("schema_column_missing", table=table, column=column)

        reduced = [{k: v for k, v in row.items() if k != column} for row in rows]
        return await write(reduced)

    async def __aenter__(self) -> "ProfileRepository":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
