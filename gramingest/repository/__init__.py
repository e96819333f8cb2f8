"""Repository implementations."""

from gramingest.repository.base import ProfileRepository, missing_column
from gramingest.repository.sqlite_repo import SQLiteRepository
from gramingest.repository.supabase_repo import SupabaseRepository

__all__ = ["ProfileRepository", "SQLiteRepository", "SupabaseRepository", "missing_column"]
