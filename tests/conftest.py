"""Shared fakes and fixtures - no internet, no hosted backend."""

import json
from pathlib import Path

import pytest

from gramingest.config import GramingestConfig, StoreBackend
from gramingest.exceptions import StorageError
from gramingest.storage.base import DelegatedFetcher, ObjectStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"

STORE_PREFIX = "https://project.supabase.co/storage/v1/object/public/instagram-images/"


def load_dataset(name: str) -> list[dict]:
    """Load raw actor dataset items from a JSON fixture."""
    return json.loads((FIXTURES_DIR / f"{name}.json").read_text(encoding="utf-8"))


class FakeStore(ObjectStore):
    """In-memory object store."""

    def __init__(self, bucket_ok: bool = True, fail_upload: bool = False):
        self.bucket_ok = bucket_ok
        self.fail_upload = fail_upload
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def ensure_bucket(self) -> bool:
        return self.bucket_ok

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        if self.fail_upload:
            raise StorageError(f"Upload of {key} failed: 403 Unauthorized")
        self.objects[key] = (data, content_type)
        return self.get_public_ref(key)

    def get_public_ref(self, key: str) -> str:
        return f"{STORE_PREFIX}{key}"

    def owns(self, ref: str) -> bool:
        return ref.startswith(STORE_PREFIX)


class FakeDelegate(DelegatedFetcher):
    """Delegated fetcher returning a fixed result."""

    def __init__(self, result: str | None = None):
        self.result = result
        self.calls: list[tuple[str, str]] = []

    async def fetch(self, source_url: str, destination_hint: str) -> str | None:
        self.calls.append((source_url, destination_hint))
        return self.result


@pytest.fixture
def alice_items() -> list[dict]:
    return load_dataset("alice_dataset")


@pytest.fixture
def config(tmp_path) -> GramingestConfig:
    """Config that never touches the environment's hosted services."""
    return GramingestConfig(
        apify_token="test-token",
        store_backend=StoreBackend.SQLITE,
        sqlite_path=str(tmp_path / "gramingest.db"),
        supabase_url=None,
        supabase_anon_key=None,
        supabase_service_key=None,
        user_id=None,
        image_batch_pause_seconds=1.0,
        poll_interval_seconds=0.01,
        _env_file=None,
    )
