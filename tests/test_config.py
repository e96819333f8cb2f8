"""Unit tests for configuration management."""

import pytest

from gramingest.config import GramingestConfig, LogFormat, StoreBackend


@pytest.fixture
def clean_env(monkeypatch):
    for key in ("GRAMINGEST_APIFY_TOKEN", "GRAMINGEST_SUPABASE_URL", "GRAMINGEST_SUPABASE_ANON_KEY"):
        monkeypatch.delenv(key, raising=False)


class TestGramingestConfigDefaults:
    """Test default configuration values."""

    def test_default_actor(self, clean_env):
        config = GramingestConfig(_env_file=None)
        assert config.apify_base_url == "https://api.apify.com/v2"
        assert config.apify_actor_id == "apify~instagram-scraper"

    def test_default_image_batching(self, clean_env):
        config = GramingestConfig(_env_file=None)
        assert config.image_batch_size == 3
        assert config.image_batch_pause_seconds == 1.0

    def test_default_polling(self, clean_env):
        config = GramingestConfig(_env_file=None)
        assert config.poll_interval_seconds == 15.0

    def test_default_storage(self, clean_env):
        config = GramingestConfig(_env_file=None)
        assert config.bucket_name == "instagram-images"
        assert config.proxy_path_prefix == "/image-proxy"
        assert config.store_backend == StoreBackend.SUPABASE

    def test_default_log_format(self, clean_env):
        config = GramingestConfig(_env_file=None)
        assert config.log_format == LogFormat.CONSOLE

    def test_supabase_not_configured_by_default(self, clean_env):
        config = GramingestConfig(_env_file=None)
        assert config.supabase_configured is False


class TestGramingestConfigEnvVars:
    """Test configuration from environment variables."""

    def test_token_from_env(self, monkeypatch):
        monkeypatch.setenv("GRAMINGEST_APIFY_TOKEN", "apify_api_123")
        config = GramingestConfig(_env_file=None)
        assert config.apify_token == "apify_api_123"

    def test_store_backend_from_env(self, monkeypatch):
        monkeypatch.setenv("GRAMINGEST_STORE_BACKEND", "sqlite")
        config = GramingestConfig(_env_file=None)
        assert config.store_backend == StoreBackend.SQLITE

    def test_batch_size_from_env(self, monkeypatch):
        monkeypatch.setenv("GRAMINGEST_IMAGE_BATCH_SIZE", "5")
        config = GramingestConfig(_env_file=None)
        assert config.image_batch_size == 5

    def test_log_level_from_env(self, monkeypatch):
        monkeypatch.setenv("GRAMINGEST_LOG_LEVEL", "DEBUG")
        config = GramingestConfig(_env_file=None)
        assert config.log_level == "DEBUG"

    def test_supabase_configured_with_url_and_key(self, monkeypatch):
        monkeypatch.setenv("GRAMINGEST_SUPABASE_URL", "https://project.supabase.co")
        monkeypatch.setenv("GRAMINGEST_SUPABASE_ANON_KEY", "anon")
        config = GramingestConfig(_env_file=None)
        assert config.supabase_configured is True


class TestEnums:
    """Test enum values."""

    def test_store_backends(self):
        assert StoreBackend.SUPABASE.value == "supabase"
        assert StoreBackend.SQLITE.value == "sqlite"

    def test_log_formats(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"
