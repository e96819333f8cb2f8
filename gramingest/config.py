"""Configuration management using Pydantic Settings."""

from enum import Enum

from pydantic_settings import BaseSettings


class StoreBackend(str, Enum):
    """Backend holding profile and post rows."""
    SUPABASE = "supabase"
    SQLITE = "sqlite"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


class GramingestConfig(BaseSettings):
    """Configuration for the gramingest pipeline."""

    # Apify actor platform
    apify_token: str | None = None
    apify_base_url: str = "https://api.apify.com/v2"
    apify_actor_id: str = "apify~instagram-scraper"
    apify_timeout_seconds: float = 30.0
    results_limit: int = 100

    # Job tracking
    poll_interval_seconds: float = 15.0

    # Image acquisition
    image_timeout_seconds: float = 12.0
    image_batch_size: int = 3
    image_batch_pause_seconds: float = 1.0
    image_referer: str = "https://www.instagram.com/"
    user_agent: str | None = None
    proxy_path_prefix: str = "/image-proxy"
    delegated_fetch_enabled: bool = True
    delegated_fetch_function: str = "download-instagram-image"

    # Persistence
    store_backend: StoreBackend = StoreBackend.SUPABASE
    sqlite_path: str = ".gramingest.db"
    supabase_url: str | None = None
    supabase_anon_key: str | None = None
    supabase_service_key: str | None = None
    supabase_access_token: str | None = None
    user_id: str | None = None
    bucket_name: str = "instagram-images"
    profiles_table: str = "instagram_profiles"
    posts_table: str = "instagram_posts"
    api_keys_table: str = "apify_keys"

    # Logging
    log_level: str = "INFO"
    log_format: LogFormat = LogFormat.CONSOLE

    model_config = {
        "env_prefix": "GRAMINGEST_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def supabase_configured(self) -> bool:
        """True when a Supabase project URL and at least one key are set."""
        return bool(self.supabase_url and (self.supabase_anon_key or self.supabase_service_key))
