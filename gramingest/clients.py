"""Supabase client construction."""

from supabase import Client, create_client

from gramingest.config import GramingestConfig
from gramingest.exceptions import ConfigError


def create_user_client(config: GramingestConfig) -> Client:
    """
    Client acting as the dashboard user.

    Row access goes through row-level security when an access token is
    configured; otherwise the anon key (or the service key as a last
    resort) is used as-is.
    """
    key = config.supabase_anon_key or config.supabase_service_key
    if not config.supabase_url or not key:
        raise ConfigError("GRAMINGEST_SUPABASE_URL and a Supabase key are required")

    client = create_client(config.supabase_url, key)
    if config.supabase_access_token:
        client.postgrest.auth(config.supabase_access_token)
    return client


def create_service_client(config: GramingestConfig) -> Client:
    """Client with the elevated service-role credential, used for storage."""
    if not config.supabase_url or not config.supabase_service_key:
        raise ConfigError("GRAMINGEST_SUPABASE_URL and GRAMINGEST_SUPABASE_SERVICE_KEY are required")
    return create_client(config.supabase_url, config.supabase_service_key)
