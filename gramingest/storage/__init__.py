"""Object storage gateways."""

from gramingest.storage.base import DelegatedFetcher, ObjectStore
from gramingest.storage.supabase_bucket import EdgeFunctionFetcher, SupabaseBucketGateway

__all__ = ["DelegatedFetcher", "ObjectStore", "EdgeFunctionFetcher", "SupabaseBucketGateway"]
