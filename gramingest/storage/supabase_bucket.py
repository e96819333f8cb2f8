"""Supabase Storage bucket gateway and Edge Function fetcher."""

import asyncio
import json
import re

from supabase import Client

from gramingest.exceptions import StorageError
from gramingest.logging import get_logger
from gramingest.storage.base import DelegatedFetcher, ObjectStore

_NOT_FOUND = re.compile(r"not[ _]?found|does not exist|\b404\b", re.IGNORECASE)


def _error_text(error: Exception) -> str:
    """Flatten storage client errors, which often carry a dict payload."""
    if error.args and isinstance(error.args[0], dict):
        payload = error.args[0]
        parts = [str(payload.get(k, "")) for k in ("statusCode", "error", "message")]
        return " ".join(p for p in parts if p)
    return str(error)


def is_not_found_error(error: Exception) -> bool:
    """True if a storage error means the bucket does not exist."""
    return bool(_NOT_FOUND.search(_error_text(error)))


class SupabaseBucketGateway(ObjectStore):
    """
    Public Supabase Storage bucket.

    The supabase-py client is synchronous, so every call runs in a worker
    thread to keep the event loop free.

    Example:
        gateway = SupabaseBucketGateway(service_client, "instagram-images", url)
        if await gateway.ensure_bucket():
            ref = await gateway.upload("profiles/alice/pic.jpg", data, "image/jpeg")
    """

    def __init__(self, client: Client, bucket_name: str, supabase_url: str):
        """
        Initialize gateway.

        Args:
            client: Supabase client holding the service-role credential
            bucket_name: Bucket to store images in
            supabase_url: Project URL, used to recognise owned references
        """
        self._client = client
        self.bucket_name = bucket_name
        self._public_prefix = f"{supabase_url.rstrip('/')}/storage/v1/object/public/{bucket_name}/"
        self._ready = False
        self._log = get_logger("storage")

    async def ensure_bucket(self) -> bool:
        """Probe the bucket and create it only when the probe says it is missing."""
        if self._ready:
            return True

        try:
            await asyncio.to_thread(
                self._client.storage.from_(self.bucket_name).list,
                options={"limit": 1},
            )
            self._ready = True
            return True
        except Exception as e:
            if not is_not_found_error(e):
                self._log.error("bucket_probe_failed", bucket=self.bucket_name, error=_error_text(e))
                return False

        self._log.info("bucket_create", bucket=self.bucket_name)
        try:
            await asyncio.to_thread(
                self._client.storage.create_bucket,
                self.bucket_name,
                options={"public": True},
            )
        except Exception as e:
            self._log.error("bucket_create_failed", bucket=self.bucket_name, error=_error_text(e))
            return False

        self._ready = True
        return True

    async def upload(self, key: str, data: bytes, content_type: str) -> str:
        """Upload with upsert so a retried key overwrites instead of failing."""
        try:
            await asyncio.to_thread(
                self._client.storage.from_(self.bucket_name).upload,
                path=key,
                file=data,
                file_options={"content-type": content_type, "upsert": "true"},
            )
        except Exception as e:
            raise StorageError(f"Upload of {key} failed: {_error_text(e)}") from e

        return self.get_public_ref(key)

    def get_public_ref(self, key: str) -> str:
        url = self._client.storage.from_(self.bucket_name).get_public_url(key)
        return url.rstrip("?")

    def owns(self, ref: str) -> bool:
        return ref.startswith(self._public_prefix)


class EdgeFunctionFetcher(DelegatedFetcher):
    """Delegates the download to a Supabase Edge Function with different egress."""

    def __init__(self, client: Client, function_name: str = "download-instagram-image"):
        self._client = client
        self.function_name = function_name
        self._log = get_logger("edge_function")

    async def fetch(self, source_url: str, destination_hint: str) -> str | None:
        try:
            response = await asyncio.to_thread(
                self._client.functions.invoke,
                self.function_name,
                invoke_options={"body": {"imageUrl": source_url, "storagePath": destination_hint}},
            )
        except Exception as e:
            self._log.warning("edge_function_failed", function=self.function_name, error=str(e))
            return None

        return _extract_url(response)


def _extract_url(response) -> str | None:
    """Pull the stored URL out of an Edge Function response body."""
    if isinstance(response, (bytes, bytearray, str)):
        try:
            response = json.loads(response)
        except ValueError:
            return None

    if not isinstance(response, dict) or response.get("error"):
        return None

    for field in ("url", "publicUrl", "supabaseUrl"):
        value = response.get(field)
        if isinstance(value, str) and value.startswith("http"):
            return value
    return None
