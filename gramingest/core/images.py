"""Image acquisition with ordered fallback strategies."""

import mimetypes
import re
import time
import uuid
from pathlib import PurePosixPath
from urllib.parse import urlparse

import httpx

from gramingest.config import GramingestConfig
from gramingest.logging import get_logger
from gramingest.models.result import ImageAcquisitionResult
from gramingest.storage.base import DelegatedFetcher, ObjectStore

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
]

KNOWN_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".heic", ".mp4"}

# Hosts whose images are only displayable through the reverse proxy
CDN_HOST_SUFFIXES = ("cdninstagram.com", "fbcdn.net", "instagram.com")

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


def is_absolute_http_url(url: str | None) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def build_proxy_path(source_url: str, prefix: str = "/image-proxy") -> str:
    """
    Same-origin path the reverse image proxy resolves to the CDN host.

    Example:
        "https://scontent.cdninstagram.com/v/t51/a.jpg?x=1"
        -> "/image-proxy/v/t51/a.jpg?x=1"
    """
    parsed = urlparse(source_url)
    path = f"{prefix.rstrip('/')}{parsed.path or '/'}"
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return path


def build_object_key(destination_hint: str, source_url: str, now_ms: int | None = None) -> str:
    """
    Unique object key: ``<hint>/<stem>_<epoch ms>_<random>.<ext>``.

    The original filename is kept (sanitized) and its extension preserved
    when it is a known media extension.
    """
    filename = PurePosixPath(urlparse(source_url).path).name
    suffix = PurePosixPath(filename).suffix.lower()
    ext = suffix if suffix in KNOWN_EXTENSIONS else ".jpg"
    stem = filename[: -len(suffix)] if suffix else filename
    stem = _UNSAFE_CHARS.sub("_", stem).strip("_")[:80] or "image"

    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    folder = "/".join(part for part in destination_hint.strip("/").split("/") if part)
    name = f"{stem}_{stamp}_{uuid.uuid4().hex[:6]}{ext}"
    return f"{folder}/{name}" if folder else name


def guess_content_type(source_url: str, header_value: str | None) -> str:
    if header_value:
        media_type = header_value.split(";")[0].strip().lower()
        if media_type.startswith(("image/", "video/")):
            return media_type
    guessed, _ = mimetypes.guess_type(urlparse(source_url).path)
    return guessed or "image/jpeg"


class ImageAcquirer:
    """
    Relays remote images into owned storage.

    Strategies are tried in order and every failure is absorbed:
    direct fetch and upload, delegated fetch, then a proxy path.

    Example:
        async with ImageAcquirer(config, store=gateway) as acquirer:
            result = await acquirer.acquire(url, "profiles/alice")
    """

    def __init__(
        self,
        config: GramingestConfig | None = None,
        store: ObjectStore | None = None,
        delegate: DelegatedFetcher | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or GramingestConfig()
        self._store = store
        self._delegate = delegate
        self._client = http_client
        self._owns_client = http_client is None
        self._log = get_logger("images")

    async def __aenter__(self) -> "ImageAcquirer":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.image_timeout_seconds),
                follow_redirects=True,
            )
        return self._client

    def _headers(self) -> dict:
        return {
            "User-Agent": self.config.user_agent or USER_AGENTS[0],
            "Accept": "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": self.config.image_referer,
            "Sec-Fetch-Dest": "image",
            "Sec-Fetch-Mode": "no-cors",
            "Sec-Fetch-Site": "cross-site",
        }

    def is_owned(self, ref: str) -> bool:
        return self._store is not None and self._store.owns(ref)

    def proxied_image_url(self, url: str) -> str:
        """
        Display URL for an image reference.

        Owned-storage and relative references pass through; Instagram CDN
        URLs are rewritten to the reverse-proxy path.
        """
        if not is_absolute_http_url(url) or self.is_owned(url):
            return url
        host = urlparse(url).hostname or ""
        if host.endswith(CDN_HOST_SUFFIXES):
            return build_proxy_path(url, self.config.proxy_path_prefix)
        return url

    async def acquire(self, source_url: str, destination_hint: str) -> ImageAcquisitionResult:
        """
        Resolve ``source_url`` to a stable reference.

        Args:
            source_url: Remote image URL
            destination_hint: Folder-like prefix for the object key

        Returns:
            ImageAcquisitionResult; ``stored`` is True only for owned-storage refs
        """
        if not is_absolute_http_url(source_url):
            return ImageAcquisitionResult(final_ref=source_url, stored=False)

        if self.is_owned(source_url):
            return ImageAcquisitionResult(final_ref=source_url, stored=True)

        ref = await self._direct(source_url, destination_hint)
        if ref:
            return ImageAcquisitionResult(final_ref=ref, stored=True)

        ref = await self._delegated(source_url, destination_hint)
        if ref:
            return ImageAcquisitionResult(final_ref=ref, stored=True)

        proxy_path = build_proxy_path(source_url, self.config.proxy_path_prefix)
        self._log.info("image_proxy_fallback", url=source_url, proxy_path=proxy_path)
        return ImageAcquisitionResult(final_ref=proxy_path, stored=False)

    async def _direct(self, source_url: str, destination_hint: str) -> str | None:
        if self._store is None:
            return None

        try:
            client = self._ensure_client()
            response = await client.get(
                source_url,
                headers=self._headers(),
                timeout=self.config.image_timeout_seconds,
            )
            if not response.is_success:
                self._log.warning("image_direct_failed", url=source_url, status=response.status_code)
                return None

            data = response.content
            if not data:
                self._log.warning("image_direct_empty", url=source_url)
                return None

            if not await self._store.ensure_bucket():
                self._log.warning("image_bucket_unavailable", url=source_url)
                return None

            key = build_object_key(destination_hint, source_url)
            content_type = guess_content_type(source_url, response.headers.get("content-type"))
            ref = await self._store.upload(key, data, content_type)
        except Exception as e:
            self._log.warning("image_direct_failed", url=source_url, error=str(e) or type(e).__name__)
            return None

        self._log.debug("image_stored", url=source_url, key=key, bytes=len(data))
        return ref

    async def _delegated(self, source_url: str, destination_hint: str) -> str | None:
        if self._delegate is None or not self.config.delegated_fetch_enabled:
            return None

        try:
            ref = await self._delegate.fetch(source_url, destination_hint)
        except Exception as e:
            self._log.warning("image_delegated_failed", url=source_url, error=str(e))
            return None

        if ref:
            self._log.debug("image_stored_delegated", url=source_url)
        return ref or None
