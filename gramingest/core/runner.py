"""Apify actor client: start runs, poll status, read datasets."""

from datetime import datetime
from typing import Any

import httpx

from gramingest.config import GramingestConfig
from gramingest.exceptions import ConfigError, RunnerError
from gramingest.logging import get_logger
from gramingest.models.job import JobStatus
from gramingest.models.result import RunStatus
from gramingest.repository.base import ProfileRepository

# Upstream vocabulary -> canonical state. Anything missing here keeps polling.
STATUS_MAP = {
    "READY": JobStatus.RUNNING,
    "RUNNING": JobStatus.RUNNING,
    "SUCCEEDED": JobStatus.SUCCEEDED,
    "FAILED": JobStatus.FAILED,
    "TIMED-OUT": JobStatus.TIMEOUT,
    "TIMED_OUT": JobStatus.TIMEOUT,
    "ABORTED": JobStatus.TIMEOUT,
}


def normalize_status(raw_status: str | None) -> JobStatus:
    """
    Map an upstream status string to a canonical JobStatus.

    Unrecognized or missing values map to RUNNING so a vocabulary change
    upstream never turns into a spurious failure.
    """
    if not raw_status:
        return JobStatus.RUNNING
    return STATUS_MAP.get(raw_status.strip().upper(), JobStatus.RUNNING)


def _parse_datetime(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class JobRunnerClient:
    """
    Client for the Instagram scraper actor.

    The API token comes from configuration or, failing that, from the
    active row of the repository's key table.

    Example:
        async with JobRunnerClient(config) as runner:
            run_id = await runner.start_run("alice")
            status = await runner.check_status(run_id)
    """

    def __init__(
        self,
        config: GramingestConfig | None = None,
        repository: ProfileRepository | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config or GramingestConfig()
        self._repository = repository
        self._client = http_client
        self._owns_client = http_client is None
        self._log = get_logger("runner")

    async def __aenter__(self) -> "JobRunnerClient":
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
                timeout=httpx.Timeout(self.config.apify_timeout_seconds),
            )
        return self._client

    def _url(self, path: str) -> str:
        return f"{self.config.apify_base_url.rstrip('/')}{path}"

    async def _get_token(self) -> str:
        """
        Resolve the API token.

        Raises:
            ConfigError: If no active credential is configured
        """
        if self.config.apify_token:
            return self.config.apify_token

        if self._repository is not None:
            try:
                token = await self._repository.get_active_api_key()
            except Exception as e:
                self._log.error("api_key_lookup_failed", error=str(e))
                token = None
            if token:
                return token

        raise ConfigError(
            "No active Apify API key found. Add an Apify API key in your settings."
        )

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        token = await self._get_token()
        headers = {"Authorization": f"Bearer {token}"}
        client = self._ensure_client()

        try:
            response = await client.request(method, self._url(path), headers=headers, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise RunnerError(f"{method} {path} failed: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise RunnerError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise RunnerError(f"{method} {path} returned invalid JSON") from e

    async def start_run(self, username: str, results_limit: int | None = None) -> str:
        """
        Start a scrape run for one profile.

        Args:
            username: Instagram handle (without @)
            results_limit: Max posts to scrape, config default if None

        Returns:
            External run id

        Raises:
            ConfigError: If no API credential is configured
            RunnerError: If the platform rejects the request
        """
        username = username.strip().lstrip("@")
        payload = {
            "directUrls": [f"https://www.instagram.com/{username}"],
            "resultsType": "details",
            "resultsLimit": results_limit or self.config.results_limit,
        }

        body = await self._request(
            "POST",
            f"/acts/{self.config.apify_actor_id}/runs",
            json=payload,
        )
        run_id = (body.get("data") or {}).get("id") if isinstance(body, dict) else None
        if not run_id:
            raise RunnerError("Failed to start Instagram scraper")

        self._log.info("run_started", username=username, run_id=run_id)
        return run_id

    async def check_status(self, run_id: str) -> RunStatus:
        """
        Fetch and normalize the status of a run.

        The dataset id is returned as soon as the run exposes one, even
        while it is still running.
        """
        body = await self._request("GET", f"/actor-runs/{run_id}")
        if not isinstance(body, dict):
            raise RunnerError("Failed to get scraping status")

        run = body.get("data") if isinstance(body.get("data"), dict) else body
        raw_status = run.get("status")
        dataset_id = run.get("defaultDatasetId") or body.get("defaultDatasetId")

        return RunStatus(
            status=normalize_status(raw_status),
            raw_status=raw_status,
            dataset_id=dataset_id,
            finished_at=_parse_datetime(run.get("finishedAt")),
            stats_url=run.get("containerUrl") or run.get("statsUrl"),
            details_url=f"datasets/{dataset_id}" if dataset_id else run.get("detailsUrl"),
        )

    async def fetch_items(self, dataset_id: str) -> list[dict]:
        """Fetch every item of a dataset."""
        body = await self._request(
            "GET",
            f"/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json"},
        )
        if not isinstance(body, list):
            raise RunnerError("Failed to get scraping results")
        return body
