"""
Scraper platform (Apify) API client.

Async httpx client for the two read-only calls ingestion needs:
- GET /datasets/{id}/items                         scraped records of a run
- GET /actor-runs/{id}/request-queue/requests      pages the run crawled

Transport problems and non-2xx responses are raised as ApifyClientError;
callers decide whether that is fatal.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class ApifyClientError(Exception):
    """Raised when the job-runner API cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApifyClient:
    """
    Async HTTP client for the job-runner API.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API root (defaults to settings.APIFY_API_BASE_URL)
            token: API token (defaults to settings.APIFY_API_TOKEN)
            timeout: Request timeout in seconds (defaults to settings.APIFY_REQUEST_TIMEOUT)
            page_size: Request-queue page size (defaults to settings.APIFY_REQUEST_QUEUE_PAGE_SIZE)
            transport: Optional httpx transport, used by tests
        """
        self.base_url = (
            base_url or getattr(settings, "APIFY_API_BASE_URL", "https://api.apify.com/v2")
        ).rstrip("/")
        self.token = token if token is not None else getattr(settings, "APIFY_API_TOKEN", "")
        self.timeout = timeout or getattr(settings, "APIFY_REQUEST_TIMEOUT", 60.0)
        self.page_size = page_size or getattr(settings, "APIFY_REQUEST_QUEUE_PAGE_SIZE", 1000)
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._get_headers(),
            transport=self._transport,
        )

    async def _get_json(self, client: httpx.AsyncClient, path: str, params: Dict[str, Any]) -> Any:
        try:
            response = await client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ApifyClientError(f"Request timeout after {self.timeout}s: {path}") from e
        except httpx.HTTPError as e:
            raise ApifyClientError(f"Connection error for {path}: {e}") from e

        if response.status_code >= 400:
            raise ApifyClientError(
                f"HTTP {response.status_code} for {path}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ApifyClientError(f"Invalid JSON from {path}") from e

    async def get_dataset_items(self, dataset_id: str) -> Any:
        """
        Fetch every item of a dataset in one response.

        Returns the decoded JSON body (a list for a healthy dataset).
        """
        logger.debug(f"Fetching dataset items for {dataset_id}")

        async with self._client() as client:
            return await self._get_json(
                client,
                f"/datasets/{dataset_id}/items",
                {"clean": "true", "format": "json"},
            )

    async def get_run_requests(self, actor_run_id: str) -> List[Dict[str, Any]]:
        """
        Fetch the request log of a run, following the exclusiveStartId cursor.

        Returns:
            List of request dicts (id, url, loadedUrl, handledAt, ...)
        """
        requests: List[Dict[str, Any]] = []
        exclusive_start_id = None

        async with self._client() as client:
            while True:
                params: Dict[str, Any] = {"limit": self.page_size}
                if exclusive_start_id:
                    params["exclusiveStartId"] = exclusive_start_id

                body = await self._get_json(
                    client,
                    f"/actor-runs/{actor_run_id}/request-queue/requests",
                    params,
                )
                data = body.get("data", {}) if isinstance(body, dict) else {}
                items = data.get("items") or []
                requests.extend(items)

                if len(items) < self.page_size or not items[-1].get("id"):
                    break
                exclusive_start_id = items[-1]["id"]

        logger.debug(f"Fetched {len(requests)} requests for run {actor_run_id}")
        return requests
