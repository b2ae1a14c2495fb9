"""FHIR terminology server client.

Implements ``TerminologyConnection`` over HTTP.

Architecture Overview:
---------------------
- Async HTTP communication via httpx (lazy, pooled client)
- Automatic retry with exponential backoff for network errors and timeouts
- 429 handling that honours ``Retry-After``
- Search paging through ``Bundle.link[relation=next]``
- Optional on-disk read cache (diskcache with JSONDisk) for reads

Common Endpoint Patterns:
------------------------
- GET  [base]/ValueSet/{id}              - fetch_by_id
- GET  [base]/CodeSystem?url=...         - search
- GET  [base]/ValueSet/{id}/$expand      - expand
- POST [base]                            - submit (batch Bundle)

Error Mapping:
-------------
- 404                 -> ResourceNotFoundError
- other 4xx/5xx       -> FHIRServerError (OperationOutcome issues extracted)
- transport failures  -> NetworkFailure
"""

import asyncio
import hashlib
import time
from pathlib import Path
from typing import Any

import diskcache
import httpx
import structlog
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import CacheConfig, ServerConfig
from ..constants import FHIR_JSON_MEDIA_TYPE, MAX_RATE_LIMIT_RETRIES, MAX_SEARCH_PAGES, VALUE_SET
from ..observability.metrics import MetricsCollector
from ..utils.exceptions import FHIRServerError, NetworkFailure, ResourceNotFoundError
from .response_models import ResponseBundle, parse_operation_outcome

logger = structlog.get_logger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 5


def _retry_after_seconds(response: httpx.Response) -> int:
    value = response.headers.get("Retry-After", "")
    return int(value) if value.strip().isdigit() else DEFAULT_RETRY_AFTER_SECONDS


class FHIRClient:
    """
    FHIR R4 terminology server client.

    Features:
    - Connection pooling via httpx.AsyncClient
    - Automatic retries with exponential backoff
    - Rate limit handling
    - Optional persistent read cache

    Usage:
        async with FHIRClient(server_config) as client:
            value_set = await client.fetch_by_id("ValueSet", "abc")
    """

    def __init__(
        self,
        config: ServerConfig,
        cache_config: CacheConfig | None = None,
        collector: MetricsCollector | None = None,
    ) -> None:
        """
        Initialize client.

        Args:
            config: Server connection settings
            cache_config: Read cache settings; disabled unless ``enabled`` is set
            collector: Metrics collector for request counts and latency
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.collector = collector or MetricsCollector()
        self.cache_config = cache_config or CacheConfig()

        self._client: httpx.AsyncClient | None = None  # Lazy-loaded

        self.cache: diskcache.Cache | None = None
        if self.cache_config.enabled:
            # One cache directory per server so identical paths never collide
            namespace = hashlib.sha256(self.base_url.encode()).hexdigest()[:16]
            cache_dir = Path(self.cache_config.directory) / namespace
            cache_dir.mkdir(parents=True, exist_ok=True)
            self.cache = diskcache.Cache(
                str(cache_dir),
                disk=diskcache.JSONDisk,
                disk_compress_level=1,
            )

    @property
    def name(self) -> str:
        return self.config.name

    async def __aenter__(self) -> "FHIRClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client and the cache."""
        if self._client:
            await self._client.aclose()
            self._client = None
        if self.cache is not None:
            self.cache.close()

    @property
    def client(self) -> httpx.AsyncClient:
        """HTTP client, created on first use."""
        if self._client is None:
            headers = {"Accept": FHIR_JSON_MEDIA_TYPE, "Content-Type": FHIR_JSON_MEDIA_TYPE}
            if self.config.auth_token:
                headers["Authorization"] = f"Bearer {self.config.auth_token}"

            self._client = httpx.AsyncClient(
                headers=headers,
                verify=self.config.verify_ssl,
                timeout=self.config.timeout,
                follow_redirects=True,
                limits=httpx.Limits(
                    max_connections=self.config.max_connections,
                    max_keepalive_connections=self.config.max_keepalive,
                ),
            )
        return self._client

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        if not path:
            return self.base_url
        return f"{self.base_url}/{path.lstrip('/')}"

    @retry(
        retry=retry_if_exception_type((httpx.NetworkError, httpx.TimeoutException)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        return await self.client.request(method, url, params=params, json=json)

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        _rate_limit_retries: int = 0,
    ) -> Any:
        """
        Make a request to the server.

        Args:
            method: HTTP method
            path: Path relative to the base URL, or an absolute URL (paging links)
            params: Query parameters
            json: JSON body
            _rate_limit_retries: Internal recursion counter. DO NOT USE EXTERNALLY.

        Returns:
            Parsed JSON response, or None for an empty body

        Raises:
            ResourceNotFoundError: For 404 Not Found
            FHIRServerError: For any other error status
            NetworkFailure: If the server could not be reached
        """
        url = self._url(path)
        start_time = time.perf_counter()

        try:
            response = await self._send(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            self.collector.count_request(method, "error")
            logger.warning("FHIR request failed", method=method, url=url, error=str(e))
            raise NetworkFailure(f"HTTP request failed: {e}", original_error=e) from e

        duration = (time.perf_counter() - start_time) * 1000
        self.collector.count_request(method, response.status_code)
        self.collector.record_latency(method, duration)
        logger.debug(
            "FHIR request",
            method=method,
            url=url,
            status=response.status_code,
            duration_ms=round(duration, 1),
        )

        if response.status_code == 429:
            retry_after = _retry_after_seconds(response)
            if _rate_limit_retries >= MAX_RATE_LIMIT_RETRIES:
                logger.error("Rate limit retries exhausted", retries=_rate_limit_retries, url=url)
                raise FHIRServerError(
                    f"Rate limit exceeded, retry after {retry_after}s", status_code=429
                )

            logger.warning(
                "Rate limited, waiting before retry",
                retry_after=retry_after,
                attempt=_rate_limit_retries + 1,
                max_retries=MAX_RATE_LIMIT_RETRIES,
                url=url,
            )
            await asyncio.sleep(retry_after)
            return await self.request(
                method, path, params=params, json=json, _rate_limit_retries=_rate_limit_retries + 1
            )

        if response.status_code == 404:
            resource_type = path.split("/", 1)[0] if not path.startswith("http") else "Resource"
            raise ResourceNotFoundError(resource_type or "Resource", path)

        if response.is_error:
            raise self._server_error(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise NetworkFailure(
                f"Invalid JSON in response from {url}", original_error=e
            ) from e

    def _server_error(self, response: httpx.Response) -> FHIRServerError:
        """Build a FHIRServerError, reading OperationOutcome issues when present."""
        data: Any = None
        try:
            data = response.json()
        except ValueError:
            pass

        issues: list[str] = []
        message = response.text[:200] or response.reason_phrase
        outcome = parse_operation_outcome(data)
        if outcome is not None:
            issues = outcome.get_messages()
            message = outcome.get_full_message()

        return FHIRServerError(
            f"Server error {response.status_code}: {message}",
            status_code=response.status_code,
            response=data if isinstance(data, dict) else None,
            issues=issues,
        )

    async def _cached_get(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET through the read cache when enabled."""
        if self.cache is None:
            return await self.request("GET", path, params=params)

        query = "&".join(f"{k}={v}" for k, v in sorted((params or {}).items()))
        key = f"GET {self._url(path)}?{query}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Cache hit", key=key)
            return cached

        data = await self.request("GET", path, params=params)
        self.cache.set(key, data, expire=self.cache_config.ttl_seconds)
        return data

    async def fetch_by_id(self, resource_type: str, resource_id: str) -> dict[str, Any]:
        """GET [base]/{resource_type}/{resource_id}."""
        return await self._cached_get(f"{resource_type}/{resource_id}")

    async def search(self, resource_type: str, params: dict[str, str]) -> list[dict[str, Any]]:
        """
        Search and follow ``next`` links until every page has been read.

        Args:
            resource_type: Resource type to search
            params: Search parameters

        Returns:
            Matching resources from every page

        Raises:
            NetworkFailure: If a page could not be fetched or is not a Bundle
        """
        resources: list[dict[str, Any]] = []
        seen_pages: set[str] = set()
        data = await self._cached_get(resource_type, params=params)
        pages = 0

        while True:
            pages += 1
            try:
                page = ResponseBundle.model_validate(data)
            except ValidationError as e:
                raise NetworkFailure(
                    f"Unexpected search response for {resource_type}",
                    response=data if isinstance(data, dict) else None,
                    original_error=e,
                ) from e

            resources.extend(page.get_resources())

            next_url = page.get_next_url()
            if not next_url:
                break
            if next_url in seen_pages:
                logger.warning("Search paging loop detected", url=next_url)
                break
            if pages >= MAX_SEARCH_PAGES:
                logger.warning(
                    "Search page limit reached", resource_type=resource_type, pages=pages
                )
                break

            seen_pages.add(next_url)
            data = await self._cached_get(next_url)

        logger.debug(
            "Search complete",
            resource_type=resource_type,
            params=params,
            pages=pages,
            results=len(resources),
        )
        return resources

    async def search_value_sets(
        self,
        url: str | None = None,
        name: str | None = None,
        identifier: str | None = None,
    ) -> list[dict[str, Any]]:
        """Search ValueSets by canonical url, name and/or identifier."""
        params = {
            key: value
            for key, value in (("url", url), ("name", name), ("identifier", identifier))
            if value
        }
        return await self.search(VALUE_SET, params)

    async def expand(self, value_set_id: str) -> dict[str, Any]:
        """GET [base]/ValueSet/{value_set_id}/$expand."""
        return await self.request("GET", f"{VALUE_SET}/{value_set_id}/$expand")

    async def submit(self, bundle: dict[str, Any]) -> dict[str, Any]:
        """POST a batch/transaction Bundle to [base]."""
        return await self.request("POST", "", json=bundle) or {}
