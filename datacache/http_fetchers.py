# datacache/http_fetchers.py
"""Build zero-argument JSON fetch functions on top of an httpx client.

Cached bindings and the section orchestrator only know fetch functions. This
module is the bridge for hosts whose data comes from a JSON HTTP API: it turns
a URL into a fetch function that GETs it and decodes the body, raising
`FetchError` for non-2xx responses and transport failures.

Notes:
    - The client is owned by the caller; `JsonFetcherFactory.aclose()` only
      closes clients the factory created itself.
    - No retries are applied. Timeouts come from the client configuration.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any

import httpx
import structlog

import config
from datacache.exceptions import FetchError, create_error_context

if TYPE_CHECKING:
    from datacache.cache_store import CacheStore

logger = structlog.get_logger(__name__)

JsonFetch = Callable[[], Awaitable[Any]]


class JsonFetcherFactory:
    """Create JSON GET fetch functions sharing one `httpx.AsyncClient`."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        base_url: str = "",
        timeout: float | None = None,
    ):
        """Initialize the factory.

        Args:
            client: Client to issue requests with. When omitted, one is created
                with ``base_url`` and ``timeout`` (defaulting to ``HTTPX_TIMEOUT``).
            base_url: Base URL for a created client.
            timeout: Request timeout in seconds for a created client.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=config.HTTPX_TIMEOUT if timeout is None else timeout,
        )
        self._stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
        }

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def aclose(self) -> None:
        """Close the client if this factory created it."""
        if self._owns_client:
            await self._client.aclose()
            logger.debug("JsonFetcherFactory client closed")

    def json(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> JsonFetch:
        """Return a fetch function that GETs ``url`` and decodes the JSON body."""

        async def fetch() -> Any:
            return await self.get_json(url, params=params, headers=headers)

        return fetch

    def sections(self, urls: Mapping[str, str]) -> dict[str, JsonFetch]:
        """Map of data key to fetch function, for `SectionOrchestrator.register_section`."""
        return {data_key: self.json(url) for data_key, url in urls.items()}

    async def get_json(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """GET ``url`` and return the decoded JSON body.

        Raises:
            FetchError: On transport errors, non-2xx responses or an undecodable body.
        """
        self._stats["total_requests"] += 1
        try:
            response = await self._client.get(url, params=params, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            self._stats["failed_requests"] += 1
            status_code = e.response.status_code
            logger.warning("HTTP status error", url=url, status_code=status_code)
            raise FetchError(
                f"GET {url} returned {status_code}",
                key=url,
                details=create_error_context(
                    url=url,
                    status_code=status_code,
                    response=e.response.text[:200] or None,
                ),
            ) from e
        except httpx.RequestError as e:
            self._stats["failed_requests"] += 1
            logger.warning("HTTP request error", url=url, error=str(e))
            raise FetchError(
                f"GET {url} failed: {e}",
                key=url,
                details=create_error_context(url=url, error_type=type(e).__name__),
            ) from e
        except ValueError as e:
            self._stats["failed_requests"] += 1
            logger.warning("Invalid JSON response", url=url, error=str(e))
            raise FetchError(
                f"GET {url} returned invalid JSON",
                key=url,
                details=create_error_context(url=url, error=str(e)),
            ) from e

        self._stats["successful_requests"] += 1
        logger.debug("HTTP GET successful", url=url, status_code=response.status_code)
        return payload

    def get_statistics(self) -> dict[str, Any]:
        stats = self._stats.copy()
        total = stats["total_requests"]
        stats["success_rate"] = (stats["successful_requests"] / total * 100) if total else 0.0
        return stats


async def cached_fetch(
    store: CacheStore,
    client: httpx.AsyncClient,
    url: str,
    key: str | None = None,
    ttl: float | None = None,
    params: Mapping[str, Any] | None = None,
) -> Any:
    """Cache-first JSON GET.

    Args:
        store: Cache store to read from and write to.
        client: Client issuing the request on a miss.
        url: URL to GET.
        key: Cache key; defaults to the URL.
        ttl: TTL for the stored response; defaults to the store's default.
        params: Optional query parameters.

    Returns:
        The cached or freshly fetched JSON value.

    Raises:
        FetchError: When the request fails. Failed responses are never cached.
    """
    cache_key = key or url
    cached = store.get_entry(cache_key)
    if cached is not None:
        logger.debug("Cache hit", key=cache_key)
        return cached.value

    payload = await JsonFetcherFactory(client).get_json(url, params=params)
    store.set(cache_key, payload, ttl)
    return payload
