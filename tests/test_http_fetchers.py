import httpx
import pytest

from datacache.cache_store import CacheStore
from datacache.exceptions import FetchError
from datacache.http_fetchers import JsonFetcherFactory, cached_fetch
from datacache.section_orchestrator import SectionOrchestrator


def _make_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://dashboard.test")


@pytest.mark.asyncio
class TestJsonFetcherFactory:
    async def test_fetch_function_returns_decoded_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"total": 3})

        async with _make_client(handler) as client:
            factory = JsonFetcherFactory(client)
            fetch = factory.json("/api/admin/stats", params={"limit": 10})

            assert await fetch() == {"total": 3}

        assert seen[0].url.path == "/api/admin/stats"
        assert seen[0].url.params["limit"] == "10"
        assert factory.get_statistics()["successful_requests"] == 1

    async def test_non_2xx_raises_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="maintenance")

        async with _make_client(handler) as client:
            fetch = JsonFetcherFactory(client).json("/api/admin/users")

            with pytest.raises(FetchError) as exc_info:
                await fetch()

        assert exc_info.value.details["status_code"] == 503
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    async def test_transport_error_raises_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _make_client(handler) as client:
            factory = JsonFetcherFactory(client)
            with pytest.raises(FetchError):
                await factory.get_json("/api/admin/tasks")

        assert factory.get_statistics()["failed_requests"] == 1

    async def test_invalid_json_raises_fetch_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        async with _make_client(handler) as client:
            with pytest.raises(FetchError):
                await JsonFetcherFactory(client).get_json("/api/admin/tasks")

    async def test_section_fetchers_feed_the_orchestrator(self, store: CacheStore) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"path": request.url.path})

        async with _make_client(handler) as client:
            factory = JsonFetcherFactory(client)
            orchestrator = SectionOrchestrator(store)
            orchestrator.register_section(
                "task-management",
                factory.sections({"allTasks": "/api/admin/tasks", "taskStats": "/api/admin/tasks/stats"}),
            )

            result = await orchestrator.load_section_data("task-management")

        assert result.data["taskStats"] == {"path": "/api/admin/tasks/stats"}

    async def test_owned_client_is_closed(self) -> None:
        factory = JsonFetcherFactory(base_url="http://dashboard.test", timeout=5)

        await factory.aclose()

        assert factory.client.is_closed


@pytest.mark.asyncio
class TestCachedFetch:
    async def test_second_call_is_served_from_cache(self, store: CacheStore) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json=[1, 2])

        async with _make_client(handler) as client:
            assert await cached_fetch(store, client, "/api/announcements", key="admin:announcements:all") == [1, 2]
            assert await cached_fetch(store, client, "/api/announcements", key="admin:announcements:all") == [1, 2]

        assert calls == 1
        assert store.get("admin:announcements:all") == [1, 2]

    async def test_failed_response_is_not_cached(self, store: CacheStore) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        async with _make_client(handler) as client:
            with pytest.raises(FetchError):
                await cached_fetch(store, client, "/api/admin/stats", ttl=30)

        assert store.keys() == []
