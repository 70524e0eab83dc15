# tests/test_runtime.py
import asyncio
from unittest.mock import AsyncMock

import pytest

from config import DataCacheSettings
from datacache import cache_keys
from datacache.runtime import CacheRuntime
from tests.fakes.fake_clock import FakeClock


def _settings(**overrides) -> DataCacheSettings:
    values = {
        "DEFAULT_CACHE_TTL_SECONDS": 120.0,
        "FOCUS_REFRESH_THROTTLE_SECONDS": 30.0,
        "FOCUS_REVALIDATE_DELAY_SECONDS": 0.01,
        "PRELOAD_DELAY_SECONDS": 0.0,
        "PRELOAD_SECTIONS": ["task-management"],
    }
    values.update(overrides)
    return DataCacheSettings(**values)


class TestRuntimeWiring:
    def test_components_are_configured_from_settings(self, clock: FakeClock) -> None:
        runtime = CacheRuntime(_settings(MAX_CACHE_ENTRIES=50), clock=clock)

        assert runtime.store.default_ttl == 120.0
        assert runtime.store.max_entries == 50
        assert runtime.focus.throttle_seconds == 30.0
        assert runtime.focus.bus is runtime.bus
        assert runtime.is_recently_focused()

    def test_zero_max_entries_means_unbounded(self, clock: FakeClock) -> None:
        runtime = CacheRuntime(_settings(MAX_CACHE_ENTRIES=0), clock=clock)

        assert runtime.store.max_entries is None

    def test_preload_disabled_clears_preload_list(self, clock: FakeClock) -> None:
        runtime = CacheRuntime(_settings(PRELOAD_ENABLED=False), clock=clock)

        assert runtime.orchestrator().preload_sections == []


@pytest.mark.asyncio
@pytest.mark.integration
class TestRuntimeFlows:
    async def test_bindings_share_store_and_dedup(self, clock: FakeClock) -> None:
        runtime = CacheRuntime(_settings(), clock=clock)
        release = asyncio.Event()
        calls = 0

        async def fetcher() -> dict:
            nonlocal calls
            calls += 1
            await release.wait()
            return {"id": 7}

        key = cache_keys.user_profile(7)
        first = runtime.bind(key, fetcher)
        second = runtime.bind(key, fetcher)
        reads = asyncio.gather(first.load(), second.load())
        await asyncio.sleep(0)
        release.set()

        assert await reads == [{"id": 7}, {"id": 7}]
        assert calls == 1
        assert runtime.store.get_entry(key).expires_at == clock() + 120.0

    async def test_focus_broadcast_revalidates_stale_bindings(self, clock: FakeClock) -> None:
        runtime = CacheRuntime(_settings(), clock=clock)
        fetcher = AsyncMock(side_effect=["old", "new"])
        binding = runtime.bind(cache_keys.AdminKeys.STATS, fetcher, ttl=60, refresh_on_focus=True)
        await binding.load()

        runtime.focus.handle_blur()
        clock.advance(90)
        runtime.focus.handle_focus()
        await asyncio.sleep(0.05)
        await binding.wait_idle()

        assert binding.value == "new"
        assert runtime.bus.published == 1

    async def test_orchestrator_preloads_configured_sections(self, clock: FakeClock) -> None:
        runtime = CacheRuntime(_settings(), clock=clock)
        orchestrator = runtime.orchestrator(
            {
                "overview": {"stats": AsyncMock(return_value={})},
                "task-management": {"allTasks": AsyncMock(return_value=[])},
            }
        )

        await orchestrator.switch_section("overview")
        await orchestrator.schedule_preload()

        assert orchestrator.is_section_loaded("task-management")
        assert orchestrator.active_section == "overview"

    async def test_close_detaches_bindings(self, clock: FakeClock) -> None:
        async with CacheRuntime(_settings(), clock=clock) as runtime:
            binding = runtime.bind("admin:users:all", AsyncMock(return_value=[]))
            await binding.load()

        assert not binding.attached
        assert runtime.store.subscriber_count() == 0
        assert not runtime.focus.handle_focus()


class TestRecentFocus:
    def test_recent_focus_uses_configured_threshold(self, runtime: CacheRuntime, clock: FakeClock) -> None:
        assert runtime.is_recently_focused()

        clock.advance(runtime.settings.RECENT_FOCUS_THRESHOLD_SECONDS)

        assert not runtime.is_recently_focused()
        assert runtime.is_recently_focused(threshold_seconds=60.0)


class TestBindingRelease:
    def test_detached_bindings_are_released(self, runtime: CacheRuntime) -> None:
        for _ in range(100):
            runtime.bind(cache_keys.AdminKeys.STATS, AsyncMock(return_value={})).detach()

        assert len(runtime._bindings) == 0
        assert runtime.store.subscriber_count() == 0

    def test_close_detaches_orchestrator_bindings(self, runtime: CacheRuntime) -> None:
        orchestrator = runtime.orchestrator({"overview": {"stats": AsyncMock(return_value={})}})
        binding = orchestrator.bind("overview", "stats")
        kept = runtime.bind(cache_keys.AdminKeys.STATS, AsyncMock(return_value={}))

        runtime.close()

        assert not binding.attached
        assert not kept.attached
        assert len(orchestrator._bindings) == 0
        assert runtime.store.subscriber_count() == 0
