# datacache/runtime.py
"""
Process-wide wiring of the data cache.

The host application constructs exactly one `CacheRuntime` and passes it (or
the parts it owns) to whatever needs cached data. The runtime owns the shared
cache store, the shared in-flight table, the refresh bus and the focus
tracker, all configured from `config.settings`.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

import structlog

import config
from config import DataCacheSettings
from datacache.cache_policies import CachePolicyManager, DataPolicy
from datacache.cache_store import CacheStore
from datacache.cached_binding import CachedBinding, FetchFunction
from datacache.focus_tracker import FocusTracker
from datacache.in_flight import InFlightTable
from datacache.refresh_bus import RefreshBus
from datacache.section_orchestrator import SectionOrchestrator

logger = structlog.get_logger(__name__)


class CacheRuntime:
    """Owns the shared cache components and hands out bindings and orchestrators."""

    def __init__(
        self,
        settings: DataCacheSettings | None = None,
        *,
        policies: CachePolicyManager | None = None,
        clock: Callable[[], float] | None = None,
        initially_visible: bool = True,
    ) -> None:
        self.settings = settings or config.settings
        self.policies = policies or CachePolicyManager()
        self.store = CacheStore(
            self.settings.DEFAULT_CACHE_TTL_SECONDS,
            max_entries=self.settings.MAX_CACHE_ENTRIES,
            clock=clock,
        )
        self.in_flight = InFlightTable()
        self.bus = RefreshBus()
        self.focus = FocusTracker(
            self.bus,
            throttle_seconds=self.settings.FOCUS_REFRESH_THROTTLE_SECONDS,
            blur_debounce_seconds=self.settings.FOCUS_BLUR_DEBOUNCE_SECONDS,
            broadcast_on_focus=self.settings.FOCUS_BROADCAST_ENABLED,
            initially_visible=initially_visible,
            clock=self.store.now,
        )
        self._bindings: set[CachedBinding] = set()
        self._orchestrators: list[SectionOrchestrator] = []
        self._closed = False

        logger.info(
            "Cache runtime initialized",
            default_ttl=self.settings.DEFAULT_CACHE_TTL_SECONDS,
            max_entries=self.settings.MAX_CACHE_ENTRIES,
            focus_throttle=self.settings.FOCUS_REFRESH_THROTTLE_SECONDS,
        )

    def bind(
        self,
        key: str,
        fetcher: FetchFunction,
        *,
        policy: DataPolicy | None = None,
        ttl: float | None = None,
        refresh_on_focus: bool = False,
        stale_while_revalidate: bool = True,
        enabled: bool = True,
    ) -> CachedBinding:
        """
        Create an attached cached binding sharing this runtime's components.

        Args:
            key: Cache key, built with `datacache.cache_keys`.
            fetcher: Zero-argument async fetch function.
            policy: Full policy; when given, the remaining policy arguments are ignored.
            ttl: TTL in seconds (defaults to the store's default TTL).
            refresh_on_focus: Revalidate stale values after focus broadcasts.
            stale_while_revalidate: Allow background refreshes of held values.
            enabled: Disabled bindings never fetch.
        """
        if policy is None:
            policy = DataPolicy(
                ttl_seconds=self.store.default_ttl if ttl is None else ttl,
                refresh_on_focus=refresh_on_focus,
                stale_while_revalidate=stale_while_revalidate,
            )
        binding = CachedBinding(
            key,
            fetcher,
            self.store,
            in_flight=self.in_flight,
            policy=policy,
            bus=self.bus,
            focus=self.focus,
            revalidate_delay=self.settings.FOCUS_REVALIDATE_DELAY_SECONDS,
            enabled=enabled,
            on_detach=self._bindings.discard,
        ).attach()
        self._bindings.add(binding)
        return binding

    def orchestrator(
        self,
        sections: Mapping[str, Mapping[str, FetchFunction]] | None = None,
    ) -> SectionOrchestrator:
        """Create a section orchestrator, registering ``sections`` on it."""
        orchestrator = SectionOrchestrator(
            self.store,
            policies=self.policies,
            in_flight=self.in_flight,
            bus=self.bus,
            focus=self.focus,
            revalidate_delay=self.settings.FOCUS_REVALIDATE_DELAY_SECONDS,
            preload_sections=self.settings.PRELOAD_SECTIONS if self.settings.PRELOAD_ENABLED else (),
            preload_delay=self.settings.PRELOAD_DELAY_SECONDS,
        )
        for section_id, fetchers in (sections or {}).items():
            orchestrator.register_section(section_id, fetchers)
        self._orchestrators.append(orchestrator)
        return orchestrator

    def is_recently_focused(self, threshold_seconds: float | None = None) -> bool:
        if threshold_seconds is None:
            threshold_seconds = self.settings.RECENT_FOCUS_THRESHOLD_SECONDS
        return self.focus.is_recently_focused(threshold_seconds)

    def close(self) -> None:
        """Detach every binding, stop background preloads and the focus tracker."""
        if self._closed:
            return
        self._closed = True
        for binding in list(self._bindings):
            binding.detach()
        for orchestrator in self._orchestrators:
            orchestrator.close()
        self.focus.close()
        logger.info("Cache runtime closed", pending_fetches=len(self.in_flight))

    async def __aenter__(self) -> CacheRuntime:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()
        await self.in_flight.wait_all()
