# datacache/section_orchestrator.py
"""
Section data orchestrator.

Keeps a registry of ``section_id -> {data_key -> fetch function}`` and loads a
section's data sets together when the section becomes active. Every data set
is cached under ``section:<section_id>:<data_key>`` with the section's TTL.

Rules:
- A section is "loaded" once a full load pass has completed, even when some
  data keys failed. Failures are kept per data key, never as one section error.
- Loads are deduplicated twice: per section (two quick switches share one
  pass) and per cache key (shared with any cached bindings on the same key).
- Preloading warms other sections without touching the active section and
  without blocking the caller.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from datacache import cache_keys
from datacache.cache_entry import CacheStats
from datacache.cache_policies import CachePolicyManager, SectionPolicy
from datacache.cache_store import compile_pattern
from datacache.cached_binding import CachedBinding, FetchFunction
from datacache.exceptions import (
    FetchError,
    UnknownSectionError,
    create_error_context,
    wrap_fetch_error,
)
from datacache.in_flight import InFlightTable

if TYPE_CHECKING:
    from datacache.cache_store import CacheStore
    from datacache.focus_tracker import FocusTracker
    from datacache.refresh_bus import RefreshBus

logger = structlog.get_logger(__name__)


@dataclass
class SectionLoadResult:
    """
    Outcome of one section load pass.

    Attributes:
        section_id: Section that was loaded.
        data: Values of the data keys that succeeded.
        errors: `FetchError` per data key that failed.
        from_cache: Data keys served from the cache without a fetch.
    """

    section_id: str
    data: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, FetchError] = field(default_factory=dict)
    from_cache: set[str] = field(default_factory=set)

    @property
    def ok(self) -> bool:
        return not self.errors


class SectionOrchestrator:
    """Loads, tracks and invalidates per-section data sets."""

    def __init__(
        self,
        store: CacheStore,
        *,
        policies: CachePolicyManager | None = None,
        in_flight: InFlightTable | None = None,
        bus: RefreshBus | None = None,
        focus: FocusTracker | None = None,
        revalidate_delay: float = 1.0,
        preload_sections: Sequence[str] = (),
        preload_delay: float = 2.0,
    ) -> None:
        self.store = store
        self.policies = policies or CachePolicyManager()
        self.in_flight = in_flight or InFlightTable()
        self.bus = bus
        self.focus = focus
        self.revalidate_delay = revalidate_delay
        self.preload_sections = list(preload_sections)
        self.preload_delay = preload_delay

        self._fetchers: dict[str, dict[str, FetchFunction]] = {}
        self._section_flights = InFlightTable(name="section")
        self._loaded: set[str] = set()
        self._active: str | None = None

        self._loading: dict[tuple[str, str], bool] = {}
        self._errors: dict[tuple[str, str], FetchError] = {}
        self._last_fetch: dict[tuple[str, str], float] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._bindings: set[CachedBinding] = set()

    # --------------------------------------------------------------- registry

    def register_section(
        self,
        section_id: str,
        fetchers: Mapping[str, FetchFunction],
        policy: SectionPolicy | None = None,
    ) -> None:
        """
        Register (or replace) the fetch functions of a section.

        Args:
            section_id: Section identifier.
            fetchers: Fetch function per data key.
            policy: Optional policy overriding the section policy table.
        """
        # Validates both segments up front.
        for data_key in fetchers:
            cache_keys.section_key(section_id, data_key)
        self._fetchers[section_id] = dict(fetchers)
        if policy is not None:
            self.policies.register_policy(section_id, policy)

    def _require_section(self, section_id: str) -> dict[str, FetchFunction]:
        fetchers = self._fetchers.get(section_id)
        if fetchers is None:
            raise UnknownSectionError(
                f"No fetchers registered for section {section_id!r}",
                details=create_error_context(section_id=section_id, known=sorted(self._fetchers)),
            )
        return fetchers

    def _require_fetcher(self, section_id: str, data_key: str) -> FetchFunction:
        fetchers = self._require_section(section_id)
        fetcher = fetchers.get(data_key)
        if fetcher is None:
            raise UnknownSectionError(
                f"No fetcher registered for {section_id!r}.{data_key!r}",
                details=create_error_context(section_id=section_id, data_key=data_key),
            )
        return fetcher

    @property
    def active_section(self) -> str | None:
        return self._active

    @property
    def loaded_sections(self) -> frozenset[str]:
        return frozenset(self._loaded)

    @property
    def available_sections(self) -> list[str]:
        return list(self._fetchers)

    def available_data(self, section_id: str) -> list[str]:
        return list(self._fetchers.get(section_id, {}))

    # ------------------------------------------------------------------ loads

    async def switch_section(self, section_id: str) -> SectionLoadResult | None:
        """
        Make ``section_id`` active, loading it if it has not been loaded yet.

        Returns:
            The load result, or None when the section was already loaded.
        """
        self._require_section(section_id)
        self._active = section_id
        policy = self.policies.get_section_policy(section_id)

        if section_id in self._loaded and not policy.refresh_on_switch:
            logger.debug("Section already loaded", section=section_id)
            return None
        return await self.load_section_data(section_id, force=policy.refresh_on_switch)

    async def load_section_data(self, section_id: str, force: bool = False) -> SectionLoadResult:
        """
        Load every registered data key of a section.

        A call made while a load for the same section is running joins that
        load instead of starting another one.
        """
        self._require_section(section_id)
        return await self._section_flights.run(
            section_id, lambda: self._load_section(section_id, force)
        )

    async def _load_section(self, section_id: str, force: bool) -> SectionLoadResult:
        data_keys = list(self._fetchers[section_id])
        outcomes = await asyncio.gather(
            *(self._load_key(section_id, data_key, force) for data_key in data_keys),
            return_exceptions=True,
        )

        result = SectionLoadResult(section_id=section_id)
        for data_key, outcome in zip(data_keys, outcomes):
            if isinstance(outcome, FetchError):
                result.errors[data_key] = outcome
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                value, cached = outcome
                result.data[data_key] = value
                if cached:
                    result.from_cache.add(data_key)

        self._loaded.add(section_id)
        logger.info(
            "Section loaded",
            section=section_id,
            fetched=len(result.data) - len(result.from_cache),
            cached=len(result.from_cache),
            failed=sorted(result.errors),
        )
        return result

    async def load_data(self, section_id: str, data_key: str, force: bool = False) -> Any:
        """
        Load one data key of a section.

        Raises:
            UnknownSectionError: If the section or data key is not registered.
            FetchError: If the fetch function failed.
        """
        self._require_fetcher(section_id, data_key)
        value, _ = await self._load_key(section_id, data_key, force)
        return value

    async def _load_key(self, section_id: str, data_key: str, force: bool) -> tuple[Any, bool]:
        fetcher = self._fetchers[section_id][data_key]
        key = cache_keys.section_key(section_id, data_key)
        ttl = self.policies.policy_for(section_id, data_key).ttl_seconds
        slot = (section_id, data_key)

        if not force:
            entry = self.store.get_entry(key)
            if entry is not None:
                logger.debug("Cache hit", key=key)
                return entry.value, True

        self._loading[slot] = True
        self._errors.pop(slot, None)

        async def fetch_and_store() -> Any:
            logger.debug("Cache miss, fetching", key=key)
            value = await fetcher()
            self.store.set(key, value, ttl)
            return value

        try:
            value = await self.in_flight.run(key, fetch_and_store)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = wrap_fetch_error(key, exc, section=section_id, data_key=data_key)
            self._errors[slot] = error
            logger.error("Section data fetch failed", section=section_id, data_key=data_key, error=str(exc))
            raise error
        finally:
            self._loading[slot] = False

        self._last_fetch[slot] = self.store.now()
        return value, False

    async def refresh_current_section(self) -> SectionLoadResult | None:
        """Force-reload every data key of the active section."""
        if self._active is None:
            return None
        return await self.load_section_data(self._active, force=True)

    async def refresh_data(self, data_key: str) -> Any:
        """Force-reload one data key of the active section."""
        if self._active is None:
            raise UnknownSectionError("No active section", details=create_error_context(data_key=data_key))
        return await self.load_data(self._active, data_key, force=True)

    # -------------------------------------------------------------- preloading

    def preload_section(self, section_id: str) -> asyncio.Task[SectionLoadResult] | None:
        """
        Start loading a section in the background.

        The active section is left alone. Sections already loaded are skipped.

        Returns:
            The background task, or None when nothing was started.
        """
        self._require_section(section_id)
        if section_id in self._loaded:
            return None
        logger.debug("Preloading section", section=section_id)
        return self._spawn(self.load_section_data(section_id), section_id)

    def schedule_preload(
        self,
        section_ids: Iterable[str] | None = None,
        delay: float | None = None,
    ) -> asyncio.Task[None]:
        """Preload sections after ``delay`` seconds (defaults to the configured list and delay)."""
        targets = list(self.preload_sections if section_ids is None else section_ids)
        wait = self.preload_delay if delay is None else delay

        async def warm_up() -> None:
            await asyncio.sleep(wait)
            started = []
            for section_id in targets:
                if section_id not in self._fetchers:
                    logger.warning("Preload skipped unknown section", section=section_id)
                    continue
                task = self.preload_section(section_id)
                if task is not None:
                    started.append(task)
            if started:
                await asyncio.gather(*started, return_exceptions=True)

        return self._spawn(warm_up(), "scheduled")

    def preload_adjacent_sections(self, order: Sequence[str]) -> list[asyncio.Task[SectionLoadResult]]:
        """Preload the sections just before and after the active one in ``order``."""
        if self._active is None or self._active not in order:
            return []
        index = order.index(self._active)
        neighbours = [order[i] for i in (index + 1, index - 1) if 0 <= i < len(order)]

        tasks = []
        for section_id in neighbours:
            if section_id not in self._fetchers:
                continue
            task = self.preload_section(section_id)
            if task is not None:
                tasks.append(task)
        return tasks

    def _spawn(self, coro: Any, label: str) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def done(finished: asyncio.Task[Any]) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                logger.warning("Background section task failed", task=label, error=str(exc))

        task.add_done_callback(done)
        return task

    async def wait_idle(self) -> None:
        """Wait for preloads and other background work to settle."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def close(self) -> None:
        """
        Cancel background preloads and detach the bindings handed out by `bind`.

        Fetches already running still fill the cache.
        """
        for task in list(self._tasks):
            task.cancel()
        for binding in list(self._bindings):
            binding.detach()

    # ------------------------------------------------------------------ reads

    def get_section_data(self, section_id: str, data_key: str) -> Any | None:
        """Cached value of one data key; never fetches."""
        return self.store.get(cache_keys.section_key(section_id, data_key))

    def section_data(self, section_id: str) -> dict[str, Any]:
        return {
            data_key: self.get_section_data(section_id, data_key)
            for data_key in self.available_data(section_id)
        }

    def is_section_loaded(self, section_id: str) -> bool:
        return section_id in self._loaded

    def is_section_loading(self, section_id: str) -> bool:
        if self._section_flights.is_pending(section_id):
            return True
        return any(self.section_loading(section_id).values())

    def section_loading(self, section_id: str) -> dict[str, bool]:
        return {
            data_key: self._loading.get((section_id, data_key), False)
            for data_key in self.available_data(section_id)
        }

    def section_errors(self, section_id: str) -> dict[str, FetchError]:
        return {
            data_key: error
            for (sid, data_key), error in self._errors.items()
            if sid == section_id
        }

    def get_error(self, section_id: str, data_key: str | None = None) -> FetchError | None:
        """Error of one data key, or the first error of the section."""
        if data_key is not None:
            return self._errors.get((section_id, data_key))
        return next(iter(self.section_errors(section_id).values()), None)

    def last_fetch(self, section_id: str) -> dict[str, float]:
        return {
            data_key: instant
            for (sid, data_key), instant in self._last_fetch.items()
            if sid == section_id
        }

    def get_cache_stats(self) -> CacheStats:
        return self.store.get_stats()

    # ----------------------------------------------------------- invalidation

    def clear_section_cache(self, section_id: str) -> int:
        """Drop every cached key of a section and forget that it was loaded."""
        removed = self.store.invalidate_pattern(cache_keys.section_pattern(section_id))
        self._forget_section(section_id)
        logger.info("Section cache cleared", section=section_id, removed=removed)
        return removed

    def clear_all_cache(self) -> int:
        """Drop every section and admin key and forget all loaded sections."""
        removed = self.store.invalidate_pattern(cache_keys.ALL_SECTIONS_PATTERN)
        removed += self.store.invalidate_pattern(cache_keys.ADMIN_NAMESPACE_PATTERN)
        for section_id in list(self._loaded):
            self._forget_section(section_id)
        logger.info("All section caches cleared", removed=removed)
        return removed

    def invalidate_data_type(self, data_type: str) -> int:
        """Drop the data keys mentioning ``data_type`` in every section."""
        regex = compile_pattern(cache_keys.data_type_pattern(data_type))
        candidates = set(self.store.keys())
        candidates.update(cache_keys.section_key(*slot) for slot in self._errors)
        matched = [key for key in candidates if regex.search(key)]
        removed = self.store.invalidate_pattern(regex)
        self._forget_sections_of(matched)
        logger.info("Data type invalidated", data_type=data_type, removed=removed)
        return removed

    def invalidate_related(self, change_type: str) -> int:
        """
        Drop the keys grouped under a change type in the invalidation table.

        Sections owning any of those keys are no longer considered loaded,
        so the next switch reloads them.

        Returns:
            Number of keys that were present and removed.
        """
        keys = self.policies.invalidation_keys(change_type)
        present = set(self.store.keys())
        removed = 0
        for key in keys:
            if key in present:
                removed += 1
            self.store.delete(key)
        self._forget_sections_of(keys)
        logger.info("Related caches invalidated", change_type=change_type, removed=removed)
        return removed

    def _forget_section(self, section_id: str) -> None:
        self._loaded.discard(section_id)
        for slot in [slot for slot in self._errors if slot[0] == section_id]:
            del self._errors[slot]

    def _forget_sections_of(self, keys: Iterable[str]) -> None:
        prefix = f"{cache_keys.SECTION_NAMESPACE}:"
        for key in keys:
            if not key.startswith(prefix):
                continue
            section_id, _, data_key = key[len(prefix):].partition(":")
            self._loaded.discard(section_id)
            self._errors.pop((section_id, data_key), None)

    # ---------------------------------------------------------------- binding

    def bind(self, section_id: str, data_key: str, *, enabled: bool = True) -> CachedBinding:
        """Attached cached binding for one data key, using the section's policy."""
        fetcher = self._require_fetcher(section_id, data_key)
        binding = CachedBinding(
            cache_keys.section_key(section_id, data_key),
            fetcher,
            self.store,
            in_flight=self.in_flight,
            policy=self.policies.policy_for(section_id, data_key),
            bus=self.bus,
            focus=self.focus,
            revalidate_delay=self.revalidate_delay,
            enabled=enabled,
            on_detach=self._bindings.discard,
        )
        self._bindings.add(binding)
        return binding.attach()
