# datacache/cached_binding.py
"""
Cached binding: one cache key plus one fetch function, bound for the lifetime
of a consumer.

Reads go cache-first, concurrent fetches for the key are coalesced through the
shared `InFlightTable`, and background revalidation serves the last value
while a refresh runs. Bindings whose policy allows focus refresh listen on the
`RefreshBus` and, shortly after a focus broadcast, revalidate if their value
has outlived its TTL.

After `detach()` the binding never mutates its own state again, even when a
fetch it started completes later. The fetch still writes to the shared store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import structlog

from datacache.cache_entry import WILDCARD_KEY, CacheEvent
from datacache.cache_policies import DataPolicy
from datacache.exceptions import BindingDetachedError, FetchError, create_error_context, wrap_fetch_error
from datacache.in_flight import InFlightTable
from datacache.refresh_bus import RefreshBus, RefreshEvent

if TYPE_CHECKING:
    from datacache.cache_store import CacheStore
    from datacache.focus_tracker import FocusTracker

logger = structlog.get_logger(__name__)

FetchFunction = Callable[[], Awaitable[Any]]


class CachedBinding:
    """
    Consumer-facing view of one cached key.

    Attributes:
        value: Last adopted value, or None.
        is_loading: True while a foreground fetch started by this binding runs.
        error: `FetchError` of the last failed foreground fetch, else None.
        is_stale: True when the value is known to be out of date.
        last_fetch: Clock instant at which the current value was fetched.
    """

    def __init__(
        self,
        key: str,
        fetcher: FetchFunction,
        store: CacheStore,
        *,
        in_flight: InFlightTable | None = None,
        policy: DataPolicy | None = None,
        bus: RefreshBus | None = None,
        focus: FocusTracker | None = None,
        revalidate_delay: float = 1.0,
        enabled: bool = True,
        clock: Callable[[], float] | None = None,
        on_detach: Callable[[CachedBinding], None] | None = None,
    ) -> None:
        self.key = key
        self.fetcher = fetcher
        self.store = store
        self.in_flight = in_flight or InFlightTable()
        self.policy = policy or DataPolicy(ttl_seconds=store.default_ttl)
        self.bus = bus if bus is not None else (focus.bus if focus is not None else None)
        self.focus = focus
        self.revalidate_delay = revalidate_delay
        self.enabled = enabled
        self._clock = clock or store.now
        self._on_detach = on_detach

        self.value: Any | None = None
        self.is_loading = False
        self.error: FetchError | None = None
        self.is_stale = False
        self.last_fetch: float | None = None

        self._attached = False
        self._foreground = 0
        self._unsubscribers: list[Callable[[], None]] = []
        self._focus_check: asyncio.Handle | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    # -------------------------------------------------------------- lifecycle

    @property
    def attached(self) -> bool:
        return self._attached

    @property
    def is_focused(self) -> bool:
        return self.focus.is_focused if self.focus is not None else True

    def attach(self) -> CachedBinding:
        """Start listening to store changes (and focus broadcasts when allowed)."""
        if self._attached:
            return self
        self._attached = True
        # Foreground loads that finished while detached left is_loading behind.
        self.is_loading = self._foreground > 0
        self._unsubscribers.append(self.store.subscribe(self.key, self._on_store_event))
        self._unsubscribers.append(self.store.subscribe(WILDCARD_KEY, self._on_store_clear))
        if self.bus is not None and self.policy.refresh_on_focus:
            self._unsubscribers.append(self.bus.subscribe(self._on_refresh_event))
        return self

    def detach(self) -> None:
        """Stop all listening; later fetch completions leave this binding untouched."""
        if not self._attached:
            return
        self._attached = False
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._focus_check is not None:
            self._focus_check.cancel()
            self._focus_check = None
        for task in list(self._tasks):
            task.cancel()
        if self._on_detach is not None:
            self._on_detach(self)

    async def __aenter__(self) -> CachedBinding:
        self.attach()
        if self.enabled:
            try:
                await self.load()
            except FetchError:
                # Already recorded on ``error`` for the consumer to render.
                pass
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.detach()

    # ------------------------------------------------------------------ reads

    async def load(self, force: bool = False, background: bool = False) -> Any | None:
        """
        Read the key, fetching only when needed.

        Args:
            force: Skip the cache and always fetch.
            background: Leave ``is_loading`` and ``error`` alone.

        Returns:
            The value, or None when the binding is disabled.

        Raises:
            BindingDetachedError: If the binding is not attached.
            FetchError: If the fetch function failed.
        """
        if not self._attached:
            raise BindingDetachedError(
                "Cached binding is not attached",
                details=create_error_context(key=self.key),
            )
        if not self.enabled:
            return None

        if not force:
            entry = self.store.get_entry(self.key)
            if entry is not None:
                logger.debug("Cache hit", key=self.key)
                self.value = entry.value
                self.is_stale = False
                self.last_fetch = entry.created_at
                return entry.value

        if not background:
            self._foreground += 1
            self.is_loading = True
            self.error = None

        try:
            result = await self.in_flight.run(self.key, self._fetch_and_store)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            error = wrap_fetch_error(self.key, exc, background=background or None)
            if background:
                logger.warning("Background fetch failed", key=self.key, error=str(exc))
            else:
                logger.error("Fetch failed", key=self.key, error=str(exc))
                if self._attached:
                    self.error = error
            raise error
        finally:
            if not background:
                self._foreground -= 1
                if self._attached and self._foreground == 0:
                    self.is_loading = False

        if self._attached:
            self.value = result
            self.error = None
            self.is_stale = False
            self.last_fetch = self._clock()
        return result

    async def refetch(self) -> Any | None:
        """Force a network fetch; surfaces loading state and raises `FetchError`."""
        return await self.load(force=True)

    async def refresh(self) -> Any | None:
        """
        Stale-while-revalidate refresh.

        Runs only when the policy allows it and a value is already held. Never
        touches ``is_loading``; failures are logged and the current value stays.
        """
        if not self.policy.stale_while_revalidate or self.value is None:
            return None
        try:
            return await self.load(force=True, background=True)
        except FetchError:
            # Logged by load(); the held value stays authoritative.
            return None

    def check_stale(self) -> bool:
        """True when the held value has outlived the policy TTL."""
        if self.last_fetch is None:
            return False
        return self._clock() - self.last_fetch > self.policy.ttl_seconds

    def state(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "is_loading": self.is_loading,
            "error": self.error,
            "is_stale": self.is_stale,
            "last_fetch": self.last_fetch,
        }

    async def wait_idle(self) -> None:
        """Wait for background work this binding started."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --------------------------------------------------------------- internal

    async def _fetch_and_store(self) -> Any:
        logger.debug("Cache miss, fetching", key=self.key)
        result = await self.fetcher()
        self.store.set(self.key, result, self.policy.ttl_seconds)
        return result

    def _on_store_event(self, event: CacheEvent) -> None:
        if not self._attached:
            return
        if event.action == "set":
            self.value = event.value
            self.is_stale = False
            self.last_fetch = self._clock()
        else:
            self.is_stale = True

    def _on_store_clear(self, event: CacheEvent) -> None:
        if self._attached and event.action == "clear":
            self.is_stale = True

    def _on_refresh_event(self, event: RefreshEvent) -> None:
        if not self._attached or not self.policy.refresh_on_focus or self.value is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Refresh broadcast outside event loop ignored", key=self.key)
            return
        if self._focus_check is not None:
            self._focus_check.cancel()
        self._focus_check = loop.call_later(self.revalidate_delay, self._run_focus_check)

    def _run_focus_check(self) -> None:
        self._focus_check = None
        if not self._attached or not self.check_stale():
            return
        self.is_stale = True
        logger.debug("Stale after focus, revalidating", key=self.key)
        self._spawn(self.refresh())

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task
