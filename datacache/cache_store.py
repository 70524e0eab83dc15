# datacache/cache_store.py
"""
In-memory TTL key/value store with pattern invalidation and change notifications.

The store is the single owner of cache entries. It is constructed once by the
host application and shared by reference (see `datacache.runtime.CacheRuntime`);
there is no module-level instance.

Notes:
    - All operations are synchronous and confined to one event loop thread, so
      no lock is taken. Writes always replace the whole entry.
    - Expired entries are purged lazily on read without a notification. Explicit
      deletes, pattern invalidation, eviction and ``clear`` notify subscribers.
    - Notifications are queued and drained in order, so a subscriber that writes
      to the store from inside a callback cannot reorder deliveries.
"""

from __future__ import annotations

import re
import time
from collections import deque
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from datacache.cache_entry import (
    WILDCARD_KEY,
    CacheEntry,
    CacheEvent,
    CacheStats,
)
from datacache.exceptions import InvalidPatternError, PolicyError, create_error_context

logger = structlog.get_logger(__name__)

Subscriber = Callable[[CacheEvent], None]


def _now() -> float:
    """Time source for TTL evaluation (monotonic for correctness)."""
    return time.monotonic()


class _Subscription:
    """Registration handle; ``active`` is cleared on unsubscribe."""

    __slots__ = ("key", "callback", "active")

    def __init__(self, key: str, callback: Subscriber) -> None:
        self.key = key
        self.callback = callback
        self.active = True


class CacheStore:
    """TTL cache with per-key and wildcard subscriptions."""

    def __init__(
        self,
        default_ttl: float = 300.0,
        *,
        max_entries: int | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if default_ttl <= 0:
            raise PolicyError(
                "default_ttl must be positive",
                details=create_error_context(default_ttl=default_ttl),
            )
        if max_entries is not None and max_entries <= 0:
            raise PolicyError(
                "max_entries must be positive or None",
                details=create_error_context(max_entries=max_entries),
            )
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._clock = clock or _now
        self._entries: dict[str, CacheEntry] = {}
        self._subscribers: dict[str, list[_Subscription]] = {}
        self._pending: deque[CacheEvent] = deque()
        self._delivering = False

    # ------------------------------------------------------------------ reads

    def now(self) -> float:
        """Current instant on the store's clock."""
        return self._clock()

    def _fresh_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            # Lazy purge; ageing out is not a change subscribers act on.
            del self._entries[key]
            logger.debug("Cache entry expired", key=key)
            return None
        return entry

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        entry = self._fresh_entry(key)
        return entry.value if entry is not None else None

    def get_entry(self, key: str) -> CacheEntry | None:
        """Return the live entry (value plus timing metadata) for ``key``."""
        return self._fresh_entry(key)

    def has(self, key: str) -> bool:
        """Check for a live entry without materializing its value."""
        return self._fresh_entry(key) is not None

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        """All stored keys, including entries not yet purged after expiry."""
        return list(self._entries)

    def get_many(self, keys: Iterable[str]) -> list[tuple[str, Any | None]]:
        """Read several keys; absent keys pair with None."""
        return [(key, self.get(key)) for key in keys]

    def get_stats(self) -> CacheStats:
        """Scan expiries against the current instant and report totals."""
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if not entry.is_expired(now))
        total = len(self._entries)
        return CacheStats(
            total=total,
            valid=valid,
            expired=total - valid,
            keys=list(self._entries),
        )

    # ----------------------------------------------------------------- writes

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """
        Store ``value`` under ``key`` for ``ttl`` seconds.

        Args:
            key: Cache key.
            value: JSON-shaped value. Stored as-is, never merged.
            ttl: Time to live in seconds; defaults to the store's default TTL.
                A ttl <= 0 stores an entry that is already expired.
        """
        effective_ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        if key not in self._entries:
            self._make_room(now)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            expires_at=now + effective_ttl,
            created_at=now,
        )
        self._notify(CacheEvent(key=key, action="set", value=value))

    def set_many(self, entries: Iterable[tuple[str, Any]], ttl: float | None = None) -> None:
        """Store several key/value pairs with one TTL."""
        for key, value in entries:
            self.set(key, value, ttl)

    def delete(self, key: str) -> None:
        """Remove ``key`` and notify subscribers. Absent keys are a no-op."""
        if self._entries.pop(key, None) is None:
            return
        self._notify(CacheEvent(key=key, action="delete"))

    def clear(self) -> None:
        """Remove every entry and fire a single wildcard ``clear`` notification."""
        removed = len(self._entries)
        self._entries.clear()
        logger.debug("Cache cleared", removed=removed)
        self._notify(CacheEvent(key=WILDCARD_KEY, action="clear"))

    def invalidate_pattern(self, pattern: str | re.Pattern[str]) -> int:
        """
        Delete every key matching ``pattern`` (``re.search`` semantics).

        Args:
            pattern: Regular expression source or compiled pattern.

        Returns:
            Number of keys removed.

        Raises:
            InvalidPatternError: If ``pattern`` does not compile.
        """
        regex = compile_pattern(pattern)
        matched = [key for key in self._entries if regex.search(key)]
        for key in matched:
            self.delete(key)
        logger.debug("Cache pattern invalidated", pattern=regex.pattern, removed=len(matched))
        return len(matched)

    def _make_room(self, now: float) -> None:
        if self.max_entries is None or len(self._entries) < self.max_entries:
            return

        for key in [k for k, entry in self._entries.items() if entry.is_expired(now)]:
            del self._entries[key]

        while len(self._entries) >= self.max_entries:
            victim = min(self._entries.values(), key=lambda entry: entry.expires_at)
            logger.debug("Cache entry evicted", key=victim.key, max_entries=self.max_entries)
            self.delete(victim.key)

    # ---------------------------------------------------------- subscriptions

    def subscribe(self, key: str, callback: Subscriber) -> Callable[[], None]:
        """
        Register ``callback`` for changes to ``key``.

        Subscribing to the wildcard key (``"*"``) receives every notification.

        Returns:
            A function that detaches this registration. Calling it more than
            once is harmless.
        """
        subscription = _Subscription(key, callback)
        self._subscribers.setdefault(key, []).append(subscription)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            registered = self._subscribers.get(key)
            if registered is None:
                return
            if subscription in registered:
                registered.remove(subscription)
            if not registered:
                del self._subscribers[key]

        return unsubscribe

    def subscriber_count(self, key: str | None = None) -> int:
        """Number of active registrations for ``key`` (or for all keys)."""
        if key is not None:
            return len(self._subscribers.get(key, ()))
        return sum(len(subs) for subs in self._subscribers.values())

    def _notify(self, event: CacheEvent) -> None:
        self._pending.append(event)
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._pending:
                self._deliver(self._pending.popleft())
        finally:
            self._delivering = False

    def _deliver(self, event: CacheEvent) -> None:
        targets = list(self._subscribers.get(event.key, ()))
        if event.key != WILDCARD_KEY:
            targets.extend(self._subscribers.get(WILDCARD_KEY, ()))

        for subscription in targets:
            # A callback may detach others during this loop.
            if not subscription.active:
                continue
            try:
                subscription.callback(event)
            except Exception:
                logger.warning(
                    "Cache subscriber error",
                    key=event.key,
                    action=event.action,
                    subscribed_to=subscription.key,
                    exc_info=True,
                )


def compile_pattern(pattern: str | re.Pattern[str]) -> re.Pattern[str]:
    """Compile an invalidation pattern, raising `InvalidPatternError` when malformed."""
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise InvalidPatternError(
            f"Invalid cache invalidation pattern: {pattern!r}",
            details=create_error_context(pattern=pattern, error=str(exc)),
        ) from exc
