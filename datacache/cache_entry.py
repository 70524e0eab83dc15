# datacache/cache_entry.py
"""
Cache entry, notification and statistics models for the dashboard data cache.

These are the core data structures exchanged between the cache store, its
subscribers and monitoring surfaces.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

CacheAction = Literal["set", "delete", "clear"]

WILDCARD_KEY = "*"


@dataclass(frozen=True)
class CacheEntry:
    """
    A live cache entry.

    Entries are immutable: a second write for the same key replaces the whole
    entry (value and expiry together), never merges into it.
    """

    key: str
    value: Any
    expires_at: float  # Clock instant (seconds) from which the entry is absent
    created_at: float

    def is_expired(self, now: float) -> bool:
        """Check whether the entry has reached its expiry at ``now``."""
        return now >= self.expires_at

    def remaining_ttl(self, now: float) -> float:
        """Seconds left before expiry (never negative)."""
        return max(0.0, self.expires_at - now)


@dataclass(frozen=True)
class CacheEvent:
    """
    A change notification delivered to cache subscribers.

    ``key`` is the affected key, or the wildcard key for a bulk ``clear``.
    ``value`` is only populated for ``set`` notifications.
    """

    key: str
    action: CacheAction
    value: Any = None


@dataclass
class CacheStats:
    """
    Point-in-time statistics computed by scanning entry expiries.

    Attributes:
        total: Number of stored entries, expired or not.
        valid: Entries still fresh at scan time.
        expired: Entries past expiry that have not been purged yet.
        keys: All stored keys, in insertion order.
    """

    total: int = 0
    valid: int = 0
    expired: int = 0
    keys: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "valid": self.valid,
            "expired": self.expired,
            "keys": list(self.keys),
        }
