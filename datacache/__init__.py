"""Client-side data cache and fetch orchestration for dashboard sections.

Most callers only need `CacheRuntime`; the components it wires together are
exported for hosts that assemble them by hand.
"""

from __future__ import annotations

from .cache_entry import CacheEntry, CacheEvent, CacheStats
from .cache_policies import CachePolicyManager, DataPolicy, SectionPolicy
from .cache_store import CacheStore
from .cached_binding import CachedBinding
from .exceptions import (
    BindingDetachedError,
    DataCacheError,
    FetchError,
    InvalidPatternError,
    PolicyError,
    UnknownSectionError,
)
from .focus_tracker import FocusTracker
from .in_flight import InFlightTable
from .refresh_bus import RefreshBus, RefreshEvent
from .runtime import CacheRuntime
from .section_orchestrator import SectionLoadResult, SectionOrchestrator

__all__ = [
    "BindingDetachedError",
    "CacheEntry",
    "CacheEvent",
    "CachePolicyManager",
    "CacheRuntime",
    "CacheStats",
    "CacheStore",
    "CachedBinding",
    "DataCacheError",
    "DataPolicy",
    "FetchError",
    "FocusTracker",
    "InFlightTable",
    "InvalidPatternError",
    "PolicyError",
    "RefreshBus",
    "RefreshEvent",
    "SectionLoadResult",
    "SectionOrchestrator",
    "SectionPolicy",
    "UnknownSectionError",
]
