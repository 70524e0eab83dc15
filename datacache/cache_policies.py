# datacache/cache_policies.py
"""
Cache policy definitions and management for the dashboard data cache.

This module holds the static policy tables (TTL categories, per-section load
policies, per-data-type refresh policies, change-driven invalidation groups)
and a `CachePolicyManager` that resolves them for a section and data key.

All durations are in seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

import structlog

from datacache import cache_keys
from datacache.cache_keys import AdminKeys
from datacache.exceptions import PolicyError, create_error_context

logger = structlog.get_logger(__name__)


# TTL per data category.
CACHE_TTL: dict[str, float] = {
    # Real-time data
    "real_time": 30.0,
    "stats": 60.0,
    "system_health": 30.0,
    "activity_logs": 60.0,
    # Frequently changing data
    "short": 300.0,
    "tasks": 300.0,
    "attendance": 600.0,
    "announcements": 300.0,
    "user_activity": 600.0,
    # Moderately changing data
    "medium": 1800.0,
    "users": 1800.0,
    "cohorts": 1800.0,
    "performance": 3600.0,
    # Rarely changing data
    "long": 7200.0,
    "colleges": 7200.0,
    "system_config": 86400.0,
    "user_roles": 86400.0,
    # Static data
    "static": 86400.0,
    "app_config": 86400.0,
}


def ttl_for(category: str) -> float:
    """Look up the TTL of a data category."""
    try:
        return CACHE_TTL[category]
    except KeyError:
        raise PolicyError(
            f"Unknown TTL category: {category}",
            details=create_error_context(known=sorted(CACHE_TTL)),
        ) from None


@dataclass(frozen=True)
class DataPolicy:
    """
    Effective policy for one cache key.

    Attributes:
        ttl_seconds: Freshness window for cached values.
        refresh_on_focus: Re-check staleness when the app regains focus.
        stale_while_revalidate: Allow serving the last value while a
            background refresh runs.
    """

    ttl_seconds: float
    refresh_on_focus: bool = False
    stale_while_revalidate: bool = True

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise PolicyError(
                "ttl_seconds must be positive",
                details=create_error_context(ttl_seconds=self.ttl_seconds),
            )


@dataclass(frozen=True)
class SectionPolicy:
    """
    Load and cache policy for a UI section.

    Attributes:
        data_keys: Named data sets the section depends on.
        ttl_seconds: TTL applied to every data set of the section.
        refresh_on_focus: Default focus-refresh flag for bindings in the section.
        stale_while_revalidate: Default SWR flag for bindings in the section.
        background_refresh_seconds: Suggested polling interval for hosts that poll.
        refresh_on_switch: Force a reload every time the section becomes active.
    """

    data_keys: tuple[str, ...] = ()
    ttl_seconds: float = CACHE_TTL["medium"]
    refresh_on_focus: bool = False
    stale_while_revalidate: bool = True
    background_refresh_seconds: float | None = None
    refresh_on_switch: bool = False

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise PolicyError(
                "ttl_seconds must be positive",
                details=create_error_context(ttl_seconds=self.ttl_seconds),
            )
        if self.background_refresh_seconds is not None and self.background_refresh_seconds <= 0:
            raise PolicyError(
                "background_refresh_seconds must be positive or None",
                details=create_error_context(background_refresh_seconds=self.background_refresh_seconds),
            )

    def data_policy(self) -> DataPolicy:
        return DataPolicy(
            ttl_seconds=self.ttl_seconds,
            refresh_on_focus=self.refresh_on_focus,
            stale_while_revalidate=self.stale_while_revalidate,
        )


DEFAULT_SECTION_POLICY = SectionPolicy()


# Per-section load policies for the admin dashboard.
SECTION_POLICIES: dict[str, SectionPolicy] = {
    "overview": SectionPolicy(
        data_keys=("stats", "systemHealth", "activityLogs"),
        ttl_seconds=CACHE_TTL["real_time"],
        background_refresh_seconds=30.0,
    ),
    "user-management": SectionPolicy(
        data_keys=("allUsers", "userStats", "recentUsers"),
        ttl_seconds=CACHE_TTL["medium"],
        background_refresh_seconds=1800.0,
    ),
    "college-management": SectionPolicy(
        data_keys=("allColleges", "collegeStats", "collegeUsers"),
        ttl_seconds=CACHE_TTL["long"],
        background_refresh_seconds=3600.0,
    ),
    "cohort-system": SectionPolicy(
        data_keys=("allCohorts", "cohortStats", "cohortAssignments"),
        ttl_seconds=CACHE_TTL["medium"],
        background_refresh_seconds=1800.0,
    ),
    "task-management": SectionPolicy(
        data_keys=("allTasks", "taskStats", "taskProgress"),
        ttl_seconds=CACHE_TTL["short"],
        background_refresh_seconds=300.0,
    ),
    "attendance-ip": SectionPolicy(
        data_keys=("attendanceStats", "recentAttendance", "attendanceIssues"),
        ttl_seconds=CACHE_TTL["medium"],
        background_refresh_seconds=600.0,
    ),
    "announcements": SectionPolicy(
        data_keys=("allAnnouncements", "announcementStats"),
        ttl_seconds=CACHE_TTL["short"],
        background_refresh_seconds=300.0,
    ),
    "system-monitoring": SectionPolicy(
        data_keys=("systemLogs", "databaseStats", "cacheStats"),
        ttl_seconds=CACHE_TTL["real_time"],
        stale_while_revalidate=False,  # monitoring data is always fetched fresh
        background_refresh_seconds=30.0,
    ),
    "analytics-hub": SectionPolicy(
        data_keys=("performanceMetrics", "engagementStats", "trendData"),
        ttl_seconds=CACHE_TTL["long"],
        background_refresh_seconds=3600.0,
    ),
    "data-integrity": SectionPolicy(
        data_keys=("integrityChecks", "dataQuality"),
        ttl_seconds=CACHE_TTL["medium"],
        background_refresh_seconds=1800.0,
    ),
    "bulk-operations": SectionPolicy(
        data_keys=("importHistory", "operationStatus"),
        ttl_seconds=CACHE_TTL["short"],
        background_refresh_seconds=300.0,
    ),
}

# Per data-key exceptions to a section's defaults.
DATA_KEY_OVERRIDES: dict[tuple[str, str], dict[str, Any]] = {
    ("overview", "activityLogs"): {"stale_while_revalidate": False},
}


@dataclass(frozen=True)
class RefreshPolicy:
    """Refresh behaviour of a standalone data type (outside section loads)."""

    refresh_on_focus: bool
    stale_while_revalidate: bool
    background_refresh_seconds: float | None = None


REFRESH_POLICIES: dict[str, RefreshPolicy] = {
    "stats": RefreshPolicy(True, True, 30.0),
    "system_health": RefreshPolicy(True, True, 30.0),
    "activity_logs": RefreshPolicy(True, False, 60.0),
    "tasks": RefreshPolicy(True, True, 300.0),
    "attendance": RefreshPolicy(True, True, 600.0),
    "announcements": RefreshPolicy(True, True, 300.0),
    "users": RefreshPolicy(False, True, 1800.0),
    "colleges": RefreshPolicy(False, True, 3600.0),
    "cohorts": RefreshPolicy(False, True, 1800.0),
    "system_config": RefreshPolicy(False, True),
}


def _section_keys(section_id: str) -> list[str]:
    return [cache_keys.section_key(section_id, key) for key in SECTION_POLICIES[section_id].data_keys]


# Keys dropped together when a kind of record changes.
CACHE_INVALIDATION: dict[str, list[str]] = {
    "USER_CHANGE": [
        AdminKeys.ALL_USERS,
        AdminKeys.USER_STATS,
        AdminKeys.RECENT_USERS,
        AdminKeys.STATS,
        *_section_keys("user-management"),
        cache_keys.section_key("overview", "stats"),
    ],
    "COLLEGE_CHANGE": [
        AdminKeys.ALL_COLLEGES,
        AdminKeys.COLLEGE_STATS,
        AdminKeys.COLLEGE_USERS,
        AdminKeys.STATS,
        *_section_keys("college-management"),
        cache_keys.section_key("overview", "stats"),
    ],
    "COHORT_CHANGE": [
        AdminKeys.ALL_COHORTS,
        AdminKeys.COHORT_STATS,
        AdminKeys.COHORT_ASSIGNMENTS,
        AdminKeys.STATS,
        *_section_keys("cohort-system"),
        cache_keys.section_key("overview", "stats"),
    ],
    "TASK_CHANGE": [
        AdminKeys.ALL_TASKS,
        AdminKeys.TASK_STATS,
        AdminKeys.TASK_PROGRESS,
        AdminKeys.STATS,
        *_section_keys("task-management"),
        cache_keys.section_key("overview", "stats"),
    ],
    "ATTENDANCE_CHANGE": [
        AdminKeys.ATTENDANCE_STATS,
        AdminKeys.RECENT_ATTENDANCE,
        AdminKeys.ATTENDANCE_ISSUES,
        AdminKeys.STATS,
        *_section_keys("attendance-ip"),
        cache_keys.section_key("overview", "stats"),
    ],
    "ANNOUNCEMENT_CHANGE": [
        AdminKeys.ALL_ANNOUNCEMENTS,
        AdminKeys.ANNOUNCEMENT_STATS,
        *_section_keys("announcements"),
    ],
}


class CachePolicyManager:
    """
    Manages cache policies for sections, data keys and change groups.

    Provides centralized policy management with default policies
    and section-specific overrides. Instances start as a copy of the
    static tables, so registering a policy never mutates module state.
    """

    def __init__(
        self,
        section_policies: dict[str, SectionPolicy] | None = None,
        default_policy: SectionPolicy | None = None,
    ):
        """
        Initialize policy manager.

        Args:
            section_policies: Section table to start from (defaults to `SECTION_POLICIES`).
            default_policy: Policy for sections with no entry.
        """
        self._policies: dict[str, SectionPolicy] = dict(
            SECTION_POLICIES if section_policies is None else section_policies
        )
        self._default_policy = default_policy or DEFAULT_SECTION_POLICY
        self._overrides: dict[tuple[str, str], dict[str, Any]] = {
            key: dict(value) for key, value in DATA_KEY_OVERRIDES.items()
        }
        self._invalidation: dict[str, list[str]] = {
            change: list(keys) for change, keys in CACHE_INVALIDATION.items()
        }

    def get_section_policy(self, section_id: str) -> SectionPolicy:
        """
        Get the policy for a section.

        Args:
            section_id: Section identifier

        Returns:
            The section's policy, or the default policy if none is registered
        """
        return self._policies.get(section_id, self._default_policy)

    def has_section_policy(self, section_id: str) -> bool:
        return section_id in self._policies

    def register_policy(self, section_id: str, policy: SectionPolicy) -> None:
        """
        Register a custom policy for a section.

        Args:
            section_id: Section identifier
            policy: Section policy to register
        """
        self._policies[section_id] = policy

    def update_policy(self, section_id: str, **policy_updates: Any) -> SectionPolicy:
        """
        Update an existing policy with new values.

        Args:
            section_id: Section identifier
            **policy_updates: Policy attributes to update

        Returns:
            Updated policy

        Raises:
            PolicyError: If an update names an unknown attribute or an invalid value.
        """
        known = {f.name for f in fields(SectionPolicy)}
        unknown = set(policy_updates) - known
        if unknown:
            raise PolicyError(
                "Unknown section policy attributes",
                details=create_error_context(section_id=section_id, unknown=sorted(unknown)),
            )
        updated_policy = replace(self.get_section_policy(section_id), **policy_updates)
        self._policies[section_id] = updated_policy
        return updated_policy

    def register_override(self, section_id: str, data_key: str, **overrides: Any) -> None:
        """Override one data key's policy fields within a section."""
        known = {f.name for f in fields(DataPolicy)}
        unknown = set(overrides) - known
        if unknown:
            raise PolicyError(
                "Unknown data policy attributes",
                details=create_error_context(
                    section_id=section_id, data_key=data_key, unknown=sorted(unknown)
                ),
            )
        self._overrides.setdefault((section_id, data_key), {}).update(overrides)

    def policy_for(self, section_id: str, data_key: str) -> DataPolicy:
        """Resolve the effective policy for one data key of a section."""
        base = self.get_section_policy(section_id).data_policy()
        overrides = self._overrides.get((section_id, data_key))
        if not overrides:
            return base
        return replace(base, **overrides)

    def policy_for_data_type(self, data_type: str, ttl_category: str | None = None) -> DataPolicy:
        """Resolve a standalone policy from `REFRESH_POLICIES` and `CACHE_TTL`."""
        refresh = REFRESH_POLICIES.get(data_type)
        if ttl_category is not None:
            ttl = ttl_for(ttl_category)
        else:
            ttl = CACHE_TTL.get(data_type, CACHE_TTL["medium"])
        if refresh is None:
            return DataPolicy(ttl_seconds=ttl)
        return DataPolicy(
            ttl_seconds=ttl,
            refresh_on_focus=refresh.refresh_on_focus,
            stale_while_revalidate=refresh.stale_while_revalidate,
        )

    def invalidation_keys(self, change_type: str) -> list[str]:
        """Keys that must be dropped together when ``change_type`` happens."""
        keys = self._invalidation.get(change_type)
        if keys is None:
            logger.warning("Unknown cache invalidation change type", change_type=change_type)
            return []
        return list(keys)

    def register_invalidation(self, change_type: str, keys: list[str]) -> None:
        """Add keys to a change group (creating the group if needed)."""
        group = self._invalidation.setdefault(change_type, [])
        for key in keys:
            if key not in group:
                group.append(key)

    def get_all_policies(self) -> dict[str, SectionPolicy]:
        """Get all registered section policies."""
        return self._policies.copy()

    def change_types(self) -> list[str]:
        return sorted(self._invalidation)


__all__ = [
    "CACHE_INVALIDATION",
    "CACHE_TTL",
    "DATA_KEY_OVERRIDES",
    "DEFAULT_SECTION_POLICY",
    "REFRESH_POLICIES",
    "SECTION_POLICIES",
    "CachePolicyManager",
    "DataPolicy",
    "RefreshPolicy",
    "SectionPolicy",
    "ttl_for",
]
