# datacache/cache_keys.py
"""Cache key builders for dashboard data.

Rules:
- Keys are flat, colon-delimited strings: ``<namespace>:<category>:<id>``.
- Pattern invalidation matches on these strings, so every key is produced by a
  builder here; call sites never format keys by hand.
- Segments may not contain ``:`` (it would let one section's prefix match another).
- Fragments interpolated into invalidation patterns are always regex-escaped.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from datacache.cache_store import CacheStore

SECTION_NAMESPACE = "section"


def _segment(value: object, *, name: str) -> str:
    text = str(value).strip()
    if not text:
        raise ValueError(f"{name} must be a non-empty key segment")
    if ":" in text:
        raise ValueError(f"{name} may not contain ':' (got {text!r})")
    return text


# --- Section keys ---------------------------------------------------------


def section_key(section_id: str, data_key: str) -> str:
    """Key for one named data set of a UI section: ``section:<id>:<data_key>``."""
    return (
        f"{SECTION_NAMESPACE}:"
        f"{_segment(section_id, name='section_id')}:"
        f"{_segment(data_key, name='data_key')}"
    )


def section_pattern(section_id: str) -> str:
    """Pattern matching every key of one section."""
    return f"^{SECTION_NAMESPACE}:{re.escape(_segment(section_id, name='section_id'))}:"


ALL_SECTIONS_PATTERN = f"^{SECTION_NAMESPACE}:"


def data_type_pattern(data_type: str) -> str:
    """Pattern matching section keys whose data key mentions ``data_type`` in any section."""
    return f"^{SECTION_NAMESPACE}:[^:]+:[^:]*{re.escape(_segment(data_type, name='data_type'))}"


# --- Per-entity keys ------------------------------------------------------


def user_profile(user_id: object) -> str:
    return f"user:profile:{_segment(user_id, name='user_id')}"


def user_preferences(user_id: object) -> str:
    return f"user:preferences:{_segment(user_id, name='user_id')}"


def user_tasks(user_id: object) -> str:
    return f"user:tasks:{_segment(user_id, name='user_id')}"


def task_details(task_id: object) -> str:
    return f"task:details:{_segment(task_id, name='task_id')}"


def user_performance(user_id: object) -> str:
    return f"user:performance:{_segment(user_id, name='user_id')}"


def user_attendance(user_id: object) -> str:
    return f"user:attendance:{_segment(user_id, name='user_id')}"


def user_announcements(user_id: object) -> str:
    return f"user:announcements:{_segment(user_id, name='user_id')}"


def user_chat_rooms(user_id: object) -> str:
    return f"user:chatrooms:{_segment(user_id, name='user_id')}"


def announcement_details(announcement_id: object) -> str:
    return f"announcement:details:{_segment(announcement_id, name='announcement_id')}"


def chat_room_details(room_id: object) -> str:
    return f"chatroom:details:{_segment(room_id, name='room_id')}"


def college_overview(college_id: object) -> str:
    return f"college:overview:{_segment(college_id, name='college_id')}"


def college_users(college_id: object) -> str:
    return f"college:users:{_segment(college_id, name='college_id')}"


def college_stats(college_id: object) -> str:
    return f"college:stats:{_segment(college_id, name='college_id')}"


def college_tasks(college_id: object) -> str:
    return f"college:tasks:{_segment(college_id, name='college_id')}"


def college_teams(college_id: object) -> str:
    return f"college:teams:{_segment(college_id, name='college_id')}"


def college_performance(college_id: object) -> str:
    return f"college:performance:{_segment(college_id, name='college_id')}"


def poc_college_data(poc_id: object) -> str:
    return f"poc:college:{_segment(poc_id, name='poc_id')}"


def poc_announcements(poc_id: object) -> str:
    return f"poc:announcements:{_segment(poc_id, name='poc_id')}"


def leaderboard(scope: str) -> str:
    return f"leaderboard:{_segment(scope, name='scope')}"


# --- Admin keys -----------------------------------------------------------


class AdminKeys:
    """Fixed keys for admin-wide data sets."""

    STATS = "admin:stats:overview"
    SYSTEM_HEALTH = "admin:system:health"
    ACTIVITY_LOGS = "admin:activity:logs"

    ALL_USERS = "admin:users:all"
    USER_STATS = "admin:users:stats"
    RECENT_USERS = "admin:users:recent"
    USER_PERFORMANCE = "admin:users:performance"

    ALL_COLLEGES = "admin:colleges:all"
    COLLEGE_STATS = "admin:colleges:stats"
    COLLEGE_USERS = "admin:colleges:users"

    ALL_COHORTS = "admin:cohorts:all"
    COHORT_STATS = "admin:cohorts:stats"
    COHORT_ASSIGNMENTS = "admin:cohorts:assignments"

    ALL_TASKS = "admin:tasks:all"
    TASK_STATS = "admin:tasks:stats"
    TASK_PROGRESS = "admin:tasks:progress"

    ATTENDANCE_STATS = "admin:attendance:stats"
    RECENT_ATTENDANCE = "admin:attendance:recent"
    ATTENDANCE_ISSUES = "admin:attendance:issues"

    ALL_ANNOUNCEMENTS = "admin:announcements:all"
    ANNOUNCEMENT_STATS = "admin:announcements:stats"

    PERFORMANCE_METRICS = "admin:analytics:performance"
    ENGAGEMENT_STATS = "admin:analytics:engagement"
    TREND_DATA = "admin:analytics:trends"

    SYSTEM_LOGS = "admin:system:logs"
    DATABASE_STATS = "admin:system:database"
    CACHE_STATS = "admin:system:cache"

    SYSTEM_STATS = "admin:system:stats"

    @staticmethod
    def users_by_role(role: str) -> str:
        return f"admin:users:role:{_segment(role, name='role')}"


ADMIN_NAMESPACE_PATTERN = "^admin:"


# --- Group invalidation ---------------------------------------------------


def user_pattern(user_id: object) -> str:
    """Every ``user:<category>:<user_id>`` key."""
    return f"^user:[^:]+:{re.escape(_segment(user_id, name='user_id'))}$"


def college_pattern(college_id: object) -> str:
    """Every ``college:<category>:<college_id>`` key."""
    return f"^college:[^:]+:{re.escape(_segment(college_id, name='college_id'))}$"


ANNOUNCEMENTS_PATTERN = ":announcements:"
TASKS_PATTERN = ":tasks:"


def invalidate_user_cache(store: CacheStore, user_id: object) -> int:
    return store.invalidate_pattern(user_pattern(user_id))


def invalidate_college_cache(store: CacheStore, college_id: object) -> int:
    return store.invalidate_pattern(college_pattern(college_id))


def invalidate_announcement_cache(store: CacheStore) -> int:
    return store.invalidate_pattern(ANNOUNCEMENTS_PATTERN)


def invalidate_task_cache(store: CacheStore, user_id: object | None = None) -> int:
    """Drop one user's task list, or every task list when ``user_id`` is None."""
    if user_id is None:
        return store.invalidate_pattern(TASKS_PATTERN)
    key = user_tasks(user_id)
    present = key in store.keys()
    store.delete(key)
    return 1 if present else 0
