# tests/test_cache_keys.py
import pytest

from datacache import cache_keys
from datacache.cache_keys import AdminKeys
from datacache.cache_store import CacheStore


def test_section_key_layout() -> None:
    assert cache_keys.section_key("task-management", "allTasks") == "section:task-management:allTasks"


@pytest.mark.parametrize("bad", ["", "   ", "a:b"])
def test_section_key_rejects_bad_segments(bad: str) -> None:
    with pytest.raises(ValueError):
        cache_keys.section_key(bad, "allTasks")
    with pytest.raises(ValueError):
        cache_keys.section_key("overview", bad)


def test_section_pattern_does_not_match_prefix_sibling(store: CacheStore) -> None:
    store.set(cache_keys.section_key("user", "a"), 1, 60)
    store.set(cache_keys.section_key("user-management", "a"), 2, 60)

    removed = store.invalidate_pattern(cache_keys.section_pattern("user"))

    assert removed == 1
    assert store.keys() == ["section:user-management:a"]


def test_section_pattern_escapes_regex_characters(store: CacheStore) -> None:
    store.set(cache_keys.section_key("a.b", "x"), 1, 60)
    store.set(cache_keys.section_key("axb", "x"), 2, 60)

    assert store.invalidate_pattern(cache_keys.section_pattern("a.b")) == 1
    assert store.keys() == ["section:axb:x"]


def test_entity_builders() -> None:
    assert cache_keys.user_profile(42) == "user:profile:42"
    assert cache_keys.user_tasks("u1") == "user:tasks:u1"
    assert cache_keys.college_stats("c9") == "college:stats:c9"
    assert cache_keys.poc_announcements("p1") == "poc:announcements:p1"
    assert cache_keys.leaderboard("global") == "leaderboard:global"
    assert AdminKeys.users_by_role("admin") == "admin:users:role:admin"


def test_invalidate_user_cache_only_touches_that_user(store: CacheStore) -> None:
    store.set(cache_keys.user_profile("1"), {}, 60)
    store.set(cache_keys.user_tasks("1"), [], 60)
    store.set(cache_keys.user_profile("12"), {}, 60)

    assert cache_keys.invalidate_user_cache(store, "1") == 2
    assert store.keys() == ["user:profile:12"]


def test_invalidate_college_cache(store: CacheStore) -> None:
    store.set(cache_keys.college_overview("c1"), {}, 60)
    store.set(cache_keys.college_teams("c1"), [], 60)
    store.set(cache_keys.college_teams("c2"), [], 60)

    assert cache_keys.invalidate_college_cache(store, "c1") == 2
    assert store.keys() == ["college:teams:c2"]


def test_invalidate_announcement_cache(store: CacheStore) -> None:
    store.set(cache_keys.user_announcements("1"), [], 60)
    store.set(cache_keys.poc_announcements("p"), [], 60)
    store.set(AdminKeys.ALL_ANNOUNCEMENTS, [], 60)
    store.set(cache_keys.user_tasks("1"), [], 60)

    assert cache_keys.invalidate_announcement_cache(store) == 3
    assert store.keys() == ["user:tasks:1"]


def test_invalidate_task_cache_for_one_user(store: CacheStore) -> None:
    store.set(cache_keys.user_tasks("1"), [], 60)
    store.set(cache_keys.user_tasks("2"), [], 60)

    assert cache_keys.invalidate_task_cache(store, "1") == 1
    assert cache_keys.invalidate_task_cache(store, "1") == 0
    assert store.keys() == ["user:tasks:2"]


def test_invalidate_task_cache_for_everyone(store: CacheStore) -> None:
    store.set(cache_keys.user_tasks("1"), [], 60)
    store.set(AdminKeys.ALL_TASKS, [], 60)
    store.set(cache_keys.task_details("t"), {}, 60)

    assert cache_keys.invalidate_task_cache(store) == 2
    assert store.keys() == ["task:details:t"]
