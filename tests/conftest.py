# tests/conftest.py
import os
import sys

import pytest

# Ensure repository root is on PYTHONPATH for tests
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

# Config reload handlers must not touch process signals under pytest.
os.environ.setdefault("CONFIG_DISABLE_SIGHUP", "1")

from config import DataCacheSettings  # noqa: E402
from datacache.cache_store import CacheStore  # noqa: E402
from datacache.runtime import CacheRuntime  # noqa: E402
from tests.fakes.fake_clock import FakeClock  # noqa: E402


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add custom CLI options for this repo.

    --unit-stubs: skip tests marked as slow or integration so a quick run only
    exercises hermetic unit tests. No-op by default.
    """
    parser.addoption(
        "--unit-stubs",
        action="store_true",
        default=False,
        help="Run fast unit tests only; skip slow and integration suites.",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """When --unit-stubs is passed, skip heavier-marked tests."""
    if not config.getoption("--unit-stubs"):
        return

    skip_marker = pytest.mark.skip(reason="skipped by --unit-stubs")
    heavy_markers = {"integration", "slow"}
    for item in items:
        for m in item.iter_markers():
            if m.name in heavy_markers:
                item.add_marker(skip_marker)
                break


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> CacheStore:
    return CacheStore(default_ttl=300.0, clock=clock)


@pytest.fixture
def runtime(clock: FakeClock) -> CacheRuntime:
    return CacheRuntime(
        DataCacheSettings(FOCUS_REVALIDATE_DELAY_SECONDS=0.01, PRELOAD_DELAY_SECONDS=0.0),
        clock=clock,
    )
