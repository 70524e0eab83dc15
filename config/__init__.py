"""Expose data-cache configuration as stable module-level constants.

This package provides a facade over the underlying Pydantic settings model defined in
[`config.settings`](config/settings.py:1). The primary API is the
[`settings`](config/settings.py:72) singleton plus a set of module-level constants
mirroring its fields.

Configuration precedence and lifecycle:
- On initial import, configuration is loaded by importing [`config.settings`](config/settings.py:1),
  which constructs the `settings` singleton.
- Values come from the process environment and may be sourced from a `.env` file.
- [`reload()`](config/__init__.py:88) re-reads `.env` with override enabled, then replaces
  this module's exported values (see [`config.loader.reload_settings()`](config/loader.py:33)).

Notes:
    Components receive their timing values as constructor arguments; these constants are
    only the defaults that [`datacache.runtime.CacheRuntime`](datacache/runtime.py:1) reads.
"""

from typing import Any

from .settings import (
    DataCacheSettings as DataCacheSettings,
)
from .settings import (
    rich_formatter as rich_formatter,
)
from .settings import (
    settings as settings,
)
from .settings import (
    simple_formatter as simple_formatter,
)

DEFAULT_CACHE_TTL_SECONDS = settings.DEFAULT_CACHE_TTL_SECONDS
MAX_CACHE_ENTRIES = settings.MAX_CACHE_ENTRIES
FOCUS_REFRESH_THROTTLE_SECONDS = settings.FOCUS_REFRESH_THROTTLE_SECONDS
FOCUS_BLUR_DEBOUNCE_SECONDS = settings.FOCUS_BLUR_DEBOUNCE_SECONDS
FOCUS_BROADCAST_ENABLED = settings.FOCUS_BROADCAST_ENABLED
RECENT_FOCUS_THRESHOLD_SECONDS = settings.RECENT_FOCUS_THRESHOLD_SECONDS
FOCUS_REVALIDATE_DELAY_SECONDS = settings.FOCUS_REVALIDATE_DELAY_SECONDS
PRELOAD_ENABLED = settings.PRELOAD_ENABLED
PRELOAD_DELAY_SECONDS = settings.PRELOAD_DELAY_SECONDS
PRELOAD_SECTIONS = settings.PRELOAD_SECTIONS
HTTPX_TIMEOUT = settings.HTTPX_TIMEOUT
LOG_LEVEL_STR = settings.LOG_LEVEL_STR
LOG_FORMAT = settings.LOG_FORMAT
LOG_DATE_FORMAT = settings.LOG_DATE_FORMAT
LOG_DIR = settings.LOG_DIR
LOG_FILE = settings.LOG_FILE
ENABLE_RICH_LOGGING = settings.ENABLE_RICH_LOGGING
SIMPLE_LOGGING_MODE = settings.SIMPLE_LOGGING_MODE


def get(key: str) -> Any:
    """Return the value of a configuration attribute from `settings`.

    Args:
        key: Attribute name on the `settings` singleton.

    Returns:
        The current value of the named attribute.

    Raises:
        AttributeError: If `key` is not a valid attribute on `settings`.
    """
    return getattr(settings, key)


def set(key: str, value: Any) -> None:
    """Set a configuration attribute on `settings` at runtime.

    This mutates the in-memory settings instance and does not persist to `.env`.

    Args:
        key: Attribute name on the `settings` singleton.
        value: Value to assign.

    Raises:
        AttributeError: If `key` is not a valid attribute on `settings`.
    """
    if key not in type(settings).model_fields:
        raise AttributeError(f"Unknown configuration attribute: {key}")
    setattr(settings, key, value)
    globals()[key] = value


def reload() -> bool:
    """Reload configuration and refresh this package's exported constants.

    This delegates to [`config.loader.reload_settings()`](config/loader.py:33), which may
    overwrite process environment variables by re-reading `.env` with override enabled.

    Returns:
        True when the settings were rebuilt, False when the loader reported a failure.
    """
    from .loader import reload_settings

    return reload_settings()
