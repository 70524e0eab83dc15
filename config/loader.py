# config/loader.py
"""
Configuration reload utilities for the dashboard data cache.

The main public function is ``reload_settings()`` which:
1. Reloads environment variables from ``.env`` (via ``dotenv.load_dotenv``).
2. Re‑creates the ``DataCacheSettings`` instance so that any changed values are applied.
3. Updates the symbols exported by ``config.__init__`` to reflect the new values.

Optionally ``reload_settings()`` is hooked to ``SIGHUP`` so that an operator can
trigger a live configuration reload without restarting the process.
"""

from __future__ import annotations

import importlib
import os
import signal
from typing import Any

import structlog
from dotenv import load_dotenv
from pydantic import ValidationError

logger = structlog.get_logger(__name__)


def _import_settings_module():
    # ``config.settings`` the attribute is the settings instance, not this module.
    return importlib.import_module("config.settings")


def reload_settings() -> bool:
    """
    Reload configuration from the environment and refresh the ``config`` package.

    Returns ``True`` on success, ``False`` when the new environment does not validate.
    The previous settings stay in effect on failure.
    """
    load_dotenv(override=True)

    settings_mod = _import_settings_module()
    try:
        new_settings = settings_mod.DataCacheSettings()
    except ValidationError as exc:
        logger.error("Configuration reload rejected", errors=exc.error_count(), exc_info=True)
        return False

    settings_mod.settings = new_settings
    for field_name in type(new_settings).model_fields:
        setattr(settings_mod, field_name, getattr(new_settings, field_name))

    config_pkg = importlib.import_module("config")
    config_pkg.settings = new_settings
    for field_name in type(new_settings).model_fields:
        setattr(config_pkg, field_name, getattr(new_settings, field_name))

    logger.info("Configuration reloaded")
    return True


def _handle_sighup(signum: int, frame: Any) -> None:  # pragma: no cover
    """Signal handler that invokes ``reload_settings``."""
    reload_settings()


# If the environment variable ``CONFIG_DISABLE_SIGHUP`` is set to any value,
# registration is skipped (useful for containers where signals are managed externally).
if not os.getenv("CONFIG_DISABLE_SIGHUP") and hasattr(signal, "SIGHUP"):
    try:
        signal.signal(signal.SIGHUP, _handle_sighup)
    except ValueError:
        # signal.signal only works from the main thread.
        logger.debug("SIGHUP reload handler not installed outside the main thread")
