# config/validator.py
"""
Configuration validation utilities for the dashboard data cache.

This module provides a single public function `validate_all()` that:
1. Takes the current `DataCacheSettings` object (already validated field by
   field by Pydantic when it was constructed).
2. Performs cross‑field sanity checks that cannot be expressed purely with
   Pydantic field validators (e.g., related timing values).
3. Returns a structured health report dictionary.

The report layout:

{
    "overall_health": "healthy" | "warning" | "error",
    "issues": {
        "errors":   [{ "field": "<field>", "message": "<msg>" }, ...],
        "warnings": [{ "field": "<field>", "message": "<msg>" }, ...],
        "info":     [{ "field": "<field>", "message": "<msg>" }, ...],
    }
}
"""

from __future__ import annotations

import importlib

from .settings import DataCacheSettings


def _add_issue(
    issues: dict[str, list[dict[str, str]]],
    severity: str,
    field: str,
    message: str,
) -> None:
    """Utility to append an issue entry to the report."""
    issues.setdefault(severity, []).append({"field": field, "message": message})


def validate_all(current_settings: DataCacheSettings | None = None) -> dict:
    """
    Validate a configuration state (the live settings by default).

    Returns a health‑report dict with overall status and detailed issue lists.
    """
    issues: dict[str, list[dict[str, str]]] = {"errors": [], "warnings": [], "info": []}

    if current_settings is None:
        current_settings = importlib.import_module("config.settings").settings
    if current_settings is None:
        _add_issue(issues, "errors", "settings", "Configuration object not initialized.")
        return {
            "overall_health": "error",
            "issues": issues,
        }

    # Durations that must be strictly positive
    positive_fields = [
        "DEFAULT_CACHE_TTL_SECONDS",
        "FOCUS_REFRESH_THROTTLE_SECONDS",
        "HTTPX_TIMEOUT",
    ]
    for name in positive_fields:
        value = getattr(current_settings, name)
        if value <= 0:
            _add_issue(issues, "errors", name, f"{name} must be > 0; got {value}.")

    # Durations that may be zero (immediate) but not negative
    non_negative_fields = [
        "FOCUS_BLUR_DEBOUNCE_SECONDS",
        "FOCUS_REVALIDATE_DELAY_SECONDS",
        "RECENT_FOCUS_THRESHOLD_SECONDS",
        "PRELOAD_DELAY_SECONDS",
    ]
    for name in non_negative_fields:
        value = getattr(current_settings, name)
        if value < 0:
            _add_issue(issues, "errors", name, f"{name} must be >= 0; got {value}.")

    # Blur debounce vs focus revalidation delay
    if current_settings.FOCUS_BLUR_DEBOUNCE_SECONDS >= current_settings.FOCUS_REVALIDATE_DELAY_SECONDS > 0:
        _add_issue(
            issues,
            "warnings",
            "FOCUS_BLUR_DEBOUNCE_SECONDS",
            (
                f"FOCUS_BLUR_DEBOUNCE_SECONDS ({current_settings.FOCUS_BLUR_DEBOUNCE_SECONDS}) "
                f"is not shorter than FOCUS_REVALIDATE_DELAY_SECONDS "
                f"({current_settings.FOCUS_REVALIDATE_DELAY_SECONDS}); focus checks may run "
                "before a pending blur settles."
            ),
        )

    # Preload targets must exist in the section policy table
    from datacache.cache_policies import SECTION_POLICIES

    if current_settings.PRELOAD_ENABLED:
        for section_id in current_settings.PRELOAD_SECTIONS:
            if section_id not in SECTION_POLICIES:
                _add_issue(
                    issues,
                    "warnings",
                    "PRELOAD_SECTIONS",
                    f"Preload section '{section_id}' has no section policy; defaults will apply.",
                )
    else:
        _add_issue(issues, "info", "PRELOAD_ENABLED", "Section preloading is disabled.")

    if current_settings.MAX_CACHE_ENTRIES is None:
        _add_issue(issues, "info", "MAX_CACHE_ENTRIES", "Cache store is unbounded.")

    # Derive overall health
    overall = "healthy"
    if issues["errors"]:
        overall = "error"
    elif issues["warnings"]:
        overall = "warning"

    return {
        "overall_health": overall,
        "issues": issues,
    }
