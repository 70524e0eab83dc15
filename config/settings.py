# config/settings.py
"""
Configuration settings for the dashboard data cache.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class DataCacheSettings(BaseSettings):
    """Full configuration for the dashboard data cache."""

    # Cache store
    DEFAULT_CACHE_TTL_SECONDS: float = 300.0
    MAX_CACHE_ENTRIES: int | None = None

    # Focus tracking
    FOCUS_REFRESH_THROTTLE_SECONDS: float = 30.0
    FOCUS_BLUR_DEBOUNCE_SECONDS: float = 0.1
    FOCUS_BROADCAST_ENABLED: bool = True
    RECENT_FOCUS_THRESHOLD_SECONDS: float = 5.0

    # Cached bindings
    FOCUS_REVALIDATE_DELAY_SECONDS: float = 1.0

    # Section preloading
    PRELOAD_ENABLED: bool = True
    PRELOAD_DELAY_SECONDS: float = 2.0
    PRELOAD_SECTIONS: list[str] = Field(
        default_factory=lambda: [
            "user-management",
            "college-management",
            "task-management",
        ]
    )

    # HTTP fetch functions
    HTTPX_TIMEOUT: float = 30.0

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_DIR: str = "logs"
    LOG_FILE: str | None = None
    ENABLE_RICH_LOGGING: bool = True
    # Minimal logging mode: console only, no rotation/Rich
    SIMPLE_LOGGING_MODE: bool = False

    @model_validator(mode="after")
    def normalize_cache_bounds(self) -> DataCacheSettings:
        # MAX_CACHE_ENTRIES=0 in the environment means "unbounded".
        if self.MAX_CACHE_ENTRIES is not None and self.MAX_CACHE_ENTRIES <= 0:
            object.__setattr__(self, "MAX_CACHE_ENTRIES", None)
        return self

    model_config = SettingsConfigDict(env_prefix="", env_file=".env", extra="ignore")


settings = DataCacheSettings()


# Update module level variables for backward compatibility
for _field in DataCacheSettings.model_fields:
    globals()[_field] = getattr(settings, _field)


# Configure structlog to integrate with standard logging and output human‑readable messages
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%m/%d/%Y, %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


def filter_internal_keys(
    logger: Any, name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Remove internal structlog fields from event dict."""
    keys_to_remove = [k for k in event_dict.keys() if k.startswith("_")]
    for key in keys_to_remove:
        event_dict.pop(key, None)
    return event_dict


def _format_context(event_dict: MutableMapping[str, Any], markup: bool) -> str:
    context_parts = []
    for key, value in event_dict.items():
        if key.startswith("_"):
            continue
        if isinstance(value, str) and len(value) > 50:
            value_str = f"{value[:47]}..."
        else:
            value_str = str(value)
        context_parts.append(f"[dim]{key}[/dim]={value_str}" if markup else f"{key}={value_str}")
    return f"({', '.join(context_parts)})" if context_parts else ""


def simple_log_format_rich(
    logger: Any, name: str, event_dict: MutableMapping[str, Any]
) -> str:
    """Simple human-readable log formatter with Rich markup for console output."""
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)

    level = event_dict.pop("level", "INFO")
    timestamp = event_dict.pop("timestamp", "")
    logger_name = event_dict.pop("logger", "")
    event = event_dict.pop("event", "")

    parts = []
    if timestamp:
        parts.append(f"{timestamp}")
    if logger_name:
        short_name = logger_name.split(".")[-1] if "." in logger_name else logger_name
        parts.append(f"[cyan]{short_name}[/cyan]")

    level_upper = level.upper()
    if level_upper == "ERROR" or level_upper == "CRITICAL":
        parts.append(f"[red]{level_upper}[/red]")
    elif level_upper == "WARNING":
        parts.append(f"[yellow]{level_upper}[/yellow]")
    elif level_upper == "INFO":
        parts.append(f"[green]{level_upper}[/green]")
    else:
        parts.append(level_upper)

    parts.append(f"[bold]{event}[/bold]" if event else "")

    context = _format_context(event_dict, markup=True)
    if context:
        parts.append(context)

    return " ".join(parts)


def simple_log_format_plain(
    logger: Any, name: str, event_dict: MutableMapping[str, Any]
) -> str:
    """Simple human-readable log formatter without markup for file output."""
    event_dict.pop("_record", None)
    event_dict.pop("_from_structlog", None)

    level = event_dict.pop("level", "INFO")
    timestamp = event_dict.pop("timestamp", "")
    logger_name = event_dict.pop("logger", "")
    event = event_dict.pop("event", "")

    parts = []
    if timestamp:
        parts.append(f"{timestamp}")
    if logger_name:
        short_name = logger_name.split(".")[-1] if "." in logger_name else logger_name
        parts.append(f"[{short_name}]")

    parts.append(level.upper())
    parts.append(event if event else "")

    context = _format_context(event_dict, markup=False)
    if context:
        parts.append(context)

    return " ".join(parts)


# Formatter for file output (plain text, no Rich markup)
simple_formatter = structlog.stdlib.ProcessorFormatter(
    foreign_pre_chain=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%m/%d/%Y, %H:%M:%S"),
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ],
    processors=[
        filter_internal_keys,
        simple_log_format_plain,
    ],
)

# Formatter for Rich console output (with color markup)
rich_formatter = structlog.stdlib.ProcessorFormatter(
    foreign_pre_chain=[
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%m/%d/%Y, %H:%M:%S"),
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ],
    processors=[
        filter_internal_keys,
        simple_log_format_rich,
    ],
)
