# datacache/logging_config.py
"""Configure data-cache logging sinks and formatting.

This module configures:
- Standard library logging handlers (console and optional rotating file).
- Rich console output through `rich.logging.RichHandler` when enabled.
- Baseline log level overrides for noisy third-party libraries.

Notes:
    This module performs side-effectful logger configuration and should be
    called once at process startup via `setup_logging()`.
"""

import logging as stdlib_logging
import logging.handlers
import os

import structlog
from rich.logging import RichHandler

import config
from config import rich_formatter, simple_formatter


def setup_logging() -> None:
    """Set up logging handlers and formatting.

    This configures:
    - Console logging only, in simple mode.
    - Rotating file logging when a log file is configured.
    - Rich console output when enabled, otherwise a plain stream handler.

    Notes:
        This function replaces the root logger handler list and is intended to be
        called once during application startup.
    """
    level = config.LOG_LEVEL_STR
    root_logger = stdlib_logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)

    if config.SIMPLE_LOGGING_MODE:
        stream_handler = stdlib_logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(simple_formatter)
        root_logger.addHandler(stream_handler)
        root_logger.info("Simple logging mode enabled: console only.")
        structlog.get_logger(__name__).info("Logging setup complete", level=level)
        return

    if config.LOG_FILE:
        try:
            log_path = os.path.join(config.LOG_DIR, config.LOG_FILE)
            os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
            file_handler = stdlib_logging.handlers.RotatingFileHandler(
                log_path,
                maxBytes=10 * 1024 * 1024,
                backupCount=5,
                mode="a",
                encoding="utf-8",
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(simple_formatter)
            root_logger.addHandler(file_handler)
            root_logger.info(f"File logging enabled. Log file: {log_path}")
        except OSError as e:
            console_handler_fallback = stdlib_logging.StreamHandler()
            console_handler_fallback.setFormatter(simple_formatter)
            root_logger.addHandler(console_handler_fallback)
            root_logger.error(
                f"Failed to configure file logging: {e}. Logging to console instead.",
                exc_info=True,
            )

    if config.ENABLE_RICH_LOGGING:
        rich_handler = RichHandler(
            level=level,
            rich_tracebacks=True,
            show_path=False,
            markup=True,
            show_time=False,  # Timestamp already in our formatter
            show_level=False,  # Level already in our formatter
        )
        rich_handler.setFormatter(rich_formatter)
        root_logger.addHandler(rich_handler)
    elif not any(
        isinstance(h, stdlib_logging.StreamHandler) and not isinstance(h, stdlib_logging.FileHandler)
        for h in root_logger.handlers
    ):
        stream_handler = stdlib_logging.StreamHandler()
        stream_handler.setLevel(level)
        stream_handler.setFormatter(simple_formatter)
        root_logger.addHandler(stream_handler)

    stdlib_logging.getLogger("httpx").setLevel(stdlib_logging.WARNING)
    stdlib_logging.getLogger("httpcore").setLevel(stdlib_logging.WARNING)

    structlog.get_logger(__name__).info("Logging setup complete", level=level)
