# datacache/exceptions.py
"""Define standardized exception types for the data cache.

This module provides a small exception hierarchy and helpers used across `datacache/`
to propagate actionable error details without losing the original exception.

Cache misses are never exceptions: reads return ``None`` for absent keys.
"""

from typing import Any


class DataCacheError(Exception):
    """Base exception for all data cache errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class FetchError(DataCacheError):
    """A fetch function failed for a cache key.

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, key: str, details: dict[str, Any] | None = None):
        super().__init__(message, details)
        self.key = key


class InvalidPatternError(DataCacheError, ValueError):
    """An invalidation pattern is not a valid regular expression."""


class PolicyError(DataCacheError, ValueError):
    """A cache or section policy has invalid values."""


class UnknownSectionError(DataCacheError, LookupError):
    """An operation referenced a section with no registered fetchers."""


class BindingDetachedError(DataCacheError):
    """A read was requested on a cached binding after it was detached."""


def create_error_context(**kwargs: Any) -> dict[str, Any]:
    """Build a context dictionary for structured errors.

    Args:
        **kwargs: Key-value pairs to include.

    Returns:
        A dictionary containing only keys whose values are not `None`.
    """
    return {k: v for k, v in kwargs.items() if v is not None}


def wrap_fetch_error(key: str, original_error: BaseException, **context: Any) -> FetchError:
    """Convert a fetch-function exception into a `FetchError`.

    A `FetchError` raised by the fetch function itself (for example by the HTTP
    fetchers) is returned unchanged so its details are not nested twice.

    Args:
        key: Cache key the fetch was for.
        original_error: The caught exception.
        **context: Additional structured context to attach.

    Returns:
        A `FetchError` whose ``__cause__`` is the original exception.
    """
    if isinstance(original_error, FetchError):
        return original_error

    details = create_error_context(
        key=key,
        original_error=str(original_error),
        error_type=type(original_error).__name__,
        **context,
    )
    error = FetchError(f"Fetch failed for {key}", key=key, details=details)
    error.__cause__ = original_error
    return error
