# datacache/in_flight.py
"""
Single-flight table: at most one outstanding computation per key.

Concurrent callers for the same key attach to one shared task and receive the
same result or the same exception. A caller that is cancelled stops waiting
but does not cancel the shared task, which runs to completion for the benefit
of the remaining callers (and of the cache it writes to).
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class InFlightTable:
    """Map of key to the shared pending task computing it."""

    def __init__(self, name: str = "fetch") -> None:
        self.name = name
        self._tasks: dict[str, asyncio.Task[Any]] = {}

    async def run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """
        Await the computation for ``key``, starting it only if none is pending.

        Args:
            key: Dedup key.
            factory: Zero-argument callable returning the awaitable to run.
                Only invoked when no computation for ``key`` is outstanding.

        Returns:
            The shared result.
        """
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self._tasks[key] = task
            task.add_done_callback(lambda done, key=key: self._finished(key, done))
        else:
            logger.debug("Joined in-flight request", table=self.name, key=key)
        return await asyncio.shield(task)

    def _finished(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._tasks.get(key) is task:
            del self._tasks[key]
        # Mark the outcome retrieved when every waiter has gone away.
        if not task.cancelled():
            task.exception()

    def is_pending(self, key: str) -> bool:
        return key in self._tasks

    def keys(self) -> list[str]:
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    async def wait_all(self) -> None:
        """Wait for every pending computation to settle, ignoring outcomes."""
        while self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
