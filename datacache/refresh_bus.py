# datacache/refresh_bus.py
"""Fire-and-forget "refresh suggested" broadcast shared by cached bindings."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import structlog

logger = structlog.get_logger(__name__)

REFRESH_EVENT_NAME = "dashboard:refresh"


@dataclass(frozen=True)
class RefreshEvent:
    """Payload of a refresh broadcast."""

    reason: str
    timestamp: float

    def as_dict(self) -> dict[str, object]:
        return {"reason": self.reason, "timestamp": self.timestamp}


RefreshListener = Callable[[RefreshEvent], None]


class _Listener:
    __slots__ = ("callback", "active")

    def __init__(self, callback: RefreshListener) -> None:
        self.callback = callback
        self.active = True


class RefreshBus:
    """
    One named broadcast signal with any number of independent listeners.

    Publishing is synchronous; listeners schedule their own async work.
    A listener that raises is logged and does not stop delivery to others.
    """

    def __init__(self, name: str = REFRESH_EVENT_NAME) -> None:
        self.name = name
        self._listeners: list[_Listener] = []
        self.published = 0

    def subscribe(self, callback: RefreshListener) -> Callable[[], None]:
        """Register ``callback``; returns an idempotent unsubscribe function."""
        listener = _Listener(callback)
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if not listener.active:
                return
            listener.active = False
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: RefreshEvent) -> None:
        self.published += 1
        logger.debug("Refresh broadcast", signal=self.name, reason=event.reason)
        for listener in list(self._listeners):
            if not listener.active:
                continue
            try:
                listener.callback(event)
            except Exception:
                logger.warning(
                    "Refresh listener error",
                    signal=self.name,
                    reason=event.reason,
                    exc_info=True,
                )

    def listener_count(self) -> int:
        return len(self._listeners)
