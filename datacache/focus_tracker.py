# datacache/focus_tracker.py
"""
Application focus/visibility tracker with a throttled refresh broadcast.

The tracker has two states, focused and unfocused. Gaining focus records the
focus instant and, at most once per throttle interval, publishes a
``RefreshEvent(reason="focus")`` on the shared `RefreshBus`. Losing focus is
debounced so that a blur immediately followed by a focus (a transient dialog,
for example) records no state change at all.

The tracker knows nothing about cache keys. Bindings subscribe to the bus and
decide for themselves whether to revalidate.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from datacache.refresh_bus import RefreshBus, RefreshEvent

logger = structlog.get_logger(__name__)


def _now() -> float:
    return time.monotonic()


class FocusTracker:
    """Tracks focus transitions reported by the host environment."""

    def __init__(
        self,
        bus: RefreshBus | None = None,
        *,
        throttle_seconds: float = 30.0,
        blur_debounce_seconds: float = 0.1,
        broadcast_on_focus: bool = True,
        on_focus: Callable[[], None] | None = None,
        on_blur: Callable[[], None] | None = None,
        initially_visible: bool = True,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.bus = bus or RefreshBus()
        self.throttle_seconds = throttle_seconds
        self.blur_debounce_seconds = blur_debounce_seconds
        self.broadcast_on_focus = broadcast_on_focus
        self._on_focus = on_focus
        self._on_blur = on_blur
        self._clock = clock or _now

        self._is_focused = initially_visible
        # Construction in the focused state counts as a focus, without a broadcast.
        self._last_focus: float | None = self._clock() if initially_visible else None
        self._last_broadcast: float | None = None
        self._pending_blur: asyncio.TimerHandle | None = None
        self._closed = False

    # ------------------------------------------------------------- properties

    @property
    def is_focused(self) -> bool:
        return self._is_focused

    @property
    def last_focus_instant(self) -> float | None:
        return self._last_focus

    @property
    def last_broadcast_instant(self) -> float | None:
        return self._last_broadcast

    @property
    def blur_pending(self) -> bool:
        return self._pending_blur is not None

    def is_recently_focused(self, threshold_seconds: float = 5.0) -> bool:
        """True when the last focus happened less than ``threshold_seconds`` ago."""
        if self._last_focus is None:
            return False
        return self._clock() - self._last_focus < threshold_seconds

    # ------------------------------------------------------------ transitions

    def handle_focus(self) -> bool:
        """
        Record a focus transition.

        Returns:
            True when this call published a refresh broadcast.
        """
        if self._closed:
            return False

        self._cancel_pending_blur()
        now = self._clock()
        self._is_focused = True
        self._last_focus = now

        if self._on_focus is not None:
            try:
                self._on_focus()
            except Exception:
                logger.warning("Focus callback error", exc_info=True)

        if not self.broadcast_on_focus:
            return False
        if self._last_broadcast is not None and now - self._last_broadcast <= self.throttle_seconds:
            logger.debug(
                "Focus refresh throttled",
                since_last=now - self._last_broadcast,
                throttle=self.throttle_seconds,
            )
            return False

        self._last_broadcast = now
        self.bus.publish(RefreshEvent(reason="focus", timestamp=now))
        return True

    def handle_blur(self) -> None:
        """Schedule the unfocused transition after the debounce delay."""
        if self._closed:
            return
        self._cancel_pending_blur()

        if self.blur_debounce_seconds <= 0:
            self._apply_blur()
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Outside an event loop there is nothing to debounce against.
            self._apply_blur()
            return
        self._pending_blur = loop.call_later(self.blur_debounce_seconds, self._apply_blur)

    def handle_visibility_change(self, hidden: bool) -> bool:
        """Map a host visibility change onto focus/blur."""
        if hidden:
            self.handle_blur()
            return False
        return self.handle_focus()

    def close(self) -> None:
        """Cancel any pending blur and ignore further transitions."""
        self._cancel_pending_blur()
        self._closed = True

    # ---------------------------------------------------------------- helpers

    def _apply_blur(self) -> None:
        self._pending_blur = None
        if self._closed:
            return
        self._is_focused = False
        if self._on_blur is not None:
            try:
                self._on_blur()
            except Exception:
                logger.warning("Blur callback error", exc_info=True)

    def _cancel_pending_blur(self) -> None:
        if self._pending_blur is not None:
            self._pending_blur.cancel()
            self._pending_blur = None
