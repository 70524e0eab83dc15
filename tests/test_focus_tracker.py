# tests/test_focus_tracker.py
"""Tests for focus tracking, blur debouncing and the throttled refresh broadcast."""

import asyncio

import pytest

from datacache.focus_tracker import FocusTracker
from datacache.refresh_bus import RefreshBus, RefreshEvent
from tests.fakes.fake_clock import FakeClock


def _tracker(clock: FakeClock, **kwargs) -> tuple[FocusTracker, list[RefreshEvent]]:
    bus = RefreshBus()
    events: list[RefreshEvent] = []
    bus.subscribe(events.append)
    tracker = FocusTracker(bus, clock=clock, **kwargs)
    return tracker, events


class TestRefreshBus:
    def test_publish_reaches_every_listener(self) -> None:
        bus = RefreshBus()
        first: list[RefreshEvent] = []
        second: list[RefreshEvent] = []
        bus.subscribe(first.append)
        bus.subscribe(second.append)

        event = RefreshEvent(reason="focus", timestamp=1.0)
        bus.publish(event)

        assert first == second == [event]
        assert event.as_dict() == {"reason": "focus", "timestamp": 1.0}

    def test_unsubscribed_listener_is_skipped(self) -> None:
        bus = RefreshBus()
        seen: list[RefreshEvent] = []
        unsubscribe = bus.subscribe(seen.append)

        unsubscribe()
        unsubscribe()
        bus.publish(RefreshEvent(reason="focus", timestamp=1.0))

        assert seen == []
        assert bus.listener_count() == 0

    def test_failing_listener_does_not_stop_delivery(self) -> None:
        bus = RefreshBus()
        seen: list[RefreshEvent] = []

        def broken(event: RefreshEvent) -> None:
            raise RuntimeError("boom")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        bus.publish(RefreshEvent(reason="focus", timestamp=1.0))

        assert len(seen) == 1


class TestFocusTransitions:
    def test_construction_when_visible_records_focus_without_broadcast(self, clock: FakeClock) -> None:
        tracker, events = _tracker(clock)

        assert tracker.is_focused
        assert tracker.last_focus_instant == clock()
        assert tracker.last_broadcast_instant is None
        assert events == []

    def test_construction_when_hidden(self, clock: FakeClock) -> None:
        tracker, _ = _tracker(clock, initially_visible=False)

        assert not tracker.is_focused
        assert tracker.last_focus_instant is None
        assert not tracker.is_recently_focused()

    def test_first_focus_broadcasts_with_reason_and_timestamp(self, clock: FakeClock) -> None:
        tracker, events = _tracker(clock)
        clock.advance(1)

        assert tracker.handle_focus()

        assert events == [RefreshEvent(reason="focus", timestamp=clock())]
        assert tracker.last_broadcast_instant == clock()

    def test_focus_twice_within_throttle_broadcasts_once(self, clock: FakeClock) -> None:
        tracker, events = _tracker(clock, throttle_seconds=30)

        tracker.handle_focus()
        clock.advance(5)
        assert not tracker.handle_focus()

        assert len(events) == 1
        assert tracker.last_focus_instant == clock()

    def test_focus_after_throttle_window_broadcasts_again(self, clock: FakeClock) -> None:
        tracker, events = _tracker(clock, throttle_seconds=30)

        tracker.handle_focus()
        clock.advance(30)
        assert not tracker.handle_focus()
        clock.advance(0.5)
        assert tracker.handle_focus()

        assert len(events) == 2

    def test_broadcast_can_be_disabled(self, clock: FakeClock) -> None:
        tracker, events = _tracker(clock, broadcast_on_focus=False)

        tracker.handle_focus()

        assert events == []
        assert tracker.is_focused

    def test_is_recently_focused(self, clock: FakeClock) -> None:
        tracker, _ = _tracker(clock)

        clock.advance(4.9)
        assert tracker.is_recently_focused(5)
        clock.advance(0.1)
        assert not tracker.is_recently_focused(5)

    def test_callbacks(self, clock: FakeClock) -> None:
        calls: list[str] = []
        tracker, _ = _tracker(
            clock,
            blur_debounce_seconds=0,
            on_focus=lambda: calls.append("focus"),
            on_blur=lambda: calls.append("blur"),
        )

        tracker.handle_blur()
        tracker.handle_focus()

        assert calls == ["blur", "focus"]

    def test_blur_outside_event_loop_applies_immediately(self, clock: FakeClock) -> None:
        tracker, _ = _tracker(clock)

        tracker.handle_visibility_change(hidden=True)

        assert not tracker.is_focused


@pytest.mark.asyncio
class TestBlurDebounce:
    async def test_blur_applies_after_debounce(self, clock: FakeClock) -> None:
        tracker, _ = _tracker(clock, blur_debounce_seconds=0.01)

        tracker.handle_blur()
        assert tracker.is_focused
        assert tracker.blur_pending

        await asyncio.sleep(0.05)

        assert not tracker.is_focused
        assert not tracker.blur_pending

    async def test_focus_during_debounce_cancels_blur(self, clock: FakeClock) -> None:
        blurs: list[str] = []
        tracker, _ = _tracker(clock, blur_debounce_seconds=0.01, on_blur=lambda: blurs.append("blur"))

        tracker.handle_blur()
        tracker.handle_focus()
        await asyncio.sleep(0.05)

        assert tracker.is_focused
        assert blurs == []

    async def test_visibility_change_maps_to_focus_and_blur(self, clock: FakeClock) -> None:
        tracker, events = _tracker(clock, blur_debounce_seconds=0.01)

        tracker.handle_visibility_change(hidden=True)
        await asyncio.sleep(0.05)
        assert not tracker.is_focused

        clock.advance(1)
        assert tracker.handle_visibility_change(hidden=False)
        assert tracker.is_focused
        assert len(events) == 1

    async def test_close_cancels_pending_blur(self, clock: FakeClock) -> None:
        tracker, events = _tracker(clock, blur_debounce_seconds=0.01)

        tracker.handle_blur()
        tracker.close()
        await asyncio.sleep(0.05)

        assert tracker.is_focused
        assert not tracker.handle_focus()
        assert events == []
