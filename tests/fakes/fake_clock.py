# tests/fakes/fake_clock.py
"""Manually advanced monotonic clock for TTL and throttle tests."""


class FakeClock:
    """Callable clock; time only moves when a test calls `advance`."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now
