"""Time sources for cache TTL checks"""

import time


class Clock:
    """Monotonic seconds"""

    def now(self) -> float:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> float:
        return time.monotonic()


class FrozenClock(Clock):
    """Manually advanced clock for tests and replay"""

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float):
        self._now += float(seconds)
