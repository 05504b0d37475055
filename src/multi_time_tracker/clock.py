"""Wall-clock sources.

The engine never reads the time itself; every operation takes ``now`` in
milliseconds. The Clock classes supply that value, so the command line can
pin the time (``--at``) and tests can step it.
"""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Abstract source of wall-clock milliseconds since epoch."""

    @abstractmethod
    def now_ms(self) -> int:
        """Return the current time in milliseconds since epoch."""
        pass


class SystemClock(Clock):
    """The real clock."""

    def now_ms(self) -> int:
        return time.time_ns() // 1_000_000


class FixedClock(Clock):
    """Manually driven clock for tests and pinned command line runs.

    Example:
        >>> clock = FixedClock(1000)
        >>> clock.advance(500)
        1500
    """

    def __init__(self, now_ms: int = 0) -> None:
        self.current_ms = now_ms

    def now_ms(self) -> int:
        return self.current_ms

    def set(self, now_ms: int) -> None:
        self.current_ms = now_ms

    def advance(self, delta_ms: int) -> int:
        """Move the clock forward and return the new time."""
        self.current_ms += delta_ms
        return self.current_ms
