"""Tests for the clock sources."""

import time

from multi_time_tracker.clock import FixedClock, SystemClock


class TestFixedClock:
    def test_set_and_advance(self) -> None:
        clock = FixedClock(1000)
        assert clock.now_ms() == 1000
        assert clock.advance(500) == 1500
        clock.set(10)
        assert clock.now_ms() == 10

    def test_default_is_epoch(self) -> None:
        assert FixedClock().now_ms() == 0


class TestSystemClock:
    def test_milliseconds_since_epoch(self) -> None:
        before = int(time.time() * 1000)
        now = SystemClock().now_ms()
        after = int(time.time() * 1000)
        assert before - 1 <= now <= after + 1
