"""
Clock source abstraction for deterministic testing

The generator only ever asks for "now" in epoch milliseconds. Production
reads the OS clock; tests drive a controllable clock, including backward
jumps the OS would only produce under NTP corrections or VM pauses.
"""

import time
from collections.abc import Iterable
from typing import Protocol

from tiny64.kernel.errors import ClockUnavailable


class ClockSource(Protocol):
    """Protocol for clock sources - allows deterministic testing"""

    def now_ms(self) -> int:
        """Return milliseconds since the Unix epoch"""
        ...


class SystemClock:
    """Production clock reading the OS wall clock"""

    def now_ms(self) -> int:
        try:
            now_ns = time.time_ns()
        except OSError as e:
            raise ClockUnavailable(f"System clock read failed: {e}", cause=e) from e

        if now_ns < 0:
            raise ClockUnavailable(f"System clock reports pre-epoch time ({now_ns} ns)")

        return now_ns // 1_000_000


class TestClock:
    """
    Controllable clock for deterministic tests

    Returns a fixed value until moved with `set()` or `advance()`. When
    created with scripted readings, each call consumes the next reading and
    the last reading repeats once the script runs out.
    """

    __test__ = False  # not a pytest test class

    def __init__(self, initial_ms: int = 0, readings: Iterable[int] | None = None) -> None:
        """
        Initialize with an optional fixed time or script of readings

        Args:
            initial_ms: Starting time in epoch milliseconds
            readings: Optional sequence of values returned one per call
        """
        self._current_ms = initial_ms
        self._readings = list(readings) if readings is not None else []
        self.calls = 0

    def now_ms(self) -> int:
        self.calls += 1
        if self._readings:
            self._current_ms = self._readings.pop(0)
        return self._current_ms

    def set(self, now_ms: int) -> None:
        """Set current time to a specific epoch millisecond"""
        self._current_ms = now_ms

    def advance(self, ms: int = 1) -> None:
        """Advance time by the given number of milliseconds"""
        self._current_ms += ms


class FailingClock:
    """Clock that always fails - exercises the ClockUnavailable path"""

    def __init__(self, message: str = "clock offline") -> None:
        self.message = message

    def now_ms(self) -> int:
        raise ClockUnavailable(self.message)
