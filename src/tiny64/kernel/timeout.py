"""
Deadlines for the two blocking points of generation.

Lock acquisition and the sequence-exhaustion stall both take a Deadline so
a caller-supplied timeout bounds the whole generate() call, not each step.
Deadlines use the monotonic clock; wall-clock jumps cannot stretch them.
"""

import time
from collections.abc import Callable

# ============================================================================
# Common Timeout Values
# ============================================================================

LOCK_TIMEOUT = 10.0  # seconds
GENERATION_TIMEOUT = 5.0  # seconds
STALE_LOCK_AFTER = 30.0  # seconds


class Deadline:
    """
    Absolute point in monotonic time after which blocking work must stop

    Example:
        deadline = Deadline.after(2.0)
        while not deadline.expired():
            ...
    """

    def __init__(
        self,
        expires_at: float,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.expires_at = expires_at
        self._monotonic = monotonic

    @classmethod
    def after(
        cls,
        seconds: float,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> "Deadline":
        """Deadline `seconds` from now"""
        return cls(monotonic() + seconds, monotonic)

    def remaining(self) -> float:
        """Seconds left, never negative"""
        return max(0.0, self.expires_at - self._monotonic())

    def expired(self) -> bool:
        return self._monotonic() >= self.expires_at

    def earliest(self, other: "Deadline | None") -> "Deadline":
        """The tighter of this deadline and another"""
        if other is None or self.expires_at <= other.expires_at:
            return self
        return other

    def __repr__(self) -> str:
        return f"Deadline(remaining={self.remaining():.3f}s)"


def resolve_deadline(timeout: float | None, default: float) -> Deadline:
    """Turn an optional per-call timeout into a Deadline"""
    return Deadline.after(default if timeout is None else timeout)
