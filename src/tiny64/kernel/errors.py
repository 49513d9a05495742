"""
Custom exceptions for Tiny64

A small, well-defined error hierarchy so callers can tell a recoverable
condition (lock contention, malformed token) from a fatal one (no clock).

Fun fact: the first computer bug was an actual moth found in a relay of the
Harvard Mark II in 1947. Ours are mostly off-by-one bits.
"""


class Tiny64Error(Exception):
    """Base exception for all Tiny64 errors"""

    pass


# Generation errors


class ClockUnavailable(Tiny64Error):
    """
    Raised when the clock source cannot produce a usable epoch millisecond

    Fatal: a substitute time would silently break ordering guarantees.
    """

    def __init__(self, message: str = "", cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message or "Clock source could not provide the current time")


class LockTimeout(Tiny64Error):
    """
    Raised when cross-process exclusion is not acquired before the deadline

    Recoverable - the caller may retry later.
    """

    def __init__(self, lock_path: str, waited_seconds: float, attempts: int = 0) -> None:
        self.lock_path = lock_path
        self.waited_seconds = waited_seconds
        self.attempts = attempts
        super().__init__(
            f"Could not acquire lock {lock_path} within {waited_seconds:.3f}s "
            f"({attempts} attempts)"
        )


class GenerationTimeout(Tiny64Error):
    """Raised when the sequence-exhaustion stall outlives the caller's deadline"""

    def __init__(self, last_time_ms: int, waited_seconds: float) -> None:
        self.last_time_ms = last_time_ms
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Clock did not advance past {last_time_ms} within {waited_seconds:.3f}s"
        )


class StateFileCorrupted(Tiny64Error):
    """Raised when the shared generator state file cannot be parsed"""

    def __init__(self, state_path: str, detail: str) -> None:
        self.state_path = state_path
        self.detail = detail
        super().__init__(f"Generator state file {state_path} is corrupted: {detail}")


# Layout errors


class LayoutError(Tiny64Error, ValueError):
    """Base class for values that do not fit the 64-bit layout"""

    pass


class TimestampOverflow(LayoutError):
    """Raised when a timestamp needs more than the available timestamp bits"""

    def __init__(self, timestamp_ms: int, max_timestamp_ms: int) -> None:
        self.timestamp_ms = timestamp_ms
        self.max_timestamp_ms = max_timestamp_ms
        super().__init__(
            f"Timestamp {timestamp_ms} exceeds the maximum encodable value "
            f"{max_timestamp_ms}"
        )


class FieldOutOfRange(LayoutError):
    """Raised when sequence, random or machine id fall outside their bit width"""

    def __init__(self, field: str, value: int, maximum: int) -> None:
        self.field = field
        self.value = value
        self.maximum = maximum
        super().__init__(f"Field {field}={value} is outside 0..{maximum}")


# Decode errors


class DecodeError(Tiny64Error, ValueError):
    """
    Raised when a string is not a well-formed Tiny64 token

    Decode errors are local and recoverable; `reason` names the sub-kind.
    """

    reason = "invalid"

    def __init__(self, text: str, message: str) -> None:
        self.text = text
        super().__init__(message)


class InvalidLength(DecodeError):
    """Raised when the token is not exactly 11 characters"""

    reason = "invalid_length"

    def __init__(self, text: str, expected: int) -> None:
        self.expected = expected
        super().__init__(
            text, f"Token {text!r} has length {len(text)}, expected {expected}"
        )


class InvalidAlphabet(DecodeError):
    """Raised when the token contains a character outside the alphabet"""

    reason = "invalid_alphabet"

    def __init__(self, text: str, position: int) -> None:
        self.position = position
        self.character = text[position]
        super().__init__(
            text,
            f"Token {text!r} has invalid character {self.character!r} "
            f"at position {position}",
        )


class InvalidPadding(DecodeError):
    """Raised when the reserved low bits of the last symbol are nonzero"""

    reason = "invalid_padding"

    def __init__(self, text: str) -> None:
        super().__init__(
            text, f"Token {text!r} has nonzero padding bits in its last symbol"
        )
