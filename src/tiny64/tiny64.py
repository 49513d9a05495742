"""
Tiny64 - Main façade class

The high-level API: generate identifiers, decode them back into fields.
Hides the generator, its lock and its state store behind a few methods.

Example:
    >>> from tiny64 import Tiny64
    >>> ids = Tiny64()
    >>> token = ids.generate()
    >>> fields = ids.decode(token)
    >>> fields.sequence
    0

Cross-process mode:
    >>> ids = Tiny64(Tiny64Config(lock_path="/tmp/tiny64.lock"))
"""

import threading
import time
from collections.abc import Callable

from tiny64.kernel.codec import decode, encode
from tiny64.kernel.config import Tiny64Config
from tiny64.kernel.entropy import EntropySource
from tiny64.kernel.generator import Tiny64Generator
from tiny64.kernel.layout import DEFAULT_LAYOUT, BitLayout, Tiny64Fields
from tiny64.kernel.logging import LogOperation, get_logger
from tiny64.kernel.time import ClockSource

logger = get_logger(__name__)


class Tiny64:
    """
    Tiny64 main façade

    Provides:
    - Generation of 11-character, time-sortable identifiers
    - Decoding of identifiers into timestamp, sequence and random fields
    - Optional cross-process coordination through a lock path
    """

    def __init__(
        self,
        config: Tiny64Config | None = None,
        clock: ClockSource | None = None,
        entropy: EntropySource | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Initialize a Tiny64 generator

        Args:
            config: Configuration (in-memory defaults if None)
            clock: Clock source (system clock if None)
            entropy: Entropy source (OS randomness if None)
            sleep: Sleep used while waiting for the next millisecond
        """
        self.config = config or Tiny64Config()
        self.generator = Tiny64Generator(self.config, clock, entropy, sleep)

    @classmethod
    def from_env(cls, **overrides: object) -> "Tiny64":
        """Build from TINY64_* environment variables"""
        return cls(Tiny64Config.from_env(**overrides))

    @property
    def layout(self) -> BitLayout:
        return self.generator.layout

    # Generation

    def generate(self, timeout: float | None = None) -> str:
        """Generate one identifier"""
        return self.generator.generate(timeout)

    def generate_int(self, timeout: float | None = None) -> int:
        """Generate one identifier as an unsigned 64-bit integer"""
        return self.generator.generate_int(timeout)

    def generate_many(self, count: int, timeout: float | None = None) -> list[str]:
        """
        Generate `count` identifiers in order

        The timeout applies to each identifier, not to the batch.
        """
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")

        with LogOperation(logger, "generate_many", level="debug", count=count):
            return [self.generator.generate(timeout) for _ in range(count)]

    # Decoding

    def decode(self, text: str) -> Tiny64Fields:
        """
        Decode an identifier using this generator's layout

        Raises:
            DecodeError: If text is not a well-formed identifier
        """
        return self.layout.unpack(decode(text))

    def encode_fields(self, timestamp_ms: int, sequence: int, random: int) -> str:
        """Encode explicit field values using this generator's machine id"""
        return encode(
            self.layout.pack(timestamp_ms, sequence, random, self.config.machine_id)
        )


# Module-level convenience API

_default: Tiny64 | None = None
_default_lock = threading.Lock()


def default_tiny64() -> Tiny64:
    """The lazily created, environment-configured process default"""
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                _default = Tiny64.from_env()
    return _default


def generate_id(timeout: float | None = None) -> str:
    """Generate an identifier with the process default generator"""
    return default_tiny64().generate(timeout)


def decode_id(text: str, layout: BitLayout = DEFAULT_LAYOUT) -> Tiny64Fields:
    """
    Decode an identifier into its fields

    Raises:
        DecodeError: If text is not a well-formed identifier
    """
    return layout.unpack(decode(text))
