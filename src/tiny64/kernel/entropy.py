"""
Entropy sources for the random field

The random field only has to keep independent generators apart within the
same millisecond and sequence slot; it is not a secrecy guarantee.

`secrets` draws from the OS on every call, so forked workers never share a
seeded PRNG state and never replay the same random values.
"""

import secrets
from collections.abc import Iterable
from typing import Protocol


class EntropySource(Protocol):
    """Protocol for entropy strategies"""

    def random_bits(self, bits: int) -> int:
        """Return a uniformly distributed integer in [0, 2**bits)"""
        ...


class SystemEntropy:
    """Default entropy source backed by the OS random generator"""

    def random_bits(self, bits: int) -> int:
        if bits <= 0:
            return 0
        return secrets.randbits(bits)


class FixedEntropy:
    """Always returns the same value (masked to the requested width)"""

    def __init__(self, value: int = 0) -> None:
        self.value = value

    def random_bits(self, bits: int) -> int:
        return self.value & ((1 << bits) - 1) if bits > 0 else 0


class ScriptedEntropy:
    """Returns values from a script, cycling when it runs out"""

    def __init__(self, values: Iterable[int]) -> None:
        self.values = list(values)
        if not self.values:
            raise ValueError("ScriptedEntropy needs at least one value")
        self._index = 0

    def random_bits(self, bits: int) -> int:
        value = self.values[self._index % len(self.values)]
        self._index += 1
        return value & ((1 << bits) - 1) if bits > 0 else 0
