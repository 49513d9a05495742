"""
Kernel - identifier generation machinery

Bit layout, codec, sequence state machine, cross-process locking and the
generator that wires them together.
"""

from tiny64.kernel.codec import ALPHABET, ENCODED_LENGTH, decode, encode
from tiny64.kernel.config import Tiny64Config
from tiny64.kernel.entropy import EntropySource, FixedEntropy, ScriptedEntropy, SystemEntropy
from tiny64.kernel.errors import (
    ClockUnavailable,
    DecodeError,
    FieldOutOfRange,
    GenerationTimeout,
    InvalidAlphabet,
    InvalidLength,
    InvalidPadding,
    LayoutError,
    LockTimeout,
    StateFileCorrupted,
    Tiny64Error,
    TimestampOverflow,
)
from tiny64.kernel.generator import Tiny64Generator
from tiny64.kernel.layout import BitLayout, Tiny64Fields
from tiny64.kernel.sequence import GeneratorState, SequenceStateMachine
from tiny64.kernel.time import ClockSource, SystemClock, TestClock

__all__ = [
    # Codec & layout
    "ALPHABET",
    "ENCODED_LENGTH",
    "encode",
    "decode",
    "BitLayout",
    "Tiny64Fields",
    # Generation
    "Tiny64Config",
    "Tiny64Generator",
    "GeneratorState",
    "SequenceStateMachine",
    # Collaborators
    "ClockSource",
    "SystemClock",
    "TestClock",
    "EntropySource",
    "SystemEntropy",
    "FixedEntropy",
    "ScriptedEntropy",
    # Errors
    "Tiny64Error",
    "ClockUnavailable",
    "LockTimeout",
    "GenerationTimeout",
    "StateFileCorrupted",
    "LayoutError",
    "TimestampOverflow",
    "FieldOutOfRange",
    "DecodeError",
    "InvalidLength",
    "InvalidAlphabet",
    "InvalidPadding",
]
