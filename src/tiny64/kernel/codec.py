"""
Binary-to-text codec for Tiny64 identifiers

The 64-bit value is read as 8 big-endian bytes, zero-extended by two low bits
to 66 bits and cut into 11 six-bit symbols. No padding characters are
emitted; the last symbol always carries `00` in its two low bits.

The URL-safe alphabet is laid out in ASCII order, so comparing two encoded
strings byte by byte gives the same answer as comparing their values.
"""

from tiny64.kernel.errors import InvalidAlphabet, InvalidLength, InvalidPadding
from tiny64.kernel.layout import MAX_VALUE
from tiny64.kernel.metrics import decode_errors_total

ALPHABET = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"
ENCODED_LENGTH = 11
PADDING_BITS = 2

_SYMBOL_BITS = 6
_SYMBOL_MASK = (1 << _SYMBOL_BITS) - 1
_PADDING_MASK = (1 << PADDING_BITS) - 1
_DECODE_MAP = {char: index for index, char in enumerate(ALPHABET)}


def encode(value: int) -> str:
    """
    Encode a 64-bit unsigned value as an 11-character token

    Args:
        value: Integer in [0, 2**64 - 1]

    Returns:
        Token such as "Obrl8O3--Cw"

    Raises:
        ValueError: If value does not fit in 64 unsigned bits
    """
    if not 0 <= value <= MAX_VALUE:
        raise ValueError(f"Value {value} does not fit in 64 unsigned bits")

    # 64 value bits plus two zero bits = 66 bits = 11 symbols
    bits = value << PADDING_BITS

    chars = []
    for shift in range((ENCODED_LENGTH - 1) * _SYMBOL_BITS, -1, -_SYMBOL_BITS):
        chars.append(ALPHABET[(bits >> shift) & _SYMBOL_MASK])
    return "".join(chars)


def decode(text: str) -> int:
    """
    Decode an 11-character token back to its 64-bit value

    Raises:
        InvalidLength: If the token is not 11 characters long
        InvalidAlphabet: If a character is outside the alphabet
        InvalidPadding: If the last symbol's two low bits are nonzero
    """
    try:
        return _decode(text)
    except (InvalidLength, InvalidAlphabet, InvalidPadding) as e:
        decode_errors_total.labels(reason=e.reason).inc()
        raise


def _decode(text: str) -> int:
    if len(text) != ENCODED_LENGTH:
        raise InvalidLength(text, ENCODED_LENGTH)

    bits = 0
    for position, char in enumerate(text):
        symbol = _DECODE_MAP.get(char)
        if symbol is None:
            raise InvalidAlphabet(text, position)
        bits = (bits << _SYMBOL_BITS) | symbol

    if bits & _PADDING_MASK:
        raise InvalidPadding(text)

    return bits >> PADDING_BITS


def is_valid(text: str) -> bool:
    """True if text decodes cleanly (does not count towards decode metrics)"""
    try:
        _decode(text)
    except (InvalidLength, InvalidAlphabet, InvalidPadding):
        return False
    return True


def to_bytes(value: int) -> bytes:
    """The 8-byte big-endian binary form"""
    return value.to_bytes(8, "big")


def from_bytes(data: bytes) -> int:
    """Inverse of `to_bytes`; requires exactly 8 bytes"""
    if len(data) != 8:
        raise ValueError(f"Expected 8 bytes, got {len(data)}")
    return int.from_bytes(data, "big")
