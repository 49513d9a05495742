"""
Tests for the text codec

Verifies:
- 11-character output over the ASCII-ordered URL-safe alphabet
- Known vectors produced by the command-line tool
- Lexical order of tokens equals numeric order of values
- Rejection of bad length, foreign characters and nonzero padding bits
"""

import random

import pytest

from tiny64.kernel.codec import (
    ALPHABET,
    ENCODED_LENGTH,
    decode,
    encode,
    from_bytes,
    is_valid,
    to_bytes,
)
from tiny64.kernel.errors import DecodeError, InvalidAlphabet, InvalidLength, InvalidPadding
from tiny64.kernel.layout import MAX_VALUE, pack, unpack
from tiny64.kernel.metrics import decode_errors_total

# Consecutive IDs printed by the CLI within one millisecond
CLI_SAMPLES = [
    ("Obrl8O3--Cw", 0, 223),
    ("Obrl8O3-0QB", 1, 435),
    ("Obrl8O3-19o", 2, 173),
    ("Obrl8O3-2Pw", 3, 431),
    ("Obrl8O3-3g3", 4, 705),
]
CLI_SAMPLE_TIMESTAMP_MS = 1_760_798_479_940


def test_alphabet_is_sorted_and_url_safe() -> None:
    """Alphabet must be in ASCII order for lexical sorting to work"""
    assert len(ALPHABET) == 64
    assert len(set(ALPHABET)) == 64
    assert list(ALPHABET) == sorted(ALPHABET)
    assert all(c.isascii() and (c.isalnum() or c in "-_") for c in ALPHABET)


def test_encode_extremes() -> None:
    assert encode(0) == "-" * 11
    assert encode(1) == "----------3"
    assert encode(MAX_VALUE) == "zzzzzzzzzzw"


def test_encode_always_11_characters() -> None:
    for value in (0, 1, 0x123456789ABCDEF0, MAX_VALUE):
        assert len(encode(value)) == ENCODED_LENGTH


def test_encode_rejects_out_of_range() -> None:
    with pytest.raises(ValueError):
        encode(-1)
    with pytest.raises(ValueError):
        encode(MAX_VALUE + 1)


@pytest.mark.parametrize("token,sequence,rand", CLI_SAMPLES)
def test_cli_samples_decode(token: str, sequence: int, rand: int) -> None:
    """Known tokens decode to one timestamp and increasing sequences"""
    fields = unpack(decode(token))

    assert fields.timestamp_ms == CLI_SAMPLE_TIMESTAMP_MS
    assert fields.sequence == sequence
    assert fields.random == rand


def test_cli_sample_encodes_back() -> None:
    assert encode(pack(CLI_SAMPLE_TIMESTAMP_MS, 0, 223)) == "Obrl8O3--Cw"


def test_round_trip_law() -> None:
    """decode(encode(v)) == v over a spread of values"""
    rng = random.Random(64)
    values = [0, 1, MAX_VALUE, 1 << 63, (1 << 63) - 1]
    values += [rng.getrandbits(64) for _ in range(500)]

    for value in values:
        assert decode(encode(value)) == value


def test_lexical_order_matches_numeric_order() -> None:
    rng = random.Random(11)
    values = [rng.getrandbits(64) for _ in range(1000)]
    # Include near neighbours so single-bit differences are compared too
    values += [v + 1 for v in values[:100] if v < MAX_VALUE]

    by_value = sorted(values)
    by_token = sorted(values, key=encode)

    assert by_token == by_value


def test_last_symbol_padding_bits_always_zero() -> None:
    rng = random.Random(3)
    for _ in range(200):
        token = encode(rng.getrandbits(64))
        assert ALPHABET.index(token[-1]) & 0b11 == 0


@pytest.mark.parametrize("token", ["", "Obrl8O3--C", "Obrl8O3--Cw-", "x" * 22])
def test_decode_rejects_bad_length(token: str) -> None:
    with pytest.raises(InvalidLength) as exc_info:
        decode(token)
    assert exc_info.value.reason == "invalid_length"
    assert exc_info.value.expected == 11


@pytest.mark.parametrize("token,position", [
    ("Obrl8O3--C=", 10),
    ("+brl8O3--Cw", 0),
    ("Obrl8O3 -Cw", 7),
    ("Obrl8O3/-Cw", 7),
    ("Obrl8O3é-Cw", 7),
])
def test_decode_rejects_foreign_characters(token: str, position: int) -> None:
    with pytest.raises(InvalidAlphabet) as exc_info:
        decode(token)
    assert exc_info.value.position == position


@pytest.mark.parametrize("last", ["0", "1", "2", "x", "z"])
def test_decode_rejects_nonzero_padding(last: str) -> None:
    """Symbols whose two low bits are set can never be produced by encode"""
    token = "Obrl8O3--C" + last
    assert ALPHABET.index(last) & 0b11 != 0

    with pytest.raises(InvalidPadding):
        decode(token)


def test_decode_errors_are_value_errors() -> None:
    """Callers using plain ValueError handling still catch decode failures"""
    with pytest.raises(ValueError):
        decode("nope")
    assert issubclass(DecodeError, ValueError)


def test_decode_errors_are_counted_by_reason() -> None:
    before = decode_errors_total.labels(reason="invalid_padding")._value.get()

    with pytest.raises(InvalidPadding):
        decode("----------1")

    after = decode_errors_total.labels(reason="invalid_padding")._value.get()
    assert after == before + 1


def test_is_valid() -> None:
    assert is_valid("Obrl8O3--Cw")
    assert not is_valid("Obrl8O3--Cx")
    assert not is_valid("short")


def test_binary_form_is_big_endian() -> None:
    assert to_bytes(0x0102030405060708) == bytes([1, 2, 3, 4, 5, 6, 7, 8])
    assert from_bytes(bytes([1, 2, 3, 4, 5, 6, 7, 8])) == 0x0102030405060708

    with pytest.raises(ValueError):
        from_bytes(b"\x00" * 7)
