"""
Bit layout of a Tiny64 identifier

    [ 42 bits: timestamp_ms ][ 12 bits: sequence ][ 10 bits: random ]

Packed most-significant-first into an unsigned 64-bit integer, so numeric
order is chronological order, ties broken by sequence and then random.

The optional machine id is carved out of the top of the random field:

    [ 42 bits: timestamp_ms ][ 12 bits: sequence ][ k bits: machine ][ 10-k bits: random ]

Timestamp and sequence never shrink, so ordering guarantees hold for any k.
"""

from datetime import datetime, timedelta, timezone

from pydantic import BaseModel, Field

from tiny64.kernel.errors import FieldOutOfRange, TimestampOverflow

TIMESTAMP_BITS = 42
SEQUENCE_BITS = 12
RANDOM_BITS = 10

SEQUENCE_SHIFT = RANDOM_BITS
TIMESTAMP_SHIFT = SEQUENCE_BITS + RANDOM_BITS

MAX_TIMESTAMP_MS = (1 << TIMESTAMP_BITS) - 1
MAX_SEQUENCE = (1 << SEQUENCE_BITS) - 1
MAX_RANDOM = (1 << RANDOM_BITS) - 1
MAX_VALUE = (1 << 64) - 1

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Tiny64Fields(BaseModel):
    """Logical fields of a decoded identifier"""

    value: int = Field(..., ge=0, le=MAX_VALUE, description="Packed 64-bit value")
    timestamp_ms: int = Field(
        ..., ge=0, le=MAX_TIMESTAMP_MS, description="Milliseconds since Unix epoch"
    )
    sequence: int = Field(..., ge=0, le=MAX_SEQUENCE, description="Same-millisecond counter")
    random: int = Field(..., ge=0, le=MAX_RANDOM, description="Entropy bits")
    machine_id: int | None = Field(
        default=None,
        ge=0,
        le=MAX_RANDOM,
        description="Machine id when the layout reserves machine bits",
    )

    model_config = {"frozen": True}

    @property
    def timestamp(self) -> datetime:
        """Timestamp as an aware UTC datetime"""
        return EPOCH + timedelta(milliseconds=self.timestamp_ms)

    def sort_key(self) -> tuple[int, int]:
        """The (timestamp_ms, sequence) pair that ordering guarantees cover"""
        return (self.timestamp_ms, self.sequence)


class BitLayout(BaseModel):
    """
    Field widths for packing and unpacking

    `machine_id_bits` is the distributed-disambiguation extension point: it
    reserves that many bits of the random field for a fixed machine id.
    """

    machine_id_bits: int = Field(
        default=0,
        ge=0,
        le=RANDOM_BITS,
        description="Bits of the random field reserved for a machine id",
    )

    model_config = {"frozen": True}

    @property
    def random_bits(self) -> int:
        """Entropy bits left after the machine id"""
        return RANDOM_BITS - self.machine_id_bits

    @property
    def max_machine_id(self) -> int:
        return (1 << self.machine_id_bits) - 1

    def pack(
        self,
        timestamp_ms: int,
        sequence: int,
        random: int,
        machine_id: int = 0,
    ) -> int:
        """
        Assemble the 64-bit value

        Raises:
            TimestampOverflow: If the timestamp needs more than 42 bits
            FieldOutOfRange: If any other field does not fit its width
        """
        if timestamp_ms < 0:
            raise FieldOutOfRange("timestamp_ms", timestamp_ms, MAX_TIMESTAMP_MS)
        if timestamp_ms > MAX_TIMESTAMP_MS:
            raise TimestampOverflow(timestamp_ms, MAX_TIMESTAMP_MS)
        if not 0 <= sequence <= MAX_SEQUENCE:
            raise FieldOutOfRange("sequence", sequence, MAX_SEQUENCE)

        max_random = (1 << self.random_bits) - 1
        if not 0 <= random <= max_random:
            raise FieldOutOfRange("random", random, max_random)
        if not 0 <= machine_id <= self.max_machine_id:
            raise FieldOutOfRange("machine_id", machine_id, self.max_machine_id)

        low = (machine_id << self.random_bits) | random
        return (timestamp_ms << TIMESTAMP_SHIFT) | (sequence << SEQUENCE_SHIFT) | low

    def unpack(self, value: int) -> Tiny64Fields:
        """Split a 64-bit value into its logical fields"""
        if not 0 <= value <= MAX_VALUE:
            raise FieldOutOfRange("value", value, MAX_VALUE)

        low = value & MAX_RANDOM
        machine_id = None
        random = low
        if self.machine_id_bits:
            machine_id = low >> self.random_bits
            random = low & ((1 << self.random_bits) - 1)

        return Tiny64Fields(
            value=value,
            timestamp_ms=value >> TIMESTAMP_SHIFT,
            sequence=(value >> SEQUENCE_SHIFT) & MAX_SEQUENCE,
            random=random,
            machine_id=machine_id,
        )


DEFAULT_LAYOUT = BitLayout()


def pack(timestamp_ms: int, sequence: int, random: int) -> int:
    """Pack the three base fields with the default layout"""
    return DEFAULT_LAYOUT.pack(timestamp_ms, sequence, random)


def unpack(value: int) -> Tiny64Fields:
    """Unpack a value with the default layout"""
    return DEFAULT_LAYOUT.unpack(value)
