"""
Tiny64 - Time-ordered compact unique IDs

64-bit identifiers (42-bit millisecond timestamp, 12-bit sequence, 10-bit
random) rendered as 11 URL-safe characters that sort chronologically as
plain strings.

Fun fact: 2^42 milliseconds is a little over 139 years, so the timestamp
field runs out around 2109.
"""

from tiny64.kernel.config import Tiny64Config
from tiny64.kernel.errors import DecodeError, LockTimeout, Tiny64Error
from tiny64.kernel.layout import Tiny64Fields
from tiny64.tiny64 import Tiny64, decode_id, generate_id

__version__ = "0.1.0"
__all__ = [
    "Tiny64",
    "Tiny64Config",
    "Tiny64Fields",
    "Tiny64Error",
    "DecodeError",
    "LockTimeout",
    "generate_id",
    "decode_id",
    "__version__",
]
