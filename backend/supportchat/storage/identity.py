"""
Numeric ids for records whose native key is an opaque hex string.

The durable store keys rows by a random 128-bit hex string. The rest of the
system works with plain integers, so every row also carries a numeric id
derived from the leading 32 bits of its native key:

    derive_numeric_id("5f2b9c01...") == 0x5F2B9C01

The derived id is stable for the life of the row. It is NOT collision free:
with n rows in a 2**32 space the chance of any collision is roughly
1 - exp(-n**2 / 2**33): about 1% at 9,300 rows and 50% at 77,000. The store
checks for an existing row before inserting and draws a fresh native key on
a clash, which keeps ids unique at moderate record counts.
"""

import math
import string
import uuid

NUMERIC_ID_HEX_DIGITS = 8
NUMERIC_ID_SPACE = 16 ** NUMERIC_ID_HEX_DIGITS

_HEX_DIGITS = frozenset(string.hexdigits)


def new_native_id() -> str:
    """A fresh random native key (32 lowercase hex digits)."""
    return uuid.uuid4().hex


def derive_numeric_id(native_id: str) -> int:
    """
    Map a hex native key to an integer in [0, 2**32).

    Raises ValueError for keys shorter than 8 digits or not in hex.
    """
    prefix = native_id[:NUMERIC_ID_HEX_DIGITS]
    if len(prefix) < NUMERIC_ID_HEX_DIGITS or not set(prefix) <= _HEX_DIGITS:
        raise ValueError(f"Not a hex native id: {native_id!r}")
    return int(prefix, 16)


def collision_probability(record_count: int) -> float:
    """Birthday-bound estimate of at least one derived-id collision."""
    if record_count < 2:
        return 0.0
    pairs = record_count * (record_count - 1) / 2
    return 1.0 - math.exp(-pairs / NUMERIC_ID_SPACE)


def is_numeric_id(value: int) -> bool:
    """True if value can be a derived id at all."""
    return 0 <= value < NUMERIC_ID_SPACE
