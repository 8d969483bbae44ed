"""Conversions between integers and the 16-bit hex words used on the wire.

Every device field is defined as an inclusive bit range of a 16-bit word
transmitted as unpadded hexadecimal text, bit 0 being the least significant.
"""

from __future__ import annotations

import re

from .const import WORD_MAX

_HEX_RE = re.compile(r"[0-9A-Fa-f]+")
_HEX_TOKEN_RE = re.compile(r"[0-9A-Fa-f]{1,4}")

SIGNED_MIN = -0x8000
WORD_BITS = 16


class RangeError(ValueError):
    """Raised when a value cannot be represented as a 16-bit word."""


def _is_integer(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def dec_to_hex(value: int) -> str:
    """Encode an unsigned integer in [0, 65535] as lowercase hex.

    Args:
        value: Integer to encode.

    Returns:
        Hex text without padding, e.g. ``"0"`` or ``"ffff"``.

    Raises:
        RangeError: If value is not an integer or out of range.

    """
    if not _is_integer(value) or not 0 <= value <= WORD_MAX:
        msg = f"Value must be a positive integer and less than {WORD_MAX + 1}"
        raise RangeError(msg)
    return f"{value:x}"


def dec_to_hex_sign(value: int) -> str:
    """Encode a signed integer as a two's-complement 16-bit word.

    Raises:
        RangeError: If value is not an integer in [-32768, 65535].

    """
    if not _is_integer(value) or not SIGNED_MIN <= value <= WORD_MAX:
        msg = f"Value must be an integer between {SIGNED_MIN} and {WORD_MAX}"
        raise RangeError(msg)
    return f"{value & WORD_MAX:x}"


def hex_to_dec(text: str) -> int | None:
    """Decode hex text to an unsigned integer, or None if malformed.

    Only hex digits are accepted; signs, blanks, underscores and a ``0x``
    prefix make the text malformed.
    """
    if not isinstance(text, str) or _HEX_RE.fullmatch(text) is None:
        return None
    return int(text, 16)


def hex_to_dec_sign(text: str) -> int | None:
    """Decode hex text as a 16-bit two's-complement integer, or None."""
    value = hex_to_dec(text)
    if value is None:
        return None
    return to_signed(value & WORD_MAX, WORD_BITS)


def to_signed(value: int, bits: int) -> int:
    """Interpret the low ``bits`` bits of value as two's complement."""
    sign_bit = 1 << (bits - 1)
    if value & sign_bit:
        return value - (1 << bits)
    return value


def extract_bits(word: str, from_bit: int, to_bit: int | None = None) -> int:
    """Extract an inclusive bit range from a 16-bit hex word.

    ``extract_bits("1f4c", 8, 15)`` is 31 and ``extract_bits("1f4c", 9)``
    is 1.

    Args:
        word: The word as hex text.
        from_bit: Lowest bit of the range, 0 is the least significant.
        to_bit: Highest bit of the range; defaults to ``from_bit``.

    Raises:
        ValueError: If the word is not hex or the range is not within 0..15.

    """
    if to_bit is None:
        to_bit = from_bit
    if not 0 <= from_bit <= to_bit < WORD_BITS:
        msg = f"Invalid bit range {from_bit}..{to_bit}"
        raise ValueError(msg)
    value = hex_to_dec(word)
    if value is None:
        msg = f"Not a hex word: {word!r}"
        raise ValueError(msg)
    width = to_bit - from_bit + 1
    return (value >> from_bit) & ((1 << width) - 1)


def is_hex_token(text: str) -> bool:
    """Return True if text is 1 to 4 hexadecimal characters."""
    return isinstance(text, str) and _HEX_TOKEN_RE.fullmatch(text) is not None
