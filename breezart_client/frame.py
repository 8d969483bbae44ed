"""Builder and parser for the underscore-delimited wire frames.

Frame layout::

    request:  <command>_<password hex>[_<data hex>]
    reply:    <prefix>_<hex word>_<hex word>...
              OK_<echoed command>_<hex value>
              <error prefix>[_<details>]

The controller sometimes emits a doubled delimiter, which produces an empty
field. Empty fields are dropped so that they never shift field indices.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .const import DELIMITER, ResponsePrefix
from .hexcodec import dec_to_hex

_LINE_BREAK_RE = re.compile(r"[\r\n]+")
_REPLY_PREFIX_RE = re.compile(r"V[0-9A-Za-z]{4}")


@dataclass(frozen=True)
class Frame:
    """A received line split into fields."""

    raw: str
    fields: tuple[str, ...]

    @property
    def prefix(self) -> str:
        """Return the leading field, or an empty string."""
        return self.fields[0] if self.fields else ""

    @property
    def words(self) -> tuple[str, ...]:
        """Return the fields following the prefix."""
        return self.fields[1:]


def build_request(command: str, password: int, data: int | None = None) -> str:
    """Build a request frame.

    Args:
        command: Five character command prefix, e.g. ``"VSt07"``.
        password: Numeric password 0..65535.
        data: Optional unsigned data value.

    Returns:
        The frame text without a line terminator, e.g. ``"VSt07_ffff"``.

    Raises:
        RangeError: If password or data cannot be encoded as a word.

    """
    parts = [command, dec_to_hex(password)]
    if data is not None:
        parts.append(dec_to_hex(data))
    return DELIMITER.join(parts)


def split_frame(line: str) -> list[str]:
    """Split a received line into its non-empty fields."""
    stripped = line.rstrip("\r\n")
    return [field for field in stripped.split(DELIMITER) if field]


def parse_frame(line: str) -> Frame:
    """Parse a received line into a Frame."""
    stripped = line.rstrip("\r\n")
    return Frame(raw=stripped, fields=tuple(split_frame(stripped)))


def split_lines(chunk: str) -> list[str]:
    """Split a received chunk into non-empty lines."""
    return [line.strip() for line in _LINE_BREAK_RE.split(chunk) if line.strip()]


def looks_like_reply(line: str) -> bool:
    """Return True if the line starts with a device reply prefix.

    Telnet banners and shell prompts such as ``/ #`` are not replies.
    """
    fields = split_frame(line)
    if not fields:
        return False
    prefix = fields[0]
    return prefix == ResponsePrefix.OK or _REPLY_PREFIX_RE.fullmatch(prefix) is not None
