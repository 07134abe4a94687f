"""
Small byte/record helpers shared across metalib modules.

These helpers are intentionally low-level and format-structural: bounds-checked
fixed-layout reads, inline fixed-width text, and out-of-line NUL-terminated
text reached through a body offset.

Every helper takes an explicit offset and never keeps a cursor, so an
out-of-line read cannot disturb the caller's position in a sequential table
walk.

If you need whole records (macros, metas, entries), use
`mldec.api.metalib.decoder`.
"""

from __future__ import annotations

import struct
from typing import Tuple

from ..errors import BufferTruncatedError

# 32-bit "absent" marker used by every record type in the format.
INVALID_OFFSET = -1

DEFAULT_TEXT_ENCODING = "gbk"
MAX_STRING_SIZE = 4 * 1024 * 1024


def require(buf: bytes, off: int, length: int, what: str) -> None:
    """Raise `BufferTruncatedError` unless `buf[off:off+length]` is fully in range."""
    if off < 0 or length < 0 or off + length > len(buf):
        available = max(0, len(buf) - off) if off >= 0 else 0
        raise BufferTruncatedError(what, off, length, available)


def unpack_at(layout: struct.Struct, buf: bytes, off: int, what: str) -> Tuple:
    """`layout.unpack_from` with a bounds check that names the record being read."""
    require(buf, off, layout.size, what)
    return layout.unpack_from(buf, off)


def i32_array(buf: bytes, off: int, count: int, what: str) -> Tuple[int, ...]:
    """Read `count` little-endian i32 values starting at `off`."""
    if count <= 0:
        return ()
    return unpack_at(struct.Struct(f"<{count}i"), buf, off, what)


def read_fixed_width_text(buf: bytes, off: int, length: int, what: str = "fixed-width text") -> str:
    """
    Decode a fixed-width inline text field.

    The field is truncated at its first NUL byte; bytes after it are padding
    and are ignored. Invalid UTF-8 is replaced rather than rejected.
    """
    require(buf, off, length, what)
    raw = buf[off : off + length]
    end = raw.find(b"\x00")
    if end != -1:
        raw = raw[:end]
    return raw.decode("utf-8", errors="replace")


def read_cstring_at(buf: bytes, off: int, *, max_size: int = MAX_STRING_SIZE, what: str = "string") -> bytes:
    """Return the bytes from `off` up to (not including) the next NUL byte."""
    require(buf, off, 1, what)
    end = buf.find(b"\x00", off, off + max_size)
    if end == -1:
        if off + max_size <= len(buf):
            raise BufferTruncatedError(f"{what} (no terminator within {max_size} bytes)", off, max_size, max_size)
        raise BufferTruncatedError(f"{what} (unterminated)", off, len(buf) - off + 1, len(buf) - off)
    return buf[off:end]


def read_wide_cstring_at(buf: bytes, off: int, *, max_size: int = MAX_STRING_SIZE, what: str = "wide string") -> str:
    """Decode a UTF-16LE run ending at the first 2-byte NUL unit."""
    units = bytearray()
    pos = off
    while True:
        require(buf, pos, 2, what)
        unit = buf[pos : pos + 2]
        if unit == b"\x00\x00":
            break
        units += unit
        pos += 2
        if len(units) >= max_size:
            raise BufferTruncatedError(f"{what} (no terminator within {max_size} bytes)", off, max_size, max_size)
    return units.decode("utf-16-le", errors="replace")


def read_text_at(
    buf: bytes,
    ptr: int,
    *,
    encoding: str = DEFAULT_TEXT_ENCODING,
    max_size: int = MAX_STRING_SIZE,
    what: str = "string",
) -> str:
    """
    Decode an out-of-line NUL-terminated text field reached by a body offset.

    `ptr == -1` is the format's "no string" marker and yields `""`. Any other
    offset must land inside `buf`.
    """
    if ptr == INVALID_OFFSET:
        return ""
    return read_cstring_at(buf, ptr, max_size=max_size, what=what).decode(encoding, errors="replace")
