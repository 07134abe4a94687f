"""
Metalib ingestion helpers.

This module defines the *slice contract* for compiled TDR metalib blobs:
- Parse the fixed 0x114-byte header found at the start of the blob.
- Slice the body (everything after the header, up to the header's total size).
- Expose each section's body-relative offset and record count.

Why this is separate from the decoder:
- The header is the only part of the format with a fixed, flat layout; it is
  useful on its own (quick inspection, sanity checks on an offset guess inside
  a larger executable) without decoding any record.
- The decoder consumes `Header` + body bytes and never re-reads the header.

Offsets:
- Every section offset in the header is relative to the *body* start, i.e. the
  first byte after the header. Identity offsets (macros, metas, groups) and
  string pointers elsewhere in the format use the same body-relative space.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from .._shared.bytes_util import read_fixed_width_text, unpack_at
from ..errors import BufferTruncatedError

# Serialized size of the header.
METALIB_HEADER_SIZE = 0x114
METALIB_NAME_LEN = 128

_HEADER = struct.Struct(
    "<HHI"  # magic, build, platform_arch
    "IIIII"  # size, field_c, field_10, field_14, field_18
    "iII"  # id, xml_tag_set_ver, field_24
    "6i"  # max/cur meta, max/cur macro, max/cur macros group
    "3I"  # field_40, field_44, version
    "6I"  # ptr_macro, ptr_id, ptr_name, ptr_map, ptr_meta, ptr_last_meta
    "i4I"  # free_str_buf_size, ptr_str_buf, ptr_free_str_buf, ptr_macro_group_map, ptr_macros_group
    "IiiIIii"  # field_78 .. field_90
)
assert _HEADER.size + METALIB_NAME_LEN == METALIB_HEADER_SIZE


@dataclass(frozen=True)
class MetalibBlob:
    """Raw bytes holding a metalib, plus a human-friendly source label (for logs/errors)."""

    bytes: bytes
    source: str

    @classmethod
    def from_path(cls, path: Path, source: str | None = None) -> "MetalibBlob":
        return cls(bytes=Path(path).read_bytes(), source=source or str(path))


@dataclass(frozen=True)
class Header:
    """
    Decoded metalib header.

    `field_*` members are words whose meaning is not known; they are kept
    verbatim so a dump can show them.
    """

    magic: int
    build: int
    platform_arch: int
    size: int
    field_c: int
    field_10: int
    field_14: int
    field_18: int
    id: int
    xml_tag_set_ver: int
    field_24: int
    max_meta_num: int
    cur_meta_num: int
    max_macro_num: int
    cur_macro_num: int
    max_macros_group_num: int
    cur_macros_group_num: int
    field_40: int
    field_44: int
    version: int
    ptr_macro: int
    ptr_id: int
    ptr_name: int
    ptr_map: int
    ptr_meta: int
    ptr_last_meta: int
    free_str_buf_size: int
    ptr_str_buf: int
    ptr_free_str_buf: int
    ptr_macro_group_map: int
    ptr_macros_group: int
    field_78: int
    field_7c: int
    field_80: int
    field_84: int
    field_88: int
    field_8c: int
    field_90: int
    name: str

    @property
    def body_size(self) -> int:
        return self.size - METALIB_HEADER_SIZE

    def to_dict(self) -> Dict[str, object]:
        return dict(self.__dict__)


@dataclass(frozen=True)
class SectionOffsets:
    """Body-relative `(offset, count)` for each of the six decoded sections."""

    macros: tuple[int, int]
    ids: tuple[int, int]
    names: tuple[int, int]
    meta_map: tuple[int, int]
    metas: tuple[int, int]
    macro_groups: tuple[int, int]

    def to_dict(self) -> Dict[str, Dict[str, int]]:
        return {k: {"offset": v[0], "count": v[1]} for k, v in self.__dict__.items()}


def parse_header(blob: MetalibBlob, offset: int = 0) -> Header:
    """
    Parse the fixed-size header starting at `offset` inside `blob`.

    `offset` lets callers point at a metalib embedded in a larger file (for
    example a game executable's data segment).
    """
    data = blob.bytes
    fields = unpack_at(_HEADER, data, offset, f"metalib header ({blob.source})")
    name = read_fixed_width_text(data, offset + _HEADER.size, METALIB_NAME_LEN, "metalib name")
    return Header(*fields, name=name)


def section_offsets(header: Header) -> SectionOffsets:
    """Return where each section lives in the body, and how many records it holds."""
    return SectionOffsets(
        macros=(header.ptr_macro, header.cur_macro_num),
        ids=(header.ptr_id, header.cur_meta_num),
        names=(header.ptr_name, header.cur_meta_num),
        meta_map=(header.ptr_map, header.cur_meta_num),
        metas=(header.ptr_meta, header.cur_meta_num),
        macro_groups=(header.ptr_macros_group, header.cur_macros_group_num),
    )


def slice_body(blob: MetalibBlob, header: Header, offset: int = 0) -> bytes:
    """
    Return the body bytes: `header.size - 0x114` bytes right after the header.

    A blob shorter than the header claims is a hard failure; bytes past the
    end of the metalib (common when it is embedded in a bigger file) are
    ignored.
    """
    start = offset + METALIB_HEADER_SIZE
    if header.size < METALIB_HEADER_SIZE:
        raise BufferTruncatedError(f"metalib body ({blob.source})", start, header.size - METALIB_HEADER_SIZE, 0)
    end = offset + header.size
    if end > len(blob.bytes):
        raise BufferTruncatedError(
            f"metalib body ({blob.source})", start, header.body_size, max(0, len(blob.bytes) - start)
        )
    return blob.bytes[start:end]
