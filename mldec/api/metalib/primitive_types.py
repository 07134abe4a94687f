"""
Static primitive type catalogue for compiled TDR metalibs.

Two related, but different, lookups live here:

- `MetaPrimitiveType`: the *kind* tag stored in a meta / entry record
  (`-1..23`). It says what a value is (int, string, struct, ...).
- `PRIMITIVE_TYPE_INFO`: the type table addressed by an entry's `idx_type`.
  Several rows share a kind (`int32` and `int` are both INT) but keep their
  own XML spelling, so the row index is what the XML `type` attribute needs.

This module is pure data: no decoding, no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Tuple

from .errors import UnknownTypeTagError


class MetaPrimitiveType(IntEnum):
    UNKNOWN = -1
    UNION = 0
    STRUCT = 1
    CHAR = 2  # i8
    UCHAR = 3  # u8
    BYTE = 4  # u8
    SHORT = 5  # i16
    USHORT = 6  # u16
    INT = 7  # i32
    UINT = 8  # u32
    LONG = 9  # i32
    ULONG = 10  # u32
    LONGLONG = 11  # i64
    ULONGLONG = 12  # u64
    DATE = 13
    TIME = 14
    DATETIME = 15
    MONEY = 16
    FLOAT = 17  # f32
    DOUBLE = 18  # f64
    IP = 19
    WCHAR = 20  # u16
    STRING = 21  # char[]
    WSTRING = 22  # wchar_t[]
    VOID = 23


@dataclass(frozen=True)
class TypeInfo:
    """One row of the type table: XML spelling, C spelling, kind and native size."""

    xml_name: str
    c_name: str
    kind: MetaPrimitiveType
    size: int


_T = MetaPrimitiveType

# Row order is the on-disk `idx_type` numbering; do not reorder.
PRIMITIVE_TYPE_INFO: Tuple[TypeInfo, ...] = (
    TypeInfo("union", "union", _T.UNION, 0),
    TypeInfo("struct", "struct", _T.STRUCT, 0),
    TypeInfo("tinyint", "int8_t", _T.CHAR, 1),
    TypeInfo("tinyuint", "uint8_t", _T.UCHAR, 1),
    TypeInfo("smallint", "int16_t", _T.SHORT, 2),
    TypeInfo("smalluint", "uint16_t", _T.USHORT, 2),
    TypeInfo("int", "int32_t", _T.INT, 4),
    TypeInfo("uint", "uint32_t", _T.UINT, 4),
    TypeInfo("bigint", "int64_t", _T.LONGLONG, 8),
    TypeInfo("biguint", "uint64_t", _T.ULONGLONG, 8),
    TypeInfo("int8", "int8_t", _T.CHAR, 1),
    TypeInfo("uint8", "uint8_t", _T.UCHAR, 1),
    TypeInfo("int16", "int16_t", _T.SHORT, 2),
    TypeInfo("uint16", "uint16_t", _T.USHORT, 2),
    TypeInfo("int32", "int32_t", _T.INT, 4),
    TypeInfo("uint32", "uint32_t", _T.UINT, 4),
    TypeInfo("int64", "int64_t", _T.LONGLONG, 8),
    TypeInfo("uint64", "uint64_t", _T.ULONGLONG, 8),
    TypeInfo("float", "float", _T.FLOAT, 4),
    TypeInfo("double", "double", _T.DOUBLE, 8),
    TypeInfo("decimal", "float", _T.FLOAT, 4),
    TypeInfo("date", "tdr_date_t", _T.DATE, 4),
    TypeInfo("time", "tdr_time_t", _T.TIME, 4),
    TypeInfo("datetime", "tdr_datetime_t", _T.DATETIME, 8),
    TypeInfo("string", "char", _T.STRING, 1),
    TypeInfo("byte", "uint8_t", _T.UCHAR, 1),
    TypeInfo("ip", "tdr_ip_t", _T.IP, 4),
    TypeInfo("wchar", "tdr_wchar_t", _T.WCHAR, 2),
    TypeInfo("wstring", "tdr_wchar_t", _T.WSTRING, 2),
    TypeInfo("void", "void", _T.VOID, 1),
    TypeInfo("char", "char", _T.CHAR, 1),
    TypeInfo("uchar", "unsigned char", _T.UCHAR, 1),
    TypeInfo("short", "int16_t", _T.SHORT, 2),
    TypeInfo("ushort", "uint16_t", _T.USHORT, 2),
    TypeInfo("long", "int32_t", _T.LONG, 4),
    TypeInfo("ulong", "uint32_t", _T.ULONG, 4),
    TypeInfo("longlong", "int64_t", _T.LONGLONG, 8),
    TypeInfo("ulonglong", "uint64_t", _T.ULONGLONG, 8),
)

TEXT_KINDS = frozenset({MetaPrimitiveType.STRING, MetaPrimitiveType.WSTRING})
AGGREGATE_KINDS = frozenset({MetaPrimitiveType.STRUCT, MetaPrimitiveType.UNION})


def primitive_kind(tag: int, *, context: str = "primitive kind") -> MetaPrimitiveType:
    """Map a raw kind tag to `MetaPrimitiveType`, raising on anything outside the enum."""
    try:
        return MetaPrimitiveType(tag)
    except ValueError:
        raise UnknownTypeTagError(tag, context) from None


def type_info(idx_type: int, *, context: str = "type table index") -> TypeInfo:
    """Return the type table row for `idx_type` (negative indices are never valid)."""
    if idx_type < 0 or idx_type >= len(PRIMITIVE_TYPE_INFO):
        raise UnknownTypeTagError(idx_type, context)
    return PRIMITIVE_TYPE_INFO[idx_type]


def type_index_by_name(xml_name: str) -> int:
    """Reverse lookup: first table row with the given XML spelling."""
    for idx, info in enumerate(PRIMITIVE_TYPE_INFO):
        if info.xml_name == xml_name:
            return idx
    raise KeyError(xml_name)
