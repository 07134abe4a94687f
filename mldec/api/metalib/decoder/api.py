"""
Byte-exact decoder for compiled TDR metalib blobs.

Builds on `mldec.api.metalib.ingestion` (header + body slice) and decodes the
six body sections, each from its own header-declared offset and count:

1. macros (`Macro`, 16 bytes each),
2. id index (`IdEntry`, 8 bytes),
3. name index (`NameEntry`, 8 bytes),
4. meta map (`MapEntry`, 8 bytes),
5. metas: a 0xB8-byte `Meta` record immediately followed by `entries_num`
   0xB4-byte `MetaEntry` records (self-describing, variable length),
6. macro groups: a 0x94-byte head immediately followed by two i32 index
   arrays of the group's own declared length.

How to read this module:
- Every `_read_*` function takes `(body, pos)` and returns
  `(record, next_pos)`; it consumes exactly the record's declared length.
- Text comes in two forms: inline fixed-width (macro group names) and
  out-of-line pointers (i32 body offset, -1 = empty). Out-of-line reads go
  through `bytes_util.read_text_at`, which takes an offset and keeps no
  cursor, so they never disturb the sequential walk.
- An entry whose `ptr_default_val` is set gets a second out-of-line read,
  typed by the entry's own `idx_type` row.

Any failure aborts the whole decode; there is no partial `Metalib`.
"""

from __future__ import annotations

import struct
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from .._shared.bytes_util import (
    i32_array,
    read_cstring_at,
    read_fixed_width_text,
    read_text_at,
    read_wide_cstring_at,
    unpack_at,
)
from ..config import DEFAULT_CONFIG, MetalibConfig
from ..errors import SectionLayoutError, UnsupportedAttributeError
from ..ingestion import MetalibBlob, parse_header, section_offsets, slice_body
from ..primitive_types import MetaPrimitiveType, primitive_kind, type_info
from .model import (
    INVALID_METALIB_VALUE,
    DBKeyInfo,
    IdEntry,
    Layout,
    Macro,
    MacroGroup,
    MapEntry,
    Meta,
    MetaEntry,
    MetaEntryDBFlags,
    MetaEntryFlags,
    MetaFlags,
    Metalib,
    NameEntry,
    Redirector,
    Selector,
    SizeInfo,
    SortKeyInfo,
    macro_backed,
)

T = TypeVar("T")
Reader = Callable[[bytes, int, MetalibConfig], Tuple[T, int]]

MACRO = struct.Struct("<4i")
INDEX_ENTRY = struct.Struct("<2i")
MACRO_GROUP_HEAD = struct.Struct("<5i")
MACRO_GROUP_NAME_LEN = 128
MACRO_GROUP_HEAD_SIZE = MACRO_GROUP_HEAD.size + MACRO_GROUP_NAME_LEN

META_ENTRY = struct.Struct(
    "<17i"  # id .. idx_custom_h_unit_size
    "HBB"  # flag, db_flag, order
    "4i"  # size_info
    "3i"  # referer
    "3i"  # selector
    "8i"  # io .. default_val_len
    "2i"  # desc, chinese_name pointers
    "7i"  # ptr_default_val .. field_b0
)
META = struct.Struct(
    "<I22i"  # flags, id .. uncertain_version_indicator_min_ver
    "4i"  # size_type
    "3i"  # version_indicator
    "3i"  # sort_key
    "3i"  # name, desc, chinese_name pointers
    "ihhi"  # split_table_factor, split_table_rule_id, primary_key_member_num, idx_split_table_factor
    "2i"  # split_table_key
    "2i"  # ptr_primary_key_base, ptr_dependon_struct
    "3i"  # field_ac, field_b0, field_b4
)

# Offsets of the descriptor sub-records inside their parent record.
_ENTRY_SIZE_INFO_AT = 72
_ENTRY_REFERER_AT = 88
_ENTRY_SELECTOR_AT = 100
_META_SIZE_TYPE_AT = 92
_META_VERSION_INDICATOR_AT = 108
_META_SORT_KEY_AT = 120
_META_SPLIT_TABLE_KEY_AT = 156

_INT_DEFAULT_FORMATS: Dict[MetaPrimitiveType, str] = {
    MetaPrimitiveType.CHAR: "<b",
    MetaPrimitiveType.UCHAR: "<B",
    MetaPrimitiveType.BYTE: "<B",
    MetaPrimitiveType.SHORT: "<h",
    MetaPrimitiveType.USHORT: "<H",
    MetaPrimitiveType.INT: "<i",
    MetaPrimitiveType.UINT: "<I",
    MetaPrimitiveType.LONG: "<i",
    MetaPrimitiveType.ULONG: "<I",
    MetaPrimitiveType.LONGLONG: "<q",
    MetaPrimitiveType.ULONGLONG: "<Q",
}


def format_float(value: float) -> str:
    """
    `repr` text with a compact exponent: `1e20` and `1e-5`, never `1e+20` or `1e-05`.
    """
    if value != value:
        return "NaN"
    text = repr(value)
    mantissa, sep, exponent = text.partition("e")
    if not sep:
        return text
    return f"{mantissa}e{int(exponent)}"


def format_f32(value: float) -> str:
    """
    Shortest decimal text that reads back as the same 32-bit float.

    Whole numbers keep a trailing `.0` (`1.0`, not `1`).
    """
    packed = struct.pack("<f", value)
    for precision in range(1, 10):
        candidate = float(f"{value:.{precision}g}")
        if struct.pack("<f", candidate) == packed:
            return format_float(candidate)
    return format_float(value)


def _text(body: bytes, ptr: int, config: MetalibConfig, what: str) -> str:
    return read_text_at(body, ptr, encoding=config.text_encoding, max_size=config.max_string_size, what=what)


def read_default_value(body: bytes, ptr: int, idx_type: int, *, config: MetalibConfig, entry_name: str) -> str:
    """
    Decode the default value stored at body offset `ptr` as text.

    The entry's own type table row decides the width and interpretation.
    """
    info = type_info(idx_type, context=f"default value of entry {entry_name!r}")
    what = f"default value of entry {entry_name!r}"
    kind = info.kind
    fmt = _INT_DEFAULT_FORMATS.get(kind)
    if fmt is not None:
        (value,) = unpack_at(struct.Struct(fmt), body, ptr, what)
        return str(value)
    if kind is MetaPrimitiveType.FLOAT:
        (value,) = unpack_at(struct.Struct("<f"), body, ptr, what)
        return format_f32(value)
    if kind is MetaPrimitiveType.DOUBLE:
        (value,) = unpack_at(struct.Struct("<d"), body, ptr, what)
        return format_float(value)
    if kind is MetaPrimitiveType.STRING:
        return read_cstring_at(body, ptr, max_size=config.max_string_size, what=what).decode("utf-8", errors="replace")
    if kind is MetaPrimitiveType.WSTRING:
        return read_wide_cstring_at(body, ptr, max_size=config.max_string_size, what=what)
    if kind is MetaPrimitiveType.WCHAR:
        (unit,) = unpack_at(struct.Struct("<H"), body, ptr, what)
        if unit < 0x20 or 0xD800 <= unit <= 0xDFFF or unit in (0xFFFE, 0xFFFF):
            # Not representable as an XML character.
            raise UnsupportedAttributeError(
                "default", f"entry {entry_name!r} of type 'wchar' (code unit 0x{unit:04X})"
            )
        return chr(unit)
    raise UnsupportedAttributeError("default", f"entry {entry_name!r} of type {info.xml_name!r}")


def _read_size_info(vals: Tuple[int, ...], offset: int) -> SizeInfo:
    n_off, h_off, unit_size, idx_size_type = vals
    return SizeInfo(offset=offset, n_off=n_off, h_off=h_off, unit_size=unit_size, idx_size_type=idx_size_type)


def _read_selector(vals: Tuple[int, ...], offset: int) -> Selector:
    unit_size, h_off, ptr_entry = vals
    return Selector(offset=offset, unit_size=unit_size, h_off=h_off, ptr_entry=ptr_entry)


def _read_macro(body: bytes, pos: int, config: MetalibConfig) -> Tuple[Macro, int]:
    name_ptr, value, desc_ptr, unk = unpack_at(MACRO, body, pos, "macro")
    macro = Macro(
        offset=pos,
        name=_text(body, name_ptr, config, "macro name"),
        value=value,
        desc=_text(body, desc_ptr, config, "macro desc"),
        unk=unk,
    )
    return macro, pos + MACRO.size


def _read_id_entry(body: bytes, pos: int, config: MetalibConfig) -> Tuple[IdEntry, int]:
    id_, idx = unpack_at(INDEX_ENTRY, body, pos, "id index entry")
    return IdEntry(offset=pos, id=id_, idx=idx), pos + INDEX_ENTRY.size


def _read_name_entry(body: bytes, pos: int, config: MetalibConfig) -> Tuple[NameEntry, int]:
    ptr, idx = unpack_at(INDEX_ENTRY, body, pos, "name index entry")
    return NameEntry(offset=pos, ptr=ptr, idx=idx), pos + INDEX_ENTRY.size


def _read_map_entry(body: bytes, pos: int, config: MetalibConfig) -> Tuple[MapEntry, int]:
    ptr, size = unpack_at(INDEX_ENTRY, body, pos, "meta map entry")
    return MapEntry(offset=pos, ptr=ptr, size=size), pos + INDEX_ENTRY.size


def _read_meta_entry(body: bytes, pos: int, config: MetalibConfig) -> Tuple[MetaEntry, int]:
    v = unpack_at(META_ENTRY, body, pos, "meta entry")
    (
        id_, version, kind, name_ptr,
        h_real_size, n_real_size, h_unit_size, n_unit_size, custom_h_unit_size, count,
        n_off, h_off, idx_id, idx_version, idx_count, idx_type, idx_custom_h_unit_size,
        flag, db_flag, order,
    ) = v[:20]
    (
        io, idx_io, ptr_meta, max_id, min_id, max_id_idx, min_id_idx, default_val_len,
        desc_ptr, cname_ptr,
        ptr_default_val, ptr_macros_group, ptr_custom_attr, off_to_meta, field_a8, field_ac, field_b0,
    ) = v[30:]
    name = _text(body, name_ptr, config, "entry name")
    default_value = ""
    if ptr_default_val != INVALID_METALIB_VALUE:
        default_value = read_default_value(body, ptr_default_val, idx_type, config=config, entry_name=name)
    entry = MetaEntry(
        offset=pos,
        id=macro_backed(id_, idx_id),
        version=macro_backed(version, idx_version),
        kind=primitive_kind(kind, context=f"kind of entry {name!r} at 0x{pos:X}"),
        name=name,
        h_real_size=h_real_size,
        n_real_size=n_real_size,
        net=Layout(n_off, n_unit_size),
        host=Layout(h_off, h_unit_size),
        custom_h_unit_size=macro_backed(custom_h_unit_size, idx_custom_h_unit_size),
        count=macro_backed(count, idx_count),
        idx_type=idx_type,
        flags=MetaEntryFlags(flag),
        db_flags=MetaEntryDBFlags(db_flag),
        order=order,
        size_info=_read_size_info(v[20:24], pos + _ENTRY_SIZE_INFO_AT),
        referer=_read_selector(v[24:27], pos + _ENTRY_REFERER_AT),
        selector=_read_selector(v[27:30], pos + _ENTRY_SELECTOR_AT),
        io=io,
        idx_io=idx_io,
        ptr_meta=ptr_meta,
        max_id=macro_backed(max_id, max_id_idx),
        min_id=macro_backed(min_id, min_id_idx),
        default_val_len=default_val_len,
        desc=_text(body, desc_ptr, config, "entry desc"),
        chinese_name=_text(body, cname_ptr, config, "entry cname"),
        ptr_default_val=ptr_default_val,
        ptr_macros_group=ptr_macros_group,
        ptr_custom_attr=ptr_custom_attr,
        off_to_meta=off_to_meta,
        field_a8=field_a8,
        field_ac=field_ac,
        field_b0=field_b0,
        default_value=default_value,
    )
    return entry, pos + META_ENTRY.size


def _read_meta(body: bytes, pos: int, config: MetalibConfig) -> Tuple[Meta, int]:
    v = unpack_at(META, body, pos, "meta")
    (
        flags, id_, base_version, cur_version, kind, mem_size, n_unit_size, h_unit_size,
        custom_h_unit_size, idx_custom_h_unit_size, uncertain_max_sub_id, entries_num,
        unk_table_count, unk_table_ptr, unk_table_unk, ptr_meta, idx, idx_id, idx_type,
        idx_version, custom_align, valid_align, uncertain_vi_min_ver,
    ) = v[:23]
    name_ptr, desc_ptr, cname_ptr = v[33:36]
    (
        split_table_factor, split_table_rule_id, primary_key_member_num, idx_split_table_factor,
        split_key_h_off, split_key_ptr_entry,
        ptr_primary_key_base, ptr_dependon_struct, field_ac, field_b0, field_b4,
    ) = v[36:]
    name = _text(body, name_ptr, config, "meta name")
    if entries_num < 0:
        raise SectionLayoutError(f"meta {name!r} at 0x{pos:X} declares {entries_num} entries")

    next_pos = pos + META.size
    entries: List[MetaEntry] = []
    for _ in range(entries_num):
        entry, next_pos = _read_meta_entry(body, next_pos, config)
        entries.append(entry)

    n_off, h_off, unit_size = v[27:30]
    idx_sort_entry, sort_key_offset, ptr_sort_key_meta = v[30:33]
    meta = Meta(
        offset=pos,
        flags=MetaFlags(flags),
        id=macro_backed(id_, idx_id),
        base_version=base_version,
        cur_version=cur_version,
        kind=primitive_kind(kind, context=f"kind of meta {name!r} at 0x{pos:X}"),
        mem_size=mem_size,
        n_unit_size=n_unit_size,
        h_unit_size=h_unit_size,
        custom_h_unit_size=macro_backed(custom_h_unit_size, idx_custom_h_unit_size),
        uncertain_max_sub_id=uncertain_max_sub_id,
        entries_num=entries_num,
        unk_table_count=unk_table_count,
        unk_table_ptr=unk_table_ptr,
        unk_table_unk=unk_table_unk,
        ptr_meta=ptr_meta,
        idx=idx,
        idx_type=idx_type,
        version=macro_backed(base_version, idx_version),
        custom_align=custom_align,
        valid_align=valid_align,
        uncertain_version_indicator_min_ver=uncertain_vi_min_ver,
        size_type=_read_size_info(v[23:27], pos + _META_SIZE_TYPE_AT),
        version_indicator=Redirector(
            offset=pos + _META_VERSION_INDICATOR_AT, n_off=n_off, h_off=h_off, unit_size=unit_size
        ),
        sort_key=SortKeyInfo(
            offset=pos + _META_SORT_KEY_AT,
            idx_sort_entry=idx_sort_entry,
            sort_key_offset=sort_key_offset,
            ptr_sort_key_meta=ptr_sort_key_meta,
        ),
        name=name,
        desc=_text(body, desc_ptr, config, "meta desc"),
        chinese_name=_text(body, cname_ptr, config, "meta cname"),
        split_table_factor=split_table_factor,
        split_table_rule_id=split_table_rule_id,
        primary_key_member_num=primary_key_member_num,
        idx_split_table_factor=idx_split_table_factor,
        split_table_key=DBKeyInfo(
            offset=pos + _META_SPLIT_TABLE_KEY_AT, h_off=split_key_h_off, ptr_entry=split_key_ptr_entry
        ),
        ptr_primary_key_base=ptr_primary_key_base,
        ptr_dependon_struct=ptr_dependon_struct,
        field_ac=field_ac,
        field_b0=field_b0,
        field_b4=field_b4,
        entries=tuple(entries),
    )
    return meta, next_pos


def _read_macro_group(body: bytes, pos: int, config: MetalibConfig) -> Tuple[MacroGroup, int]:
    cur, max_count, desc_ptr, ptr_name_idx_map, ptr_value_idx_map = unpack_at(
        MACRO_GROUP_HEAD, body, pos, "macrosgroup"
    )
    name = read_fixed_width_text(body, pos + MACRO_GROUP_HEAD.size, MACRO_GROUP_NAME_LEN, "macrosgroup name")
    if cur < 0:
        raise SectionLayoutError(f"macrosgroup {name!r} at 0x{pos:X} declares {cur} macros")

    # Both arrays follow the head inline; the relative pointers must agree.
    name_map_rel = MACRO_GROUP_HEAD_SIZE
    value_map_rel = name_map_rel + 4 * cur
    if ptr_name_idx_map != name_map_rel or ptr_value_idx_map != value_map_rel:
        raise SectionLayoutError(
            f"macrosgroup {name!r} at 0x{pos:X}: index maps at +0x{ptr_name_idx_map:X}/+0x{ptr_value_idx_map:X}, "
            f"expected +0x{name_map_rel:X}/+0x{value_map_rel:X}"
        )
    name_idx_map = i32_array(body, pos + name_map_rel, cur, f"macrosgroup {name!r} name index map")
    value_idx_map = i32_array(body, pos + value_map_rel, cur, f"macrosgroup {name!r} value index map")
    group = MacroGroup(
        offset=pos,
        cur_macro_count=cur,
        max_macro_count=max_count,
        desc=_text(body, desc_ptr, config, "macrosgroup desc"),
        ptr_name_idx_map=ptr_name_idx_map,
        ptr_value_idx_map=ptr_value_idx_map,
        name=name,
        name_idx_map=tuple(name_idx_map),
        value_idx_map=tuple(value_idx_map),
    )
    return group, pos + value_map_rel + 4 * cur


def _read_table(
    body: bytes, section: str, start: int, count: int, reader: Reader[T], config: MetalibConfig
) -> Tuple[T, ...]:
    """Decode `count` consecutive records starting at body offset `start`."""
    if count < 0:
        raise SectionLayoutError(f"{section} section declares {count} records")
    records: List[T] = []
    pos = start
    for _ in range(count):
        record, pos = reader(body, pos, config)
        records.append(record)
    return tuple(records)


def decode_metalib_blob(
    blob: MetalibBlob, *, offset: int = 0, config: Optional[MetalibConfig] = None
) -> Metalib:
    """
    Decode the metalib that starts at `offset` inside `blob`.

    Sections are decoded in header order: macros, id index, name index, meta
    map, metas (with their entries), macro groups.
    """
    cfg = config or DEFAULT_CONFIG
    header = parse_header(blob, offset)
    body = slice_body(blob, header, offset)
    sections = section_offsets(header)

    macros = _read_table(body, "macro", *sections.macros, _read_macro, cfg)
    ids = _read_table(body, "id index", *sections.ids, _read_id_entry, cfg)
    names = _read_table(body, "name index", *sections.names, _read_name_entry, cfg)
    meta_map = _read_table(body, "meta map", *sections.meta_map, _read_map_entry, cfg)
    metas = _read_table(body, "meta", *sections.metas, _read_meta, cfg)
    macro_groups = _read_table(body, "macrosgroup", *sections.macro_groups, _read_macro_group, cfg)

    return Metalib(
        header=header,
        macros=macros,
        ids=ids,
        names=names,
        meta_map=meta_map,
        metas=metas,
        macro_groups=macro_groups,
        source=blob.source,
    )


def decode_metalib(
    data: bytes, *, offset: int = 0, config: Optional[MetalibConfig] = None, source: str = "<bytes>"
) -> Metalib:
    """Convenience wrapper around `decode_metalib_blob` for raw bytes."""
    return decode_metalib_blob(MetalibBlob(bytes=bytes(data), source=source), offset=offset, config=config)


def decode_metalib_dict(data: bytes, *, offset: int = 0, config: Optional[MetalibConfig] = None) -> Dict[str, Any]:
    """
    JSON-safe wrapper around `decode_metalib`.

    Flags are flattened to ints, enums to names, macro-backed values to either
    a plain number or `{"value", "macro_index"}`.
    """
    return decode_metalib(data, offset=offset, config=config).to_dict()


def summarize_metalib(metalib: Metalib) -> Dict[str, Any]:
    """Compact, low-ceremony summary used by `dump --summary`."""
    header = metalib.header
    return {
        "source": metalib.source,
        "name": header.name,
        "version": header.version,
        "tagsetversion": header.xml_tag_set_ver,
        "size": header.size,
        "counts": {
            "macros": len(metalib.macros),
            "metas": len(metalib.metas),
            "macro_groups": len(metalib.macro_groups),
            "entries": sum(len(meta.entries) for meta in metalib.metas),
        },
        "metas": [
            {"name": meta.name, "kind": meta.kind.name.lower(), "offset": meta.offset, "entries": len(meta.entries)}
            for meta in metalib.metas
        ],
    }
