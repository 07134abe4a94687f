import json
import struct

import pytest

from mldec.api.metalib import decoder
from mldec.api.metalib.config import MetalibConfig
from mldec.api.metalib.decoder import Literal, MetaEntryDBFlags, MetaEntryFlags, MetaFlags, Symbolic
from mldec.api.metalib.errors import (
    BufferTruncatedError,
    DanglingReferenceError,
    SectionLayoutError,
    UnknownTypeTagError,
    UnsupportedAttributeError,
)
from mldec.api.metalib.primitive_types import MetaPrimitiveType, type_index_by_name
from mldec.tests.blob_builder import HEADER_SIZE, MetalibBuilder, entry


def _game_lib() -> MetalibBuilder:
    b = MetalibBuilder("game", version=7)
    b.macro("MAXNUM", 10, "最大数量")
    b.macro("KIND_A", 1).macro("KIND_B", 2)
    b.macro("CMD_LOGIN", 100)
    b.group("Kinds", ["KIND_B", "KIND_A"], desc="kinds")
    b.struct("Item", [entry("id"), entry("amount", "int16")])
    b.struct(
        "Bag",
        [entry("count"), entry("items", meta="Item", count="MAXNUM"), entry("kind", bind_group="Kinds")],
        flags=int(MetaFlags.HAS_ID),
        id="CMD_LOGIN",
        chinese_name="背包",
    )
    return b


def test_record_sizes():
    assert decoder.META.size == 0xB8
    assert decoder.META_ENTRY.size == 0xB4


def test_decode_sections_and_lookups():
    b = _game_lib()
    lib = decoder.decode_metalib(b.build(), source="game.bin")
    assert lib.source == "game.bin"
    assert lib.header.name == "game"
    assert [m.name for m in lib.macros] == ["MAXNUM", "KIND_A", "KIND_B", "CMD_LOGIN"]
    assert lib.macros[0].desc == "最大数量"
    assert lib.macros[1].desc == ""
    assert [m.name for m in lib.metas] == ["Item", "Bag"]
    assert [e.idx for e in lib.ids] == [0, 1]
    assert [e.ptr for e in lib.meta_map] == b.meta_offsets()

    item, bag = lib.metas
    assert lib.meta_by_offset(bag.offset) is bag
    assert lib.meta_by_name("Item") is item
    assert lib.meta_by_id(100) is bag
    with pytest.raises(KeyError):
        lib.meta_by_name("Nope")
    with pytest.raises(DanglingReferenceError):
        lib.meta_by_offset(bag.offset + 4)
    with pytest.raises(DanglingReferenceError):
        lib.meta_by_id(-1)

    assert bag.kind is MetaPrimitiveType.STRUCT
    assert bag.chinese_name == "背包"
    assert MetaFlags.HAS_ID in bag.flags
    assert bag.id == Symbolic(100, 3)
    assert item.id == Literal(-1)
    assert bag.entries_num == 3


def test_entries_carry_both_layouts_and_macro_backed_values():
    lib = decoder.decode_metalib(_game_lib().build())
    item, bag = lib.metas
    count, items, kind = bag.entries

    assert count.net.offset == 0 and count.net.size == 4
    assert items.net.offset == 4
    assert items.net.size == 6 * 10
    assert items.host.size == 6 * 10
    assert items.count == Symbolic(10, 0)
    assert items.is_aggregate
    assert lib.meta_by_offset(items.ptr_meta) is item
    assert items.kind is MetaPrimitiveType.STRUCT
    assert not count.is_aggregate
    assert count.count == Literal(1)
    assert count.kind is MetaPrimitiveType.INT
    assert kind.net.offset == 64
    assert item.entries[1].net.size == 2


def test_macro_groups_use_value_index_map():
    lib = decoder.decode_metalib(_game_lib().build())
    (group,) = lib.macro_groups
    assert group.name == "Kinds"
    assert group.desc == "kinds"
    assert group.cur_macro_count == 2
    assert group.value_idx_map == (2, 1)
    assert group.name_idx_map == (1, 2)
    assert group.ptr_name_idx_map == 148
    assert group.ptr_value_idx_map == 156
    assert [lib.is_macro_in_group(m) for m in lib.macros] == [False, True, True, False]

    bag = lib.meta_by_name("Bag")
    assert lib.macro_group_by_offset(bag.entries[2].ptr_macros_group) is group
    with pytest.raises(DanglingReferenceError):
        lib.macro_group_by_offset(0)


def test_decode_at_offset_inside_larger_file():
    data = _game_lib().build(prefix=b"\x90" * 0x40, suffix=b"\xff" * 32)
    lib = decoder.decode_metalib(data, offset=0x40)
    assert lib.header.name == "game"
    assert len(lib.metas) == 2


def test_decode_is_deterministic():
    data = _game_lib().build()
    assert decoder.decode_metalib(data) == decoder.decode_metalib(data)


def test_decode_dict_is_json_safe():
    out = decoder.decode_metalib_dict(_game_lib().build())
    text = json.dumps(out, ensure_ascii=False)
    assert "背包" in text
    bag = out["metas"][1]
    assert bag["kind"] == "STRUCT"
    assert bag["id"] == {"value": 100, "macro_index": 3}
    assert bag["entries"][0]["count"] == 1
    assert bag["entries"][0]["net"] == {"offset": 0, "size": 4}


def test_summarize_metalib():
    summary = decoder.summarize_metalib(decoder.decode_metalib(_game_lib().build()))
    assert summary["name"] == "game"
    assert summary["version"] == 7
    assert summary["counts"] == {"macros": 4, "metas": 2, "macro_groups": 1, "entries": 5}
    assert summary["metas"][1] == {"name": "Bag", "kind": "struct", "offset": summary["metas"][1]["offset"], "entries": 3}


def test_truncated_body_is_fatal():
    data = _game_lib().build()
    with pytest.raises(BufferTruncatedError):
        decoder.decode_metalib(data[:-1])


def test_string_pointer_out_of_range_is_fatal():
    b = _game_lib()
    data = bytearray(b.build())
    # First macro's name pointer.
    struct.pack_into("<i", data, HEADER_SIZE, len(data) * 2)
    with pytest.raises(BufferTruncatedError):
        decoder.decode_metalib(bytes(data))


def test_max_string_size_bounds_the_terminator_scan():
    with pytest.raises(BufferTruncatedError):
        decoder.decode_metalib(_game_lib().build(), config=MetalibConfig(max_string_size=4))


def test_unknown_entry_kind_is_fatal():
    b = MetalibBuilder()
    b.struct("Odd", [entry("x", kind=99)])
    with pytest.raises(UnknownTypeTagError) as exc:
        decoder.decode_metalib(b.build())
    assert exc.value.tag == 99


def test_macro_group_pointer_mismatch_is_a_layout_error():
    b = _game_lib()
    data = bytearray(b.build())
    group_at = HEADER_SIZE + b.group_offsets()[0]
    struct.pack_into("<i", data, group_at + 16, 0)
    with pytest.raises(SectionLayoutError):
        decoder.decode_metalib(bytes(data))


def test_macro_group_with_dangling_macro_index():
    b = _game_lib()
    data = bytearray(b.build())
    group_at = HEADER_SIZE + b.group_offsets()[0]
    # First slot of the value index map.
    struct.pack_into("<i", data, group_at + 148 + 8, 99)
    with pytest.raises(DanglingReferenceError):
        decoder.decode_metalib(bytes(data))


def test_entry_flags_are_decoded():
    b = MetalibBuilder()
    b.struct("Row", [entry("key", flag=0x18, db_flag=0x03, order=1, io=2)])
    (row,) = decoder.decode_metalib(b.build()).metas
    (key,) = row.entries
    assert key.flags == MetaEntryFlags.HAS_ID | MetaEntryFlags.HAS_MAXMIN_ID
    assert key.db_flags == MetaEntryDBFlags.UNIQUE | MetaEntryDBFlags.NOT_NULL
    assert key.order == 1
    assert key.io == 2


@pytest.mark.parametrize(
    "type_name, payload, expected",
    [
        ("int32", struct.pack("<i", -5), "-5"),
        ("uint", struct.pack("<I", 4000000000), "4000000000"),
        ("tinyint", struct.pack("<b", -2), "-2"),
        ("smalluint", struct.pack("<H", 65535), "65535"),
        ("bigint", struct.pack("<q", -(2**40)), str(-(2**40))),
        ("float", struct.pack("<f", 1.5), "1.5"),
        ("float", struct.pack("<f", 0.1), "0.1"),
        ("double", struct.pack("<d", 2.25), "2.25"),
        ("string", b"hello\x00", "hello"),
        ("wstring", "hi".encode("utf-16-le") + b"\x00\x00", "hi"),
        ("wchar", struct.pack("<H", ord("A")), "A"),
    ],
)
def test_default_values_follow_the_entry_type(type_name, payload, expected):
    b = MetalibBuilder()
    b.struct("Cfg", [entry("value", type_name, default=payload)])
    (cfg,) = decoder.decode_metalib(b.build()).metas
    assert cfg.entries[0].default_value == expected


def test_default_value_of_unsupported_type():
    b = MetalibBuilder()
    b.struct("Cfg", [entry("when", "datetime", default=b"\x00" * 8)])
    with pytest.raises(UnsupportedAttributeError):
        decoder.decode_metalib(b.build())


@pytest.mark.parametrize("unit", [0x0000, 0x0009, 0xD800, 0xDFFF, 0xFFFF])
def test_wchar_default_outside_xml_characters_is_rejected(unit):
    b = MetalibBuilder()
    b.struct("Cfg", [entry("c", "wchar", default=struct.pack("<H", unit))])
    with pytest.raises(UnsupportedAttributeError, match="wchar"):
        decoder.decode_metalib(b.build())


def test_float_text_uses_compact_exponents():
    assert decoder.format_float(1e20) == "1e20"
    assert decoder.format_float(1e-05) == "1e-5"
    assert decoder.format_float(2.5e-07) == "2.5e-7"
    assert decoder.format_float(0.0001) == "0.0001"
    assert decoder.format_float(float("nan")) == "NaN"
    assert decoder.format_f32(struct.unpack("<f", struct.pack("<f", 1e20))[0]) == "1e20"


def test_format_f32_keeps_whole_numbers_as_floats():
    assert decoder.format_f32(1.0) == "1.0"
    assert decoder.format_f32(100.0) == "100.0"
    assert decoder.format_f32(struct.unpack("<f", struct.pack("<f", 0.3))[0]) == "0.3"


def test_default_read_uses_entry_type_row():
    body = struct.pack("<i", 9)
    assert decoder.read_default_value(body, 0, type_index_by_name("int"), config=MetalibConfig(), entry_name="n") == "9"
    with pytest.raises(BufferTruncatedError):
        decoder.read_default_value(body, 2, type_index_by_name("int"), config=MetalibConfig(), entry_name="n")
