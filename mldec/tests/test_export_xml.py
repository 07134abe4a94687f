import struct

import pytest

from mldec.api.metalib.config import MetalibConfig
from mldec.api.metalib.decoder import MetaEntryDBFlags, MetaEntryFlags, MetaFlags, decode_metalib
from mldec.api.metalib.errors import (
    DanglingReferenceError,
    ResolutionFailedError,
    UnknownTypeTagError,
    UnsupportedAttributeError,
)
from mldec.api.metalib.export import XML_DECLARATION, escape_attr, export_metalib_xml
from mldec.api.metalib.primitive_types import type_index_by_name
from mldec.tests.blob_builder import MetalibBuilder, entry


def _export(builder: MetalibBuilder, **kwargs) -> str:
    return export_metalib_xml(decode_metalib(builder.build()), **kwargs)


def _line(xml: str, needle: str) -> str:
    matches = [line.strip() for line in xml.splitlines() if needle in line]
    assert len(matches) == 1, matches
    return matches[0]


def test_standalone_macro_and_macro_backed_count():
    b = MetalibBuilder("demo", version=3, tagsetversion=1)
    b.macro("MAXNUM", 10)
    b.struct("Item", [entry("x")])
    b.struct("Pkg", [entry("count"), entry("items", meta="Item", count="MAXNUM")])

    assert _export(b) == "\n".join(
        [
            XML_DECLARATION,
            '<metalib tagsetversion="1" name="demo" version="3">',
            '\t<macro name="MAXNUM" value="10" />',
            '\t<struct name="Item" version="0">',
            '\t\t<entry name="x" type="int32"/>',
            "\t</struct>",
            '\t<struct name="Pkg" version="0">',
            '\t\t<entry name="count" type="int32"/>',
            '\t\t<entry name="items" type="Item" count="MAXNUM"/>',
            "\t</struct>",
            "</metalib>",
            "",
        ]
    )


def test_union_selector_resolves_to_sibling_field():
    b = MetalibBuilder()
    b.struct("Login", [entry("uid")])
    b.struct("Logout", [entry("reason", "int16")])
    b.union("Body", [entry("login", meta="Login"), entry("logout", meta="Logout")])
    b.struct("Msg", [entry("kind"), entry("body", meta="Body", selector_h_off=0)])

    xml = _export(b)
    assert _line(xml, 'name="body"') == '<entry name="body" type="Body" select="kind"/>'
    assert _line(xml, "<union") == '<union name="Body" version="0">'
    assert "</union>" in xml


def test_float_default_value():
    b = MetalibBuilder()
    b.struct("Cfg", [entry("ratio", "float", default=struct.pack("<f", 1.5))])
    assert _line(_export(b), 'name="ratio"') == '<entry name="ratio" type="float" default="1.5"/>'


def test_unresolvable_reference_aborts_the_export():
    b = MetalibBuilder()
    b.struct("Inner", [entry("a"), entry("b")])
    b.struct("Outer", [entry("hdr", meta="Inner"), entry("n", referer_h_off=2)])
    lib = decode_metalib(b.build())
    with pytest.raises(ResolutionFailedError) as exc:
        export_metalib_xml(lib)
    assert exc.value.meta_name == "Outer"
    assert exc.value.space == "host"


def test_absent_values_are_omitted_not_rendered():
    b = MetalibBuilder()
    b.macro("ONE", 1)
    b.struct("Plain", [entry("a")])
    b.struct("Other", [entry("x"), entry("s", "string", count=16), entry("p", meta="Plain")])
    xml = _export(b)
    assert '"-1"' not in xml
    assert "desc=" not in xml
    assert "cname=" not in xml
    assert ' id="' not in xml
    assert "default=" not in xml
    assert "refer=" not in xml
    assert "sizeinfo=" not in xml
    assert "bindmacrosgroup=" not in xml


def test_grouped_macros_render_inside_their_group_in_value_order():
    b = MetalibBuilder()
    b.macro("COLOR_RED", 1).macro("SOLO", 5, "lonely").macro("COLOR_BLUE", 2)
    b.group("Colors", ["COLOR_BLUE", "COLOR_RED"], desc="palette")
    xml = _export(b)
    assert xml.splitlines()[2:8] == [
        '\t<macro name="SOLO" value="5" desc="lonely" />',
        '\t<macrosgroup name="Colors" desc="palette">',
        '\t\t<macro name="COLOR_BLUE" value="2" />',
        '\t\t<macro name="COLOR_RED" value="1" />',
        "\t</macrosgroup>",
        "</metalib>",
    ]


def test_entry_attribute_order():
    b = MetalibBuilder()
    b.macro("ID_PING", 7).macro("LEVEL_MIN", 1).macro("LEVEL_MAX", 9)
    b.group("Levels", ["LEVEL_MIN", "LEVEL_MAX"])
    b.struct(
        "Pkg",
        [
            entry("len"),
            entry(
                "level",
                id="ID_PING",
                version=2,
                chinese_name="等级",
                desc="player level",
                db_flag=int(MetaEntryDBFlags.UNIQUE | MetaEntryDBFlags.NOT_NULL),
                referer_h_off=0,
                default=struct.pack("<i", 5),
                io=2,
                flag=int(MetaEntryFlags.HAS_MAXMIN_ID),
                min_id="LEVEL_MIN",
                max_id="LEVEL_MAX",
                bind_group="Levels",
            ),
        ],
    )
    assert _line(_export(b), 'name="level"') == (
        '<entry name="level" type="int32" version="2" id="ID_PING" cname="等级" desc="player level"'
        ' unique="true" notnull="true" refer="len" default="5" io="nooutput"'
        ' minid="LEVEL_MIN" maxid="LEVEL_MAX" bindmacrosgroup="Levels"/>'
    )


def test_array_and_sizeinfo_attributes():
    b = MetalibBuilder()
    b.macro("MAXNUM", 10)
    b.struct("Item", [entry("x")])
    b.struct(
        "Pkg",
        [
            entry("n"),
            entry("vals", count="MAXNUM", custom_h_unit_size=40, order=2),
            entry("raw", "byte", count=16, size_info_unit_size=4, size_info_idx_size_type=type_index_by_name("uint")),
            entry("title", "string", count=32, size_info_unit_size=4, size_info_idx_size_type=type_index_by_name("string")),
            entry("payload", "byte", count=64, size_info_unit_size=4, size_info_n_off=0),
            entry("ids", id=3, count=2, order=1),
            entry("ptr", meta="Item", flag=int(MetaEntryFlags.POINT_TYPE)),
            entry("ref", meta="Item", flag=int(MetaEntryFlags.REFER_TYPE)),
            entry("quiet", io=3),
        ],
    )
    xml = _export(b)
    assert _line(xml, 'name="vals"') == '<entry name="vals" type="int32" count="MAXNUM" size="10" sortMethod="desc"/>'
    assert _line(xml, 'name="raw"') == '<entry name="raw" type="byte" count="16" sizeinfo="uint"/>'
    assert _line(xml, 'name="title"') == '<entry name="title" type="string" count="32"/>'
    assert _line(xml, 'name="payload"') == '<entry name="payload" type="byte" count="64" sizeinfo="n"/>'
    assert _line(xml, 'name="ids"') == '<entry name="ids" type="int32" count="2" id="3" sortMethod="asc"/>'
    assert _line(xml, 'name="ptr"') == '<entry name="ptr" type="*Item"/>'
    assert _line(xml, 'name="ref"') == '<entry name="ref" type="@Item"/>'
    assert _line(xml, 'name="quiet"') == '<entry name="quiet" type="int32" io="noio"/>'


def test_struct_attribute_order():
    b = MetalibBuilder()
    b.macro("PKG_ID", 100).macro("PKG_VER", 5).macro("PKG_SIZE", 64)
    b.struct(
        "Pkg",
        [entry("ver"), entry("len"), entry("key")],
        flags=int(MetaFlags.HAS_ID),
        id="PKG_ID",
        version="PKG_VER",
        chinese_name="包",
        desc="a package",
        custom_h_unit_size="PKG_SIZE",
        custom_align=4,
        vi_n_off=0,
        size_type_unit_size=4,
        size_type_n_off=4,
        sort_key_offset=8,
    )
    xml = _export(b)
    assert _line(xml, "<struct") == (
        '<struct name="Pkg" version="PKG_VER" id="PKG_ID" cname="包" desc="a package" size="PKG_SIZE"'
        ' align="4" versionindicator="ver" sizeinfo="len" sortkey="key">'
    )
    # Entries at the struct's base version carry no version attribute.
    assert _line(xml, 'name="ver"') == '<entry name="ver" type="int32"/>'


def test_struct_literal_size_and_typed_sizeinfo():
    b = MetalibBuilder()
    b.struct(
        "Frame",
        [entry("a")],
        base_version=3,
        custom_h_unit_size=32,
        size_type_unit_size=2,
        size_type_idx_size_type=type_index_by_name("smalluint"),
    )
    assert _line(_export(b), "<struct") == '<struct name="Frame" version="3" size="32" sizeinfo="smalluint">'


def test_id_without_flag_is_not_written():
    b = MetalibBuilder()
    b.struct("NoId", [entry("a")], id=9)
    assert _line(_export(b), "<struct") == '<struct name="NoId" version="0">'


def test_union_skips_struct_only_attributes():
    b = MetalibBuilder()
    b.union("U", [entry("a"), entry("b", "int16")], custom_align=4, custom_h_unit_size=8, idx_split_table_factor=2)
    assert _line(_export(b), "<union") == '<union name="U" version="0">'


def test_metalib_id_and_escaping():
    b = MetalibBuilder("lib", lib_id=12)
    b.macro("QUOTE", 1, 'says "hi" & <bye>')
    xml = _export(b)
    assert xml.splitlines()[1] == '<metalib tagsetversion="1" name="lib" version="1" id="12">'
    assert 'desc="says &quot;hi&quot; &amp; &lt;bye&gt;"' in xml
    assert escape_attr("a<b") == "a&lt;b"


def test_configured_indent():
    b = MetalibBuilder()
    b.struct("S", [entry("a")])
    xml = _export(b, config=MetalibConfig(indent="  "))
    assert '    <entry name="a" type="int32"/>' in xml.splitlines()
    assert '  <struct name="S" version="0">' in xml.splitlines()


@pytest.mark.parametrize(
    "fields, attribute",
    [
        ({"primary_key_member_num": 1, "ptr_primary_key_base": 0}, "primarykey"),
        ({"idx_split_table_factor": 0}, "splittablefactor"),
        ({"split_key_h_off": 0}, "splittablekey"),
        ({"split_table_rule_id": 1}, "splittablerule"),
        ({"ptr_dependon_struct": 0}, "dependonstruct"),
        ({"flags": int(MetaFlags.NEED_PREFIX_FOR_UNIQUENAME)}, "uniqueentryname"),
    ],
)
def test_unsupported_struct_attributes_abort(fields, attribute):
    b = MetalibBuilder()
    b.struct("T", [entry("a")], **fields)
    with pytest.raises(UnsupportedAttributeError) as exc:
        _export(b)
    assert exc.value.attribute == attribute
    assert "'T'" in exc.value.record


@pytest.mark.parametrize(
    "fields, attribute",
    [
        ({"db_flag": int(MetaEntryDBFlags.EXTEND_TO_TABLE)}, "extendtotable"),
        ({"db_flag": int(MetaEntryDBFlags.AUTO_INCREMENT)}, "autoincrement"),
        ({"ptr_custom_attr": 0}, "customattr"),
        ({"io": 7}, "io=7"),
    ],
)
def test_unsupported_entry_attributes_abort(fields, attribute):
    b = MetalibBuilder()
    b.struct("T", [entry("a", **fields)])
    with pytest.raises(UnsupportedAttributeError) as exc:
        _export(b)
    assert exc.value.attribute == attribute


def test_meta_of_unexpected_kind():
    b = MetalibBuilder()
    b.struct("Odd", [entry("a")], kind=7)
    with pytest.raises(UnknownTypeTagError):
        _export(b)


def test_dangling_references_abort():
    b = MetalibBuilder()
    b.struct("T", [entry("a", type_name=None, ptr_meta=0x5000)])
    with pytest.raises(DanglingReferenceError):
        _export(b)

    b = MetalibBuilder()
    b.struct("T", [entry("a", ptr_macros_group=0x5000)])
    with pytest.raises(DanglingReferenceError):
        _export(b)

    b = MetalibBuilder()
    b.struct("T", [entry("a", count=2, idx_count=4)])
    with pytest.raises(DanglingReferenceError):
        _export(b)


def test_export_is_repeatable():
    b = MetalibBuilder()
    b.macro("N", 4)
    b.struct("S", [entry("a", count="N"), entry("b", "double")])
    data = b.build()
    assert export_metalib_xml(decode_metalib(data)) == export_metalib_xml(decode_metalib(data))
