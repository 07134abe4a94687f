"""
Symbolic XML export for decoded metalibs.

Walks a `Metalib` and writes the TDR XML a schema author would have written:
ungrouped `<macro>` lines, `<macrosgroup>` blocks, then one `<struct>` /
`<union>` block per meta with its `<entry>` lines, all in table order.

Emission rules shared by every attribute:
- Macro-backed values (`Symbolic`) are written as the macro's *name*;
  `Literal` values as the number. A raw macro index is never written.
- An attribute is only written when its predicate holds (count > 1, version
  differs from the struct's base version, HAS_MAXMIN_ID set, ...). A -1
  sentinel always means "omit", never the text `-1`.
- Offset-based cross references (`refer`, `select`, `sizeinfo`,
  `versionindicator`, `sortkey`) go through the offset resolver. A resolver
  failure aborts the export; there is no "skip this attribute" fallback.
- Attributes this tool does not reconstruct (extend-to-table, auto-increment,
  custom attributes, primary key, split-table, dependon, unique-entry-name)
  abort with `UnsupportedAttributeError` rather than being guessed at.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..config import DEFAULT_CONFIG, MetalibConfig
from ..decoder.model import (
    INVALID_METALIB_VALUE,
    MacroBacked,
    Macro,
    MacroGroup,
    Meta,
    MetaEntry,
    MetaEntryDBFlags,
    MetaEntryFlags,
    MetaFlags,
    Metalib,
    SortOrder,
    Symbolic,
)
from ..errors import UnknownTypeTagError, UnsupportedAttributeError
from ..primitive_types import AGGREGATE_KINDS, TEXT_KINDS, MetaPrimitiveType, type_info
from ..resolver import resolve_host_offset, resolve_net_offset

XML_DECLARATION = '<?xml version="1.0" encoding="UTF8" standalone="yes" ?>'

IO_MODES = {1: "noinput", 2: "nooutput", 3: "noio"}

Attrs = List[Tuple[str, str]]


def escape_attr(value: str) -> str:
    """Escape text for use inside a double-quoted XML attribute."""
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace('"', "&quot;")


def _render_attrs(attrs: Attrs) -> str:
    return "".join(f' {key}="{escape_attr(value)}"' for key, value in attrs)


def render_value(metalib: Metalib, value: MacroBacked, *, context: str) -> str:
    """Render a macro-backed value: macro name when symbolic, number otherwise."""
    if isinstance(value, Symbolic):
        return metalib.macro(value.macro_index, context=context).name
    return str(value.value)


def dump_macro_xml(macro: Macro) -> str:
    attrs: Attrs = [("name", macro.name), ("value", str(macro.value))]
    if macro.desc:
        attrs.append(("desc", macro.desc))
    return f"<macro{_render_attrs(attrs)} />"


def dump_macrogroup_xml(metalib: Metalib, group: MacroGroup, *, indent: str = "\t") -> str:
    attrs: Attrs = [("name", group.name)]
    if group.desc:
        attrs.append(("desc", group.desc))
    lines = [f"{indent}<macrosgroup{_render_attrs(attrs)}>"]
    for idx in group.value_idx_map:
        macro = metalib.macro(idx, context=f"macrosgroup {group.name!r}")
        lines.append(f"{indent}{indent}{dump_macro_xml(macro)}")
    lines.append(f"{indent}</macrosgroup>")
    return "\n".join(lines)


def _entry_type_name(metalib: Metalib, entry: MetaEntry, record: str) -> str:
    if entry.ptr_meta != INVALID_METALIB_VALUE:
        type_name = metalib.meta_by_offset(entry.ptr_meta, context=f"type of {record}").name
    elif entry.idx_type != INVALID_METALIB_VALUE:
        type_name = type_info(entry.idx_type, context=f"type of {record}").xml_name
    else:
        type_name = ""
    if MetaEntryFlags.POINT_TYPE in entry.flags:
        return "*" + type_name
    if MetaEntryFlags.REFER_TYPE in entry.flags:
        return "@" + type_name
    return type_name


def dump_meta_entry_xml(metalib: Metalib, meta: Meta, entry: MetaEntry) -> str:
    """Render one `<entry .../>` line for `entry` of `meta`."""
    record = f"entry {entry.name!r} of {meta.name!r}"
    attrs: Attrs = [("name", entry.name), ("type", _entry_type_name(metalib, entry, record))]

    if entry.count.value > 1:
        attrs.append(("count", render_value(metalib, entry.count, context=f"count of {record}")))

    if entry.version.value != meta.base_version:
        attrs.append(("version", render_value(metalib, entry.version, context=f"version of {record}")))

    if isinstance(entry.id, Symbolic) or entry.id.value != INVALID_METALIB_VALUE:
        attrs.append(("id", render_value(metalib, entry.id, context=f"id of {record}")))

    if isinstance(entry.custom_h_unit_size, Symbolic):
        attrs.append(("size", render_value(metalib, entry.custom_h_unit_size, context=f"size of {record}")))
    elif entry.custom_h_unit_size.value > 0:
        # Stored in bytes; written in units of the entry's element type.
        unit = type_info(entry.idx_type, context=f"size of {record}").size
        size = entry.custom_h_unit_size.value // unit if unit > 0 else entry.custom_h_unit_size.value
        attrs.append(("size", str(size)))

    if entry.chinese_name:
        attrs.append(("cname", entry.chinese_name))
    if entry.desc:
        attrs.append(("desc", entry.desc))
    if MetaEntryDBFlags.UNIQUE in entry.db_flags:
        attrs.append(("unique", "true"))
    if MetaEntryDBFlags.NOT_NULL in entry.db_flags:
        attrs.append(("notnull", "true"))

    if entry.referer.h_off != INVALID_METALIB_VALUE:
        attrs.append(("refer", resolve_host_offset(metalib, meta, entry.referer.h_off)))

    if entry.ptr_default_val != INVALID_METALIB_VALUE:
        attrs.append(("default", entry.default_value))

    size_info = entry.size_info
    if size_info.unit_size > 0:
        if size_info.idx_size_type != INVALID_METALIB_VALUE:
            info = type_info(size_info.idx_size_type, context=f"sizeinfo of {record}")
            if info.kind not in TEXT_KINDS or info.xml_name == "int":
                attrs.append(("sizeinfo", info.xml_name))
        elif size_info.n_off != INVALID_METALIB_VALUE:
            attrs.append(("sizeinfo", resolve_net_offset(metalib, meta, size_info.n_off)))

    if entry.count.value > 1 and entry.order in (SortOrder.ASC.value, SortOrder.DESC.value):
        attrs.append(("sortMethod", SortOrder(entry.order).name.lower()))

    if entry.io != 0:
        if entry.io not in IO_MODES:
            raise UnsupportedAttributeError(f"io={entry.io}", record)
        attrs.append(("io", IO_MODES[entry.io]))

    if entry.kind is MetaPrimitiveType.UNION and entry.selector.h_off != INVALID_METALIB_VALUE:
        attrs.append(("select", resolve_host_offset(metalib, meta, entry.selector.h_off)))

    if MetaEntryFlags.HAS_MAXMIN_ID in entry.flags:
        attrs.append(("minid", render_value(metalib, entry.min_id, context=f"minid of {record}")))
        attrs.append(("maxid", render_value(metalib, entry.max_id, context=f"maxid of {record}")))

    if MetaEntryDBFlags.EXTEND_TO_TABLE in entry.db_flags:
        raise UnsupportedAttributeError("extendtotable", record)

    if entry.ptr_macros_group != INVALID_METALIB_VALUE:
        group = metalib.macro_group_by_offset(entry.ptr_macros_group, context=f"bindmacrosgroup of {record}")
        attrs.append(("bindmacrosgroup", group.name))

    if MetaEntryDBFlags.AUTO_INCREMENT in entry.db_flags:
        raise UnsupportedAttributeError("autoincrement", record)
    if entry.ptr_custom_attr != INVALID_METALIB_VALUE:
        raise UnsupportedAttributeError("customattr", record)

    return f"<entry{_render_attrs(attrs)}/>"


def _check_unsupported_struct_attrs(meta: Meta, record: str) -> None:
    if meta.primary_key_member_num > 0 and meta.ptr_primary_key_base != INVALID_METALIB_VALUE:
        raise UnsupportedAttributeError("primarykey", record)
    if meta.idx_split_table_factor != INVALID_METALIB_VALUE:
        raise UnsupportedAttributeError("splittablefactor", record)
    if meta.split_table_key.h_off != INVALID_METALIB_VALUE:
        raise UnsupportedAttributeError("splittablekey", record)
    # 0 when unused.
    if meta.split_table_rule_id != 0:
        raise UnsupportedAttributeError("splittablerule", record)
    if meta.ptr_dependon_struct != INVALID_METALIB_VALUE:
        raise UnsupportedAttributeError("dependonstruct", record)
    if MetaFlags.NEED_PREFIX_FOR_UNIQUENAME in meta.flags:
        raise UnsupportedAttributeError("uniqueentryname", record)


def dump_meta_xml(metalib: Metalib, meta: Meta, *, indent: str = "\t") -> str:
    """Render one `<struct>` / `<union>` block, entries included."""
    if meta.kind not in AGGREGATE_KINDS:
        raise UnknownTypeTagError(int(meta.kind), f"meta {meta.name!r} is neither struct nor union")
    tag = "union" if meta.is_union else "struct"
    record = f"{tag} {meta.name!r}"

    attrs: Attrs = [("name", meta.name)]
    attrs.append(("version", render_value(metalib, meta.version, context=f"version of {record}")))
    if MetaFlags.HAS_ID in meta.flags:
        attrs.append(("id", render_value(metalib, meta.id, context=f"id of {record}")))
    if meta.chinese_name:
        attrs.append(("cname", meta.chinese_name))
    if meta.desc:
        attrs.append(("desc", meta.desc))

    if tag == "struct":
        if isinstance(meta.custom_h_unit_size, Symbolic):
            attrs.append(("size", render_value(metalib, meta.custom_h_unit_size, context=f"size of {record}")))
        elif meta.custom_h_unit_size.value > 0:
            attrs.append(("size", str(meta.custom_h_unit_size.value)))

        # Defaults to 1.
        if meta.custom_align != 1:
            attrs.append(("align", str(meta.custom_align)))

        if meta.version_indicator.n_off != INVALID_METALIB_VALUE:
            attrs.append(("versionindicator", resolve_net_offset(metalib, meta, meta.version_indicator.n_off)))

        if meta.size_type.unit_size > 0:
            if meta.size_type.idx_size_type != INVALID_METALIB_VALUE:
                info = type_info(meta.size_type.idx_size_type, context=f"sizeinfo of {record}")
                attrs.append(("sizeinfo", info.xml_name))
            elif meta.size_type.n_off != INVALID_METALIB_VALUE:
                attrs.append(("sizeinfo", resolve_net_offset(metalib, meta, meta.size_type.n_off)))

        if meta.sort_key.sort_key_offset != INVALID_METALIB_VALUE:
            attrs.append(("sortkey", resolve_net_offset(metalib, meta, meta.sort_key.sort_key_offset)))

        _check_unsupported_struct_attrs(meta, record)

    lines = [f"{indent}<{tag}{_render_attrs(attrs)}>"]
    for entry in meta.entries:
        lines.append(f"{indent}{indent}{dump_meta_entry_xml(metalib, meta, entry)}")
    lines.append(f"{indent}</{tag}>")
    return "\n".join(lines)


def export_metalib_xml(metalib: Metalib, *, config: Optional[MetalibConfig] = None) -> str:
    """
    Render the whole metalib as TDR XML text.

    The text is built completely before being returned, so a failure anywhere
    leaves the caller with nothing to write.
    """
    cfg = config or DEFAULT_CONFIG
    indent = cfg.indent
    header = metalib.header

    attrs: Attrs = [
        ("tagsetversion", str(header.xml_tag_set_ver)),
        ("name", header.name),
        ("version", str(header.version)),
    ]
    if header.id != INVALID_METALIB_VALUE:
        attrs.append(("id", str(header.id)))

    lines = [XML_DECLARATION, f"<metalib{_render_attrs(attrs)}>"]
    for macro in metalib.macros:
        if not metalib.is_macro_in_group(macro):
            lines.append(f"{indent}{dump_macro_xml(macro)}")
    for group in metalib.macro_groups:
        lines.append(dump_macrogroup_xml(metalib, group, indent=indent))
    for meta in metalib.metas:
        lines.append(dump_meta_xml(metalib, meta, indent=indent))
    lines.append("</metalib>")
    return "\n".join(lines) + "\n"
