"""
XML export of decoded metalibs.

Public API:
- `export_metalib_xml` (whole document)
- `dump_macro_xml`, `dump_macrogroup_xml`, `dump_meta_xml`, `dump_meta_entry_xml` (single records)
"""

from __future__ import annotations

from .api import (  # noqa: F401
    XML_DECLARATION,
    dump_macro_xml,
    dump_macrogroup_xml,
    dump_meta_entry_xml,
    dump_meta_xml,
    escape_attr,
    export_metalib_xml,
    render_value,
)

__all__ = [
    "XML_DECLARATION",
    "export_metalib_xml",
    "dump_macro_xml",
    "dump_macrogroup_xml",
    "dump_meta_xml",
    "dump_meta_entry_xml",
    "escape_attr",
    "render_value",
]
