"""
Byte-exact decoder for compiled TDR metalib blobs.

Public API:
- `decode_metalib`, `decode_metalib_blob`, `decode_metalib_dict`, `summarize_metalib`
- the model records (`Metalib`, `Meta`, `MetaEntry`, `Macro`, `MacroGroup`, ...)
- `Literal` / `Symbolic` macro-backed values and `CoordinateSpace`.
"""

from __future__ import annotations

from .api import (  # noqa: F401
    META,
    META_ENTRY,
    decode_metalib,
    decode_metalib_blob,
    decode_metalib_dict,
    format_f32,
    format_float,
    read_default_value,
    summarize_metalib,
)
from .model import (  # noqa: F401
    INVALID_METALIB_VALUE,
    CoordinateSpace,
    Layout,
    Literal,
    Macro,
    MacroBacked,
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

__all__ = [
    "decode_metalib",
    "decode_metalib_blob",
    "decode_metalib_dict",
    "summarize_metalib",
    "format_f32",
    "format_float",
    "read_default_value",
    "META",
    "META_ENTRY",
    "INVALID_METALIB_VALUE",
    "CoordinateSpace",
    "Layout",
    "Literal",
    "Symbolic",
    "MacroBacked",
    "Macro",
    "MacroGroup",
    "Meta",
    "MetaEntry",
    "MetaFlags",
    "MetaEntryFlags",
    "MetaEntryDBFlags",
    "SortOrder",
    "Metalib",
]
