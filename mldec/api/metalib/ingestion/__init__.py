"""
Header parsing and body slicing for compiled metalib blobs.

Public API:
- `MetalibBlob`, `Header`, `SectionOffsets`
- `parse_header`, `section_offsets`, `slice_body`
"""

from __future__ import annotations

from .api import (  # noqa: F401
    METALIB_HEADER_SIZE,
    METALIB_NAME_LEN,
    Header,
    MetalibBlob,
    SectionOffsets,
    parse_header,
    section_offsets,
    slice_body,
)

__all__ = [
    "METALIB_HEADER_SIZE",
    "METALIB_NAME_LEN",
    "Header",
    "MetalibBlob",
    "SectionOffsets",
    "parse_header",
    "section_offsets",
    "slice_body",
]
