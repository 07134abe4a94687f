"""
Decoder and XML exporter for compiled TDR metalibs.

A metalib is the compiled binary form of a TDR XML schema (macros, macro
groups, struct/union definitions). This package reads one back into a
cross-referencing model and re-serializes it as the XML a schema author would
have written.

Scope / non-goals:
- Read-only. There is no encoder back to binary.
- Malformed input is surfaced as a `MetalibError`, never repaired.
- Attributes this tool does not reconstruct abort the export
  (`UnsupportedAttributeError`) instead of being guessed.

Subpackages (functional groups):
- `ingestion`: header parse + body slice.
- `decoder`: section decoding into the model (`Metalib`, `Meta`, `MetaEntry`, ...).
- `resolver`: byte offset inside a struct → dotted field path (net or host layout).
- `export`: model → XML text.

Preferred imports:
- `from mldec.api.metalib import decoder, export, resolver`
"""

from __future__ import annotations

# Submodules are the preferred import surface.
from . import cli as cli  # noqa: F401
from . import decoder as decoder  # noqa: F401
from . import export as export  # noqa: F401
from . import ingestion as ingestion  # noqa: F401
from . import resolver as resolver  # noqa: F401

# Small stable convenience surface.
from .config import DEFAULT_CONFIG, MetalibConfig, load_metalib_config  # noqa: F401
from .decoder import Metalib, decode_metalib, decode_metalib_blob, decode_metalib_dict  # noqa: F401
from .errors import (  # noqa: F401
    BufferTruncatedError,
    DanglingReferenceError,
    MetalibError,
    ResolutionFailedError,
    SectionLayoutError,
    UnknownTypeTagError,
    UnsupportedAttributeError,
)
from .export import export_metalib_xml  # noqa: F401
from .ingestion import Header, MetalibBlob, parse_header  # noqa: F401
from .resolver import resolve_field_path, resolve_host_offset, resolve_net_offset  # noqa: F401

__all__ = [
    # modules
    "cli",
    "decoder",
    "export",
    "ingestion",
    "resolver",
    # config
    "DEFAULT_CONFIG",
    "MetalibConfig",
    "load_metalib_config",
    # decoder
    "Metalib",
    "decode_metalib",
    "decode_metalib_blob",
    "decode_metalib_dict",
    # export
    "export_metalib_xml",
    # ingestion
    "Header",
    "MetalibBlob",
    "parse_header",
    # resolver
    "resolve_field_path",
    "resolve_net_offset",
    "resolve_host_offset",
    # errors
    "MetalibError",
    "BufferTruncatedError",
    "UnknownTypeTagError",
    "DanglingReferenceError",
    "ResolutionFailedError",
    "UnsupportedAttributeError",
    "SectionLayoutError",
]
