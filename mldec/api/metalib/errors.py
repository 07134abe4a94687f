"""
Error types for metalib decoding, offset resolution and export.

The compiled metalib format is undocumented. Errors are the main signal that
the format model here is incomplete (or that the input is a different format
version), so every error carries the record / offset / coordinate space that
triggered it.

All of these are fatal to a run: there is no retry and no partial output.
"""

from __future__ import annotations

from typing import Optional


class MetalibError(Exception):
    """Base error for metalib decode/resolve/export failures."""


class BufferTruncatedError(MetalibError):
    """Raised when a read would run past the end of the available bytes."""

    def __init__(self, what: str, offset: int, length: int, available: int):
        self.what = what
        self.offset = offset
        self.length = length
        self.available = available
        super().__init__(
            f"truncated read of {what}: wanted {length} byte(s) at 0x{offset:X}, only {available} available"
        )


class UnknownTypeTagError(MetalibError):
    """Raised when a primitive type tag or type-table index is outside the known catalogue."""

    def __init__(self, tag: int, context: str):
        self.tag = tag
        self.context = context
        super().__init__(f"unknown type tag {tag} ({context})")


class DanglingReferenceError(MetalibError):
    """Raised when an identity offset or macro index has no decoded record behind it."""

    def __init__(self, kind: str, key: int, context: Optional[str] = None):
        self.kind = kind
        self.key = key
        self.context = context
        msg = f"dangling {kind} reference {key}"
        if context:
            msg += f" ({context})"
        super().__init__(msg)


class ResolutionFailedError(MetalibError):
    """Raised when no field path exists for an offset in the given coordinate space."""

    def __init__(self, meta_name: str, offset: int, space: str, reason: str = "no field starts at offset"):
        self.meta_name = meta_name
        self.offset = offset
        self.space = space
        self.reason = reason
        super().__init__(f"failed to resolve {space} offset 0x{offset:X} in {meta_name!r}: {reason}")


class UnsupportedAttributeError(MetalibError):
    """Raised when a record uses an attribute this tool deliberately does not reconstruct."""

    def __init__(self, attribute: str, record: str):
        self.attribute = attribute
        self.record = record
        super().__init__(f"unsupported attribute {attribute!r} on {record}")


class SectionLayoutError(MetalibError):
    """Raised when a self-describing record disagrees with its own relative pointers."""
