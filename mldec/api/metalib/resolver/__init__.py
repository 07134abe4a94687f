"""
Offset resolver: byte offset inside a struct's net or host layout → dotted field path.

Public API:
- `resolve_field_path`, `resolve_net_offset`, `resolve_host_offset`
"""

from __future__ import annotations

from .api import resolve_field_path, resolve_host_offset, resolve_net_offset  # noqa: F401

__all__ = ["resolve_field_path", "resolve_net_offset", "resolve_host_offset"]
