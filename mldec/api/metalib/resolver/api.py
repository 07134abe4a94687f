"""
Offset → dotted field path resolution.

Many metalib attributes (`refer`, `select`, `sizeinfo`, `versionindicator`,
`sortkey`) point at another field only by byte offset inside the owning
struct. This module walks a meta's entries to turn such an offset back into a
name like `header.body.len`.

Rules:
- Offsets are measured in exactly one coordinate space per call: NET (packed
  layout) or HOST (aligned in-memory layout). The two are never mixed.
- Entries are scanned in declaration order; the first entry whose
  `[start, start + size)` range contains the target wins. Union arms overlap
  by design, so declaration order is the tie-break.
- A struct/union-typed entry is descended into; a primitive entry matches only
  when the target is exactly its start offset.
- Array entries are named by their first element only: an offset inside the
  2nd..Nth element is not resolvable.
"""

from __future__ import annotations

from ..decoder.model import CoordinateSpace, Meta, Metalib
from ..errors import ResolutionFailedError


def resolve_field_path(metalib: Metalib, meta: Meta, target_offset: int, space: CoordinateSpace) -> str:
    """
    Return the dotted path of the primitive field starting at `target_offset`.

    Raises `ResolutionFailedError` when no entry range contains the offset, or
    when the offset lands inside a field rather than on a leaf's start.
    """
    base = 0
    prefix = ""
    current = meta
    # Any deeper nesting than the number of metas means a reference cycle.
    for _depth in range(len(metalib.metas) + 1):
        inside = None
        for entry in current.entries:
            layout = entry.layout(space)
            start = base + layout.offset
            end = base + layout.end
            if target_offset < start or target_offset >= end:
                continue
            if entry.is_aggregate:
                current = metalib.meta_by_offset(entry.ptr_meta, context=f"entry {entry.name!r} of {current.name!r}")
                base = start
                prefix = f"{prefix}{entry.name}."
                break
            if start == target_offset:
                return f"{prefix}{entry.name}"
            # Inside a primitive; a later overlapping (union) entry may still start here.
            inside = inside or f"{prefix}{entry.name}"
        else:
            if inside:
                reason = f"offset falls inside field {inside!r}"
            elif prefix:
                reason = f"no field of {prefix.rstrip('.')!r} contains offset"
            else:
                reason = "no field contains offset"
            raise ResolutionFailedError(meta.name, target_offset, space.value, reason)
    raise ResolutionFailedError(meta.name, target_offset, space.value, "nested struct references form a cycle")


def resolve_net_offset(metalib: Metalib, meta: Meta, net_offset: int) -> str:
    """Resolve an offset in the packed (net) layout of `meta`."""
    return resolve_field_path(metalib, meta, net_offset, CoordinateSpace.NET)


def resolve_host_offset(metalib: Metalib, meta: Meta, host_offset: int) -> str:
    """Resolve an offset in the aligned (host) layout of `meta`."""
    return resolve_field_path(metalib, meta, host_offset, CoordinateSpace.HOST)
