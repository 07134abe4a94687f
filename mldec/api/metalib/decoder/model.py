"""
Data model for decoded metalibs.

This file contains only data shapes and lookups over them: the actual byte
decoding lives in `mldec.api.metalib.decoder.api`.

Identity:
- Macros, metas and macro groups are identified by their body-relative byte
  offset (`offset`). Other records refer to metas and macro groups by that
  offset, and to macros by their index in the macro table.
- `Metalib` builds its offset indexes once, right after decode; all records
  are frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

from ..errors import DanglingReferenceError
from ..ingestion import Header
from ..primitive_types import MetaPrimitiveType

INVALID_METALIB_VALUE = -1


class MetaFlags(IntFlag):
    FIXED_SIZE = 0x0001
    HAS_ID = 0x0002
    RESOLVED = 0x0004
    VARIABLE = 0x0008
    STRICT_INPUT = 0x0010
    HAS_AUTOINCREMENT_ENTRY = 0x0020
    NEED_PREFIX_FOR_UNIQUENAME = 0x0040
    HAS_EXTEND_META = 0x0080
    IS_EXTEND_META = 0x0100
    UNKNOWN_0200 = 0x0200


class MetaEntryFlags(IntFlag):
    RESOLVED = 0x0001
    # "*" type
    POINT_TYPE = 0x0002
    # "@" type
    REFER_TYPE = 0x0004
    HAS_ID = 0x0008
    HAS_MAXMIN_ID = 0x0010
    FIXED_SIZE = 0x0020
    # Entry is the element-count source of another entry.
    REFER_COUNT = 0x0040
    UNKNOWN_0080 = 0x0080
    UNKNOWN_0100 = 0x0100
    UNKNOWN_0200 = 0x0200


class MetaEntryDBFlags(IntFlag):
    UNIQUE = 0x01
    NOT_NULL = 0x02
    EXTEND_TO_TABLE = 0x04
    PRIMARY_KEY = 0x10
    AUTO_INCREMENT = 0x20


class SortOrder(Enum):
    NONE = 0
    ASC = 1
    DESC = 2


class CoordinateSpace(Enum):
    """Which of an entry's two layouts an offset is measured in."""

    NET = "net"
    HOST = "host"


@dataclass(frozen=True)
class Literal:
    """An attribute value written as a plain number."""

    value: int


@dataclass(frozen=True)
class Symbolic:
    """An attribute value backed by the macro at `macro_index` (`value` is its compiled number)."""

    value: int
    macro_index: int


MacroBacked = Union[Literal, Symbolic]


def macro_backed(value: int, macro_index: int) -> MacroBacked:
    """Build the tagged value for a `(value, idx_*)` pair read from a record."""
    if macro_index == INVALID_METALIB_VALUE:
        return Literal(value)
    return Symbolic(value, macro_index)


@dataclass(frozen=True)
class Layout:
    """Offset and unit size of an entry in one coordinate space."""

    offset: int
    size: int

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True)
class SizeInfo:
    offset: int
    n_off: int
    h_off: int
    unit_size: int
    idx_size_type: int


@dataclass(frozen=True)
class Redirector:
    offset: int
    n_off: int
    h_off: int
    unit_size: int


@dataclass(frozen=True)
class Selector:
    offset: int
    unit_size: int
    h_off: int
    ptr_entry: int


@dataclass(frozen=True)
class SortKeyInfo:
    offset: int
    idx_sort_entry: int
    sort_key_offset: int
    ptr_sort_key_meta: int


@dataclass(frozen=True)
class DBKeyInfo:
    offset: int
    h_off: int
    ptr_entry: int


@dataclass(frozen=True)
class IdEntry:
    offset: int
    # Observed as -1 in every sample.
    id: int
    idx: int


@dataclass(frozen=True)
class NameEntry:
    offset: int
    ptr: int
    idx: int


@dataclass(frozen=True)
class MapEntry:
    offset: int
    # Body offset of a meta.
    ptr: int
    # Matches `Meta.mem_size`.
    size: int


@dataclass(frozen=True)
class Macro:
    offset: int
    name: str
    value: int
    desc: str
    unk: int


@dataclass(frozen=True)
class MacroGroup:
    """
    A named group of macros.

    `name_idx_map` and `value_idx_map` hold the same macro indices in two
    orders; only `value_idx_map` is used for membership and export.
    """

    offset: int
    cur_macro_count: int
    max_macro_count: int
    desc: str
    ptr_name_idx_map: int
    ptr_value_idx_map: int
    name: str
    name_idx_map: Tuple[int, ...]
    value_idx_map: Tuple[int, ...]


@dataclass(frozen=True)
class MetaEntry:
    """One field of a struct/union definition."""

    offset: int
    id: MacroBacked
    version: MacroBacked
    kind: MetaPrimitiveType
    name: str
    h_real_size: int
    n_real_size: int
    net: Layout
    host: Layout
    custom_h_unit_size: MacroBacked
    count: MacroBacked
    idx_type: int
    flags: MetaEntryFlags
    db_flags: MetaEntryDBFlags
    order: int
    size_info: SizeInfo
    referer: Selector
    selector: Selector
    io: int
    idx_io: int
    ptr_meta: int
    max_id: MacroBacked
    min_id: MacroBacked
    default_val_len: int
    desc: str
    chinese_name: str
    ptr_default_val: int
    ptr_macros_group: int
    ptr_custom_attr: int
    off_to_meta: int
    field_a8: int
    field_ac: int
    field_b0: int
    # Decoded text of the value at `ptr_default_val` ("" when absent).
    default_value: str = ""

    @property
    def is_aggregate(self) -> bool:
        """True when the entry refers to another struct/union definition."""
        return self.ptr_meta != INVALID_METALIB_VALUE

    def layout(self, space: CoordinateSpace) -> Layout:
        return self.net if space is CoordinateSpace.NET else self.host


@dataclass(frozen=True)
class Meta:
    """One struct or union definition and its ordered entries."""

    offset: int
    flags: MetaFlags
    id: MacroBacked
    base_version: int
    cur_version: int
    kind: MetaPrimitiveType
    mem_size: int
    n_unit_size: int
    h_unit_size: int
    custom_h_unit_size: MacroBacked
    uncertain_max_sub_id: int
    entries_num: int
    unk_table_count: int
    unk_table_ptr: int
    unk_table_unk: int
    ptr_meta: int
    idx: int
    idx_type: int
    version: MacroBacked
    custom_align: int
    valid_align: int
    uncertain_version_indicator_min_ver: int
    size_type: SizeInfo
    version_indicator: Redirector
    sort_key: SortKeyInfo
    name: str
    desc: str
    chinese_name: str
    split_table_factor: int
    split_table_rule_id: int
    primary_key_member_num: int
    idx_split_table_factor: int
    split_table_key: DBKeyInfo
    ptr_primary_key_base: int
    ptr_dependon_struct: int
    field_ac: int
    field_b0: int
    field_b4: int
    entries: Tuple[MetaEntry, ...] = ()

    @property
    def is_union(self) -> bool:
        return self.kind is MetaPrimitiveType.UNION


@dataclass
class Metalib:
    """
    The decoded, cross-referencing model of one metalib.

    Tables keep on-disk order. Lookups by identity offset go through indexes
    built in `__post_init__`; a miss is a `DanglingReferenceError`.
    """

    header: Header
    macros: Tuple[Macro, ...]
    ids: Tuple[IdEntry, ...]
    names: Tuple[NameEntry, ...]
    meta_map: Tuple[MapEntry, ...]
    metas: Tuple[Meta, ...]
    macro_groups: Tuple[MacroGroup, ...]
    source: str = ""
    _metas_by_offset: Dict[int, Meta] = field(init=False, repr=False, compare=False)
    _groups_by_offset: Dict[int, MacroGroup] = field(init=False, repr=False, compare=False)
    _grouped_macros: FrozenSet[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._metas_by_offset = {meta.offset: meta for meta in self.metas}
        self._groups_by_offset = {group.offset: group for group in self.macro_groups}
        grouped = set()
        for group in self.macro_groups:
            for idx in group.value_idx_map:
                grouped.add(self.macro(idx, context=f"macrosgroup {group.name!r}").offset)
        self._grouped_macros = frozenset(grouped)

    def macro(self, index: int, *, context: Optional[str] = None) -> Macro:
        """Return the macro at table index `index`."""
        if index < 0 or index >= len(self.macros):
            raise DanglingReferenceError("macro index", index, context)
        return self.macros[index]

    def meta_by_offset(self, offset: int, *, context: Optional[str] = None) -> Meta:
        """Return the meta whose record starts at body offset `offset`."""
        meta = self._metas_by_offset.get(offset)
        if meta is None:
            raise DanglingReferenceError("meta offset", offset, context)
        return meta

    def meta_by_id(self, meta_id: int) -> Meta:
        """Return the first meta with the given numeric id."""
        if meta_id != INVALID_METALIB_VALUE:
            for meta in self.metas:
                if meta.id.value == meta_id:
                    return meta
        raise DanglingReferenceError("meta id", meta_id)

    def meta_by_name(self, name: str) -> Meta:
        for meta in self.metas:
            if meta.name == name:
                return meta
        raise KeyError(name)

    def macro_group_by_offset(self, offset: int, *, context: Optional[str] = None) -> MacroGroup:
        """Return the macro group whose record starts at body offset `offset`."""
        group = self._groups_by_offset.get(offset)
        if group is None:
            raise DanglingReferenceError("macrosgroup offset", offset, context)
        return group

    def is_macro_in_group(self, macro: Macro) -> bool:
        """True if `macro` is listed by any macro group."""
        return macro.offset in self._grouped_macros

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe view (enums and flags flattened to ints / names)."""
        return {
            "source": self.source,
            "header": self.header.to_dict(),
            "macros": [_record_dict(m) for m in self.macros],
            "ids": [_record_dict(r) for r in self.ids],
            "names": [_record_dict(r) for r in self.names],
            "meta_map": [_record_dict(r) for r in self.meta_map],
            "metas": [_record_dict(m) for m in self.metas],
            "macro_groups": [_record_dict(g) for g in self.macro_groups],
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, IntFlag):
        return int(value)
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, Literal):
        return value.value
    if isinstance(value, Symbolic):
        return {"value": value.value, "macro_index": value.macro_index}
    if isinstance(value, (tuple, list)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "__dataclass_fields__"):
        return _record_dict(value)
    return value


def _record_dict(record: Any) -> Dict[str, Any]:
    return {name: _jsonable(getattr(record, name)) for name in record.__dataclass_fields__}
