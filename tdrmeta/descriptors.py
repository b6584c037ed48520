from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Tuple, Union

from .primitives import EntryDBFlags, EntryFlags, MetaFlags, MetaType, PrimitiveInfo

NO_VALUE = -1


# --------------------------------------------------------------------------- #
# Raw records, one per fixed-layout structure in the metalib body.
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class MetalibHeader:
    offset: int
    magic: int
    build: int
    platform_arch: int
    size: int
    id: int
    xml_tag_set_ver: int
    max_meta_num: int
    cur_meta_num: int
    max_macro_num: int
    cur_macro_num: int
    max_macros_group_num: int
    cur_macros_group_num: int
    version: int
    ptr_macro: int
    ptr_id: int
    ptr_name: int
    ptr_map: int
    ptr_meta: int
    ptr_last_meta: int
    free_str_buf_size: int
    ptr_str_buf: int
    ptr_free_str_buf: int
    ptr_macro_group_map: int
    ptr_macros_group: int
    name: str


@dataclass(frozen=True)
class MacroRecord:
    offset: int
    name: str
    value: int
    desc: str


@dataclass(frozen=True)
class TableEntry:
    """Row of the id, name or map table: (key, meta index or pointer)."""

    offset: int
    key: int
    target: int


@dataclass(frozen=True)
class SizeInfo:
    net_offset: int = NO_VALUE
    host_offset: int = NO_VALUE
    unit_size: int = 0
    size_type: int = NO_VALUE


@dataclass(frozen=True)
class Selector:
    unit_size: int = 0
    host_offset: int = NO_VALUE
    entry_ptr: int = NO_VALUE


@dataclass(frozen=True)
class Redirector:
    net_offset: int = NO_VALUE
    host_offset: int = NO_VALUE
    unit_size: int = 0


@dataclass(frozen=True)
class SortKeyInfo:
    sort_entry: int = NO_VALUE
    offset: int = NO_VALUE
    sort_key_meta: int = NO_VALUE


@dataclass(frozen=True)
class EntryRecord:
    offset: int
    id: int
    version: int
    kind: MetaType
    name: str
    h_real_size: int
    n_real_size: int
    h_unit_size: int
    n_unit_size: int
    custom_h_unit_size: int
    count: int
    n_off: int
    h_off: int
    idx_id: int
    idx_version: int
    idx_count: int
    idx_type: int
    idx_custom_h_unit_size: int
    flags: EntryFlags
    db_flags: EntryDBFlags
    order: int
    size_info: SizeInfo
    referer: Selector
    selector: Selector
    io: int
    idx_io: int
    ptr_meta: int
    max_id: int
    min_id: int
    max_id_idx: int
    min_id_idx: int
    default_val_len: int
    desc: str
    cname: str
    ptr_default_val: int
    ptr_macros_group: int
    ptr_custom_attr: int
    bit_offset: int
    bit_width: int
    default: str | None = None


@dataclass(frozen=True)
class MetaRecord:
    offset: int
    flags: MetaFlags
    id: int
    base_version: int
    cur_version: int
    kind: MetaType
    mem_size: int
    n_unit_size: int
    h_unit_size: int
    custom_h_unit_size: int
    idx_custom_h_unit_size: int
    entries_num: int
    idx: int
    idx_id: int
    idx_type: int
    idx_version: int
    custom_align: int
    valid_align: int
    size_type: SizeInfo
    version_indicator: Redirector
    sort_key: SortKeyInfo
    name: str
    desc: str
    cname: str
    split_table_rule_id: int
    primary_key_member_num: int
    ptr_primary_key_base: int
    ptr_dependon_struct: int


@dataclass(frozen=True)
class MacroGroupRecord:
    offset: int
    name: str
    desc: str
    cur_macro_count: int
    max_macro_count: int
    name_indices: Tuple[int, ...]
    value_indices: Tuple[int, ...]


# --------------------------------------------------------------------------- #
# Type descriptors
# --------------------------------------------------------------------------- #


class TypeKind(Enum):
    PRIMITIVE = "primitive"
    STRUCT = "struct"
    ENUM = "enum"
    ARRAY = "array"
    BITFIELD = "bitfield"
    UNION = "union"
    POINTER = "pointer"
    ALIAS = "alias"


class RefSpace(Enum):
    ID = "id"
    META = "meta"  # body offset of a meta record
    GROUP = "group"  # body offset of a macro-group record
    PRIMITIVE = "primitive"  # row of the primitive table


@dataclass(frozen=True)
class TypeRef:
    space: RefSpace
    value: int

    @classmethod
    def to(cls, type_id: int) -> "TypeRef":
        return cls(RefSpace.ID, type_id)

    @property
    def resolved(self) -> bool:
        return self.space is RefSpace.ID


@dataclass(frozen=True)
class ArrayLength:
    """
    ``count`` is the declared element count (the maximum for counted arrays);
    ``refer`` names the sibling field that carries the live count.
    """

    count: int
    macro: str | None = None
    refer: str | None = None

    @property
    def counted(self) -> bool:
        return self.refer is not None

    def __str__(self) -> str:
        if self.refer is not None:
            return self.refer
        return self.macro or str(self.count)


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: TypeRef
    base: TypeRef
    offset: int
    net_offset: int
    size: int
    length: ArrayLength | None = None
    pointer: str = ""
    bit_offset: int | None = None
    bit_width: int | None = None
    enum: TypeRef | None = None
    select: str | None = None
    sizeinfo: str | None = None
    record: EntryRecord | None = field(default=None, compare=False, repr=False)

    @property
    def refer(self) -> str | None:
        return self.length.refer if self.length else None


@dataclass(frozen=True)
class EnumValue:
    name: str
    value: int
    desc: str = ""


@dataclass(frozen=True)
class PrimitivePayload:
    index: int
    info: PrimitiveInfo


@dataclass(frozen=True)
class CompositePayload:
    fields: Tuple[FieldDescriptor, ...]
    record: MetaRecord | None = field(default=None, compare=False, repr=False)
    version_indicator: str | None = None
    sizeinfo: str | None = None
    sort_key: str | None = None


@dataclass(frozen=True)
class EnumPayload:
    values: Tuple[EnumValue, ...]
    record: MacroGroupRecord | None = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ArrayPayload:
    element: TypeRef
    length: ArrayLength


@dataclass(frozen=True)
class BitfieldPayload:
    storage: TypeRef
    bit_offset: int
    bit_width: int


@dataclass(frozen=True)
class PointerPayload:
    target: TypeRef
    reference: bool = False

    @property
    def sigil(self) -> str:
        return "@" if self.reference else "*"


@dataclass(frozen=True)
class AliasPayload:
    target: TypeRef


Payload = Union[
    PrimitivePayload,
    CompositePayload,
    EnumPayload,
    ArrayPayload,
    BitfieldPayload,
    PointerPayload,
    AliasPayload,
]


@dataclass(frozen=True)
class TypeDescriptor:
    id: int
    kind: TypeKind
    name: str
    size: int
    align: int
    payload: Payload
    offset: int = NO_VALUE

    @property
    def fields(self) -> Tuple[FieldDescriptor, ...]:
        if isinstance(self.payload, CompositePayload):
            return self.payload.fields
        return ()

    @property
    def values(self) -> Tuple[EnumValue, ...]:
        if isinstance(self.payload, EnumPayload):
            return self.payload.values
        return ()

    def field(self, name: str) -> FieldDescriptor:
        for item in self.fields:
            if item.name == name:
                return item
        raise KeyError(name)


def iter_references(descriptor: TypeDescriptor) -> Iterator[TypeRef]:
    """Every type reference held by ``descriptor``."""

    kind = descriptor.kind
    payload = descriptor.payload
    if kind in (TypeKind.STRUCT, TypeKind.UNION):
        for item in payload.fields:
            yield item.type
            yield item.base
            if item.enum is not None:
                yield item.enum
    elif kind is TypeKind.ARRAY:
        yield payload.element
    elif kind is TypeKind.BITFIELD:
        yield payload.storage
    elif kind is TypeKind.POINTER:
        yield payload.target
    elif kind is TypeKind.ALIAS:
        yield payload.target
    elif kind in (TypeKind.PRIMITIVE, TypeKind.ENUM):
        return
    else:
        raise ValueError(f"unhandled descriptor kind {kind!r}")
