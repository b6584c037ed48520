"""
Arena of decoded type descriptors.

Descriptors are registered flat, in table order, with every cross reference
still raw. ``finalize()`` resolves the references by lookup (never by
re-decoding), which is what keeps self-referential and mutually recursive
structs finite.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterator, List, Sequence, Tuple

from .descriptors import (
    NO_VALUE,
    AliasPayload,
    ArrayLength,
    ArrayPayload,
    BitfieldPayload,
    CompositePayload,
    FieldDescriptor,
    MacroRecord,
    PointerPayload,
    PrimitivePayload,
    RefSpace,
    TypeDescriptor,
    TypeKind,
    TypeRef,
    iter_references,
)
from .errors import DanglingMacroReference, DanglingTypeReference, UnknownTypeKind, UnresolvedFieldOffset
from .primitives import PRIMITIVES, EntryFlags, MetaFlags, MetaType

COMPOSITE_KINDS = (TypeKind.STRUCT, TypeKind.UNION)


@dataclass(frozen=True)
class TypeGraph:
    types: Tuple[TypeDescriptor, ...]
    roots: Tuple[int, ...]
    macros: Tuple[MacroRecord, ...] = ()

    def __len__(self) -> int:
        return len(self.types)

    def __iter__(self) -> Iterator[TypeDescriptor]:
        return iter(self.types)

    def get(self, type_id: int) -> TypeDescriptor:
        if not 0 <= type_id < len(self.types):
            raise DanglingTypeReference(NO_VALUE, type_id)
        return self.types[type_id]

    def resolve(self, ref: TypeRef) -> TypeDescriptor:
        if not ref.resolved:
            raise DanglingTypeReference(NO_VALUE, ref.value)
        return self.get(ref.value)

    def by_name(self, name: str) -> TypeDescriptor:
        for type_id in self.roots:
            descriptor = self.types[type_id]
            if descriptor.name == name:
                return descriptor
        raise KeyError(name)

    def of_kind(self, *kinds: TypeKind) -> List[TypeDescriptor]:
        return [descriptor for descriptor in self.types if descriptor.kind in kinds]

    def type_name(self, type_id: int) -> str:
        """Compact C-like spelling, e.g. ``int32``, ``*Node`` or ``uint8[16]``."""

        descriptor = self.get(type_id)
        payload = descriptor.payload
        if descriptor.kind is TypeKind.ARRAY:
            return f"{self.type_name(payload.element.value)}[{payload.length}]"
        if descriptor.kind is TypeKind.POINTER:
            return f"{payload.sigil}{self.type_name(payload.target.value)}"
        if descriptor.kind is TypeKind.BITFIELD:
            return f"{self.type_name(payload.storage.value)}:{payload.bit_width}"
        return descriptor.name

    def macro_name(self, index: int) -> str:
        return self.macros[index].name

    def field_path(self, type_id: int, offset: int, *, net: bool = False) -> str:
        return find_field_path(self._meta_by_offset, self.get(type_id), offset, net=net)

    def _meta_by_offset(self, pointer: int) -> TypeDescriptor | None:
        for descriptor in self.types:
            if descriptor.kind in COMPOSITE_KINDS and descriptor.offset == pointer:
                return descriptor
        return None


def find_field_path(
    lookup: Callable[[int], TypeDescriptor | None],
    descriptor: TypeDescriptor,
    offset: int,
    *,
    net: bool = False,
    base: int = 0,
    prefix: str = "",
    seen: frozenset = frozenset(),
) -> str:
    """
    Name of the field that starts at ``offset`` inside ``descriptor``.

    Offsets inside a nested struct member resolve to a dotted path
    (``header.len``). ``lookup`` maps a meta pointer to its descriptor.
    A struct member that embeds one of its enclosing metas by value cannot
    be resolved and raises :class:`UnresolvedFieldOffset`.
    """

    seen = seen | {descriptor.offset}
    for item in descriptor.fields:
        record = item.record
        if record is None:
            continue
        start = base + (item.net_offset if net else item.offset)
        unit = record.n_unit_size if net else record.h_unit_size
        if start > offset or start + unit <= offset:
            continue
        if record.kind is MetaType.STRUCT and not item.pointer:
            nested = lookup(record.ptr_meta)
            if nested is None:
                raise DanglingTypeReference(descriptor.id, record.ptr_meta)
            if nested.offset in seen:
                raise UnresolvedFieldOffset(descriptor.id, offset)
            return find_field_path(
                lookup, nested, offset, net=net, base=start, prefix=f"{prefix}{item.name}.", seen=seen
            )
        if start == offset:
            return f"{prefix}{item.name}"
    raise UnresolvedFieldOffset(descriptor.id, offset)


class TypeGraphBuilder:
    """Owns the arena for one decode session."""

    def __init__(self, macros: Sequence[MacroRecord] = ()) -> None:
        self.macros: Tuple[MacroRecord, ...] = tuple(macros)
        self._arena: List[TypeDescriptor] = []
        self._roots: List[int] = []
        self._offsets: Dict[Tuple[RefSpace, int], int] = {}
        self._interned: Dict[tuple, int] = {}
        self._finalized = False

    def __len__(self) -> int:
        return len(self._arena)

    def register(self, descriptor: TypeDescriptor) -> int:
        if self._finalized:
            raise RuntimeError("cannot register types after finalize()")
        type_id = len(self._arena)
        self._arena.append(replace(descriptor, id=type_id))
        self._roots.append(type_id)
        if descriptor.offset != NO_VALUE:
            if descriptor.kind in COMPOSITE_KINDS:
                self._offsets[(RefSpace.META, descriptor.offset)] = type_id
            elif descriptor.kind is TypeKind.ENUM:
                self._offsets[(RefSpace.GROUP, descriptor.offset)] = type_id
        return type_id

    def register_alias(self, name: str, target: int) -> int:
        """Register ``name`` as another name for the type at ``target``."""

        referenced = self.get(target)
        return self.register(
            TypeDescriptor(
                id=NO_VALUE,
                kind=TypeKind.ALIAS,
                name=name,
                size=referenced.size,
                align=referenced.align,
                payload=AliasPayload(target=TypeRef.to(target)),
            )
        )

    def get(self, type_id: int) -> TypeDescriptor:
        if not 0 <= type_id < len(self._arena):
            raise DanglingTypeReference(NO_VALUE, type_id)
        return self._arena[type_id]

    def finalize(self) -> TypeGraph:
        if self._finalized:
            raise RuntimeError("finalize() already called")
        self._finalized = True

        registered = list(self._roots)
        for type_id in registered:
            descriptor = self._arena[type_id]
            if descriptor.kind in COMPOSITE_KINDS:
                fields = tuple(self._resolve_field(type_id, item) for item in descriptor.fields)
                self._arena[type_id] = replace(descriptor, payload=replace(descriptor.payload, fields=fields))

        # Field-offset selectors can point into nested structs, so they are
        # resolved only after every composite has its final field list.
        for type_id in registered:
            descriptor = self._arena[type_id]
            if descriptor.kind in COMPOSITE_KINDS:
                self._arena[type_id] = self._resolve_selectors(descriptor)
                self._check_macros(self._arena[type_id])

        for descriptor in self._arena:
            for ref in iter_references(descriptor):
                if not ref.resolved or not 0 <= ref.value < len(self._arena):
                    raise DanglingTypeReference(descriptor.id, ref.value)

        return TypeGraph(types=tuple(self._arena), roots=tuple(self._roots), macros=self.macros)

    # ------------------------------------------------------------------ #

    def _append(self, key: tuple, build: Callable[[int], TypeDescriptor]) -> int:
        type_id = self._interned.get(key)
        if type_id is None:
            type_id = len(self._arena)
            self._arena.append(build(type_id))
            self._interned[key] = type_id
        return type_id

    def _primitive(self, index: int) -> int:
        info = PRIMITIVES[index]
        return self._append(
            (TypeKind.PRIMITIVE, index),
            lambda type_id: TypeDescriptor(
                id=type_id,
                kind=TypeKind.PRIMITIVE,
                name=info.xml_name,
                size=info.size,
                align=max(info.size, 1),
                payload=PrimitivePayload(index=index, info=info),
            ),
        )

    def _lookup(self, source: int, ref: TypeRef) -> int:
        if ref.space is RefSpace.ID:
            return ref.value
        if ref.space is RefSpace.PRIMITIVE:
            return self._primitive(ref.value)
        type_id = self._offsets.get((ref.space, ref.value))
        if type_id is None:
            raise DanglingTypeReference(source, ref.value)
        return type_id

    def _meta_by_offset(self, pointer: int) -> TypeDescriptor | None:
        type_id = self._offsets.get((RefSpace.META, pointer))
        return None if type_id is None else self._arena[type_id]

    def _resolve_field(self, source: int, item: FieldDescriptor) -> FieldDescriptor:
        base = self._lookup(source, item.base)
        type_id = base
        record = item.record

        if item.bit_width is not None:
            storage = type_id
            size = self._arena[storage].size
            type_id = self._append(
                (TypeKind.BITFIELD, storage, item.bit_offset, item.bit_width),
                lambda new_id: TypeDescriptor(
                    id=new_id,
                    kind=TypeKind.BITFIELD,
                    name="",
                    size=size,
                    align=max(size, 1),
                    payload=BitfieldPayload(
                        storage=TypeRef.to(storage), bit_offset=item.bit_offset, bit_width=item.bit_width
                    ),
                ),
            )

        if item.pointer:
            target = type_id
            reference = item.pointer == "@"
            width = record.h_unit_size if record is not None else 0
            type_id = self._append(
                (TypeKind.POINTER, target, reference, width),
                lambda new_id: TypeDescriptor(
                    id=new_id,
                    kind=TypeKind.POINTER,
                    name="",
                    size=width,
                    align=max(width, 1),
                    payload=PointerPayload(target=TypeRef.to(target), reference=reference),
                ),
            )

        length = item.length
        if length is not None:
            length = self._array_length(source, item, length)
            element = type_id
            element_size = self._arena[element].size
            element_align = self._arena[element].align
            type_id = self._append(
                (TypeKind.ARRAY, element, length),
                lambda new_id: TypeDescriptor(
                    id=new_id,
                    kind=TypeKind.ARRAY,
                    name="",
                    size=element_size * max(length.count, 0),
                    align=element_align,
                    payload=ArrayPayload(element=TypeRef.to(element), length=length),
                ),
            )

        enum = None if item.enum is None else TypeRef.to(self._lookup(source, item.enum))
        return replace(item, type=TypeRef.to(type_id), base=TypeRef.to(base), length=length, enum=enum)

    def _array_length(self, source: int, item: FieldDescriptor, length: ArrayLength) -> ArrayLength:
        record = item.record
        if record is None:
            return length
        macro = None
        if record.idx_count != NO_VALUE:
            macro = self._macro(source, record.idx_count).name
        refer = None
        if record.referer.host_offset != NO_VALUE:
            refer = find_field_path(self._meta_by_offset, self._arena[source], record.referer.host_offset)
        return ArrayLength(count=length.count, macro=macro, refer=refer)

    def _resolve_selectors(self, descriptor: TypeDescriptor) -> TypeDescriptor:
        payload: CompositePayload = descriptor.payload
        lookup = self._meta_by_offset

        fields = []
        for item in descriptor.fields:
            record = item.record
            select = sizeinfo = None
            if record is not None:
                if record.kind is MetaType.UNION and record.selector.host_offset != NO_VALUE:
                    select = find_field_path(lookup, descriptor, record.selector.host_offset)
                sizeinfo = self._sizeinfo(descriptor, record.size_info, record.offset, entry=True)
            fields.append(replace(item, select=select, sizeinfo=sizeinfo))

        meta = payload.record
        version_indicator = sizeinfo = sort_key = None
        if meta is not None and descriptor.kind is TypeKind.STRUCT:
            if meta.version_indicator.net_offset != NO_VALUE:
                version_indicator = find_field_path(lookup, descriptor, meta.version_indicator.net_offset, net=True)
            sizeinfo = self._sizeinfo(descriptor, meta.size_type, meta.offset, entry=False)
            if meta.sort_key.offset != NO_VALUE:
                sort_key = find_field_path(lookup, descriptor, meta.sort_key.offset, net=True)

        return replace(
            descriptor,
            payload=replace(
                payload,
                fields=tuple(fields),
                version_indicator=version_indicator,
                sizeinfo=sizeinfo,
                sort_key=sort_key,
            ),
        )

    def _sizeinfo(self, descriptor: TypeDescriptor, info, record_offset: int, *, entry: bool) -> str | None:
        if info.unit_size <= 0:
            return None
        if info.size_type != NO_VALUE:
            if not 0 <= info.size_type < len(PRIMITIVES):
                raise UnknownTypeKind(info.size_type, record_offset)
            primitive = PRIMITIVES[info.size_type]
            # String-typed size prefixes are implied by the entry type itself.
            if entry and primitive.base in (MetaType.STRING, MetaType.WSTRING):
                return None
            return primitive.xml_name
        if info.net_offset != NO_VALUE:
            return find_field_path(self._meta_by_offset, descriptor, info.net_offset, net=True)
        return None

    def _macro(self, source: int, index: int) -> MacroRecord:
        if not 0 <= index < len(self.macros):
            raise DanglingMacroReference(source, index)
        return self.macros[index]

    def _check_macros(self, descriptor: TypeDescriptor) -> None:
        meta = descriptor.payload.record
        indices: List[int] = []
        if meta is not None:
            indices.extend((meta.idx_version, meta.idx_custom_h_unit_size))
            if meta.flags & MetaFlags.HAS_ID:
                indices.append(meta.idx_id)
        for item in descriptor.fields:
            record = item.record
            if record is None:
                continue
            indices.extend(
                (record.idx_count, record.idx_version, record.idx_id, record.idx_custom_h_unit_size)
            )
            if record.flags & EntryFlags.HAS_MAXMIN_ID:
                indices.extend((record.min_id_idx, record.max_id_idx))
        for index in indices:
            if index != NO_VALUE:
                self._macro(descriptor.id, index)
