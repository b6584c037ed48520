"""
Record-level decoding for compiled TDR metalibs.

Every function here reads exactly one fixed-layout record through a
:class:`ByteCursor` and returns it as an immutable value. Cross references
(meta pointers, macro-group pointers, primitive rows) are kept as raw
:class:`TypeRef` values; resolving them is the graph builder's job.
"""

from __future__ import annotations

import ipaddress
import struct
from typing import List, Sequence, Tuple

import numpy as np

from .cursor import ByteCursor
from .descriptors import (
    NO_VALUE,
    ArrayLength,
    CompositePayload,
    EntryRecord,
    EnumPayload,
    EnumValue,
    FieldDescriptor,
    MacroGroupRecord,
    MacroRecord,
    MetalibHeader,
    MetaRecord,
    Redirector,
    RefSpace,
    Selector,
    SizeInfo,
    SortKeyInfo,
    TableEntry,
    TypeDescriptor,
    TypeKind,
    TypeRef,
)
from .errors import BadMagic, DanglingMacroReference, UnknownTypeKind, UnsupportedVersion
from .primitives import (
    COMPOSITE_TYPES,
    PRIMITIVES,
    EntryDBFlags,
    EntryFlags,
    MetaFlags,
    MetaType,
    primitive_index_for,
)
from .symbols import SymbolResolver

METALIB_MAGIC = 0x02D6
SUPPORTED_TAGSET_VERSIONS = (0, 1)
HEADER_NAME_BYTES = 128

HEADER = struct.Struct("<HHII4IiII6i2II6Ii4II2i2I2i128s")
META_HEAD = struct.Struct("<I22i10i3iihhi2i5i")
ENTRY = struct.Struct("<17iHBB4i3i3i8i2i7i")
MACRO = struct.Struct("<iiii")
TABLE_ROW = struct.Struct("<ii")
GROUP_HEAD = struct.Struct("<iiiii128s")

HEADER_SIZE = HEADER.size  # 0x114
META_HEAD_SIZE = META_HEAD.size  # 0xB8
ENTRY_SIZE = ENTRY.size  # 0xB4
MACRO_SIZE = MACRO.size
TABLE_ROW_SIZE = TABLE_ROW.size
GROUP_HEAD_SIZE = GROUP_HEAD.size


def _fixed_string(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def read_header(buffer: bytes, start: int = 0) -> MetalibHeader:
    """Validate the signature at ``start`` and decode the 0x114-byte header."""

    cursor = ByteCursor(buffer, base=start)
    magic = cursor.read_u16()
    if magic != METALIB_MAGIC:
        raise BadMagic(start, magic)
    cursor.seek(0)
    (
        magic,
        build,
        platform_arch,
        size,
        _c,
        _10,
        _14,
        _18,
        lib_id,
        tagset,
        _24,
        max_meta,
        cur_meta,
        max_macro,
        cur_macro,
        max_group,
        cur_group,
        _40,
        _44,
        version,
        ptr_macro,
        ptr_id,
        ptr_name,
        ptr_map,
        ptr_meta,
        ptr_last_meta,
        free_str_buf_size,
        ptr_str_buf,
        ptr_free_str_buf,
        ptr_group_map,
        ptr_groups,
        *_reserved,
        raw_name,
    ) = cursor.unpack(HEADER)
    if tagset not in SUPPORTED_TAGSET_VERSIONS:
        raise UnsupportedVersion(tagset, start)
    return MetalibHeader(
        offset=start,
        magic=magic,
        build=build,
        platform_arch=platform_arch,
        size=size,
        id=lib_id,
        xml_tag_set_ver=tagset,
        max_meta_num=max_meta,
        cur_meta_num=cur_meta,
        max_macro_num=max_macro,
        cur_macro_num=cur_macro,
        max_macros_group_num=max_group,
        cur_macros_group_num=cur_group,
        version=version,
        ptr_macro=ptr_macro,
        ptr_id=ptr_id,
        ptr_name=ptr_name,
        ptr_map=ptr_map,
        ptr_meta=ptr_meta,
        ptr_last_meta=ptr_last_meta,
        free_str_buf_size=free_str_buf_size,
        ptr_str_buf=ptr_str_buf,
        ptr_free_str_buf=ptr_free_str_buf,
        ptr_macro_group_map=ptr_group_map,
        ptr_macros_group=ptr_groups,
        name=_fixed_string(raw_name),
    )


def decode_macro(cursor: ByteCursor, symbols: SymbolResolver) -> MacroRecord:
    offset = cursor.tell()
    name_ptr, value, desc_ptr, _unk = cursor.unpack(MACRO)
    return MacroRecord(
        offset=offset,
        name=symbols.resolve(name_ptr),
        value=value,
        desc=symbols.resolve(desc_ptr),
    )


def decode_table(cursor: ByteCursor, count: int) -> Tuple[TableEntry, ...]:
    rows: List[TableEntry] = []
    for _ in range(max(count, 0)):
        offset = cursor.tell()
        key, target = cursor.unpack(TABLE_ROW)
        rows.append(TableEntry(offset=offset, key=key, target=target))
    return tuple(rows)


def _meta_type(tag: int, offset: int) -> MetaType:
    try:
        return MetaType(tag)
    except ValueError:
        raise UnknownTypeKind(tag, offset) from None


def _primitive_index(kind: MetaType, idx_type: int, offset: int) -> int:
    if idx_type == NO_VALUE:
        idx_type = primitive_index_for(kind)
        if idx_type == NO_VALUE:
            raise UnknownTypeKind(int(kind), offset)
    if not 0 <= idx_type < len(PRIMITIVES):
        raise UnknownTypeKind(idx_type, offset)
    return idx_type


def decode_default(cursor: ByteCursor, primitive: int, pointer: int, length: int) -> str:
    """Read a default value stored at ``pointer`` in the primitive's format."""

    info = PRIMITIVES[primitive]
    base = info.base
    saved = cursor.tell()
    cursor.seek(pointer)
    try:
        if base in (MetaType.CHAR,):
            return str(cursor.read_i8())
        if base in (MetaType.UCHAR, MetaType.BYTE):
            return str(cursor.read_u8())
        if base is MetaType.SHORT:
            return str(cursor.read_i16())
        if base is MetaType.USHORT:
            return str(cursor.read_u16())
        if base in (MetaType.INT, MetaType.LONG, MetaType.MONEY):
            return str(cursor.read_i32())
        if base in (MetaType.UINT, MetaType.ULONG, MetaType.DATE, MetaType.TIME):
            return str(cursor.read_u32())
        if base is MetaType.LONGLONG:
            return str(cursor.read_i64())
        if base in (MetaType.ULONGLONG, MetaType.DATETIME):
            return str(cursor.read_u64())
        if base is MetaType.FLOAT:
            # Shortest text that round-trips through a 32-bit float.
            return str(np.float32(cursor.read_f32()))
        if base is MetaType.DOUBLE:
            return repr(cursor.read_f64())
        if base is MetaType.IP:
            return str(ipaddress.IPv4Address(cursor.read_bytes(4)))
        if base is MetaType.WCHAR:
            return chr(cursor.read_u16())
        if base is MetaType.STRING:
            raw = cursor.read_bytes(length) if length > 0 else _read_until(cursor, b"\x00", 1)
            return raw.split(b"\x00", 1)[0].decode("gbk", errors="replace")
        if base is MetaType.WSTRING:
            raw = cursor.read_bytes(length) if length > 0 else _read_until(cursor, b"\x00\x00", 2)
            units = np.frombuffer(raw[: len(raw) // 2 * 2], dtype="<u2")
            stop = np.flatnonzero(units == 0)
            if stop.size:
                units = units[: stop[0]]
            return units.tobytes().decode("utf-16-le", errors="replace")
        return ""
    finally:
        cursor.seek(saved)


def _read_until(cursor: ByteCursor, terminator: bytes, width: int) -> bytes:
    chunks: List[bytes] = []
    while True:
        unit = cursor.read_bytes(width)
        if unit == terminator:
            return b"".join(chunks)
        chunks.append(unit)


def _unpack_entry(cursor: ByteCursor) -> Tuple[int, tuple]:
    offset = cursor.tell()
    return offset, cursor.unpack(ENTRY)


def _build_entry(
    cursor: ByteCursor,
    symbols: SymbolResolver,
    offset: int,
    raw: Sequence[int],
) -> EntryRecord:
    (
        entry_id,
        version,
        kind_tag,
        name_ptr,
        h_real_size,
        n_real_size,
        h_unit_size,
        n_unit_size,
        custom_h_unit_size,
        count,
        n_off,
        h_off,
        idx_id,
        idx_version,
        idx_count,
        idx_type,
        idx_custom_h_unit_size,
        flags,
        db_flags,
        order,
        si_n_off,
        si_h_off,
        si_unit,
        si_type,
        ref_unit,
        ref_h_off,
        ref_entry,
        sel_unit,
        sel_h_off,
        sel_entry,
        io,
        idx_io,
        ptr_meta,
        max_id,
        min_id,
        max_id_idx,
        min_id_idx,
        default_val_len,
        desc_ptr,
        cname_ptr,
        ptr_default_val,
        ptr_macros_group,
        ptr_custom_attr,
        _off_to_meta,
        bit_offset,
        bit_width,
        _b0,
    ) = raw
    absolute = cursor.absolute(offset)
    kind = _meta_type(kind_tag, absolute)
    default = None
    if ptr_default_val != NO_VALUE and kind not in COMPOSITE_TYPES and ptr_meta == NO_VALUE:
        primitive = _primitive_index(kind, idx_type, absolute)
        default = decode_default(cursor, primitive, ptr_default_val, default_val_len)
    return EntryRecord(
        offset=offset,
        id=entry_id,
        version=version,
        kind=kind,
        name=symbols.resolve(name_ptr),
        h_real_size=h_real_size,
        n_real_size=n_real_size,
        h_unit_size=h_unit_size,
        n_unit_size=n_unit_size,
        custom_h_unit_size=custom_h_unit_size,
        count=count,
        n_off=n_off,
        h_off=h_off,
        idx_id=idx_id,
        idx_version=idx_version,
        idx_count=idx_count,
        idx_type=idx_type,
        idx_custom_h_unit_size=idx_custom_h_unit_size,
        flags=EntryFlags(flags),
        db_flags=EntryDBFlags(db_flags),
        order=order,
        size_info=SizeInfo(si_n_off, si_h_off, si_unit, si_type),
        referer=Selector(ref_unit, ref_h_off, ref_entry),
        selector=Selector(sel_unit, sel_h_off, sel_entry),
        io=io,
        idx_io=idx_io,
        ptr_meta=ptr_meta,
        max_id=max_id,
        min_id=min_id,
        max_id_idx=max_id_idx,
        min_id_idx=min_id_idx,
        default_val_len=default_val_len,
        desc=symbols.resolve(desc_ptr),
        cname=symbols.resolve(cname_ptr),
        ptr_default_val=ptr_default_val,
        ptr_macros_group=ptr_macros_group,
        ptr_custom_attr=ptr_custom_attr,
        bit_offset=bit_offset,
        bit_width=bit_width,
        default=default,
    )


def field_from_entry(record: EntryRecord, absolute: int) -> FieldDescriptor:
    """Describe an entry with its references still in raw (unresolved) form."""

    if record.ptr_meta != NO_VALUE or record.kind in COMPOSITE_TYPES:
        base = TypeRef(RefSpace.META, record.ptr_meta)
    else:
        base = TypeRef(RefSpace.PRIMITIVE, _primitive_index(record.kind, record.idx_type, absolute))

    length = None
    if record.count != 1:
        # Macro names and the refer field are filled in once the whole table is known.
        length = ArrayLength(count=record.count)

    pointer = ""
    if record.flags & EntryFlags.POINT_TYPE:
        pointer = "*"
    elif record.flags & EntryFlags.REFER_TYPE:
        pointer = "@"

    bit_offset = bit_width = None
    if record.flags & EntryFlags.PACKED_BITS:
        bit_offset, bit_width = record.bit_offset, record.bit_width

    enum = None
    if record.ptr_macros_group != NO_VALUE:
        enum = TypeRef(RefSpace.GROUP, record.ptr_macros_group)

    return FieldDescriptor(
        name=record.name,
        type=base,
        base=base,
        offset=record.h_off,
        net_offset=record.n_off,
        size=record.h_unit_size,
        length=length,
        pointer=pointer,
        bit_offset=bit_offset,
        bit_width=bit_width,
        enum=enum,
        record=record,
    )


def decode_meta(cursor: ByteCursor, symbols: SymbolResolver) -> TypeDescriptor:
    """
    Decode one meta record (struct or union) and its entry sub-records.

    All fixed-size bytes of the record are read before any string or default
    value is dereferenced, so a truncated record always surfaces as a failed
    read at the record itself.
    """

    offset = cursor.tell()
    absolute = cursor.absolute(offset)
    (
        flags,
        meta_id,
        base_version,
        cur_version,
        kind_tag,
        mem_size,
        n_unit_size,
        h_unit_size,
        custom_h_unit_size,
        idx_custom_h_unit_size,
        _max_sub_id,
        entries_num,
        _unk_count,
        _unk_ptr,
        _unk_unk,
        _self_ptr,
        idx,
        idx_id,
        idx_type,
        idx_version,
        custom_align,
        valid_align,
        _min_ver,
        st_n_off,
        st_h_off,
        st_unit,
        st_type,
        vi_n_off,
        vi_h_off,
        vi_unit,
        sk_entry,
        sk_offset,
        sk_meta,
        name_ptr,
        desc_ptr,
        cname_ptr,
        _split_factor,
        split_rule,
        pk_num,
        _idx_split_factor,
        _split_key_h_off,
        _split_key_entry,
        ptr_pk_base,
        ptr_dependon,
        _ac,
        _b0,
        _b4,
    ) = cursor.unpack(META_HEAD)
    if kind_tag not in (MetaType.UNION, MetaType.STRUCT):
        raise UnknownTypeKind(kind_tag, absolute)
    kind = MetaType(kind_tag)

    raw_entries = [_unpack_entry(cursor) for _ in range(max(entries_num, 0))]
    end = cursor.tell()

    record = MetaRecord(
        offset=offset,
        flags=MetaFlags(flags),
        id=meta_id,
        base_version=base_version,
        cur_version=cur_version,
        kind=kind,
        mem_size=mem_size,
        n_unit_size=n_unit_size,
        h_unit_size=h_unit_size,
        custom_h_unit_size=custom_h_unit_size,
        idx_custom_h_unit_size=idx_custom_h_unit_size,
        entries_num=entries_num,
        idx=idx,
        idx_id=idx_id,
        idx_type=idx_type,
        idx_version=idx_version,
        custom_align=custom_align,
        valid_align=valid_align,
        size_type=SizeInfo(st_n_off, st_h_off, st_unit, st_type),
        version_indicator=Redirector(vi_n_off, vi_h_off, vi_unit),
        sort_key=SortKeyInfo(sk_entry, sk_offset, sk_meta),
        name=symbols.resolve(name_ptr),
        desc=symbols.resolve(desc_ptr),
        cname=symbols.resolve(cname_ptr),
        split_table_rule_id=split_rule,
        primary_key_member_num=pk_num,
        ptr_primary_key_base=ptr_pk_base,
        ptr_dependon_struct=ptr_dependon,
    )
    fields = []
    for entry_offset, raw in raw_entries:
        entry = _build_entry(cursor, symbols, entry_offset, raw)
        fields.append(field_from_entry(entry, cursor.absolute(entry_offset)))
    cursor.seek(end)

    return TypeDescriptor(
        id=NO_VALUE,
        kind=TypeKind.STRUCT if kind is MetaType.STRUCT else TypeKind.UNION,
        name=record.name,
        size=h_unit_size,
        align=max(valid_align, 1),
        payload=CompositePayload(fields=tuple(fields), record=record),
        offset=offset,
    )


def decode_macro_group(
    cursor: ByteCursor,
    macros: Sequence[MacroRecord],
    symbols: SymbolResolver,
    index: int = NO_VALUE,
) -> TypeDescriptor:
    """Decode a macro group as an enum whose values keep the group's order."""

    offset = cursor.tell()
    cur_count, max_count, desc_ptr, name_map_off, value_map_off, raw_name = cursor.unpack(GROUP_HEAD)
    count = max(cur_count, 0)

    cursor.seek(offset + name_map_off)
    name_indices = cursor.unpack(f"<{count}i")
    cursor.seek(offset + value_map_off)
    value_indices = cursor.unpack(f"<{count}i")
    end = cursor.tell()

    values = []
    for macro_idx in value_indices:
        if not 0 <= macro_idx < len(macros):
            raise DanglingMacroReference(index, macro_idx)
        macro = macros[macro_idx]
        values.append(EnumValue(name=macro.name, value=macro.value, desc=macro.desc))

    record = MacroGroupRecord(
        offset=offset,
        name=_fixed_string(raw_name),
        desc=symbols.resolve(desc_ptr),
        cur_macro_count=cur_count,
        max_macro_count=max_count,
        name_indices=tuple(name_indices),
        value_indices=tuple(value_indices),
    )
    cursor.seek(end)
    return TypeDescriptor(
        id=NO_VALUE,
        kind=TypeKind.ENUM,
        name=record.name,
        size=4,
        align=4,
        payload=EnumPayload(values=tuple(values), record=record),
        offset=offset,
    )
