from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from .cursor import ByteCursor
from .decoder import (
    HEADER_SIZE,
    decode_macro,
    decode_macro_group,
    decode_meta,
    decode_table,
    read_header,
)
from .descriptors import MacroRecord, MetalibHeader, TableEntry, TypeDescriptor, TypeKind
from .errors import DanglingTypeReference
from .graph import TypeGraph, TypeGraphBuilder
from .symbols import SymbolResolver


@dataclass(frozen=True)
class Metalib:
    header: MetalibHeader
    graph: TypeGraph
    macros: Tuple[MacroRecord, ...]
    ids: Tuple[TableEntry, ...]
    names: Tuple[TableEntry, ...]
    meta_map: Tuple[TableEntry, ...]

    @property
    def offset(self) -> int:
        return self.header.offset

    @property
    def name(self) -> str:
        return self.header.name

    @property
    def metas(self) -> List[TypeDescriptor]:
        return self.graph.of_kind(TypeKind.STRUCT, TypeKind.UNION)

    @property
    def enums(self) -> List[TypeDescriptor]:
        return self.graph.of_kind(TypeKind.ENUM)

    def grouped_macro_indices(self) -> set[int]:
        grouped: set[int] = set()
        for descriptor in self.enums:
            grouped.update(descriptor.payload.record.value_indices)
        return grouped


def read_metalib(buffer: bytes, offset: int = 0) -> Metalib:
    """
    Decode the metalib whose header starts at ``offset`` inside ``buffer``.

    Either a complete :class:`Metalib` comes back or a ``MetalibError``
    propagates; partial state is never returned.
    """

    header = read_header(buffer, offset)
    body = ByteCursor(buffer, base=offset + HEADER_SIZE, end=offset + header.size)
    symbols = SymbolResolver(body, header.ptr_str_buf, header.ptr_free_str_buf)

    macros: List[MacroRecord] = []
    if header.cur_macro_num > 0:
        body.seek(header.ptr_macro)
        macros = [decode_macro(body, symbols) for _ in range(header.cur_macro_num)]

    ids = names = meta_map = ()
    if header.cur_meta_num > 0:
        body.seek(header.ptr_id)
        ids = decode_table(body, header.cur_meta_num)
        body.seek(header.ptr_name)
        names = decode_table(body, header.cur_meta_num)
        body.seek(header.ptr_map)
        meta_map = decode_table(body, header.cur_meta_num)

    builder = TypeGraphBuilder(macros)
    meta_ids: List[int] = []
    if header.cur_meta_num > 0:
        body.seek(header.ptr_meta)
        for _ in range(header.cur_meta_num):
            meta_ids.append(builder.register(decode_meta(body, symbols)))

    if header.cur_macros_group_num > 0:
        body.seek(header.ptr_macros_group)
        for _ in range(header.cur_macros_group_num):
            builder.register(decode_macro_group(body, macros, symbols, index=len(builder)))

    for row in names:
        if not 0 <= row.target < len(meta_ids):
            raise DanglingTypeReference(-1, row.target)
        alias = symbols.resolve(row.key)
        target = meta_ids[row.target]
        if alias and alias != builder.get(target).name:
            builder.register_alias(alias, target)

    return Metalib(
        header=header,
        graph=builder.finalize(),
        macros=tuple(macros),
        ids=ids,
        names=names,
        meta_map=meta_map,
    )


def load_metalib(path: Path, offset: int = 0) -> Metalib:
    return read_metalib(path.read_bytes(), offset)
