"""
Export a decoded metalib back into the TDR XML dialect it was compiled from.

Element and attribute order follows the TDR compiler's own output: ungrouped
macros first, then macro groups, then one ``struct``/``union`` per meta.
"""

from __future__ import annotations

from typing import List
from xml.sax.saxutils import quoteattr

from .descriptors import NO_VALUE, FieldDescriptor, TypeDescriptor, TypeKind
from .graph import TypeGraph
from .metalib import Metalib
from .primitives import IO_MODES, SORT_METHODS, EntryDBFlags, EntryFlags, MetaFlags

XML_DECLARATION = '<?xml version="1.0" encoding="UTF8" standalone="yes" ?>'


def _attr(name: str, value) -> str:
    return f" {name}={quoteattr(str(value))}"


def _macro_or(graph: TypeGraph, index: int, value) -> str:
    return graph.macro_name(index) if index != NO_VALUE else str(value)


def macro_xml(name: str, value: int, desc: str = "") -> str:
    out = "<macro" + _attr("name", name) + _attr("value", value)
    if desc:
        out += _attr("desc", desc)
    return out + " />"


def macrosgroup_xml(group: TypeDescriptor) -> str:
    record = group.payload.record
    head = "\t<macrosgroup" + _attr("name", group.name)
    if record is not None and record.desc:
        head += _attr("desc", record.desc)
    lines = [head + ">"]
    for value in group.values:
        lines.append("\t\t" + macro_xml(value.name, value.value, value.desc))
    lines.append("\t</macrosgroup>")
    return "\n".join(lines)


def _entry_type(graph: TypeGraph, item: FieldDescriptor) -> str:
    return item.pointer + graph.get(item.base.value).name


def entry_xml(graph: TypeGraph, meta: TypeDescriptor, item: FieldDescriptor) -> str:
    record = item.record
    owner = meta.payload.record
    out = "<entry" + _attr("name", item.name) + _attr("type", _entry_type(graph, item))

    if item.length is not None:
        out += _attr("count", item.length.macro or item.length.count)

    if owner is not None and record.version != owner.base_version:
        out += _attr("version", _macro_or(graph, record.idx_version, record.version))

    if record.idx_id != NO_VALUE:
        out += _attr("id", graph.macro_name(record.idx_id))
    elif record.id != NO_VALUE:
        out += _attr("id", record.id)

    if record.idx_custom_h_unit_size != NO_VALUE:
        out += _attr("size", graph.macro_name(record.idx_custom_h_unit_size))
    elif record.custom_h_unit_size > 0:
        unit = graph.get(item.base.value).size or 1
        out += _attr("size", record.custom_h_unit_size // unit)

    if record.cname:
        out += _attr("cname", record.cname)
    if record.desc:
        out += _attr("desc", record.desc)
    if record.db_flags & EntryDBFlags.UNIQUE:
        out += _attr("unique", "true")
    if record.db_flags & EntryDBFlags.NOT_NULL:
        out += _attr("notnull", "true")
    if item.refer is not None:
        out += _attr("refer", item.refer)
    if record.default is not None:
        out += _attr("default", record.default)
    if item.sizeinfo is not None:
        out += _attr("sizeinfo", item.sizeinfo)
    if item.length is not None and record.order in SORT_METHODS:
        out += _attr("sortMethod", SORT_METHODS[record.order])
    if record.io in IO_MODES:
        out += _attr("io", IO_MODES[record.io])
    if item.select is not None:
        out += _attr("select", item.select)

    if record.flags & EntryFlags.HAS_MAXMIN_ID:
        out += _attr("minid", _macro_or(graph, record.min_id_idx, record.min_id))
        out += _attr("maxid", _macro_or(graph, record.max_id_idx, record.max_id))

    if record.db_flags & EntryDBFlags.EXTEND_TO_TABLE:
        out += _attr("extendtotable", "true")
    if item.enum is not None:
        out += _attr("bindmacrosgroup", graph.resolve(item.enum).name)
    if record.db_flags & EntryDBFlags.AUTO_INCREMENT:
        out += _attr("autoincrement", "true")
    return out + "/>"


def meta_xml(graph: TypeGraph, meta: TypeDescriptor) -> str:
    record = meta.payload.record
    tag = meta.kind.value
    out = f"\t<{tag}" + _attr("name", meta.name)
    out += _attr("version", _macro_or(graph, record.idx_version, record.base_version))
    if record.flags & MetaFlags.HAS_ID:
        out += _attr("id", _macro_or(graph, record.idx_id, record.id))
    if record.cname:
        out += _attr("cname", record.cname)
    if record.desc:
        out += _attr("desc", record.desc)

    if meta.kind is TypeKind.STRUCT:
        payload = meta.payload
        if record.idx_custom_h_unit_size != NO_VALUE:
            out += _attr("size", graph.macro_name(record.idx_custom_h_unit_size))
        elif record.custom_h_unit_size > 0:
            out += _attr("size", record.custom_h_unit_size)
        # align="1" is the compiler default and is never written
        if record.custom_align != 1:
            out += _attr("align", record.custom_align)
        if payload.version_indicator is not None:
            out += _attr("versionindicator", payload.version_indicator)
        if payload.sizeinfo is not None:
            out += _attr("sizeinfo", payload.sizeinfo)
        if payload.sort_key is not None:
            out += _attr("sortkey", payload.sort_key)

    lines = [out + ">"]
    for item in meta.fields:
        lines.append("\t\t" + entry_xml(graph, meta, item))
    lines.append(f"\t</{tag}>")
    return "\n".join(lines) + "\n"


def export_metalib_xml(metalib: Metalib) -> str:
    header = metalib.header
    graph = metalib.graph
    lines: List[str] = [XML_DECLARATION]

    head = "<metalib" + _attr("tagsetversion", header.xml_tag_set_ver)
    head += _attr("name", header.name) + _attr("version", header.version)
    if header.id != NO_VALUE:
        head += _attr("id", header.id)
    lines.append(head + ">")

    grouped = metalib.grouped_macro_indices()
    for index, macro in enumerate(metalib.macros):
        if index not in grouped:
            lines.append("\t" + macro_xml(macro.name, macro.value, macro.desc))

    for group in metalib.enums:
        lines.append(macrosgroup_xml(group))
    for meta in metalib.metas:
        lines.append(meta_xml(graph, meta))

    lines.append("</metalib>")
    return "\n".join(lines) + "\n"

