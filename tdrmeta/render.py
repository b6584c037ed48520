"""
Structural rendering of a finalized :class:`TypeGraph`.

Each root type becomes a nested :class:`Node` tree: structs and unions carry
ordered ``field`` children, enums ordered ``value`` children, and arrays,
bitfields, pointers and aliases wrap the node of the type they refer to.
A reference to a type that is already open on the current walk path is
emitted as a ``backref`` node instead of being expanded again.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple
from xml.sax.saxutils import escape

from .descriptors import TypeKind
from .errors import CyclicRenderGuardTriggered
from .graph import TypeGraph
from .logging import BackrefLogger

DOCUMENT_TAG = "types"
BACKREF_TAG = "backref"


@dataclass(frozen=True)
class Node:
    tag: str
    attrs: Tuple[Tuple[str, str], ...] = ()
    children: Tuple["Node", ...] = ()

    def get(self, key: str, default: str | None = None) -> str | None:
        for name, value in self.attrs:
            if name == key:
                return value
        return default

    @property
    def name(self) -> str | None:
        return self.get("name")

    def findall(self, tag: str) -> List["Node"]:
        return [child for child in self.children if child.tag == tag]

    def find(self, tag: str) -> "Node | None":
        for child in self.children:
            if child.tag == tag:
                return child
        return None

    def iter(self) -> Iterable["Node"]:
        yield self
        for child in self.children:
            yield from child.iter()

    def to_dict(self) -> Dict:
        data: Dict = {"tag": self.tag, "attrs": dict(self.attrs)}
        if self.children:
            data["children"] = [child.to_dict() for child in self.children]
        return data


@dataclass(frozen=True)
class Document:
    roots: Tuple[Node, ...]
    backrefs: Tuple[CyclicRenderGuardTriggered, ...] = field(default=(), compare=False)

    def root(self, name: str) -> Node:
        for node in self.roots:
            if node.name == name:
                return node
        raise KeyError(name)

    def to_xml(self) -> str:
        return to_xml(Node(DOCUMENT_TAG, children=self.roots))


def _attrs(**values) -> Tuple[Tuple[str, str], ...]:
    return tuple((key, str(value)) for key, value in values.items() if value is not None)


class _Walk:
    def __init__(self, graph: TypeGraph, logger: BackrefLogger | None) -> None:
        self.graph = graph
        self.logger = logger
        self.path: List[int] = []
        self.events: List[CyclicRenderGuardTriggered] = []

    def node(self, type_id: int) -> Node:
        descriptor = self.graph.get(type_id)
        if type_id in self.path:
            event = CyclicRenderGuardTriggered(
                source=self.path[-1],
                target=type_id,
                name=descriptor.name,
                path=tuple(self.path),
            )
            self.events.append(event)
            if self.logger is not None:
                self.logger.record(event, self.graph)
            return Node(BACKREF_TAG, _attrs(ref=descriptor.name, id=type_id))

        self.path.append(type_id)
        try:
            return self._expand(descriptor)
        finally:
            self.path.pop()

    def _expand(self, descriptor) -> Node:
        kind = descriptor.kind
        payload = descriptor.payload
        if kind is TypeKind.PRIMITIVE:
            return Node(
                "primitive",
                _attrs(name=descriptor.name, size=descriptor.size, signed=str(payload.info.signed).lower()),
            )
        if kind in (TypeKind.STRUCT, TypeKind.UNION):
            children = tuple(self._field(item) for item in payload.fields)
            return Node(
                kind.value,
                _attrs(name=descriptor.name, id=descriptor.id, size=descriptor.size, align=descriptor.align),
                children,
            )
        if kind is TypeKind.ENUM:
            values = tuple(Node("value", _attrs(name=value.name, value=value.value)) for value in payload.values)
            return Node("enum", _attrs(name=descriptor.name, id=descriptor.id, size=descriptor.size), values)
        if kind is TypeKind.ARRAY:
            length = payload.length
            attrs = _attrs(count=length.count, macro=length.macro, refer=length.refer)
            return Node("array", attrs, (self.node(payload.element.value),))
        if kind is TypeKind.BITFIELD:
            attrs = _attrs(offset=payload.bit_offset, width=payload.bit_width)
            return Node("bitfield", attrs, (self.node(payload.storage.value),))
        if kind is TypeKind.POINTER:
            attrs = _attrs(kind="reference" if payload.reference else "pointer")
            return Node("pointer", attrs, (self.node(payload.target.value),))
        if kind is TypeKind.ALIAS:
            return Node("alias", _attrs(name=descriptor.name), (self.node(payload.target.value),))
        raise ValueError(f"unhandled descriptor kind {kind!r}")

    def _field(self, item) -> Node:
        enum = None if item.enum is None else self.graph.resolve(item.enum).name
        attrs = _attrs(name=item.name, offset=item.offset, enum=enum)
        return Node("field", attrs, (self.node(item.type.value),))


def render_type(graph: TypeGraph, type_id: int, *, logger: BackrefLogger | None = None) -> Tuple[Node, Tuple[CyclicRenderGuardTriggered, ...]]:
    walk = _Walk(graph, logger)
    node = walk.node(type_id)
    return node, tuple(walk.events)


def render(
    graph: TypeGraph,
    root_ids: Sequence[int] | None = None,
    *,
    logger: BackrefLogger | None = None,
) -> Document:
    """Render ``root_ids`` (default: every root of the graph) independently."""

    ids = graph.roots if root_ids is None else tuple(root_ids)
    roots: List[Node] = []
    events: List[CyclicRenderGuardTriggered] = []
    for type_id in ids:
        node, found = render_type(graph, type_id, logger=logger)
        roots.append(node)
        events.extend(found)
    return Document(roots=tuple(roots), backrefs=tuple(events))


# --------------------------------------------------------------------------- #
# Text form
# --------------------------------------------------------------------------- #


def _quote(value: str) -> str:
    return '"' + escape(value, {'"': "&quot;"}) + '"'


def to_xml(node: Node, *, indent: str = "  ") -> str:
    chunks: List[str] = []

    def emit(current: Node, depth: int) -> None:
        pad = indent * depth
        attrs = "".join(f" {key}={_quote(value)}" for key, value in current.attrs)
        if not current.children:
            chunks.append(f"{pad}<{current.tag}{attrs} />\n")
            return
        chunks.append(f"{pad}<{current.tag}{attrs}>\n")
        for child in current.children:
            emit(child, depth + 1)
        chunks.append(f"{pad}</{current.tag}>\n")

    emit(node, 0)
    return "".join(chunks)


def _from_element(element: ET.Element) -> Node:
    return Node(
        element.tag,
        tuple(element.attrib.items()),
        tuple(_from_element(child) for child in element),
    )


def parse_document(text: str) -> Document:
    """Parse the output of :meth:`Document.to_xml` (or a single root node)."""

    element = ET.fromstring(text)
    if element.tag == DOCUMENT_TAG:
        return Document(roots=tuple(_from_element(child) for child in element))
    return Document(roots=(_from_element(element),))


# --------------------------------------------------------------------------- #
# Shape summaries, used to compare a graph with a (re-parsed) document
# --------------------------------------------------------------------------- #


def node_type_name(node: Node) -> str:
    if node.tag == BACKREF_TAG:
        return node.get("ref", "")
    if node.tag == "pointer":
        sigil = "@" if node.get("kind") == "reference" else "*"
        return sigil + node_type_name(node.children[0])
    if node.tag == "array":
        length = node.get("refer") or node.get("macro") or node.get("count")
        return f"{node_type_name(node.children[0])}[{length}]"
    if node.tag == "bitfield":
        return f"{node_type_name(node.children[0])}:{node.get('width')}"
    return node.get("name", "")


def summarize_document(document: Document) -> Dict[str, list]:
    summary: Dict[str, list] = {}
    for root in document.roots:
        if root.tag in ("struct", "union"):
            summary[root.name] = [
                (item.name, node_type_name(item.children[0]), int(item.get("offset")))
                for item in root.findall("field")
            ]
        elif root.tag == "enum":
            summary[root.name] = [(value.name, int(value.get("value"))) for value in root.findall("value")]
    return summary


def summarize_graph(graph: TypeGraph, root_ids: Sequence[int] | None = None) -> Dict[str, list]:
    summary: Dict[str, list] = {}
    for type_id in graph.roots if root_ids is None else root_ids:
        descriptor = graph.get(type_id)
        if descriptor.kind in (TypeKind.STRUCT, TypeKind.UNION):
            summary[descriptor.name] = [
                (item.name, graph.type_name(item.type.value), item.offset) for item in descriptor.fields
            ]
        elif descriptor.kind is TypeKind.ENUM:
            summary[descriptor.name] = [(value.name, value.value) for value in descriptor.values]
    return summary
