from __future__ import annotations

import pytest

from metalib_builder import Entry, MetalibWriter
from tdrmeta import (
    DanglingMacroReference,
    DanglingTypeReference,
    TypeGraphBuilder,
    TypeKind,
    UnresolvedFieldOffset,
    read_metalib,
)
from tdrmeta.descriptors import (
    CompositePayload,
    FieldDescriptor,
    RefSpace,
    TypeDescriptor,
    TypeRef,
)


@pytest.fixture
def rich(rich_writer):
    return read_metalib(rich_writer.build())


def _struct(name: str, *fields: FieldDescriptor, offset: int = 0) -> TypeDescriptor:
    return TypeDescriptor(
        id=-1,
        kind=TypeKind.STRUCT,
        name=name,
        size=0,
        align=1,
        payload=CompositePayload(fields=fields),
        offset=offset,
    )


def _field(name: str, ref: TypeRef) -> FieldDescriptor:
    return FieldDescriptor(name=name, type=ref, base=ref, offset=0, net_offset=0, size=4)


class TestBuilder:
    def test_register_assigns_sequential_ids(self):
        builder = TypeGraphBuilder()
        assert builder.register(_struct("A", offset=0)) == 0
        assert builder.register(_struct("B", offset=100)) == 1
        graph = builder.finalize()
        assert [descriptor.id for descriptor in graph] == [0, 1]

    def test_finalize_once(self):
        builder = TypeGraphBuilder()
        builder.finalize()
        with pytest.raises(RuntimeError):
            builder.finalize()
        with pytest.raises(RuntimeError):
            builder.register(_struct("Late"))

    def test_forward_reference_resolves_by_offset(self):
        builder = TypeGraphBuilder()
        builder.register(_struct("A", _field("b", TypeRef(RefSpace.META, 100)), offset=0))
        builder.register(_struct("B", _field("x", TypeRef(RefSpace.PRIMITIVE, 14)), offset=100))
        graph = builder.finalize()
        assert graph.by_name("A").fields[0].type == TypeRef.to(1)

    def test_dangling_meta_pointer(self):
        builder = TypeGraphBuilder()
        builder.register(_struct("A", _field("b", TypeRef(RefSpace.META, 0x7777))))
        with pytest.raises(DanglingTypeReference) as info:
            builder.finalize()
        assert info.value.source == 0
        assert info.value.target == 0x7777

    def test_graph_get_out_of_range(self):
        graph = TypeGraphBuilder().finalize()
        with pytest.raises(DanglingTypeReference):
            graph.get(3)


class TestResolution:
    def test_dangling_entry_meta(self):
        writer = MetalibWriter()
        writer.struct("Inner", Entry("x", "int32"))
        writer.struct("Outer", Entry("inner", "Inner", overrides={"ptr_meta": 0x7777}))
        with pytest.raises(DanglingTypeReference) as info:
            read_metalib(writer.build())
        assert info.value.source == 1
        assert info.value.target == 0x7777

    def test_dangling_macro(self):
        writer = MetalibWriter()
        writer.struct("Odd", Entry("x", "int32", overrides={"idx_version": 42}))
        with pytest.raises(DanglingMacroReference) as info:
            read_metalib(writer.build())
        assert info.value.index == 42

    def test_unresolved_refer_offset(self):
        writer = MetalibWriter()
        writer.struct("Odd", Entry("n", "int32"), Entry("data", "uint8", count=4, overrides={"ref_h_off": 2}))
        with pytest.raises(UnresolvedFieldOffset) as info:
            read_metalib(writer.build())
        assert info.value.field_offset == 2

    def test_enum_from_macro_group(self, rich):
        color = rich.graph.by_name("Color")
        assert color.kind is TypeKind.ENUM
        assert [(value.name, value.value) for value in color.values] == [("COLOR_RED", 1), ("COLOR_BLUE", 2)]
        bag = rich.graph.by_name("Bag")
        assert rich.graph.resolve(bag.field("color").enum) is color

    def test_enum_keeps_duplicates(self):
        writer = MetalibWriter()
        writer.macro("A", 1)
        writer.macro("B", 1)
        writer.group("Dup", "A", "B", "A")
        writer.struct("S", Entry("x", "int32", group="Dup"))
        dup = read_metalib(writer.build()).graph.by_name("Dup")
        assert [value.name for value in dup.values] == ["A", "B", "A"]

    def test_counted_array(self, rich):
        graph = rich.graph
        items = graph.by_name("Bag").field("items")
        array = graph.get(items.type.value)
        assert array.kind is TypeKind.ARRAY
        assert array.payload.length.count == 8
        assert array.payload.length.macro == "MAX_ITEMS"
        assert array.payload.length.refer == "n"
        assert items.refer == "n"
        assert graph.type_name(items.type.value) == "int16[n]"
        assert array.size == 16

    def test_constant_array(self, rich):
        graph = rich.graph
        label = graph.by_name("Bag").field("label")
        assert graph.type_name(label.type.value) == "string[16]"

    def test_struct_typed_field(self, rich):
        bag = rich.graph.by_name("Bag")
        origin = bag.field("origin")
        assert origin.type.value == rich.graph.by_name("Point").id
        assert origin.offset == 24

    def test_bitfields(self, rich):
        graph = rich.graph
        bag = graph.by_name("Bag")
        low = graph.get(bag.field("low").type.value)
        high = graph.get(bag.field("high").type.value)
        assert low.kind is high.kind is TypeKind.BITFIELD
        assert (low.payload.bit_offset, low.payload.bit_width) == (0, 3)
        assert (high.payload.bit_offset, high.payload.bit_width) == (3, 5)
        assert low.payload.storage == high.payload.storage
        assert graph.type_name(low.id) == "uint32:3"

    def test_reference_field(self, rich):
        graph = rich.graph
        owner = graph.by_name("Bag").field("owner")
        pointer = graph.get(owner.type.value)
        assert pointer.kind is TypeKind.POINTER
        assert pointer.payload.reference
        assert pointer.payload.target.value == graph.by_name("Bag").id
        assert graph.type_name(pointer.id) == "@Bag"

    def test_union_selector(self, rich):
        body = rich.graph.by_name("Bag").field("body")
        assert body.select == "kind"
        assert rich.graph.get(body.type.value).kind is TypeKind.UNION

    def test_alias(self, rich):
        alias = rich.graph.by_name("Vec2")
        assert alias.kind is TypeKind.ALIAS
        assert alias.payload.target.value == rich.graph.by_name("Point").id

    def test_derived_types_are_interned(self):
        writer = MetalibWriter()
        writer.struct("A", Entry("p", "int32", count=4), Entry("q", "int32", count=4))
        writer.struct("B", Entry("r", "int32", count=4))
        graph = read_metalib(writer.build()).graph
        a, b = graph.by_name("A"), graph.by_name("B")
        assert a.field("p").type == a.field("q").type == b.field("r").type

    def test_self_pointer(self, node_writer):
        graph = read_metalib(node_writer.build()).graph
        node = graph.by_name("Node")
        pointer = graph.get(node.field("next").type.value)
        assert pointer.payload.target.value == node.id
        assert graph.type_name(pointer.id) == "*Node"

    def test_version_indicator(self):
        writer = MetalibWriter()
        writer.struct("Msg", Entry("ver", "int32"), Entry("x", "int32"), version_indicator="ver")
        msg = read_metalib(writer.build()).graph.by_name("Msg")
        assert msg.payload.version_indicator == "ver"

    def test_nested_field_path(self):
        writer = MetalibWriter()
        writer.struct("Head", Entry("kind", "int16"), Entry("len", "int32", offset=4))
        writer.struct(
            "Packet",
            Entry("head", "Head"),
            Entry("data", "uint8", count=32, overrides={"ref_h_off": 4, "ref_unit": 4}),
        )
        graph = read_metalib(writer.build()).graph
        packet = graph.by_name("Packet")
        assert packet.field("data").refer == "head.len"
        assert graph.field_path(packet.id, 4) == "head.len"
        assert graph.field_path(packet.id, 8) == "data"

    def test_self_embedding_field_path(self, self_embedding_writer):
        with pytest.raises(UnresolvedFieldOffset) as info:
            read_metalib(self_embedding_writer.build())
        assert info.value.field_offset == 0

    def test_macro_counted_array_span(self, rich):
        bag = rich.graph.by_name("Bag")
        items = bag.field("items")
        assert items.offset + rich.graph.get(items.type.value).size == bag.field("origin").offset

    def test_entry_sizeinfo(self):
        writer = MetalibWriter()
        writer.struct("Blob", Entry("data", "uint8", count=64, sizeinfo="int32"))
        blob = read_metalib(writer.build()).graph.by_name("Blob")
        assert blob.field("data").sizeinfo == "int32"
