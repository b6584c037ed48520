from __future__ import annotations

import struct

import pytest

from metalib_builder import Entry, MetalibWriter
from tdrmeta import (
    BadMagic,
    TypeKind,
    UnexpectedEndOfData,
    UnknownTypeKind,
    UnsupportedVersion,
    read_header,
    read_metalib,
)
from tdrmeta.decoder import ENTRY_SIZE, HEADER_SIZE, META_HEAD_SIZE, decode_default
from tdrmeta.cursor import ByteCursor


class TestHeader:
    def test_fields(self, rich_writer):
        header = read_header(rich_writer.build())
        assert header.name == "rich"
        assert header.version == 7
        assert header.id == 42
        assert header.xml_tag_set_ver == 1
        assert header.cur_meta_num == 3
        assert header.cur_macro_num == 3
        assert header.cur_macros_group_num == 1

    def test_header_at_offset(self, point_writer):
        blob = point_writer.build(prefix=b"\xcc" * 24)
        header = read_header(blob, 24)
        assert header.offset == 24
        assert header.size == len(blob) - 24

    @pytest.mark.parametrize("garbage", [b"\x00" * 5, b"\xff" * 5, b"MZ\x90\x00\x03"])
    def test_corrupted_magic(self, point_writer, garbage):
        blob = point_writer.build()
        corrupted = garbage + blob[5:]
        with pytest.raises(BadMagic) as info:
            read_metalib(corrupted)
        assert info.value.offset == 0

    def test_bad_magic_is_checked_before_the_header_is_read(self):
        # Only two bytes exist; a full header read would fail differently.
        with pytest.raises(BadMagic):
            read_metalib(b"\x34\x12")

    def test_bad_magic_offset_is_absolute(self, point_writer):
        blob = point_writer.build(prefix=bytes(10), magic=0x1234)
        with pytest.raises(BadMagic) as info:
            read_metalib(blob, 10)
        assert info.value.offset == 10
        assert info.value.found == 0x1234

    @pytest.mark.parametrize("tagset", [2, 9, 0xFFFF])
    def test_unsupported_version(self, point_writer, tagset):
        with pytest.raises(UnsupportedVersion) as info:
            read_metalib(point_writer.build(xml_tag_set_ver=tagset))
        assert info.value.found == tagset

    def test_tagset_zero_is_supported(self):
        writer = MetalibWriter("legacy", tagset=0)
        writer.struct("Point", Entry("x", "int32"), Entry("y", "int32"))
        assert read_metalib(writer.build()).header.xml_tag_set_ver == 0


class TestPointScenario:
    def test_decodes_one_struct(self, point_writer):
        graph = read_metalib(point_writer.build()).graph
        assert len(graph.roots) == 1
        point = graph.get(graph.roots[0])
        assert point.kind is TypeKind.STRUCT
        assert point.name == "Point"
        assert point.size == 8
        assert [item.name for item in point.fields] == ["x", "y"]
        assert [item.offset for item in point.fields] == [0, 4]
        for item in point.fields:
            primitive = graph.get(item.type.value)
            assert primitive.kind is TypeKind.PRIMITIVE
            assert primitive.name == "int32"
            assert primitive.size == 4

    def test_fields_share_one_primitive(self, point_writer):
        point = read_metalib(point_writer.build()).graph.by_name("Point")
        assert point.fields[0].type == point.fields[1].type


class TestTruncation:
    def test_inside_header(self, point_writer):
        blob = point_writer.build()
        with pytest.raises(UnexpectedEndOfData) as info:
            read_metalib(blob[:100])
        assert info.value.offset == 0
        assert info.value.requested_len == HEADER_SIZE

    def test_inside_meta_head(self, point_writer):
        blob = point_writer.build()
        meta = point_writer.meta_offset("Point")
        with pytest.raises(UnexpectedEndOfData) as info:
            read_metalib(blob[: meta + 10])
        assert info.value.offset == meta
        assert info.value.requested_len == META_HEAD_SIZE

    def test_inside_second_entry(self, point_writer):
        blob = point_writer.build()
        second = point_writer.meta_offset("Point") + META_HEAD_SIZE + ENTRY_SIZE
        with pytest.raises(UnexpectedEndOfData) as info:
            read_metalib(blob[: second + 1])
        assert info.value.offset == second
        assert info.value.requested_len == ENTRY_SIZE

    def test_offsets_account_for_the_host_prefix(self, point_writer):
        blob = point_writer.build(prefix=bytes(32))
        meta = 32 + point_writer.meta_offset("Point")
        with pytest.raises(UnexpectedEndOfData) as info:
            read_metalib(blob[: meta + META_HEAD_SIZE], 32)
        assert info.value.offset == meta + META_HEAD_SIZE

    @pytest.mark.parametrize("cut", [1, 2])
    def test_inside_string_pool(self, point_writer, cut):
        blob = point_writer.build()
        truncated = blob[:-cut]
        with pytest.raises(UnexpectedEndOfData) as info:
            read_metalib(truncated)
        assert info.value.offset == len(truncated)

    def test_every_prefix_fails_cleanly(self, rich_writer):
        blob = rich_writer.build()
        for end in range(0, len(blob), 37):
            with pytest.raises(UnexpectedEndOfData):
                read_metalib(blob[:end])


class TestRecords:
    def test_unknown_meta_kind(self):
        writer = MetalibWriter()
        writer.struct("Odd", Entry("x", "int32"), overrides={"type": 5})
        with pytest.raises(UnknownTypeKind) as info:
            read_metalib(writer.build())
        assert info.value.tag == 5
        assert info.value.offset == writer.meta_offset("Odd")

    def test_unknown_entry_kind(self):
        writer = MetalibWriter()
        writer.struct("Odd", Entry("x", "int32", overrides={"type": 99}))
        with pytest.raises(UnknownTypeKind) as info:
            read_metalib(writer.build())
        assert info.value.tag == 99
        assert info.value.offset == writer.meta_offset("Odd") + META_HEAD_SIZE

    def test_primitive_index_out_of_range(self):
        writer = MetalibWriter()
        writer.struct("Odd", Entry("x", "int32", overrides={"idx_type": 77}))
        with pytest.raises(UnknownTypeKind) as info:
            read_metalib(writer.build())
        assert info.value.tag == 77

    def test_missing_primitive_index_falls_back_to_kind(self):
        writer = MetalibWriter()
        writer.struct("Plain", Entry("x", "int32", overrides={"idx_type": -1}))
        graph = read_metalib(writer.build()).graph
        assert graph.type_name(graph.by_name("Plain").fields[0].type.value) == "int"

    def test_determinism(self, rich_writer):
        blob = rich_writer.build()
        first = read_metalib(blob).graph
        second = read_metalib(blob).graph
        assert first.types == second.types
        assert first.roots == second.roots
        assert [d.name for d in first] == [d.name for d in second]

    def test_macros(self, rich_writer):
        metalib = read_metalib(rich_writer.build())
        assert [(m.name, m.value, m.desc) for m in metalib.macros] == [
            ("COLOR_RED", 1, "red"),
            ("COLOR_BLUE", 2, ""),
            ("MAX_ITEMS", 8, "item capacity"),
        ]
        assert metalib.grouped_macro_indices() == {0, 1}

    def test_meta_ids_follow_table_order(self, rich_writer):
        graph = read_metalib(rich_writer.build()).graph
        assert [graph.get(i).name for i in graph.roots[:4]] == ["Point", "Payload", "Bag", "Color"]
        assert graph.by_name("Payload").kind is TypeKind.UNION

    def test_defaults(self, rich_writer):
        bag = read_metalib(rich_writer.build()).graph.by_name("Bag")
        assert bag.field("n").record.default == "3"
        assert bag.field("label").record.default == "bag"
        assert bag.field("kind").record.default is None
        assert bag.field("kind").record.desc == "selects the payload"


class TestDefaultValues:
    @pytest.mark.parametrize(
        "primitive,raw,expected",
        [
            (14, (-7).to_bytes(4, "little", signed=True), "-7"),
            (15, (7).to_bytes(4, "little"), "7"),
            (2, b"\xfe", "-2"),
            (18, struct.pack("<f", 0.1), "0.1"),
            (19, struct.pack("<d", 2.5), "2.5"),
            (26, bytes([1, 0, 0, 127]), "1.0.0.127"),
            (27, "Z".encode("utf-16-le"), "Z"),
            (28, "hi".encode("utf-16-le") + b"\x00\x00", "hi"),
        ],
    )
    def test_formats(self, primitive, raw, expected):
        cursor = ByteCursor(b"\x00" * 4 + raw)
        assert decode_default(cursor, primitive, 4, len(raw)) == expected
        assert cursor.tell() == 0

    def test_unbounded_string(self):
        cursor = ByteCursor(b"abc\x00zz")
        assert decode_default(cursor, 24, 0, 0) == "abc"
