from __future__ import annotations

import pytest

from metalib_builder import Entry, MetalibWriter
from tdrmeta.decoder import HEADER_SIZE


@pytest.fixture
def point_writer() -> MetalibWriter:
    writer = MetalibWriter("point")
    writer.struct("Point", Entry("x", "int32"), Entry("y", "int32"))
    return writer


@pytest.fixture
def node_writer() -> MetalibWriter:
    writer = MetalibWriter("nodes")
    writer.struct("Node", Entry("value", "int32"), Entry("next", "Node", pointer="*"))
    return writer


@pytest.fixture
def rich_writer() -> MetalibWriter:
    """Macros, a macro group, arrays, pointers, bitfields, unions and defaults."""

    writer = MetalibWriter("rich", version=7, lib_id=42)
    writer.macro("COLOR_RED", 1, "red")
    writer.macro("COLOR_BLUE", 2)
    writer.macro("MAX_ITEMS", 8, "item capacity")
    writer.group("Color", "COLOR_RED", "COLOR_BLUE", desc="palette")
    writer.struct("Point", Entry("x", "int32"), Entry("y", "int32"), alias="Vec2")
    writer.union("Payload", Entry("i", "int32"), Entry("f", "float"))
    writer.struct(
        "Bag",
        Entry("color", "int32", group="Color"),
        Entry("n", "int32", default=(3).to_bytes(4, "little")),
        Entry("items", "int16", count_macro="MAX_ITEMS", refer="n"),
        Entry("origin", "Point"),
        Entry("low", "uint32", bits=(0, 3)),
        Entry("high", "uint32", bits=(3, 5), offset=32),
        Entry("kind", "int32", desc="selects the payload"),
        Entry("body", "Payload", select="kind"),
        Entry("owner", "Bag", pointer="@"),
        Entry("label", "string", count=16, default=b"bag\x00"),
    )
    return writer


def _embedding_writer(inner_meta: int) -> MetalibWriter:
    writer = MetalibWriter("embed")
    writer.struct("B", Entry("x", "int32"))
    writer.struct(
        "A",
        Entry("inner", "B", overrides={"ptr_meta": inner_meta}),
        Entry("data", "uint8", count=4, overrides={"ref_h_off": 0}),
    )
    return writer


@pytest.fixture
def self_embedding_writer() -> MetalibWriter:
    """Struct A whose first member embeds A itself by value, selected by a refer."""

    # Meta placement depends only on record counts, so a first pass yields A's pointer.
    first = _embedding_writer(0)
    return _embedding_writer(first.meta_offset("A") - HEADER_SIZE)
