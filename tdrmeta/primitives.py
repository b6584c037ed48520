from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum, IntFlag
from typing import Tuple


class MetaType(IntEnum):
    UNKNOWN = -1
    UNION = 0
    STRUCT = 1
    CHAR = 2
    UCHAR = 3
    BYTE = 4
    SHORT = 5
    USHORT = 6
    INT = 7
    UINT = 8
    LONG = 9
    ULONG = 10
    LONGLONG = 11
    ULONGLONG = 12
    DATE = 13
    TIME = 14
    DATETIME = 15
    MONEY = 16
    FLOAT = 17
    DOUBLE = 18
    IP = 19
    WCHAR = 20
    STRING = 21
    WSTRING = 22
    VOID = 23


COMPOSITE_TYPES = (MetaType.UNION, MetaType.STRUCT)


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


class EntryFlags(IntFlag):
    RESOLVED = 0x0001
    POINT_TYPE = 0x0002  # "*"
    REFER_TYPE = 0x0004  # "@"
    HAS_ID = 0x0008
    HAS_MAXMIN_ID = 0x0010
    FIXED_SIZE = 0x0020
    REFER_COUNT = 0x0040
    PACKED_BITS = 0x0080


class EntryDBFlags(IntFlag):
    UNIQUE = 0x01
    NOT_NULL = 0x02
    EXTEND_TO_TABLE = 0x04
    PRIMARY_KEY = 0x10
    AUTO_INCREMENT = 0x20


SORT_METHODS = {1: "asc", 2: "desc"}
IO_MODES = {1: "noinput", 2: "nooutput", 3: "noio"}


@dataclass(frozen=True)
class PrimitiveInfo:
    xml_name: str
    c_name: str
    base: MetaType
    size: int

    @property
    def signed(self) -> bool:
        return self.base in (
            MetaType.CHAR,
            MetaType.SHORT,
            MetaType.INT,
            MetaType.LONG,
            MetaType.LONGLONG,
            MetaType.FLOAT,
            MetaType.DOUBLE,
            MetaType.MONEY,
        )


# Rows are addressed by an entry's ``idx_type``; the order is part of the format.
PRIMITIVES: Tuple[PrimitiveInfo, ...] = (
    PrimitiveInfo("union", "union", MetaType.UNION, 0),
    PrimitiveInfo("struct", "struct", MetaType.STRUCT, 0),
    PrimitiveInfo("tinyint", "int8_t", MetaType.CHAR, 1),
    PrimitiveInfo("tinyuint", "uint8_t", MetaType.UCHAR, 1),
    PrimitiveInfo("smallint", "int16_t", MetaType.SHORT, 2),
    PrimitiveInfo("smalluint", "uint16_t", MetaType.USHORT, 2),
    PrimitiveInfo("int", "int32_t", MetaType.INT, 4),
    PrimitiveInfo("uint", "uint32_t", MetaType.UINT, 4),
    PrimitiveInfo("bigint", "int64_t", MetaType.LONGLONG, 8),
    PrimitiveInfo("biguint", "uint64_t", MetaType.ULONGLONG, 8),
    PrimitiveInfo("int8", "int8_t", MetaType.CHAR, 1),
    PrimitiveInfo("uint8", "uint8_t", MetaType.UCHAR, 1),
    PrimitiveInfo("int16", "int16_t", MetaType.SHORT, 2),
    PrimitiveInfo("uint16", "uint16_t", MetaType.USHORT, 2),
    PrimitiveInfo("int32", "int32_t", MetaType.INT, 4),
    PrimitiveInfo("uint32", "uint32_t", MetaType.UINT, 4),
    PrimitiveInfo("int64", "int64_t", MetaType.LONGLONG, 8),
    PrimitiveInfo("uint64", "uint64_t", MetaType.ULONGLONG, 8),
    PrimitiveInfo("float", "float", MetaType.FLOAT, 4),
    PrimitiveInfo("double", "double", MetaType.DOUBLE, 8),
    PrimitiveInfo("decimal", "float", MetaType.FLOAT, 4),
    PrimitiveInfo("date", "tdr_date_t", MetaType.DATE, 4),
    PrimitiveInfo("time", "tdr_time_t", MetaType.TIME, 4),
    PrimitiveInfo("datetime", "tdr_datetime_t", MetaType.DATETIME, 8),
    PrimitiveInfo("string", "char", MetaType.STRING, 1),
    PrimitiveInfo("byte", "uint8_t", MetaType.UCHAR, 1),
    PrimitiveInfo("ip", "tdr_ip_t", MetaType.IP, 4),
    PrimitiveInfo("wchar", "tdr_wchar_t", MetaType.WCHAR, 2),
    PrimitiveInfo("wstring", "tdr_wchar_t", MetaType.WSTRING, 2),
    PrimitiveInfo("void", "void", MetaType.VOID, 1),
    PrimitiveInfo("char", "char", MetaType.CHAR, 1),
    PrimitiveInfo("uchar", "unsigned char", MetaType.UCHAR, 1),
    PrimitiveInfo("short", "int16_t", MetaType.SHORT, 2),
    PrimitiveInfo("ushort", "uint16_t", MetaType.USHORT, 2),
    PrimitiveInfo("long", "int32_t", MetaType.LONG, 4),
    PrimitiveInfo("ulong", "uint32_t", MetaType.ULONG, 4),
    PrimitiveInfo("longlong", "int64_t", MetaType.LONGLONG, 8),
    PrimitiveInfo("ulonglong", "uint64_t", MetaType.ULONGLONG, 8),
)


def primitive_index_for(base: MetaType) -> int:
    """First primitive row whose base kind is ``base`` (-1 if none)."""

    for idx, info in enumerate(PRIMITIVES):
        if info.base == base:
            return idx
    return -1
