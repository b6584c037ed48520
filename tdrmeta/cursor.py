from __future__ import annotations

import struct

from .errors import UnexpectedEndOfData


class ByteCursor:
    """
    Bounds-checked little-endian reader over ``buffer[base:end]``.

    Positions passed to :meth:`seek` and returned by :meth:`tell` are relative
    to ``base``; errors report absolute buffer offsets so they can be matched
    against a hex dump of the host file.
    """

    def __init__(self, buffer: bytes, base: int = 0, end: int | None = None) -> None:
        limit = len(buffer) if end is None else min(end, len(buffer))
        if base < 0 or base > len(buffer):
            raise UnexpectedEndOfData(base, 0)
        self._view = memoryview(buffer)
        self.base = base
        self.end = max(base, limit)
        self._pos = 0

    def __len__(self) -> int:
        return self.end - self.base

    def tell(self) -> int:
        return self._pos

    def absolute(self, position: int | None = None) -> int:
        return self.base + (self._pos if position is None else position)

    def seek(self, position: int) -> None:
        if position < 0 or self.base + position > self.end:
            raise UnexpectedEndOfData(self.base + position, 0)
        self._pos = position

    def seek_absolute(self, offset: int) -> None:
        self.seek(offset - self.base)

    def _span(self, position: int, size: int) -> memoryview:
        start = self.base + position
        if position < 0 or start + size > self.end:
            raise UnexpectedEndOfData(start, size)
        return self._view[start : start + size]

    def peek(self, size: int = 1, *, at: int | None = None) -> bytes:
        return bytes(self._span(self._pos if at is None else at, size))

    def read_bytes(self, size: int) -> bytes:
        data = bytes(self._span(self._pos, size))
        self._pos += size
        return data

    def unpack(self, fmt: str | struct.Struct) -> tuple:
        layout = fmt if isinstance(fmt, struct.Struct) else struct.Struct(fmt)
        values = layout.unpack_from(self._span(self._pos, layout.size))
        self._pos += layout.size
        return values

    def _read(self, fmt: str):
        return self.unpack(fmt)[0]

    def read_u8(self) -> int:
        return self._read("<B")

    def read_i8(self) -> int:
        return self._read("<b")

    def read_u16(self) -> int:
        return self._read("<H")

    def read_i16(self) -> int:
        return self._read("<h")

    def read_u32(self) -> int:
        return self._read("<I")

    def read_i32(self) -> int:
        return self._read("<i")

    def read_u64(self) -> int:
        return self._read("<Q")

    def read_i64(self) -> int:
        return self._read("<q")

    def read_f32(self) -> float:
        return self._read("<f")

    def read_f64(self) -> float:
        return self._read("<d")

    def find(self, needle: bytes, start: int, stop: int | None = None) -> int:
        """Relative position of ``needle`` in ``[start, stop)`` or -1."""

        limit = self.end if stop is None else min(self.end, self.base + stop)
        idx = bytes(self._view[self.base + start : limit]).find(needle)
        return -1 if idx == -1 else start + idx
