from __future__ import annotations

from .cursor import ByteCursor
from .errors import InvalidStringOffset, UnexpectedEndOfData

NO_STRING = -1
STRING_ENCODING = "gbk"
MAX_STRING_SIZE = 4 * 1024 * 1024


class SymbolResolver:
    """
    Resolve i32 string pointers into names.

    Strings are NUL-terminated GBK inside ``[start, stop)`` of the metalib
    body. Results are cached per offset for the whole session, so every
    reference to one offset yields the same ``str`` object.
    """

    def __init__(self, cursor: ByteCursor, start: int, stop: int) -> None:
        self.cursor = cursor
        self.start = max(0, start)
        self.stop = stop
        self._cache: dict[int, str] = {}

    def __contains__(self, offset: int) -> bool:
        return offset in self._cache

    def resolve(self, offset: int) -> str:
        if offset == NO_STRING:
            return ""
        cached = self._cache.get(offset)
        if cached is not None:
            return cached
        if not (self.start <= offset < self.stop):
            raise InvalidStringOffset(self.cursor.absolute(offset))
        limit = min(self.stop, offset + MAX_STRING_SIZE)
        readable = min(limit, len(self.cursor))
        if offset >= readable:
            raise UnexpectedEndOfData(self.cursor.absolute(offset), 1)
        end = self.cursor.find(b"\x00", offset, readable)
        if end == -1:
            if readable < limit:
                # the pool claims more bytes than the buffer holds
                raise UnexpectedEndOfData(self.cursor.absolute(readable), 1)
            raise InvalidStringOffset(self.cursor.absolute(offset), "string is not terminated")
        raw = self.cursor.peek(end - offset, at=offset)
        try:
            text = raw.decode(STRING_ENCODING)
        except UnicodeDecodeError:
            raise InvalidStringOffset(self.cursor.absolute(offset), "bytes are not valid text") from None
        self._cache[offset] = text
        return text
