from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


class MetalibError(RuntimeError):
    """Base class for every failure raised while decoding a metalib."""

    kind = "MetalibError"


class UnexpectedEndOfData(MetalibError):
    kind = "UnexpectedEndOfData"

    def __init__(self, offset: int, requested_len: int) -> None:
        self.offset = offset
        self.requested_len = requested_len
        super().__init__(f"read of {requested_len} byte(s) at 0x{offset:X} runs past the end of the data")


class BadMagic(MetalibError):
    kind = "BadMagic"

    def __init__(self, offset: int, found: int) -> None:
        self.offset = offset
        self.found = found
        super().__init__(f"no metalib signature at 0x{offset:X} (found 0x{found:04X})")


class UnsupportedVersion(MetalibError):
    kind = "UnsupportedVersion"

    def __init__(self, found: int, offset: int = 0) -> None:
        self.found = found
        self.offset = offset
        super().__init__(f"unsupported metalib tag-set version {found}")


class InvalidStringOffset(MetalibError):
    kind = "InvalidStringOffset"

    def __init__(self, offset: int, reason: str = "outside the string table") -> None:
        self.offset = offset
        self.reason = reason
        super().__init__(f"string pointer 0x{offset:X}: {reason}")


class UnknownTypeKind(MetalibError):
    kind = "UnknownTypeKind"

    def __init__(self, tag: int, offset: int) -> None:
        self.tag = tag
        self.offset = offset
        super().__init__(f"unknown type kind {tag} in record at 0x{offset:X}")


class DanglingTypeReference(MetalibError):
    kind = "DanglingTypeReference"

    def __init__(self, source: int, target: int) -> None:
        self.source = source
        self.target = target
        super().__init__(f"type {source} references 0x{target:X}, which is not a registered type")


class DanglingMacroReference(MetalibError):
    kind = "DanglingMacroReference"

    def __init__(self, source: int, index: int) -> None:
        self.source = source
        self.index = index
        super().__init__(f"type {source} references macro #{index}, which does not exist")


class UnresolvedFieldOffset(MetalibError):
    kind = "UnresolvedFieldOffset"

    def __init__(self, type_id: int, field_offset: int) -> None:
        self.type_id = type_id
        self.field_offset = field_offset
        super().__init__(f"no field of type {type_id} starts at offset {field_offset}")


@dataclass(frozen=True)
class CyclicRenderGuardTriggered:
    """Recorded (never raised) when the renderer emits a back-reference."""

    source: int
    target: int
    name: str
    path: Tuple[int, ...]
