"""
Decoder for compiled TDR metalib schemas, split into modules for reuse.
"""

from .cursor import ByteCursor
from .decoder import HEADER_SIZE, METALIB_MAGIC, SUPPORTED_TAGSET_VERSIONS, read_header
from .descriptors import (
    ArrayLength,
    EnumValue,
    FieldDescriptor,
    TypeDescriptor,
    TypeKind,
    TypeRef,
)
from .errors import (
    BadMagic,
    CyclicRenderGuardTriggered,
    DanglingMacroReference,
    DanglingTypeReference,
    InvalidStringOffset,
    MetalibError,
    UnexpectedEndOfData,
    UnknownTypeKind,
    UnresolvedFieldOffset,
    UnsupportedVersion,
)
from .graph import TypeGraph, TypeGraphBuilder
from .logging import BackrefLogger
from .metalib import Metalib, load_metalib, read_metalib
from .render import Document, Node, parse_document, render, render_type
from .scan import Candidate, scan_buffer
from .symbols import SymbolResolver
from .tdrxml import export_metalib_xml

__all__ = [
    "ByteCursor",
    "HEADER_SIZE",
    "METALIB_MAGIC",
    "SUPPORTED_TAGSET_VERSIONS",
    "read_header",
    "ArrayLength",
    "EnumValue",
    "FieldDescriptor",
    "TypeDescriptor",
    "TypeKind",
    "TypeRef",
    "MetalibError",
    "UnexpectedEndOfData",
    "BadMagic",
    "UnsupportedVersion",
    "InvalidStringOffset",
    "UnknownTypeKind",
    "DanglingTypeReference",
    "DanglingMacroReference",
    "UnresolvedFieldOffset",
    "CyclicRenderGuardTriggered",
    "TypeGraph",
    "TypeGraphBuilder",
    "BackrefLogger",
    "Metalib",
    "load_metalib",
    "read_metalib",
    "Document",
    "Node",
    "parse_document",
    "render",
    "render_type",
    "Candidate",
    "scan_buffer",
    "SymbolResolver",
    "export_metalib_xml",
]
