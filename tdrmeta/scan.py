"""
Locate compiled metalibs embedded in a host binary.

The search is a vectorized scan for the two magic bytes followed by a
plausibility check of each candidate header; only headers whose counters and
pointers are mutually consistent are reported.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np

from .decoder import HEADER_SIZE, METALIB_MAGIC, read_header
from .descriptors import MetalibHeader
from .errors import MetalibError
from .metalib import read_metalib


@dataclass(frozen=True)
class Candidate:
    offset: int
    size: int
    name: str
    metas: int
    macros: int
    groups: int


def magic_offsets(buffer: bytes) -> np.ndarray:
    data = np.frombuffer(buffer, dtype=np.uint8)
    if data.size < 2:
        return np.empty(0, dtype=np.int64)
    lo, hi = METALIB_MAGIC & 0xFF, METALIB_MAGIC >> 8
    return np.flatnonzero((data[:-1] == lo) & (data[1:] == hi))


def plausible(header: MetalibHeader, available: int) -> bool:
    body = header.size - HEADER_SIZE
    if body < 0 or header.size > available:
        return False
    counts = (
        (header.cur_meta_num, header.max_meta_num),
        (header.cur_macro_num, header.max_macro_num),
        (header.cur_macros_group_num, header.max_macros_group_num),
    )
    if any(cur < 0 or cur > limit for cur, limit in counts):
        return False
    if not 0 <= header.ptr_str_buf <= header.ptr_free_str_buf <= body:
        return False
    if header.cur_meta_num > 0 and not 0 <= header.ptr_meta < body:
        return False
    return True


def scan_buffer(buffer: bytes, *, verify: bool = False) -> List[Candidate]:
    """
    Return candidate metalibs in file order.

    With ``verify`` each candidate must also decode completely; candidates
    that raise a ``MetalibError`` are dropped.
    """

    found: List[Candidate] = []
    for offset in magic_offsets(buffer).tolist():
        try:
            header = read_header(buffer, offset)
        except MetalibError:
            continue
        if not plausible(header, len(buffer) - offset):
            continue
        if verify:
            try:
                read_metalib(buffer, offset)
            except MetalibError:
                continue
        found.append(
            Candidate(
                offset=offset,
                size=header.size,
                name=header.name,
                metas=header.cur_meta_num,
                macros=header.cur_macro_num,
                groups=header.cur_macros_group_num,
            )
        )
    return found
