"""
Memory Access Boundary
======================
The pipeline never attaches to a process itself. It talks to a
`MemoryAccess` service that can read byte ranges, resolve pointer-sized
integers and report the module base address.

Classes:
    MemoryAccess: Protocol implemented by any process reader.
    MemoryImage: Sparse in-memory image of mapped segments.
"""
from __future__ import annotations

import bisect
import logging
from typing import Protocol

from bspextractor.config import MAX_STRING_LENGTH, STRING_READ_CHUNK
from bspextractor.errors import MemoryAccessError

logger = logging.getLogger(__name__)


class MemoryAccess(Protocol):
    def read_bytes(self, address: int, length: int) -> bytes: ...

    def read_pointer(self, address: int, width: int) -> int: ...

    def base_address(self) -> int: ...


class MemoryImage:
    """
    A captured (or synthetic) memory image made of non-overlapping segments.

    Any read that touches a byte outside a mapped segment raises
    `MemoryAccessError`, exactly like a failed remote read would.
    """

    def __init__(self, base_address: int = 0) -> None:
        self._base = base_address
        self._starts: list[int] = []
        self._segments: list[bytearray] = []

    def map(self, address: int, data: bytes | bytearray) -> None:
        """Map `data` at `address`. Segments must not overlap."""
        if address < 0:
            raise ValueError(f"Cannot map negative address 0x{address:X}")
        end = address + len(data)
        i = bisect.bisect_left(self._starts, address)
        if i > 0 and self._starts[i - 1] + len(self._segments[i - 1]) > address:
            raise ValueError(f"Segment at 0x{address:X} overlaps an existing mapping")
        if i < len(self._starts) and self._starts[i] < end:
            raise ValueError(f"Segment at 0x{address:X} overlaps an existing mapping")
        self._starts.insert(i, address)
        self._segments.insert(i, bytearray(data))

    def base_address(self) -> int:
        return self._base

    def read_bytes(self, address: int, length: int) -> bytes:
        if length < 0:
            raise MemoryAccessError(address, length, "negative length")
        if length == 0:
            return b""
        i = bisect.bisect_right(self._starts, address) - 1
        if i < 0:
            raise MemoryAccessError(address, length)
        offset = address - self._starts[i]
        segment = self._segments[i]
        if offset + length > len(segment):
            raise MemoryAccessError(address, length)
        return bytes(segment[offset:offset + length])

    def read_pointer(self, address: int, width: int) -> int:
        if width not in (4, 8):
            raise ValueError(f"Unsupported pointer width: {width}")
        return int.from_bytes(self.read_bytes(address, width), "little", signed=False)


def read_c_string(memory: MemoryAccess, address: int, max_length: int = MAX_STRING_LENGTH) -> str:
    """
    Read a NUL-terminated string. A null pointer reads as the empty string.

    Strings are read in chunks; when a chunk runs past the end of mapped
    memory the remainder is read byte by byte so a string that ends right at
    a segment boundary still decodes.
    """
    if address == 0:
        return ""

    buffer = bytearray()
    cursor = address
    while len(buffer) < max_length:
        try:
            chunk = memory.read_bytes(cursor, STRING_READ_CHUNK)
        except MemoryAccessError:
            # Byte-wise tail, the first unreadable byte is a hard failure
            chunk = memory.read_bytes(cursor, 1)
        terminator = chunk.find(b"\x00")
        if terminator >= 0:
            buffer += chunk[:terminator]
            break
        buffer += chunk
        cursor += len(chunk)
    else:
        logger.warning(f"String at 0x{address:X} truncated at {max_length} bytes")

    return bytes(buffer[:max_length]).decode("utf-8", errors="replace")
