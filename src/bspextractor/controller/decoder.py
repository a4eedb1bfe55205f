"""
Memory Struct Decoder
=====================
Reads fixed-layout records out of the target's memory.

Why is this file needed?
------------------------
1. Width: It owns every pointer-width and endianness decision, so the rest of
   the pipeline never deals with 4 vs 8 byte pointers.
2. Bounds: Lengths always come from a count the caller read earlier. Nothing
   here trusts a length found inside the bytes being decoded.
3. Speed: Arrays are read with one call into one buffer and viewed through a
   numpy structured dtype instead of record by record.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, TYPE_CHECKING

import numpy as np

from bspextractor.errors import MemoryAccessError
from bspextractor.memory import read_c_string

if TYPE_CHECKING:
    import numpy.typing as npt

    from bspextractor.memory import MemoryAccess
    from bspextractor.model.schema import RecordLayout

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class StructDecoder:
    def __init__(self, memory: MemoryAccess, pointer_width: int) -> None:
        if pointer_width not in (4, 8):
            raise ValueError(f"Unsupported pointer width: {pointer_width}")
        self.memory = memory
        self.pointer_width = pointer_width

    # --- Scalars ---

    def read_pointer(self, address: int) -> int:
        """Read a pointer-sized value, zero-extended to a native address."""
        return self.memory.read_pointer(address, self.pointer_width)

    def follow(self, address: int, *offsets: int) -> int:
        """
        Walk a pointer chain: read the pointer at `address`, then at
        `result + offsets[0]`, and so on. Returns the last value read.
        """
        value = self.read_pointer(address)
        for offset in offsets:
            value = self.read_pointer(value + offset)
        return value

    def read_string(self, address: int) -> str:
        return read_c_string(self.memory, address)

    def read_string_at(self, pointer_address: int) -> str:
        """Read the string a pointer stored at `pointer_address` points to."""
        return self.read_string(self.read_pointer(pointer_address))

    # --- Records ---

    def read_record(self, layout: RecordLayout, address: int) -> Record:
        """Read one record and return its fields of interest as Python values."""
        array = self.read_array(layout, address, 1)
        return record_to_dict(array[0])

    def read_array(self, layout: RecordLayout, address: int, count: int) -> npt.NDArray[np.void]:
        """
        Read `count` consecutive records as one buffer.

        The returned structured array is a read-only view over that buffer.
        """
        count = int(count)
        if count < 0:
            raise MemoryAccessError(address, count * layout.size, f"negative {layout.name} count")
        dtype = layout.dtype(self.pointer_width)
        if count == 0:
            return np.zeros(0, dtype=dtype)
        buffer = self.memory.read_bytes(address, count * layout.size)
        logger.debug(f"Read {count} x {layout.name} ({len(buffer)} bytes) at 0x{address:X}")
        return np.frombuffer(buffer, dtype=dtype, count=count)

    def read_indices(self, address: int, count: int) -> npt.NDArray[np.uint16]:
        """Read a flat little-endian 16-bit index buffer."""
        count = int(count)
        if count < 0:
            raise MemoryAccessError(address, count * 2, "negative index count")
        if count == 0:
            return np.zeros(0, dtype="<u2")
        return np.frombuffer(self.memory.read_bytes(address, count * 2), dtype="<u2", count=count)


def record_to_dict(record: np.void) -> Record:
    """Convert one structured-array element into plain Python values."""
    result: Record = {}
    for name in record.dtype.names:
        value = record[name]
        if isinstance(value, np.ndarray):
            result[name] = tuple(float(v) for v in value)
        else:
            result[name] = value.item()
    return result
