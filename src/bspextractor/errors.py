"""Exception types raised by the extraction pipeline."""
from __future__ import annotations


class ExtractionError(Exception):
    """Base class for failures that abort an extraction run."""


class MemoryAccessError(ExtractionError):
    """A byte range or pointer could not be read from the target process."""

    def __init__(self, address: int, length: int, reason: str = "unmapped") -> None:
        self.address = address
        self.length = length
        self.reason = reason
        super().__init__(f"Failed to read {length} bytes at 0x{address:X} ({reason})")


class ReconstructionError(ExtractionError):
    """A reconstructed face references a vertex outside the vertex buffer."""
