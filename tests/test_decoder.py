import struct

import numpy as np
import pytest

from bspextractor.controller.decoder import StructDecoder
from bspextractor.errors import MemoryAccessError
from bspextractor.memory import MemoryImage
from bspextractor.model.schema import FieldType, RecordLayout

LAYOUT = RecordLayout("Sample", 48, {
    "count": (0, FieldType.U16),
    "name": (4, FieldType.PTR),
    "matrix": (12, FieldType.F32X9),
})


@pytest.fixture
def memory() -> MemoryImage:
    image = MemoryImage()
    record = bytearray(48)
    struct.pack_into("<H", record, 0, 7)
    struct.pack_into("<I", record, 4, 0x3000)
    struct.pack_into("<9f", record, 12, *range(9))
    second = bytearray(record)
    struct.pack_into("<H", second, 0, 8)
    image.map(0x1000, bytes(record + second))
    image.map(0x2000, struct.pack("<II", 0x2100, 0) + bytes(0xF8) + struct.pack("<II", 0x1000, 0))
    image.map(0x3000, b"lighthouse\x00")
    image.map(0x4000, struct.pack("<4H", 0, 1, 2, 65535))
    return image


def test_read_record_converts_to_python_values(memory):
    record = StructDecoder(memory, 4).read_record(LAYOUT, 0x1000)
    assert record["count"] == 7
    assert isinstance(record["count"], int)
    assert record["name"] == 0x3000
    assert record["matrix"] == tuple(float(v) for v in range(9))


def test_read_array_reads_consecutive_records(memory):
    records = StructDecoder(memory, 4).read_array(LAYOUT, 0x1000, 2)
    assert list(records["count"]) == [7, 8]


def test_zero_count_reads_nothing():
    # Address 0 is unmapped, an actual read would fail
    records = StructDecoder(MemoryImage(), 8).read_array(LAYOUT, 0, 0)
    assert len(records) == 0
    assert records.dtype.itemsize == 48


def test_negative_count_is_rejected(memory):
    decoder = StructDecoder(memory, 4)
    with pytest.raises(MemoryAccessError):
        decoder.read_array(LAYOUT, 0x1000, -1)
    with pytest.raises(MemoryAccessError):
        decoder.read_indices(0x4000, -1)


def test_short_array_read_fails(memory):
    with pytest.raises(MemoryAccessError):
        StructDecoder(memory, 4).read_array(LAYOUT, 0x1000, 3)


def test_pointer_width_controls_reads(memory):
    assert StructDecoder(memory, 4).read_pointer(0x2000) == 0x2100
    assert StructDecoder(memory, 8).read_pointer(0x2000) == 0x2100


def test_follow_walks_pointer_chain(memory):
    decoder = StructDecoder(memory, 4)
    # [0x2000] -> 0x2100, [0x2100 + 0] -> 0x1000
    assert decoder.follow(0x2000, 0) == 0x1000


def test_read_string_at(memory):
    assert StructDecoder(memory, 4).read_string_at(0x1004) == "lighthouse"


def test_read_indices_is_unsigned_16_bit(memory):
    indices = StructDecoder(memory, 8).read_indices(0x4000, 4)
    assert indices.dtype == np.dtype("<u2")
    assert list(indices) == [0, 1, 2, 65535]


def test_invalid_pointer_width():
    with pytest.raises(ValueError):
        StructDecoder(MemoryImage(), 2)
