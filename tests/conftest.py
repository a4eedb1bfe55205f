"""Synthetic memory images for the extraction tests."""
from __future__ import annotations

import struct
from typing import Dict, Optional

import pytest

from bspextractor.memory import MemoryImage
from bspextractor.model.profiles import GameProfile
from bspextractor.model.schema import (
    SEMANTIC_DIFFUSE,
    FieldType,
    NormalEncoding,
    RecordLayout,
    VertexBaseMode,
)

_FORMATS = {
    FieldType.U8: "<B",
    FieldType.U16: "<H",
    FieldType.I32: "<i",
    FieldType.U32: "<I",
    FieldType.I64: "<q",
    FieldType.U64: "<Q",
    FieldType.F32: "<f",
}

IDENTITY = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)

# Packed normals that decode to (roughly) +X for each encoding
PLUS_X = {
    NormalEncoding.SCALED_BYTES: 0x007F7FFF,
    NormalEncoding.UNORM_10_10_10: 1023 | (512 << 10) | (512 << 20),
    NormalEncoding.BIASED_10_10_10: 1023 | (512 << 10) | (512 << 20),
    NormalEncoding.SNORM_8: 0x0000007F,
}

POSITIONS = [(0.0, 0.0, 0.0), (1.0, 0.0, 0.0), (0.0, 1.0, 0.0),
             (10.0, 0.0, 0.0), (11.0, 0.0, 0.0), (10.0, 1.0, 0.0)]
UVS = [(0.0, 0.25), (1.0, 0.25), (0.0, 1.0), (0.5, 0.5), (1.0, 0.0), (0.5, 0.0)]

# Surface A: two faces from the first window. Surface B: one kept face and
# one degenerate face from its own window starting at index 6.
INDICES = [0, 1, 2, 2, 1, 0, 0, 1, 2, 0, 0, 1]

ENTITY_BLOB = "\n".join([
    "{",
    '"classname" "worldspawn"',
    '"sundirection" "-30 120 0"',
    '"sundirection" "0 0 0"',
    "}",
    "{",
    '"origin" "1 2 3"',
    '"angles" "4 5 6"',
    '"model" "vehicle_car_static"',
    '"classname" "script_model"',
    "}",
    "{",
    '"classname" "script_model"',
    '"model" "flag_base"',
    '"gametype" "ctf"',
    "}",
])

STATIC_MODELS = [
    ("tree_oak", (1.0, 2.0, 3.0), 1.0),
    ("fx_smoke", (0.0, 0.0, 0.0), 1.0),
    ("rock", (0.0, 0.0, 0.0), 20.0),
    ("mlvcrate", (4.0, 5.0, 6.0), 0.5),
]


def pack_record(layout: RecordLayout, pointer_width: int, values: Dict[str, object]) -> bytearray:
    buffer = bytearray(layout.size)
    for name, value in values.items():
        offset, field_type = layout.fields[name]
        if field_type == FieldType.PTR:
            struct.pack_into("<I" if pointer_width == 4 else "<Q", buffer, offset, value)
        elif field_type == FieldType.F32X9:
            struct.pack_into("<9f", buffer, offset, *value)
        else:
            struct.pack_into(_FORMATS[field_type], buffer, offset, value)
    return buffer


class ImageBuilder:
    """Allocates separate segments in a MemoryImage, leaving gaps between them."""

    def __init__(self, pointer_width: int, base_address: int = 0, heap_start: int = 0x20000000) -> None:
        self.image = MemoryImage(base_address)
        self.pointer_width = pointer_width
        self._cursor = heap_start

    def alloc(self, data: bytes) -> int:
        data = bytes(data) or b"\x00"
        address = self._cursor
        self.image.map(address, data)
        self._cursor += ((len(data) + 0xF) & ~0xF) + 0x100
        return address

    def pointer_bytes(self, value: int) -> bytes:
        return struct.pack("<I" if self.pointer_width == 4 else "<Q", value)

    def string(self, text: str) -> int:
        return self.alloc(text.encode("utf-8") + b"\x00")

    def record(self, layout: RecordLayout, values: Dict[str, object], offset: int = 0) -> int:
        """Allocate a record so that it starts at the returned address plus `offset`."""
        return self.alloc(bytes(offset) + pack_record(layout, self.pointer_width, values))

    def array(self, layout: RecordLayout, rows) -> int:
        return self.alloc(b"".join(pack_record(layout, self.pointer_width, row) for row in rows))

    def named(self, name: str, name_offset: int = 0) -> int:
        """A record whose pointer at `name_offset` points at `name`."""
        return self.alloc(bytes(name_offset) + self.pointer_bytes(self.string(name)))


def build_level(
        profile: GameProfile,
        signature: Optional[str] = None,
        gfx_map_name: str = "gfx_test",
        map_name: str = "mp_test",
        entity_blob: str = ENTITY_BLOB,
) -> MemoryImage:
    schema = profile.schema
    slots = schema.slots
    builder = ImageBuilder(schema.pointer_width, base_address=0x140000000 if profile.relative_to_base else 0)
    pools = profile.pools_address(builder.image)

    used_slots = [s for s in (slots.signature_slot, slots.gfx_map_slot, slots.zone_slot, slots.map_ents_slot)
                  if s is not None]
    table = bytearray(max(used_slots) + schema.pointer_width)

    def set_slot(slot: int, value: int) -> None:
        table[slot:slot + schema.pointer_width] = builder.pointer_bytes(value)

    # 1. Signature model
    set_slot(slots.signature_slot, builder.named(signature or slots.signature_value, slots.signature_name_offset))

    # 2. Vertex streams
    encoding = schema.normal_encoding
    vertex_values = [
        {"x": p[0], "y": p[1], "z": p[2], "u": uv[0], "v": uv[1], "normal": PLUS_X[encoding]}
        for p, uv in zip(POSITIONS, UVS)
    ]
    values: Dict[str, object] = {}
    for stream in schema.vertex_streams:
        rows = [{name: vertex[name] for name in stream.layout.fields} for vertex in vertex_values]
        values[stream.pointer_field] = builder.array(stream.layout, rows)

    # 3. Materials
    def image(name: str) -> int:
        return builder.named(name, schema.image_name_offset)

    def material(name: str, images) -> int:
        table_pointer = builder.array(
            schema.image_slot, [{"semantic": semantic, "image": image(path)} for semantic, path in images]
        )
        return builder.record(schema.material, {
            "name": builder.string(name), "image_count": len(images), "image_table": table_pointer,
        })

    wall = material("*mc/mtl_wall", [
        (SEMANTIC_DIFFUSE, "wall_a_c"), (0xDEADBEEF, "unused_n"), (SEMANTIC_DIFFUSE, "wall_b_c"),
    ])
    floor = material("mtl_floor", [(SEMANTIC_DIFFUSE, "floor_c")])

    # 4. Surfaces
    surface_rows = []
    for base, face_index, material_pointer in ((0, 0, wall), (3, 6, floor)):
        row = {"vertex_index": base, "vertex_count": 3, "face_count": 2,
               "face_index": face_index, "material": material_pointer}
        if schema.vertex_base_mode == VertexBaseMode.BYTE_OFFSET:
            row["vertex_index"] = 0
            row["vertex_buffer_offset"] = base * schema.vertex_base_stride
        surface_rows.append(row)

    # 5. Static models
    model_rows = [
        {"x": p[0], "y": p[1], "z": p[2], "matrix": IDENTITY, "scale": scale, "model": builder.named(name)}
        for name, p, scale in STATIC_MODELS
    ]

    values.update({
        "name": builder.string(gfx_map_name),
        "map_name": builder.string(map_name),
        "surface_count": len(surface_rows),
        "vertex_count": len(POSITIONS),
        "index_count": len(INDICES),
        "indices": builder.alloc(struct.pack(f"<{len(INDICES)}H", *INDICES)),
        "static_model_count": len(model_rows),
        "surfaces": builder.array(schema.surface, surface_rows),
        "static_models": builder.array(schema.static_model, model_rows),
    })

    # 6. Header(s)
    header_values = {k: v for k, v in values.items() if schema.header.has(k)}
    set_slot(slots.gfx_map_slot, builder.record(schema.header, header_values, slots.gfx_map_offset))
    if schema.zone_header is not None:
        zone_values = {k: v for k, v in values.items() if schema.zone_header.has(k) and k not in header_values}
        set_slot(slots.zone_slot, builder.record(schema.zone_header, zone_values, slots.zone_offset))

    # 7. Entities
    if schema.map_ents is not None:
        set_slot(slots.map_ents_slot, builder.record(schema.map_ents, {
            "name": builder.string(f"maps/mp/{map_name}.d3dbsp"),
            "entity_string": builder.string(entity_blob),
        }))

    builder.image.map(pools, table)
    return builder.image


@pytest.fixture
def narration() -> list:
    return []
