"""
Versioned Schemas
=================
Declarative record layouts, one set per supported engine family.

Nothing in memory describes its own layout, so every field the pipeline
touches is listed here with its byte offset and type. Bytes that are not
listed are skipped, never parsed. A layout compiles to a numpy structured
dtype with explicit offsets and item size, which is what the decoder reads
arrays with.

Exports:
    MODERN_WARFARE_2, WORLD_WAR_2, BLACK_OPS_3: The compiled-in schemas.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Dict, Mapping, Optional, Tuple

import numpy as np

from bspextractor.model.scene import TextureRole


# ------------------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------------------
class FieldType(StrEnum):
    U8 = "u8"
    U16 = "u16"
    I32 = "i32"
    U32 = "u32"
    I64 = "i64"
    U64 = "u64"
    F32 = "f32"
    PTR = "ptr"      # width comes from the schema (4 or 8 bytes)
    F32X9 = "f32x9"  # 3x3 row-major basis


class NormalEncoding(StrEnum):
    SCALED_BYTES = "scaled_bytes"
    UNORM_10_10_10 = "unorm_10_10_10"
    BIASED_10_10_10 = "biased_10_10_10"
    SNORM_8 = "snorm_8"


class VertexBaseMode(StrEnum):
    """How a surface stores the start of its vertex window."""
    VERTEX_INDEX = "vertex_index"  # direct index into the global vertex buffer
    BYTE_OFFSET = "byte_offset"    # byte offset into the position buffer


_NUMPY_FORMATS: Dict[FieldType, str] = {
    FieldType.U8: "<u1",
    FieldType.U16: "<u2",
    FieldType.I32: "<i4",
    FieldType.U32: "<u4",
    FieldType.I64: "<i8",
    FieldType.U64: "<u8",
    FieldType.F32: "<f4",
}


# ------------------------------------------------------------------------------
# Data Structures
# ------------------------------------------------------------------------------
@dataclass(frozen=True)
class RecordLayout:
    """
    One fixed-size record: total size in bytes and the fields of interest.
    """
    name: str
    size: int
    fields: Mapping[str, Tuple[int, FieldType]]

    def __post_init__(self) -> None:
        self.validate(pointer_width=4)

    def validate(self, pointer_width: int) -> None:
        """Every field must lie inside the record for the given pointer width."""
        for field_name, (offset, field_type) in self.fields.items():
            end = offset + field_width(field_type, pointer_width)
            if offset < 0 or end > self.size:
                raise ValueError(f"{self.name}.{field_name} at 0x{offset:X} overruns record size 0x{self.size:X}")

    def has(self, field_name: str) -> bool:
        return field_name in self.fields

    def dtype(self, pointer_width: int) -> np.dtype:
        """Compile to a numpy structured dtype (explicit offsets, packed layout)."""
        names, formats, offsets = [], [], []
        for field_name, (offset, field_type) in self.fields.items():
            names.append(field_name)
            offsets.append(offset)
            if field_type == FieldType.PTR:
                formats.append("<u4" if pointer_width == 4 else "<u8")
            elif field_type == FieldType.F32X9:
                formats.append(("<f4", (9,)))
            else:
                formats.append(_NUMPY_FORMATS[field_type])
        return np.dtype({"names": names, "formats": formats, "offsets": offsets, "itemsize": self.size})


def field_width(field_type: FieldType, pointer_width: int) -> int:
    match field_type:
        case FieldType.U8:
            return 1
        case FieldType.U16:
            return 2
        case FieldType.I32 | FieldType.U32 | FieldType.F32:
            return 4
        case FieldType.I64 | FieldType.U64:
            return 8
        case FieldType.PTR:
            return pointer_width
        case FieldType.F32X9:
            return 36
        case _:
            raise ValueError(f"Unknown field type: {field_type}")


@dataclass(frozen=True)
class VertexStream:
    """A per-vertex array whose base address lives in a header pointer field."""
    pointer_field: str
    layout: RecordLayout


@dataclass(frozen=True)
class AssetSlots:
    """
    Where the root records live relative to the asset pool table.

    Each slot holds a pointer; the record starts at that pointer plus the
    given offset. The signature is the name of the first model in the model
    pool and identifies the exact binary build.
    """
    signature_slot: int
    signature_name_offset: int
    signature_value: str
    gfx_map_slot: int
    gfx_map_offset: int = 0
    zone_slot: Optional[int] = None
    zone_offset: int = 0
    map_ents_slot: Optional[int] = None


@dataclass(frozen=True)
class EntityRules:
    """Which entity blocks become dynamic model records, and how they are read."""
    marker: str = "script_model"
    required_key: str = '"model"'
    denylist: Tuple[str, ...] = ('"hq"', '"sab"', '"ctf"', '"sd"', '"special')
    skip_scientific_angles: bool = False
    rewrite_vehicle_variants: bool = False


@dataclass(frozen=True)
class Schema:
    family: str
    title: str
    export_folder: str
    pointer_width: int
    slots: AssetSlots
    header: RecordLayout
    vertex_streams: Tuple[VertexStream, ...]
    surface: RecordLayout
    material: RecordLayout
    image_slot: RecordLayout
    image_name_offset: int
    static_model: RecordLayout
    normal_encoding: NormalEncoding
    semantics: Mapping[int, TextureRole]
    vertex_base_mode: VertexBaseMode = VertexBaseMode.VERTEX_INDEX
    vertex_base_stride: int = 1
    zone_header: Optional[RecordLayout] = None
    map_ents: Optional[RecordLayout] = None
    entity_rules: Optional[EntityRules] = None
    name_rewrites: Tuple[Tuple[str, str], ...] = field(default=())

    def __post_init__(self) -> None:
        if self.pointer_width not in (4, 8):
            raise ValueError(f"{self.family}: pointer width must be 4 or 8, got {self.pointer_width}")
        if (self.map_ents is None) != (self.slots.map_ents_slot is None):
            raise ValueError(f"{self.family}: map_ents layout and slot must be given together")
        if (self.zone_header is None) != (self.slots.zone_slot is None):
            raise ValueError(f"{self.family}: zone header layout and slot must be given together")
        for layout in self.layouts():
            layout.validate(self.pointer_width)

    def layouts(self) -> list[RecordLayout]:
        layouts = [self.header, self.surface, self.material, self.image_slot, self.static_model]
        layouts.extend(stream.layout for stream in self.vertex_streams)
        layouts.extend(layout for layout in (self.zone_header, self.map_ents) if layout is not None)
        return layouts

    @property
    def has_entities(self) -> bool:
        return self.map_ents is not None and self.entity_rules is not None


# ------------------------------------------------------------------------------
# Shared semantic identifiers (32-bit hashes of the sampler names)
# ------------------------------------------------------------------------------
SEMANTIC_DIFFUSE = 0xA0AB1041
SEMANTIC_NORMAL = 0x59D30D0F
SEMANTIC_SPECULAR = 0x34ECCCB3
SEMANTIC_HEIGHT = 0x34D849D5
SEMANTIC_EMISSION = 0x34614347
SEMANTIC_OCCLUSION = 0x6001F931

P, U8, U16, I32, U32, I64, F32, M9 = (
    FieldType.PTR, FieldType.U8, FieldType.U16, FieldType.I32,
    FieldType.U32, FieldType.I64, FieldType.F32, FieldType.F32X9,
)

# ------------------------------------------------------------------------------
# Modern Warfare 2 (32-bit, interleaved 44 byte vertices)
# ------------------------------------------------------------------------------
MODERN_WARFARE_2 = Schema(
    family="iw4",
    title="Call of Duty: Modern Warfare 2",
    export_folder="modern_warfare_2",
    pointer_width=4,
    slots=AssetSlots(
        signature_slot=0x10,
        signature_name_offset=4,
        signature_value="void",
        gfx_map_slot=0x15 * 4,
        map_ents_slot=0x13 * 4,
    ),
    header=RecordLayout("GfxMap", 0x228, {
        "name": (0x0, P),
        "map_name": (0x4, P),
        "surface_count": (0x10, I32),
        "vertex_count": (0x78, I32),
        "vertices": (0x7C, P),
        "index_count": (0x90, I32),
        "indices": (0x94, P),
        "static_model_count": (0x1C8, I32),
        "surfaces": (0x21C, P),
        "static_models": (0x224, P),
    }),
    vertex_streams=(
        VertexStream("vertices", RecordLayout("GfxVertex", 44, {
            "x": (0, F32), "y": (4, F32), "z": (8, F32),
            "u": (20, F32), "v": (24, F32),
            "normal": (36, U32),
        })),
    ),
    surface=RecordLayout("GfxSurface", 24, {
        "vertex_index": (4, I32),
        "vertex_count": (8, U16),
        "face_count": (10, U16),
        "face_index": (12, I32),
        "material": (16, P),
    }),
    material=RecordLayout("Material", 0x58, {
        "name": (0x0, P),
        "image_count": (0x48, U8),
        "image_table": (0x54, P),
    }),
    image_slot=RecordLayout("MaterialImage", 12, {
        "semantic": (0, U32),
        "image": (8, P),
    }),
    image_name_offset=0x1C,
    static_model=RecordLayout("GfxStaticModel", 0x4C, {
        "x": (0, F32), "y": (4, F32), "z": (8, F32),
        "matrix": (12, M9),
        "scale": (48, F32),
        "model": (52, P),
    }),
    normal_encoding=NormalEncoding.SCALED_BYTES,
    semantics={
        SEMANTIC_DIFFUSE: TextureRole.DIFFUSE,
        SEMANTIC_NORMAL: TextureRole.NORMAL,
        SEMANTIC_SPECULAR: TextureRole.SPECULAR,
    },
    map_ents=RecordLayout("MapEnts", 8, {
        "name": (0, P),
        "entity_string": (4, P),
    }),
    entity_rules=EntityRules(
        denylist=('"hq"', '"sab"', '"ctf"', '"sd"', '"special', '"model" "fx'),
        rewrite_vehicle_variants=True,
    ),
    name_rewrites=(("mlv", ""),),
)

# ------------------------------------------------------------------------------
# World War II (64-bit, split vertex streams in the transient zone record)
# ------------------------------------------------------------------------------
WORLD_WAR_2 = Schema(
    family="s2",
    title="Call of Duty: World War II",
    export_folder="world_war_2",
    pointer_width=8,
    slots=AssetSlots(
        signature_slot=0x50,
        signature_name_offset=8,
        signature_value="empty_model",
        gfx_map_slot=0x138,
        zone_slot=0x140,
        zone_offset=8,
    ),
    header=RecordLayout("GfxMap", 0xFC0, {
        "name": (0x0, P),
        "map_name": (0x8, P),
        "surface_count": (0x1C, I32),
        "index_count": (0x3C8, I64),
        "indices": (0x3D0, P),
        "static_model_count": (0xB28, I64),
        "surfaces": (0xF98, P),
        "static_models": (0xFB8, P),
    }),
    zone_header=RecordLayout("GfxMapTRZone", 0x130, {
        "vertex_count": (0xA4, I32),
        "positions": (0xA8, P),
        "colors": (0xB8, P),
        "uvs": (0xC0, P),
        "normals": (0xD0, P),
    }),
    vertex_streams=(
        VertexStream("positions", RecordLayout("GfxVertexPosition", 12, {
            "x": (0, F32), "y": (4, F32), "z": (8, F32),
        })),
        VertexStream("uvs", RecordLayout("GfxVertexUV", 8, {
            "u": (0, F32), "v": (4, F32),
        })),
        VertexStream("normals", RecordLayout("PackedUnitVector", 4, {
            "normal": (0, U32),
        })),
    ),
    surface=RecordLayout("GfxSurface", 56, {
        "vertex_index": (4, I32),
        "vertex_count": (8, U16),
        "face_count": (10, U16),
        "face_index": (24, I32),
        "material": (32, P),
    }),
    material=RecordLayout("Material", 0x168, {
        "name": (0x0, P),
        "image_count": (0xA2, U8),
        "image_table": (0xC0, P),
    }),
    image_slot=RecordLayout("MaterialImage", 16, {
        "semantic": (0, U32),
        "image": (8, P),
    }),
    image_name_offset=96,
    static_model=RecordLayout("GfxStaticModel", 128, {
        "x": (0, F32), "y": (4, F32), "z": (8, F32),
        "matrix": (12, M9),
        "scale": (48, F32),
        "model": (72, P),
    }),
    normal_encoding=NormalEncoding.UNORM_10_10_10,
    semantics={
        SEMANTIC_DIFFUSE: TextureRole.DIFFUSE,
    },
    name_rewrites=(("mlv", ""),),
)

# ------------------------------------------------------------------------------
# Black Ops III (64-bit, position stream + attribute stream, byte offset bases)
# ------------------------------------------------------------------------------
BLACK_OPS_3 = Schema(
    family="t7",
    title="Call of Duty: Black Ops 3",
    export_folder="black_ops_3",
    pointer_width=8,
    slots=AssetSlots(
        signature_slot=0x80,
        signature_name_offset=0,
        signature_value="void",
        gfx_map_slot=16 * 0x20,
        # Found by scanning pool offsets for a readable entity string
        map_ents_slot=0x1E0,
    ),
    header=RecordLayout("GfxMap", 0x444, {
        "name": (0x0, P),
        "map_name": (0x8, P),
        "surface_count": (0x18, I32),
        "vertex_count": (0x268, I32),
        "vertex_buffer_size": (0x26C, I32),
        "vertices": (0x270, P),
        "vertex_data": (0x288, P),
        "index_count": (0x298, I64),
        "indices": (0x2A0, P),
        "static_model_count": (0x2FC, I32),
        "surfaces": (0x430, P),
        "static_models": (0x438, P),
    }),
    vertex_streams=(
        VertexStream("vertices", RecordLayout("GfxVertex", 12, {
            "x": (0, F32), "y": (4, F32), "z": (8, F32),
        })),
        VertexStream("vertex_data", RecordLayout("GfxVertexData", 20, {
            "u": (4, F32), "v": (8, F32),
            "normal": (12, U32),
        })),
    ),
    surface=RecordLayout("GfxSurface", 96, {
        "vertex_buffer_offset": (0xC, I32),
        "vertex_index": (0x20, I32),
        "vertex_count": (0x28, U16),
        "face_count": (0x2A, U16),
        "face_index": (0x2C, I32),
        "material": (0x48, P),
    }),
    material=RecordLayout("Material", 0x2A0, {
        "name": (0x0, P),
        "image_count": (0x270, U8),
        "image_table": (0x280, P),
    }),
    image_slot=RecordLayout("MaterialImage", 32, {
        "image": (0, P),
        "semantic": (8, U32),
    }),
    image_name_offset=0xF8,
    static_model=RecordLayout("GfxStaticModel", 152, {
        "x": (0, F32), "y": (4, F32), "z": (8, F32),
        "matrix": (12, M9),
        "scale": (48, F32),
        "model": (88, P),
    }),
    normal_encoding=NormalEncoding.BIASED_10_10_10,
    semantics={
        SEMANTIC_DIFFUSE: TextureRole.DIFFUSE,
        SEMANTIC_NORMAL: TextureRole.NORMAL,
        SEMANTIC_SPECULAR: TextureRole.SPECULAR,
        SEMANTIC_HEIGHT: TextureRole.HEIGHT,
        SEMANTIC_EMISSION: TextureRole.EMISSION,
        SEMANTIC_OCCLUSION: TextureRole.OCCLUSION,
    },
    vertex_base_mode=VertexBaseMode.BYTE_OFFSET,
    vertex_base_stride=12,
    map_ents=RecordLayout("MapEnts", 16, {
        "name": (0, P),
        "entity_string": (8, P),
    }),
    entity_rules=EntityRules(skip_scientific_angles=True),
    name_rewrites=(('"ml', '"'), ('"mv', '"')),
)

ALL_SCHEMAS: Dict[str, Schema] = {
    schema.family: schema for schema in (MODERN_WARFARE_2, WORLD_WAR_2, BLACK_OPS_3)
}
