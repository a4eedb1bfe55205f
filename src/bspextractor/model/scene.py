"""
Scene (Data Model)
==================
This module defines the values produced by one extraction run.

Why is this file needed?
------------------------
1. Hand-off: The Scene is the single aggregate handed to the writers. It is
   built once per run and never mutated afterwards.
2. Decoupling: Decoders produce these values, writers consume them, neither
   needs to know about the other.

Classes:
    VertexBuffer: Decoded vertex attributes (numpy backed).
    Surface: One run of faces bound to a material.
    Material: Resolved material name and texture role bindings.
    StaticModelPlacement: A named model with position/rotation/scale.
    MaterialGroup: All kept faces of one material.
    Scene: The aggregate root.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Dict, Optional, Tuple, TYPE_CHECKING

import numpy as np

from bspextractor.config import FLOAT_DECIMALS

if TYPE_CHECKING:
    import numpy.typing as npt

# Entity blocks are insertion-ordered key -> value mappings
EntityRecord = Dict[str, str]


class TextureRole(StrEnum):
    DIFFUSE = "diffuse"
    NORMAL = "normal"
    SPECULAR = "specular"
    HEIGHT = "height"
    EMISSION = "emission"
    OCCLUSION = "occlusion"


@dataclass(frozen=True)
class VertexBuffer:
    """
    Struct-of-arrays vertex storage. Row `i` of every array is vertex `i`.
    """
    positions: npt.NDArray[np.float64]  # (N, 3), already unit-scaled
    uvs: npt.NDArray[np.float64]        # (N, 2), V already flipped
    normals: npt.NDArray[np.float64]    # (N, 3)

    def __post_init__(self) -> None:
        n = len(self.positions)
        if self.positions.shape != (n, 3) or self.uvs.shape != (n, 2) or self.normals.shape != (n, 3):
            raise ValueError(
                f"Inconsistent vertex arrays: {self.positions.shape}, {self.uvs.shape}, {self.normals.shape}"
            )

    def __len__(self) -> int:
        return len(self.positions)


@dataclass(frozen=True)
class Surface:
    """
    A contiguous run of faces inside the shared index buffer.

    `vertex_base` is the additive offset that turns the surface-local 16-bit
    indices into global vertex indices. It is already resolved from the
    schema's base mode (vertex index or byte offset / stride).
    """
    vertex_base: int
    face_index: int
    face_count: int
    vertex_count: int
    material_address: int


@dataclass
class Material:
    name: str
    textures: Dict[TextureRole, str] = field(default_factory=dict)

    def texture(self, role: TextureRole) -> Optional[str]:
        return self.textures.get(role)

    @property
    def diffuse(self) -> Optional[str]:
        return self.textures.get(TextureRole.DIFFUSE)


@dataclass(frozen=True)
class StaticModelPlacement:
    name: str
    position: Tuple[float, float, float]
    rotation: Tuple[float, float, float]  # Euler angles, degrees
    scale: float

    def to_record(self, decimals: int = FLOAT_DECIMALS) -> EntityRecord:
        """Flatten into the same key layout the entity parser produces."""
        fmt = f"{{:.{decimals}f}}"
        return {
            "Name": self.name,
            "PosX": fmt.format(self.position[0]),
            "PosY": fmt.format(self.position[1]),
            "PosZ": fmt.format(self.position[2]),
            "RotX": fmt.format(self.rotation[0]),
            "RotY": fmt.format(self.rotation[1]),
            "RotZ": fmt.format(self.rotation[2]),
            "Scale": fmt.format(self.scale),
        }


@dataclass(frozen=True)
class MaterialGroup:
    material: Material
    faces: npt.NDArray[np.int64]  # (K, 3) global vertex indices, emitted winding

    @property
    def face_count(self) -> int:
        return len(self.faces)


@dataclass(frozen=True)
class Scene:
    gfx_map_name: str
    map_name: str
    vertices: VertexBuffer
    groups: Tuple[MaterialGroup, ...] = ()
    placements: Tuple[StaticModelPlacement, ...] = ()
    entities: Tuple[EntityRecord, ...] = ()
    world_settings: Dict[str, str] = field(default_factory=dict)
    entity_blob: str = ""

    @property
    def materials(self) -> list[Material]:
        return [group.material for group in self.groups]

    @property
    def face_count(self) -> int:
        return sum(group.face_count for group in self.groups)

    def model_records(self, decimals: int = FLOAT_DECIMALS) -> list[EntityRecord]:
        """Static model records first, then dynamic model entity records."""
        records = [placement.to_record(decimals) for placement in self.placements]
        records.extend(dict(entity) for entity in self.entities)
        return records
