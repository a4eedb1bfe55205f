"""
Geometry Reconstructor
======================
Turns the shared 16-bit index buffer and the surface table into global
triangle lists grouped by material.

Why is this file needed?
------------------------
1. Addressing: Surface indices are local to the surface's vertex window.
   Adding the surface's vertex base is what lets 16-bit indices address
   meshes with more than 65535 vertices.
2. Winding: Faces are emitted as (i1, i3, i2) to flip handedness between
   the engine and the exported coordinate system.
3. Safety: A surface whose index window runs past the index buffer is
   skipped, and a global index outside the vertex buffer is an error. Nothing
   is clamped.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, TYPE_CHECKING

import numpy as np

from bspextractor.errors import ReconstructionError
from bspextractor.model.scene import MaterialGroup, Surface
from bspextractor.model.schema import VertexBaseMode

if TYPE_CHECKING:
    import numpy.typing as npt

    from bspextractor.controller.decoder import Record
    from bspextractor.model.scene import Material
    from bspextractor.model.schema import Schema

logger = logging.getLogger(__name__)

# Storage order (i1, i2, i3) -> emitted order (i1, i3, i2)
_EMIT_ORDER = [0, 2, 1]


def resolve_vertex_base(raw_surface: Record, schema: Schema) -> int:
    """Global index of the surface's first vertex, per the schema's base mode."""
    if schema.vertex_base_mode == VertexBaseMode.BYTE_OFFSET:
        return int(raw_surface["vertex_buffer_offset"]) // schema.vertex_base_stride
    return int(raw_surface["vertex_index"])


def build_surfaces(raw_surfaces: Iterable[Record], schema: Schema) -> List[Surface]:
    return [
        Surface(
            vertex_base=resolve_vertex_base(raw, schema),
            face_index=int(raw["face_index"]),
            face_count=int(raw["face_count"]),
            vertex_count=int(raw["vertex_count"]),
            material_address=int(raw["material"]),
        )
        for raw in raw_surfaces
    ]


def surface_faces(
        vertex_count: int,
        indices: npt.NDArray[np.uint16],
        surface: Surface,
) -> Optional[npt.NDArray[np.int64]]:
    """
    Rebuild one surface's kept faces as a (K, 3) array of global indices.

    Returns None when the surface's index window does not fit the index
    buffer. Raises ReconstructionError when a kept face references a vertex
    outside [0, vertex_count).
    """
    start = surface.face_index
    end = start + surface.face_count * 3
    if start < 0 or surface.face_count < 0 or end > len(indices):
        logger.warning(
            f"Skipping surface: index window [{start}, {end}) exceeds index buffer of {len(indices)}"
        )
        return None

    # 1. Local -> global
    faces = indices[start:end].astype(np.int64).reshape(-1, 3) + surface.vertex_base

    # 2. Drop degenerate faces
    i1, i2, i3 = faces[:, 0], faces[:, 1], faces[:, 2]
    faces = faces[(i1 != i2) & (i1 != i3) & (i2 != i3)]

    # 3. Bounds
    if faces.size and (faces.min() < 0 or faces.max() >= vertex_count):
        bad = faces[(faces < 0) | (faces >= vertex_count)][0]
        raise ReconstructionError(
            f"Face references vertex {bad}, but only {vertex_count} vertices were decoded "
            f"(surface base {surface.vertex_base}, face index {surface.face_index})"
        )

    # 4. Winding
    return faces[:, _EMIT_ORDER]


def reconstruct_faces(
        vertex_count: int,
        indices: npt.NDArray[np.uint16],
        surfaces: Sequence[Surface],
) -> List[npt.NDArray[np.int64]]:
    """
    Rebuild every surface. Rejected surfaces yield an empty (0, 3) array so
    the result stays aligned with `surfaces`.
    """
    result = []
    rejected = 0
    for surface in surfaces:
        faces = surface_faces(vertex_count, indices, surface)
        if faces is None:
            rejected += 1
            faces = np.zeros((0, 3), dtype=np.int64)
        result.append(faces)
    if rejected:
        logger.warning(f"Rejected {rejected} of {len(surfaces)} surfaces with out of range index windows")
    return result


def group_by_material(
        surfaces: Sequence[Surface],
        faces: Sequence[npt.NDArray[np.int64]],
        materials: Mapping[int, Material],
) -> tuple[MaterialGroup, ...]:
    """
    Merge the faces of surfaces that share a material name.

    Groups are ordered by first appearance; faces keep surface order.
    """
    if len(surfaces) != len(faces):
        raise ValueError(f"Got {len(faces)} face lists for {len(surfaces)} surfaces")

    owners: Dict[str, Material] = {}
    buckets: Dict[str, List[npt.NDArray[np.int64]]] = {}
    for surface, chunk in zip(surfaces, faces):
        material = materials[surface.material_address]
        owners.setdefault(material.name, material)
        buckets.setdefault(material.name, []).append(chunk)

    return tuple(
        MaterialGroup(owners[name], np.concatenate(parts).reshape(-1, 3).astype(np.int64))
        for name, parts in buckets.items()
    )
