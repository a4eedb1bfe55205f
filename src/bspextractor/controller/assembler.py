"""
Scene Assembler
===============
Drives one extraction run for one game profile.

Why is this file needed?
------------------------
1. Orchestration: It is the only place that knows the read order
   (signature, header, names, vertices, indices, surfaces, materials,
   placements, entities). Every other module handles a single step.
2. Outcomes: "Unsupported build" and "no level loaded" are ordinary results
   and are returned as such. A failed memory read is not: it propagates as
   `MemoryAccessError` and aborts the run.
3. Narration: Progress and summary lines go through one callback so a CLI,
   a GUI or a test can all observe the run the same way.

The game continues running while it is read. No snapshot is taken, so a
level transition during a run can produce torn data.
"""
from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Dict, Iterator, List, Optional, TYPE_CHECKING

import numpy as np

from bspextractor.config import UNIT_SCALE
from bspextractor.controller.decoder import StructDecoder, record_to_dict
from bspextractor.controller.entities import parse_dynamic_models, parse_world_settings
from bspextractor.controller.geometry import build_surfaces, group_by_material, reconstruct_faces
from bspextractor.controller.materials import MaterialResolver
from bspextractor.controller.normals import decode_array
from bspextractor.controller.transforms import decode_placement, filter_placements
from bspextractor.logging_config import log_narrator
from bspextractor.model.scene import Scene, VertexBuffer

if TYPE_CHECKING:
    import numpy.typing as npt

    from bspextractor.controller.decoder import Record
    from bspextractor.memory import MemoryAccess
    from bspextractor.model.profiles import GameProfile
    from bspextractor.model.scene import EntityRecord, StaticModelPlacement, Surface

logger = logging.getLogger(__name__)

Narrator = Callable[[str], None]

NO_LEVEL_MESSAGE = "No BSP loaded. Enter Main Menu or a Map to load in the required assets."


class ExtractionStatus(StrEnum):
    OK = "ok"
    UNSUPPORTED = "unsupported"
    NO_LEVEL_LOADED = "no_level_loaded"


@dataclass(frozen=True)
class ExtractionResult:
    status: ExtractionStatus
    scene: Optional[Scene] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ExtractionStatus.OK


class SceneAssembler:
    def __init__(self, profile: GameProfile, memory: MemoryAccess, narrate: Optional[Narrator] = None) -> None:
        self.profile = profile
        self.schema = profile.schema
        self.memory = memory
        self.narrate = narrate or log_narrator
        self.decoder = StructDecoder(memory, self.schema.pointer_width)

    # --- Run ---

    def extract(self) -> ExtractionResult:
        self.narrate(f"Found supported game: {self.profile.title}")
        pools = self.profile.pools_address(self.memory)

        # 1. Signature
        if not self._signature_matches(pools):
            message = f"{self.profile.title} is supported, but this EXE is not."
            self.narrate(message)
            return ExtractionResult(ExtractionStatus.UNSUPPORTED, message=message)

        # 2. Header(s) and names
        header = self._read_header(pools)
        gfx_map_name = self.decoder.read_string(header["name"])
        map_name = self.decoder.read_string(header["map_name"])
        if not gfx_map_name.strip():
            self.narrate(NO_LEVEL_MESSAGE)
            return ExtractionResult(ExtractionStatus.NO_LEVEL_LOADED, message=NO_LEVEL_MESSAGE)

        self.narrate(f"Loaded Gfx Map     -   {gfx_map_name}")
        self.narrate(f"Loaded Map         -   {map_name}")
        self.narrate(f"Vertex Count       -   {header['vertex_count']}")
        self.narrate(f"Indices Count      -   {header['index_count']}")
        self.narrate(f"Surface Count      -   {header['surface_count']}")
        self.narrate(f"Model Count        -   {header['static_model_count']}")

        # 3. Geometry
        with self._phase("vertex data"):
            vertices = self._read_vertices(header)
        with self._phase("indices"):
            indices = self.decoder.read_indices(header["indices"], header["index_count"])
        with self._phase("surfaces"):
            surfaces = self._read_surfaces(header)
        with self._phase("materials"):
            resolver = MaterialResolver(self.decoder, self.schema)
            materials = resolver.resolve_all(surface.material_address for surface in surfaces)
            faces = reconstruct_faces(len(vertices), indices, surfaces)
            groups = group_by_material(surfaces, faces, materials)

        # 4. Placements and entities
        with self._phase("static models"):
            placements = self._read_placements(header)
        with self._phase("entities"):
            entity_blob = self._read_entity_blob(pools)
            entities: List[EntityRecord] = []
            world_settings: Dict[str, str] = {}
            if entity_blob and self.schema.entity_rules is not None:
                entities = parse_dynamic_models(entity_blob, self.schema.entity_rules)
                world_settings = parse_world_settings(entity_blob)

        scene = Scene(
            gfx_map_name=gfx_map_name,
            map_name=map_name,
            vertices=vertices,
            groups=groups,
            placements=tuple(placements),
            entities=tuple(entities),
            world_settings=world_settings,
            entity_blob=entity_blob,
        )
        logger.info(
            f"Assembled {map_name}: {len(vertices)} vertices, {scene.face_count} faces, "
            f"{len(groups)} materials, {len(placements)} static models, {len(entities)} dynamic models"
        )
        return ExtractionResult(ExtractionStatus.OK, scene=scene)

    @contextmanager
    def _phase(self, label: str) -> Iterator[None]:
        self.narrate(f"Parsing {label}....")
        start = time.perf_counter()
        yield
        self.narrate(f"Parsed {label} in {time.perf_counter() - start:.2f} seconds.")

    # --- Steps ---

    def _signature_matches(self, pools: int) -> bool:
        slots = self.schema.slots
        name_pointer = self.decoder.follow(pools + slots.signature_slot, slots.signature_name_offset)
        signature = self.decoder.read_string(name_pointer)
        logger.debug(f"Signature at pool slot 0x{slots.signature_slot:X}: {signature!r}")
        return signature == slots.signature_value

    def _read_header(self, pools: int) -> Record:
        """Main header, merged with the zone header where the schema has one."""
        slots = self.schema.slots
        address = self.decoder.read_pointer(pools + slots.gfx_map_slot) + slots.gfx_map_offset
        header = self.decoder.read_record(self.schema.header, address)

        if self.schema.zone_header is not None:
            zone_address = self.decoder.read_pointer(pools + slots.zone_slot) + slots.zone_offset
            zone = self.decoder.read_record(self.schema.zone_header, zone_address)
            for key, value in zone.items():
                header.setdefault(key, value)
        return header

    def _read_vertices(self, header: Record) -> VertexBuffer:
        count = header["vertex_count"]
        columns: Dict[str, npt.NDArray] = {}
        for stream in self.schema.vertex_streams:
            records = self.decoder.read_array(stream.layout, header[stream.pointer_field], count)
            for name in records.dtype.names:
                columns[name] = records[name]

        positions = np.column_stack([columns["x"], columns["y"], columns["z"]]).astype(np.float64) * UNIT_SCALE
        uvs = np.column_stack([columns["u"], 1.0 - columns["v"].astype(np.float64)]).astype(np.float64)
        normals = decode_array(self.schema.normal_encoding, columns["normal"])
        return VertexBuffer(positions.reshape(-1, 3), uvs.reshape(-1, 2), normals)

    def _read_surfaces(self, header: Record) -> List[Surface]:
        records = self.decoder.read_array(self.schema.surface, header["surfaces"], header["surface_count"])
        return build_surfaces((record_to_dict(record) for record in records), self.schema)

    def _read_placements(self, header: Record) -> List[StaticModelPlacement]:
        records = self.decoder.read_array(
            self.schema.static_model, header["static_models"], header["static_model_count"]
        )
        raw = []
        for record in records:
            model = int(record["model"])
            # The model asset starts with its name pointer
            name = self.decoder.read_string_at(model) if model else ""
            raw.append(decode_placement(
                name,
                (float(record["x"]), float(record["y"]), float(record["z"])),
                record["matrix"],
                float(record["scale"]),
            ))
        return filter_placements(raw, self.schema.name_rewrites)

    def _read_entity_blob(self, pools: int) -> str:
        if self.schema.map_ents is None:
            return ""
        address = self.decoder.read_pointer(pools + self.schema.slots.map_ents_slot)
        if not address:
            logger.debug("Map entity pool slot is empty")
            return ""
        record = self.decoder.read_record(self.schema.map_ents, address)
        return self.decoder.read_string(record["entity_string"])


def extract_scene(profile: GameProfile, memory: MemoryAccess, narrate: Optional[Narrator] = None) -> ExtractionResult:
    """Default decode routine for every compiled-in profile."""
    return SceneAssembler(profile, memory, narrate).extract()
