"""
Material Resolver.

Reads a material record, its image table and the image names, and binds each
image to a texture role by its semantic identifier.
"""
from __future__ import annotations

import logging
import ntpath
from typing import Dict, Iterable, List, TYPE_CHECKING

from bspextractor.model.scene import Material

if TYPE_CHECKING:
    from bspextractor.controller.decoder import StructDecoder
    from bspextractor.model.schema import Schema

logger = logging.getLogger(__name__)


def base_name(path: str) -> str:
    """File name without directory or extension. Handles both separators."""
    name = ntpath.basename(path.replace("/", "\\"))
    stem, _ = ntpath.splitext(name)
    return stem


def material_name(raw_name: str) -> str:
    return base_name(raw_name.replace("*", ""))


class MaterialResolver:
    """
    Resolves material addresses for one extraction run.

    Results are memoised by address, so surfaces sharing a material read it
    once and always get the same object back.
    """

    def __init__(self, decoder: StructDecoder, schema: Schema) -> None:
        self.decoder = decoder
        self.schema = schema
        self._cache: Dict[int, Material] = {}

    def __len__(self) -> int:
        return len(self._cache)

    def resolve(self, address: int) -> Material:
        cached = self._cache.get(address)
        if cached is not None:
            return cached

        record = self.decoder.read_record(self.schema.material, address)
        material = Material(material_name(self.decoder.read_string(record["name"])))

        slots = self.decoder.read_array(self.schema.image_slot, record["image_table"], record["image_count"])
        for slot in slots:
            role = self.schema.semantics.get(int(slot["semantic"]))
            if role is None:
                continue
            image_name = self.decoder.read_string_at(int(slot["image"]) + self.schema.image_name_offset)
            # Later slots overwrite earlier ones with the same role
            material.textures[role] = image_name

        logger.debug(f"Resolved material {material.name!r} at 0x{address:X} with {len(material.textures)} textures")
        self._cache[address] = material
        return material

    def resolve_all(self, addresses: Iterable[int]) -> Dict[int, Material]:
        return {address: self.resolve(address) for address in addresses}


def image_search_string(materials: Iterable[Material]) -> str:
    """
    Every unique texture base name followed by a comma, in first-seen order.
    Used as a search filter in asset lookup tools.
    """
    seen: List[str] = []
    for material in materials:
        for image in material.textures.values():
            name = base_name(image)
            if name and name not in seen:
                seen.append(name)
    return "".join(f"{name}," for name in seen)
