"""
Entity Text Parser
==================
Reads the level's entity string: a sequence of brace-delimited blocks of
`"key" "value"` lines.

Why is this file needed?
------------------------
1. Dynamic models: Script models are not in the static model table, so
   they are only found here. They become records with the same keys as the
   static model records.
2. World settings: The first block describes the world (sun, fog, etc.) and
   is exported as its own key/value map.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from bspextractor.config import DEFAULT_ENTITY_SCALE
from bspextractor.model.schema import EntityRules

if TYPE_CHECKING:
    from bspextractor.model.scene import EntityRecord

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n}\n{"
PAIR_PATTERN = re.compile(r'"(.*?)"\s"(.*?)"')
_LINE_BREAKS = re.compile(r"[\r\n]+")

# angles component order -> (RotX, RotY, RotZ)
ANGLE_ORDER = (2, 0, 1)
VEHICLE_MARKER = "veh"
VEHICLE_VARIANTS = ("static", "radiant")
VEHICLE_CANONICAL = "whole"


def split_blocks(blob: str) -> List[str]:
    return blob.split(BLOCK_SEPARATOR)


def parse_pairs(block: str) -> List[Tuple[str, str]]:
    """All `"key" "value"` pairs of a block, in order, duplicates included."""
    pairs = []
    for line in _LINE_BREAKS.split(block):
        if line:
            pairs.extend(PAIR_PATTERN.findall(line))
    return pairs


def is_dynamic_model(block: str, rules: EntityRules) -> bool:
    if rules.marker not in block or rules.required_key not in block:
        return False
    return not any(denied in block for denied in rules.denylist)


def canonical_model_name(name: str, rules: EntityRules) -> str:
    """
    Vehicle models come in interchangeable static/radiant variants; collapse
    them to the whole model. Vehicles without a variant marker keep their name.
    """
    if not rules.rewrite_vehicle_variants or VEHICLE_MARKER not in name:
        return name
    for variant in VEHICLE_VARIANTS:
        if variant in name:
            return name.replace(variant, VEHICLE_CANONICAL)
    return name


def _vector(value: str) -> Optional[List[str]]:
    components = value.split(" ")
    if len(components) < 3:
        return None
    return components[:3]


def parse_dynamic_model(block: str, rules: EntityRules) -> EntityRecord:
    """
    Build one model record from a block. Keys are only set once; later
    duplicates are ignored. Scale is always the default entity scale.
    """
    record: Dict[str, str] = {}
    for key, value in parse_pairs(block):
        if key == "model":
            record.setdefault("Name", canonical_model_name(value, rules))
        elif key == "origin":
            position = _vector(value)
            if position is None:
                logger.debug(f"Ignoring malformed origin {value!r}")
                continue
            for axis, component in zip(("PosX", "PosY", "PosZ"), position):
                record.setdefault(axis, component)
        elif key == "angles":
            if rules.skip_scientific_angles and "e" in value:
                continue
            angles = _vector(value)
            if angles is None:
                logger.debug(f"Ignoring malformed angles {value!r}")
                continue
            for axis, index in zip(("RotX", "RotY", "RotZ"), ANGLE_ORDER):
                record.setdefault(axis, angles[index])
    record["Scale"] = DEFAULT_ENTITY_SCALE
    return record


def parse_dynamic_models(blob: str, rules: EntityRules) -> List[EntityRecord]:
    if not blob:
        return []
    records = [
        parse_dynamic_model(block, rules)
        for block in split_blocks(blob)
        if is_dynamic_model(block, rules)
    ]
    logger.debug(f"Parsed {len(records)} dynamic models from entity string")
    return records


def parse_world_settings(blob: str) -> Dict[str, str]:
    """Pairs of the first block. The first occurrence of a key wins."""
    if not blob:
        return {}
    settings: Dict[str, str] = {}
    for key, value in parse_pairs(split_blocks(blob)[0]):
        settings.setdefault(key, value)
    return settings
