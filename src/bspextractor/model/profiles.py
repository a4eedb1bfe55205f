"""Supported Game Builds (Catalog)."""
from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Callable, Dict, Optional, TYPE_CHECKING

from bspextractor.controller.assembler import extract_scene
from bspextractor.model.schema import BLACK_OPS_3, MODERN_WARFARE_2, WORLD_WAR_2, Schema

if TYPE_CHECKING:
    from bspextractor.controller.assembler import ExtractionResult
    from bspextractor.memory import MemoryAccess


class GameType(StrEnum):
    MULTIPLAYER = "mp"
    SINGLEPLAYER = "sp"
    CORE = "core"


DecodeRoutine = Callable[..., "ExtractionResult"]


@dataclass(frozen=True)
class GameProfile:
    """
    One supported executable: where its asset tables live and how to decode it.

    `asset_pools_address` / `asset_sizes_address` are absolute for 32-bit
    builds and relative to the module base for builds loaded with ASLR.
    """
    process_name: str
    game_type: GameType
    asset_pools_address: int
    asset_sizes_address: int
    schema: Schema
    relative_to_base: bool = False
    decode: DecodeRoutine = extract_scene

    @property
    def title(self) -> str:
        return self.schema.title

    def pools_address(self, memory: MemoryAccess) -> int:
        if self.relative_to_base:
            return memory.base_address() + self.asset_pools_address
        return self.asset_pools_address


# ------------------------------------------------------------------------------
# Catalog
# ------------------------------------------------------------------------------
_CATALOG = (
    # Call of Duty: Modern Warfare 2
    GameProfile("iw4mp", GameType.MULTIPLAYER, 0x6F81D0, 0x6F7F08, MODERN_WARFARE_2),
    GameProfile("iw4sp", GameType.SINGLEPLAYER, 0x7307F8, 0x730510, MODERN_WARFARE_2),
    # Call of Duty: Black Ops III
    GameProfile("BlackOps3", GameType.CORE, 0x94073F0, 0x0, BLACK_OPS_3, relative_to_base=True),
    # Call of Duty: World War II
    GameProfile("s2_mp64_ship", GameType.MULTIPLAYER, 0xC08470, 0xEB0C30, WORLD_WAR_2, relative_to_base=True),
    GameProfile("s2_sp64_ship", GameType.SINGLEPLAYER, 0x94FD10, 0xBD65E0, WORLD_WAR_2, relative_to_base=True),
)

PROFILES: Dict[str, GameProfile] = {profile.process_name: profile for profile in _CATALOG}


def lookup(process_name: str) -> Optional[GameProfile]:
    """Exact match on the executable name (without extension)."""
    return PROFILES.get(process_name)
