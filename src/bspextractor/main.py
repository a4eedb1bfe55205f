"""
Extraction Entry Point
======================
Runs one extraction for an already attached process.

Why is this file needed?
------------------------
It is the composition root. It:
1. Looks the executable up in the profile catalog.
2. Runs the profile's decode routine against the memory access service.
3. Hands a completed Scene to the ExportManager.
4. Reports every outcome through the narration callback.

Attaching to the process is the caller's job; anything implementing
`bspextractor.memory.MemoryAccess` can be passed in.
"""
import logging
import time
from pathlib import Path
from typing import Optional

from bspextractor.config import EXPORT_ROOT
from bspextractor.controller.assembler import ExtractionResult, ExtractionStatus, Narrator
from bspextractor.errors import ExtractionError
from bspextractor.logging_config import log_narrator, setup_logging
from bspextractor.memory import MemoryAccess
from bspextractor.model.io import ExportManager
from bspextractor.model.profiles import lookup

logger = logging.getLogger(__name__)

UNSUPPORTED_GAME_MESSAGE = "Failed to find a supported game, please ensure one of them is running."


def output_directory(output_root: Path, export_folder: str, game_type: str, map_name: str) -> Path:
    """<root>/<game folder>/<game type>/<map name>/"""
    return Path(output_root) / export_folder / game_type / map_name


def run(
        process_name: str,
        memory: MemoryAccess,
        output_root: Path = EXPORT_ROOT,
        narrate: Optional[Narrator] = None,
) -> ExtractionResult:
    if narrate is None:
        # Narration goes through logging; make sure something prints it
        if not logging.getLogger("bspextractor").handlers:
            setup_logging()
        narrate = log_narrator

    # 1. Find the profile
    profile = lookup(process_name)
    if profile is None:
        narrate(UNSUPPORTED_GAME_MESSAGE)
        return ExtractionResult(ExtractionStatus.UNSUPPORTED, message=UNSUPPORTED_GAME_MESSAGE)

    # 2. Decode
    try:
        result = profile.decode(profile, memory, narrate)
    except ExtractionError as e:
        narrate(f"An error has occurred while exporting. Please try again: {e}")
        logger.exception(f"Extraction failed for {process_name}")
        raise

    if not result.ok:
        return result

    # 3. Export
    scene = result.scene
    narrate("Generating map files...")
    start = time.perf_counter()
    folder = output_directory(
        output_root, profile.schema.export_folder, profile.game_type, scene.map_name or scene.gfx_map_name
    )
    ExportManager.export_scene(scene, folder)
    narrate(f"Generated files in {time.perf_counter() - start:.2f} seconds.")
    return result
