"""
Output Manager
Writes an extracted Scene to disk: Wavefront OBJ/MTL for geometry, an IW
.map for static models, JSON dumps of the model records and world settings,
and the plain text helper lists.
"""
import json
import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Dict, Iterable, List

import numpy as np

from bspextractor.config import FLOAT_DECIMALS
from bspextractor.controller.materials import base_name, image_search_string
from bspextractor.model.scene import EntityRecord, Material, Scene, StaticModelPlacement, TextureRole

# Get module logger
logger = logging.getLogger(__name__)

try:
    APP_VERSION = version("bspextractor")
except PackageNotFoundError:
    APP_VERSION = "0.0.0-dev"

# Relative folder the MTL points texture maps at
IMAGE_FOLDER = "_images"
IMAGE_EXTENSION = ".png"

MTL_KEYWORDS: Dict[TextureRole, str] = {
    TextureRole.DIFFUSE: "map_Kd",
    TextureRole.NORMAL: "map_bump",
    TextureRole.SPECULAR: "map_Ks",
    TextureRole.HEIGHT: "disp",
    TextureRole.EMISSION: "map_Ke",
    TextureRole.OCCLUSION: "map_ao",
}


def model_name_list(records: Iterable[EntityRecord]) -> List[str]:
    """Unique model names in first-seen order, followed by their count."""
    names: List[str] = []
    for record in records:
        name = record.get("Name")
        if name is not None and name not in names:
            names.append(name)
    return names + [str(len(names))]


class ExportManager:
    @staticmethod
    def export_scene(scene: Scene, output_dir: Path, decimals: int = FLOAT_DECIMALS) -> Dict[str, Path]:
        """
        Write every export file for `scene` into `output_dir`.

        Files are named after the map. Returns the written paths by kind.
        """
        output_dir = Path(output_dir)
        stem = scene.map_name or scene.gfx_map_name
        logger.info(f"Exporting {stem} to: {output_dir}")
        try:
            output_dir.mkdir(parents=True, exist_ok=True)
            written: Dict[str, Path] = {}

            # --- 1. GEOMETRY ---
            written["mtl"] = ExportManager.write_mtl(scene.materials, output_dir / f"{stem}.mtl")
            written["obj"] = ExportManager.write_obj(scene, output_dir / f"{stem}.obj", decimals)

            # --- 2. STATIC MODELS (.map) ---
            written["map"] = ExportManager.write_map(scene.placements, output_dir / f"{stem}.map", decimals)

            # --- 3. STRUCTURED DUMPS ---
            records = scene.model_records(decimals)
            written["xmodels"] = ExportManager.write_json(records, output_dir / f"{stem}_xmodels.json")

            # --- 4. TEXT LISTS ---
            written["xmodel_list"] = ExportManager.write_text(
                ",".join(model_name_list(records)), output_dir / f"{stem}_xmodelList.txt"
            )
            written["search_string"] = ExportManager.write_text(
                image_search_string(scene.materials), output_dir / f"{stem}_search_string.txt"
            )

            # --- 5. ENTITY DUMPS ---
            if scene.entity_blob:
                written["world_settings"] = ExportManager.write_json(
                    scene.world_settings, output_dir / f"{stem}_worldsettings.json"
                )
                written["map_ents"] = ExportManager.write_text(scene.entity_blob, output_dir / f"{stem}_mapEnts.txt")

            logger.info(f"Exported {len(written)} files for {stem}")
            return written

        except OSError as e:
            logger.exception(f"Failed to export scene: {e}")
            raise e

    # --- Writers ---

    @staticmethod
    def write_obj(scene: Scene, filepath: Path, decimals: int = FLOAT_DECIMALS) -> Path:
        vertices = scene.vertices
        f_ = f"%.{decimals}f"
        with open(filepath, "w", encoding="utf-8", newline="\n") as f:
            f.write(f"# Exported by bspextractor {APP_VERSION}\n")
            f.write(f"# Vertices: {len(vertices)}  Faces: {scene.face_count}\n")
            f.write(f"mtllib {filepath.with_suffix('.mtl').name}\n")

            if len(vertices):
                np.savetxt(f, vertices.positions, fmt=f"v {f_} {f_} {f_}")
                np.savetxt(f, vertices.uvs, fmt=f"vt {f_} {f_}")
                np.savetxt(f, vertices.normals, fmt=f"vn {f_} {f_} {f_}")

            for group in scene.groups:
                if not group.face_count:
                    continue
                f.write(f"g {group.material.name}\n")
                f.write(f"usemtl {group.material.name}\n")
                # OBJ indices are 1-based; position, uv and normal share the index
                corners = np.repeat(group.faces + 1, 3, axis=1)
                np.savetxt(f, corners, fmt="f %d/%d/%d %d/%d/%d %d/%d/%d")

        logger.debug(f"Wrote OBJ: {filepath}")
        return filepath

    @staticmethod
    def write_mtl(materials: Iterable[Material], filepath: Path) -> Path:
        with open(filepath, "w", encoding="utf-8", newline="\n") as f:
            f.write(f"# Exported by bspextractor {APP_VERSION}\n")
            for material in materials:
                f.write(f"\nnewmtl {material.name}\n")
                f.write("Ka 0 0 0\nKd 1 1 1\nKs 0 0 0\n")
                for role, keyword in MTL_KEYWORDS.items():
                    image = material.texture(role)
                    if image:
                        f.write(f"{keyword} {IMAGE_FOLDER}/{base_name(image)}{IMAGE_EXTENSION}\n")
        logger.debug(f"Wrote MTL: {filepath}")
        return filepath

    @staticmethod
    def write_map(placements: Iterable[StaticModelPlacement], filepath: Path, decimals: int = FLOAT_DECIMALS) -> Path:
        """
        Radiant .map with a worldspawn and one misc_model per placement.
        `angles` is "pitch yaw roll", i.e. (RotY, RotZ, RotX).
        """
        fmt = f"{{:.{decimals}f}}"
        with open(filepath, "w", encoding="utf-8", newline="\n") as f:
            f.write("iwmap 4\n")
            f.write('"000_Global" flags  active\n')
            f.write('"The Map" flags\n')
            f.write("// entity 0\n{\n\"classname\" \"worldspawn\"\n}\n")
            for number, placement in enumerate(placements, start=1):
                x, y, z = (fmt.format(c) for c in placement.position)
                rx, ry, rz = (fmt.format(c) for c in placement.rotation)
                f.write(f"// entity {number}\n{{\n")
                f.write('"classname" "misc_model"\n')
                f.write(f'"model" "{placement.name}"\n')
                f.write(f'"origin" "{x} {y} {z}"\n')
                f.write(f'"angles" "{ry} {rz} {rx}"\n')
                f.write(f'"modelscale" "{fmt.format(placement.scale)}"\n')
                f.write("}\n")
        logger.debug(f"Wrote map: {filepath}")
        return filepath

    @staticmethod
    def write_json(data, filepath: Path) -> Path:
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return filepath

    @staticmethod
    def write_text(text: str, filepath: Path) -> Path:
        with open(filepath, "w", encoding="utf-8", newline="") as f:
            f.write(text)
        return filepath
