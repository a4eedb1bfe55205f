import numpy as np
import pytest

from conftest import POSITIONS, build_level
from bspextractor.controller.assembler import NO_LEVEL_MESSAGE, ExtractionStatus, SceneAssembler, extract_scene
from bspextractor.errors import MemoryAccessError
from bspextractor.memory import MemoryImage
from bspextractor.model.profiles import PROFILES
from bspextractor.model.scene import TextureRole

PROCESSES = ["iw4mp", "s2_mp64_ship", "BlackOps3"]

EXPECTED_MODELS = {
    "iw4mp": ["tree_oak", "crate"],
    "s2_mp64_ship": ["tree_oak", "crate"],
    "BlackOps3": ["tree_oak", "mlvcrate"],
}

EXPECTED_ENTITY_NAMES = {
    "iw4mp": ["vehicle_car_whole"],
    "s2_mp64_ship": [],
    "BlackOps3": ["vehicle_car_static"],
}


@pytest.mark.parametrize("process_name", PROCESSES)
def test_extracts_synthetic_level(process_name, narration):
    profile = PROFILES[process_name]
    result = extract_scene(profile, build_level(profile), narration.append)

    assert result.status == ExtractionStatus.OK
    scene = result.scene
    assert (scene.gfx_map_name, scene.map_name) == ("gfx_test", "mp_test")

    # Vertices
    assert len(scene.vertices) == len(POSITIONS)
    np.testing.assert_allclose(scene.vertices.positions, np.array(POSITIONS) * 2.54)
    np.testing.assert_allclose(scene.vertices.uvs[0], (0.0, 0.75))
    np.testing.assert_allclose(scene.vertices.normals, [(1.0, 0.0, 0.0)] * len(POSITIONS), atol=1e-2)

    # Faces and materials
    assert [g.material.name for g in scene.groups] == ["mtl_wall", "mtl_floor"]
    np.testing.assert_array_equal(scene.groups[0].faces, [[0, 2, 1], [2, 0, 1]])
    np.testing.assert_array_equal(scene.groups[1].faces, [[3, 5, 4]])
    assert scene.groups[0].material.diffuse == "wall_b_c"
    assert scene.groups[1].material.textures == {TextureRole.DIFFUSE: "floor_c"}

    # Static models: position unscaled, excluded names gone
    assert [p.name for p in scene.placements] == EXPECTED_MODELS[process_name]
    assert scene.placements[0].position == (1.0, 2.0, 3.0)
    assert scene.placements[1].scale == 0.5

    # Entities
    assert [e["Name"] for e in scene.entities] == EXPECTED_ENTITY_NAMES[process_name]
    if profile.schema.has_entities:
        assert scene.entities[0]["RotX"] == "6"
        assert scene.world_settings["sundirection"] == "-30 120 0"
    else:
        assert scene.entity_blob == ""
        assert scene.world_settings == {}

    assert narration[0] == f"Found supported game: {profile.title}"
    assert "Loaded Gfx Map     -   gfx_test" in narration
    assert "Vertex Count       -   6" in narration
    assert any(line.startswith("Parsed vertex data in ") for line in narration)


def test_records_list_static_models_before_entities():
    profile = PROFILES["iw4mp"]
    scene = extract_scene(profile, build_level(profile), lambda message: None).scene
    records = scene.model_records()
    assert [r["Name"] for r in records] == ["tree_oak", "crate", "vehicle_car_whole"]
    assert records[0]["PosX"] == "1.0000"
    assert records[1]["Scale"] == "0.5000"


@pytest.mark.parametrize("process_name", PROCESSES)
def test_signature_mismatch_is_unsupported(process_name, narration):
    profile = PROFILES[process_name]
    result = SceneAssembler(profile, build_level(profile, signature="other"), narration.append).extract()

    assert result.status == ExtractionStatus.UNSUPPORTED
    assert result.scene is None
    assert result.message == f"{profile.title} is supported, but this EXE is not."
    assert narration[-1] == result.message


@pytest.mark.parametrize("process_name", PROCESSES)
def test_empty_gfx_map_name_means_no_level(process_name, narration):
    profile = PROFILES[process_name]
    result = extract_scene(profile, build_level(profile, gfx_map_name=""), narration.append)

    assert result.status == ExtractionStatus.NO_LEVEL_LOADED
    assert not result.ok
    assert narration[-1] == NO_LEVEL_MESSAGE


def test_unreadable_pool_table_is_fatal():
    with pytest.raises(MemoryAccessError):
        extract_scene(PROFILES["iw4sp"], MemoryImage(), lambda message: None)


def test_default_narrator_logs(caplog):
    profile = PROFILES["iw4mp"]
    with caplog.at_level("INFO", logger="bspextractor.narration"):
        extract_scene(profile, build_level(profile, gfx_map_name=""))
    assert NO_LEVEL_MESSAGE in caplog.text
