"""
Tests for copy-mirror-merge.

The half bar (2 x 1 x 1 HEX8 on x in [0, 2]) has 12 nodes, 4 of them on
the x = 0 symmetry plane, so the merged mesh has 2 * 12 - 4 = 20 nodes.

Tests verify:
1. Node count, shared plane nodes and mirrored coordinates
2. Mirrored blocks, sets and side numbers
3. Vector component negation and bit-identical scalars
4. Mirrored elements keep positive volume
5. File-to-file pipeline
6. Vector component detection rules
7. Assemblies, blobs, attributes, the order map and face entities survive
"""

import logging
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from copy_mirror_merge import (
    apply_copy_mirror_merge, build_node_mapping, copy_mirror_merge,
    find_symmetry_plane_nodes, mirror_name, mirror_side_map,
    vector_components,
)
from conftest import UNIT_CUBE_COORDS
from exodus_database import ExodusReader, ExodusWriter
from exodus_entities import Assembly, Blob, Block, EntitySet
from exodus_errors import InvalidTopology
from exodus_schema import EntityKind
from mesh_geometry import element_volume
from mesh_snapshot import MeshSnapshot


@pytest.fixture
def half(half_bar):
    return MeshSnapshot.from_file(half_bar)


def test_node_count_and_plane(half):
    """
    Test 1: 2K - P nodes; original coordinates unchanged; mirrored nodes
    are the off-plane nodes with x negated, in original order.
    """
    print("Test 1: Node count and symmetry plane...")

    plane = find_symmetry_plane_nodes(half.coords, "x")
    np.testing.assert_array_equal(plane, [0, 3, 6, 9])

    merged = copy_mirror_merge(half, "x")
    assert merged.num_nodes == 2 * 12 - 4
    assert half.num_nodes == 12
    np.testing.assert_array_equal(merged.coords[:12], half.coords)

    off_plane = np.delete(half.coords, plane, axis=0)
    expected = off_plane * [-1.0, 1.0, 1.0]
    np.testing.assert_array_equal(merged.coords[12:], expected)

    print("  PASSED")


def test_node_mapping():
    """Plane nodes map to themselves, the rest follow num_nodes + 1, ..."""
    mapping = build_node_mapping(5, [1, 3])
    np.testing.assert_array_equal(mapping, [6, 2, 7, 4, 8])


def test_mirrored_blocks_and_sets(half):
    """
    Test 2: Each block and set gets a companion with the next free id,
    a _mirror name and offset element ids; side numbers follow the
    permuted connectivity.
    """
    print("Test 2: Mirrored blocks and sets...")

    merged = copy_mirror_merge(half, "x")

    assert merged.block_ids() == [1, 2]
    assert merged.blocks[1].block.name == "bar_mirror"
    assert merged.num_elems == 4
    # plane nodes are shared by both halves
    mirror_conn = merged.blocks[1].connectivity
    assert set(mirror_conn.ravel()) & {1, 4, 7, 10} == {1, 4, 7, 10}

    assert merged.set_ids(EntityKind.NODE_SET) == [1, 2, 3, 4, 5, 6]
    names = [s.name for s in merged.sets[EntityKind.NODE_SET]]
    assert names[3:] == ["symmetry_mirror", "end_mirror", "top_mirror"]
    np.testing.assert_array_equal(merged.sets[EntityKind.NODE_SET][3].entries,
                                  half.sets[EntityKind.NODE_SET][0].entries)

    sidesets = merged.sets[EntityKind.SIDE_SET]
    assert [s.id for s in sidesets] == [1, 2]
    assert sidesets[1].name == "end_faces_mirror"
    np.testing.assert_array_equal(sidesets[1].entries, [4])
    np.testing.assert_array_equal(sidesets[1].sides, [4])

    print("  PASSED")


def test_mirrored_side_is_far_face(half):
    """The mirrored end face lies on x = -2."""
    merged = copy_mirror_merge(half, "x")
    conn = merged.blocks[1].connectivity[1]
    face = [conn[i] for i in (0, 4, 7, 3)]
    np.testing.assert_allclose(merged.coords[np.array(face) - 1, 0], -2.0)


def test_vector_negation_and_scalars(half):
    """
    Test 3: velocity_x is negated on mirrored nodes, velocity_y and
    temperature are copied exactly, plane-node values appear once.
    """
    print("Test 3: Vector negation and scalar identity...")

    merged = copy_mirror_merge(half, "x")
    names = half.variable_names[EntityKind.NODAL]
    assert names == ["temperature", "velocity_x", "velocity_y", "velocity_z"]
    off_plane = np.setdiff1d(np.arange(12), [0, 3, 6, 9])

    for var, sign in [(0, 1.0), (1, -1.0), (2, 1.0), (3, 1.0)]:
        orig = half.values[EntityKind.NODAL][(0, var)]
        new = merged.values[EntityKind.NODAL][(0, var)]
        assert new.shape == (3, 20)
        assert np.array_equal(new[:, :12], orig)
        assert np.array_equal(new[:, 12:], sign * orig[:, off_plane])

    stress = merged.values[EntityKind.ELEM_BLOCK]
    assert np.array_equal(stress[(2, 0)], stress[(1, 0)])
    np.testing.assert_array_equal(merged.truth_tables[EntityKind.ELEM_BLOCK],
                                  [[True], [True]])
    flux = merged.values[EntityKind.SIDE_SET]
    assert np.array_equal(flux[(2, 0)], flux[(1, 0)])
    assert np.array_equal(merged.values[EntityKind.GLOBAL][(0, 0)],
                          half.values[EntityKind.GLOBAL][(0, 0)])

    print("  PASSED")


@pytest.mark.parametrize("axis", ["x", "y", "z"])
def test_mirrored_elements_positive(half, axis):
    """
    Test 4: Every element of the merged mesh has positive volume.
    """
    print(f"Test 4: Positive volumes after mirroring about {axis}...")

    merged = copy_mirror_merge(half, axis)
    for data in merged.blocks:
        for elem in data.connectivity:
            assert element_volume("HEX8", merged.coords[elem - 1]) > 0

    print("  PASSED")


def test_no_plane_nodes_warns(half, caplog):
    """A mesh away from the plane is mirrored without shared nodes."""
    half.coords[:, 0] += 5.0
    with caplog.at_level(logging.WARNING, logger="copy_mirror_merge"):
        merged = copy_mirror_merge(half, "x")
    assert merged.num_nodes == 24
    assert "No nodes found on the symmetry plane" in caplog.text
    assert "Global variables" in caplog.text


def test_id_maps_and_qa(half):
    """Id maps continue after the largest label; a QA record is added."""
    half.node_id_map = np.arange(101, 113)
    merged = copy_mirror_merge(half, "x")
    np.testing.assert_array_equal(merged.node_id_map[12:], np.arange(113, 121))
    assert merged.elem_id_map is None
    assert len(merged.qa_records) == len(half.qa_records) + 1
    assert merged.qa_records[-1].code_name == "copy_mirror_merge"


def test_rejects_unsupported(half):
    """Higher-order blocks and out-of-plane axes are rejected."""
    half.blocks[0].block.topology = "HEX27"
    with pytest.raises(InvalidTopology):
        copy_mirror_merge(half, "x")
    flat = MeshSnapshot(num_dim=2, coords=np.zeros((1, 3)))
    with pytest.raises(ValueError):
        copy_mirror_merge(flat, "z")
    with pytest.raises(ValueError):
        copy_mirror_merge(flat, "q")


def test_file_pipeline(half_bar, tmp_path):
    """
    Test 5: apply_copy_mirror_merge writes a file the reader accepts.
    """
    print("Test 5: File-to-file pipeline...")

    output = tmp_path / "full_bar.e"
    apply_copy_mirror_merge(half_bar, output, "x")

    with ExodusReader(output) as db:
        assert db.num_nodes == 20
        assert db.num_elems == 4
        assert db.get_ids(EntityKind.ELEM_BLOCK) == [1, 2]
        assert db.get_names(EntityKind.ELEM_BLOCK) == ["bar", "bar_mirror"]
        assert db.get_ids(EntityKind.SIDE_SET) == [1, 2]
        np.testing.assert_array_equal(db.get_set(EntityKind.SIDE_SET, 2).sides, [4])
        assert db.num_time_steps() == 3
        vx = db.get_variable(3, EntityKind.NODAL, 0, 1)
        np.testing.assert_allclose(vx[12:], -vx[np.setdiff1d(np.arange(12),
                                                              [0, 3, 6, 9])])
        np.testing.assert_allclose(db.get_coords()[:, 0].min(), -2.0)

    print("  PASSED")


def test_vector_component_detection():
    """
    Test 6: Components need a sibling with the same root and another axis
    suffix, unless listed explicitly.
    """
    print("Test 6: Vector component detection...")

    names = ["disp_x", "disp_y", "disp_z", "u", "v", "w",
             "temperature", "flux", "vx"]
    assert vector_components(names, "x") == [
        True, False, False, True, False, False, False, False, False]
    assert vector_components(names, "y") == [
        False, True, False, False, True, False, False, False, False]
    assert vector_components(names, "x", vector_fields=["vx"])[-1]
    assert vector_components(["force_x"], "x") == [False]
    assert vector_components(["Force_X"], "x", vector_fields=["force"]) == [True]
    assert vector_components(["VEL_X", "VEL_Y"], "x") == [True, False]

    print("  PASSED")


def test_names_and_side_map(caplog):
    """Long names are shortened to fit with a warning; HEX8 x-mirror swaps
    sides 2 and 4."""
    with caplog.at_level(logging.WARNING, logger="copy_mirror_merge"):
        assert mirror_name("inlet") == "inlet_mirror"
        assert caplog.text == ""
        name = mirror_name("n" * 40)
    assert len(name) == 32
    assert name == "n" * 25 + "_mirror"
    assert f"Name '{'n' * 40}' is too long" in caplog.text
    assert name in caplog.text
    assert mirror_side_map("HEX8", "x") == {1: 1, 2: 4, 3: 3, 4: 2, 5: 5, 6: 6}


def test_shell_side_map():
    """Shell faces 1 and 2 keep their numbers; the edges follow their nodes."""
    assert mirror_side_map("SHELL4", "x") == {1: 1, 2: 2, 3: 6, 4: 5, 5: 4, 6: 3}
    assert mirror_side_map("TRISHELL3", "z") == {1: 1, 2: 2, 3: 5, 4: 4, 5: 3}


def _write_half_cube_with_extras(path):
    """
    Unit cube on x in [0, 1] with a face block, a face set, entity
    attributes, two assemblies, a blob and an element order map.
    """
    with ExodusWriter(path) as db:
        db.initialize("half cube", 3, 8)
        db.declare_block(EntityKind.ELEM_BLOCK, Block(1, "HEX8", 1, 8, name="cube"))
        db.declare_block(EntityKind.FACE_BLOCK,
                         Block(5, "QUAD4", 1, 4, name="outlet_faces"))
        db.declare_set(EntityKind.NODE_SET, EntitySet(1, 4, name="symmetry"))
        db.declare_set(EntityKind.FACE_SET, EntitySet(3, 1, name="outlet"))
        db.declare_order_map()
        db.declare_assembly(Assembly(100, "solids", EntityKind.ELEM_BLOCK, [1]))
        db.declare_assembly(Assembly(200, "planes", EntityKind.NODE_SET, [1]))
        db.declare_blob(Blob(7, "payload", b"\x01\x02\x03"))
        db.define_variables(EntityKind.FACE_BLOCK, ["pressure"])
        db.commit()

        db.put_coords(UNIT_CUBE_COORDS)
        db.put_connectivity(1, np.arange(1, 9))
        db.put_connectivity(5, [2, 3, 7, 6], kind=EntityKind.FACE_BLOCK)
        db.put_set(EntityKind.NODE_SET, 1, [1, 4, 5, 8])
        db.put_set(EntityKind.FACE_SET, 3, [1])
        db.put_order_map([1])
        db.put_attribute(EntityKind.ELEM_BLOCK, 1, "material", "steel")
        db.put_attribute(EntityKind.NODE_SET, 1, "bc", "symmetry")
        db.put_time(1, 0.0)
        db.put_variable(1, EntityKind.FACE_BLOCK, 5, 0, [2.5])
    return path


def test_groupings_and_extra_entities_survive(tmp_path, caplog):
    """
    Test 7: Assemblies gain the mirrored ids, blobs and attributes are
    carried over, the order map is extended, and face entities are copied
    unchanged with a warning.
    """
    print("Test 7: Groupings and face entities...")

    path = _write_half_cube_with_extras(tmp_path / "half_cube.e")
    output = tmp_path / "full_cube.e"
    with caplog.at_level(logging.WARNING, logger="copy_mirror_merge"):
        apply_copy_mirror_merge(path, output, "x")

    assert "1 face_block(s) copied unchanged" in caplog.text
    assert "1 face_set(s) copied unchanged" in caplog.text

    with ExodusReader(output) as db:
        assert db.num_elems == 2
        assert db.get_assembly_ids() == [100, 200]
        assert db.get_assembly(100).entity_ids == [1, 2]
        assert db.get_assembly(200).entity_ids == [1, 2]
        assert db.get_blob_ids() == [7]
        assert db.get_blob(7).data == b"\x01\x02\x03"
        assert db.has_order_map()
        np.testing.assert_array_equal(db.get_order_map(), [1, 2])

        for block_id in (1, 2):
            material = db.get_attribute(EntityKind.ELEM_BLOCK, block_id, "material")
            assert material.value == "steel"
        assert db.get_attribute(EntityKind.NODE_SET, 2, "bc").value == "symmetry"

        assert db.get_ids(EntityKind.FACE_BLOCK) == [5]
        np.testing.assert_array_equal(
            db.get_connectivity(5, kind=EntityKind.FACE_BLOCK), [[2, 3, 7, 6]])
        assert db.get_ids(EntityKind.FACE_SET) == [3]
        np.testing.assert_array_equal(db.get_set(EntityKind.FACE_SET, 3).entries, [1])
        np.testing.assert_allclose(db.get_variable(1, EntityKind.FACE_BLOCK, 5, 0),
                                   [2.5])

    print("  PASSED")
