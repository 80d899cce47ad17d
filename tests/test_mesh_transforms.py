"""
Tests for in-place mesh transformations.

Tests verify:
1. Translation and scaling of coordinates
2. Rotation sequences (extrinsic uppercase, intrinsic lowercase)
3. Mirroring keeps elements positive and side numbers on the same faces
4. Field scaling and time normalization
5. Operations applied through an append handle update the file
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from conftest import UNIT_CUBE_COORDS
from exodus_database import ExodusAppender, ExodusReader
from exodus_errors import EntityNotFound
from exodus_schema import EntityKind
from element_topology import side_nodes
from mesh_geometry import element_volume
from mesh_snapshot import MeshSnapshot
from mesh_transforms import (
    apply_operations, mirror, rotate, rotation_matrix, scale, scale_field,
    scale_uniform, translate, zero_time,
)


@pytest.fixture
def cube(unit_cube):
    return MeshSnapshot.from_file(unit_cube)


def test_translate_and_scale(cube):
    """
    Test 1: Offsets and factors per axis; short lists pad the rest.
    """
    print("Test 1: Translate and scale...")

    translate(cube, [1.0, 2.0])
    np.testing.assert_allclose(cube.coords, UNIT_CUBE_COORDS + [1.0, 2.0, 0.0])

    scale(cube, [2.0])
    np.testing.assert_allclose(cube.coords[:, 0], 2.0 * (UNIT_CUBE_COORDS[:, 0] + 1.0))
    np.testing.assert_allclose(cube.coords[:, 1], UNIT_CUBE_COORDS[:, 1] + 2.0)

    scale_uniform(cube, 0.5)
    np.testing.assert_allclose(cube.coords[:, 2], 0.5 * UNIT_CUBE_COORDS[:, 2])

    print("  PASSED")


def test_rotation_sequences():
    """
    Test 2: Z by 90 degrees takes +x to +y. Extrinsic 'XZ' rotates about
    the fixed axes, intrinsic 'xz' about the rotated ones.
    """
    print("Test 2: Rotation sequences...")

    np.testing.assert_allclose(rotation_matrix("Z", [90.0]) @ [1.0, 0.0, 0.0],
                               [0.0, 1.0, 0.0], atol=1e-12)

    y = np.array([0.0, 1.0, 0.0])
    np.testing.assert_allclose(rotation_matrix("XZ", [90.0, 90.0]) @ y,
                               [0.0, 0.0, 1.0], atol=1e-12)
    np.testing.assert_allclose(rotation_matrix("xz", [90.0, 90.0]) @ y,
                               [-1.0, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(rotation_matrix("XZ", [30.0, 45.0]),
                               rotation_matrix("zx", [45.0, 30.0]), atol=1e-12)
    np.testing.assert_allclose(rotation_matrix("z", [np.pi / 2], degrees=False),
                               rotation_matrix("Z", [90.0]), atol=1e-12)

    for bad_sequence, angles in [("Xy", [1.0, 2.0]), ("", []),
                                 ("XYZX", [1.0, 2.0, 3.0, 4.0])]:
        with pytest.raises(ValueError):
            rotation_matrix(bad_sequence, angles)
    with pytest.raises(ValueError):
        rotation_matrix("XY", [1.0])

    print("  PASSED")


def test_rotate_mesh(cube):
    rotate(cube, "Z", [90.0])
    np.testing.assert_allclose(cube.coords[1], [0.0, 1.0, 0.0], atol=1e-12)
    assert element_volume("HEX8", cube.coords[cube.blocks[0].connectivity[0] - 1]) > 0


def test_mirror_snapshot(half_bar):
    """
    Test 3: After mirroring about x the elements are positive and the end
    sideset still names the faces at |x| = 2.
    """
    print("Test 3: Mirror snapshot...")

    snap = MeshSnapshot.from_file(half_bar)
    mirror(snap, "x")

    assert snap.coords[:, 0].max() == 0.0
    conn = snap.blocks[0].connectivity
    for elem in conn:
        assert element_volume("HEX8", snap.coords[elem - 1]) > 0

    sideset = snap.sets[EntityKind.SIDE_SET][0]
    np.testing.assert_array_equal(sideset.sides, [4])
    elem = conn[sideset.entries[0] - 1]
    face = elem[list(side_nodes("HEX8", int(sideset.sides[0])))]
    np.testing.assert_allclose(snap.coords[face - 1, 0], -2.0)

    print("  PASSED")


def test_scale_field_and_zero_time(half_bar):
    """
    Test 4: Scaling touches every container and step; time starts at 0.
    """
    print("Test 4: Field scaling and time normalization...")

    snap = MeshSnapshot.from_file(half_bar)
    before = snap.values[EntityKind.NODAL][(0, 0)].copy()
    assert scale_field(snap, "temperature", 2.0) == 1
    np.testing.assert_allclose(snap.values[EntityKind.NODAL][(0, 0)], 2.0 * before)
    with pytest.raises(EntityNotFound):
        scale_field(snap, "pressure", 2.0)

    zero_time(snap)
    np.testing.assert_allclose(snap.times, [0.0, 0.5, 1.0])
    empty = MeshSnapshot()
    zero_time(empty)
    assert len(empty.times) == 0

    print("  PASSED")


def test_operations_on_file(half_bar):
    """
    Test 5: The same operations through an append handle rewrite the file.
    """
    print("Test 5: Operations through an append handle...")

    with ExodusReader(half_bar) as db:
        coords = db.get_coords()

    with ExodusAppender(half_bar) as db:
        apply_operations(db, [
            ("translate", ([0.0, 0.0, 1.0],)),
            ("mirror", ("x",)),
            ("scale_field", ("flux", -1.0)),
            ("zero_time", ()),
        ])

    with ExodusReader(half_bar) as db:
        moved = db.get_coords()
        np.testing.assert_allclose(moved[:, 0], -coords[:, 0])
        np.testing.assert_allclose(moved[:, 2], coords[:, 2] + 1.0)
        conn = db.get_connectivity(1)
        for elem in conn:
            assert element_volume("HEX8", moved[elem - 1]) > 0
        np.testing.assert_array_equal(db.get_set(EntityKind.SIDE_SET, 1).sides, [4])
        np.testing.assert_allclose(db.get_times(), [0.0, 0.5, 1.0])
        np.testing.assert_allclose(db.get_variable(3, EntityKind.SIDE_SET, 1, 0), [1.5])

    print("  PASSED")


def test_unknown_operation(cube):
    with pytest.raises(ValueError):
        apply_operations(cube, [("shear", (1.0,))])
