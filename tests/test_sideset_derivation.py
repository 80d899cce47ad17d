"""
Tests for deriving sidesets from nodesets.

Tests verify:
1. Top face of a single hex gives the pair (1, 6)
2. An empty nodeset gives an empty sideset
3. Interior faces are never selected
4. Element ids are global positions across blocks (2-D edges)
5. The derived sideset is appended to the file
6. Shell elements are not given face-numbered sides
7. Inward-pointing boundary faces are skipped with a warning
8. Faces with opposite normals are kept with a warning
9. Side centroids and areas of stored side sets
"""

import logging
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from exodus_database import ExodusAppender, ExodusReader, ExodusWriter
from exodus_entities import Block, EntitySet
from exodus_schema import EntityKind
from sideset_derivation import (
    build_face_registry, convert_nodeset_to_sideset,
    create_sideset_from_nodeset, is_boundary_face, sideset_face_geometry,
)


def test_single_hex_top_face(unit_cube):
    """
    Test 1: Nodeset {5, 6, 7, 8} is the z = 1 face of the unit cube,
    side 6 of element 1.
    """
    print("Test 1: Single hex top face...")

    with ExodusReader(unit_cube) as db:
        sideset = convert_nodeset_to_sideset(db, nodeset_id=10, new_sideset_id=1)

    assert sideset.pairs() == [(1, 6)]
    assert sideset.id == 1

    print("  PASSED")


def test_empty_nodeset(unit_cube, caplog):
    """
    Test 2: An empty nodeset yields no pairs and a warning.
    """
    print("Test 2: Empty nodeset...")

    with caplog.at_level(logging.WARNING, logger="sideset_derivation"):
        with ExodusReader(unit_cube) as db:
            sideset = convert_nodeset_to_sideset(db, nodeset_id=20, new_sideset_id=2)

    assert len(sideset) == 0
    assert "empty" in caplog.text

    print("  PASSED")


def test_interior_face_not_selected(half_bar):
    """
    Test 3: In the 2-element bar the face at x = 1 is shared and has a
    use count of 2; nodesets on the outer faces select only boundary sides.
    """
    print("Test 3: Boundary faces only...")

    with ExodusReader(half_bar) as db:
        registry = build_face_registry(db)
        assert registry[(2, 5, 8, 11)] == 2
        assert is_boundary_face([1, 2, 5, 4], registry)
        assert not is_boundary_face([11, 8, 5, 2], registry)

        end = convert_nodeset_to_sideset(db, nodeset_id=2, new_sideset_id=5)
        symmetry = convert_nodeset_to_sideset(db, nodeset_id=1, new_sideset_id=6)
        top = convert_nodeset_to_sideset(db, nodeset_id=3, new_sideset_id=7)

    assert end.pairs() == [(2, 2)]
    assert symmetry.pairs() == [(1, 4)]
    assert top.pairs() == [(1, 6), (2, 6)]

    print("  PASSED")


def test_global_element_ids_2d(tmp_path):
    """
    Test 4: Two QUAD4 blocks of one element each; the bottom edge nodeset
    selects side 1 of elements 1 and 2 (the second block's element is
    global element 2).
    """
    print("Test 4: 2-D edges across blocks...")

    path = tmp_path / "strip.e"
    with ExodusWriter(path) as db:
        db.initialize("strip", 2, 6)
        db.declare_block(EntityKind.ELEM_BLOCK, Block(10, "QUAD4", 1, 4))
        db.declare_block(EntityKind.ELEM_BLOCK, Block(20, "QUAD4", 1, 4))
        db.declare_set(EntityKind.NODE_SET, EntitySet(1, 3, name="bottom"))
        db.commit()
        db.put_coords([0.0, 1.0, 2.0, 0.0, 1.0, 2.0],
                      [0.0, 0.0, 0.0, 1.0, 1.0, 1.0])
        db.put_connectivity(10, [1, 2, 5, 4])
        db.put_connectivity(20, [2, 3, 6, 5])
        db.put_set(EntityKind.NODE_SET, 1, [1, 2, 3])

    with ExodusReader(path) as db:
        sideset = convert_nodeset_to_sideset(db, 1, 1)

    assert sideset.pairs() == [(1, 1), (2, 1)]

    print("  PASSED")


def test_create_sideset_appends(unit_cube):
    """
    Test 5: The derived sideset is written with the next free id and its
    name; existing data is untouched.
    """
    print("Test 5: Append derived sideset...")

    with ExodusAppender(unit_cube) as db:
        sideset = create_sideset_from_nodeset(db, 10, name="top_faces")
        assert sideset.id == 1

    with ExodusReader(unit_cube) as db:
        assert db.get_ids(EntityKind.SIDE_SET) == [1]
        assert db.get_names(EntityKind.SIDE_SET) == ["top_faces"]
        stored = db.get_set(EntityKind.SIDE_SET, 1)
        np.testing.assert_array_equal(stored.entries, [1])
        np.testing.assert_array_equal(stored.sides, [6])
        np.testing.assert_array_equal(db.get_set(EntityKind.NODE_SET, 10).entries,
                                      [5, 6, 7, 8])
        assert db.num_time_steps() == 2

    print("  PASSED")


def test_shell_faces_not_derived(tmp_path, caplog):
    """
    Test 6: A SHELL4 has no entry in the face catalog, so a nodeset on all
    of its nodes yields no sides rather than edge-numbered ones.
    """
    print("Test 6: Shell elements are skipped...")

    path = tmp_path / "shell.e"
    with ExodusWriter(path) as db:
        db.initialize("shell", 3, 4)
        db.declare_block(EntityKind.ELEM_BLOCK, Block(1, "SHELL4", 1, 4))
        db.declare_set(EntityKind.NODE_SET, EntitySet(1, 4))
        db.commit()
        db.put_coords([0.0, 1.0, 1.0, 0.0], [0.0, 0.0, 1.0, 1.0],
                      [0.0, 0.0, 0.0, 0.0])
        db.put_connectivity(1, [1, 2, 3, 4])
        db.put_set(EntityKind.NODE_SET, 1, [1, 2, 3, 4])

    with caplog.at_level(logging.INFO, logger="sideset_derivation"):
        with ExodusReader(path) as db:
            sideset = convert_nodeset_to_sideset(db, 1, 1)

    assert sideset.pairs() == []
    assert "'SHELL4'" in caplog.text
    assert "No boundary faces found for nodeset 1" in caplog.text

    print("  PASSED")


def _write_u_channel(path):
    """
    Three HEX8 along x at z in [0, 1] with a pillar up to z = 3 on each end
    element. The mean node height is 4/3, so the top of the middle element
    (z = 1) faces the center of mass.
    """
    coords = []
    for z in (0.0, 1.0):
        for y in (0.0, 1.0):
            coords.extend([x, y, z] for x in (0.0, 1.0, 2.0, 3.0))
    for y in (0.0, 1.0):
        coords.extend([x, y, 3.0] for x in (0.0, 1.0, 2.0, 3.0))
    conn = [
        [1, 2, 6, 5, 9, 10, 14, 13],
        [2, 3, 7, 6, 10, 11, 15, 14],
        [3, 4, 8, 7, 11, 12, 16, 15],
        [9, 10, 14, 13, 17, 18, 22, 21],
        [11, 12, 16, 15, 19, 20, 24, 23],
    ]
    with ExodusWriter(path) as db:
        db.initialize("u channel", 3, len(coords))
        db.declare_block(EntityKind.ELEM_BLOCK, Block(1, "HEX8", len(conn), 8))
        db.declare_set(EntityKind.NODE_SET, EntitySet(1, 4, name="channel_floor"))
        db.commit()
        db.put_coords(np.array(coords))
        db.put_connectivity(1, conn)
        db.put_set(EntityKind.NODE_SET, 1, [10, 11, 15, 14])
    return path


def test_inward_face_skipped(tmp_path, caplog):
    """
    Test 7: A boundary face whose normal points toward the center of mass
    is skipped with a warning.
    """
    print("Test 7: Inward-pointing face...")

    path = _write_u_channel(tmp_path / "channel.e")
    with ExodusReader(path) as db:
        registry = build_face_registry(db)
        assert is_boundary_face([10, 11, 15, 14], registry)
        with caplog.at_level(logging.WARNING, logger="sideset_derivation"):
            sideset = convert_nodeset_to_sideset(db, 1, 1)

    assert sideset.pairs() == []
    assert ("Face on element 2 side 6 has inward-pointing normal, skipping"
            in caplog.text)

    print("  PASSED")


def test_opposite_faces_kept_with_warning(half_bar, caplog):
    """
    Test 8: A nodeset on both ends of the bar selects two faces with
    opposite normals; the second is kept and reported as inconsistent.
    """
    print("Test 8: Inconsistent normals are kept...")

    with ExodusReader(half_bar) as db:
        ends = np.union1d(db.get_set(EntityKind.NODE_SET, 1).entries,
                          db.get_set(EntityKind.NODE_SET, 2).entries)

    with ExodusAppender(half_bar) as db:
        db.reenter_definition()
        db.declare_set(EntityKind.NODE_SET, EntitySet(9, len(ends), name="ends"))
        db.commit()
        db.put_set(EntityKind.NODE_SET, 9, ends)

        with caplog.at_level(logging.WARNING, logger="sideset_derivation"):
            sideset = convert_nodeset_to_sideset(db, 9, 3)

    assert sideset.pairs() == [(1, 4), (2, 2)]
    messages = [r.getMessage() for r in caplog.records
                if r.name == "sideset_derivation"]
    assert messages == [
        "Face on element 2 side 2 has inconsistent normal direction "
        "(dot product with average <= -0.5)"
    ]

    print("  PASSED")


def test_sideset_face_geometry(half_bar):
    """
    Test 9: The stored end sideset is the unit face at x = 2; a derived top
    sideset has one unit face per element at z = 1.
    """
    print("Test 9: Side centroids and areas...")

    with ExodusAppender(half_bar) as db:
        centroids, areas = sideset_face_geometry(db, 1)
        np.testing.assert_allclose(centroids, [[2.0, 0.5, 0.5]])
        np.testing.assert_allclose(areas, [1.0])

        create_sideset_from_nodeset(db, 3, new_sideset_id=4)
        centroids, areas = sideset_face_geometry(db, 4)
        np.testing.assert_allclose(centroids, [[0.5, 0.5, 1.0],
                                               [1.5, 0.5, 1.0]])
        np.testing.assert_allclose(areas, [1.0, 1.0])

    print("  PASSED")


def test_sideset_edge_lengths(tmp_path):
    """Sides of 2-D elements are measured by edge length."""
    path = tmp_path / "quad.e"
    with ExodusWriter(path) as db:
        db.initialize("quad", 2, 4)
        db.declare_block(EntityKind.ELEM_BLOCK, Block(1, "QUAD4", 1, 4))
        db.declare_set(EntityKind.SIDE_SET, EntitySet(1, 2))
        db.commit()
        db.put_coords([0.0, 2.0, 2.0, 0.0], [0.0, 0.0, 1.0, 1.0])
        db.put_connectivity(1, [1, 2, 3, 4])
        db.put_set(EntityKind.SIDE_SET, 1, [1, 1], sides=[1, 2])

    with ExodusReader(path) as db:
        centroids, areas = sideset_face_geometry(db, 1)

    np.testing.assert_allclose(centroids, [[1.0, 0.0, 0.0], [2.0, 0.5, 0.0]])
    np.testing.assert_allclose(areas, [2.0, 1.0])
