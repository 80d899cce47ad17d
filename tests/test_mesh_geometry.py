"""
Unit tests for mesh geometry utilities.

Tests verify:
1. Unit-square face normal
2. Degenerate faces fall back to +z
3. Outward test against a reference point
4. Normal consistency and averaging
5. Triangle centroid and area
6. Quad area-weighted centroid (non-planar case) and edge length
7. Element volumes and inverted winding
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from exodus_errors import InvalidTopology
from mesh_geometry import (
    as_points, average_normals, center_of_mass, edge_normal,
    element_volume, face_center, face_centroid_and_area, face_normal,
    is_outward, normals_consistent, polygon_area,
)


def test_unit_square_normal():
    """
    Test 1: Unit square in the XY plane, counter-clockwise.

    Expected normal: (0, 0, 1).
    """
    print("Test 1: Unit square normal...")

    square = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [1.0, 1.0, 0.0],
        [0.0, 1.0, 0.0],
    ])
    np.testing.assert_allclose(face_normal(square), [0.0, 0.0, 1.0], atol=1e-10)
    np.testing.assert_allclose(face_normal(square[::-1]), [0.0, 0.0, -1.0],
                               atol=1e-10)
    np.testing.assert_allclose(face_center(square), [0.5, 0.5, 0.0])

    print("  PASSED")


def test_degenerate_normal():
    """Test 2: Collinear or too few points give (0, 0, 1)."""
    print("Test 2: Degenerate normals...")

    collinear = np.array([[0.0, 0, 0], [1.0, 0, 0], [2.0, 0, 0]])
    np.testing.assert_allclose(face_normal(collinear), [0.0, 0.0, 1.0])
    np.testing.assert_allclose(face_normal(collinear[:2]), [0.0, 0.0, 1.0])
    np.testing.assert_allclose(edge_normal([[1.0, 1.0], [1.0, 1.0]]),
                               [0.0, 0.0, 1.0])

    print("  PASSED")


def test_is_outward():
    """
    Test 3: Top face of a unit cube.

    Normal +z at center (0.5, 0.5, 1) points away from (0.5, 0.5, 0.5);
    the flipped normal points toward it.
    """
    print("Test 3: Outward test...")

    center = np.array([0.5, 0.5, 1.0])
    mesh_center = np.array([0.5, 0.5, 0.5])
    assert is_outward(center, np.array([0.0, 0.0, 1.0]), mesh_center)
    assert not is_outward(center, np.array([0.0, 0.0, -1.0]), mesh_center)
    # tangent normals are not outward
    assert not is_outward(center, np.array([1.0, 0.0, 0.0]), mesh_center)

    print("  PASSED")


def test_consistency_and_average():
    """Test 4: Dot-product threshold and normalized average."""
    print("Test 4: Normal consistency and averaging...")

    up = np.array([0.0, 0.0, 1.0])
    side = np.array([1.0, 0.0, 0.0])
    assert normals_consistent(up, side, -0.5)
    assert not normals_consistent(up, -up, -0.5)

    avg = average_normals([up, side])
    np.testing.assert_allclose(avg, np.array([1.0, 0.0, 1.0]) / np.sqrt(2.0))
    np.testing.assert_allclose(average_normals([]), up)
    np.testing.assert_allclose(average_normals([up, -up]), up)

    print("  PASSED")


def test_edge_normal_2d():
    """In-plane edge normal points to the right of the edge direction."""
    np.testing.assert_allclose(edge_normal([[0.0, 0.0], [1.0, 0.0]]),
                               [0.0, -1.0, 0.0])
    np.testing.assert_allclose(edge_normal([[1.0, 0.0], [1.0, 1.0]]),
                               [1.0, 0.0, 0.0])


def test_as_points_and_center_of_mass():
    """2-D points are padded with z = 0; empty input centers at origin."""
    pts = as_points([[1.0, 2.0], [3.0, 4.0]])
    assert pts.shape == (2, 3)
    np.testing.assert_allclose(pts[:, 2], 0.0)
    np.testing.assert_allclose(center_of_mass(pts), [2.0, 3.0, 0.0])
    np.testing.assert_allclose(center_of_mass(np.zeros((0, 3))), np.zeros(3))


def test_triangle_centroid_and_area():
    """
    Test 5: Right triangle centroid and area.

    Triangle with vertices (0,0,0), (1,0,0), (0,1,0).
    Expected centroid: (1/3, 1/3, 0).
    Expected area: 0.5.
    """
    print("Test 5: Triangle centroid and area...")

    coords = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
    ])

    centroid, area = face_centroid_and_area(coords)

    expected_centroid = np.array([1.0 / 3.0, 1.0 / 3.0, 0.0])
    np.testing.assert_allclose(centroid, expected_centroid, atol=1e-14)
    np.testing.assert_allclose(area, 0.5, atol=1e-14)

    print("  PASSED")


def test_quad_area_weighted_centroid():
    """
    Test 6: Non-planar quad area-weighted centroid.

    Fan triangulation from v0 into (v0, v1, v2) and (v0, v2, v3); the
    result must differ from the plain vertex average.
    """
    print("Test 6: Quad area-weighted centroid (non-planar)...")

    v0 = np.array([0.0, 0.0, 0.0])
    v1 = np.array([2.0, 0.0, 0.0])
    v2 = np.array([2.0, 1.0, 0.0])
    v3 = np.array([0.0, 1.0, 1.0])
    coords = np.array([v0, v1, v2, v3])

    c1 = (v0 + v1 + v2) / 3.0
    a1 = 0.5 * np.linalg.norm(np.cross(v1 - v0, v2 - v0))
    c2 = (v0 + v2 + v3) / 3.0
    a2 = 0.5 * np.linalg.norm(np.cross(v2 - v0, v3 - v0))

    centroid, area = face_centroid_and_area(coords)

    np.testing.assert_allclose(centroid, (c1 * a1 + c2 * a2) / (a1 + a2),
                               atol=1e-14)
    np.testing.assert_allclose(area, a1 + a2, atol=1e-14)
    assert not np.allclose(centroid, coords.mean(axis=0), atol=1e-10)

    centroid, length = face_centroid_and_area(coords[:2])
    np.testing.assert_allclose(centroid, [1.0, 0.0, 0.0])
    assert length == pytest.approx(2.0)

    with pytest.raises(ValueError):
        face_centroid_and_area(coords[:1])

    print("  PASSED")


def test_element_volumes():
    """
    Test 7: Measures of unit elements.

    Unit cube volume 1, unit tet 1/6, unit square area 1; reversed
    winding gives the negative value.
    """
    print("Test 7: Element volumes...")

    cube = np.array([
        [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
        [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],
    ], dtype=float)
    np.testing.assert_allclose(element_volume("HEX8", cube), 1.0)
    np.testing.assert_allclose(element_volume("HEX8", 2.0 * cube), 8.0)
    upside_down = cube[[4, 5, 6, 7, 0, 1, 2, 3]]
    np.testing.assert_allclose(element_volume("HEX8", upside_down), -1.0)

    tet = cube[[0, 1, 3, 4]]
    np.testing.assert_allclose(element_volume("TET4", tet), 1.0 / 6.0)

    square = cube[:4]
    np.testing.assert_allclose(element_volume("QUAD4", square), 1.0)
    np.testing.assert_allclose(polygon_area(square[::-1]), -1.0)

    with pytest.raises(InvalidTopology):
        element_volume("SPHERE", cube[:1])

    print("  PASSED")
