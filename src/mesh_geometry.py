"""
Geometry utilities for mesh faces and elements.

Stateless numpy functions over point arrays of shape (n_points, 3).
2-D points (n_points, 2) are padded with z = 0.
"""

from typing import Sequence

import numpy as np

from element_topology import normalize_topology, topology_dimension
from exodus_errors import InvalidTopology


DEGENERATE_TOLERANCE = 1e-12
DEFAULT_NORMAL = np.array([0.0, 0.0, 1.0])

# Tetrahedral decompositions of the solid kinds (local corner indices)
TET_DECOMPOSITION = {
    "TET": [(0, 1, 2, 3)],
    "PYRAMID": [(0, 1, 2, 4), (0, 2, 3, 4)],
    "WEDGE": [(0, 1, 2, 3), (1, 2, 3, 4), (2, 3, 4, 5)],
    "HEX": [(0, 1, 3, 4), (1, 2, 3, 6), (1, 3, 4, 6), (1, 4, 5, 6),
            (3, 4, 6, 7)],
}


def as_points(points) -> np.ndarray:
    """Return ``points`` as float array of shape (n, 3)."""
    pts = np.atleast_2d(np.asarray(points, dtype=np.float64))
    if pts.shape[1] < 3:
        pts = np.hstack([pts, np.zeros((pts.shape[0], 3 - pts.shape[1]))])
    return pts


def face_normal(points) -> np.ndarray:
    """
    Unit normal of a face from its first three points.

    The normal is the normalized cross product of edges 0->1 and 0->2.
    A degenerate face returns (0, 0, 1).
    """
    pts = as_points(points)
    if len(pts) < 3:
        return DEFAULT_NORMAL.copy()
    normal = np.cross(pts[1] - pts[0], pts[2] - pts[0])
    length = np.linalg.norm(normal)
    if length < DEGENERATE_TOLERANCE:
        return DEFAULT_NORMAL.copy()
    return normal / length


def edge_normal(points) -> np.ndarray:
    """
    In-plane unit normal of a 2-D edge, pointing right of 0->1.

    For counter-clockwise 2-D elements this is the outward normal.
    """
    pts = as_points(points)
    tangent = pts[1] - pts[0]
    normal = np.array([tangent[1], -tangent[0], 0.0])
    length = np.linalg.norm(normal)
    if length < DEGENERATE_TOLERANCE:
        return DEFAULT_NORMAL.copy()
    return normal / length


def face_center(points) -> np.ndarray:
    """Arithmetic mean of the face points."""
    return as_points(points).mean(axis=0)


def center_of_mass(coords) -> np.ndarray:
    """Arithmetic mean of all node coordinates."""
    pts = as_points(coords)
    if len(pts) == 0:
        return np.zeros(3)
    return pts.mean(axis=0)


def is_outward(center, normal, mesh_center) -> bool:
    """True iff ``normal`` points away from ``mesh_center``."""
    direction = np.asarray(center, dtype=float) - np.asarray(mesh_center, dtype=float)
    return float(np.dot(normal, direction)) > 0.0


def normals_consistent(n1, n2, threshold: float) -> bool:
    """True iff dot(n1, n2) > threshold."""
    return float(np.dot(n1, n2)) > threshold


def average_normals(normals: Sequence) -> np.ndarray:
    """Normalized sum of normals; (0, 0, 1) for an empty or cancelling list."""
    if len(normals) == 0:
        return DEFAULT_NORMAL.copy()
    total = np.sum(np.asarray(normals, dtype=float), axis=0)
    length = np.linalg.norm(total)
    if length < DEGENERATE_TOLERANCE:
        return DEFAULT_NORMAL.copy()
    return total / length


def face_centroid_and_area(points) -> tuple:
    """
    Centroid and measure of one side.

    Polygons are split into a fan of triangles around their first point and
    return the area-weighted centroid with the total area. Two points (the
    edge of a 2-D element) return the midpoint and the length.

    Parameters
    ----------
    points : array_like, shape (n_points, 2 or 3)
        Side corner coordinates in winding order.

    Returns
    -------
    centroid : ndarray, shape (3,)
    area : float
        Zero for a degenerate side, whose centroid is the point average.
    """
    pts = as_points(points)
    if len(pts) < 2:
        raise ValueError(f"Side must have at least 2 nodes, got {len(pts)}")
    if len(pts) == 2:
        return pts.mean(axis=0), float(np.linalg.norm(pts[1] - pts[0]))

    apex = pts[0]
    areas = 0.5 * np.linalg.norm(
        np.cross(pts[1:-1] - apex, pts[2:] - apex), axis=1)
    total = float(areas.sum())
    if total < DEGENERATE_TOLERANCE:
        return pts.mean(axis=0), 0.0
    centroids = (apex + pts[1:-1] + pts[2:]) / 3.0
    return areas @ centroids / total, total


def tet_volume(points) -> float:
    """Signed volume of a tetrahedron; positive for right-handed ordering."""
    p = as_points(points)
    return float(np.dot(p[1] - p[0], np.cross(p[2] - p[0], p[3] - p[0]))) / 6.0


def polygon_area(points) -> float:
    """Signed shoelace area in the XY plane; positive if counter-clockwise."""
    p = as_points(points)
    x, y = p[:, 0], p[:, 1]
    return 0.5 * float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1)))


def element_volume(topology: str, points) -> float:
    """
    Signed measure of one element from its corner coordinates.

    Volume for solid kinds (sum over a tetrahedral decomposition), XY area
    for surface kinds. A negative value means inverted winding.
    """
    family = normalize_topology(topology)
    if family is None:
        raise InvalidTopology(f"Unsupported element type: '{topology}'")
    pts = as_points(points)
    if topology_dimension(topology) == 2:
        corners = 4 if family == "QUAD" else 3
        return polygon_area(pts[:corners])
    return sum(tet_volume(pts[list(tet)]) for tet in TET_DECOMPOSITION[family])
