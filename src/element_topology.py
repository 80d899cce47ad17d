"""
Element topology catalog.

Face (3-D) and edge (2-D) definitions for the standard Exodus element
types, as local 0-based node indices with 1-based side numbers. Winding
follows the right-hand rule so the cross product of the first two face edges
points out of the element. Higher-order variants share the corner-node
faces of their linear parent. Shells keep a separate side table (two faces,
then the edges) used for mirroring only.
"""

from typing import List, NamedTuple, Optional

from exodus_errors import InvalidTopology


class FaceDef(NamedTuple):
    side_number: int
    node_indices: tuple


HEX_FACES = {
    1: (0, 1, 5, 4), 2: (1, 2, 6, 5), 3: (2, 3, 7, 6),
    4: (0, 4, 7, 3), 5: (0, 3, 2, 1), 6: (4, 5, 6, 7),
}

TET_FACES = {
    1: (0, 1, 3), 2: (1, 2, 3), 3: (0, 3, 2), 4: (0, 2, 1),
}

WEDGE_FACES = {
    1: (0, 1, 4, 3), 2: (1, 2, 5, 4), 3: (0, 3, 5, 2),
    4: (0, 2, 1), 5: (3, 4, 5),
}

PYRAMID_FACES = {
    1: (0, 1, 4), 2: (1, 2, 4), 3: (2, 3, 4), 4: (3, 0, 4),
    5: (0, 3, 2, 1),
}

QUAD_EDGES = {
    1: (0, 1), 2: (1, 2), 3: (2, 3), 4: (3, 0),
}

TRI_EDGES = {
    1: (0, 1), 2: (1, 2), 3: (2, 0),
}

# Shells number their two faces first (1 along the element normal, 2
# against it), then their edges.
SHELL_SIDES = {
    1: (0, 1, 2, 3), 2: (0, 3, 2, 1),
    3: (0, 1), 4: (1, 2), 5: (2, 3), 6: (3, 0),
}

TRISHELL_SIDES = {
    1: (0, 1, 2), 2: (0, 2, 1),
    3: (0, 1), 4: (1, 2), 5: (2, 0),
}

# family -> (side table, corner node count, spatial dimension of the shape)
FAMILIES = {
    "HEX": (HEX_FACES, 8, 3),
    "TET": (TET_FACES, 4, 3),
    "WEDGE": (WEDGE_FACES, 6, 3),
    "PYRAMID": (PYRAMID_FACES, 5, 3),
    "QUAD": (QUAD_EDGES, 4, 2),
    "TRI": (TRI_EDGES, 3, 2),
}

# Upper-case element type names as written by common Exodus producers
ALIASES = {
    "HEX": "HEX", "HEX8": "HEX", "HEX20": "HEX", "HEX27": "HEX",
    "HEXAHEDRON": "HEX",
    "TET": "TET", "TET4": "TET", "TET8": "TET", "TET10": "TET",
    "TET14": "TET", "TET15": "TET", "TETRA": "TET", "TETRA4": "TET",
    "TETRA8": "TET", "TETRA10": "TET", "TETRA14": "TET", "TETRA15": "TET",
    "WEDGE": "WEDGE", "WEDGE6": "WEDGE", "WEDGE15": "WEDGE",
    "WEDGE18": "WEDGE",
    "PYRAMID": "PYRAMID", "PYRAMID5": "PYRAMID", "PYRAMID13": "PYRAMID",
    "PYRAMID14": "PYRAMID",
    "QUAD": "QUAD", "QUAD4": "QUAD", "QUAD8": "QUAD", "QUAD9": "QUAD",
    "QUADRILATERAL": "QUAD",
    "TRI": "TRI", "TRI3": "TRI", "TRI6": "TRI", "TRI7": "TRI",
    "TRIANGLE": "TRI",
}

# Shells stay out of the face catalog, so side derivation skips them; they
# can still be mirrored and have their side numbers followed.
SHELL_ALIASES = {
    "SHELL": "SHELL", "SHELL4": "SHELL", "SHELL8": "SHELL", "SHELL9": "SHELL",
    "TRISHELL": "TRISHELL", "TRISHELL3": "TRISHELL", "TRISHELL6": "TRISHELL",
}

SHELL_TABLES = {"SHELL": SHELL_SIDES, "TRISHELL": TRISHELL_SIDES}

# Linear kinds only: reflecting a higher-order element would also need its
# mid-side nodes reordered.
LINEAR = {
    "HEX", "HEX8", "HEXAHEDRON",
    "TET", "TET4", "TETRA", "TETRA4",
    "WEDGE", "WEDGE6",
    "PYRAMID", "PYRAMID5",
    "QUAD", "QUAD4", "QUADRILATERAL", "SHELL", "SHELL4",
    "TRI", "TRI3", "TRIANGLE", "TRISHELL", "TRISHELL3",
}

MIRROR_PERMUTATIONS = {
    "HEX": {
        "x": (1, 0, 3, 2, 5, 4, 7, 6),
        "y": (3, 2, 1, 0, 7, 6, 5, 4),
        "z": (4, 5, 6, 7, 0, 1, 2, 3),
    },
    "WEDGE": {
        "x": (1, 0, 2, 4, 3, 5),
        "y": (2, 1, 0, 5, 4, 3),
        "z": (3, 4, 5, 0, 1, 2),
    },
    # Swapping two nodes reverses orientation whatever the axis
    "TET": dict.fromkeys("xyz", (0, 2, 1, 3)),
    "PYRAMID": dict.fromkeys("xyz", (3, 2, 1, 0, 4)),
    "QUAD": dict.fromkeys("xyz", (0, 3, 2, 1)),
    "TRI": dict.fromkeys("xyz", (0, 2, 1)),
    "SHELL": dict.fromkeys("xyz", (0, 3, 2, 1)),
    "TRISHELL": dict.fromkeys("xyz", (0, 2, 1)),
}


def _upper(topology) -> str:
    return str(topology).strip().upper()


def normalize_topology(topology: str) -> Optional[str]:
    """Family name ('HEX', 'TET', ...) of an element type, or None."""
    return ALIASES.get(_upper(topology))


def faces(topology: str) -> List[FaceDef]:
    """
    Ordered side definitions of an element type.

    Parameters
    ----------
    topology : str
        Element type name, case-insensitive (e.g. 'HEX8', 'tet', 'QUAD4').

    Returns
    -------
    faces : List[FaceDef]
        Faces for 3-D kinds, edges for 2-D kinds; empty for shells,
        point-like and unknown kinds.
    """
    family = normalize_topology(topology)
    if family is None:
        return []
    table = FAMILIES[family][0]
    return [FaceDef(side, nodes) for side, nodes in table.items()]


def numbered_sides(topology: str) -> List[FaceDef]:
    """
    Every side a side set may name for an element type.

    Same as :func:`faces` except for shells, where faces 1 and 2 come
    before the edges.
    """
    shell = SHELL_ALIASES.get(_upper(topology))
    if shell is None:
        return faces(topology)
    return [FaceDef(side, nodes) for side, nodes in SHELL_TABLES[shell].items()]


def side_nodes(topology: str, side_number: int) -> tuple:
    """Local node indices of one side; raises InvalidTopology if undefined."""
    for face in numbered_sides(topology):
        if face.side_number == side_number:
            return face.node_indices
    raise InvalidTopology(
        f"Invalid side number {side_number} for element type '{topology}'"
    )


def num_corner_nodes(topology: str) -> int:
    """Number of corner nodes the face tables index into (0 if unknown)."""
    family = normalize_topology(topology)
    return 0 if family is None else FAMILIES[family][1]


def topology_dimension(topology: str) -> int:
    """3 for solid kinds, 2 for surface kinds, 0 if unknown."""
    family = normalize_topology(topology)
    return 0 if family is None else FAMILIES[family][2]


def mirror_permutation(topology: str, axis: str) -> tuple:
    """
    Connectivity reordering that restores outward winding after a reflection.

    Local node ``i`` of a mirrored element is local node ``perm[i]`` of the
    original element.

    Parameters
    ----------
    topology : str
        Linear element type name.
    axis : str
        Reflection axis, 'x', 'y' or 'z'.

    Raises
    ------
    InvalidTopology
        If the element type cannot be mirrored.
    """
    axis = str(axis).lower()
    if axis not in ("x", "y", "z"):
        raise ValueError(f"axis must be 'x', 'y' or 'z', got {axis!r}")
    name = _upper(topology)
    if name not in LINEAR:
        raise InvalidTopology(
            f"Cannot mirror element type '{topology}'. Supported types: "
            f"{sorted(LINEAR)}"
        )
    family = ALIASES.get(name) or SHELL_ALIASES[name]
    return MIRROR_PERMUTATIONS[family][axis]
