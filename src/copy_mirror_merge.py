"""
Copy-mirror-merge: build a full model from a half-symmetry model.

The mesh is reflected about the plane ``axis = 0``. Nodes on that plane are
shared between the two halves; every other node, element, node/side/element
set and variable gets a mirrored companion. Vector components normal to the
plane change sign, scalars are copied unchanged. Edge and face entities are
carried over as they are.
"""

import copy
import datetime
import logging
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from element_topology import mirror_permutation, numbered_sides
from exodus_container import PerformanceConfig
from exodus_entities import Assembly, Block, QARecord, SetData
from exodus_schema import MAX_NAME_LENGTH, EntityKind
from mesh_snapshot import EXTRA_BLOCK_KINDS, BlockData, MeshSnapshot


logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.001
CODE_NAME = "copy_mirror_merge"
CODE_VERSION = "1.0"
MIRROR_SUFFIX = "_mirror"

AXES = {"x": 0, "y": 1, "z": 2}

# Component suffix families; position in each tuple is the axis index
COMPONENT_SUFFIXES = (
    ("_x", "_y", "_z"),
    ("x", "y", "z"),
    ("_u", "_v", "_w"),
    ("u", "v", "w"),
)

DEFAULT_SET_PREFIX = {
    EntityKind.NODE_SET: "nodeset",
    EntityKind.SIDE_SET: "sideset",
    EntityKind.ELEM_SET: "elemset",
}

MIRRORED_SET_KINDS = tuple(DEFAULT_SET_PREFIX)


def axis_index(axis: str) -> int:
    try:
        return AXES[str(axis).lower()]
    except KeyError:
        raise ValueError(f"axis must be 'x', 'y' or 'z', got {axis!r}") from None


def find_symmetry_plane_nodes(coords: np.ndarray, axis: str,
                              tolerance: float = DEFAULT_TOLERANCE) -> np.ndarray:
    """0-based indices of the nodes with ``|coord[axis]| <= tolerance``."""
    column = np.asarray(coords, dtype=np.float64)[:, axis_index(axis)]
    return np.flatnonzero(np.abs(column) <= tolerance)


def build_node_mapping(num_nodes: int, plane_nodes: Iterable[int]) -> np.ndarray:
    """
    1-based id of the mirror image of every original node.

    Plane nodes map to themselves; the others get ``num_nodes + 1, ...``
    in original order.
    """
    on_plane = np.zeros(num_nodes, dtype=bool)
    on_plane[np.asarray(list(plane_nodes), dtype=np.int64)] = True
    mapping = np.arange(1, num_nodes + 1, dtype=np.int64)
    off_plane = ~on_plane
    mapping[off_plane] = num_nodes + 1 + np.arange(off_plane.sum())
    return mapping


def mirror_name(name: str) -> str:
    """``<name>_mirror``, shortening the root to stay within the name limit."""
    root = name[:MAX_NAME_LENGTH - len(MIRROR_SUFFIX)]
    if root != name:
        logger.warning("Name '%s' is too long for the '%s' suffix; the "
                       "mirrored entity is named '%s'",
                       name, MIRROR_SUFFIX, root + MIRROR_SUFFIX)
    return root + MIRROR_SUFFIX


def _split_component(name: str):
    """Yield (root, family, axis) for every suffix family the name ends with."""
    lower = name.lower()
    for family, suffixes in enumerate(COMPONENT_SUFFIXES):
        for axis, suffix in enumerate(suffixes):
            if lower.endswith(suffix):
                yield lower[:-len(suffix)], family, axis


def vector_components(names: Sequence[str], axis: str,
                      vector_fields: Optional[Iterable[str]] = None) -> List[bool]:
    """
    Flag the variables that are the ``axis`` component of a vector.

    A name qualifies when it ends with the axis suffix of a family
    (``_x``/``x``/``_u``/``u`` for x, and so on, case-insensitive) and some
    other variable of the same list shares its root with a different suffix
    of that family. Names listed in ``vector_fields``, either the full
    component name or its root, always qualify.
    """
    target = axis_index(axis)
    explicit = {f.lower() for f in (vector_fields or ())}
    parsed = {n.lower(): set(_split_component(n)) for n in names}
    roots = set()
    for entries in parsed.values():
        roots.update(entries)

    flags = []
    for name in names:
        lower = name.lower()
        flag = lower in explicit
        for root, family, axis_pos in parsed[lower]:
            if axis_pos != target:
                continue
            if root in explicit:
                flag = True
            siblings = {(root, family, a) for a in range(3) if a != target}
            if siblings & roots:
                flag = True
        flags.append(flag)
    return flags


def mirror_side_map(topology: str, axis: str) -> Dict[int, int]:
    """
    Side number of the mirrored element for each original side number.

    Local node ``i`` of the mirrored element is local node ``perm[i]`` of
    the original, so a side keeps its nodes when its local index set maps
    onto the index set of a side of the mirrored element. Shell faces 1 and
    2 share one index set; a side whose set maps onto itself keeps its
    number.
    """
    perm = mirror_permutation(topology, axis)
    position = {old: new for new, old in enumerate(perm)}
    sides_def = numbered_sides(topology)
    by_nodes = {frozenset(f.node_indices): f.side_number for f in sides_def}
    sides = {}
    for face in sides_def:
        image = frozenset(position[i] for i in face.node_indices)
        if image == frozenset(face.node_indices):
            sides[face.side_number] = face.side_number
        else:
            sides[face.side_number] = by_nodes[image]
    return sides


def _mirror_blocks(snap: MeshSnapshot, axis: str, mapping: np.ndarray):
    next_id = max(snap.block_ids(), default=0) + 1
    mirrored = []
    for offset, data in enumerate(snap.blocks):
        block = data.block
        perm = list(mirror_permutation(block.topology, axis))
        conn = np.asarray(data.connectivity, dtype=np.int64)
        mirror_conn = mapping[conn[:, perm] - 1] if conn.size else conn.copy()
        name = mirror_name(block.name or f"block_{block.id}")
        mirror_block = Block(
            id=next_id + offset,
            topology=block.topology,
            num_entries=block.num_entries,
            nodes_per_entry=block.nodes_per_entry,
            num_edges_per_entry=block.num_edges_per_entry,
            num_faces_per_entry=block.num_faces_per_entry,
            num_attributes=block.num_attributes,
            name=name,
        )
        attributes = None if data.attributes is None else data.attributes.copy()
        mirrored.append(BlockData(mirror_block, mirror_conn, attributes,
                                  list(data.attribute_names)))
        logger.debug("Mirrored block %d -> %d (%d elements)",
                     block.id, mirror_block.id, block.num_entries)
    return mirrored


def _element_topologies(snap: MeshSnapshot) -> List[str]:
    """Topology of every element, indexed by 0-based global position."""
    result = []
    for data in snap.blocks:
        result.extend([data.block.topology] * data.block.num_entries)
    return result


def _mirror_sets(snap: MeshSnapshot, kind: EntityKind, axis: str,
                 mapping: np.ndarray, topologies: List[str]) -> List[SetData]:
    num_elems = snap.num_elems
    next_id = max(snap.set_ids(kind), default=0) + 1
    side_maps = {}
    mirrored = []
    for offset, s in enumerate(snap.sets[kind]):
        entries = np.asarray(s.entries, dtype=np.int64)
        sides = None
        if kind is EntityKind.NODE_SET:
            new_entries = mapping[entries - 1] if entries.size else entries.copy()
        else:
            new_entries = entries + num_elems
        if kind is EntityKind.SIDE_SET and s.sides is not None:
            sides = np.empty(len(entries), dtype=np.int64)
            for i, (elem, side) in enumerate(zip(entries, s.sides)):
                topology = topologies[elem - 1]
                if topology not in side_maps:
                    side_maps[topology] = mirror_side_map(topology, axis)
                sides[i] = side_maps[topology][int(side)]
        name = mirror_name(s.name or f"{DEFAULT_SET_PREFIX[kind]}_{s.id}")
        dist_factors = None if s.dist_factors is None else np.array(s.dist_factors)
        mirrored.append(SetData(next_id + offset, new_entries, dist_factors,
                                sides, name))
    return mirrored


def _mirror_values(snap: MeshSnapshot, result: MeshSnapshot, axis: str,
                   plane_nodes: np.ndarray, block_map: Dict[int, int],
                   set_maps: Dict[EntityKind, Dict[int, int]],
                   vector_fields) -> None:
    for kind, names in snap.variable_names.items():
        if not names:
            continue
        if kind is EntityKind.GLOBAL:
            logger.warning("Global variables %s copied unchanged", names)
            continue
        flags = vector_components(names, axis, vector_fields)
        for var, flag in enumerate(flags):
            if flag:
                logger.info("Negating %s component: %s", kind, names[var])

        values = result.values[kind]
        if kind is EntityKind.NODAL:
            off_plane = np.ones(snap.num_nodes, dtype=bool)
            off_plane[plane_nodes] = False
            for (cid, var), series in snap.values[kind].items():
                image = series[:, off_plane]
                if flags[var]:
                    image = -image
                values[(cid, var)] = np.hstack([series, image])
            continue

        if kind is EntityKind.ELEM_BLOCK:
            id_map = block_map
        elif kind in set_maps:
            id_map = set_maps[kind]
        else:
            # edge and face block values stay with their unmirrored blocks
            continue
        for (cid, var), series in snap.values[kind].items():
            values[(id_map[cid], var)] = -series if flags[var] else series.copy()
        if kind in snap.truth_tables:
            table = snap.truth_tables[kind]
            result.truth_tables[kind] = np.vstack([table, table])


def _mirror_groupings(snap: MeshSnapshot, result: MeshSnapshot,
                      block_map: Dict[int, int],
                      set_maps: Dict[EntityKind, Dict[int, int]]) -> None:
    """Add the mirrored ids to assemblies and copy entity attributes."""
    id_maps = dict(set_maps)
    id_maps[EntityKind.ELEM_BLOCK] = block_map

    result.assemblies = []
    for assembly in snap.assemblies:
        ids = list(assembly.entity_ids)
        id_map = id_maps.get(assembly.entity_kind)
        if id_map is not None:
            ids.extend(id_map[i] for i in assembly.entity_ids if i in id_map)
        result.assemblies.append(Assembly(assembly.id, assembly.name,
                                          assembly.entity_kind, ids))

    for (kind, entity_id), attributes in snap.attributes.items():
        id_map = id_maps.get(kind)
        if id_map is not None and entity_id in id_map:
            result.attributes[(kind, id_map[entity_id])] = [
                copy.deepcopy(a) for a in attributes]


def _report_unmirrored(snap: MeshSnapshot) -> None:
    for kind in EXTRA_BLOCK_KINDS:
        if snap.extra_blocks[kind]:
            logger.warning("%d %s(s) copied unchanged; they are not mirrored",
                           len(snap.extra_blocks[kind]), kind)
    for kind in (EntityKind.EDGE_SET, EntityKind.FACE_SET):
        if snap.sets[kind]:
            logger.warning("%d %s(s) copied unchanged; they are not mirrored",
                           len(snap.sets[kind]), kind)
    for kind in snap.extra_id_maps:
        logger.warning("%s copied unchanged", kind)


def _extend_id_map(id_map: Optional[np.ndarray], count: int) -> Optional[np.ndarray]:
    if id_map is None:
        return None
    start = int(np.max(id_map)) + 1 if len(id_map) else 1
    return np.concatenate([id_map, np.arange(start, start + count, dtype=id_map.dtype)])


def copy_mirror_merge(snapshot: MeshSnapshot, axis: str,
                      tolerance: float = DEFAULT_TOLERANCE,
                      vector_fields: Optional[Sequence[str]] = None) -> MeshSnapshot:
    """
    Reflect a half-symmetry mesh and merge it with its mirror image.

    Parameters
    ----------
    snapshot : MeshSnapshot
        The half model; it is not modified.
    axis : str
        Normal of the symmetry plane, 'x', 'y' or 'z'. The plane is at 0.
    tolerance : float
        Nodes with ``|coord[axis]| <= tolerance`` are on the plane and are
        shared by both halves.
    vector_fields : sequence of str, optional
        Extra variable names (components or vector roots) whose ``axis``
        component is negated.

    Returns
    -------
    merged : MeshSnapshot
        ``2K - P`` nodes for K original and P plane nodes, twice the
        elements, and a mirrored companion for every element block and every
        node, side and element set. Assemblies, entity attributes and the
        element order map cover the mirrored entities; edge and face
        blocks and sets are copied unchanged with a warning.

    Raises
    ------
    InvalidTopology
        If a block has an element type that cannot be mirrored.
    """
    index = axis_index(axis)
    if index >= snapshot.num_dim:
        raise ValueError(
            f"Cannot mirror a {snapshot.num_dim}-D mesh about the {axis} axis")
    for data in snapshot.blocks:
        # fail before any work for higher-order or unknown kinds
        mirror_permutation(data.block.topology, axis)

    num_nodes = snapshot.num_nodes
    plane_nodes = find_symmetry_plane_nodes(snapshot.coords, axis, tolerance)
    if len(plane_nodes) == 0:
        logger.warning(
            "No nodes found on the symmetry plane (axis=%s, tolerance=%g); "
            "the two halves will not share nodes. Consider a larger tolerance.",
            axis, tolerance)
    logger.info("Found %d nodes on the symmetry plane", len(plane_nodes))

    mapping = build_node_mapping(num_nodes, plane_nodes)
    result = snapshot.copy()

    off_plane = np.ones(num_nodes, dtype=bool)
    off_plane[plane_nodes] = False
    image = snapshot.coords[off_plane].copy()
    image[:, index] = -image[:, index]
    result.coords = np.vstack([snapshot.coords, image])

    mirrored_blocks = _mirror_blocks(snapshot, axis, mapping)
    block_map = {b.id: m.id for b, m in zip(snapshot.blocks, mirrored_blocks)}
    result.blocks.extend(mirrored_blocks)

    topologies = _element_topologies(snapshot)
    set_maps = {}
    for kind in MIRRORED_SET_KINDS:
        mirrored = _mirror_sets(snapshot, kind, axis, mapping, topologies)
        set_maps[kind] = {s.id: m.id for s, m in zip(snapshot.sets[kind], mirrored)}
        result.sets[kind].extend(mirrored)

    _mirror_values(snapshot, result, axis, plane_nodes, block_map, set_maps,
                   vector_fields)
    _mirror_groupings(snapshot, result, block_map, set_maps)
    _report_unmirrored(snapshot)

    num_mirrored = int(off_plane.sum())
    result.node_id_map = _extend_id_map(snapshot.node_id_map, num_mirrored)
    result.elem_id_map = _extend_id_map(snapshot.elem_id_map, snapshot.num_elems)
    if snapshot.order_map is not None:
        # mirrored elements keep the relative order of their originals
        order = np.asarray(snapshot.order_map, dtype=np.int64)
        result.order_map = np.concatenate([order, order + snapshot.num_elems])

    now = datetime.datetime.now()
    result.qa_records.append(QARecord(
        CODE_NAME, CODE_VERSION, now.strftime("%Y/%m/%d"), now.strftime("%H:%M:%S")))

    logger.info(
        "Merged mesh: %d nodes (%d original + %d mirrored), %d elements in "
        "%d blocks", result.num_nodes, num_nodes, num_mirrored,
        result.num_elems, len(result.blocks))
    return result


def apply_copy_mirror_merge(input_path, output_path, axis: str,
                            tolerance: float = DEFAULT_TOLERANCE,
                            vector_fields: Optional[Sequence[str]] = None,
                            performance: Optional[PerformanceConfig] = None,
                            clobber: bool = False) -> MeshSnapshot:
    """Load ``input_path``, mirror it and write the merged mesh to ``output_path``."""
    snapshot = MeshSnapshot.from_file(input_path)
    merged = copy_mirror_merge(snapshot, axis, tolerance, vector_fields)
    merged.write(output_path, clobber=clobber, performance=performance)
    return merged
