"""
Derive a side set from a node set.

A side is selected when every node of an element face belongs to the node
set, the face lies on the mesh boundary (it belongs to exactly one element)
and its normal points away from the mesh center of mass.
"""

import logging
from bisect import bisect_right
from collections import Counter
from typing import Optional, Tuple

import numpy as np

from element_topology import faces, side_nodes, topology_dimension
from exodus_entities import EntitySet, SideSetData
from exodus_schema import EntityKind
from mesh_geometry import (
    average_normals, center_of_mass, edge_normal, face_center,
    face_centroid_and_area, face_normal, is_outward, normals_consistent,
)


logger = logging.getLogger(__name__)

CONSISTENCY_THRESHOLD = -0.5


def build_face_registry(db) -> Counter:
    """
    Count how many elements use each face.

    Faces are keyed by their sorted node ids, so a face shared by two
    elements is counted twice whatever its winding in each element.
    """
    registry = Counter()
    for block_id in db.get_ids(EntityKind.ELEM_BLOCK):
        block = db.get_block(EntityKind.ELEM_BLOCK, block_id)
        face_defs = faces(block.topology)
        if not face_defs or block.num_entries == 0:
            continue
        conn = db.get_connectivity(block_id)
        for face in face_defs:
            face_nodes = np.sort(conn[:, list(face.node_indices)], axis=1)
            registry.update(map(tuple, face_nodes.tolist()))
    return registry


def is_boundary_face(face_nodes, registry: Counter) -> bool:
    return registry.get(tuple(sorted(face_nodes)), 0) == 1


def convert_nodeset_to_sideset(db, nodeset_id: int,
                               new_sideset_id: int) -> SideSetData:
    """
    Select the boundary faces whose nodes all belong to a node set.

    Parameters
    ----------
    db : ExodusReader or ExodusAppender
        Open database in the data phase.
    nodeset_id : int
        Source node set id.
    new_sideset_id : int
        Id given to the derived side set.

    Returns
    -------
    sideset : SideSetData
        (element, side) pairs in block, element and side order. Element ids
        are 1-based positions across all element blocks. An empty node set
        or no matching faces gives an empty result with a logged warning.
    """
    nodeset = db.get_set(EntityKind.NODE_SET, nodeset_id)
    members = set(int(n) for n in nodeset.entries)
    result = SideSetData(id=new_sideset_id)

    if not members:
        logger.warning("Nodeset %d is empty, cannot create sideset", nodeset_id)
        return result

    registry = build_face_registry(db)
    coords = db.get_coords()
    mesh_center = center_of_mass(coords)
    accepted_normals = []

    elem_offset = 0
    for block_id in db.get_ids(EntityKind.ELEM_BLOCK):
        block = db.get_block(EntityKind.ELEM_BLOCK, block_id)
        face_defs = faces(block.topology)
        if not face_defs:
            logger.info("Skipping element block %d: no face definitions "
                        "for element type '%s'", block_id, block.topology)
        if not face_defs or block.num_entries == 0:
            elem_offset += block.num_entries
            continue
        surface = topology_dimension(block.topology) == 2
        conn = db.get_connectivity(block_id)

        for local_index, elem_nodes in enumerate(conn):
            elem_id = elem_offset + local_index + 1
            for face in face_defs:
                face_nodes = [int(elem_nodes[i]) for i in face.node_indices]
                if not all(n in members for n in face_nodes):
                    continue
                if not is_boundary_face(face_nodes, registry):
                    continue

                points = coords[np.asarray(face_nodes) - 1]
                normal = edge_normal(points) if surface else face_normal(points)
                center = face_center(points)

                if not is_outward(center, normal, mesh_center):
                    logger.warning(
                        "Face on element %d side %d has inward-pointing "
                        "normal, skipping", elem_id, face.side_number)
                    continue

                if accepted_normals and not normals_consistent(
                        normal, average_normals(accepted_normals),
                        CONSISTENCY_THRESHOLD):
                    # kept: inconsistent orientation is reported, not rejected
                    logger.warning(
                        "Face on element %d side %d has inconsistent normal "
                        "direction (dot product with average <= %.1f)",
                        elem_id, face.side_number, CONSISTENCY_THRESHOLD)

                result.elements.append(elem_id)
                result.sides.append(face.side_number)
                accepted_normals.append(normal)
        elem_offset += block.num_entries

    if not result.elements:
        logger.warning(
            "No boundary faces found for nodeset %d. Possible reasons: "
            "the nodeset does not contain complete element faces, it holds "
            "interior nodes only, or the element topology is not supported.",
            nodeset_id)
    else:
        logger.info("Created sideset %d from nodeset %d with %d boundary faces",
                    new_sideset_id, nodeset_id, len(result))
    return result


def sideset_face_geometry(db, sideset_id: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Centroid and area of every side of a side set.

    Parameters
    ----------
    db : ExodusReader or ExodusAppender
        Open database in the data phase.
    sideset_id : int
        Side set whose (element, side) pairs are measured.

    Returns
    -------
    centroids : ndarray, shape (num_sides, 3)
        Area-weighted side centroids, in side set order.
    areas : ndarray, shape (num_sides,)
        Face areas; edge lengths for sides of 2-D elements.
    """
    sideset = db.get_set(EntityKind.SIDE_SET, sideset_id)
    coords = db.get_coords()

    # (first global element id, topology, connectivity) of non-empty blocks
    blocks = []
    next_elem = 1
    for block_id in db.get_ids(EntityKind.ELEM_BLOCK):
        block = db.get_block(EntityKind.ELEM_BLOCK, block_id)
        if block.num_entries:
            blocks.append((next_elem, block.topology,
                           db.get_connectivity(block_id)))
        next_elem += block.num_entries
    starts = [b[0] for b in blocks]

    num_sides = len(sideset.entries)
    centroids = np.zeros((num_sides, 3))
    areas = np.zeros(num_sides)
    for i, (elem, side) in enumerate(zip(sideset.entries, sideset.sides)):
        elem = int(elem)
        if not 1 <= elem < next_elem:
            raise ValueError(f"Side set {sideset_id} names element {elem}, "
                             f"mesh has {next_elem - 1} elements")
        start, topology, conn = blocks[bisect_right(starts, elem) - 1]
        local = list(side_nodes(topology, int(side)))
        nodes = conn[elem - start, local]
        centroids[i], areas[i] = face_centroid_and_area(coords[nodes - 1])
    return centroids, areas


def create_sideset_from_nodeset(appender, nodeset_id: int,
                                new_sideset_id: Optional[int] = None,
                                name: Optional[str] = None) -> SideSetData:
    """
    Derive a side set and add it to an open Append handle.

    Parameters
    ----------
    appender : ExodusAppender
        Handle in the data phase; it is returned to the data phase.
    nodeset_id : int
        Source node set id.
    new_sideset_id : int, optional
        Id of the new side set. Default is one more than the largest
        existing side set id.
    name : str, optional
        Name of the new side set.

    Returns
    -------
    sideset : SideSetData
        The pairs written to the file.
    """
    if new_sideset_id is None:
        existing = appender.get_ids(EntityKind.SIDE_SET)
        new_sideset_id = max(existing, default=0) + 1

    sideset = convert_nodeset_to_sideset(appender, nodeset_id, new_sideset_id)

    appender.reenter_definition()
    appender.declare_set(
        EntityKind.SIDE_SET,
        EntitySet(id=new_sideset_id, num_entries=len(sideset), name=name or ""),
    )
    appender.commit()
    appender.put_set(EntityKind.SIDE_SET, new_sideset_id,
                     sideset.elements, sides=sideset.sides)
    return sideset
