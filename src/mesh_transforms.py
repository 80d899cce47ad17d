"""
In-place mesh transformations.

Each operation takes either an open ExodusAppender (the file is updated in
place) or a MeshSnapshot (the snapshot is updated in memory).
"""

import logging
from typing import List, Sequence, Tuple

import numpy as np
from scipy.spatial.transform import Rotation

from copy_mirror_merge import axis_index, mirror_side_map
from element_topology import mirror_permutation
from exodus_errors import EntityNotFound
from exodus_schema import EntityKind
from mesh_snapshot import VARIABLE_KINDS, MeshSnapshot


logger = logging.getLogger(__name__)

Operation = Tuple[str, tuple]


def _is_snapshot(mesh) -> bool:
    return isinstance(mesh, MeshSnapshot)


def _get_coords(mesh) -> np.ndarray:
    if _is_snapshot(mesh):
        return mesh.coords.copy()
    return mesh.get_coords()


def _put_coords(mesh, coords: np.ndarray) -> None:
    if _is_snapshot(mesh):
        mesh.coords = np.asarray(coords, dtype=np.float64)
    else:
        mesh.put_coords(coords[:, :mesh.num_dim])


def translate(mesh, offset: Sequence[float]) -> None:
    """Add ``offset`` (one value per axis, up to 3) to every node."""
    shift = np.zeros(3)
    shift[:len(offset)] = offset
    logger.info("Translating by %s", shift.tolist())
    _put_coords(mesh, _get_coords(mesh) + shift)


def rotation_matrix(sequence: str, angles: Sequence[float],
                    degrees: bool = True) -> np.ndarray:
    """
    3x3 rotation matrix from Euler angles.

    Parameters
    ----------
    sequence : str
        One to three axes. Uppercase letters ('XYZ') give rotations about
        the fixed (extrinsic) axes, lowercase ('xyz') about the rotating
        (intrinsic) axes. Cases cannot be mixed.
    angles : sequence of float
        One angle per axis in ``sequence``.
    degrees : bool
        Whether the angles are in degrees.
    """
    if not 1 <= len(sequence) <= 3 or not (sequence.isupper() or sequence.islower()):
        raise ValueError(
            f"Rotation sequence must be 1-3 axes of a single case, got {sequence!r}")
    if len(angles) != len(sequence):
        raise ValueError(
            f"Rotation sequence '{sequence}' needs {len(sequence)} angles, "
            f"got {len(angles)}")
    # scipy reads uppercase as intrinsic
    return Rotation.from_euler(sequence.swapcase(), angles,
                               degrees=degrees).as_matrix()


def rotate(mesh, sequence: str, angles: Sequence[float],
           degrees: bool = True) -> None:
    """Rotate all node coordinates about the origin."""
    matrix = rotation_matrix(sequence, angles, degrees)
    kind = "extrinsic" if sequence.isupper() else "intrinsic"
    logger.info("Rotating %s '%s' by %s", kind, sequence, list(angles))
    _put_coords(mesh, _get_coords(mesh) @ matrix.T)


def scale_uniform(mesh, factor: float) -> None:
    logger.info("Scaling coordinates by factor %g", factor)
    _put_coords(mesh, _get_coords(mesh) * factor)


def scale(mesh, factors: Sequence[float]) -> None:
    """Scale each axis by its own factor; missing trailing factors are 1."""
    per_axis = np.ones(3)
    per_axis[:len(factors)] = factors
    logger.info("Scaling coordinates by factors %s", per_axis.tolist())
    _put_coords(mesh, _get_coords(mesh) * per_axis)


def _blocks(mesh) -> List[Tuple[int, str, np.ndarray]]:
    if _is_snapshot(mesh):
        return [(b.id, b.block.topology, b.connectivity) for b in mesh.blocks]
    result = []
    for block_id in mesh.get_ids(EntityKind.ELEM_BLOCK):
        block = mesh.get_block(EntityKind.ELEM_BLOCK, block_id)
        result.append((block_id, block.topology, mesh.get_connectivity(block_id)))
    return result


def mirror(mesh, axis: str) -> None:
    """
    Reflect the mesh about the plane ``axis = 0``.

    Connectivity is reordered so elements keep their outward winding, and
    side set side numbers follow the reordering.
    """
    index = axis_index(axis)
    blocks = _blocks(mesh)
    for _, topology, _ in blocks:
        mirror_permutation(topology, axis)

    logger.info("Mirroring about the %s axis", axis)
    coords = _get_coords(mesh)
    coords[:, index] = -coords[:, index]
    _put_coords(mesh, coords)

    topologies = []
    for position, (block_id, topology, conn) in enumerate(blocks):
        perm = list(mirror_permutation(topology, axis))
        permuted = np.asarray(conn)[:, perm]
        if _is_snapshot(mesh):
            mesh.blocks[position].connectivity = permuted
        elif permuted.size:
            mesh.put_connectivity(block_id, permuted)
        topologies.extend([topology] * len(conn))

    side_maps = {}
    set_ids = (mesh.set_ids(EntityKind.SIDE_SET) if _is_snapshot(mesh)
               else mesh.get_ids(EntityKind.SIDE_SET))
    for position, set_id in enumerate(set_ids):
        sideset = (mesh.sets[EntityKind.SIDE_SET][position] if _is_snapshot(mesh)
                   else mesh.get_set(EntityKind.SIDE_SET, set_id))
        if sideset.sides is None or len(sideset) == 0:
            continue
        sides = np.empty(len(sideset), dtype=np.int64)
        for i, (elem, side) in enumerate(zip(sideset.entries, sideset.sides)):
            topology = topologies[int(elem) - 1]
            if topology not in side_maps:
                side_maps[topology] = mirror_side_map(topology, axis)
            sides[i] = side_maps[topology][int(side)]
        if _is_snapshot(mesh):
            sideset.sides = sides
        else:
            mesh.put_set(EntityKind.SIDE_SET, set_id, sideset.entries,
                         sideset.dist_factors, sides)


def scale_field(mesh, name: str, factor: float) -> int:
    """
    Multiply every value of the variable ``name`` by ``factor``.

    All entity kinds defining a variable of that name are scaled at every
    time step.

    Returns
    -------
    count : int
        Number of entity kinds that define the variable.

    Raises
    ------
    EntityNotFound
        If no entity kind defines the variable.
    """
    count = 0
    for kind in VARIABLE_KINDS:
        if _is_snapshot(mesh):
            names = mesh.variable_names[kind]
            if name not in names:
                continue
            var = names.index(name)
            for key, series in list(mesh.values[kind].items()):
                if key[1] == var:
                    mesh.values[kind][key] = series * factor
        else:
            names = mesh.get_variable_names(kind)
            if name not in names:
                continue
            var = names.index(name)
            _scale_stored_field(mesh, kind, var, factor)
        logger.info("Scaled %s variable '%s' by %g", kind, name, factor)
        count += 1
    if count == 0:
        raise EntityNotFound("variable", name)
    return count


def _scale_stored_field(db, kind: EntityKind, var: int, factor: float) -> None:
    if kind in (EntityKind.GLOBAL, EntityKind.NODAL):
        containers = [0]
    else:
        table = db.get_truth_table(kind)
        containers = [cid for pos, cid in enumerate(db.get_ids(kind))
                      if table[pos, var]]
    for cid in containers:
        for step in range(1, db.num_time_steps() + 1):
            values = db.get_variable(step, kind, cid, var)
            db.put_variable(step, kind, cid, var, values * factor)


def zero_time(mesh) -> None:
    """Shift all time values so the first step is at t = 0."""
    times = np.asarray(mesh.times if _is_snapshot(mesh) else mesh.get_times(),
                       dtype=np.float64)
    if len(times) == 0:
        logger.info("No time steps to normalize")
        return
    logger.info("Normalizing time: subtracting %g from %d time steps",
                times[0], len(times))
    shifted = times - times[0]
    if _is_snapshot(mesh):
        mesh.times = shifted
    else:
        for step, value in enumerate(shifted, 1):
            mesh.put_time(step, value)


OPERATIONS = {
    "translate": translate,
    "rotate": rotate,
    "scale_uniform": scale_uniform,
    "scale": scale,
    "mirror": mirror,
    "scale_field": scale_field,
    "zero_time": zero_time,
}


def apply_operations(mesh, operations: Sequence[Operation]) -> None:
    """Apply ``(name, args)`` operations to ``mesh`` in list order."""
    for name, args in operations:
        if name not in OPERATIONS:
            raise ValueError(
                f"Unknown operation '{name}'. Available: {sorted(OPERATIONS)}")
        OPERATIONS[name](mesh, *args)
