"""
Write a small half-symmetry HEX8 bar to try the mesh tools on.

The bar spans x in [0, length], y and z in [0, 1], with its symmetry plane
at x = 0. It carries three nodesets (x = 0, x = length, z = 1) and a
sideset on the x = length faces. Fields over a few time steps: a global
energy, nodal temperature and velocity components, an element stress and
a sideset flux.

Usage:
    python write_test_mesh.py data/half_bar.e --nx 4 --ny 2 --nz 2
"""

import argparse
import sys
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from exodus_database import ExodusWriter
from exodus_entities import Block, EntitySet, QARecord
from exodus_schema import EntityKind


def hex_bar(nx: int, ny: int, nz: int, length: float = 2.0):
    """
    Structured HEX8 grid on [0, length] x [0, 1] x [0, 1].

    Returns
    -------
    coords : ndarray, shape (n_nodes, 3)
    conn : ndarray, shape (nx*ny*nz, 8)
        1-based node ids in standard HEX8 order.
    """
    xs = np.linspace(0.0, length, nx + 1)
    ys = np.linspace(0.0, 1.0, ny + 1)
    zs = np.linspace(0.0, 1.0, nz + 1)
    # x varies fastest
    Z, Y, X = np.meshgrid(zs, ys, xs, indexing='ij')
    coords = np.column_stack([X.ravel(), Y.ravel(), Z.ravel()])

    def node(i, j, k):
        return 1 + i + (nx + 1) * (j + (ny + 1) * k)

    conn = []
    for k in range(nz):
        for j in range(ny):
            for i in range(nx):
                conn.append([
                    node(i, j, k), node(i + 1, j, k),
                    node(i + 1, j + 1, k), node(i, j + 1, k),
                    node(i, j, k + 1), node(i + 1, j, k + 1),
                    node(i + 1, j + 1, k + 1), node(i, j + 1, k + 1),
                ])
    return coords, np.array(conn, dtype=np.int64)


def write_half_bar(path, nx: int = 4, ny: int = 2, nz: int = 2,
                   length: float = 2.0, num_steps: int = 3,
                   clobber: bool = False) -> None:
    coords, conn = hex_bar(nx, ny, nz, length)
    n_nodes = coords.shape[0]
    n_elems = conn.shape[0]
    tol = 1e-9

    nodesets = {
        1: ("symmetry", np.flatnonzero(np.abs(coords[:, 0]) < tol) + 1),
        2: ("end", np.flatnonzero(np.abs(coords[:, 0] - length) < tol) + 1),
        3: ("top", np.flatnonzero(np.abs(coords[:, 2] - 1.0) < tol) + 1),
    }
    # +x faces of the last element column: side 2 of HEX8
    end_elems = np.arange(nx - 1, n_elems, nx) + 1
    end_sides = np.full(len(end_elems), 2)

    with ExodusWriter(path, clobber=clobber) as db:
        db.initialize("Half-symmetry HEX8 bar", 3, n_nodes)
        db.put_coord_names(["x", "y", "z"])
        db.declare_block(EntityKind.ELEM_BLOCK,
                         Block(1, "HEX8", n_elems, 8, name="bar"))
        for set_id, (name, nodes) in nodesets.items():
            db.declare_set(EntityKind.NODE_SET,
                           EntitySet(set_id, len(nodes), len(nodes), name))
        db.declare_set(EntityKind.SIDE_SET,
                       EntitySet(1, len(end_elems), name="end_faces"))
        db.define_variables(EntityKind.GLOBAL, ["energy"])
        db.define_variables(EntityKind.NODAL, ["temperature", "velocity_x",
                                               "velocity_y", "velocity_z"])
        db.define_variables(EntityKind.ELEM_BLOCK, ["stress"])
        db.define_variables(EntityKind.SIDE_SET, ["flux"])
        db.put_qa_records([QARecord("write_test_mesh", "1.0",
                                    "2026/01/01", "00:00:00")])
        db.put_info_records([f"{nx} x {ny} x {nz} elements, length {length}"])
        db.commit()

        db.put_coords(coords)
        db.put_connectivity(1, conn)
        for set_id, (name, nodes) in nodesets.items():
            db.put_set(EntityKind.NODE_SET, set_id, nodes,
                       dist_factors=np.ones(len(nodes)))
        db.put_set(EntityKind.SIDE_SET, 1, end_elems, sides=end_sides)

        centroids = coords[conn - 1].mean(axis=1)
        for step in range(1, num_steps + 1):
            t = 0.5 * step
            db.put_time(step, t)
            db.put_variable(step, EntityKind.GLOBAL, 0, 0, [t * t])
            db.put_variable(step, EntityKind.NODAL, 0, 0, 300.0 + t * coords[:, 0])
            db.put_variable(step, EntityKind.NODAL, 0, 1, t * coords[:, 0])
            db.put_variable(step, EntityKind.NODAL, 0, 2, t * coords[:, 1])
            db.put_variable(step, EntityKind.NODAL, 0, 3, np.zeros(n_nodes))
            db.put_variable(step, EntityKind.ELEM_BLOCK, 1, 0,
                            t * centroids[:, 0])
            db.put_variable(step, EntityKind.SIDE_SET, 1, 0,
                            np.full(len(end_elems), -t))

    print(f"Wrote {path}: {n_nodes} nodes, {n_elems} HEX8 elements, "
          f"{num_steps} time steps")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Write a half-symmetry HEX8 bar ExodusII file'
    )
    parser.add_argument('output', help='Output ExodusII file')
    parser.add_argument('--nx', type=int, default=4)
    parser.add_argument('--ny', type=int, default=2)
    parser.add_argument('--nz', type=int, default=2)
    parser.add_argument('--length', type=float, default=2.0)
    parser.add_argument('--steps', type=int, default=3)
    parser.add_argument('--clobber', action='store_true',
                        help='Overwrite an existing output file')

    args = parser.parse_args()
    Path(args.output).parent.mkdir(parents=True, exist_ok=True)
    write_half_bar(args.output, args.nx, args.ny, args.nz, args.length,
                   args.steps, args.clobber)
    return 0


if __name__ == '__main__':
    exit(main())
