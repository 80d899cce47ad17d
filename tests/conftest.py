"""
Shared meshes for the test suite, written on the fly with ExodusWriter.

- unit_cube: one HEX8 on [0, 1]^3, nodeset 10 = top face (nodes 5-8),
  nodeset 20 = empty, one nodal variable over two steps.
- half_bar: 2 x 1 x 1 HEX8 bar on x in [0, 2] with its symmetry plane at
  x = 0 (see write_test_mesh.write_half_bar).
"""

import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from exodus_database import ExodusWriter
from exodus_entities import Block, EntitySet
from exodus_schema import EntityKind
from write_test_mesh import write_half_bar


UNIT_CUBE_COORDS = np.array([
    [0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 1.0, 0.0], [0.0, 1.0, 0.0],
    [0.0, 0.0, 1.0], [1.0, 0.0, 1.0], [1.0, 1.0, 1.0], [0.0, 1.0, 1.0],
])


def write_unit_cube(path):
    with ExodusWriter(path) as db:
        db.initialize("unit cube", 3, 8)
        db.declare_block(EntityKind.ELEM_BLOCK, Block(1, "HEX8", 1, 8, name="cube"))
        db.declare_set(EntityKind.NODE_SET, EntitySet(10, 4, 4, name="top"))
        db.declare_set(EntityKind.NODE_SET, EntitySet(20, 0, name="empty"))
        db.define_variables(EntityKind.NODAL, ["temperature"])
        db.commit()

        db.put_coords(UNIT_CUBE_COORDS)
        db.put_connectivity(1, np.arange(1, 9))
        db.put_set(EntityKind.NODE_SET, 10, [5, 6, 7, 8],
                   dist_factors=[1.0, 2.0, 3.0, 4.0])
        db.put_set(EntityKind.NODE_SET, 20, [])
        for step in (1, 2):
            db.put_time(step, 0.1 * step)
            db.put_variable(step, EntityKind.NODAL, 0, 0,
                            step * UNIT_CUBE_COORDS[:, 2])
    return path


@pytest.fixture
def unit_cube(tmp_path):
    return write_unit_cube(tmp_path / "cube.e")


@pytest.fixture
def half_bar(tmp_path):
    path = tmp_path / "half_bar.e"
    write_half_bar(path, nx=2, ny=1, nz=1, length=2.0, num_steps=3)
    return path
