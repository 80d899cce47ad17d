"""
In-memory copy of a whole mesh database.

Batch operations that renumber nodes or elements need global knowledge of
the mesh, so they load everything into a MeshSnapshot, transform it, and
write the result in a single pass.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from exodus_container import PerformanceConfig
from exodus_database import ExodusReader, ExodusWriter
from exodus_entities import (
    Assembly, Attribute, Blob, Block, EntitySet, QARecord, SetData,
)
from exodus_schema import EntityKind


logger = logging.getLogger(__name__)

# element blocks live in MeshSnapshot.blocks, the others in extra_blocks
EXTRA_BLOCK_KINDS = (EntityKind.EDGE_BLOCK, EntityKind.FACE_BLOCK)

SET_KINDS = (
    EntityKind.NODE_SET, EntityKind.SIDE_SET, EntityKind.ELEM_SET,
    EntityKind.EDGE_SET, EntityKind.FACE_SET,
)

VARIABLE_KINDS = (
    EntityKind.GLOBAL, EntityKind.NODAL, EntityKind.ELEM_BLOCK,
    EntityKind.EDGE_BLOCK, EntityKind.FACE_BLOCK,
    EntityKind.NODE_SET, EntityKind.SIDE_SET, EntityKind.ELEM_SET,
)

EXTRA_MAP_KINDS = (EntityKind.EDGE_MAP, EntityKind.FACE_MAP)

# key of the values dict: (container id, 0-based variable index);
# global and nodal variables use container id 0
ValueKey = Tuple[int, int]


@dataclass
class BlockData:
    """One element, edge or face block with its connectivity and attributes."""
    block: Block
    connectivity: np.ndarray
    attributes: Optional[np.ndarray] = None
    attribute_names: List[str] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.block.id


@dataclass
class MeshSnapshot:
    """
    Coordinates, blocks, sets, maps, groupings, provenance and every
    variable time series of one mesh.

    ``values[kind][(container_id, var_index)]`` has shape
    (num_steps, num_entries); pairs absent from the truth table have no
    entry. ``attributes[(kind, entity_id)]`` holds the named user
    attributes of one block or set.
    """
    title: str = ""
    num_dim: int = 3
    coords: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))
    coord_names: List[str] = field(default_factory=list)
    blocks: List[BlockData] = field(default_factory=list)
    extra_blocks: Dict[EntityKind, List[BlockData]] = field(
        default_factory=lambda: {k: [] for k in EXTRA_BLOCK_KINDS})
    sets: Dict[EntityKind, List[SetData]] = field(
        default_factory=lambda: {k: [] for k in SET_KINDS})
    node_id_map: Optional[np.ndarray] = None
    elem_id_map: Optional[np.ndarray] = None
    extra_id_maps: Dict[EntityKind, np.ndarray] = field(default_factory=dict)
    order_map: Optional[np.ndarray] = None
    assemblies: List[Assembly] = field(default_factory=list)
    blobs: List[Blob] = field(default_factory=list)
    attributes: Dict[Tuple[EntityKind, int], List[Attribute]] = field(
        default_factory=dict)
    qa_records: List[QARecord] = field(default_factory=list)
    info_records: List[str] = field(default_factory=list)
    times: np.ndarray = field(default_factory=lambda: np.zeros(0))
    variable_names: Dict[EntityKind, List[str]] = field(
        default_factory=lambda: {k: [] for k in VARIABLE_KINDS})
    truth_tables: Dict[EntityKind, np.ndarray] = field(default_factory=dict)
    values: Dict[EntityKind, Dict[ValueKey, np.ndarray]] = field(
        default_factory=lambda: {k: {} for k in VARIABLE_KINDS})

    @property
    def num_nodes(self) -> int:
        return len(self.coords)

    @property
    def num_elems(self) -> int:
        return sum(b.block.num_entries for b in self.blocks)

    @property
    def num_time_steps(self) -> int:
        return len(self.times)

    def block_ids(self) -> List[int]:
        return [b.id for b in self.blocks]

    def set_ids(self, kind: EntityKind) -> List[int]:
        return [s.id for s in self.sets[kind]]

    def container_ids(self, kind: EntityKind) -> List[int]:
        if kind is EntityKind.ELEM_BLOCK:
            return self.block_ids()
        if kind in EXTRA_BLOCK_KINDS:
            return [b.id for b in self.extra_blocks[kind]]
        return self.set_ids(kind)

    def all_blocks(self):
        """Yield (kind, BlockData): element blocks, then edge and face blocks."""
        for data in self.blocks:
            yield EntityKind.ELEM_BLOCK, data
        for kind in EXTRA_BLOCK_KINDS:
            for data in self.extra_blocks[kind]:
                yield kind, data

    def copy(self) -> "MeshSnapshot":
        return copy.deepcopy(self)

    # ---- Loading ----

    @classmethod
    def from_file(cls, path) -> "MeshSnapshot":
        with ExodusReader(path) as db:
            return cls.load(db)

    @staticmethod
    def _load_block(db, kind: EntityKind, block_id: int) -> BlockData:
        block = db.get_block(kind, block_id)
        data = BlockData(block, db.get_connectivity(block_id, kind=kind))
        if block.num_attributes:
            data.attributes, data.attribute_names = \
                db.get_block_attributes(block_id, kind=kind)
        return data

    @classmethod
    def load(cls, db) -> "MeshSnapshot":
        """Read everything from an open Read or Append handle."""
        snap = cls(
            title=db.title,
            num_dim=db.num_dim,
            coords=db.get_coords(),
            coord_names=db.get_coord_names(),
            qa_records=db.get_qa_records(),
            info_records=db.get_info_records(),
            times=np.array(db.get_times(), dtype=np.float64),
        )
        for block_id in db.get_ids(EntityKind.ELEM_BLOCK):
            snap.blocks.append(cls._load_block(db, EntityKind.ELEM_BLOCK, block_id))
        for kind in EXTRA_BLOCK_KINDS:
            snap.extra_blocks[kind] = [cls._load_block(db, kind, block_id)
                                       for block_id in db.get_ids(kind)]

        for kind in SET_KINDS:
            snap.sets[kind] = [db.get_set(kind, sid) for sid in db.get_ids(kind)]

        for kind in (EntityKind.ELEM_BLOCK,) + EXTRA_BLOCK_KINDS + SET_KINDS:
            for entity_id in db.get_ids(kind):
                attributes = db.get_attributes(kind, entity_id)
                if attributes:
                    snap.attributes[(kind, entity_id)] = attributes

        if db.has_id_map(EntityKind.NODE_MAP):
            snap.node_id_map = db.get_id_map(EntityKind.NODE_MAP)
        if db.has_id_map(EntityKind.ELEM_MAP):
            snap.elem_id_map = db.get_id_map(EntityKind.ELEM_MAP)
        for kind in EXTRA_MAP_KINDS:
            if db.has_id_map(kind):
                snap.extra_id_maps[kind] = db.get_id_map(kind)
        if db.has_order_map():
            snap.order_map = db.get_order_map()

        snap.assemblies = [db.get_assembly(i) for i in db.get_assembly_ids()]
        snap.blobs = [db.get_blob(i) for i in db.get_blob_ids()]

        for kind in VARIABLE_KINDS:
            names = db.get_variable_names(kind)
            snap.variable_names[kind] = names
            if not names:
                continue
            if kind in (EntityKind.GLOBAL, EntityKind.NODAL):
                for var in range(len(names)):
                    snap.values[kind][(0, var)] = db.get_variable_series(kind, 0, var)
                continue
            table = db.get_truth_table(kind)
            snap.truth_tables[kind] = table
            for pos, cid in enumerate(db.get_ids(kind)):
                for var in range(len(names)):
                    if table[pos, var]:
                        snap.values[kind][(cid, var)] = \
                            db.get_variable_series(kind, cid, var)

        logger.info("Loaded snapshot: %d nodes, %d elements, %d time steps",
                    snap.num_nodes, snap.num_elems, snap.num_time_steps)
        return snap

    # ---- Writing ----

    def write(self, path, clobber: bool = False,
              performance: Optional[PerformanceConfig] = None) -> None:
        """Write the snapshot to a new file in one definition/data pass."""
        with ExodusWriter(path, clobber=clobber, performance=performance) as db:
            db.initialize(self.title, self.num_dim, self.num_nodes)
            if self.coord_names:
                db.put_coord_names(self.coord_names)
            for kind, data in self.all_blocks():
                db.declare_block(kind, data.block)
            for kind in SET_KINDS:
                for s in self.sets[kind]:
                    num_df = 0 if s.dist_factors is None else len(s.dist_factors)
                    db.declare_set(kind, EntitySet(s.id, len(s.entries),
                                                   num_df, s.name))
            if self.node_id_map is not None:
                db.declare_map(EntityKind.NODE_MAP)
            if self.elem_id_map is not None:
                db.declare_map(EntityKind.ELEM_MAP)
            for kind in self.extra_id_maps:
                db.declare_map(kind)
            if self.order_map is not None:
                db.declare_order_map()
            for assembly in self.assemblies:
                db.declare_assembly(assembly)
            for blob in self.blobs:
                db.declare_blob(blob)
            for kind in VARIABLE_KINDS:
                if self.variable_names[kind]:
                    db.define_variables(kind, self.variable_names[kind])
                    if kind in self.truth_tables:
                        db.set_truth_table(kind, self.truth_tables[kind])
            if self.qa_records:
                db.put_qa_records(self.qa_records)
            if self.info_records:
                db.put_info_records(self.info_records)
            db.commit()

            db.put_coords(self.coords[:, :self.num_dim])
            for kind, data in self.all_blocks():
                db.put_connectivity(data.id, data.connectivity, kind=kind)
                if data.attributes is not None:
                    db.put_block_attributes(data.id, data.attributes,
                                            data.attribute_names or None,
                                            kind=kind)
            for kind in SET_KINDS:
                for s in self.sets[kind]:
                    db.put_set(kind, s.id, s.entries, s.dist_factors, s.sides)
            if self.node_id_map is not None:
                db.put_id_map(EntityKind.NODE_MAP, self.node_id_map)
            if self.elem_id_map is not None:
                db.put_id_map(EntityKind.ELEM_MAP, self.elem_id_map)
            for kind, ids in self.extra_id_maps.items():
                db.put_id_map(kind, ids)
            if self.order_map is not None:
                db.put_order_map(self.order_map)
            for (kind, entity_id), attributes in self.attributes.items():
                for attribute in attributes:
                    db.put_attribute(kind, entity_id, attribute.name, attribute)

            for step, time in enumerate(self.times, 1):
                db.put_time(step, time)
            for kind in VARIABLE_KINDS:
                for (cid, var), series in self.values[kind].items():
                    for step in range(1, self.num_time_steps + 1):
                        db.put_variable(step, kind, cid, var, series[step - 1])
        logger.info("Wrote %s: %d nodes, %d elements", path,
                    self.num_nodes, self.num_elems)
