"""
In-memory registry of the structure declared for a mesh database.

Declarations made in the definition phase are recorded here and laid out in
the netCDF container when the handle commits. Opening an existing file
rebuilds the registry from the container so appended structure extends,
rather than replaces, what is already on disk.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

import numpy as np

from exodusii import exodus_h as ex

from exodus_container import NetCDFContainer
from exodus_entities import (
    Assembly, Block, Blob, EntitySet, QARecord, TruthTable,
)
from exodus_errors import EntityNotFound, InconsistentStorageFormat
from exodus_schema import (
    API_VERSION, ASSEMBLY_DIM, ASSEMBLY_VAR, AXIS_NAMES, BLOB_DIM, BLOB_VAR,
    BLOCK_SCHEMAS, COORD_VARS, DB_VERSION, ELEM_ORDER_MAP_VAR, ID_MAP_VARS,
    MAX_LINE_LENGTH, MAX_NAME_LENGTH, SET_SCHEMAS, VARIABLE_SCHEMAS,
    EntityKind, parse_kind,
)


logger = logging.getLogger(__name__)

LAYOUT_NONE = "none"
LAYOUT_COMBINED = "combined"
LAYOUT_SEPARATE = "separate"

_ASSEMBLY_RE = re.compile(r"^assembly(\d+)_entity_list$")
_BLOB_RE = re.compile(r"^blob(\d+)_data$")


def detect_storage_layout(container: NetCDFContainer, kind: EntityKind) -> str:
    """
    Report how the time series of one variable family is stored.

    Returns 'combined' when the single 3-D array exists, 'separate' when
    per-variable arrays exist, 'none' when neither does. Global variables
    always use the combined ``vals_glo_var`` array.
    """
    schema = VARIABLE_SCHEMAS[kind]
    combined = container.has_variable(schema.combined_var)
    if kind is EntityKind.GLOBAL:
        return LAYOUT_COMBINED if combined else LAYOUT_NONE
    pattern = re.compile(re.escape(schema.combined_var) + r"\d")
    separate = any(pattern.match(n) for n in container.variable_names())
    if combined and separate:
        raise InconsistentStorageFormat(
            f"{container.path}: {kind} variables are stored both in "
            f"'{schema.combined_var}' and in per-variable arrays"
        )
    if combined:
        return LAYOUT_COMBINED
    if separate:
        return LAYOUT_SEPARATE
    return LAYOUT_NONE


class MeshRegistry:
    """Structure of one mesh database, independent of any payload."""

    def __init__(self):
        self.title = ""
        self.num_dim: Optional[int] = None
        self.num_nodes: Optional[int] = None
        self.blocks: Dict[EntityKind, List[Block]] = {k: [] for k in BLOCK_SCHEMAS}
        self.sets: Dict[EntityKind, List[EntitySet]] = {k: [] for k in SET_SCHEMAS}
        self.var_names: Dict[EntityKind, List[str]] = {
            k: [] for k in VARIABLE_SCHEMAS
        }
        self.truth: Dict[EntityKind, TruthTable] = {
            k: TruthTable() for k in VARIABLE_SCHEMAS
            if k in BLOCK_SCHEMAS or k in SET_SCHEMAS
        }
        self.id_maps = set()
        self.order_map = False
        self.coord_names: List[str] = []
        self.qa_records: List[QARecord] = []
        self.info_records: List[str] = []
        self.assemblies: List[Assembly] = []
        self.blobs: List[Blob] = []

    # ---- Lookups ----

    def containers(self, kind: EntityKind) -> list:
        if kind in BLOCK_SCHEMAS:
            return self.blocks[kind]
        if kind in SET_SCHEMAS:
            return self.sets[kind]
        raise ValueError(f"'{kind}' is not a block or set kind")

    def ids(self, kind: EntityKind) -> List[int]:
        return [c.id for c in self.containers(kind)]

    def position(self, kind: EntityKind, entity_id: int) -> int:
        """0-based declaration position of a block or set."""
        for pos, entity in enumerate(self.containers(kind)):
            if entity.id == entity_id:
                return pos
        raise EntityNotFound(kind, entity_id)

    def entity(self, kind: EntityKind, entity_id: int):
        return self.containers(kind)[self.position(kind, entity_id)]

    def num_entries(self, kind: EntityKind, container_id: int = 0) -> int:
        if kind is EntityKind.GLOBAL:
            return 1
        if kind is EntityKind.NODAL:
            return self.num_nodes or 0
        return self.entity(kind, container_id).num_entries

    def total_entries(self, kind: EntityKind) -> int:
        return sum(c.num_entries for c in self.containers(kind))

    def entry_offset(self, kind: EntityKind, position: int) -> int:
        return sum(c.num_entries for c in self.containers(kind)[:position])

    @property
    def num_elems(self) -> int:
        return self.total_entries(EntityKind.ELEM_BLOCK)

    def sync_truth_tables(self) -> None:
        for kind, table in self.truth.items():
            shape = (len(self.containers(kind)), len(self.var_names[kind]))
            if table.shape != shape:
                table.resize(*shape)

    def missing_parameters(self) -> List[str]:
        missing = []
        if self.num_dim is None:
            missing.append("num_dim")
        if self.num_nodes is None:
            missing.append("num_nodes")
        return missing

    # ---- Loading ----

    @classmethod
    def load(cls, container: NetCDFContainer) -> "MeshRegistry":
        """Rebuild the registry from an existing container."""
        reg = cls()
        title = container.get_attr("title", default="")
        reg.title = title.decode() if isinstance(title, bytes) else str(title)
        if container.has_dimension(ex.DIM_NUM_DIM):
            reg.num_dim = container.dimension_size(ex.DIM_NUM_DIM)
            reg.num_nodes = container.dimension_size(ex.DIM_NUM_NODES)
        reg.coord_names = container.read_strings(ex.VAR_NAME_COORD)

        for kind, schema in BLOCK_SCHEMAS.items():
            reg.blocks[kind] = list(cls._load_blocks(container, kind, schema))
        for kind, schema in SET_SCHEMAS.items():
            reg.sets[kind] = list(cls._load_sets(container, kind, schema))

        for kind, schema in VARIABLE_SCHEMAS.items():
            reg.var_names[kind] = container.read_strings(schema.names_var)
        reg.sync_truth_tables()
        for kind in reg.truth:
            reg._load_truth_table(container, kind)

        reg.id_maps = {
            kind for kind, (var, _) in ID_MAP_VARS.items()
            if container.has_variable(var)
        }
        reg.order_map = container.has_variable(ELEM_ORDER_MAP_VAR)
        reg.qa_records = [
            QARecord(*row) for row in container.read_strings(ex.VAR_QA_TITLE)
        ]
        reg.info_records = container.read_strings(ex.VAR_INFO)
        reg.assemblies, reg.blobs = cls._load_groupings(container)
        return reg

    @staticmethod
    def _names(container, names_var, count) -> List[str]:
        names = container.read_strings(names_var)
        return list(names) + [""] * (count - len(names))

    @classmethod
    def _load_blocks(cls, container, kind, schema):
        if not container.has_variable(schema.ids_var):
            return
        ids = container.read_array(schema.ids_var)
        names = cls._names(container, schema.names_var, len(ids))
        for pos, block_id in enumerate(ids, 1):
            conn = schema.conn_var(pos)
            topology = ""
            if container.has_variable(conn):
                topology = container.get_attr(ex.ATT_NAME_ELEM_TYPE, conn, "")
            edges = faces = 0
            if kind is EntityKind.ELEM_BLOCK:
                edges = container.dimension_size(ex.DIM_NUM_EDGE_PER_ELEM(pos))
                faces = container.dimension_size(ex.DIM_NUM_FACE_PER_ELEM(pos))
            yield Block(
                id=int(block_id),
                topology=str(topology),
                num_entries=container.dimension_size(schema.entries_dim(pos)),
                nodes_per_entry=container.dimension_size(
                    schema.nodes_per_entry_dim(pos)),
                num_edges_per_entry=edges,
                num_faces_per_entry=faces,
                num_attributes=container.dimension_size(schema.attr_dim(pos)),
                name=names[pos - 1],
            )

    @classmethod
    def _load_sets(cls, container, kind, schema):
        if not container.has_variable(schema.ids_var):
            return
        ids = container.read_array(schema.ids_var)
        names = cls._names(container, schema.names_var, len(ids))
        for pos, set_id in enumerate(ids, 1):
            num_entries = container.dimension_size(schema.entries_dim(pos))
            if schema.df_dim is None:
                num_df = num_entries if container.has_variable(schema.df_var(pos)) else 0
            else:
                num_df = container.dimension_size(schema.df_dim(pos))
            yield EntitySet(id=int(set_id), num_entries=num_entries,
                            num_dist_factors=num_df, name=names[pos - 1])

    def _load_truth_table(self, container, kind) -> None:
        schema = VARIABLE_SCHEMAS[kind]
        table = self.truth[kind]
        if table.shape[0] == 0 or table.shape[1] == 0:
            return
        if schema.table_var and container.has_variable(schema.table_var):
            table.narrow(container.read_array(schema.table_var) != 0)
            return
        if detect_storage_layout(container, kind) != LAYOUT_SEPARATE:
            return
        present = np.zeros(table.shape, dtype=bool)
        for pos in range(table.shape[0]):
            for var in range(table.shape[1]):
                present[pos, var] = container.has_variable(
                    schema.values_var(var + 1, pos + 1))
        table.narrow(present)

    @staticmethod
    def _load_groupings(container) -> Tuple[List[Assembly], List[Blob]]:
        assemblies, blobs = [], []
        for name in sorted(container.variable_names()):
            if _ASSEMBLY_RE.match(name):
                kind = parse_kind(container.get_attr("entity_type", name))
                assemblies.append(Assembly(
                    id=int(container.get_attr("id", name)),
                    name=str(container.get_attr("name", name, "")),
                    entity_kind=kind,
                    entity_ids=container.read_array(name).tolist(),
                ))
            elif _BLOB_RE.match(name):
                blobs.append(Blob(
                    id=int(container.get_attr("id", name)),
                    name=str(container.get_attr("name", name, "")),
                    data=container.read_array(name).astype(np.int8).tobytes(),
                ))
        assemblies.sort(key=lambda a: a.id)
        blobs.sort(key=lambda b: b.id)
        return assemblies, blobs

    # ---- Layout ----

    def required_dimensions(self) -> Dict[str, int]:
        """Fixed-size dimensions implied by the declarations."""
        dims = {
            ex.DIM_STR: MAX_NAME_LENGTH + 1,
            ex.DIM_NAME: MAX_NAME_LENGTH + 1,
            ex.DIM_LIN: MAX_LINE_LENGTH + 1,
            ex.DIM_N4: 4,
            ex.DIM_NUM_DIM: self.num_dim,
        }
        if self.num_nodes:
            dims[ex.DIM_NUM_NODES] = self.num_nodes

        for kind, schema in BLOCK_SCHEMAS.items():
            blocks = self.blocks[kind]
            if not blocks:
                continue
            dims[schema.count_dim] = len(blocks)
            total = self.total_entries(kind)
            if total:
                dims[schema.total_dim] = total
            for pos, block in enumerate(blocks, 1):
                if block.num_entries == 0:
                    continue
                dims[schema.entries_dim(pos)] = block.num_entries
                if block.nodes_per_entry:
                    dims[schema.nodes_per_entry_dim(pos)] = block.nodes_per_entry
                if block.num_attributes:
                    dims[schema.attr_dim(pos)] = block.num_attributes
                if kind is EntityKind.ELEM_BLOCK:
                    if block.num_edges_per_entry:
                        dims[ex.DIM_NUM_EDGE_PER_ELEM(pos)] = block.num_edges_per_entry
                    if block.num_faces_per_entry:
                        dims[ex.DIM_NUM_FACE_PER_ELEM(pos)] = block.num_faces_per_entry

        for kind, schema in SET_SCHEMAS.items():
            sets = self.sets[kind]
            if not sets:
                continue
            dims[schema.count_dim] = len(sets)
            for pos, entity_set in enumerate(sets, 1):
                if entity_set.num_entries == 0:
                    continue
                dims[schema.entries_dim(pos)] = entity_set.num_entries
                if schema.df_dim is not None and entity_set.num_dist_factors:
                    dims[schema.df_dim(pos)] = entity_set.num_dist_factors

        for kind, schema in VARIABLE_SCHEMAS.items():
            if self.var_names[kind]:
                dims[schema.count_dim] = len(self.var_names[kind])

        if self.qa_records:
            dims[ex.DIM_NUM_QA] = len(self.qa_records)
        if self.info_records:
            dims[ex.DIM_NUM_INFO] = len(self.info_records)
        for n, assembly in enumerate(self.assemblies, 1):
            dims[ASSEMBLY_DIM(n)] = len(assembly.entity_ids)
        for n, blob in enumerate(self.blobs, 1):
            dims[BLOB_DIM(n)] = len(blob.data)
        return dims

    def required_variables(self, container: NetCDFContainer):
        """Yield (name, dims, dtype) for every array the declarations need."""
        if self.num_nodes:
            for var in COORD_VARS[:self.num_dim]:
                yield var, (ex.DIM_NUM_NODES,), "f8"
        yield ex.VAR_NAME_COORD, (ex.DIM_NUM_DIM, ex.DIM_NAME), "S1"
        yield ex.VAR_WHOLE_TIME, (ex.DIM_TIME,), "f8"

        for kind, schema in BLOCK_SCHEMAS.items():
            blocks = self.blocks[kind]
            if not blocks:
                continue
            yield schema.ids_var, (schema.count_dim,), "i4"
            yield schema.status_var, (schema.count_dim,), "i4"
            yield schema.names_var, (schema.count_dim, ex.DIM_NAME), "S1"
            for pos, block in enumerate(blocks, 1):
                if block.num_entries == 0:
                    continue
                entries = schema.entries_dim(pos)
                if block.nodes_per_entry:
                    yield (schema.conn_var(pos),
                           (entries, schema.nodes_per_entry_dim(pos)), "i4")
                if block.num_attributes:
                    attr_dim = schema.attr_dim(pos)
                    yield schema.attr_var(pos), (entries, attr_dim), "f8"
                    yield (schema.attr_names_var(pos),
                           (attr_dim, ex.DIM_NAME), "S1")

        for kind, schema in SET_SCHEMAS.items():
            sets = self.sets[kind]
            if not sets:
                continue
            yield schema.ids_var, (schema.count_dim,), "i4"
            yield schema.status_var, (schema.count_dim,), "i4"
            yield schema.names_var, (schema.count_dim, ex.DIM_NAME), "S1"
            for pos, entity_set in enumerate(sets, 1):
                if entity_set.num_entries == 0:
                    continue
                entries = schema.entries_dim(pos)
                yield schema.entries_var(pos), (entries,), "i4"
                if schema.sides_var is not None:
                    yield schema.sides_var(pos), (entries,), "i4"
                if entity_set.num_dist_factors:
                    df_dim = entries if schema.df_dim is None else schema.df_dim(pos)
                    yield schema.df_var(pos), (df_dim,), "f8"

        for kind, (var, dim) in ID_MAP_VARS.items():
            if kind in self.id_maps:
                yield var, (dim,), "i4"
        if self.order_map:
            yield ELEM_ORDER_MAP_VAR, (ex.DIM_NUM_ELEM,), "i4"

        for kind in VARIABLE_SCHEMAS:
            yield from self._variable_arrays(container, kind)

        if self.qa_records:
            yield ex.VAR_QA_TITLE, (ex.DIM_NUM_QA, ex.DIM_N4, ex.DIM_STR), "S1"
        if self.info_records:
            yield ex.VAR_INFO, (ex.DIM_NUM_INFO, ex.DIM_LIN), "S1"
        for n, _ in enumerate(self.assemblies, 1):
            yield ASSEMBLY_VAR(n), (ASSEMBLY_DIM(n),), "i4"
        for n, _ in enumerate(self.blobs, 1):
            yield BLOB_VAR(n), (BLOB_DIM(n),), "i1"

    def _variable_arrays(self, container, kind):
        names = self.var_names[kind]
        if not names:
            return
        schema = VARIABLE_SCHEMAS[kind]
        yield schema.names_var, (schema.count_dim, ex.DIM_NAME), "S1"

        if kind is EntityKind.GLOBAL:
            yield schema.combined_var, (ex.DIM_TIME, schema.count_dim), "f8"
            return
        # a combined array picks up new variables through its count dimension
        combined = detect_storage_layout(container, kind) == LAYOUT_COMBINED
        if kind is EntityKind.NODAL:
            if not combined and self.num_nodes:
                for var in range(len(names)):
                    yield (schema.values_var(var + 1, 0),
                           (ex.DIM_TIME, ex.DIM_NUM_NODES), "f8")
            return

        containers = self.containers(kind)
        if not containers:
            return
        count_dim = (BLOCK_SCHEMAS.get(kind) or SET_SCHEMAS[kind]).count_dim
        yield schema.table_var, (count_dim, schema.count_dim), "i4"
        if combined:
            return
        entries_dim = (BLOCK_SCHEMAS.get(kind) or SET_SCHEMAS[kind]).entries_dim
        table = self.truth[kind]
        for pos, entity in enumerate(containers):
            if entity.num_entries == 0:
                continue
            for var in range(len(names)):
                if table.is_present(pos, var):
                    yield (schema.values_var(var + 1, pos + 1),
                           (ex.DIM_TIME, entries_dim(pos + 1)), "f8")

    def layout(self, container: NetCDFContainer) -> None:
        """
        Declare every dimension and array the registry needs.

        Count dimensions that already exist with a smaller length are grown
        by re-laying-out the container first.
        """
        self.sync_truth_tables()
        wanted = self.required_dimensions()
        # string widths of files written elsewhere are kept as found
        for name in (ex.DIM_STR, ex.DIM_NAME, ex.DIM_LIN):
            if container.has_dimension(name):
                wanted[name] = container.dimension_size(name)
        grow = {
            name: size for name, size in wanted.items()
            if container.has_dimension(name)
            and container.dimension_size(name) != size
        }
        if grow:
            container.resize_dimensions(grow)
        container.declare_dimension(ex.DIM_TIME, None)
        for name, size in wanted.items():
            container.declare_dimension(name, size)
        for name, dims, dtype in self.required_variables(container):
            if not container.has_variable(name):
                container.declare_variable(name, dims, dtype)

    def write_metadata(self, container: NetCDFContainer) -> None:
        """Write ids, names, provenance and groupings after layout."""
        container.set_attr("title", self.title)
        container.set_attr("api_version", np.float32(API_VERSION))
        container.set_attr("version", np.float32(DB_VERSION))
        container.set_attr("floating_point_word_size", np.int32(8))
        container.set_attr("file_size", np.int32(1))
        container.set_attr("maximum_name_length", np.int32(MAX_NAME_LENGTH))

        coord_names = self.coord_names or list(AXIS_NAMES[:self.num_dim])
        container.write_strings(ex.VAR_NAME_COORD, coord_names)

        for kind, schema in BLOCK_SCHEMAS.items():
            blocks = self.blocks[kind]
            if not blocks:
                continue
            self._write_entity_table(container, schema, blocks)
            for pos, block in enumerate(blocks, 1):
                conn = schema.conn_var(pos)
                if container.has_variable(conn):
                    container.set_attr(ex.ATT_NAME_ELEM_TYPE, block.topology, conn)

        for kind, schema in SET_SCHEMAS.items():
            if self.sets[kind]:
                self._write_entity_table(container, schema, self.sets[kind])

        for kind, schema in VARIABLE_SCHEMAS.items():
            names = self.var_names[kind]
            if not names:
                continue
            container.write_strings(schema.names_var, names)
            if kind in self.truth and container.has_variable(schema.table_var or ""):
                container.write_array(
                    schema.table_var, self.truth[kind].as_array().astype(np.int32))

        if self.qa_records:
            container.write_strings(ex.VAR_QA_TITLE,
                                    [list(r) for r in self.qa_records])
        if self.info_records:
            container.write_strings(ex.VAR_INFO, self.info_records)

        for n, assembly in enumerate(self.assemblies, 1):
            var = ASSEMBLY_VAR(n)
            container.write_array(var, np.asarray(assembly.entity_ids, dtype=np.int32))
            container.set_attr("id", np.int32(assembly.id), var)
            container.set_attr("name", assembly.name, var)
            container.set_attr("entity_type", assembly.entity_kind.value, var)
        for n, blob in enumerate(self.blobs, 1):
            var = BLOB_VAR(n)
            container.write_array(var, np.frombuffer(blob.data, dtype=np.int8))
            container.set_attr("id", np.int32(blob.id), var)
            container.set_attr("name", blob.name, var)

    @staticmethod
    def _write_entity_table(container, schema, entities) -> None:
        container.write_array(
            schema.ids_var, np.array([e.id for e in entities], dtype=np.int32))
        container.write_array(
            schema.status_var,
            np.array([1 if e.num_entries else 0 for e in entities], dtype=np.int32))
        container.write_strings(schema.names_var, [e.name for e in entities])
        ids_attr = container.get_attr("name", schema.ids_var)
        if ids_attr is None:
            container.set_attr("name", "ID", schema.ids_var)
