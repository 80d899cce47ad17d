"""
Mesh database handles for Exodus II files.

Three handle types share one read interface and differ in what they may
change:

- ExodusReader: read-only, always in the data phase.
- ExodusWriter: creates a new file, starts in the definition phase.
- ExodusAppender: opens an existing file read-write, starts in the data phase.

Structure (blocks, sets, maps, variables, provenance) is declared in the
definition phase and laid out in the container by ``commit()``; payload
arrays are written and read in the data phase. Each public call checks the
handle's mode and phase before doing any work.

Examples
--------
>>> with ExodusWriter("cube.e", clobber=True) as db:
...     db.initialize("cube", num_dim=3, num_nodes=8)
...     db.declare_block("elem_block", Block(1, "HEX8", 1, 8))
...     db.commit()
...     db.put_coords(x, y, z)
...     db.put_connectivity(1, [1, 2, 3, 4, 5, 6, 7, 8])
"""

import dataclasses
import logging
from enum import Enum
from functools import wraps
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from exodusii import exodus_h as ex

from exodus_container import NetCDFContainer, PerformanceConfig
from exodus_entities import (
    Assembly, Attribute, AttributeType, Block, Blob, EntitySet, QARecord,
    SetData, check_line, check_name,
)
from exodus_errors import (
    ContainerError, DuplicateEntity, EntityNotFound, ExodusError,
    LengthMismatch, MeshNotInitialized, VariableNotPresent, WrongMode,
    WrongPhase,
)
from exodus_registry import (
    LAYOUT_COMBINED, MeshRegistry, detect_storage_layout,
)
from exodus_schema import (
    BLOCK_SCHEMAS, COORD_VARS, ELEM_ORDER_MAP_VAR, ID_MAP_VARS,
    RESERVED_ATTRIBUTES, SET_SCHEMAS, VARIABLE_SCHEMAS, EntityKind,
    entity_primary_var, parse_kind,
)


logger = logging.getLogger(__name__)

READ = "read"
WRITE = "write"
APPEND = "append"


class Phase(Enum):
    DEFINITION = "definition"
    DATA = "data"


def requires_mode(*modes):
    """Reject the call with WrongMode unless the handle has one of ``modes``."""
    def decorator(fun):
        @wraps(fun)
        def inner(self, *args, **kwargs):
            if self.mode not in modes:
                raise WrongMode(fun.__name__, self.mode)
            return fun(self, *args, **kwargs)
        return inner
    return decorator


def requires_phase(phase):
    """Reject the call with WrongPhase unless the handle is in ``phase``."""
    def decorator(fun):
        @wraps(fun)
        def inner(self, *args, **kwargs):
            self._require_open()
            if self.phase is not phase:
                raise WrongPhase(fun.__name__, self.phase.value)
            return fun(self, *args, **kwargs)
        return inner
    return decorator


class _ExodusHandle:
    """State and registry-backed queries shared by every handle type."""

    mode: str = ""

    def __init__(self, path, container_mode: str, phase: Phase,
                 clobber: bool = False,
                 performance: Optional[PerformanceConfig] = None):
        self.path = Path(path)
        self._closed = True
        self._container = NetCDFContainer(
            path, container_mode, clobber=clobber, performance=performance
        )
        self._closed = False
        self.phase = phase
        self._layouts: Dict[EntityKind, str] = {}
        if container_mode == "w":
            self._registry = MeshRegistry()
        else:
            try:
                self._registry = MeshRegistry.load(self._container)
            except Exception:
                self.close(commit=False)
                raise
        logger.debug("Opened %s (%s mode, %s phase)",
                     self.path, self.mode, self.phase.value)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close(commit=exc_type is None)
        return False

    def __repr__(self):
        state = "closed" if self._closed else self.phase.value
        return f"{type(self).__name__}('{self.path}', {state})"

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self, commit: bool = True) -> None:
        """
        Commit pending structure, flush and release the file.

        A second call is a no-op. Pass ``commit=False`` to discard
        declarations made since the last commit.
        """
        if self._closed:
            return
        try:
            if commit and self.phase is Phase.DEFINITION:
                self._commit()
        finally:
            self._container.close()
            self._closed = True
            logger.debug("Closed %s", self.path)

    def _require_open(self) -> None:
        if self._closed:
            raise ContainerError(f"{self.path}: handle is closed")

    def _commit(self) -> None:
        missing = self._registry.missing_parameters()
        if missing:
            raise MeshNotInitialized(missing)
        self._registry.layout(self._container)
        self._container.commit()
        self._registry.write_metadata(self._container)
        self._container.sync()
        self._layouts.clear()
        self.phase = Phase.DATA
        logger.debug("%s: structure committed", self.path)

    # ---- Global parameters ----

    @property
    def title(self) -> str:
        return self._registry.title

    @property
    def num_dim(self) -> int:
        return self._registry.num_dim or 0

    @property
    def num_nodes(self) -> int:
        return self._registry.num_nodes or 0

    @property
    def num_elems(self) -> int:
        return self._registry.num_elems

    def num_time_steps(self) -> int:
        """Return total number of time steps."""
        self._require_open()
        return self._container.dimension_size(ex.DIM_TIME)

    # ---- Entity metadata ----

    def get_ids(self, kind) -> List[int]:
        """Return the ids of every block or set of ``kind`` in order."""
        return self._registry.ids(parse_kind(kind))

    def get_block(self, kind, block_id: int) -> Block:
        kind = parse_kind(kind)
        if kind not in BLOCK_SCHEMAS:
            raise ValueError(f"'{kind}' is not a block kind")
        return dataclasses.replace(self._registry.entity(kind, block_id))

    def get_set_params(self, kind, set_id: int) -> EntitySet:
        kind = parse_kind(kind)
        if kind not in SET_SCHEMAS:
            raise ValueError(f"'{kind}' is not a set kind")
        return dataclasses.replace(self._registry.entity(kind, set_id))

    def get_names(self, kind) -> List[str]:
        """Return the names of every block or set of ``kind``."""
        return [e.name for e in self._registry.containers(parse_kind(kind))]

    def get_coord_names(self) -> List[str]:
        return list(self._registry.coord_names)

    def has_id_map(self, kind) -> bool:
        return parse_kind(kind) in self._registry.id_maps

    def has_order_map(self) -> bool:
        return self._registry.order_map

    # ---- Variable metadata ----

    def get_variable_names(self, kind) -> List[str]:
        kind = parse_kind(kind)
        if kind not in VARIABLE_SCHEMAS:
            raise ValueError(f"Entity kind '{kind}' has no variables")
        return list(self._registry.var_names[kind])

    def get_variable_index(self, kind, name: str) -> int:
        """0-based index of the variable ``name`` of ``kind``."""
        names = self.get_variable_names(kind)
        if name not in names:
            raise EntityNotFound(f"{parse_kind(kind)} variable", name)
        return names.index(name)

    def get_truth_table(self, kind) -> np.ndarray:
        """
        Presence matrix of shape (num_containers, num_vars).

        Rows follow ``get_ids(kind)``, columns ``get_variable_names(kind)``.
        """
        kind = parse_kind(kind)
        if kind not in self._registry.truth:
            raise ValueError(f"Entity kind '{kind}' has no truth table")
        self._registry.sync_truth_tables()
        return self._registry.truth[kind].as_array()

    def storage_layout(self, kind) -> str:
        """
        How the time series of ``kind`` is stored: 'combined', 'separate'
        or 'none'. Detected once and cached until the next commit.
        """
        kind = parse_kind(kind)
        if kind not in self._layouts:
            self._require_open()
            layout = detect_storage_layout(self._container, kind)
            logger.debug("%s: %s variables use %s storage",
                         self.path, kind, layout)
            self._layouts[kind] = layout
        return self._layouts[kind]

    # ---- Provenance and groupings ----

    def get_qa_records(self) -> List[QARecord]:
        return list(self._registry.qa_records)

    def get_info_records(self) -> List[str]:
        return list(self._registry.info_records)

    def get_assembly_ids(self) -> List[int]:
        return [a.id for a in self._registry.assemblies]

    def get_assembly(self, assembly_id: int) -> Assembly:
        for assembly in self._registry.assemblies:
            if assembly.id == assembly_id:
                return dataclasses.replace(
                    assembly, entity_ids=list(assembly.entity_ids))
        raise EntityNotFound("assembly", assembly_id)

    def get_blob_ids(self) -> List[int]:
        return [b.id for b in self._registry.blobs]

    def get_blob(self, blob_id: int) -> Blob:
        for blob in self._registry.blobs:
            if blob.id == blob_id:
                return dataclasses.replace(blob)
        raise EntityNotFound("blob", blob_id)

    def describe(self) -> dict:
        """Summary of the database structure."""
        reg = self._registry
        summary = {
            "title": reg.title,
            "num_dim": self.num_dim,
            "num_nodes": self.num_nodes,
            "num_elem": reg.num_elems,
            "num_time_steps": self.num_time_steps(),
        }
        for kind in list(BLOCK_SCHEMAS) + list(SET_SCHEMAS):
            summary[f"num_{kind.value}s"] = len(reg.containers(kind))
        for kind, names in reg.var_names.items():
            if names:
                summary[f"{kind.value}_variables"] = list(names)
        summary["num_qa_records"] = len(reg.qa_records)
        summary["num_info_records"] = len(reg.info_records)
        summary["num_assemblies"] = len(reg.assemblies)
        summary["num_blobs"] = len(reg.blobs)
        return summary

    # ---- Private helpers ----

    def _block_or_set(self, kind, entity_id: int):
        kind = parse_kind(kind)
        position = self._registry.position(kind, entity_id)
        return kind, position, self._registry.containers(kind)[position]

    def _variable_location(self, kind: EntityKind, container_id: int,
                           var_index: int, step_index):
        """
        Array name and index of one variable's values.

        ``step_index`` is a 0-based step or a slice over steps. Returns
        ``(None, None)`` for containers with no entries.
        """
        names = self._registry.var_names[kind]
        if not 0 <= var_index < len(names):
            raise EntityNotFound(f"{kind} variable", var_index)
        schema = VARIABLE_SCHEMAS[kind]
        if kind is EntityKind.GLOBAL:
            if not self._container.has_variable(schema.combined_var):
                raise VariableNotPresent(kind, container_id, var_index)
            return schema.combined_var, (step_index, var_index)

        position = 0
        num_entries = self.num_nodes
        if kind is not EntityKind.NODAL:
            position = self._registry.position(kind, container_id)
            if not self._registry.truth[kind].is_present(position, var_index):
                raise VariableNotPresent(kind, container_id, var_index)
            num_entries = self._registry.containers(kind)[position].num_entries
        if num_entries == 0:
            return None, None

        if self.storage_layout(kind) == LAYOUT_COMBINED:
            offset = 0
            if kind is not EntityKind.NODAL:
                offset = self._registry.entry_offset(kind, position)
            entries = slice(offset, offset + num_entries)
            return schema.combined_var, (step_index, var_index, entries)

        name = schema.values_var(var_index + 1, position + 1)
        if not self._container.has_variable(name):
            raise VariableNotPresent(kind, container_id, var_index)
        return name, (step_index, slice(None))

    def _num_entries(self, kind: EntityKind, container_id: int) -> int:
        if kind is EntityKind.GLOBAL:
            return 1
        if kind is EntityKind.NODAL:
            return self.num_nodes
        return self._registry.num_entries(kind, container_id)

    @staticmethod
    def _check_step(step: int, limit: Optional[int] = None) -> None:
        if step < 1 or (limit is not None and step > limit):
            bound = "" if limit is None else f" (database has {limit})"
            raise ValueError(f"Time step {step} out of range{bound}")


class _ReadOps:
    """Payload reads; legal on Read and Append handles in the data phase."""

    # ---- Coordinate access ----

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_coords(self) -> np.ndarray:
        """
        Return node coordinates.

        Returns
        -------
        coords : ndarray, shape (n_nodes, 3)
            Missing axes of 1-D and 2-D meshes are zero.
        """
        coords = np.zeros((self.num_nodes, 3))
        if self.num_nodes == 0:
            return coords
        if self._container.has_variable(ex.VAR_COORD):
            # Single array with shape (n_dims, n_nodes)
            coord = self._container.read_array(ex.VAR_COORD)
            coords[:, :coord.shape[0]] = coord.T
        else:
            for axis, var in enumerate(COORD_VARS[:self.num_dim]):
                coords[:, axis] = self._container.read_array(var)
        return coords

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_connectivity(self, block_id: int,
                         kind=EntityKind.ELEM_BLOCK) -> np.ndarray:
        """
        Connectivity of one block.

        Returns
        -------
        conn : ndarray, shape (num_entries, nodes_per_entry)
            1-based node ids.
        """
        kind, position, block = self._block_or_set(kind, block_id)
        if kind not in BLOCK_SCHEMAS:
            raise ValueError(f"'{kind}' is not a block kind")
        shape = (block.num_entries, block.nodes_per_entry)
        var = BLOCK_SCHEMAS[kind].conn_var(position + 1)
        if block.connectivity_length == 0 or not self._container.has_variable(var):
            return np.zeros(shape, dtype=np.int64)
        return self._container.read_array(var).astype(np.int64).reshape(shape)

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_block_attributes(self, block_id: int, kind=EntityKind.ELEM_BLOCK):
        """
        Per-entry block attributes.

        Returns
        -------
        values : ndarray, shape (num_entries, num_attributes)
        names : List[str]
        """
        kind, position, block = self._block_or_set(kind, block_id)
        schema = BLOCK_SCHEMAS[kind]
        values = np.zeros((block.num_entries, block.num_attributes))
        names = [""] * block.num_attributes
        var = schema.attr_var(position + 1)
        if block.num_attributes and self._container.has_variable(var):
            values = self._container.read_array(var).reshape(values.shape)
            stored = self._container.read_strings(schema.attr_names_var(position + 1))
            names[:len(stored)] = stored
        return values, names

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_set(self, kind, set_id: int) -> SetData:
        """
        Members of one set.

        Entries are 1-based ids. Side sets also carry the local side
        numbers; distribution factors are None when the set has none.
        """
        kind, position, entity_set = self._block_or_set(kind, set_id)
        if kind not in SET_SCHEMAS:
            raise ValueError(f"'{kind}' is not a set kind")
        schema = SET_SCHEMAS[kind]
        pos = position + 1
        entries = np.zeros(0, dtype=np.int64)
        sides = dist_factors = None
        if entity_set.num_entries:
            entries = self._container.read_array(
                schema.entries_var(pos)).astype(np.int64)
            if schema.sides_var is not None:
                sides = self._container.read_array(
                    schema.sides_var(pos)).astype(np.int64)
            if (entity_set.num_dist_factors
                    and self._container.has_variable(schema.df_var(pos))):
                dist_factors = self._container.read_array(schema.df_var(pos))
        elif schema.sides_var is not None:
            sides = np.zeros(0, dtype=np.int64)
        return SetData(id=entity_set.id, entries=entries,
                       dist_factors=dist_factors, sides=sides,
                       name=entity_set.name)

    # ---- Maps ----

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_id_map(self, kind) -> np.ndarray:
        """
        Internal (1-based position) to external id map.

        If no map exists, returns 1-based sequential indices.
        """
        kind = parse_kind(kind)
        var, dim = ID_MAP_VARS[kind]
        if self._container.has_variable(var):
            return self._container.read_array(var).astype(np.int64)
        return np.arange(1, self._container.dimension_size(dim) + 1)

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_order_map(self) -> np.ndarray:
        if self._container.has_variable(ELEM_ORDER_MAP_VAR):
            return self._container.read_array(ELEM_ORDER_MAP_VAR).astype(np.int64)
        return np.arange(1, self.num_elems + 1)

    # ---- Entity attributes ----

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_attributes(self, kind, entity_id: int) -> List[Attribute]:
        """All user attributes attached to one block or set."""
        kind, position, _ = self._block_or_set(kind, entity_id)
        var = entity_primary_var(kind, position + 1)
        if not self._container.has_variable(var):
            return []
        attributes = []
        for name in self._container.attr_names(var):
            if name in RESERVED_ATTRIBUTES:
                continue
            value = self._container.get_attr(name, var)
            if isinstance(value, str):
                attributes.append(Attribute(name, AttributeType.CHAR, value))
                continue
            value = np.atleast_1d(value)
            if np.issubdtype(value.dtype, np.integer):
                attributes.append(Attribute(name, AttributeType.INTEGER, value))
            else:
                attributes.append(Attribute(name, AttributeType.DOUBLE, value))
        return attributes

    def get_attribute(self, kind, entity_id: int, name: str) -> Attribute:
        for attribute in self.get_attributes(kind, entity_id):
            if attribute.name == name:
                return attribute
        raise EntityNotFound("attribute", name)

    # ---- Time step operations ----

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_times(self) -> np.ndarray:
        """Time values for each time step."""
        if not self._container.has_variable(ex.VAR_WHOLE_TIME):
            return np.zeros(0)
        return self._container.read_array(ex.VAR_WHOLE_TIME)

    # ---- Variable read operations ----

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_variable(self, step: int, kind, container_id: int,
                     var_index: int) -> np.ndarray:
        """
        Read one variable of one container at a time step.

        Parameters
        ----------
        step : int
            Time step index (1-based).
        kind : EntityKind or str
            Variable family.
        container_id : int
            Block or set id; ignored for global and nodal variables.
        var_index : int
            0-based variable index within the family.

        Returns
        -------
        values : ndarray
            One value per entry of the container (length 1 for global
            variables).

        Raises
        ------
        VariableNotPresent
            If the truth table marks the pair absent.
        """
        kind = parse_kind(kind)
        self._check_step(step, self.num_time_steps())
        name, index = self._variable_location(kind, container_id,
                                              var_index, step - 1)
        if name is None:
            return np.zeros(0)
        return np.atleast_1d(self._container.read_array(name, index))

    @requires_mode(READ, APPEND)
    @requires_phase(Phase.DATA)
    def get_variable_series(self, kind, container_id: int,
                            var_index: int) -> np.ndarray:
        """All time steps of one variable, shape (num_steps, num_entries)."""
        kind = parse_kind(kind)
        steps = self.num_time_steps()
        name, index = self._variable_location(kind, container_id,
                                              var_index, slice(0, steps))
        if name is None or steps == 0:
            return np.zeros((steps, self._num_entries(kind, container_id)))
        values = self._container.read_array(name, index)
        return values.reshape(steps, -1)


class _WriteOps:
    """Structure declarations and payload writes; Write and Append only."""

    # ---- Definition phase ----

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def initialize(self, title: str, num_dim: int, num_nodes: int) -> None:
        """Set the title, spatial dimension and node count in one call."""
        self.set_title(title)
        self.set_dimension(num_dim)
        self.set_num_nodes(num_nodes)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def set_title(self, title: str) -> None:
        self._registry.title = check_line(title)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def set_dimension(self, num_dim: int) -> None:
        num_dim = int(num_dim)
        if num_dim not in (1, 2, 3):
            raise ValueError(f"num_dim must be 1, 2 or 3, got {num_dim}")
        self._check_frozen(ex.DIM_NUM_DIM, num_dim, "spatial dimension")
        self._registry.num_dim = num_dim

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def set_num_nodes(self, num_nodes: int) -> None:
        num_nodes = int(num_nodes)
        if num_nodes < 0:
            raise ValueError(f"num_nodes must be >= 0, got {num_nodes}")
        self._check_frozen(ex.DIM_NUM_NODES, num_nodes, "node count")
        self._registry.num_nodes = num_nodes

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def declare_block(self, kind, block: Block) -> int:
        """Declare an element, edge or face block; returns its id."""
        kind = parse_kind(kind)
        if kind not in BLOCK_SCHEMAS:
            raise ValueError(f"'{kind}' is not a block kind")
        if block.id in self._registry.ids(kind):
            raise DuplicateEntity(f"{kind} with ID {block.id} already declared")
        total_dim = BLOCK_SCHEMAS[kind].total_dim
        if self._container.has_dimension(total_dim):
            raise ExodusError(
                f"{self.path}: the {kind} entry count is fixed once committed; "
                f"cannot add block {block.id}"
            )
        self._registry.blocks[kind].append(dataclasses.replace(block))
        return block.id

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def declare_set(self, kind, entity_set: EntitySet) -> int:
        """Declare a node, edge, face, element or side set; returns its id."""
        kind = parse_kind(kind)
        if kind not in SET_SCHEMAS:
            raise ValueError(f"'{kind}' is not a set kind")
        if entity_set.id in self._registry.ids(kind):
            raise DuplicateEntity(
                f"{kind} with ID {entity_set.id} already declared")
        # node set distribution factors share the entry dimension
        if (kind is EntityKind.NODE_SET and entity_set.num_dist_factors
                and entity_set.num_dist_factors != entity_set.num_entries):
            raise LengthMismatch(entity_set.num_entries,
                                 entity_set.num_dist_factors,
                                 what="node set distribution factors")
        self._registry.sets[kind].append(dataclasses.replace(entity_set))
        return entity_set.id

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def declare_map(self, kind) -> None:
        """Declare the id map of a node, element, edge or face kind."""
        kind = parse_kind(kind)
        if kind not in ID_MAP_VARS:
            raise ValueError(f"'{kind}' is not a map kind")
        self._registry.id_maps.add(kind)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def declare_order_map(self) -> None:
        self._registry.order_map = True

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def define_variables(self, kind, names: Sequence[str]) -> List[int]:
        """
        Define named variables for an entity kind.

        Returns
        -------
        indices : List[int]
            0-based indices of the new variables.
        """
        kind = parse_kind(kind)
        if kind not in VARIABLE_SCHEMAS:
            raise ValueError(f"Entity kind '{kind}' cannot carry variables")
        existing = self._registry.var_names[kind]
        seen = set(existing)
        for name in names:
            check_name(name)
            if name in seen:
                raise DuplicateEntity(
                    f"{kind} variable '{name}' already defined")
            seen.add(name)
        start = len(existing)
        existing.extend(names)
        self._registry.sync_truth_tables()
        return list(range(start, len(existing)))

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def set_truth_table(self, kind, table) -> None:
        """Narrow the default all-true presence matrix of ``kind``."""
        kind = parse_kind(kind)
        if kind not in self._registry.truth:
            raise ValueError(f"Entity kind '{kind}' has no truth table")
        self._registry.sync_truth_tables()
        self._registry.truth[kind].narrow(table)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def put_qa_records(self, records) -> None:
        """Append QA records of (code name, version, date, time)."""
        validated = []
        for record in records:
            if len(record) != 4:
                raise LengthMismatch(4, len(record), what="QA record")
            validated.append(QARecord(*record).validated())
        self._registry.qa_records.extend(validated)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def put_info_records(self, lines: Sequence[str]) -> None:
        """Append free-text information records."""
        self._registry.info_records.extend(check_line(line) for line in lines)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def put_coord_names(self, names: Sequence[str]) -> None:
        self._registry.coord_names = [check_name(n) for n in names]

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def declare_assembly(self, assembly: Assembly) -> int:
        if assembly.id in self.get_assembly_ids():
            raise DuplicateEntity(f"assembly with ID {assembly.id} already declared")
        if not assembly.entity_ids:
            raise ValueError(f"assembly {assembly.id} has no entities")
        self._registry.assemblies.append(dataclasses.replace(
            assembly, entity_ids=[int(i) for i in assembly.entity_ids]))
        return assembly.id

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def declare_blob(self, blob: Blob) -> int:
        if blob.id in self.get_blob_ids():
            raise DuplicateEntity(f"blob with ID {blob.id} already declared")
        if not blob.data:
            raise ValueError(f"blob {blob.id} has no data")
        self._registry.blobs.append(dataclasses.replace(blob))
        return blob.id

    # ---- Phase transitions ----

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DEFINITION)
    def commit(self) -> None:
        """
        Lay out every declaration and enter the data phase.

        Raises
        ------
        MeshNotInitialized
            If the spatial dimension or node count was never set.
        """
        self._commit()

    @requires_mode(WRITE, APPEND)
    def reenter_definition(self) -> None:
        """
        Return to the definition phase to add structure.

        Growing a count dimension on the next commit rewrites the file.
        """
        self._require_open()
        if self.phase is Phase.DEFINITION:
            return
        logger.debug("%s: re-entering definition; container is re-laid-out "
                     "on the next commit", self.path)
        self._container.reenter_definition()
        self.phase = Phase.DEFINITION

    # ---- Data phase ----

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_coords(self, x, y=None, z=None) -> None:
        """
        Write whole coordinate arrays, one per spatial dimension.

        ``x`` may also be an array of shape (n_nodes, num_dim) or
        (n_nodes, 3) when ``y`` and ``z`` are omitted.
        """
        if y is None and z is None and np.ndim(x) == 2:
            columns = np.asarray(x, dtype=np.float64)
            axes = [columns[:, i] for i in range(columns.shape[1])]
        else:
            axes = [x, y, z]
        for axis, var in enumerate(COORD_VARS[:self.num_dim]):
            values = axes[axis] if axis < len(axes) else None
            if values is None:
                raise ValueError(
                    f"Coordinates for axis {axis} are required for a "
                    f"{self.num_dim}-D mesh")
            values = np.asarray(values, dtype=np.float64).ravel()
            if len(values) != self.num_nodes:
                raise LengthMismatch(self.num_nodes, len(values),
                                     what=f"coordinate array '{var}'")
            if self.num_nodes:
                self._container.write_array(var, values)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_connectivity(self, block_id: int, conn,
                         kind=EntityKind.ELEM_BLOCK) -> None:
        """Write a block's connectivity (1-based node ids)."""
        kind, position, block = self._block_or_set(kind, block_id)
        if kind not in BLOCK_SCHEMAS:
            raise ValueError(f"'{kind}' is not a block kind")
        values = np.asarray(conn, dtype=np.int64).ravel()
        if values.size != block.connectivity_length:
            raise LengthMismatch(block.connectivity_length, values.size,
                                 what=f"connectivity of {kind} {block_id}")
        if values.size == 0:
            return
        self._container.write_array(
            BLOCK_SCHEMAS[kind].conn_var(position + 1),
            values.reshape(block.num_entries, block.nodes_per_entry))

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_block_attributes(self, block_id: int, values, names=None,
                             kind=EntityKind.ELEM_BLOCK) -> None:
        """Write per-entry block attributes, shape (num_entries, num_attributes)."""
        kind, position, block = self._block_or_set(kind, block_id)
        schema = BLOCK_SCHEMAS[kind]
        values = np.asarray(values, dtype=np.float64)
        expected = block.num_entries * block.num_attributes
        if values.size != expected:
            raise LengthMismatch(expected, values.size,
                                 what=f"attributes of {kind} {block_id}")
        if expected == 0:
            return
        self._container.write_array(
            schema.attr_var(position + 1),
            values.reshape(block.num_entries, block.num_attributes))
        if names is not None:
            if len(names) != block.num_attributes:
                raise LengthMismatch(block.num_attributes, len(names),
                                     what="attribute names")
            self._container.write_strings(
                schema.attr_names_var(position + 1),
                [check_name(n) for n in names])

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_set(self, kind, set_id: int, entries, dist_factors=None,
                sides=None) -> None:
        """
        Write the members of one set.

        Parameters
        ----------
        kind : EntityKind or str
            Set kind.
        set_id : int
            Declared set id.
        entries : array_like
            1-based entity ids (element ids for side sets).
        dist_factors : array_like, optional
            Must match the declared distribution-factor count.
        sides : array_like, optional
            Local side numbers; required for side sets only.
        """
        kind, position, entity_set = self._block_or_set(kind, set_id)
        if kind not in SET_SCHEMAS:
            raise ValueError(f"'{kind}' is not a set kind")
        schema = SET_SCHEMAS[kind]
        pos = position + 1
        entries = np.asarray(entries, dtype=np.int64).ravel()
        if len(entries) != entity_set.num_entries:
            raise LengthMismatch(entity_set.num_entries, len(entries),
                                 what=f"entries of {kind} {set_id}")
        if schema.sides_var is not None:
            if sides is None:
                raise ValueError(f"{kind} {set_id}: side numbers are required")
            sides = np.asarray(sides, dtype=np.int64).ravel()
            if len(sides) != entity_set.num_entries:
                raise LengthMismatch(entity_set.num_entries, len(sides),
                                     what=f"sides of {kind} {set_id}")
        elif sides is not None:
            raise ValueError(f"{kind} entries have no side numbers")
        if dist_factors is not None:
            dist_factors = np.asarray(dist_factors, dtype=np.float64).ravel()
            if len(dist_factors) != entity_set.num_dist_factors:
                raise LengthMismatch(entity_set.num_dist_factors,
                                     len(dist_factors),
                                     what=f"distribution factors of {kind} {set_id}")

        if entity_set.num_entries == 0:
            return
        self._container.write_array(schema.entries_var(pos), entries)
        if sides is not None:
            self._container.write_array(schema.sides_var(pos), sides)
        if dist_factors is not None and len(dist_factors):
            self._container.write_array(schema.df_var(pos), dist_factors)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_id_map(self, kind, ids) -> None:
        kind = parse_kind(kind)
        if kind not in ID_MAP_VARS:
            raise ValueError(f"'{kind}' is not a map kind")
        if kind not in self._registry.id_maps:
            raise EntityNotFound(kind, None)
        var, dim = ID_MAP_VARS[kind]
        ids = np.asarray(ids, dtype=np.int64).ravel()
        expected = self._container.dimension_size(dim)
        if len(ids) != expected:
            raise LengthMismatch(expected, len(ids), what=f"{kind}")
        if expected:
            self._container.write_array(var, ids)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_order_map(self, order) -> None:
        if not self._registry.order_map:
            raise EntityNotFound("element order map", None)
        order = np.asarray(order, dtype=np.int64).ravel()
        if len(order) != self.num_elems:
            raise LengthMismatch(self.num_elems, len(order),
                                 what="element order map")
        if len(order):
            self._container.write_array(ELEM_ORDER_MAP_VAR, order)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_attribute(self, kind, entity_id: int, name: str, value) -> None:
        """
        Attach a named integer, double or string value to a block or set.

        ``value`` may be an Attribute or a raw value whose type is inferred.
        """
        kind, position, entity = self._block_or_set(kind, entity_id)
        check_name(name)
        if name in RESERVED_ATTRIBUTES:
            raise ValueError(f"Attribute name '{name}' is reserved")
        var = entity_primary_var(kind, position + 1)
        if not self._container.has_variable(var):
            raise ExodusError(
                f"{kind} {entity_id} has no entries to attach attributes to")
        attribute = value if isinstance(value, Attribute) else Attribute.infer(name, value)
        self._container.set_attr(name, attribute.encoded(), var)

    @requires_mode(WRITE, APPEND)
    def put_names(self, kind, names: Sequence[str]) -> None:
        """
        Name every block or set of ``kind``.

        Legal in both phases; in the definition phase the names are
        written by the next commit.
        """
        self._require_open()
        kind = parse_kind(kind)
        entities = self._registry.containers(kind)
        if len(names) != len(entities):
            raise LengthMismatch(len(entities), len(names),
                                 what=f"{kind} names")
        names = [check_name(n) for n in names]
        for entity, name in zip(entities, names):
            entity.name = name
        schema = BLOCK_SCHEMAS.get(kind) or SET_SCHEMAS[kind]
        if self.phase is Phase.DATA and self._container.has_variable(schema.names_var):
            self._container.write_strings(schema.names_var, names)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_time(self, step: int, value: float) -> None:
        """Write the time value of a 1-based step."""
        self._check_step(step)
        self._container.write_array(ex.VAR_WHOLE_TIME, float(value),
                                    index=step - 1)

    @requires_mode(WRITE, APPEND)
    @requires_phase(Phase.DATA)
    def put_variable(self, step: int, kind, container_id: int,
                     var_index: int, values) -> None:
        """
        Write one variable of one container at a time step.

        Parameters
        ----------
        step : int
            Time step index (1-based).
        kind : EntityKind or str
            Variable family.
        container_id : int
            Block or set id; ignored for global and nodal variables.
        var_index : int
            0-based variable index within the family.
        values : array_like
            One value per entry of the container (a scalar for global
            variables).

        Raises
        ------
        VariableNotPresent
            If the truth table marks the pair absent.
        LengthMismatch
            If ``values`` does not have one value per entry.
        """
        kind = parse_kind(kind)
        self._check_step(step)
        values = np.atleast_1d(np.asarray(values, dtype=np.float64)).ravel()
        expected = self._num_entries(kind, container_id)
        if len(values) != expected:
            raise LengthMismatch(expected, len(values),
                                 what=f"{kind} variable {var_index}")
        name, index = self._variable_location(kind, container_id,
                                              var_index, step - 1)
        if name is None:
            return
        if kind is EntityKind.GLOBAL:
            values = values[0]
        self._container.write_array(name, values, index=index)

    # ---- Private helpers ----

    def _check_frozen(self, dim: str, value: int, what: str) -> None:
        if (self._container.has_dimension(dim)
                and self._container.dimension_size(dim) != value):
            raise ExodusError(
                f"{self.path}: the {what} is fixed once committed "
                f"({self._container.dimension_size(dim)}), cannot set {value}"
            )


_WRITE_OPERATIONS = frozenset(
    name for name in vars(_WriteOps) if not name.startswith("_")
)


class ExodusReader(_ReadOps, _ExodusHandle):
    """
    Read-only handle to an existing Exodus II file.

    Parameters
    ----------
    path : str or Path
        Path to an ExodusII (.e, .exo) file.
    """

    mode = READ

    def __init__(self, path):
        super().__init__(path, "r", Phase.DATA)

    def __getattr__(self, name):
        if name in _WRITE_OPERATIONS:
            raise WrongMode(name, READ)
        raise AttributeError(
            f"'{type(self).__name__}' object has no attribute '{name}'")


class ExodusWriter(_WriteOps, _ReadOps, _ExodusHandle):
    """
    Handle that creates a new Exodus II file.

    Starts in the definition phase. Payload reads raise WrongMode.

    Parameters
    ----------
    path : str or Path
        File to create.
    clobber : bool, optional
        Overwrite an existing file. Default False.
    performance : PerformanceConfig, optional
        Cache and chunk settings passed through to netCDF4.
    """

    mode = WRITE

    def __init__(self, path, clobber: bool = False,
                 performance: Optional[PerformanceConfig] = None):
        super().__init__(path, "w", Phase.DEFINITION, clobber=clobber,
                         performance=performance)


class ExodusAppender(_WriteOps, _ReadOps, _ExodusHandle):
    """
    Read-write handle to an existing Exodus II file.

    Starts in the data phase; call ``reenter_definition()`` to add
    structure.
    """

    mode = APPEND

    def __init__(self, path, performance: Optional[PerformanceConfig] = None):
        super().__init__(path, "a", Phase.DATA, performance=performance)
