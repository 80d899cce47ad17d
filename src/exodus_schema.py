"""
Exodus II naming convention for the netCDF container.

Maps each entity kind to the dimension and variable names the format uses
for it. Names come from the exodusii package's copy of exodusII_int.h so the
files written here are readable by any Exodus tool.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from exodusii import exodus_h as ex


# Field widths (characters, excluding the trailing NUL on disk)
MAX_NAME_LENGTH = ex.MAX_STR_LENGTH   # 32: entity/variable names, QA fields
MAX_LINE_LENGTH = ex.MAX_LINE_LENGTH  # 80: title and info records

API_VERSION = 8.11
DB_VERSION = 8.11


class EntityKind(Enum):
    """Entity kinds known to the mesh database."""

    GLOBAL = "global"
    NODAL = "nodal"
    ELEM_BLOCK = "elem_block"
    EDGE_BLOCK = "edge_block"
    FACE_BLOCK = "face_block"
    NODE_SET = "node_set"
    EDGE_SET = "edge_set"
    FACE_SET = "face_set"
    SIDE_SET = "side_set"
    ELEM_SET = "elem_set"
    NODE_MAP = "node_map"
    ELEM_MAP = "elem_map"
    EDGE_MAP = "edge_map"
    FACE_MAP = "face_map"

    def __str__(self):
        return self.value

    @property
    def is_block(self) -> bool:
        return self in BLOCK_SCHEMAS

    @property
    def is_set(self) -> bool:
        return self in SET_SCHEMAS


@dataclass(frozen=True)
class BlockSchema:
    count_dim: str
    ids_var: str
    status_var: str
    names_var: str
    entries_dim: Callable[[int], str]
    nodes_per_entry_dim: Callable[[int], str]
    conn_var: Callable[[int], str]
    attr_dim: Callable[[int], str]
    attr_var: Callable[[int], str]
    attr_names_var: Callable[[int], str]
    total_dim: str


@dataclass(frozen=True)
class SetSchema:
    count_dim: str
    ids_var: str
    status_var: str
    names_var: str
    entries_dim: Callable[[int], str]
    entries_var: Callable[[int], str]
    df_var: Callable[[int], str]
    df_dim: Optional[Callable[[int], str]] = None
    sides_var: Optional[Callable[[int], str]] = None


@dataclass(frozen=True)
class VariableSchema:
    count_dim: str
    names_var: str
    table_var: Optional[str] = None
    # per-variable layout: (1-based var index, 1-based container position)
    values_var: Optional[Callable[..., str]] = None
    combined_var: Optional[str] = None


BLOCK_SCHEMAS = {
    EntityKind.ELEM_BLOCK: BlockSchema(
        count_dim=ex.DIM_NUM_ELEM_BLK,
        ids_var=ex.VAR_ID_ELEM_BLK,
        status_var=ex.VAR_STAT_ELEM_BLK,
        names_var=ex.VAR_NAME_ELEM_BLK,
        entries_dim=ex.DIM_NUM_ELEM_IN_ELEM_BLK,
        nodes_per_entry_dim=ex.DIM_NUM_NODE_PER_ELEM,
        conn_var=ex.VAR_ELEM_BLK_CONN,
        attr_dim=ex.DIM_NUM_ATT_IN_ELEM_BLK,
        attr_var=ex.VAR_ELEM_ATTRIB,
        attr_names_var=ex.VAR_NAME_ELEM_BLK_ATTRIB,
        total_dim=ex.DIM_NUM_ELEM,
    ),
    EntityKind.EDGE_BLOCK: BlockSchema(
        count_dim=ex.DIM_NUM_EDGE_BLK,
        ids_var=ex.VAR_ID_EDGE_BLK,
        status_var=ex.VAR_STAT_EDGE_BLK,
        names_var=ex.VAR_NAME_EDGE_BLK,
        entries_dim=ex.DIM_NUM_EDGE_IN_EDGE_BLK,
        nodes_per_entry_dim=ex.DIM_NUM_NODE_PER_EDGE,
        conn_var=ex.VAR_EDGE_BLK_CONN,
        attr_dim=ex.DIM_NUM_ATT_IN_EDGE_BLK,
        attr_var=ex.VAR_EDGE_BLK_ATTRIB,
        attr_names_var=ex.VAR_NAME_EDGE_BLK_ATTRIB,
        total_dim=ex.DIM_NUM_EDGE,
    ),
    EntityKind.FACE_BLOCK: BlockSchema(
        count_dim=ex.DIM_NUM_FACE_BLK,
        ids_var=ex.VAR_ID_FACE_BLK,
        status_var=ex.VAR_STAT_FACE_BLK,
        names_var=ex.VAR_NAME_FACE_BLK,
        entries_dim=ex.DIM_NUM_FACE_IN_FACE_BLK,
        nodes_per_entry_dim=ex.DIM_NUM_NODE_PER_FACE,
        conn_var=ex.VAR_FACE_BLK_CONN,
        attr_dim=ex.DIM_NUM_ATT_IN_FACE_BLK,
        attr_var=ex.VAR_FACE_ATTRIB,
        attr_names_var=ex.VAR_NAME_FACE_BLK_ATTRIB,
        total_dim=ex.DIM_NUM_FACE,
    ),
}

SET_SCHEMAS = {
    # node set distribution factors share the entry dimension
    EntityKind.NODE_SET: SetSchema(
        count_dim=ex.DIM_NUM_NODE_SET,
        ids_var=ex.VAR_NODE_SET_IDS,
        status_var=ex.VAR_NODE_SET_STAT,
        names_var=ex.VAR_NAME_NODE_SET,
        entries_dim=ex.DIM_NUM_NODE_NODE_SET,
        entries_var=ex.VAR_NODE_NODE_SET,
        df_var=ex.VAR_DF_NODE_SET,
    ),
    EntityKind.SIDE_SET: SetSchema(
        count_dim=ex.DIM_NUM_SIDE_SET,
        ids_var=ex.VAR_SIDE_SET_IDS,
        status_var=ex.VAR_SIDE_SET_STAT,
        names_var=ex.VAR_NAME_SIDE_SET,
        entries_dim=ex.DIM_NUM_SIDE_SIDE_SET,
        entries_var=ex.VAR_ELEM_SIDE_SET,
        df_var=ex.VAR_DF_SIDE_SET,
        df_dim=ex.DIM_NUM_DF_SIDE_SET,
        sides_var=ex.VAR_SIDE_SIDE_SET,
    ),
    EntityKind.ELEM_SET: SetSchema(
        count_dim=ex.DIM_NUM_ELEM_SET,
        ids_var=ex.VAR_ELEM_SET_IDS,
        status_var=ex.VAR_ELEM_SET_STAT,
        names_var=ex.VAR_NAME_ELEM_SET,
        entries_dim=ex.DIM_NUM_ELEM_ELEM_SET,
        entries_var=ex.VAR_ELEM_ELEM_SET,
        df_var=ex.VAR_DF_ELEM_SET,
        df_dim=ex.DIM_NUM_DF_ELEM_SET,
    ),
    EntityKind.EDGE_SET: SetSchema(
        count_dim=ex.DIM_NUM_EDGE_SET,
        ids_var=ex.VAR_EDGE_SET_IDS,
        status_var=ex.VAR_EDGE_SET_STAT,
        names_var=ex.VAR_NAME_EDGE_SET,
        entries_dim=ex.DIM_NUM_EDGE_EDGE_SET,
        entries_var=ex.VAR_EDGE_EDGE_SET,
        df_var=ex.VAR_DF_EDGE_SET,
        df_dim=ex.DIM_NUM_DF_EDGE_SET,
    ),
    EntityKind.FACE_SET: SetSchema(
        count_dim=ex.DIM_NUM_FACE_SET,
        ids_var=ex.VAR_FACE_SET_IDS,
        status_var=ex.VAR_FACE_SET_STAT,
        names_var=ex.VAR_NAME_FACE_SET,
        entries_dim=ex.DIM_NUM_FACE_FACE_SET,
        entries_var=ex.VAR_FACE_FACE_SET,
        df_var=ex.VAR_DF_FACE_SET,
        df_dim=ex.DIM_NUM_DF_FACE_SET,
    ),
}

VARIABLE_SCHEMAS = {
    EntityKind.GLOBAL: VariableSchema(
        count_dim=ex.DIM_NUM_GLO_VAR,
        names_var=ex.VAR_NAME_GLO_VAR,
        combined_var=ex.VAR_GLO_VAR,
    ),
    EntityKind.NODAL: VariableSchema(
        count_dim=ex.DIM_NUM_NODE_VAR,
        names_var=ex.VAR_NAME_NODE_VAR,
        values_var=lambda var, _pos: ex.VAR_NODE_VAR(var),
        combined_var="vals_nod_var",
    ),
    EntityKind.ELEM_BLOCK: VariableSchema(
        count_dim=ex.DIM_NUM_ELEM_VAR,
        names_var=ex.VAR_NAME_ELEM_VAR,
        table_var=ex.VAR_ELEM_TAB,
        values_var=ex.VAR_ELEM_VAR,
        combined_var="vals_elem_var",
    ),
    EntityKind.EDGE_BLOCK: VariableSchema(
        count_dim=ex.DIM_NUM_EDGE_VAR,
        names_var=ex.VAR_NAME_EDGE_VAR,
        table_var=ex.VAR_EDGE_BLK_TAB,
        values_var=ex.VAR_EDGE_VAR,
        combined_var="vals_edge_var",
    ),
    EntityKind.FACE_BLOCK: VariableSchema(
        count_dim=ex.DIM_NUM_FACE_VAR,
        names_var=ex.VAR_NAME_FACE_VAR,
        table_var=ex.VAR_FACE_BLK_TAB,
        values_var=ex.VAR_FACE_VAR,
        combined_var="vals_face_var",
    ),
    EntityKind.NODE_SET: VariableSchema(
        count_dim=ex.DIM_NUM_NODE_SET_VAR,
        names_var=ex.VAR_NAME_NODE_SET_VAR,
        table_var=ex.VAR_NODE_SET_TAB,
        values_var=ex.VAR_NODE_SET_VAR,
        combined_var="vals_nset_var",
    ),
    EntityKind.SIDE_SET: VariableSchema(
        count_dim=ex.DIM_NUM_SIDE_SET_VAR,
        names_var=ex.VAR_NAME_SIDE_SET_VAR,
        table_var=ex.VAR_SIDE_SET_TAB,
        values_var=ex.VAR_SIDE_SET_VAR,
        combined_var="vals_sset_var",
    ),
    EntityKind.ELEM_SET: VariableSchema(
        count_dim=ex.DIM_NUM_ELEM_SET_VAR,
        names_var=ex.VAR_NAME_ELEM_SET_VAR,
        table_var=ex.VAR_ELEM_SET_TAB,
        values_var=ex.VAR_ELEM_SET_VAR,
        combined_var="vals_elset_var",
    ),
}

ID_MAP_VARS = {
    EntityKind.NODE_MAP: (ex.VAR_NODE_NUM_MAP, ex.DIM_NUM_NODES),
    EntityKind.ELEM_MAP: (ex.VAR_ELEM_NUM_MAP, ex.DIM_NUM_ELEM),
    EntityKind.EDGE_MAP: (ex.VAR_EDGE_NUM_MAP, ex.DIM_NUM_EDGE),
    EntityKind.FACE_MAP: (ex.VAR_FACE_NUM_MAP, ex.DIM_NUM_FACE),
}

# element order map (ex_put_map)
ELEM_ORDER_MAP_VAR = "elem_map"

COORD_VARS = (ex.VAR_COORD_X, ex.VAR_COORD_Y, ex.VAR_COORD_Z)
AXIS_NAMES = ("x", "y", "z")

# Assemblies and blobs
ASSEMBLY_VAR = lambda num: ex.ex_catstr("assembly", num, "_entity_list")  # noqa: E731
ASSEMBLY_DIM = lambda num: ex.ex_catstr("num_entity_assembly", num)  # noqa: E731
BLOB_VAR = lambda num: ex.ex_catstr("blob", num, "_data")  # noqa: E731
BLOB_DIM = lambda num: ex.ex_catstr("num_bytes_blob", num)  # noqa: E731

# Attribute names reserved for the format's own bookkeeping
RESERVED_ATTRIBUTES = {
    "id", "name", "entity_type", ex.ATT_NAME_ELEM_TYPE, "_FillValue",
}


def entity_primary_var(kind: EntityKind, position: int) -> str:
    """Name of the array that carries user attributes for an entity."""
    if kind in BLOCK_SCHEMAS:
        return BLOCK_SCHEMAS[kind].conn_var(position)
    if kind in SET_SCHEMAS:
        return SET_SCHEMAS[kind].entries_var(position)
    raise ValueError(f"Attributes not supported for entity kind '{kind}'")


def parse_kind(kind) -> EntityKind:
    """Accept an EntityKind or its string value."""
    if isinstance(kind, EntityKind):
        return kind
    try:
        return EntityKind(str(kind).lower())
    except ValueError:
        valid = [k.value for k in EntityKind]
        raise ValueError(
            f"Unknown entity kind '{kind}'. Valid kinds: {valid}"
        ) from None
