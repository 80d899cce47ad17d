"""
Value types for the mesh database: blocks, sets, provenance records,
assemblies, blobs, attributes and the variable truth table.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Optional

import numpy as np

from exodus_errors import FieldTooLong, LengthMismatch
from exodus_schema import EntityKind, MAX_LINE_LENGTH, MAX_NAME_LENGTH


def check_width(value: str, max_length: int) -> str:
    """Return ``value`` unchanged or raise FieldTooLong."""
    value = str(value)
    if len(value) > max_length:
        raise FieldTooLong(max_length, len(value), value)
    return value


def check_name(value: str) -> str:
    return check_width(value, MAX_NAME_LENGTH)


def check_line(value: str) -> str:
    return check_width(value, MAX_LINE_LENGTH)


@dataclass
class Block:
    """
    A homogeneous group of elements (or edges, faces) of one topology.

    Connectivity has ``num_entries * nodes_per_entry`` 1-based node ids.
    """
    id: int
    topology: str
    num_entries: int
    nodes_per_entry: int
    num_edges_per_entry: int = 0
    num_faces_per_entry: int = 0
    num_attributes: int = 0
    name: str = ""

    def __post_init__(self):
        self.id = int(self.id)
        self.num_entries = int(self.num_entries)
        self.nodes_per_entry = int(self.nodes_per_entry)
        if self.num_entries < 0 or self.nodes_per_entry < 0:
            raise ValueError(
                f"Block {self.id}: entry and node counts must be >= 0"
            )
        check_name(self.topology)
        check_name(self.name)

    @property
    def connectivity_length(self) -> int:
        return self.num_entries * self.nodes_per_entry


@dataclass
class EntitySet:
    """
    A node, edge, face, element or side set.

    ``num_dist_factors`` is either 0 or, for node/edge/face/element sets,
    equal to ``num_entries``; side sets may carry one factor per face node.
    """
    id: int
    num_entries: int
    num_dist_factors: int = 0
    name: str = ""

    def __post_init__(self):
        self.id = int(self.id)
        self.num_entries = int(self.num_entries)
        self.num_dist_factors = int(self.num_dist_factors)
        check_name(self.name)


@dataclass
class SetData:
    """Membership of one set as read from or written to a database."""
    id: int
    entries: np.ndarray
    dist_factors: Optional[np.ndarray] = None
    sides: Optional[np.ndarray] = None
    name: str = ""

    def __len__(self):
        return len(self.entries)


@dataclass
class SideSetData:
    """(element, side) pairs produced by sideset derivation."""
    id: int
    elements: List[int] = field(default_factory=list)
    sides: List[int] = field(default_factory=list)

    def __len__(self):
        return len(self.elements)

    def pairs(self):
        return list(zip(self.elements, self.sides))


class QARecord(NamedTuple):
    code_name: str
    version: str
    date: str
    time: str

    def validated(self) -> "QARecord":
        return QARecord(*(check_name(f) for f in self))


class AttributeType(Enum):
    INTEGER = "integer"
    DOUBLE = "double"
    CHAR = "char"


@dataclass
class Attribute:
    """Named value attached to an entity."""
    name: str
    type: AttributeType
    value: object

    @classmethod
    def infer(cls, name: str, value) -> "Attribute":
        """Tag a raw value: str is CHAR, integral arrays INTEGER, else DOUBLE."""
        if isinstance(value, (str, bytes)):
            if isinstance(value, bytes):
                value = value.decode()
            return cls(name, AttributeType.CHAR, value)
        arr = np.atleast_1d(np.asarray(value))
        if np.issubdtype(arr.dtype, np.integer):
            return cls(name, AttributeType.INTEGER, arr.astype(np.int32))
        return cls(name, AttributeType.DOUBLE, arr.astype(np.float64))

    def encoded(self):
        if self.type is AttributeType.CHAR:
            return str(self.value)
        if self.type is AttributeType.INTEGER:
            return np.atleast_1d(np.asarray(self.value, dtype=np.int32))
        return np.atleast_1d(np.asarray(self.value, dtype=np.float64))


@dataclass
class Assembly:
    """Named grouping of entity ids of one kind."""
    id: int
    name: str
    entity_kind: EntityKind
    entity_ids: List[int] = field(default_factory=list)

    def __post_init__(self):
        check_name(self.name)


@dataclass
class Blob:
    """Named opaque byte payload."""
    id: int
    name: str
    data: bytes = b""

    def __post_init__(self):
        check_name(self.name)


class TruthTable:
    """
    Dense presence matrix of shape (num_containers, num_vars).

    Defaults to all-true; ``narrow`` replaces it with an explicit table.
    Rows follow the container declaration order, columns the variable
    definition order.
    """

    def __init__(self, num_containers: int = 0, num_vars: int = 0):
        self._table = np.ones((num_containers, num_vars), dtype=bool)

    @property
    def shape(self) -> tuple:
        return self._table.shape

    def resize(self, num_containers: int, num_vars: int) -> None:
        """Grow the table; new rows and columns default to present."""
        rows, cols = self._table.shape
        table = np.ones((num_containers, num_vars), dtype=bool)
        keep_r, keep_c = min(rows, num_containers), min(cols, num_vars)
        table[:keep_r, :keep_c] = self._table[:keep_r, :keep_c]
        self._table = table

    def narrow(self, table) -> None:
        table = np.asarray(table, dtype=bool)
        if table.shape != self._table.shape:
            raise LengthMismatch(
                self._table.size, table.size,
                what=f"truth table of shape {table.shape} "
                     f"(declared {self._table.shape})"
            )
        self._table = table.copy()

    def is_present(self, container_pos: int, var_index: int) -> bool:
        return bool(self._table[container_pos, var_index])

    def as_array(self) -> np.ndarray:
        return self._table.copy()
