"""
Error kinds raised by the Exodus mesh database engine.

Every error derives from ExodusError and from the builtin exception the
rest of the code base already raises for the same situation, so callers
that catch ValueError / RuntimeError keep working.
"""


class ExodusError(Exception):
    """Base class for all mesh database errors."""


class WrongPhase(ExodusError, RuntimeError):
    """Structural call in the data phase, or payload call in definition."""

    def __init__(self, operation: str, phase: str):
        self.operation = operation
        self.phase = phase
        super().__init__(
            f"'{operation}' is not allowed in the {phase} phase"
        )


class MeshNotInitialized(WrongPhase):
    """commit() called before the dimension and node count were set."""

    def __init__(self, missing):
        self.missing = list(missing)
        ExodusError.__init__(
            self,
            "Cannot commit: required parameters never set: "
            + ", ".join(self.missing)
        )
        self.operation = "commit"
        self.phase = "definition"


class WrongMode(ExodusError, RuntimeError):
    """Operation not permitted by the handle's access mode."""

    def __init__(self, operation: str, mode: str):
        self.operation = operation
        self.mode = mode
        super().__init__(
            f"'{operation}' is not permitted on a {mode}-mode handle"
        )


class LengthMismatch(ExodusError, ValueError):
    """Payload length differs from the declared length."""

    def __init__(self, expected: int, actual: int, what: str = "array"):
        self.expected = int(expected)
        self.actual = int(actual)
        super().__init__(
            f"{what} has length {self.actual}, expected {self.expected}"
        )


class VariableNotPresent(ExodusError, LookupError):
    """The truth table marks a (container, variable) pair as absent."""

    def __init__(self, kind, container_id: int, var_index: int):
        self.kind = kind
        self.container_id = container_id
        self.var_index = var_index
        super().__init__(
            f"Variable {var_index} is not stored on {kind} {container_id}"
        )


class InconsistentStorageFormat(ExodusError, RuntimeError):
    """Both combined and per-variable layouts exist for one family."""


class EntityNotFound(ExodusError, LookupError):
    """No entity with the given id exists for the kind."""

    def __init__(self, kind, entity_id):
        self.kind = kind
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"No {kind} declared")
        else:
            super().__init__(f"{kind} with ID {entity_id} not found")


class DuplicateEntity(ExodusError, ValueError):
    """An id or variable name was declared twice within one kind."""


class FieldTooLong(ExodusError, ValueError):
    """A string exceeds its fixed on-disk field width."""

    def __init__(self, max_length: int, actual: int, value: str = ""):
        self.max = int(max_length)
        self.actual = int(actual)
        self.value = value
        super().__init__(
            f"String {value!r} has {self.actual} characters, "
            f"maximum is {self.max}"
        )


class InvalidTopology(ExodusError, ValueError):
    """The element topology is not supported by the requested operation."""


class ContainerError(ExodusError, OSError):
    """Failure in the underlying netCDF container, with context."""
