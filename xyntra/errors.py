"""Diagnostics and errors for the IR layer.

Two families live here:

  * ValidationError variants are *diagnostics*. Validation passes return
    them in lists; they are never raised. Each variant is a frozen
    dataclass carrying the structured data needed to render one sentence
    without re-walking the graph.

  * XyntraError subclasses are *raised*. They cover gates that refuse a
    graph (ValidationFailed, in validation.core), malformed graph sources
    (ParsingError) and broken invariants inside the core (InternalError).
"""

from dataclasses import dataclass
from typing import Any


# ---------------------------------------------------------------------------
# Diagnostics (returned, not raised)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationError:
    """Base for every diagnostic a validation pass can report."""


def _at_node(node_id: Any) -> str:
    return f" (node {node_id})" if node_id is not None else ""


@dataclass(frozen=True)
class InvalidTensorShape(ValidationError):
    expected: str
    found: str
    node_id: Any = None

    def __str__(self) -> str:
        return (f"Invalid tensor shape{_at_node(self.node_id)}: expected {self.expected} "
                f"but found {self.found}.")


@dataclass(frozen=True)
class IncompatibleShapes(ValidationError):
    op: str
    shapes: tuple[str, ...]
    node_id: Any = None

    def __str__(self) -> str:
        return (f"Incompatible tensor shapes for operation '{self.op}'"
                f"{_at_node(self.node_id)}: shapes are {', '.join(self.shapes)}.")


@dataclass(frozen=True)
class InvalidNodeConnection(ValidationError):
    from_node: Any
    to_node: Any
    reason: str

    def __str__(self) -> str:
        return (f"Invalid connection from node {self.from_node} "
                f"to node {self.to_node}: {self.reason}.")


@dataclass(frozen=True)
class CyclicGraph(ValidationError):
    """A cycle, listed in DFS order starting at the re-entered node."""
    cycle_path: tuple[Any, ...]

    def __str__(self) -> str:
        nodes = ", ".join(str(n) for n in self.cycle_path)
        return f"Cyclic dependency detected in graph: nodes {nodes}."


@dataclass(frozen=True)
class MissingNode(ValidationError):
    node_id: Any

    def __str__(self) -> str:
        return f"Referenced node {self.node_id} does not exist in the graph."


@dataclass(frozen=True)
class InvalidOpInputCount(ValidationError):
    op: str
    expected: int
    found: int
    node_id: Any = None

    def __str__(self) -> str:
        return (f"Operation '{self.op}'{_at_node(self.node_id)} expects "
                f"{self.expected} inputs but received {self.found}.")


@dataclass(frozen=True)
class InvalidConfigValue(ValidationError):
    field: str
    value: str
    reason: str

    def __str__(self) -> str:
        return (f"Invalid configuration value for '{self.field}': "
                f"'{self.value}' is not valid because {self.reason}.")


@dataclass(frozen=True)
class InvalidFilePath(ValidationError):
    path: str
    reason: str

    def __str__(self) -> str:
        return f"Invalid file path '{self.path}': {self.reason}."


@dataclass(frozen=True)
class InvalidGPUParameter(ValidationError):
    parameter: str
    value: int
    valid_range: str

    def __str__(self) -> str:
        return (f"Invalid GPU parameter '{self.parameter}': {self.value} "
                f"is outside valid range {self.valid_range}.")


# ---------------------------------------------------------------------------
# Raised errors
# ---------------------------------------------------------------------------

class XyntraError(Exception):
    """Base class for every error xyntra raises."""


class ParsingError(XyntraError):
    """A graph source (file, dict, traced module) could not be read."""


class InvalidFormat(ParsingError):

    def __init__(self, format: str, reason: str) -> None:
        self.format = format
        self.reason = reason
        super().__init__(f"Invalid {format} format: {reason}")


class MissingRequiredField(ParsingError):

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Missing required field '{field}'")


class UnsupportedOperation(ParsingError):

    def __init__(self, op_name: str) -> None:
        self.op_name = op_name
        super().__init__(f"Unsupported operation '{op_name}'")


class InternalError(XyntraError):
    """An invariant inside xyntra itself was broken. Always a bug."""
