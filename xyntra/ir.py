"""Graph IR for the tensor compiler.

Node-centric design: edges are implicit in each node's input list. A node
names its producers by NodeID, and the Graph owns every node in an
id-keyed store, so node-to-node references are plain identifiers rather
than pointers.

add_node never validates. Builders importing from an external format
routinely add a node before the producer it references, so structural
checks run later as a separate, explicit phase (see xyntra.validation).
"""

import json
from collections import Counter, deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

import numpy as np

from .errors import InvalidFormat, MissingRequiredField

MAX_NODE_ID = 2**32 - 1


@dataclass(frozen=True, order=True)
class NodeID:
    """Opaque 32-bit node identifier.

    Only Graph.add_node hands these out: ids start at 0, increase by one
    per node and are never reused.
    """
    value: int

    def __post_init__(self) -> None:
        if not isinstance(self.value, int):
            raise TypeError(f"NodeID must wrap an int, got {type(self.value).__name__}")
        if not 0 <= self.value <= MAX_NODE_ID:
            raise ValueError(f"NodeID out of 32-bit range: {self.value}")

    def __int__(self) -> int:
        return self.value

    def __str__(self) -> str:
        return str(self.value)

    def __repr__(self) -> str:
        return f"NodeID({self.value})"


@dataclass(frozen=True)
class TensorShape:
    """Ordered, non-negative dimension extents. () is a scalar.

    A zero extent is legal and describes an empty tensor.
    """
    dims: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        dims = tuple(int(d) for d in self.dims)
        for d in dims:
            if d < 0:
                raise ValueError(f"Negative dimension in shape {list(dims)}")
        object.__setattr__(self, "dims", dims)

    def rank(self) -> int:
        return len(self.dims)

    def size(self) -> int:
        """Number of elements (empty product = 1)."""
        return int(np.prod(self.dims, dtype=object))

    def is_scalar(self) -> bool:
        return not self.dims

    def __len__(self) -> int:
        return len(self.dims)

    def __iter__(self) -> Iterator[int]:
        return iter(self.dims)

    def __getitem__(self, index: int) -> int:
        return self.dims[index]

    def __str__(self) -> str:
        return "[" + ", ".join(str(d) for d in self.dims) + "]"


class OpKind(Enum):
    """Well-known operations. Values are the display names used in diagnostics.

    Each member has a fixed contract in ops.OP_CATALOG. Anything else is
    expressed as Custom(name).
    """
    MATMUL    = "MatMul"
    ADD       = "Add"
    GELU      = "Gelu"
    DROPOUT   = "Dropout"
    SOFTMAX   = "Softmax"
    LAYERNORM = "LayerNorm"


@dataclass(frozen=True)
class Custom:
    """An operation outside the closed OpKind set. Carries no contract."""
    name: str

    def __str__(self) -> str:
        return self.name


Op = OpKind | Custom


def op_name(op: Op) -> str:
    """Display name of an operation (e.g. 'MatMul', or a custom op's name)."""
    if isinstance(op, OpKind):
        return op.value
    return op.name


@dataclass
class Node:
    """A single operation instance in the computation graph.

    `outputs` is caller-asserted metadata: it lists the nodes this one is
    expected to feed. The validator checks it against the consumers'
    input lists; Graph.consumers() gives the derived view.

    Shape metadata is optional. `input_shapes` maps an input position to
    the shape flowing along that edge; `output_shape` is the shape this
    node produces. ops.infer_shapes() fills both where it can.
    """
    id: NodeID
    op: Op
    inputs: list[NodeID]
    outputs: list[NodeID]

    input_shapes: dict[int, TensorShape] = field(default_factory=dict)
    output_shape: TensorShape | None = None


class Graph:
    """The computation graph: an id-keyed node store plus the next-id counter.

    The graph exclusively owns its nodes and only grows; there is no node
    removal. Not safe for concurrent mutation: one builder owns the graph
    while it is built, after which any number of validators may read it.
    """

    def __init__(self) -> None:
        self.nodes: dict[NodeID, Node] = {}
        self._next_id: int = 0

    # --- Builder methods ---

    def add_node(self, op: Op, inputs: list[NodeID], outputs: list[NodeID],
                 *, input_shapes: dict[int, TensorShape] | None = None,
                 output_shape: TensorShape | None = None) -> NodeID:
        """Add a node and return its newly assigned id.

        Never validates: inputs and outputs may reference nodes that do
        not exist yet (or ever).
        """
        node_id = NodeID(self._next_id)
        self._next_id += 1

        self.nodes[node_id] = Node(
            id=node_id,
            op=op,
            inputs=list(inputs),
            outputs=list(outputs),
            input_shapes=dict(input_shapes or {}),
            output_shape=output_shape,
        )

        return node_id

    # --- Lookups ---

    def get_node(self, node_id: NodeID) -> Node | None:
        """Return the node with this id, or None if it was never assigned."""
        return self.nodes.get(node_id)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def __len__(self) -> int:
        return len(self.nodes)

    def node_ids(self) -> list[NodeID]:
        """All assigned ids, ascending."""
        return sorted(self.nodes)

    def __iter__(self) -> Iterator[Node]:
        """Iterate over nodes in ascending id order."""
        for node_id in self.node_ids():
            yield self.nodes[node_id]

    def consumer_map(self) -> dict[NodeID, list[NodeID]]:
        """Producer id -> ids of the nodes that list it as an input.

        Rebuilt from the current input lists on every call, so edits made
        to a node after add_node() are always reflected. Consumer lists are
        ascending and unique; keys may name producers that do not exist.
        """
        consumers: dict[NodeID, list[NodeID]] = {}
        for node in self:
            for inp in dict.fromkeys(node.inputs):
                consumers.setdefault(inp, []).append(node.id)
        return consumers

    def consumers(self, node_id: NodeID) -> list[NodeID]:
        """Ids of the nodes that list node_id as an input (ascending)."""
        return self.consumer_map().get(node_id, [])

    # --- Topological ordering ---

    def topological_order(self) -> list[Node]:
        """Nodes in dependency order via Kahn's algorithm.

        Inputs that name missing nodes are ignored. Ties go to the lower id.

        Raises:
            ValueError: If the graph has a cycle.
        """
        in_degree: dict[NodeID, int] = {}
        for node in self:
            in_degree[node.id] = sum(1 for inp in set(node.inputs) if inp in self.nodes)

        consumers = self.consumer_map()
        queue = deque(nid for nid, deg in in_degree.items() if deg == 0)
        order: list[Node] = []

        while queue:
            nid = queue.popleft()
            order.append(self.nodes[nid])

            for consumer_id in consumers.get(nid, []):
                in_degree[consumer_id] -= 1
                if in_degree[consumer_id] == 0:
                    queue.append(consumer_id)

        if len(order) != len(self.nodes):
            raise ValueError("Graph has a cycle")
        return order

    # --- Summary ---

    def summary(self) -> str:
        """Human-readable summary of the graph structure."""
        n_edges = sum(len(node.inputs) for node in self.nodes.values())
        header = f"Graph: {len(self.nodes)} nodes, {n_edges} edges"

        op_counts = Counter(op_name(node.op) for node in self.nodes.values())
        ops_str = ", ".join(f"{name}: {cnt}" for name, cnt in op_counts.most_common())

        n_shaped = sum(1 for node in self.nodes.values() if node.output_shape is not None)
        return "\n".join([
            header,
            f"  Ops:    {ops_str}",
            f"  Shapes: {n_shaped}/{len(self.nodes)} nodes have an output shape",
        ])

    def dump(self) -> str:
        """Full node-by-node listing in id order."""
        lines = [self.summary(), ""]
        for node in self:
            inputs_str = ", ".join(str(i) for i in node.inputs)
            outputs_str = ", ".join(str(o) for o in node.outputs)
            shape_str = f" {node.output_shape}" if node.output_shape is not None else ""
            lines.append(
                f"  [{node.id.value:>3}] {op_name(node.op):<12} "
                f"({inputs_str}) -> ({outputs_str}){shape_str}"
            )
        return "\n".join(lines)

    # --- Serialization ---

    def to_dict(self) -> dict:
        """Serialize topology and shape metadata to a plain dict.

        Nodes are emitted in id order; custom ops are flagged so a custom
        op named like a well-known one round-trips as custom.
        """
        nodes = []
        for node in self:
            entry: dict[str, Any] = {
                "id": node.id.value,
                "op": op_name(node.op),
                "inputs": [i.value for i in node.inputs],
                "outputs": [o.value for o in node.outputs],
            }
            if isinstance(node.op, Custom):
                entry["custom"] = True
            if node.input_shapes:
                entry["input_shapes"] = {
                    str(pos): list(shape.dims)
                    for pos, shape in sorted(node.input_shapes.items())
                }
            if node.output_shape is not None:
                entry["output_shape"] = list(node.output_shape.dims)
            nodes.append(entry)
        return {"nodes": nodes}

    @classmethod
    def from_dict(cls, d: dict) -> "Graph":
        """Rebuild a Graph from to_dict() output.

        Node ids must be exactly 0..n-1 so that re-adding the nodes in id
        order reproduces the same identifiers.

        Raises:
            MissingRequiredField: A required key is absent.
            InvalidFormat: Values have the wrong type or ids are not dense.
        """
        if not isinstance(d, dict):
            raise InvalidFormat("graph", "top level must be an object")
        if "nodes" not in d:
            raise MissingRequiredField("nodes")
        if not isinstance(d["nodes"], list):
            raise InvalidFormat("graph", "'nodes' must be a list")

        graph = cls()
        entries = []
        for entry in d["nodes"]:
            if not isinstance(entry, dict):
                raise InvalidFormat("graph", f"node entry must be an object, got {entry!r}")
            for key in ("id", "op", "inputs", "outputs"):
                if key not in entry:
                    raise MissingRequiredField(f"nodes[].{key}")
            entries.append(entry)

        entries.sort(key=lambda e: e["id"] if isinstance(e["id"], int) else -1)
        for expected, entry in enumerate(entries):
            if entry["id"] != expected:
                raise InvalidFormat(
                    "graph", f"node ids must be 0..{len(entries) - 1}, "
                             f"found {entry['id']!r} at position {expected}")

            name = entry["op"]
            if not isinstance(name, str):
                raise InvalidFormat("graph", f"node {expected}: op must be a string")
            op = Custom(name) if entry.get("custom") else op_from_name(name)
            raw_shapes = entry.get("input_shapes", {})
            if not isinstance(raw_shapes, dict):
                raise InvalidFormat("graph", f"node {expected}: input_shapes must be an object")

            try:
                inputs = [NodeID(i) for i in entry["inputs"]]
                outputs = [NodeID(o) for o in entry["outputs"]]
                input_shapes = {
                    int(pos): TensorShape(dims)
                    for pos, dims in raw_shapes.items()
                }
                output_shape = entry.get("output_shape")
                if output_shape is not None:
                    output_shape = TensorShape(output_shape)
            except (TypeError, ValueError) as e:
                raise InvalidFormat("graph", f"node {expected}: {e}") from e

            graph.add_node(op, inputs, outputs,
                           input_shapes=input_shapes, output_shape=output_shape)

        return graph

    def save(self, path: str | Path) -> None:
        """Write the graph as JSON (topology and shape metadata)."""
        with open(Path(path), "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str | Path) -> "Graph":
        """Read a graph written by save().

        Raises:
            OSError: The file cannot be read.
            InvalidFormat: The file is not valid JSON or not a graph.
            MissingRequiredField: A required key is absent.
        """
        with open(Path(path), encoding="utf-8") as f:
            try:
                d = json.load(f)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise InvalidFormat("JSON", str(e)) from e
        return cls.from_dict(d)


def op_from_name(name: str) -> Op:
    """Inverse of op_name(): well-known names map to OpKind, the rest to Custom."""
    try:
        return OpKind(name)
    except ValueError:
        return Custom(name)
