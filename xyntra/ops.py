"""Operation catalog: per-op contracts unified in one place.

Each OpSpec describes what the validator needs to know about a
well-known op: how many inputs it takes and how its output shape follows
from its input shapes. Custom ops have no entry and no contract.

Adding a new well-known op: add an OpKind member and an OP_CATALOG entry.
"""

import logging
from dataclasses import dataclass
from typing import Callable

import numpy as np

from .ir import Custom, Graph, Op, OpKind, TensorShape, op_from_name, op_name  # noqa: F401

logger = logging.getLogger(__name__)


class ShapeMismatch(Exception):
    """Raised by a shape rule when its input shapes cannot be combined."""


# Shape rule: input shapes (one per input, in order) -> output shape
ShapeRule = Callable[[list[TensorShape]], TensorShape]


@dataclass(frozen=True)
class OpSpec:
    """Static contract of a well-known op.

    Fields:
        arity: Exact number of inputs the op consumes.
        shape: Derives the output shape from the input shapes, raising
            ShapeMismatch when they are incompatible. None = output shape
            equals the first input's shape (element-wise, softmax,
            layernorm, dropout).
    """
    arity: int
    shape: ShapeRule | None = None

    def output_shape(self, in_shapes: list[TensorShape]) -> TensorShape:
        if self.shape is None:
            return in_shapes[0]
        return self.shape(in_shapes)


# ---------------------------------------------------------------------------
# Shape rules
# ---------------------------------------------------------------------------

def _broadcast(a: tuple[int, ...], b: tuple[int, ...]) -> tuple[int, ...]:
    try:
        return tuple(np.broadcast_shapes(a, b))
    except ValueError as e:
        raise ShapeMismatch(str(e)) from e


def _shape_broadcast_binary(in_shapes: list[TensorShape]) -> TensorShape:
    """ADD: numpy broadcasting of both operands."""
    return TensorShape(_broadcast(in_shapes[0].dims, in_shapes[1].dims))


def _shape_matmul(in_shapes: list[TensorShape]) -> TensorShape:
    """MATMUL with numpy matmul semantics: (..., M, K) x (..., K, N) -> (..., M, N).

    A rank-1 operand contributes no M (first) or N (second) dimension.
    Batch dimensions broadcast.
    """
    a, b = in_shapes
    if a.is_scalar() or b.is_scalar():
        raise ShapeMismatch("matmul operands must have rank >= 1")

    k_b = b[-2] if b.rank() >= 2 else b[0]
    if a[-1] != k_b:
        raise ShapeMismatch(f"contracting dimensions differ: {a[-1]} vs {k_b}")

    batch = _broadcast(a.dims[:-2], b.dims[:-2])
    rows = a.dims[-2:-1]
    cols = b.dims[-1:] if b.rank() >= 2 else ()
    return TensorShape((*batch, *rows, *cols))


OP_CATALOG: dict[OpKind, OpSpec] = {
    OpKind.MATMUL:    OpSpec(arity=2, shape=_shape_matmul),
    OpKind.ADD:       OpSpec(arity=2, shape=_shape_broadcast_binary),
    OpKind.GELU:      OpSpec(arity=1),
    OpKind.DROPOUT:   OpSpec(arity=1),
    OpKind.SOFTMAX:   OpSpec(arity=1),
    OpKind.LAYERNORM: OpSpec(arity=1),
}


def op_spec(op: Op) -> OpSpec | None:
    """Catalog entry for op, or None for custom ops."""
    if isinstance(op, Custom):
        return None
    return OP_CATALOG[op]


def arity(op: Op) -> int | None:
    """Fixed input count of op, or None when it has no static contract."""
    spec = op_spec(op)
    return spec.arity if spec is not None else None


# ---------------------------------------------------------------------------
# Shape propagation
# ---------------------------------------------------------------------------

def infer_shapes(graph: Graph) -> int:
    """Propagate shape metadata along the graph's edges.

    Walks the graph in topological order. For every input whose producer
    has a known output shape, records that shape at the input's position
    (shapes the builder declared are kept). Then, for well-known ops with
    the right arity and every input shape known, derives the output shape
    when none was declared. Inputs the op's rule rejects leave the output
    shape unknown; the validator reports them.

    Graphs with a cycle or a dangling input reference are left untouched.

    Returns:
        The number of shapes filled in.
    """
    try:
        order = graph.topological_order()
    except ValueError:
        logger.warning("Skipping shape inference: graph has a cycle")
        return 0

    dangling = sorted({inp for node in order for inp in node.inputs if inp not in graph})
    if dangling:
        logger.warning("Skipping shape inference: missing nodes %s",
                       ", ".join(str(nid) for nid in dangling))
        return 0

    filled = 0
    for node in order:
        for pos, inp in enumerate(node.inputs):
            if pos in node.input_shapes:
                continue
            producer = graph.get_node(inp)
            if producer.output_shape is None:
                continue
            node.input_shapes[pos] = producer.output_shape
            filled += 1

        if node.output_shape is not None:
            continue
        spec = op_spec(node.op)
        if spec is None or len(node.inputs) != spec.arity:
            continue
        in_shapes = [node.input_shapes.get(pos) for pos in range(spec.arity)]
        if any(s is None for s in in_shapes):
            continue
        try:
            node.output_shape = spec.output_shape(in_shapes)
        except ShapeMismatch as e:
            logger.debug("Node %s (%s): cannot infer output shape: %s",
                         node.id, op_name(node.op), e)
            continue
        filled += 1

    return filled
