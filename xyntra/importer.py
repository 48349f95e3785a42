"""PyTorch importer: torch.nn.Module -> xyntra Graph.

Uses torch.fx.symbolic_trace to capture the module, then maps each fx
node to exactly one IR node via the handler tables below. fx graphs are
already in topological order, so node ids are known before any node is
added and each node's outputs can be filled from its fx users up front.

Key mapping decisions:
  - placeholder -> Custom("Input"), get_attr -> Custom("Constant"),
    output -> Custom("Output")
  - matmul / @ / mm / bmm -> MatMul; add / + -> Add (a scalar operand
    makes it Custom("AddScalar"), which has no arity contract)
  - layer_norm's weight and bias are op parameters, not dataflow inputs:
    only the normalised tensor becomes an input
  - anything unmapped -> Custom(<target name>), or UnsupportedOperation
    when strict=True

Shapes are attached only when example inputs are given (via ShapeProp).
"""

import operator
from typing import Any

import torch
import torch.nn as nn
import torch.nn.functional as F
from torch.fx import GraphModule, symbolic_trace
from torch.fx.node import Node as FxNode, map_arg
from torch.fx.passes.shape_prop import ShapeProp

from .errors import InternalError, UnsupportedOperation
from .ir import Custom, Graph, NodeID, Op, OpKind, TensorShape

FUNCTION_OPS: dict[Any, OpKind] = {
    torch.matmul:     OpKind.MATMUL,
    torch.mm:         OpKind.MATMUL,
    torch.bmm:        OpKind.MATMUL,
    operator.matmul:  OpKind.MATMUL,
    torch.add:        OpKind.ADD,
    operator.add:     OpKind.ADD,
    F.gelu:           OpKind.GELU,
    F.dropout:        OpKind.DROPOUT,
    F.softmax:        OpKind.SOFTMAX,
    torch.softmax:    OpKind.SOFTMAX,
    F.layer_norm:     OpKind.LAYERNORM,
}

METHOD_OPS: dict[str, OpKind] = {
    "matmul":  OpKind.MATMUL,
    "add":     OpKind.ADD,
    "softmax": OpKind.SOFTMAX,
}

MODULE_OPS: dict[type, OpKind] = {
    nn.GELU:      OpKind.GELU,
    nn.Dropout:   OpKind.DROPOUT,
    nn.Softmax:   OpKind.SOFTMAX,
    nn.LayerNorm: OpKind.LAYERNORM,
}

# Structural fx nodes that always map to the same custom op
_STRUCTURAL = {
    "placeholder": Custom("Input"),
    "get_attr":    Custom("Constant"),
    "output":      Custom("Output"),
}


def import_module(
    module: nn.Module,
    example_inputs: tuple | None = None,
    strict: bool = False,
) -> Graph:
    """Trace a PyTorch module into a Graph.

    Args:
        module: The module to import. Traced in eval mode.
        example_inputs: Example tensors for shape propagation. Without
            them the graph carries no shape metadata.
        strict: Raise on ops outside the well-known set instead of
            importing them as custom ops.

    Returns:
        A Graph with one node per fx node, not yet validated.

    Raises:
        UnsupportedOperation: strict=True and an op has no mapping.
    """
    module.eval()
    gm = symbolic_trace(module)
    if example_inputs is not None:
        with torch.no_grad():
            ShapeProp(gm).propagate(*example_inputs)
    return _import_graph_module(gm, strict)


def _import_graph_module(gm: GraphModule, strict: bool) -> Graph:
    fx_nodes = list(gm.graph.nodes)
    ids = {fx_node: NodeID(i) for i, fx_node in enumerate(fx_nodes)}

    graph = Graph()
    for fx_node in fx_nodes:
        op = _map_op(fx_node, gm, strict)
        args = _tensor_args(fx_node)
        if op == OpKind.LAYERNORM:
            args = args[:1]
        elif op == OpKind.ADD and len(args) < 2:
            op = Custom("AddScalar")

        inputs = [ids[a] for a in args]
        outputs = sorted(ids[user] for user in fx_node.users)
        node_id = graph.add_node(op, inputs, outputs, output_shape=_output_shape(fx_node))
        if node_id != ids[fx_node]:
            raise InternalError(
                f"fx node {fx_node.name} was assigned {node_id}, expected {ids[fx_node]}")

    # Edge shapes come from the producers' output shapes
    for node in graph:
        for pos, inp in enumerate(node.inputs):
            shape = graph.nodes[inp].output_shape
            if shape is not None:
                node.input_shapes[pos] = shape

    return graph


def _map_op(fx_node: FxNode, gm: GraphModule, strict: bool) -> Op:
    """Map an fx node to an IR op."""
    if fx_node.op in _STRUCTURAL:
        return _STRUCTURAL[fx_node.op]

    if fx_node.op == "call_function":
        op = FUNCTION_OPS.get(fx_node.target)
        name = getattr(fx_node.target, "__name__", str(fx_node.target))
    elif fx_node.op == "call_method":
        op = METHOD_OPS.get(fx_node.target)
        name = str(fx_node.target)
    elif fx_node.op == "call_module":
        submodule = gm.get_submodule(fx_node.target)
        op = MODULE_OPS.get(type(submodule))
        name = type(submodule).__name__
    else:
        raise UnsupportedOperation(f"{fx_node.op}:{fx_node.target}")

    if op is not None:
        return op
    if strict:
        raise UnsupportedOperation(name)
    return Custom(name)


def _tensor_args(fx_node: FxNode) -> list[FxNode]:
    """fx nodes among the node's args and kwargs, in argument order.

    Literal arguments (dims, probabilities, scalars) are not dataflow.
    """
    found: list[FxNode] = []
    map_arg((fx_node.args, fx_node.kwargs), found.append)
    return found


def _output_shape(fx_node: FxNode) -> TensorShape | None:
    """Output shape recorded by ShapeProp, if the node produced one tensor."""
    meta = fx_node.meta.get("tensor_meta")
    shape = getattr(meta, "shape", None)
    if not isinstance(shape, torch.Size):
        return None
    return TensorShape(tuple(shape))
