"""Graph-level validators (Phase.GRAPH).

Four passes, registered in the order they run:

    node_references        every referenced id names a node in the graph
    cycles                 the dataflow graph is acyclic
    operation_constraints  arity and, where shapes are known, shape contracts
    node_connections       declared outputs agree with consumers' inputs

Every pass reads the graph only and collects all defects it finds.
GraphValidator bundles them behind one object per graph.
"""

import logging

from ..errors import (
    CyclicGraph, IncompatibleShapes, InternalError, InvalidNodeConnection,
    InvalidOpInputCount, InvalidTensorShape, MissingNode, ValidationError,
)
from ..ir import Graph, Node, NodeID, op_name
from ..ops import OpSpec, ShapeMismatch, op_spec
from .core import Phase, ValidationFailed, register_validator, run_validators

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Referential integrity
# ---------------------------------------------------------------------------

@register_validator("node_references", Phase.GRAPH)
def check_node_references(graph: Graph) -> list[ValidationError]:
    """Every input and output id must name a node in the graph.

    Runs first: once it reports nothing, later passes can rely on every
    reference resolving. When it does report something the later passes
    still run, and the cycle pass simply ignores edges from missing
    producers, so its findings are best-effort on such graphs.
    """
    errors: list[ValidationError] = []
    for node in graph:
        for ref in (*node.inputs, *node.outputs):
            if ref not in graph:
                errors.append(MissingNode(node_id=ref))
    return errors


# ---------------------------------------------------------------------------
# Cycle detection
# ---------------------------------------------------------------------------

_UNVISITED, _IN_PROGRESS, _DONE = 0, 1, 2


@register_validator("cycles", Phase.GRAPH)
def check_cycles(graph: Graph) -> list[ValidationError]:
    """Report every cycle closed by a DFS back-edge.

    Edges run from each input to the node consuming it. Three-colour DFS,
    roots and successors in ascending id order. Iterative, so long chains
    don't hit the recursion limit.

    A back-edge to an in-progress node closes a cycle: the reported path
    is the DFS stack from that node to the current one. A self-loop is a
    path of one node.
    """
    errors: list[ValidationError] = []
    successors = graph.consumer_map()
    state = {nid: _UNVISITED for nid in graph.node_ids()}

    for root in graph.node_ids():
        if state[root] != _UNVISITED:
            continue

        state[root] = _IN_PROGRESS
        path: list[NodeID] = [root]
        depth: dict[NodeID, int] = {root: 0}  # position of each in-progress node in path
        frames = [iter(successors.get(root, []))]

        while frames:
            nxt = next(frames[-1], None)
            if nxt is None:
                finished = path.pop()
                del depth[finished]
                state[finished] = _DONE
                frames.pop()
                continue

            if state[nxt] == _UNVISITED:
                state[nxt] = _IN_PROGRESS
                depth[nxt] = len(path)
                path.append(nxt)
                frames.append(iter(successors.get(nxt, [])))
            elif state[nxt] == _IN_PROGRESS:
                errors.append(_close_cycle(path, depth, nxt))

    return errors


def _close_cycle(path: list[NodeID], depth: dict[NodeID, int],
                 target: NodeID) -> CyclicGraph:
    """Cycle closed by a back-edge from path[-1] to target."""
    start = depth.get(target)
    if start is None:
        raise InternalError(
            f"Back-edge {path[-1]} -> {target} targets a node "
            f"that is not on the DFS stack")
    return CyclicGraph(cycle_path=tuple(path[start:]))


# ---------------------------------------------------------------------------
# Operation constraints
# ---------------------------------------------------------------------------

@register_validator("operation_constraints", Phase.GRAPH)
def check_operation_constraints(graph: Graph) -> list[ValidationError]:
    """Check well-known ops against their catalog contract.

    Arity is always checked. Custom ops have no contract and are skipped.
    Shape contracts are only checked where shape metadata exists; see
    _check_shapes.
    """
    errors: list[ValidationError] = []
    for node in graph:
        spec = op_spec(node.op)
        if spec is None:
            continue

        if len(node.inputs) != spec.arity:
            errors.append(InvalidOpInputCount(
                op=op_name(node.op), expected=spec.arity,
                found=len(node.inputs), node_id=node.id))
            continue

        errors.extend(_check_shapes(graph, node, spec))
    return errors


def _check_shapes(graph: Graph, node: Node, spec: OpSpec) -> list[ValidationError]:
    """Shape half of the operation contract.

    An input's shape is the one declared on the edge, else the producer's
    output shape. If any input shape is unknown the contract cannot be
    judged and nothing is reported for this node: graphs without shape
    metadata get arity checks only. Run ops.infer_shapes() first to
    populate what can be derived.
    """
    errors: list[ValidationError] = []
    name = op_name(node.op)

    in_shapes = []
    for pos, inp in enumerate(node.inputs):
        declared = node.input_shapes.get(pos)
        producer = graph.get_node(inp)
        produced = producer.output_shape if producer is not None else None
        if declared is not None and produced is not None and declared != produced:
            errors.append(InvalidTensorShape(
                expected=str(produced), found=str(declared), node_id=node.id))
        in_shapes.append(declared if declared is not None else produced)

    if any(s is None for s in in_shapes):
        logger.debug("Node %s (%s): shape metadata incomplete, shape contract not checked",
                     node.id, name)
        return errors

    try:
        derived = spec.output_shape(in_shapes)
    except ShapeMismatch:
        errors.append(IncompatibleShapes(
            op=name, shapes=tuple(str(s) for s in in_shapes), node_id=node.id))
        return errors

    if node.output_shape is not None and node.output_shape != derived:
        errors.append(InvalidTensorShape(
            expected=str(derived), found=str(node.output_shape), node_id=node.id))
    return errors


# ---------------------------------------------------------------------------
# Declared outputs vs. actual consumers
# ---------------------------------------------------------------------------

@register_validator("node_connections", Phase.GRAPH)
def check_node_connections(graph: Graph) -> list[ValidationError]:
    """Every declared output must actually consume the declaring node.

    Outputs are caller-asserted; an empty list asserts nothing. Outputs
    naming missing nodes are node_references' concern and skipped here.
    """
    errors: list[ValidationError] = []
    for node in graph:
        for out in node.outputs:
            consumer = graph.get_node(out)
            if consumer is None:
                continue
            if node.id not in consumer.inputs:
                errors.append(InvalidNodeConnection(
                    from_node=node.id, to_node=out,
                    reason=f"node {out} does not list node {node.id} as an input"))
    return errors


# ---------------------------------------------------------------------------
# Validator facade
# ---------------------------------------------------------------------------

class GraphValidator:
    """Runs the graph passes over one (read-only) graph.

    Each pass is exposed on its own; validate() runs all of them. Passes
    never mutate the graph, so a validator may be run any number of times
    and several validators may share one graph.
    """

    def __init__(self, graph: Graph) -> None:
        self._graph = graph

    @property
    def graph(self) -> Graph:
        return self._graph

    def validate_node_references(self) -> list[ValidationError]:
        return check_node_references(self._graph)

    def detect_cycles(self) -> list[ValidationError]:
        return check_cycles(self._graph)

    def validate_operation_constraints(self) -> list[ValidationError]:
        return check_operation_constraints(self._graph)

    def validate_node_connections(self) -> list[ValidationError]:
        return check_node_connections(self._graph)

    def validate(self, parallel: bool = False) -> list[ValidationError]:
        """Run every pass, even after failures, and combine the results.

        Returns:
            All diagnostics in pass order, then discovery order. An empty
            list means the graph may be lowered.
        """
        return run_validators(Phase.GRAPH, self._graph, parallel=parallel)

    def require_valid(self, parallel: bool = False) -> None:
        """Gate for lowering stages.

        Raises:
            ValidationFailed: If validate() reports anything.
        """
        errors = self.validate(parallel=parallel)
        if errors:
            raise ValidationFailed(Phase.GRAPH, errors)


def validate_graph(graph: Graph, parallel: bool = False) -> list[ValidationError]:
    """Validate a graph in one call. Empty list = safe to lower."""
    return GraphValidator(graph).validate(parallel=parallel)
