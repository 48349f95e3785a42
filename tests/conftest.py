"""Shared fixtures and graph builders for the test suite.

pytest discovers conftest.py automatically — fixtures defined here are
available to all test files in this directory without explicit imports.
"""

import pytest

from xyntra.ir import Custom, Graph, NodeID, OpKind, TensorShape


# ---------------------------------------------------------------------------
# Graph builders
# ---------------------------------------------------------------------------

def build_simple_graph() -> Graph:
    """Input, Input -> MatMul -> Output."""
    g = Graph()
    a = g.add_node(Custom("Input"), [], [])
    b = g.add_node(Custom("Input"), [], [])
    mm = g.add_node(OpKind.MATMUL, [a, b], [])
    g.add_node(Custom("Output"), [mm], [])
    return g


def build_mlp_graph() -> Graph:
    """Two inputs -> MatMul -> Gelu -> Dropout -> LayerNorm -> Softmax -> Output.

    Outputs are declared and consistent with every consumer.
    """
    g = Graph()
    x = g.add_node(Custom("Input"), [], [NodeID(2)])
    w = g.add_node(Custom("Constant"), [], [NodeID(2)])
    mm = g.add_node(OpKind.MATMUL, [x, w], [NodeID(3)])
    gelu = g.add_node(OpKind.GELU, [mm], [NodeID(4)])
    drop = g.add_node(OpKind.DROPOUT, [gelu], [NodeID(5)])
    ln = g.add_node(OpKind.LAYERNORM, [drop], [NodeID(6)])
    sm = g.add_node(OpKind.SOFTMAX, [ln], [NodeID(7)])
    g.add_node(Custom("Output"), [sm], [])
    return g


def build_shaped_graph(x_shape=(4, 8), w_shape=(8, 16), b_shape=(16,)) -> Graph:
    """x @ w + b -> Gelu, with shapes declared on the source nodes only."""
    g = Graph()
    x = g.add_node(Custom("Input"), [], [], output_shape=TensorShape(x_shape))
    w = g.add_node(Custom("Constant"), [], [], output_shape=TensorShape(w_shape))
    b = g.add_node(Custom("Constant"), [], [], output_shape=TensorShape(b_shape))
    mm = g.add_node(OpKind.MATMUL, [x, w], [])
    add = g.add_node(OpKind.ADD, [mm, b], [])
    g.add_node(OpKind.GELU, [add], [])
    return g


def build_chain(n: int) -> Graph:
    """Linear chain of n nodes: Input -> Gelu -> Gelu -> ..."""
    g = Graph()
    prev = g.add_node(Custom("Input"), [], [])
    for _ in range(n - 1):
        prev = g.add_node(OpKind.GELU, [prev], [])
    return g


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def simple_graph() -> Graph:
    return build_simple_graph()


@pytest.fixture
def mlp_graph() -> Graph:
    return build_mlp_graph()


@pytest.fixture
def shaped_graph() -> Graph:
    return build_shaped_graph()
