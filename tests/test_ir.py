"""Tests for the IR primitives and the Graph container.

Covers NodeID/TensorShape semantics, id assignment, lookup,
derived connectivity, ordering, and JSON round-trips.
"""

import json

import pytest

from xyntra.errors import InvalidFormat, MissingRequiredField
from xyntra.ir import (
    MAX_NODE_ID, Custom, Graph, NodeID, OpKind, TensorShape, op_from_name, op_name,
)

from conftest import build_chain, build_mlp_graph


# ===========================================================================
# Primitives
# ===========================================================================

class TestNodeID:

    def test_ordering_and_hashing(self):
        assert NodeID(1) < NodeID(2)
        assert NodeID(3) == NodeID(3)
        assert len({NodeID(0), NodeID(0), NodeID(1)}) == 2

    def test_renders_raw_value(self):
        assert str(NodeID(42)) == "42"
        assert int(NodeID(42)) == 42

    def test_full_32_bit_range(self):
        assert NodeID(MAX_NODE_ID).value == 2**32 - 1

    @pytest.mark.parametrize("value", [-1, 2**32])
    def test_out_of_range_rejected(self, value):
        with pytest.raises(ValueError):
            NodeID(value)

    def test_non_int_rejected(self):
        with pytest.raises(TypeError):
            NodeID(1.5)


class TestTensorShape:

    def test_rank_and_size(self):
        shape = TensorShape((2, 3, 4))
        assert shape.rank() == 3
        assert shape.size() == 24
        assert not shape.is_scalar()

    def test_scalar(self):
        shape = TensorShape(())
        assert shape.rank() == 0
        assert shape.size() == 1
        assert shape.is_scalar()

    def test_rank_one_of_one_is_not_scalar(self):
        shape = TensorShape((1,))
        assert shape.rank() == 1
        assert shape.size() == 1
        assert not shape.is_scalar()

    def test_zero_extent_is_empty_tensor(self):
        """A zero dimension is valid and means zero elements."""
        assert TensorShape((3, 0, 5)).size() == 0

    def test_size_is_exact_beyond_int64(self):
        shape = TensorShape((2**32, 2**32, 3))
        assert shape.size() == 3 * 2**64
        assert isinstance(shape.size(), int)

    def test_negative_extent_rejected(self):
        with pytest.raises(ValueError):
            TensorShape((2, -1))

    def test_list_input_normalised(self):
        assert TensorShape([2, 3]) == TensorShape((2, 3))
        assert hash(TensorShape([2, 3])) == hash(TensorShape((2, 3)))

    def test_indexing_and_str(self):
        shape = TensorShape((2, 3))
        assert shape[-1] == 3
        assert list(shape) == [2, 3]
        assert len(shape) == 2
        assert str(shape) == "[2, 3]"


class TestOpNames:

    def test_well_known_names(self):
        assert op_name(OpKind.MATMUL) == "MatMul"
        assert op_name(OpKind.LAYERNORM) == "LayerNorm"

    def test_custom_name(self):
        assert op_name(Custom("Conv2d")) == "Conv2d"

    def test_from_name(self):
        assert op_from_name("Softmax") is OpKind.SOFTMAX
        assert op_from_name("Conv2d") == Custom("Conv2d")


# ===========================================================================
# Graph construction and lookup
# ===========================================================================

class TestGraph:

    def test_empty_graph(self):
        g = Graph()
        assert len(g) == 0
        assert g.get_node(NodeID(0)) is None

    def test_first_id_is_zero(self):
        g = Graph()
        assert g.add_node(OpKind.MATMUL, [], []) == NodeID(0)

    def test_ids_are_sequential(self):
        g = Graph()
        ids = [g.add_node(OpKind.GELU, [], []) for _ in range(10)]
        assert ids == [NodeID(i) for i in range(10)]

    def test_round_trip(self):
        """get_node returns exactly what was inserted."""
        g = Graph()
        a = g.add_node(Custom("Input"), [], [NodeID(1)])
        b = g.add_node(OpKind.ADD, [a, a], [])

        node = g.get_node(b)
        assert node.id == b
        assert node.op is OpKind.ADD
        assert node.inputs == [a, a]
        assert node.outputs == []
        assert g.get_node(a).outputs == [NodeID(1)]

    @pytest.mark.parametrize("value", [0, 1, 42, 2**32 - 1])
    def test_unknown_ids_return_none(self, value):
        g = Graph()
        assert g.get_node(NodeID(value)) is None

    def test_unassigned_id_after_nodes(self):
        g = build_chain(3)
        assert g.get_node(NodeID(3)) is None
        assert g.get_node(NodeID(MAX_NODE_ID)) is None

    def test_add_node_never_validates(self):
        """Forward and dangling references are accepted at insertion time."""
        g = Graph()
        a = g.add_node(OpKind.GELU, [NodeID(1)], [NodeID(99)])
        b = g.add_node(Custom("Input"), [], [a])
        assert g.get_node(a).inputs == [b]

    def test_inputs_are_copied(self):
        inputs = [NodeID(0)]
        g = Graph()
        g.add_node(Custom("Input"), [], [])
        nid = g.add_node(OpKind.GELU, inputs, [])
        inputs.append(NodeID(5))
        assert g.get_node(nid).inputs == [NodeID(0)]

    def test_contains_and_iteration_order(self):
        g = build_chain(4)
        assert NodeID(3) in g
        assert NodeID(4) not in g
        assert [n.id for n in g] == [NodeID(i) for i in range(4)]

    def test_consumers_derived_from_inputs(self):
        g = Graph()
        x = g.add_node(Custom("Input"), [], [])
        a = g.add_node(OpKind.GELU, [x], [])
        b = g.add_node(OpKind.ADD, [x, x], [])
        assert g.consumers(x) == [a, b]
        assert g.consumers(b) == []

    def test_consumers_of_forward_reference(self):
        g = Graph()
        a = g.add_node(OpKind.GELU, [NodeID(1)], [])
        g.add_node(Custom("Input"), [], [])
        assert g.consumers(NodeID(1)) == [a]

    def test_consumers_follow_edits_after_insertion(self):
        g = Graph()
        x = g.add_node(Custom("Input"), [], [])
        a = g.add_node(OpKind.GELU, [x], [])
        b = g.add_node(OpKind.GELU, [x], [])
        g.get_node(b).inputs[0] = a
        assert g.consumers(x) == [a]
        assert g.consumers(a) == [b]
        assert [n.id for n in g.topological_order()] == [x, a, b]


class TestTopologicalOrder:

    def test_chain(self):
        g = build_chain(5)
        assert [n.id.value for n in g.topological_order()] == [0, 1, 2, 3, 4]

    def test_forward_reference_ordered_after_producer(self):
        g = Graph()
        g.add_node(OpKind.GELU, [NodeID(1)], [])
        g.add_node(Custom("Input"), [], [])
        assert [n.id.value for n in g.topological_order()] == [1, 0]

    def test_dangling_inputs_ignored(self):
        g = Graph()
        g.add_node(OpKind.GELU, [NodeID(7)], [])
        assert len(g.topological_order()) == 1

    def test_cycle_raises(self):
        g = Graph()
        g.add_node(OpKind.GELU, [NodeID(1)], [])
        g.add_node(OpKind.GELU, [NodeID(0)], [])
        with pytest.raises(ValueError, match="cycle"):
            g.topological_order()


class TestSummary:

    def test_summary_counts(self):
        text = build_mlp_graph().summary()
        assert "8 nodes" in text
        assert "MatMul: 1" in text

    def test_dump_lists_every_node(self):
        g = build_mlp_graph()
        lines = g.dump().splitlines()
        assert sum(1 for line in lines if line.strip().startswith("[")) == len(g)


# ===========================================================================
# Serialization
# ===========================================================================

class TestSerialization:

    def test_dict_round_trip(self):
        g = build_mlp_graph()
        g.get_node(NodeID(0)).output_shape = TensorShape((4, 8))
        g.get_node(NodeID(2)).input_shapes[0] = TensorShape((4, 8))

        restored = Graph.from_dict(g.to_dict())
        assert len(restored) == len(g)
        for node in g:
            other = restored.get_node(node.id)
            assert other == node

    def test_custom_named_like_well_known_op(self):
        g = Graph()
        g.add_node(Custom("MatMul"), [], [])
        restored = Graph.from_dict(g.to_dict())
        assert restored.get_node(NodeID(0)).op == Custom("MatMul")

    def test_save_load(self, tmp_path):
        g = build_mlp_graph()
        path = tmp_path / "model.json"
        g.save(path)
        restored = Graph.load(path)
        assert restored.to_dict() == g.to_dict()

    def test_missing_nodes_key(self):
        with pytest.raises(MissingRequiredField):
            Graph.from_dict({})

    def test_missing_node_field(self):
        with pytest.raises(MissingRequiredField, match="inputs"):
            Graph.from_dict({"nodes": [{"id": 0, "op": "Gelu", "outputs": []}]})

    def test_sparse_ids_rejected(self):
        d = {"nodes": [{"id": 0, "op": "Gelu", "inputs": [], "outputs": []},
                       {"id": 5, "op": "Gelu", "inputs": [], "outputs": []}]}
        with pytest.raises(InvalidFormat):
            Graph.from_dict(d)

    def test_bad_shape_rejected(self):
        d = {"nodes": [{"id": 0, "op": "Gelu", "inputs": [], "outputs": [],
                        "output_shape": [2, -3]}]}
        with pytest.raises(InvalidFormat):
            Graph.from_dict(d)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(InvalidFormat):
            Graph.load(path)

    def test_non_utf8_file(self, tmp_path):
        path = tmp_path / "latin1.json"
        path.write_bytes(b"\xff\xfe{\"nodes\": []}")
        with pytest.raises(InvalidFormat, match="JSON"):
            Graph.load(path)

    def test_input_shapes_must_be_object(self):
        d = {"nodes": [{"id": 0, "op": "Gelu", "inputs": [], "outputs": [],
                        "input_shapes": [1]}]}
        with pytest.raises(InvalidFormat, match="input_shapes"):
            Graph.from_dict(d)

    def test_nodes_out_of_order_in_file(self, tmp_path):
        d = {"nodes": [{"id": 1, "op": "Gelu", "inputs": [0], "outputs": []},
                       {"id": 0, "op": "Input", "custom": True, "inputs": [], "outputs": [1]}]}
        path = tmp_path / "g.json"
        path.write_text(json.dumps(d))
        g = Graph.load(path)
        assert g.get_node(NodeID(1)).inputs == [NodeID(0)]
        assert g.get_node(NodeID(0)).op == Custom("Input")
