"""
Tests for whole-board validation and execution ordering
"""
import pytest

from flowboard.core.errors import CycleError
from flowboard.core.graph.analysis import execution_order, topological_order, validate_graph
from flowboard.core.graph.models import Connection, Edge, GraphSnapshot
from flowboard.core.graph.node_registry import get_node_definition


def _make(node_type, node_id, **kwargs):
    return get_node_definition(node_type).instantiate(node_id=node_id, **kwargs)


def _issue_types(result):
    return sorted(issue.type for issue in result.issues)


def test_missing_required_input_is_an_error(store):
    store.create_node("flux2Pro", node_id="g")
    result = validate_graph(store.snapshot())
    assert result.valid is False
    assert [i.type for i in result.errors] == ["missing_input"]
    assert result.errors[0].node_id == "g"
    assert "Prompt" in result.errors[0].message


def test_required_input_satisfied_by_parameter(store):
    store.create_node("flux2Pro", node_id="g", parameters={"prompt": "a lighthouse"})
    assert validate_graph(store.snapshot()).valid is True


def test_single_node_is_not_isolated(store):
    store.create_node("textInput", node_id="t")
    result = validate_graph(store.snapshot())
    assert result.warnings == []
    assert result.stats == {"total_nodes": 1, "connected_nodes": 0, "isolated_nodes": 1}


def test_isolated_node_is_a_warning_only(store):
    store.create_node("textInput", node_id="t")
    store.create_node("flux2Pro", node_id="g")
    store.create_node("textInput", node_id="lonely")
    store.connect(Connection("t", "g", "text", "prompt"))

    result = validate_graph(store.snapshot())

    assert result.valid is True
    assert [(i.type, i.node_id) for i in result.warnings] == [("isolated_node", "lonely")]
    assert result.stats["connected_nodes"] == 2


def test_cycle_is_reported():
    a, b = _make("merge", "a"), _make("merge", "b")
    edges = [Edge("e1", "a", "b", "output", "inputs"), Edge("e2", "b", "a", "output", "inputs")]
    result = validate_graph(GraphSnapshot.capture("b1", [a, b], edges))
    assert "cycle" in _issue_types(result)
    assert result.valid is False


def test_incompatible_stored_edge_is_reported():
    text = _make("textInput", "t")
    gen = _make("flux2Pro", "g", parameters={"prompt": "x"})
    snapshot = GraphSnapshot.capture("b1", [text, gen], [Edge("bad", "t", "g", "text", "reference")])

    result = validate_graph(snapshot)

    errors = [i for i in result.errors if i.type == "incompatible_edge"]
    assert len(errors) == 1
    assert errors[0].edge_id == "bad"
    assert errors[0].message == "Incompatible types: text cannot connect to image"


def test_to_dict_uses_wire_keys(store):
    store.create_node("flux2Pro", node_id="g")
    data = validate_graph(store.snapshot()).to_dict()
    assert data["valid"] is False
    assert data["issues"][0]["nodeId"] == "g"
    assert data["issues"][0]["severity"] == "error"


class TestExecutionOrder:

    def test_parallel_groups(self, store):
        store.create_node("textInput", node_id="t1")
        store.create_node("textInput", node_id="t2")
        store.create_node("flux2Pro", node_id="g1")
        store.create_node("flux2Pro", node_id="g2")
        store.create_node("preview", node_id="p")
        store.connect(Connection("t1", "g1", "text", "prompt"))
        store.connect(Connection("t2", "g2", "text", "prompt"))
        store.connect(Connection("g1", "p", "image", "input"))
        store.connect(Connection("g2", "p", "image", "input"))

        plan = execution_order(store.snapshot())

        assert plan["has_cycles"] is False
        assert [sorted(group) for group in plan["parallel_groups"]] == [["t1", "t2"], ["g1", "g2"], ["p"]]
        assert plan["order"].index("p") == 4

    def test_cycle_members_left_out(self):
        src = _make("textInput", "src")
        a, b = _make("merge", "a"), _make("merge", "b")
        edges = [
            Edge("e0", "src", "a", "text", "inputs"),
            Edge("e1", "a", "b", "output", "inputs"),
            Edge("e2", "b", "a", "output", "inputs"),
        ]
        plan = execution_order(GraphSnapshot.capture("b1", [src, a, b], edges))
        assert plan["has_cycles"] is True
        assert plan["order"] == ["src"]

    def test_topological_order_raises_on_cycle(self):
        a, b = _make("merge", "a"), _make("merge", "b")
        edges = [Edge("e1", "a", "b", "output", "inputs"), Edge("e2", "b", "a", "output", "inputs")]
        with pytest.raises(CycleError, match="Cycle detected"):
            topological_order(GraphSnapshot.capture("b1", [a, b], edges))

    def test_topological_order_respects_edges(self, store):
        store.create_node("textInput", node_id="t")
        store.create_node("flux2Pro", node_id="g")
        store.connect(Connection("t", "g", "text", "prompt"))
        assert topological_order(store.snapshot()) == ["t", "g"]
