"""
Tests for the board graph store
"""
import pytest

from flowboard.core.errors import ConnectionRejectedError, EdgeNotFoundError, NodeNotFoundError
from flowboard.core.graph.models import Connection, Edge, NodeStatus, Position
from flowboard.core.graph.validation import ConnectionOptions, REASON_PORT_OCCUPIED


def test_create_node_uses_registry_defaults(store):
    node = store.create_node("flux2Pro", position=Position(40, 60))
    assert node.board_id == "board-1"
    assert node.category == "imageGen"
    assert [p.id for p in node.inputs] == ["prompt", "reference"]
    assert [p.id for p in node.outputs] == ["image"]
    assert node.parameters["guidance"] == 3.5
    assert node.status == NodeStatus.IDLE
    assert store.has_node(node.id)


def test_unknown_type_gets_generic_definition(store):
    node = store.create_node("somethingNew")
    assert node.category == "custom"
    assert node.inputs[0].multi
    assert node.outputs[0].type == "any"


def test_duplicate_node_id_rejected(store):
    store.create_node("textInput", node_id="n1")
    with pytest.raises(ValueError):
        store.create_node("textInput", node_id="n1")


def test_get_missing_raises(store):
    with pytest.raises(NodeNotFoundError):
        store.get_node("ghost")
    with pytest.raises(EdgeNotFoundError):
        store.get_edge("ghost")


def test_connect_commits_edge(store):
    text = store.create_node("textInput", node_id="t")
    gen = store.create_node("flux2Pro", node_id="g")
    edge = store.connect(Connection(text.id, gen.id, "text", "prompt"))
    assert edge.source_port_id == "text"
    assert edge.target_port_id == "prompt"
    assert edge.board_id == "board-1"
    assert store.incoming_edges("g") == [edge]
    assert store.outgoing_edges("t") == [edge]


def test_connect_resolves_missing_handles(store):
    store.create_node("textInput", node_id="t")
    store.create_node("flux2Pro", node_id="g")
    edge = store.connect(Connection("t", "g"))
    assert (edge.source_port_id, edge.target_port_id) == ("text", "prompt")


def test_rejected_connection_leaves_graph_unchanged(store):
    store.create_node("textInput", node_id="t1")
    store.create_node("textInput", node_id="t2")
    store.create_node("flux2Pro", node_id="g")
    store.connect(Connection("t1", "g", "text", "prompt"))
    before = store.to_dict()

    with pytest.raises(ConnectionRejectedError) as exc:
        store.connect(Connection("t2", "g", "text", "prompt"))
    assert exc.value.result.reason == REASON_PORT_OCCUPIED
    assert store.to_dict() == before


def test_self_loop_rejected_even_when_allowed(store):
    store.create_node("merge", node_id="m")
    with pytest.raises(ConnectionRejectedError):
        store.connect(Connection("m", "m", "output", "inputs"), ConnectionOptions(allow_self_connection=True))
    assert store.edges() == []


def test_remove_node_cascades_edges_and_notifies(store):
    store.create_node("textInput", node_id="t")
    store.create_node("flux2Pro", node_id="g")
    store.create_node("preview", node_id="p")
    store.connect(Connection("t", "g", "text", "prompt"))
    store.connect(Connection("g", "p", "image", "input"))

    removed_ids = []
    store.on_node_removed(removed_ids.append)
    removed = store.remove_node("g")

    assert len(removed) == 2
    assert store.edges() == []
    assert not store.has_node("g")
    assert removed_ids == ["g"]


def test_unsubscribe_removal_callback(store):
    calls = []
    unsubscribe = store.on_node_removed(calls.append)
    unsubscribe()
    store.create_node("textInput", node_id="t")
    store.remove_node("t")
    assert calls == []


def test_update_parameters_merges_nested(store):
    store.create_node("flux2Pro", node_id="g", parameters={"extra": {"a": 1, "b": 2}})
    store.update_parameters("g", {"extra": {"b": 3}, "guidance": 5})
    params = store.get_node("g").parameters
    assert params["extra"] == {"a": 1, "b": 3}
    assert params["guidance"] == 5
    assert params["width"] == 1024


def test_apply_positions_reports_changed_only(store):
    store.create_node("textInput", node_id="a", position=Position(0, 0))
    store.create_node("textInput", node_id="b", position=Position(100, 0))
    changed = store.apply_positions({"a": Position(0, 0), "b": Position(200, 0), "ghost": Position(1, 1)})
    assert changed == ["b"]
    assert store.get_node("b").position == Position(200, 0)


def test_execution_bookkeeping(store):
    store.create_node("flux2Pro", node_id="g")
    store.mark_running("g")
    node = store.get_node("g")
    assert node.status == NodeStatus.RUNNING
    assert node.last_execution.started_at

    store.mark_completed("g", {"imageUrl": "u"}, {"type": "image", "url": "u", "urls": ["u"]})
    node = store.get_node("g")
    assert node.status == NodeStatus.COMPLETED
    assert node.cached_output == {"imageUrl": "u"}
    assert node.result["type"] == "image"
    assert node.last_execution.completed_at
    assert node.last_execution.error is None

    store.mark_running("g")
    store.mark_error("g", "boom")
    node = store.get_node("g")
    assert node.status == NodeStatus.ERROR
    assert node.last_execution.error == "boom"

    store.reset_node("g")
    node = store.get_node("g")
    assert node.status == NodeStatus.IDLE
    assert node.cached_output is None and node.last_execution is None


def test_load_skips_broken_edges(store):
    from flowboard.core.graph.node_registry import get_node_definition

    a = get_node_definition("textInput").instantiate(node_id="a")
    b = get_node_definition("flux2Pro").instantiate(node_id="b")
    edges = [
        Edge("ok", "a", "b", "text", "prompt"),
        Edge("dangling", "a", "missing", "text", "prompt"),
        Edge("loop", "b", "b", "image", "reference"),
    ]
    skipped = store.load([a, b], edges)
    assert skipped == 2
    assert [e.id for e in store.edges()] == ["ok"]


def test_snapshot_is_isolated(store):
    store.create_node("textInput", node_id="t", parameters={"text": "hi"})
    snapshot = store.snapshot()
    store.update_parameters("t", {"text": "changed"})
    assert snapshot.nodes["t"].parameters["text"] == "hi"
