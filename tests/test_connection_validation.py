"""
Tests for connection validation
"""
import pytest

from flowboard.core.graph.models import Connection, Edge, Node, Port
from flowboard.core.graph.validation import (
    ConnectionOptions,
    REASON_MISSING_ENDPOINT,
    REASON_NODE_NOT_FOUND,
    REASON_PORT_NOT_FOUND,
    REASON_PORT_OCCUPIED,
    REASON_SELF_CONNECTION,
    can_accept_connection,
    compatible_target_ports,
    determine_edge_type,
    validate_all_edges,
    validate_connection,
)


def _node(node_id, inputs=(), outputs=()):
    return Node(
        id=node_id,
        node_type="custom",
        category="custom",
        inputs=[Port(*entry) if len(entry) <= 3 else Port(entry[0], entry[1], entry[2], multi=entry[3]) for entry in inputs],
        outputs=[Port(*entry) for entry in outputs],
    )


@pytest.fixture
def nodes():
    return {
        "gen": _node("gen", inputs=[("prompt", "Prompt", "text")], outputs=[("image", "Image", "image")]),
        "text": _node("text", outputs=[("text", "Text", "text")]),
        "anyout": _node("anyout", outputs=[("output", "Output", "any")]),
        "tryon": _node("tryon", inputs=[("model", "Model", "image"), ("garment", "Garment", "image")],
                       outputs=[("image", "Result", "image")]),
        "merge": _node("merge", inputs=[("inputs", "Inputs", "any", True)], outputs=[("output", "Output", "any")]),
    }


def test_valid_connection_returns_ports(nodes):
    result = validate_connection(Connection("gen", "tryon", "image", "model"), nodes, [])
    assert result.is_valid
    assert result.reason is None
    assert result.source_port.id == "image"
    assert result.target_port.id == "model"


@pytest.mark.parametrize("options", [
    ConnectionOptions(),
    ConnectionOptions(allow_multiple_connections=True),
    ConnectionOptions(strict_type_checking=True),
])
def test_self_connection_rejected(nodes, options):
    result = validate_connection(Connection("gen", "gen", "image", "prompt"), nodes, [], options)
    assert not result.is_valid
    assert result.reason == REASON_SELF_CONNECTION


def test_missing_endpoint(nodes):
    result = validate_connection(Connection(None, "gen"), nodes, [])
    assert result.reason == REASON_MISSING_ENDPOINT


def test_unknown_node(nodes):
    result = validate_connection(Connection("gen", "ghost", "image", "model"), nodes, [])
    assert result.reason == REASON_NODE_NOT_FOUND


def test_unknown_port(nodes):
    result = validate_connection(Connection("gen", "tryon", "image", "shoes"), nodes, [])
    assert not result.is_valid
    assert result.reason == REASON_PORT_NOT_FOUND


def test_missing_handle_falls_back_to_first_port(nodes):
    result = validate_connection(Connection("gen", "tryon"), nodes, [])
    assert result.is_valid
    assert result.target_port.id == "model"


def test_incompatible_types_name_both(nodes):
    result = validate_connection(Connection("text", "tryon", "text", "model"), nodes, [])
    assert not result.is_valid
    assert "text" in result.reason and "image" in result.reason


def test_any_output_connects_loose_but_not_strict(nodes):
    connection = Connection("anyout", "tryon", "output", "garment")
    assert validate_connection(connection, nodes, []).is_valid
    strict = validate_connection(connection, nodes, [], ConnectionOptions(strict_type_checking=True))
    assert not strict.is_valid


def test_occupied_single_port_rejected(nodes):
    existing = [Edge("e1", "gen", "tryon", "image", "model")]
    other = _node("gen2", outputs=[("image", "Image", "image")])
    all_nodes = dict(nodes, gen2=other)
    result = validate_connection(Connection("gen2", "tryon", "image", "model"), all_nodes, existing)
    assert not result.is_valid
    assert result.reason == REASON_PORT_OCCUPIED

    allowed = validate_connection(
        Connection("gen2", "tryon", "image", "model"), all_nodes, existing,
        ConnectionOptions(allow_multiple_connections=True),
    )
    assert allowed.is_valid


def test_occupancy_counts_edges_without_target_handle(nodes):
    existing = [Edge("e1", "gen", "tryon", "image", None)]
    other = _node("gen2", outputs=[("image", "Image", "image")])
    result = validate_connection(Connection("gen2", "tryon", "image", "model"), dict(nodes, gen2=other), existing)
    assert result.reason == REASON_PORT_OCCUPIED
    # The second port is still free
    assert validate_connection(Connection("gen2", "tryon", "image", "garment"), dict(nodes, gen2=other), existing).is_valid


def test_multi_port_accepts_many(nodes):
    existing = [Edge("e1", "gen", "merge", "image", "inputs")]
    result = validate_connection(Connection("text", "merge", "text", "inputs"), nodes, existing)
    assert result.is_valid


def test_validator_has_no_side_effects(nodes):
    edges = [Edge("e1", "gen", "tryon", "image", "model")]
    before = [e.to_dict() for e in edges]
    validate_connection(Connection("gen", "tryon", "image", "garment"), nodes, edges)
    assert [e.to_dict() for e in edges] == before


def test_nodes_may_be_given_as_list(nodes):
    assert validate_connection(Connection("gen", "tryon", "image", "model"), list(nodes.values()), []).is_valid


def test_validate_all_edges_does_not_block_itself(nodes):
    edges = [
        Edge("ok", "gen", "tryon", "image", "model"),
        Edge("bad", "text", "tryon", "text", "garment"),
    ]
    results = validate_all_edges(nodes, edges)
    assert results["ok"].is_valid
    assert not results["bad"].is_valid


def test_can_accept_connection(nodes):
    edges = [Edge("e1", "gen", "tryon", "image", "model")]
    assert not can_accept_connection(nodes["tryon"], "model", edges)
    assert can_accept_connection(nodes["tryon"], "garment", edges)
    assert can_accept_connection(nodes["merge"], "inputs", edges)
    assert not can_accept_connection(nodes["tryon"], "nope", edges)


def test_compatible_target_ports(nodes):
    ports = compatible_target_ports(nodes["gen"].outputs[0], nodes["tryon"])
    assert [p.id for p in ports] == ["model", "garment"]


@pytest.mark.parametrize("port_type,edge_type", [
    ("style", "styleEdge"),
    ("character", "characterEdge"),
    ("video", "flowingEdge"),
    ("image", "standardEdge"),
    ("text", "default"),
])
def test_edge_type(port_type, edge_type):
    assert determine_edge_type(Port("p", "P", port_type)) == edge_type


def test_edge_type_without_ports():
    assert determine_edge_type(None) == "default"
