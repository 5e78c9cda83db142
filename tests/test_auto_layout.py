"""
Tests for hierarchical auto-layout
"""
from flowboard.core.graph.models import Edge, Node, Position
from flowboard.layout import (
    LayoutDirection,
    LayoutOptions,
    apply_layout_to_selection,
    apply_layout_with_collision_resolution,
    compute_auto_layout,
    find_collisions,
)
from flowboard.layout.auto_layout import assign_ranks, build_digraph, remove_back_edges


def _node(node_id, x=0, y=0):
    return Node(id=node_id, node_type="custom", category="custom", position=Position(x, y))


def _chain():
    nodes = [_node("t"), _node("g"), _node("p")]
    edges = [Edge("e1", "t", "g"), Edge("e2", "g", "p")]
    return nodes, edges


def test_left_to_right_ranks_advance_along_x():
    nodes, edges = _chain()
    result = compute_auto_layout(nodes, edges)
    pos = result.positions
    assert result.ranks == {"t": 0, "g": 1, "p": 2}
    assert pos["t"].x < pos["g"].x < pos["p"].x
    assert pos["t"].y == pos["g"].y == pos["p"].y


def test_top_to_bottom_ranks_advance_along_y():
    nodes, edges = _chain()
    pos = compute_auto_layout(nodes, edges, LayoutOptions(direction=LayoutDirection.TB)).positions
    assert pos["t"].y < pos["g"].y < pos["p"].y
    assert pos["t"].x == pos["g"].x == pos["p"].x


def test_right_to_left_reverses_main_axis():
    nodes, edges = _chain()
    pos = compute_auto_layout(nodes, edges, LayoutOptions.from_dict({"direction": "RL"})).positions
    assert pos["t"].x > pos["g"].x > pos["p"].x


def test_positions_are_grid_snapped_and_spaced():
    nodes = [_node("src"), _node("a"), _node("b")]
    edges = [Edge("e1", "src", "a"), Edge("e2", "src", "b")]
    result = compute_auto_layout(nodes, edges, LayoutOptions(node_spacing=80, rank_spacing=120))
    for position in result.positions.values():
        assert position.x % 20 == 0 and position.y % 20 == 0
    a, b = result.positions["a"], result.positions["b"]
    assert a.x == b.x
    assert abs(a.y - b.y) >= 400 + 80 - 20


def test_cycles_are_broken_before_ranking():
    nodes = [_node("a"), _node("b"), _node("c")]
    edges = [Edge("e1", "a", "b"), Edge("e2", "b", "c"), Edge("e3", "c", "a")]
    dag, removed = remove_back_edges(build_digraph(nodes, edges))
    assert len(removed) == 1
    assert len(assign_ranks(dag)) == 3

    result = compute_auto_layout(nodes, edges)
    assert set(result.positions) == {"a", "b", "c"}
    assert len(result.removed_edges) == 1


def test_edges_outside_node_set_are_ignored():
    graph = build_digraph([_node("a")], [Edge("e", "a", "elsewhere"), Edge("loop", "a", "a")])
    assert list(graph.edges) == []


def test_empty_layout():
    result = compute_auto_layout([], [])
    assert result.positions == {}
    assert result.bounds == {"x": 0, "y": 0, "width": 0, "height": 0}


def test_selection_keeps_its_top_left_corner():
    nodes = [_node("a", 400, 300), _node("b", 1000, 900), _node("fixed", 3000, 3000)]
    edges = [Edge("e1", "a", "b"), Edge("e2", "b", "fixed")]

    result = apply_layout_to_selection(nodes, edges, ["a", "b"])

    assert set(result.positions) == {"a", "b"}
    assert min(p.x for p in result.positions.values()) == 400
    assert min(p.y for p in result.positions.values()) == 300
    assert (result.bounds["x"], result.bounds["y"]) == (400, 300)
    assert result.positions["a"].x < result.positions["b"].x


def test_selection_layout_clears_fixed_nodes():
    a, b = _node("a", 0, 0), _node("b", 0, 500)
    fixed = _node("fixed", 440, 0)
    nodes = [a, b, fixed]

    result, adjusted = apply_layout_with_collision_resolution(nodes, [Edge("e", "a", "b")], ["a", "b"])

    assert adjusted == 1
    assert "fixed" not in result.positions
    assert find_collisions([fixed], b, result.positions["b"]) == []
    assert result.positions["a"] == Position(0, 0)


def test_full_layout_skips_collision_pass():
    nodes, edges = _chain()
    result, adjusted = apply_layout_with_collision_resolution(nodes, edges)
    assert adjusted == 0
    assert len(result.positions) == 3
