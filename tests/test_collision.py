"""
Tests for node collision detection and resolution
"""
from flowboard.core.graph.models import Dimensions, Node, Position
from flowboard.layout import (
    NodeBox,
    find_collisions,
    find_nearest_free_position,
    has_any_collisions,
    resolve_all_collisions,
    snap_to_grid,
)
from flowboard.layout.collision import boxes_collide


def _node(node_id, x, y, width=320, height=400):
    return Node(id=node_id, node_type="custom", category="custom",
                position=Position(x, y), dimensions=Dimensions(width, height))


def test_snap_to_grid():
    assert snap_to_grid(29) == 20
    assert snap_to_grid(31) == 40
    assert snap_to_grid(-11) == -20
    assert snap_to_grid(13, grid=0) == 13


def test_padding_counts_as_collision():
    a = NodeBox("a", 0, 0, 100, 100)
    assert boxes_collide(a, NodeBox("b", 110, 0, 100, 100))
    assert not boxes_collide(a, NodeBox("b", 120, 0, 100, 100))
    assert not boxes_collide(a, NodeBox("b", 110, 0, 100, 100), padding=0)
    assert not boxes_collide(a, a)


def test_find_collisions_ignores_moving_node():
    a = _node("a", 0, 0)
    b = _node("b", 100, 100)
    c = _node("c", 1000, 0)
    assert find_collisions([a, b, c], a) == ["b"]
    assert find_collisions([a, b, c], a, Position(2000, 2000)) == []


def test_free_drop_point_is_only_snapped():
    a = _node("a", 0, 0)
    moving = _node("m", 0, 0)
    position, adjusted = find_nearest_free_position([a, moving], moving, Position(1003, 1009))
    assert position == Position(1000, 1000)
    assert adjusted is False


def test_occupied_drop_point_moves_to_free_snapped_spot():
    a = _node("a", 0, 0)
    moving = _node("m", 0, 0)
    position, adjusted = find_nearest_free_position([a, moving], moving, Position(10, 10))
    assert adjusted is True
    assert position.x % 20 == 0 and position.y % 20 == 0
    assert find_collisions([a], moving, position) == []


def test_resolve_all_collisions_keeps_anchors():
    anchor = _node("anchor", 2000, 0)
    first = _node("first", 0, 0)
    second = _node("second", 40, 40)
    third = _node("third", 80, 0)
    nodes = [anchor, first, second, third]
    assert has_any_collisions(nodes)

    moved, count = resolve_all_collisions(nodes)

    assert count == len(moved)
    assert "anchor" not in moved
    # Left-most colliding node is placed first and stays put
    assert "first" not in moved
    assert set(moved) == {"second", "third"}

    for node in nodes:
        if node.id in moved:
            node.position = moved[node.id]
    assert not has_any_collisions(nodes)


def test_resolve_without_overlaps_moves_nothing():
    nodes = [_node("a", 0, 0), _node("b", 400, 0)]
    assert resolve_all_collisions(nodes) == ({}, 0)
    assert resolve_all_collisions([_node("solo", 0, 0)]) == ({}, 0)
    assert not has_any_collisions(nodes)
