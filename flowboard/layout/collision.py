"""
Collision detection for canvas nodes
Axis-aligned bounding boxes with a minimum gap, free-position search and
bulk overlap resolution.
"""
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from ..core.config import Config
from ..core.graph.models import Node, Position
from ..core.types import NodeID

# Spiral probe: grid-aligned rings around the drop point
SEARCH_STEP = Config.GRID_SNAP * 2
MAX_SEARCH_RADIUS = 2000
# Same-column tolerance when ordering nodes for bulk resolution
COLUMN_TOLERANCE = 50

# Ring directions in probe order: right, left, down, up, then diagonals
PROBE_DIRECTIONS: Tuple[Tuple[int, int], ...] = (
    (1, 0), (-1, 0), (0, 1), (0, -1),
    (1, 1), (-1, 1), (1, -1), (-1, -1),
)


@dataclass(frozen=True)
class NodeBox:
    """Footprint of a node at a position"""
    id: NodeID
    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def at(self, x: float, y: float) -> "NodeBox":
        return NodeBox(self.id, x, y, self.width, self.height)

    @classmethod
    def from_node(cls, node: Node, position: Optional[Position] = None) -> "NodeBox":
        pos = position or node.position
        width = node.dimensions.width if node.dimensions else Config.DEFAULT_NODE_WIDTH
        height = node.dimensions.height if node.dimensions else Config.DEFAULT_NODE_HEIGHT
        return cls(node.id, pos.x, pos.y, width or Config.DEFAULT_NODE_WIDTH, height or Config.DEFAULT_NODE_HEIGHT)


def snap_to_grid(value: float, grid: int = Config.GRID_SNAP) -> float:
    if not grid:
        return value
    return float(round(value / grid) * grid)


def resolve_padding(padding: Optional[float]) -> float:
    return Config.COLLISION_PADDING if padding is None else padding


def _as_array(boxes: Sequence[NodeBox]) -> np.ndarray:
    return np.array([[b.x, b.y, b.right, b.bottom] for b in boxes], dtype=float).reshape(-1, 4)


def _overlaps(box: NodeBox, others: np.ndarray, padding: float) -> np.ndarray:
    """Boolean mask of rows in `others` that are closer than `padding` to `box`"""
    if others.size == 0:
        return np.zeros(0, dtype=bool)
    separated = (
        (box.right + padding <= others[:, 0])
        | (others[:, 2] + padding <= box.x)
        | (box.bottom + padding <= others[:, 1])
        | (others[:, 3] + padding <= box.y)
    )
    return ~separated


def _collision_matrix(boxes: Sequence[NodeBox], padding: float) -> np.ndarray:
    arr = _as_array(boxes)
    x, y, r, b = arr[:, 0], arr[:, 1], arr[:, 2], arr[:, 3]
    separated = (
        (r[:, None] + padding <= x[None, :])
        | (r[None, :] + padding <= x[:, None])
        | (b[:, None] + padding <= y[None, :])
        | (b[None, :] + padding <= y[:, None])
    )
    matrix = ~separated
    np.fill_diagonal(matrix, False)
    return matrix


def boxes_collide(a: NodeBox, b: NodeBox, padding: Optional[float] = None) -> bool:
    if a.id == b.id:
        return False
    return bool(_overlaps(a, _as_array([b]), resolve_padding(padding))[0])


def find_collisions(
    nodes: Iterable[Node],
    moving: Node,
    position: Optional[Position] = None,
    padding: Optional[float] = None,
) -> List[NodeID]:
    """
    Ids of the nodes overlapping `moving`

    Args:
        nodes: Nodes on the board (the moving node itself is ignored)
        moving: Node being dragged or placed
        position: Where to test it (default: its current position)
        padding: Minimum gap between nodes (default: Config.COLLISION_PADDING)
    """
    box = NodeBox.from_node(moving, position)
    others = [NodeBox.from_node(n) for n in nodes if n.id != moving.id]
    mask = _overlaps(box, _as_array(others), resolve_padding(padding))
    return [other.id for other, hit in zip(others, mask) if hit]


def _free(box: NodeBox, placed: np.ndarray, padding: float) -> bool:
    return not _overlaps(box, placed, padding).any()


def nearest_free_box(box: NodeBox, placed: Sequence[NodeBox], padding: float) -> Tuple[NodeBox, bool]:
    arr = _as_array(placed)
    snapped = box.at(snap_to_grid(box.x), snap_to_grid(box.y))
    if _free(box, arr, padding) and _free(snapped, arr, padding):
        return snapped, False

    for radius in range(SEARCH_STEP, MAX_SEARCH_RADIUS + 1, SEARCH_STEP):
        for dx, dy in PROBE_DIRECTIONS:
            candidate = box.at(snap_to_grid(box.x + dx * radius), snap_to_grid(box.y + dy * radius))
            if _free(candidate, arr, padding):
                return candidate, True

    # Nothing free within the search radius: to the right of everything
    rightmost = float(arr[:, 2].max()) if arr.size else box.x
    grid = Config.GRID_SNAP or 1
    x = float(np.ceil((rightmost + padding) / grid) * grid)
    return box.at(x, snap_to_grid(box.y)), True


def find_nearest_free_position(
    nodes: Iterable[Node],
    moving: Node,
    position: Position,
    padding: Optional[float] = None,
) -> Tuple[Position, bool]:
    """
    Nearest grid-snapped position where `moving` overlaps nothing

    Probes rings of SEARCH_STEP around `position` (8 directions per ring, up
    to MAX_SEARCH_RADIUS), falling back to the right of every other node.

    Returns:
        (position, was_adjusted) where was_adjusted is False if the drop point was already free
    """
    others = [NodeBox.from_node(n) for n in nodes if n.id != moving.id]
    box, adjusted = nearest_free_box(NodeBox.from_node(moving, position), others, resolve_padding(padding))
    return Position(box.x, box.y), adjusted


def _reading_order(a: NodeBox, b: NodeBox) -> int:
    # Left to right; nodes in roughly the same column top to bottom
    if abs(a.x - b.x) < COLUMN_TOLERANCE:
        return (a.y > b.y) - (a.y < b.y)
    return (a.x > b.x) - (a.x < b.x)


def resolve_all_collisions(
    nodes: Sequence[Node],
    padding: Optional[float] = None,
) -> Tuple[Dict[NodeID, Position], int]:
    """
    Move overlapping nodes apart

    Nodes that overlap nothing are anchors and never move. Colliding nodes
    are visited left to right and each is either kept (if it is clear of
    everything placed so far) or moved to the nearest free position.

    Returns:
        ({node_id: new_position} for moved nodes only, number of moved nodes)
    """
    pad = resolve_padding(padding)
    boxes = [NodeBox.from_node(n) for n in nodes]
    if len(boxes) <= 1:
        return {}, 0

    colliding_mask = _collision_matrix(boxes, pad).any(axis=1)
    placed = [b for b, hit in zip(boxes, colliding_mask) if not hit]
    pending = sorted((b for b, hit in zip(boxes, colliding_mask) if hit), key=cmp_to_key(_reading_order))

    moved: Dict[NodeID, Position] = {}
    for box in pending:
        if _free(box, _as_array(placed), pad):
            placed.append(box)
            continue
        new_box, _ = nearest_free_box(box, placed, pad)
        placed.append(new_box)
        if new_box.x != box.x or new_box.y != box.y:
            moved[box.id] = Position(new_box.x, new_box.y)
    return moved, len(moved)


def has_any_collisions(nodes: Sequence[Node], padding: Optional[float] = None) -> bool:
    boxes = [NodeBox.from_node(n) for n in nodes]
    if len(boxes) <= 1:
        return False
    return bool(_collision_matrix(boxes, resolve_padding(padding)).any())
