"""
Hierarchical auto-layout for Flowboard
Rank-based layout along the dataflow direction.

Pipeline:
    1. build a networkx DiGraph of the nodes being laid out
    2. drop back edges until the graph is acyclic
    3. longest-path layering (rank = longest chain of predecessors)
    4. barycenter sweeps to reduce crossings between adjacent ranks
    5. place ranks along the main axis, stack nodes along the cross axis
    6. snap to the grid
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import networkx as nx

from .collision import NodeBox, nearest_free_box, resolve_padding, snap_to_grid
from ..core.config import Config
from ..core.graph.models import Edge, Node, Position
from ..core.types import NodeID
from ..utils.logger import get_logger

logger = get_logger(__name__)

MAX_SWEEPS = 8


class LayoutDirection(str, Enum):
    LR = "LR"
    TB = "TB"
    RL = "RL"
    BT = "BT"

    @property
    def horizontal(self) -> bool:
        return self in (LayoutDirection.LR, LayoutDirection.RL)

    @property
    def reversed(self) -> bool:
        return self in (LayoutDirection.RL, LayoutDirection.BT)


@dataclass
class LayoutOptions:
    direction: LayoutDirection = LayoutDirection.LR
    node_spacing: float = 80
    rank_spacing: float = 120
    grid_snap: int = Config.GRID_SNAP
    margin: float = 50

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LayoutOptions":
        data = data or {}
        return cls(
            direction=LayoutDirection(data.get("direction", "LR")),
            node_spacing=data.get("nodeSpacing", 80),
            rank_spacing=data.get("rankSpacing", 120),
            grid_snap=data.get("gridSnap", Config.GRID_SNAP),
            margin=data.get("margin", 50),
        )


@dataclass
class LayoutResult:
    """Top-left positions plus the bounding box of the laid-out nodes"""
    positions: Dict[NodeID, Position] = field(default_factory=dict)
    bounds: Dict[str, float] = field(default_factory=lambda: {"x": 0, "y": 0, "width": 0, "height": 0})
    ranks: Dict[NodeID, int] = field(default_factory=dict)
    removed_edges: List[Tuple[NodeID, NodeID]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positions": {nid: pos.to_dict() for nid, pos in self.positions.items()},
            "bounds": dict(self.bounds),
            "ranks": dict(self.ranks),
        }


def build_digraph(nodes: Sequence[Node], edges: Iterable[Edge]) -> nx.DiGraph:
    """DiGraph over `nodes`; edges leaving the node set and self-loops are ignored"""
    graph = nx.DiGraph()
    for node in nodes:
        graph.add_node(node.id)
    for edge in edges:
        if edge.source_node_id == edge.target_node_id:
            continue
        if edge.source_node_id in graph and edge.target_node_id in graph:
            graph.add_edge(edge.source_node_id, edge.target_node_id)
    return graph


def remove_back_edges(graph: nx.DiGraph) -> Tuple[nx.DiGraph, List[Tuple[NodeID, NodeID]]]:
    """
    Copy of `graph` with cycles broken

    Repeatedly finds a cycle and drops the edge that closes it.

    Returns:
        (dag, removed_edges)
    """
    dag = graph.copy()
    removed: List[Tuple[NodeID, NodeID]] = []
    while not nx.is_directed_acyclic_graph(dag):
        cycle = nx.find_cycle(dag)
        u, v = cycle[-1][0], cycle[-1][1]
        dag.remove_edge(u, v)
        removed.append((u, v))
    if removed:
        logger.debug(f"Dropped {len(removed)} back edge(s) for layout: {removed}")
    return dag, removed


def assign_ranks(dag: nx.DiGraph) -> Dict[NodeID, int]:
    """Longest-path layering: sources are rank 0, each node sits one past its deepest predecessor"""
    ranks: Dict[NodeID, int] = {}
    for node_id in nx.topological_sort(dag):
        preds = [ranks[p] for p in dag.predecessors(node_id)]
        ranks[node_id] = max(preds) + 1 if preds else 0
    return ranks


def _barycenter(node_id: NodeID, neighbours: List[NodeID], positions: Dict[NodeID, float], fallback: float) -> float:
    values = [positions[n] for n in neighbours if n in positions]
    if not values:
        return fallback
    return sum(values) / len(values)


def order_ranks(
    dag: nx.DiGraph,
    ranks: Dict[NodeID, int],
    initial: Dict[NodeID, float],
) -> List[List[NodeID]]:
    """
    Order nodes inside each rank

    Starts from `initial` (the nodes' current cross-axis coordinate, so an
    existing arrangement is kept where edges allow it) and runs alternating
    down/up barycenter sweeps.
    """
    rank_count = (max(ranks.values()) + 1) if ranks else 0
    layers: List[List[NodeID]] = [[] for _ in range(rank_count)]
    for node_id in sorted(ranks, key=lambda n: (initial.get(n, 0.0), n)):
        layers[ranks[node_id]].append(node_id)

    for _ in range(MAX_SWEEPS):
        before = [list(layer) for layer in layers]
        for idx in range(1, rank_count):
            prev = {n: float(i) for i, n in enumerate(layers[idx - 1])}
            current = {n: float(i) for i, n in enumerate(layers[idx])}
            layers[idx].sort(key=lambda n: _barycenter(n, list(dag.predecessors(n)), prev, current[n]))
        for idx in range(rank_count - 2, -1, -1):
            nxt = {n: float(i) for i, n in enumerate(layers[idx + 1])}
            current = {n: float(i) for i, n in enumerate(layers[idx])}
            layers[idx].sort(key=lambda n: _barycenter(n, list(dag.successors(n)), nxt, current[n]))
        if layers == before:
            break
    return layers


def _bounds(boxes: Iterable[NodeBox]) -> Dict[str, float]:
    boxes = list(boxes)
    if not boxes:
        return {"x": 0, "y": 0, "width": 0, "height": 0}
    min_x = min(b.x for b in boxes)
    min_y = min(b.y for b in boxes)
    max_r = max(b.right for b in boxes)
    max_b = max(b.bottom for b in boxes)
    return {"x": min_x, "y": min_y, "width": max_r - min_x, "height": max_b - min_y}


def compute_auto_layout(
    nodes: Sequence[Node],
    edges: Iterable[Edge],
    options: Optional[LayoutOptions] = None,
) -> LayoutResult:
    """
    Compute a hierarchical layout

    Args:
        nodes: Nodes to lay out
        edges: Edges (only those between `nodes` are used)
        options: Direction and spacing (default: LR, 80/120, grid 20, margin 50)

    Returns:
        LayoutResult with top-left positions for every node in `nodes`
    """
    options = options or LayoutOptions()
    direction = LayoutDirection(options.direction)
    if not nodes:
        return LayoutResult()

    by_id = {n.id: n for n in nodes}
    graph = build_digraph(nodes, edges)
    dag, removed = remove_back_edges(graph)
    ranks = assign_ranks(dag)

    horizontal = direction.horizontal
    boxes = {n.id: NodeBox.from_node(n) for n in nodes}

    def main_size(nid: NodeID) -> float:
        return boxes[nid].width if horizontal else boxes[nid].height

    def cross_size(nid: NodeID) -> float:
        return boxes[nid].height if horizontal else boxes[nid].width

    initial = {nid: (by_id[nid].position.y if horizontal else by_id[nid].position.x) for nid in by_id}
    layers = order_ranks(dag, ranks, initial)

    # Main axis: each rank is as thick as its largest node
    thickness = [max((main_size(n) for n in layer), default=0.0) for layer in layers]
    offsets = []
    cursor = options.margin
    for t in thickness:
        offsets.append(cursor)
        cursor += t + options.rank_spacing
    main_extent = cursor - options.rank_spacing - options.margin

    # Cross axis: stack each rank and center it against the widest rank
    extents = [
        sum(cross_size(n) for n in layer) + options.node_spacing * max(len(layer) - 1, 0)
        for layer in layers
    ]
    widest = max(extents, default=0.0)

    positions: Dict[NodeID, Position] = {}
    for rank, layer in enumerate(layers):
        cross = options.margin + (widest - extents[rank]) / 2
        for nid in layer:
            main = offsets[rank]
            if direction.reversed:
                main = options.margin + main_extent - (main - options.margin) - main_size(nid)
            x, y = (main, cross) if horizontal else (cross, main)
            positions[nid] = Position(snap_to_grid(x, options.grid_snap), snap_to_grid(y, options.grid_snap))
            cross += cross_size(nid) + options.node_spacing

    placed = [boxes[nid].at(pos.x, pos.y) for nid, pos in positions.items()]
    logger.debug(f"Auto-layout {direction.value}: {len(positions)} node(s) in {len(layers)} rank(s)")
    return LayoutResult(positions=positions, bounds=_bounds(placed), ranks=ranks, removed_edges=removed)


def apply_layout_to_selection(
    nodes: Sequence[Node],
    edges: Iterable[Edge],
    selected_ids: Iterable[NodeID],
    options: Optional[LayoutOptions] = None,
) -> LayoutResult:
    """
    Lay out only the selected nodes

    The selection keeps its original top-left corner; unselected nodes are
    not touched and edges to them are ignored.
    """
    selected: Set[NodeID] = set(selected_ids)
    subset = [n for n in nodes if n.id in selected]
    if not subset:
        return LayoutResult()

    result = compute_auto_layout(subset, edges, options)
    grid = (options or LayoutOptions()).grid_snap
    anchor_x = snap_to_grid(min(n.position.x for n in subset), grid)
    anchor_y = snap_to_grid(min(n.position.y for n in subset), grid)
    dx = anchor_x - result.bounds["x"]
    dy = anchor_y - result.bounds["y"]

    result.positions = {nid: Position(p.x + dx, p.y + dy) for nid, p in result.positions.items()}
    result.bounds = {**result.bounds, "x": anchor_x, "y": anchor_y}
    return result


def apply_layout_with_collision_resolution(
    nodes: Sequence[Node],
    edges: Iterable[Edge],
    selected_ids: Optional[Iterable[NodeID]] = None,
    options: Optional[LayoutOptions] = None,
    padding: Optional[float] = None,
) -> Tuple[LayoutResult, int]:
    """
    Layout (full graph or selection), then clear overlaps with the nodes left in place

    Unselected nodes are fixed; laid-out nodes that land on them move to the
    nearest free position.

    Returns:
        (layout result, number of laid-out nodes moved by collision resolution)
    """
    edges = list(edges)
    if selected_ids is None:
        return compute_auto_layout(nodes, edges, options), 0

    result = apply_layout_to_selection(nodes, edges, selected_ids, options)
    by_id = {n.id: n for n in nodes}
    placed = [NodeBox.from_node(n) for n in nodes if n.id not in result.positions]
    pad = resolve_padding(padding)

    adjusted = 0
    for nid, pos in result.positions.items():
        box, moved = nearest_free_box(NodeBox.from_node(by_id[nid], pos), placed, pad)
        placed.append(box)
        if moved:
            adjusted += 1
            result.positions[nid] = Position(box.x, box.y)

    if adjusted:
        result.bounds = _bounds(NodeBox.from_node(by_id[nid], p) for nid, p in result.positions.items())
    return result, adjusted
