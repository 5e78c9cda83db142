"""
Graph store for Flowboard
Holds one board's nodes and edges and applies mutations one at a time.

The store is owned by a single event loop; it has no locks. Anything that
derives state from the graph (validation, input resolution, layout) should
work on snapshot() rather than on live objects.
"""
import copy
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from .models import (
    Connection, Edge, GraphSnapshot, LastExecution, Node, NodeStatus, Position, new_id, utc_now,
)
from .node_registry import get_node_definition
from .validation import (
    ConnectionOptions, DEFAULT_OPTIONS, ValidationResult, determine_edge_type, validate_connection,
)
from ..errors import ConnectionRejectedError, EdgeNotFoundError, NodeNotFoundError
from ..types import BoardID, EdgeID, NodeID
from ...utils.logger import get_logger

logger = get_logger(__name__)

NodeRemovedCallback = Callable[[NodeID], None]


def _merge(target: Dict[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in patch.items():
        target[key] = copy.deepcopy(value)
    return target


def _duration_ms(started_at: str, completed_at: str) -> Optional[int]:
    try:
        start = datetime.fromisoformat(started_at)
        end = datetime.fromisoformat(completed_at)
    except (TypeError, ValueError):
        return None
    return max(0, int((end - start).total_seconds() * 1000))


class GraphStore:
    """
    In-memory graph of one board

    Features:
    - Node creation from the node-type registry
    - Validated edge creation (ConnectionValidator gate)
    - Cascading edge removal on node delete
    - Removal callbacks (used to cancel outstanding polls)
    - Execution status bookkeeping
    """

    def __init__(
        self,
        board_id: Optional[BoardID] = None,
        options: ConnectionOptions = DEFAULT_OPTIONS,
    ):
        self.board_id = board_id
        self.options = options
        self._nodes: Dict[NodeID, Node] = {}
        self._edges: Dict[EdgeID, Edge] = {}
        self._removal_callbacks: List[NodeRemovedCallback] = []

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot.capture(self.board_id, self._nodes.values(), self._edges.values())

    def has_node(self, node_id: NodeID) -> bool:
        return node_id in self._nodes

    def get_node(self, node_id: NodeID) -> Node:
        node = self._nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def get_edge(self, edge_id: EdgeID) -> Edge:
        edge = self._edges.get(edge_id)
        if edge is None:
            raise EdgeNotFoundError(edge_id)
        return edge

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def edges(self) -> List[Edge]:
        return list(self._edges.values())

    def incoming_edges(self, node_id: NodeID) -> List[Edge]:
        return [e for e in self._edges.values() if e.target_node_id == node_id]

    def outgoing_edges(self, node_id: NodeID) -> List[Edge]:
        return [e for e in self._edges.values() if e.source_node_id == node_id]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "boardId": self.board_id,
            "nodes": [n.to_dict() for n in self._nodes.values()],
            "edges": [e.to_dict() for e in self._edges.values()],
        }

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_node_removed(self, callback: NodeRemovedCallback) -> Callable[[], None]:
        """
        Register a callback invoked with the node id after a node is deleted

        Returns:
            Function that unregisters the callback
        """
        self._removal_callbacks.append(callback)

        def unsubscribe():
            if callback in self._removal_callbacks:
                self._removal_callbacks.remove(callback)

        return unsubscribe

    # ------------------------------------------------------------------
    # Node mutations
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> Node:
        if node.id in self._nodes:
            raise ValueError(f"Node already exists: {node.id}")
        if node.board_id is None:
            node.board_id = self.board_id
        self._nodes[node.id] = node
        return node

    def create_node(
        self,
        node_type: str,
        position: Optional[Position] = None,
        label: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        node_id: Optional[NodeID] = None,
    ) -> Node:
        """Instantiate a node from its registry definition and add it"""
        definition = get_node_definition(node_type)
        node = definition.instantiate(
            node_id=node_id,
            position=position,
            board_id=self.board_id,
            label=label,
            parameters=parameters,
        )
        logger.debug(f"Created {node_type} node {node.id}")
        return self.add_node(node)

    def replace_node(self, node: Node) -> Node:
        """Swap in a node object with the same id (e.g. the server's copy after create)"""
        if node.id not in self._nodes:
            raise NodeNotFoundError(node.id)
        self._nodes[node.id] = node
        return node

    def update_parameters(self, node_id: NodeID, patch: Mapping[str, Any]) -> Node:
        node = self.get_node(node_id)
        _merge(node.parameters, patch)
        node.updated_at = utc_now()
        return node

    def move_node(self, node_id: NodeID, position: Position) -> Node:
        node = self.get_node(node_id)
        node.position = Position(position.x, position.y)
        node.updated_at = utc_now()
        return node

    def apply_positions(self, positions: Mapping[NodeID, Position]) -> List[NodeID]:
        """
        Apply a batch of positions

        Returns:
            Ids of nodes whose position actually changed
        """
        changed = []
        for node_id, position in positions.items():
            node = self._nodes.get(node_id)
            if node is None:
                continue
            if node.position.x != position.x or node.position.y != position.y:
                node.position = Position(position.x, position.y)
                node.updated_at = utc_now()
                changed.append(node_id)
        return changed

    def remove_node(self, node_id: NodeID) -> List[Edge]:
        """
        Delete a node and every edge incident to it

        Returns:
            The removed edges
        """
        self.get_node(node_id)
        removed = [e for e in self._edges.values()
                   if e.source_node_id == node_id or e.target_node_id == node_id]
        for edge in removed:
            del self._edges[edge.id]
        del self._nodes[node_id]
        logger.debug(f"Removed node {node_id} and {len(removed)} incident edge(s)")
        for callback in list(self._removal_callbacks):
            callback(node_id)
        return removed

    # ------------------------------------------------------------------
    # Execution bookkeeping
    # ------------------------------------------------------------------

    def mark_running(self, node_id: NodeID) -> Node:
        node = self.get_node(node_id)
        node.status = NodeStatus.RUNNING
        node.last_execution = LastExecution(started_at=utc_now())
        return node

    def mark_completed(
        self,
        node_id: NodeID,
        output: Optional[Dict[str, Any]],
        result: Optional[Dict[str, Any]] = None,
    ) -> Node:
        node = self.get_node(node_id)
        node.status = NodeStatus.COMPLETED
        node.cached_output = copy.deepcopy(output) if output is not None else None
        node.result = result
        self._finish(node, error=None)
        return node

    def mark_error(self, node_id: NodeID, message: str) -> Node:
        node = self.get_node(node_id)
        node.status = NodeStatus.ERROR
        self._finish(node, error=message)
        return node

    def reset_node(self, node_id: NodeID) -> Node:
        """Return a node to idle, dropping its output and run history"""
        node = self.get_node(node_id)
        node.status = NodeStatus.IDLE
        node.cached_output = None
        node.result = None
        node.last_execution = None
        node.updated_at = utc_now()
        return node

    def _finish(self, node: Node, error: Optional[str]):
        now = utc_now()
        started = node.last_execution.started_at if node.last_execution else now
        node.last_execution = LastExecution(
            started_at=started,
            completed_at=now,
            duration_ms=_duration_ms(started, now),
            error=error,
        )
        node.updated_at = now

    # ------------------------------------------------------------------
    # Edge mutations
    # ------------------------------------------------------------------

    def validate_connection(
        self,
        connection: Connection,
        options: Optional[ConnectionOptions] = None,
    ) -> ValidationResult:
        return validate_connection(connection, self._nodes, self._edges.values(), options or self.options)

    def connect(
        self,
        connection: Connection,
        options: Optional[ConnectionOptions] = None,
        edge_id: Optional[EdgeID] = None,
    ) -> Edge:
        """
        Validate a candidate connection and commit it as an edge

        Raises:
            ConnectionRejectedError: if validation fails (graph unchanged)
        """
        result = self.validate_connection(connection, options)
        if not result.is_valid:
            raise ConnectionRejectedError(result)
        if connection.source_node_id == connection.target_node_id:
            raise ConnectionRejectedError(ValidationResult(False, "Edges cannot start and end on the same node"))
        edge = Edge(
            id=edge_id or new_id("edge"),
            source_node_id=connection.source_node_id,
            target_node_id=connection.target_node_id,
            source_port_id=result.source_port.id,
            target_port_id=result.target_port.id,
            edge_type=determine_edge_type(result.source_port, result.target_port),
            board_id=self.board_id,
        )
        self._edges[edge.id] = edge
        return edge

    def add_edge(self, edge: Edge) -> Edge:
        """
        Insert an already-persisted edge (e.g. when loading a board)

        Only structural invariants are checked here; type compatibility is
        reported separately by graph analysis.
        """
        if edge.id in self._edges:
            raise ValueError(f"Edge already exists: {edge.id}")
        if edge.source_node_id == edge.target_node_id:
            raise ValueError(f"Edge {edge.id} connects node {edge.source_node_id} to itself")
        if edge.source_node_id not in self._nodes or edge.target_node_id not in self._nodes:
            raise ValueError(f"Edge {edge.id} references a missing node")
        if edge.board_id is None:
            edge.board_id = self.board_id
        self._edges[edge.id] = edge
        return edge

    def remove_edge(self, edge_id: EdgeID) -> Edge:
        edge = self.get_edge(edge_id)
        del self._edges[edge_id]
        return edge

    def load(self, nodes: List[Node], edges: List[Edge]) -> int:
        """
        Replace the graph with persisted nodes and edges

        Edges that break structural invariants are skipped with a warning.

        Returns:
            Number of skipped edges
        """
        self._nodes = {}
        self._edges = {}
        for node in nodes:
            self.add_node(node)
        skipped = 0
        for edge in edges:
            try:
                self.add_edge(edge)
            except ValueError as e:
                skipped += 1
                logger.warning(f"Skipping edge on load: {e}")
        return skipped
