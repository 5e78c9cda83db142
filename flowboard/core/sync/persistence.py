"""
Persistence gateway for Flowboard
Best-effort writes of one board's graph to a storage backend.

The in-memory graph is the source of truth for the session: a failed write
never rolls back a local change. Failed creates are queued in pending_sync
for retry_pending(); updates and deletes that hit a 404 on the primary
backend are retried against the legacy card backend.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..errors import NotFoundError
from ..graph.models import Edge, Node, Position, utc_now
from ..types import BatchUpdateSummary, BoardID, EdgeID, NodeID, PositionUpdate
from ...utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PendingOperation:
    """A create that failed and awaits reconciliation"""
    kind: str
    entity_id: str
    payload: Dict[str, Any]
    error: str
    attempts: int = 1
    queued_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "entityId": self.entity_id,
            "error": self.error,
            "attempts": self.attempts,
            "queuedAt": self.queued_at,
        }


class PersistenceGateway:
    """
    Board-scoped writes with pending-sync bookkeeping and legacy fallback

    Features:
    - create_node / create_edge failures recorded in pending_sync
    - update / delete fall back to the legacy backend on NotFoundError
    - a second NotFoundError (entity gone everywhere) is tolerated
    """

    CREATE_NODE = "create_node"
    CREATE_EDGE = "create_edge"

    def __init__(self, primary: Any, board_id: BoardID, legacy: Optional[Any] = None):
        """
        Args:
            primary: StorageInterface for nodes and edges
            board_id: Board these writes belong to
            legacy: Optional StorageInterface for pre-node cards
        """
        self.primary = primary
        self.board_id = board_id
        self.legacy = legacy
        self.pending_sync: List[PendingOperation] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """
        Read the board's nodes and edges

        Falls back to legacy cards when the primary backend has no nodes.
        """
        nodes = self.primary.list_nodes(self.board_id)
        edges = self.primary.list_edges(self.board_id)
        if not nodes and self.legacy is not None:
            try:
                nodes = self.legacy.list_nodes(self.board_id)
            except NotFoundError:
                logger.debug(f"No legacy cards for board {self.board_id}")
                nodes = []
            if nodes:
                logger.info(f"Loaded {len(nodes)} legacy card(s) for board {self.board_id}")
        return nodes, edges

    # ------------------------------------------------------------------
    # Creates
    # ------------------------------------------------------------------

    def create_node(self, node: Node) -> Optional[Dict[str, Any]]:
        """
        Persist a new node

        Returns:
            The stored node dict, or None if the write failed (queued for retry)
        """
        payload = node.to_dict()
        try:
            return self.primary.create_node(self.board_id, payload)
        except Exception as e:
            logger.error(f"Failed to persist node {node.id}: {e}")
            self._queue(self.CREATE_NODE, node.id, payload, e)
            return None

    def create_edge(self, edge: Edge) -> Optional[Dict[str, Any]]:
        payload = edge.to_dict()
        try:
            return self.primary.create_edge(self.board_id, payload)
        except Exception as e:
            logger.error(f"Failed to persist edge {edge.id}: {e}")
            self._queue(self.CREATE_EDGE, edge.id, payload, e)
            return None

    def _queue(self, kind: str, entity_id: str, payload: Dict[str, Any], error: Exception):
        for op in self.pending_sync:
            if op.kind == kind and op.entity_id == entity_id:
                op.payload = payload
                op.error = str(error)
                op.attempts += 1
                return
        self.pending_sync.append(PendingOperation(kind, entity_id, payload, str(error)))

    def drop_pending(self, entity_id: str):
        """Forget queued creates for an entity that no longer exists locally"""
        self.pending_sync = [op for op in self.pending_sync if op.entity_id != entity_id]

    def retry_pending(self) -> int:
        """
        Retry every queued create

        Nodes are retried before edges so edge endpoints exist remotely.

        Returns:
            Number of operations that succeeded (and left the queue)
        """
        if not self.pending_sync:
            return 0
        ordered = sorted(self.pending_sync, key=lambda op: op.kind != self.CREATE_NODE)
        succeeded = 0
        remaining = []
        for op in ordered:
            writer = self.primary.create_node if op.kind == self.CREATE_NODE else self.primary.create_edge
            try:
                writer(self.board_id, op.payload)
                succeeded += 1
            except Exception as e:
                op.attempts += 1
                op.error = str(e)
                remaining.append(op)
        self.pending_sync = remaining
        logger.info(f"Pending sync for board {self.board_id}: {succeeded} reconciled, {len(remaining)} still pending")
        return succeeded

    # ------------------------------------------------------------------
    # Updates and deletes (with legacy fallback)
    # ------------------------------------------------------------------

    def update_node(self, node_id: NodeID, patch: Dict[str, Any]) -> bool:
        """
        Apply a partial update

        Returns:
            True if some backend accepted the update, False if the entity exists nowhere

        Raises:
            PersistenceError: if the backend failed for a reason other than not-found
        """
        try:
            self.primary.update_node(self.board_id, node_id, patch)
            return True
        except NotFoundError:
            return self._legacy_call("update", node_id, lambda: self.legacy.update_node(self.board_id, node_id, patch))

    def delete_node(self, node_id: NodeID) -> bool:
        self.drop_pending(node_id)
        try:
            self.primary.delete_node(self.board_id, node_id)
            return True
        except NotFoundError:
            return self._legacy_call("delete", node_id, lambda: self.legacy.delete_node(self.board_id, node_id))

    def delete_edge(self, edge_id: EdgeID) -> bool:
        self.drop_pending(edge_id)
        try:
            self.primary.delete_edge(self.board_id, edge_id)
            return True
        except NotFoundError:
            logger.debug(f"Edge {edge_id} already gone from board {self.board_id}")
            return False

    def _legacy_call(self, action: str, node_id: NodeID, call) -> bool:
        if self.legacy is None:
            logger.debug(f"Node {node_id} not found for {action}; no legacy backend configured")
            return False
        try:
            call()
            logger.debug(f"Node {node_id}: {action} applied to legacy card")
            return True
        except NotFoundError:
            logger.debug(f"Node {node_id} not found in legacy cards either; skipping {action}")
            return False

    def batch_update_positions(self, positions: Mapping[NodeID, Position]) -> BatchUpdateSummary:
        """
        Persist many positions in one call

        A backend failure is logged and reported as every entry failing.
        """
        updates: List[PositionUpdate] = [
            {"nodeId": node_id, "position": {"x": pos.x, "y": pos.y}}
            for node_id, pos in positions.items()
        ]
        if not updates:
            return {"processed": 0, "succeeded": 0, "failed": 0, "results": []}
        try:
            summary = self.primary.batch_update_positions(self.board_id, updates)
        except Exception as e:
            logger.error(f"Failed to persist {len(updates)} position(s) for board {self.board_id}: {e}")
            return {
                "processed": len(updates),
                "succeeded": 0,
                "failed": len(updates),
                "results": [{"nodeId": u["nodeId"], "success": False, "error": str(e)} for u in updates],
            }
        if summary["failed"]:
            logger.warning(f"{summary['failed']} of {summary['processed']} position update(s) failed")
        return summary

    def reset_board(self) -> bool:
        self.pending_sync = []
        return self.primary.reset_board(self.board_id)
