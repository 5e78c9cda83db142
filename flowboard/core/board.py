"""
Board session for Flowboard
Wires one board's graph to validation, execution, persistence and layout.

User action -> GraphStore mutation -> (edges) ConnectionValidator gate ->
GraphStore commit -> best-effort persistence. Execution reads the graph
through the input resolver and writes results back into the store. Layout
works on node positions only.
"""
import asyncio
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .execution.connection_actions import ActionCheck, can_execute
from .execution.executor import NodeExecutor
from .execution.resolver import ExecutionInputResolver
from .graph.analysis import GraphValidationResult, execution_order, validate_graph
from .graph.models import Connection, Edge, Node, Position
from .graph.store import GraphStore
from .graph.validation import ConnectionOptions, DEFAULT_OPTIONS, ValidationResult
from .sync.persistence import PersistenceGateway
from .sync.write_buffer import WriteCoalescingBuffer
from .types import BatchUpdateSummary, BoardID, EdgeID, ExecutionOrder, GenerationProviderProtocol, NodeID
from ..layout import (
    LayoutOptions,
    LayoutResult,
    apply_layout_with_collision_resolution,
    find_collisions,
    find_nearest_free_position,
    resolve_all_collisions,
    snap_to_grid,
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ProviderNotConfiguredError(RuntimeError):
    """Raised when execution is requested on a session without a provider"""
    pass


class BoardSession:
    """
    One open board

    Features:
    - Load with collision resolution (only moved nodes are re-persisted)
    - Node create/delete, coalesced parameter edits, end-of-drag snapping
    - Validated connections
    - Node execution through NodeExecutor
    - Auto-layout of the whole board or a selection
    """

    def __init__(
        self,
        board_id: BoardID,
        storage: Optional[Any] = None,
        provider: Optional[GenerationProviderProtocol] = None,
        legacy_storage: Optional[Any] = None,
        options: ConnectionOptions = DEFAULT_OPTIONS,
        write_delay: Optional[float] = None,
        **executor_kwargs,
    ):
        """
        Initialize board session

        Args:
            board_id: Board identifier
            storage: StorageInterface (None keeps the board in memory only)
            provider: Generation provider (None disables execution)
            legacy_storage: Optional card backend used when storage answers 404
            options: Connection validation options
            write_delay: Quiet period for parameter edits (default: Config.WRITE_DEBOUNCE_SECONDS)
            **executor_kwargs: Passed to NodeExecutor (poll intervals, sleep)
        """
        self.board_id = board_id
        self.store = GraphStore(board_id, options)
        self.resolver = ExecutionInputResolver()
        self.persistence = PersistenceGateway(storage, board_id, legacy_storage) if storage is not None else None
        self.buffer = WriteCoalescingBuffer(self._write_node_patch, delay=write_delay)
        self.executor = (
            NodeExecutor(self.store, provider, self.persistence, self.resolver, **executor_kwargs)
            if provider is not None else None
        )
        self.store.on_node_removed(self.buffer.cancel)

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def _write_node_patch(self, node_id: NodeID, patch: Dict[str, Any]):
        if self.persistence is not None:
            self.persistence.update_node(node_id, patch)

    def _persist_update(self, node_id: NodeID, patch: Dict[str, Any]):
        if self.persistence is None:
            return
        try:
            self.persistence.update_node(node_id, patch)
        except Exception as e:
            logger.error(f"Failed to persist update for node {node_id}: {e}")

    def _persist_positions(self, positions: Dict[NodeID, Position]) -> Optional[BatchUpdateSummary]:
        if self.persistence is None or not positions:
            return None
        return self.persistence.batch_update_positions(positions)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self, resolve_collisions: bool = True) -> Dict[str, int]:
        """
        Load the board from storage

        Args:
            resolve_collisions: Move overlapping nodes apart and persist the moved ones

        Returns:
            {'nodes', 'edges', 'skippedNodes', 'skippedEdges', 'adjusted'}
        """
        if self.persistence is None:
            return {"nodes": 0, "edges": 0, "skippedNodes": 0, "skippedEdges": 0, "adjusted": 0}

        node_dicts, edge_dicts = self.persistence.load()
        nodes, skipped_nodes = self._parse(node_dicts, Node.from_dict, "node")
        edges, skipped_edges = self._parse(edge_dicts, Edge.from_dict, "edge")
        skipped_edges += self.store.load(nodes, edges)

        adjusted = 0
        if resolve_collisions:
            moved, adjusted = resolve_all_collisions(self.store.nodes())
            if moved:
                self.store.apply_positions(moved)
                self._persist_positions(moved)
                logger.info(f"Resolved overlaps on board {self.board_id}: moved {adjusted} node(s)")

        summary = {
            "nodes": len(self.store.nodes()),
            "edges": len(self.store.edges()),
            "skippedNodes": skipped_nodes,
            "skippedEdges": skipped_edges,
            "adjusted": adjusted,
        }
        logger.info(f"Loaded board {self.board_id}: {summary}")
        return summary

    @staticmethod
    def _parse(items: Iterable[Dict[str, Any]], factory, kind: str) -> Tuple[List[Any], int]:
        parsed, skipped = [], 0
        for item in items:
            try:
                parsed.append(factory(item))
            except (KeyError, ValueError, TypeError) as e:
                skipped += 1
                logger.warning(f"Skipping malformed {kind} {item.get('id', '?')}: {e}")
        return parsed, skipped

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def add_node(
        self,
        node_type: str,
        position: Optional[Position] = None,
        label: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        avoid_collisions: bool = True,
    ) -> Node:
        """Create a node from the registry, nudged off any node it would overlap"""
        node = self.store.create_node(node_type, position=position, label=label, parameters=parameters)
        if avoid_collisions and find_collisions(self.store.nodes(), node):
            free, _ = find_nearest_free_position(self.store.nodes(), node, node.position)
            self.store.move_node(node.id, free)
        if self.persistence is not None:
            stored = self.persistence.create_node(node)
            if stored and stored.get("id") not in (None, node.id):
                logger.warning(f"Storage assigned id {stored.get('id')} to node {node.id}; keeping local id")
        return node

    def delete_node(self, node_id: NodeID) -> List[Edge]:
        """Delete a node, its incident edges, pending edits and any poll"""
        removed = self.store.remove_node(node_id)
        if self.persistence is not None:
            try:
                self.persistence.delete_node(node_id)
            except Exception as e:
                logger.error(f"Failed to persist delete of node {node_id}: {e}")
        return removed

    def update_parameters(self, node_id: NodeID, patch: Dict[str, Any]) -> Node:
        """Apply a parameter edit now; the write to storage is coalesced"""
        node = self.store.update_parameters(node_id, patch)
        self.buffer.enqueue(node_id, {"parameters": patch})
        return node

    def drag_collisions(self, node_id: NodeID, position: Position) -> List[NodeID]:
        node = self.store.get_node(node_id)
        return find_collisions(self.store.nodes(), node, position)

    def end_drag(self, node_id: NodeID, position: Position) -> Tuple[Position, bool]:
        """
        Drop a dragged node

        Returns:
            (final position, was_adjusted)
        """
        node = self.store.get_node(node_id)
        final, adjusted = find_nearest_free_position(self.store.nodes(), node, position)
        self.store.move_node(node_id, final)
        self._persist_update(node_id, {"position": final.to_dict()})
        return final, adjusted

    def move_node(self, node_id: NodeID, position: Position, snap: bool = True) -> Node:
        if snap:
            position = Position(snap_to_grid(position.x), snap_to_grid(position.y))
        node = self.store.move_node(node_id, position)
        self._persist_update(node_id, {"position": position.to_dict()})
        return node

    def reset_node(self, node_id: NodeID) -> Node:
        """Back to idle: output, result and run history cleared, polling stopped"""
        if self.executor is not None:
            self.executor.cancel_polling(node_id)
        node = self.store.reset_node(node_id)
        self._persist_update(node_id, {
            "status": node.status.value,
            "cachedOutput": None,
            "result": None,
            "lastExecution": None,
        })
        return node

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def validate_connection(self, connection: Connection, options: Optional[ConnectionOptions] = None) -> ValidationResult:
        return self.store.validate_connection(connection, options)

    def connect(
        self,
        source_node_id: NodeID,
        target_node_id: NodeID,
        source_port_id: Optional[str] = None,
        target_port_id: Optional[str] = None,
        options: Optional[ConnectionOptions] = None,
    ) -> Edge:
        """
        Validate and commit a connection

        Raises:
            ConnectionRejectedError: graph unchanged, reason in .result.reason
        """
        connection = Connection(source_node_id, target_node_id, source_port_id, target_port_id)
        edge = self.store.connect(connection, options)
        if self.persistence is not None:
            self.persistence.create_edge(edge)
        logger.debug(f"Connected {source_node_id}:{edge.source_port_id} -> {target_node_id}:{edge.target_port_id}")
        return edge

    def disconnect(self, edge_id: EdgeID) -> Edge:
        edge = self.store.remove_edge(edge_id)
        if self.persistence is not None:
            try:
                self.persistence.delete_edge(edge_id)
            except Exception as e:
                logger.error(f"Failed to persist delete of edge {edge_id}: {e}")
        return edge

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def resolve_inputs(self, node_id: NodeID) -> Dict[str, Any]:
        return self.resolver.resolve(self.store.snapshot(), node_id)

    async def execute_node(self, node_id: NodeID) -> Optional[Node]:
        if self.executor is None:
            raise ProviderNotConfiguredError(f"No generation provider configured for board {self.board_id}")
        # Pending edits must reach storage before the provider reads the node
        if self.buffer.has_pending(node_id) or self.buffer.in_flight(node_id):
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.buffer.flush_node, node_id)
        return await self.executor.execute(node_id)

    def connection_action_check(self, source_node_id: NodeID, target_node_id: NodeID) -> ActionCheck:
        return can_execute(self.store.get_node(source_node_id), self.store.get_node(target_node_id))

    # ------------------------------------------------------------------
    # Analysis and layout
    # ------------------------------------------------------------------

    def validate(self) -> GraphValidationResult:
        return validate_graph(self.store.snapshot(), self.store.options)

    def execution_order(self) -> ExecutionOrder:
        return execution_order(self.store.snapshot())

    def auto_layout(
        self,
        selected_ids: Optional[Iterable[NodeID]] = None,
        options: Optional[LayoutOptions] = None,
    ) -> Tuple[LayoutResult, Optional[BatchUpdateSummary]]:
        """
        Lay out the board (or a selection) and persist the moved positions

        Returns:
            (layout result, batch persistence summary or None)
        """
        snapshot = self.store.snapshot()
        result, adjusted = apply_layout_with_collision_resolution(
            snapshot.node_list(), snapshot.edge_list(), selected_ids, options,
        )
        changed = self.store.apply_positions(result.positions)
        logger.info(f"Auto-layout on board {self.board_id}: {len(changed)} node(s) moved, {adjusted} nudged")
        summary = self._persist_positions({nid: result.positions[nid] for nid in changed})
        return result, summary

    def resolve_collisions(self) -> Tuple[Dict[NodeID, Position], int]:
        moved, count = resolve_all_collisions(self.store.nodes())
        if moved:
            self.store.apply_positions(moved)
            self._persist_positions(moved)
        return moved, count

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def retry_pending(self) -> int:
        if self.persistence is None:
            return 0
        return self.persistence.retry_pending()

    def flush(self) -> int:
        return self.buffer.flush()

    async def close(self):
        """Stop polling and write out pending edits"""
        if self.executor is not None:
            await self.executor.shutdown()
        await self.buffer.aflush()

    def to_dict(self) -> Dict[str, Any]:
        data = self.store.to_dict()
        if self.persistence is not None and self.persistence.pending_sync:
            data["pendingSync"] = [op.to_dict() for op in self.persistence.pending_sync]
        return data


class BoardManager:
    """Open board sessions, keyed by board id, sharing one storage and provider"""

    def __init__(
        self,
        storage: Optional[Any] = None,
        provider: Optional[GenerationProviderProtocol] = None,
        legacy_storage: Optional[Any] = None,
        **session_kwargs,
    ):
        self.storage = storage
        self.provider = provider
        self.legacy_storage = legacy_storage
        self.session_kwargs = session_kwargs
        self._sessions: Dict[BoardID, BoardSession] = {}

    def get(self, board_id: BoardID) -> BoardSession:
        """Session for a board, loaded from storage on first access"""
        session = self._sessions.get(board_id)
        if session is None:
            session = BoardSession(
                board_id,
                storage=self.storage,
                provider=self.provider,
                legacy_storage=self.legacy_storage,
                **self.session_kwargs,
            )
            session.load()
            self._sessions[board_id] = session
        return session

    def list_open(self) -> List[BoardID]:
        return list(self._sessions)

    async def close(self, board_id: Optional[BoardID] = None):
        board_ids = [board_id] if board_id is not None else list(self._sessions)
        for bid in board_ids:
            session = self._sessions.pop(bid, None)
            if session is not None:
                await session.close()
