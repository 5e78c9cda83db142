"""
Supabase storage for prod mode
Boards live in the canvas_nodes and canvas_edges tables
"""
from typing import Dict, Any, List, Optional

from supabase import create_client, Client

from .base import StorageInterface
from ..core.errors import NotFoundError, PersistenceError
from ..core.graph.models import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)

NODES_TABLE = "canvas_nodes"
EDGES_TABLE = "canvas_edges"

# Wire key -> column
NODE_COLUMNS = {
    "id": "id",
    "boardId": "board_id",
    "nodeType": "node_type",
    "category": "category",
    "label": "label",
    "position": "position",
    "dimensions": "dimensions",
    "inputs": "inputs",
    "outputs": "outputs",
    "parameters": "parameters",
    "status": "status",
    "cachedOutput": "cached_output",
    "lastExecution": "last_execution",
    "result": "result",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}

EDGE_COLUMNS = {
    "id": "id",
    "boardId": "board_id",
    "sourceNodeId": "source_node_id",
    "sourcePortId": "source_port_id",
    "targetNodeId": "target_node_id",
    "targetPortId": "target_port_id",
    "edgeType": "edge_type",
}


def _to_row(data: Dict[str, Any], columns: Dict[str, str]) -> Dict[str, Any]:
    return {columns[k]: v for k, v in data.items() if k in columns}


def _from_row(row: Dict[str, Any], columns: Dict[str, str]) -> Dict[str, Any]:
    reverse = {v: k for k, v in columns.items()}
    return {reverse[k]: v for k, v in row.items() if k in reverse and v is not None}


class SupabaseStorage(StorageInterface):
    """Supabase storage for prod mode"""

    def __init__(self, supabase_url: str, supabase_key: str):
        """
        Initialize Supabase storage

        Args:
            supabase_url: Supabase project URL
            supabase_key: Supabase service role key
        """
        self.client: Client = create_client(supabase_url, supabase_key)

    def create_node(self, board_id: str, node: Dict[str, Any]) -> Dict[str, Any]:
        row = _to_row({**node, "boardId": board_id}, NODE_COLUMNS)
        try:
            result = self.client.table(NODES_TABLE).insert(row).execute()
        except Exception as e:
            raise PersistenceError(f"Error saving node {node.get('id')}: {e}") from e
        if result.data:
            return _from_row(result.data[0], NODE_COLUMNS)
        return dict(node)

    def list_nodes(self, board_id: str) -> List[Dict[str, Any]]:
        try:
            result = self.client.table(NODES_TABLE).select('*').eq('board_id', board_id).order('created_at').execute()
            return [_from_row(row, NODE_COLUMNS) for row in result.data or []]
        except Exception as e:
            logger.error(f"Error listing nodes for board {board_id}: {e}")
            return []

    def get_node(self, board_id: str, node_id: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.client.table(NODES_TABLE).select('*').eq('board_id', board_id).eq('id', node_id).limit(1).execute()
        except Exception as e:
            logger.error(f"Error getting node {node_id}: {e}")
            return None
        if not result.data:
            return None
        return _from_row(result.data[0], NODE_COLUMNS)

    def update_node(self, board_id: str, node_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        if "parameters" in patch:
            # Column is a single JSON document: merge client-side
            current = self.get_node(board_id, node_id)
            if current is None:
                raise NotFoundError(f"Node {node_id} not found on board {board_id}")
            patch = {**patch, "parameters": {**(current.get("parameters") or {}), **patch["parameters"]}}
        row = _to_row({**patch, "updatedAt": utc_now()}, NODE_COLUMNS)
        try:
            result = self.client.table(NODES_TABLE).update(row).eq('board_id', board_id).eq('id', node_id).execute()
        except Exception as e:
            raise PersistenceError(f"Error updating node {node_id}: {e}") from e
        if not result.data:
            raise NotFoundError(f"Node {node_id} not found on board {board_id}")
        return _from_row(result.data[0], NODE_COLUMNS)

    def delete_node(self, board_id: str, node_id: str) -> bool:
        try:
            self.client.table(EDGES_TABLE).delete().eq('board_id', board_id).eq('source_node_id', node_id).execute()
            self.client.table(EDGES_TABLE).delete().eq('board_id', board_id).eq('target_node_id', node_id).execute()
            result = self.client.table(NODES_TABLE).delete().eq('board_id', board_id).eq('id', node_id).execute()
        except Exception as e:
            raise PersistenceError(f"Error deleting node {node_id}: {e}") from e
        if not result.data:
            raise NotFoundError(f"Node {node_id} not found on board {board_id}")
        return True

    def create_edge(self, board_id: str, edge: Dict[str, Any]) -> Dict[str, Any]:
        row = _to_row({**edge, "boardId": board_id}, EDGE_COLUMNS)
        try:
            result = self.client.table(EDGES_TABLE).insert(row).execute()
        except Exception as e:
            raise PersistenceError(f"Error saving edge {edge.get('id')}: {e}") from e
        if result.data:
            return _from_row(result.data[0], EDGE_COLUMNS)
        return dict(edge)

    def list_edges(self, board_id: str) -> List[Dict[str, Any]]:
        try:
            result = self.client.table(EDGES_TABLE).select('*').eq('board_id', board_id).execute()
            return [_from_row(row, EDGE_COLUMNS) for row in result.data or []]
        except Exception as e:
            logger.error(f"Error listing edges for board {board_id}: {e}")
            return []

    def delete_edge(self, board_id: str, edge_id: str) -> bool:
        try:
            result = self.client.table(EDGES_TABLE).delete().eq('board_id', board_id).eq('id', edge_id).execute()
        except Exception as e:
            raise PersistenceError(f"Error deleting edge {edge_id}: {e}") from e
        if not result.data:
            raise NotFoundError(f"Edge {edge_id} not found on board {board_id}")
        return True

    def reset_board(self, board_id: str) -> bool:
        try:
            self.client.table(EDGES_TABLE).delete().eq('board_id', board_id).execute()
            self.client.table(NODES_TABLE).delete().eq('board_id', board_id).execute()
            return True
        except Exception as e:
            logger.error(f"Error resetting board {board_id}: {e}")
            return False

    def list_boards(self) -> List[str]:
        try:
            result = self.client.table(NODES_TABLE).select('board_id').execute()
        except Exception as e:
            logger.error(f"Error listing boards: {e}")
            return []
        return sorted({row['board_id'] for row in result.data or [] if row.get('board_id')})
