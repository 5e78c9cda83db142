"""
Abstract storage interface for Flowboard
Supports solo mode (local JSON), prod mode (Supabase) and remote mode (canvas REST API)
"""
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

from ..core.types import BatchUpdateSummary, PositionUpdate


class StorageInterface(ABC):
    """
    Abstract interface for board storage backends

    Nodes and edges cross this boundary as wire dicts (Node.to_dict() /
    Edge.to_dict()). Writes raise NotFoundError when the entity does not
    exist and PersistenceError when the backend cannot complete them.
    """

    @abstractmethod
    def create_node(self, board_id: str, node: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a new node, returns the stored node"""
        pass

    @abstractmethod
    def list_nodes(self, board_id: str) -> List[Dict[str, Any]]:
        """All nodes of a board, in creation order"""
        pass

    @abstractmethod
    def get_node(self, board_id: str, node_id: str) -> Optional[Dict[str, Any]]:
        """Get one node, or None"""
        pass

    @abstractmethod
    def update_node(self, board_id: str, node_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply a partial update to a node

        Args:
            board_id: Board identifier
            node_id: Node identifier
            patch: Top-level fields to replace; `parameters` is merged key by key

        Returns:
            The updated node

        Raises:
            NotFoundError: if the node does not exist
        """
        pass

    @abstractmethod
    def delete_node(self, board_id: str, node_id: str) -> bool:
        """Delete a node and its incident edges"""
        pass

    def batch_update_positions(self, board_id: str, updates: List[PositionUpdate]) -> BatchUpdateSummary:
        """
        Update many node positions

        Default implementation applies update_node once per entry; backends
        with a bulk endpoint override it.

        Returns:
            {processed, succeeded, failed, results}
        """
        results = []
        succeeded = 0
        for update in updates:
            node_id = update["nodeId"]
            try:
                self.update_node(board_id, node_id, {"position": dict(update["position"])})
                results.append({"nodeId": node_id, "success": True})
                succeeded += 1
            except Exception as e:
                results.append({"nodeId": node_id, "success": False, "error": str(e)})
        return {
            "processed": len(updates),
            "succeeded": succeeded,
            "failed": len(updates) - succeeded,
            "results": results,
        }

    @abstractmethod
    def create_edge(self, board_id: str, edge: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a new edge, returns the stored edge"""
        pass

    @abstractmethod
    def list_edges(self, board_id: str) -> List[Dict[str, Any]]:
        """All edges of a board"""
        pass

    @abstractmethod
    def delete_edge(self, board_id: str, edge_id: str) -> bool:
        """Delete an edge"""
        pass

    def reset_board(self, board_id: str) -> bool:
        """
        Delete every node and edge of a board

        Returns:
            True if successful, False otherwise
        """
        for edge in self.list_edges(board_id):
            self.delete_edge(board_id, edge["id"])
        for node in self.list_nodes(board_id):
            self.delete_node(board_id, node["id"])
        return True

    def list_boards(self) -> List[str]:
        """Known board ids (backends that cannot enumerate return an empty list)"""
        return []
