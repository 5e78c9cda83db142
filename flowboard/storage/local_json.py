"""
Local JSON storage for solo mode
Stores each board in ~/.flowboard/data/boards/<board_id>/ as JSON files
Only accessible to the local user
"""
import os
import json
import threading
from pathlib import Path
from typing import Dict, Any, List, Optional

from .base import StorageInterface
from ..core.errors import NotFoundError, PersistenceError
from ..core.graph.models import utc_now
from ..core.types import BatchUpdateSummary, PositionUpdate
from ..utils.logger import get_logger

logger = get_logger(__name__)


class LocalJSONStorage(StorageInterface):
    """Local JSON file storage for solo mode"""

    NODES_FILE = "nodes.json"
    EDGES_FILE = "edges.json"

    def __init__(self, storage_path: Optional[str] = None):
        """
        Initialize local JSON storage

        Args:
            storage_path: Base path for storage (default: ~/.flowboard/data/)
        """
        if storage_path is None:
            home = Path.home()
            self.base_path = home / ".flowboard" / "data"
        else:
            self.base_path = Path(storage_path).expanduser()

        self.boards_path = self.base_path / "boards"
        for path in [self.base_path, self.boards_path]:
            path.mkdir(parents=True, exist_ok=True)
            # User only
            os.chmod(path, 0o700)

        # Executor threads write concurrently (provider results, buffered edits)
        self._lock = threading.RLock()

    def _board_path(self, board_id: str) -> Path:
        path = self.boards_path / board_id
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            os.chmod(path, 0o700)
        return path

    def _read(self, board_id: str, filename: str) -> List[Dict[str, Any]]:
        file_path = self._board_path(board_id) / filename
        if not file_path.exists():
            return []
        try:
            with open(file_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading {file_path}: {e}")
            return []
        return data if isinstance(data, list) else []

    def _write(self, board_id: str, filename: str, items: List[Dict[str, Any]]):
        file_path = self._board_path(board_id) / filename
        tmp_path = file_path.with_suffix(".tmp")
        try:
            with open(tmp_path, 'w') as f:
                json.dump(items, f, indent=2)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, file_path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {file_path}: {e}") from e

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def create_node(self, board_id: str, node: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            nodes = self._read(board_id, self.NODES_FILE)
            if any(n.get("id") == node["id"] for n in nodes):
                raise PersistenceError(f"Node already exists: {node['id']}")
            stored = dict(node)
            stored["boardId"] = board_id
            now = utc_now()
            stored.setdefault("createdAt", now)
            stored["updatedAt"] = now
            nodes.append(stored)
            self._write(board_id, self.NODES_FILE, nodes)
        logger.debug(f"Saved node {node['id']} to board {board_id}")
        return stored

    def list_nodes(self, board_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read(board_id, self.NODES_FILE)

    def get_node(self, board_id: str, node_id: str) -> Optional[Dict[str, Any]]:
        for node in self.list_nodes(board_id):
            if node.get("id") == node_id:
                return node
        return None

    def update_node(self, board_id: str, node_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            nodes = self._read(board_id, self.NODES_FILE)
            for node in nodes:
                if node.get("id") != node_id:
                    continue
                for key, value in patch.items():
                    if key == "parameters" and isinstance(value, dict):
                        node.setdefault("parameters", {}).update(value)
                    else:
                        node[key] = value
                node["updatedAt"] = utc_now()
                self._write(board_id, self.NODES_FILE, nodes)
                return node
        raise NotFoundError(f"Node {node_id} not found on board {board_id}")

    def delete_node(self, board_id: str, node_id: str) -> bool:
        with self._lock:
            nodes = self._read(board_id, self.NODES_FILE)
            remaining = [n for n in nodes if n.get("id") != node_id]
            if len(remaining) == len(nodes):
                raise NotFoundError(f"Node {node_id} not found on board {board_id}")
            self._write(board_id, self.NODES_FILE, remaining)

            edges = self._read(board_id, self.EDGES_FILE)
            kept = [e for e in edges
                    if e.get("sourceNodeId") != node_id and e.get("targetNodeId") != node_id]
            if len(kept) != len(edges):
                self._write(board_id, self.EDGES_FILE, kept)
        return True

    def batch_update_positions(self, board_id: str, updates: List[PositionUpdate]) -> BatchUpdateSummary:
        # One read and one write for the whole batch
        with self._lock:
            nodes = self._read(board_id, self.NODES_FILE)
            by_id = {n.get("id"): n for n in nodes}
            results = []
            now = utc_now()
            for update in updates:
                node = by_id.get(update["nodeId"])
                if node is None:
                    results.append({"nodeId": update["nodeId"], "success": False, "error": "Node not found"})
                    continue
                node["position"] = dict(update["position"])
                node["updatedAt"] = now
                results.append({"nodeId": update["nodeId"], "success": True})
            succeeded = sum(1 for r in results if r["success"])
            if succeeded:
                self._write(board_id, self.NODES_FILE, nodes)
        return {
            "processed": len(updates),
            "succeeded": succeeded,
            "failed": len(updates) - succeeded,
            "results": results,
        }

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def create_edge(self, board_id: str, edge: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            edges = self._read(board_id, self.EDGES_FILE)
            if any(e.get("id") == edge["id"] for e in edges):
                raise PersistenceError(f"Edge already exists: {edge['id']}")
            stored = dict(edge)
            stored["boardId"] = board_id
            edges.append(stored)
            self._write(board_id, self.EDGES_FILE, edges)
        return stored

    def list_edges(self, board_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return self._read(board_id, self.EDGES_FILE)

    def delete_edge(self, board_id: str, edge_id: str) -> bool:
        with self._lock:
            edges = self._read(board_id, self.EDGES_FILE)
            remaining = [e for e in edges if e.get("id") != edge_id]
            if len(remaining) == len(edges):
                raise NotFoundError(f"Edge {edge_id} not found on board {board_id}")
            self._write(board_id, self.EDGES_FILE, remaining)
        return True

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------

    def reset_board(self, board_id: str) -> bool:
        with self._lock:
            self._write(board_id, self.NODES_FILE, [])
            self._write(board_id, self.EDGES_FILE, [])
        logger.info(f"Reset board {board_id}")
        return True

    def list_boards(self) -> List[str]:
        return sorted(p.name for p in self.boards_path.iterdir() if p.is_dir())
