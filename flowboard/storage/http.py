"""
HTTP storage for remote mode
Talks to the creative-canvas REST API: the node/edge endpoints, plus the
older card endpoints used as a fallback for boards created before nodes existed.
"""
from typing import Dict, Any, List, Optional

import requests

from .base import StorageInterface
from ..core.errors import NotFoundError, PersistenceError
from ..core.types import BatchUpdateSummary, PositionUpdate
from ..utils.logger import get_logger

logger = get_logger(__name__)


class _CanvasClient:
    """Shared request handling for the canvas REST API"""

    API_PREFIX = "/api/creative-canvas"

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 60):
        """
        Args:
            base_url: Service root (e.g. https://canvas.example.com)
            token: Optional bearer token
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{self.API_PREFIX}{path}"
        try:
            resp = requests.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Canvas API unreachable at {self.base_url}")
            raise PersistenceError(f"Connection refused: {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Canvas API request timed out ({self.timeout}s): {method} {path}")
            raise PersistenceError(f"Request timeout ({self.timeout}s)") from e

        if resp.status_code == 404:
            raise NotFoundError(f"{method} {path} returned 404")
        try:
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise PersistenceError(f"HTTP {resp.status_code}: {resp.text[:200]}") from e

        data = resp.json() if resp.content else {}
        if isinstance(data, dict) and data.get("success") is False:
            raise PersistenceError(data.get("error") or f"{method} {path} failed")
        return data if isinstance(data, dict) else {"data": data}


class HttpCanvasStorage(_CanvasClient, StorageInterface):
    """Node/edge endpoints of the canvas REST API"""

    def create_node(self, board_id: str, node: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", f"/boards/{board_id}/nodes", json=node)
        return data.get("node") or dict(node)

    def list_nodes(self, board_id: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/boards/{board_id}/nodes", params={"page": 1, "limit": 100})
        return data.get("nodes") or []

    def get_node(self, board_id: str, node_id: str) -> Optional[Dict[str, Any]]:
        try:
            data = self._request("GET", f"/nodes/{node_id}")
        except NotFoundError:
            return None
        return data.get("node")

    def update_node(self, board_id: str, node_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("PUT", f"/nodes/{node_id}", json=patch)
        return data.get("node") or {"id": node_id, **patch}

    def delete_node(self, board_id: str, node_id: str) -> bool:
        self._request("DELETE", f"/nodes/{node_id}")
        return True

    def batch_update_positions(self, board_id: str, updates: List[PositionUpdate]) -> BatchUpdateSummary:
        body = {"updates": [{"nodeId": u["nodeId"], "position": dict(u["position"])} for u in updates]}
        data = self._request("PATCH", f"/boards/{board_id}/nodes/batch", json=body)
        results = data.get("results") or []
        succeeded = data.get("succeeded", sum(1 for r in results if r.get("success")))
        return {
            "processed": data.get("processed", len(updates)),
            "succeeded": succeeded,
            "failed": data.get("failed", len(updates) - succeeded),
            "results": results,
        }

    def create_edge(self, board_id: str, edge: Dict[str, Any]) -> Dict[str, Any]:
        data = self._request("POST", f"/boards/{board_id}/edges", json=edge)
        return data.get("edge") or dict(edge)

    def list_edges(self, board_id: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/boards/{board_id}/edges", params={"page": 1, "limit": 500})
        return data.get("edges") or []

    def delete_edge(self, board_id: str, edge_id: str) -> bool:
        self._request("DELETE", f"/edges/{edge_id}")
        return True


def card_to_node(card: Dict[str, Any]) -> Dict[str, Any]:
    """Project a legacy card onto the node wire shape"""
    return {
        "id": card["id"],
        "nodeType": card.get("type") or "legacyCard",
        "category": "custom",
        "label": card.get("title"),
        "position": card.get("position") or {"x": 0, "y": 0},
        "dimensions": card.get("dimensions") or {"width": 320, "height": 400},
        "inputs": [],
        "outputs": [],
        "parameters": dict(card.get("config") or {}),
        "status": "idle",
    }


class LegacyCardStorage(_CanvasClient, StorageInterface):
    """
    Card endpoints of the canvas REST API

    Cards predate nodes and have no edges; node patches are mapped onto the
    card fields that exist (position, dimensions, config).
    """

    def create_node(self, board_id: str, node: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "type": node.get("nodeType"),
            "position": node.get("position"),
            "dimensions": node.get("dimensions"),
            "config": node.get("parameters") or {},
        }
        data = self._request("POST", f"/boards/{board_id}/cards", json=body)
        card = data.get("data") or data.get("card")
        return card_to_node(card) if card else dict(node)

    def list_nodes(self, board_id: str) -> List[Dict[str, Any]]:
        data = self._request("GET", f"/boards/{board_id}/cards")
        cards = data.get("data") or data.get("cards") or []
        return [card_to_node(c) for c in cards if isinstance(c, dict) and c.get("id")]

    def get_node(self, board_id: str, node_id: str) -> Optional[Dict[str, Any]]:
        try:
            data = self._request("GET", f"/cards/{node_id}")
        except NotFoundError:
            return None
        card = data.get("data") or data.get("card")
        return card_to_node(card) if card else None

    def update_node(self, board_id: str, node_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        for key in ("position", "dimensions"):
            if key in patch:
                body[key] = patch[key]
        if "parameters" in patch:
            body["config"] = patch["parameters"]
        if not body:
            logger.debug(f"Nothing to update on legacy card {node_id}: {sorted(patch)}")
            return {"id": node_id}
        data = self._request("PUT", f"/cards/{node_id}", json=body)
        card = data.get("data") or data.get("card")
        return card_to_node(card) if card else {"id": node_id, **patch}

    def delete_node(self, board_id: str, node_id: str) -> bool:
        self._request("DELETE", f"/cards/{node_id}")
        return True

    def batch_update_positions(self, board_id: str, updates: List[PositionUpdate]) -> BatchUpdateSummary:
        body = {"updates": [{"cardId": u["nodeId"], "position": dict(u["position"])} for u in updates]}
        data = self._request("PATCH", f"/boards/{board_id}/cards/batch", json=body)
        updated = (data.get("data") or {}).get("updated", len(updates))
        return {
            "processed": len(updates),
            "succeeded": updated,
            "failed": len(updates) - updated,
            "results": [],
        }

    def create_edge(self, board_id: str, edge: Dict[str, Any]) -> Dict[str, Any]:
        raise PersistenceError("Legacy cards do not support edges")

    def list_edges(self, board_id: str) -> List[Dict[str, Any]]:
        return []

    def delete_edge(self, board_id: str, edge_id: str) -> bool:
        raise NotFoundError(f"Legacy cards have no edge {edge_id}")
