"""
Generation provider client
HTTP client for the generation service that actually runs nodes.

execute() and get_status() follow the canvas node contract; invoke() posts
to the feature routes used by dedicated adapters (fashion, storytelling).
"""
from typing import Dict, Any, Optional

import requests

from ..core.config import Config
from ..core.errors import ProviderError
from ..core.types import ExecutePayload, NodeStatusPayload, ProviderResponse
from ..utils.logger import get_logger

logger = get_logger(__name__)


class HttpGenerationProvider:
    """
    HTTP implementation of the generation provider protocol

    The endpoint URL is resolved in this order:
    1. base_url argument
    2. Config.PROVIDER_URL (FLOWBOARD_PROVIDER_URL)
    """

    NODE_PREFIX = "/api/creative-canvas/nodes"
    ROUTE_PREFIX = "/api"

    def __init__(self, base_url: Optional[str] = None, token: Optional[str] = None, timeout: Optional[float] = None):
        """
        Args:
            base_url: Root URL of the generation service (e.g. http://localhost:7791)
            token: Optional bearer token
            timeout: Request timeout in seconds (default: Config.REQUEST_TIMEOUT)
        """
        self.base_url = (base_url or Config.PROVIDER_URL).rstrip("/")
        self.token = token if token is not None else Config.API_TOKEN
        self.timeout = timeout or Config.REQUEST_TIMEOUT
        logger.info(f"HttpGenerationProvider initialized → {self.base_url}")

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _send(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = requests.request(method, url, json=json, headers=self._headers(), timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json() if resp.content else {}
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Generation service unreachable at {self.base_url}")
            raise ProviderError(f"Connection refused: {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            logger.error(f"Generation request timed out ({self.timeout}s)")
            raise ProviderError(f"Request timeout ({self.timeout}s)") from e
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            detail = str(e)
            if e.response is not None:
                try:
                    body = e.response.json()
                    detail = body.get("error") or body.get("detail") or detail
                except ValueError:
                    pass
            logger.error(f"Generation service HTTP error {status}: {detail}")
            raise ProviderError(f"HTTP {status}: {detail}", status_code=status) from e
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from {url}") from e
        return data if isinstance(data, dict) else {"data": data}

    def execute(self, node_id: str, payload: ExecutePayload) -> ProviderResponse:
        """
        Start (or run) a node on the generation service

        Returns:
            {status, output?, jobId?, error?}
        """
        data = self._send("POST", f"{self.NODE_PREFIX}/{node_id}/execute", json=dict(payload))
        status = data.get("status") or ("error" if data.get("success") is False else "running")
        response = ProviderResponse(status=status)
        for key in ("output", "jobId", "error"):
            if data.get(key) is not None:
                response[key] = data[key]
        return response

    def get_status(self, node_id: str) -> Optional[NodeStatusPayload]:
        """
        Current execution state of a node on the generation service

        Returns:
            {status, cachedOutput?, error?}, or None when the service has no record yet
        """
        try:
            data = self._send("GET", f"{self.NODE_PREFIX}/{node_id}")
        except ProviderError as e:
            if e.status_code == 404:
                return None
            raise
        node = data.get("node") or data
        if not isinstance(node, dict) or not node.get("status"):
            return None
        payload = NodeStatusPayload(status=node["status"])
        if node.get("cachedOutput") is not None:
            payload["cachedOutput"] = node["cachedOutput"]
        error = node.get("error") or (node.get("lastExecution") or {}).get("error")
        if error:
            payload["error"] = error
        return payload

    def invoke(self, route: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST to a feature route, e.g. invoke('story/start', {...})"""
        return self._send("POST", f"{self.ROUTE_PREFIX}/{route.lstrip('/')}", json=payload)
