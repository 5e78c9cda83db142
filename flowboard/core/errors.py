"""
Exception types for Flowboard
"""
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .graph.validation import ValidationResult


class FlowboardError(Exception):
    """Base class for engine errors"""
    pass


class NodeNotFoundError(FlowboardError, KeyError):
    """Raised when a node id is not present in the graph"""

    def __init__(self, node_id: str):
        super().__init__(node_id)
        self.node_id = node_id

    def __str__(self) -> str:
        return f"Node not found: {self.node_id}"


class EdgeNotFoundError(FlowboardError, KeyError):
    """Raised when an edge id is not present in the graph"""

    def __init__(self, edge_id: str):
        super().__init__(edge_id)
        self.edge_id = edge_id

    def __str__(self) -> str:
        return f"Edge not found: {self.edge_id}"


class ConnectionRejectedError(FlowboardError, ValueError):
    """Raised when a candidate edge fails connection validation"""

    def __init__(self, result: "ValidationResult"):
        super().__init__(result.reason or "Invalid connection")
        self.result = result


class CycleError(ValueError):
    """Raised when a cycle is detected in the board graph"""
    pass


class ExecutionPreconditionError(FlowboardError):
    """Raised by an execution adapter when required inputs are missing"""
    pass


class ProviderError(FlowboardError):
    """Raised when a generation provider rejects or fails a request"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(FlowboardError):
    """Raised by persistence backends when the remote entity does not exist (404)"""
    pass


class PersistenceError(FlowboardError):
    """Raised by persistence backends when a write cannot be completed"""
    pass
