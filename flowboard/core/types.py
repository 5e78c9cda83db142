"""
Type definitions for Flowboard

This module provides:
- Type aliases for graph identifiers
- TypedDict shapes for the persistence and provider wire contracts
- Protocols for the external collaborators (generation providers)
"""
from typing import Protocol, TypedDict, TypeAlias, Optional, Dict, Any, List, Literal
from typing_extensions import NotRequired


# ============================================================================
# Type Aliases
# ============================================================================

BoardID: TypeAlias = str
NodeID: TypeAlias = str
EdgeID: TypeAlias = str
PortID: TypeAlias = str
JobID: TypeAlias = str
ProviderStatus: TypeAlias = Literal["running", "completed", "error", "failed"]


# ============================================================================
# Wire shapes
# ============================================================================

class PositionDict(TypedDict):
    x: float
    y: float


class PositionUpdate(TypedDict):
    """One entry of a batch position update"""
    nodeId: NodeID
    position: PositionDict


class BatchUpdateSummary(TypedDict):
    """Result of batchUpdatePositions"""
    processed: int
    succeeded: int
    failed: int
    results: List[Dict[str, Any]]


class ExecutePayload(TypedDict):
    """Body of a uniform provider execute call"""
    inputs: Dict[str, Any]
    parameters: Dict[str, Any]


class ProviderResponse(TypedDict):
    """Normalized response of a provider execute call or a dedicated adapter"""
    status: ProviderStatus
    output: NotRequired[Optional[Dict[str, Any]]]
    jobId: NotRequired[Optional[JobID]]
    error: NotRequired[Optional[str]]


class NodeStatusPayload(TypedDict):
    """Response of a provider status poll"""
    status: ProviderStatus
    cachedOutput: NotRequired[Optional[Dict[str, Any]]]
    error: NotRequired[Optional[str]]


class ExecutionOrder(TypedDict):
    """Topological execution plan for a board"""
    order: List[NodeID]
    parallel_groups: List[List[NodeID]]
    has_cycles: bool


# ============================================================================
# Collaborator Protocols
# ============================================================================

class GenerationProviderProtocol(Protocol):
    """Protocol for generation providers - any HTTP or in-process implementation"""

    def execute(self, node_id: NodeID, payload: ExecutePayload) -> ProviderResponse:
        """
        Start (or complete) execution of a node

        Args:
            node_id: Node being executed
            payload: {'inputs': resolved input data, 'parameters': node parameters}

        Returns:
            {'status': 'completed', 'output': {...}} or {'status': 'running', 'jobId': ...}
        """
        ...

    def get_status(self, node_id: NodeID) -> Optional[NodeStatusPayload]:
        """Fetch execution status for a node (None when the provider has no record yet)"""
        ...

    def invoke(self, route: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Call a dedicated provider route for node types that bypass the uniform call"""
        ...
