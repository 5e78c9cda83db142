"""
Graph data model for Flowboard
Ports, nodes, edges and immutable graph snapshots
"""
import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional, Iterable, Mapping
from uuid import uuid4

from ..types import NodeID, EdgeID, BoardID, PortID


def utc_now() -> str:
    """ISO-8601 UTC timestamp"""
    return datetime.now(timezone.utc).isoformat()


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


class NodeStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class Port:
    """A typed connection point on a node"""
    id: PortID
    name: str
    type: str
    required: bool = False
    multi: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": str(getattr(self.type, "value", self.type)),
            "required": self.required,
            "multi": self.multi,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Port":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            type=str(data.get("type", "any")),
            required=bool(data.get("required", False)),
            # "multiple" is the older name for the same flag
            multi=bool(data.get("multi", data.get("multiple", False))),
        )


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Position":
        data = data or {}
        return cls(x=float(data.get("x", 0)), y=float(data.get("y", 0)))


@dataclass
class Dimensions:
    width: float = 320.0
    height: float = 400.0

    def to_dict(self) -> Dict[str, float]:
        return {"width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "Dimensions":
        if not data:
            return cls()
        return cls(width=float(data.get("width", 320)), height=float(data.get("height", 400)))


@dataclass
class LastExecution:
    started_at: str
    completed_at: Optional[str] = None
    duration_ms: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"startedAt": self.started_at}
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        if self.duration_ms is not None:
            data["durationMs"] = self.duration_ms
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> Optional["LastExecution"]:
        if not data:
            return None
        return cls(
            started_at=data.get("startedAt", ""),
            completed_at=data.get("completedAt"),
            duration_ms=data.get("durationMs"),
            error=data.get("error"),
        )


@dataclass
class Node:
    """A typed unit of work on the canvas"""
    id: NodeID
    node_type: str
    category: str
    position: Position = field(default_factory=Position)
    dimensions: Dimensions = field(default_factory=Dimensions)
    inputs: List[Port] = field(default_factory=list)
    outputs: List[Port] = field(default_factory=list)
    parameters: Dict[str, Any] = field(default_factory=dict)
    status: NodeStatus = NodeStatus.IDLE
    cached_output: Optional[Dict[str, Any]] = None
    last_execution: Optional[LastExecution] = None
    result: Optional[Dict[str, Any]] = None
    board_id: Optional[BoardID] = None
    label: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        for side, ports in (("input", self.inputs), ("output", self.outputs)):
            seen = set()
            for port in ports:
                if port.id in seen:
                    raise ValueError(f"Duplicate {side} port id '{port.id}' on node {self.id}")
                seen.add(port.id)

    def get_input(self, port_id: Optional[PortID]) -> Optional[Port]:
        return _find_port(self.inputs, port_id)

    def get_output(self, port_id: Optional[PortID]) -> Optional[Port]:
        return _find_port(self.outputs, port_id)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "nodeType": self.node_type,
            "category": self.category,
            "position": self.position.to_dict(),
            "dimensions": self.dimensions.to_dict(),
            "inputs": [p.to_dict() for p in self.inputs],
            "outputs": [p.to_dict() for p in self.outputs],
            "parameters": copy.deepcopy(self.parameters),
            "status": self.status.value,
        }
        if self.cached_output is not None:
            data["cachedOutput"] = copy.deepcopy(self.cached_output)
        if self.last_execution is not None:
            data["lastExecution"] = self.last_execution.to_dict()
        if self.result is not None:
            data["result"] = copy.deepcopy(self.result)
        for key, value in (("boardId", self.board_id), ("label", self.label),
                           ("createdAt", self.created_at), ("updatedAt", self.updated_at)):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Node":
        status = data.get("status") or NodeStatus.IDLE.value
        return cls(
            id=data["id"],
            node_type=data.get("nodeType") or data.get("type", ""),
            category=data.get("category", "custom"),
            position=Position.from_dict(data.get("position")),
            dimensions=Dimensions.from_dict(data.get("dimensions")),
            inputs=[Port.from_dict(p) for p in data.get("inputs") or []],
            outputs=[Port.from_dict(p) for p in data.get("outputs") or []],
            parameters=copy.deepcopy(dict(data.get("parameters") or {})),
            status=NodeStatus(status),
            cached_output=copy.deepcopy(data.get("cachedOutput")),
            last_execution=LastExecution.from_dict(data.get("lastExecution")),
            result=copy.deepcopy(data.get("result")),
            board_id=data.get("boardId"),
            label=data.get("label"),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class Edge:
    """A directed connection from an output port to an input port"""
    id: EdgeID
    source_node_id: NodeID
    target_node_id: NodeID
    source_port_id: Optional[PortID] = None
    target_port_id: Optional[PortID] = None
    edge_type: str = "default"
    board_id: Optional[BoardID] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "sourceNodeId": self.source_node_id,
            "sourcePortId": self.source_port_id,
            "targetNodeId": self.target_node_id,
            "targetPortId": self.target_port_id,
            "edgeType": self.edge_type,
        }
        if self.board_id is not None:
            data["boardId"] = self.board_id
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Edge":
        return cls(
            id=data["id"],
            source_node_id=data["sourceNodeId"],
            target_node_id=data["targetNodeId"],
            source_port_id=data.get("sourcePortId"),
            target_port_id=data.get("targetPortId"),
            edge_type=data.get("edgeType") or "default",
            board_id=data.get("boardId"),
        )


@dataclass(frozen=True)
class Connection:
    """A candidate edge, before validation"""
    source_node_id: Optional[NodeID]
    target_node_id: Optional[NodeID]
    source_port_id: Optional[PortID] = None
    target_port_id: Optional[PortID] = None


@dataclass(frozen=True)
class GraphSnapshot:
    """
    Consistent read-only view of a board's graph

    Nodes and edges are deep copies, so derived computations (validation,
    input resolution, layout) never observe a half-applied mutation.
    """
    board_id: Optional[BoardID]
    nodes: Dict[NodeID, Node]
    edges: Dict[EdgeID, Edge]

    @classmethod
    def capture(cls, board_id: Optional[BoardID], nodes: Iterable[Node], edges: Iterable[Edge]) -> "GraphSnapshot":
        return cls(
            board_id=board_id,
            nodes={n.id: copy.deepcopy(n) for n in nodes},
            edges={e.id: copy.deepcopy(e) for e in edges},
        )

    def node_list(self) -> List[Node]:
        return list(self.nodes.values())

    def edge_list(self) -> List[Edge]:
        return list(self.edges.values())

    def incoming(self, node_id: NodeID) -> List[Edge]:
        return [e for e in self.edges.values() if e.target_node_id == node_id]

    def outgoing(self, node_id: NodeID) -> List[Edge]:
        return [e for e in self.edges.values() if e.source_node_id == node_id]


def _find_port(ports: List[Port], port_id: Optional[PortID]) -> Optional[Port]:
    # A missing handle id means the node's first port on that side
    if port_id is None:
        return ports[0] if ports else None
    for port in ports:
        if port.id == port_id:
            return port
    return None
