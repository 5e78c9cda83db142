"""
Connection validation for Flowboard
Decides whether a candidate edge is legal given the current graph state.
All functions here are pure: they never mutate nodes or edges.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .models import Connection, Edge, Node, Port
from .port_types import is_compatible
from ..types import EdgeID, NodeID, PortID


REASON_MISSING_ENDPOINT = "Missing source or target"
REASON_SELF_CONNECTION = "Cannot connect a node to itself"
REASON_NODE_NOT_FOUND = "Source or target node not found"
REASON_PORT_NOT_FOUND = "port not found"
REASON_PORT_OCCUPIED = "Target port already has a connection"


@dataclass(frozen=True)
class ConnectionOptions:
    allow_self_connection: bool = False
    allow_multiple_connections: bool = False
    strict_type_checking: bool = False


DEFAULT_OPTIONS = ConnectionOptions()


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    reason: Optional[str] = None
    source_port: Optional[Port] = None
    target_port: Optional[Port] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "isValid": self.is_valid,
            "reason": self.reason,
            "sourcePort": self.source_port.to_dict() if self.source_port else None,
            "targetPort": self.target_port.to_dict() if self.target_port else None,
        }


NodeCollection = Union[Mapping[NodeID, Node], Iterable[Node]]


def _index(nodes: NodeCollection) -> Mapping[NodeID, Node]:
    if isinstance(nodes, Mapping):
        return nodes
    return {n.id: n for n in nodes}


def _occupies(edge: Edge, target: Node, target_port: Port) -> bool:
    if edge.target_node_id != target.id:
        return False
    # Edges without a target handle land on the node's first input
    edge_port = edge.target_port_id
    if edge_port is None:
        edge_port = target.inputs[0].id if target.inputs else None
    return edge_port == target_port.id


def validate_connection(
    connection: Connection,
    nodes: NodeCollection,
    edges: Iterable[Edge],
    options: ConnectionOptions = DEFAULT_OPTIONS,
) -> ValidationResult:
    """
    Validate a candidate connection

    Args:
        connection: Candidate edge endpoints
        nodes: Current nodes (mapping by id or iterable)
        edges: Current edges
        options: Validation options

    Returns:
        ValidationResult; on success carries the resolved source and target ports
    """
    if not connection.source_node_id or not connection.target_node_id:
        return ValidationResult(False, REASON_MISSING_ENDPOINT)

    if connection.source_node_id == connection.target_node_id and not options.allow_self_connection:
        return ValidationResult(False, REASON_SELF_CONNECTION)

    by_id = _index(nodes)
    source = by_id.get(connection.source_node_id)
    target = by_id.get(connection.target_node_id)
    if source is None or target is None:
        return ValidationResult(False, REASON_NODE_NOT_FOUND)

    source_port = source.get_output(connection.source_port_id)
    target_port = target.get_input(connection.target_port_id)
    if source_port is None or target_port is None:
        return ValidationResult(False, REASON_PORT_NOT_FOUND)

    if not options.allow_multiple_connections and not target_port.multi:
        if any(_occupies(edge, target, target_port) for edge in edges):
            return ValidationResult(False, REASON_PORT_OCCUPIED, source_port, target_port)

    if not is_compatible(source_port.type, target_port.type, strict=options.strict_type_checking):
        return ValidationResult(
            False,
            f"Incompatible types: {source_port.type} cannot connect to {target_port.type}",
            source_port,
            target_port,
        )

    return ValidationResult(True, None, source_port, target_port)


def edge_connection(edge: Edge) -> Connection:
    return Connection(edge.source_node_id, edge.target_node_id, edge.source_port_id, edge.target_port_id)


def validate_all_edges(
    nodes: NodeCollection,
    edges: Iterable[Edge],
    options: ConnectionOptions = DEFAULT_OPTIONS,
) -> Dict[EdgeID, ValidationResult]:
    """
    Re-validate every existing edge against the rest of the graph

    Each edge is checked as if it were being added to the graph without it,
    so an edge never blocks itself on its own target port.
    """
    by_id = _index(nodes)
    edge_list = list(edges)
    results: Dict[EdgeID, ValidationResult] = {}
    for edge in edge_list:
        others = [e for e in edge_list if e.id != edge.id]
        results[edge.id] = validate_connection(edge_connection(edge), by_id, others, options)
    return results


def can_accept_connection(
    node: Node,
    port_id: Optional[PortID],
    edges: Iterable[Edge],
    options: ConnectionOptions = DEFAULT_OPTIONS,
) -> bool:
    """Whether an input port on `node` can take one more incoming edge"""
    port = node.get_input(port_id)
    if port is None:
        return False
    if port.multi or options.allow_multiple_connections:
        return True
    return not any(_occupies(edge, node, port) for edge in edges)


def compatible_target_ports(source_port: Port, node: Node, strict: bool = False) -> List[Port]:
    """Input ports of `node` that accept `source_port`"""
    return [p for p in node.inputs if is_compatible(source_port.type, p.type, strict=strict)]


def determine_edge_type(source_port: Optional[Port], target_port: Optional[Port] = None) -> str:
    """
    Pick the presentation type for a committed edge

    Returns one of: styleEdge, characterEdge, flowingEdge, standardEdge, default
    """
    port = source_port or target_port
    if port is None:
        return "default"
    port_type = str(getattr(port.type, "value", port.type)).lower()
    if port_type in ("style", "styledna"):
        return "styleEdge"
    if port_type in ("character", "face"):
        return "characterEdge"
    if port_type == "video":
        return "flowingEdge"
    if port_type == "image":
        return "standardEdge"
    return "default"
