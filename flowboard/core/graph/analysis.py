"""
Graph analysis for Flowboard
Whole-board checks (missing inputs, cycles, port compatibility, isolated
nodes) and the topological execution plan.
"""
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from .models import GraphSnapshot
from .validation import ConnectionOptions, DEFAULT_OPTIONS, validate_all_edges
from ..errors import CycleError
from ..execution.resolver import is_valid_value
from ..types import ExecutionOrder, NodeID


@dataclass
class GraphIssue:
    type: str
    severity: str
    message: str
    node_id: Optional[NodeID] = None
    edge_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "nodeId": self.node_id,
            "edgeId": self.edge_id,
        }


@dataclass
class GraphValidationResult:
    valid: bool
    issues: List[GraphIssue] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def errors(self) -> List[GraphIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> List[GraphIssue]:
        return [i for i in self.issues if i.severity == "warning"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "issues": [i.to_dict() for i in self.issues],
            "stats": dict(self.stats),
        }


def _dependencies(snapshot: GraphSnapshot) -> Dict[NodeID, Set[NodeID]]:
    # dependencies[node_id] = set of node ids that must run before it
    dependencies: Dict[NodeID, Set[NodeID]] = defaultdict(set)
    for edge in snapshot.edges.values():
        if edge.source_node_id in snapshot.nodes and edge.target_node_id in snapshot.nodes:
            dependencies[edge.target_node_id].add(edge.source_node_id)
    return dependencies


def _kahn_layers(snapshot: GraphSnapshot) -> List[List[NodeID]]:
    """Kahn's algorithm, grouped into layers of mutually independent nodes"""
    dependencies = _dependencies(snapshot)
    in_degree: Dict[NodeID, int] = {node_id: len(dependencies[node_id]) for node_id in snapshot.nodes}
    dependents: Dict[NodeID, List[NodeID]] = defaultdict(list)
    for target_id, sources in dependencies.items():
        for source_id in sources:
            dependents[source_id].append(target_id)

    layers: List[List[NodeID]] = []
    current = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
    while current:
        layer = list(current)
        layers.append(layer)
        current = deque()
        for node_id in layer:
            for target_id in dependents[node_id]:
                in_degree[target_id] -= 1
                if in_degree[target_id] == 0:
                    current.append(target_id)
    return layers


def topological_order(snapshot: GraphSnapshot) -> List[NodeID]:
    """
    Resolve execution order using topological sort

    Raises:
        CycleError: if the graph contains a cycle
    """
    order = [node_id for layer in _kahn_layers(snapshot) for node_id in layer]
    if len(order) != len(snapshot.nodes):
        ordered = set(order)
        cycle_nodes = [node_id for node_id in snapshot.nodes if node_id not in ordered]
        raise CycleError(
            f"Cycle detected in board graph: {len(order)}/{len(snapshot.nodes)} nodes in execution order. "
            f"Nodes involved in cycle: {cycle_nodes}"
        )
    return order


def execution_order(snapshot: GraphSnapshot) -> ExecutionOrder:
    """
    Execution plan for a board

    Returns:
        {'order': [...], 'parallel_groups': [[...], ...], 'has_cycles': bool}.
        Nodes caught in a cycle are left out of order and groups.
    """
    layers = _kahn_layers(snapshot)
    order = [node_id for layer in layers for node_id in layer]
    return ExecutionOrder(
        order=order,
        parallel_groups=layers,
        has_cycles=len(order) != len(snapshot.nodes),
    )


def validate_graph(
    snapshot: GraphSnapshot,
    options: ConnectionOptions = DEFAULT_OPTIONS,
) -> GraphValidationResult:
    """
    Check a whole board

    Errors: missing required inputs, cycles, incompatible edges.
    Warnings: isolated nodes.
    """
    issues: List[GraphIssue] = []
    connected: Set[NodeID] = set()
    for edge in snapshot.edges.values():
        connected.add(edge.source_node_id)
        connected.add(edge.target_node_id)

    for node in snapshot.nodes.values():
        incoming_ports = set()
        for edge in snapshot.incoming(node.id):
            port_id = edge.target_port_id
            if port_id is None and node.inputs:
                port_id = node.inputs[0].id
            incoming_ports.add(port_id)
        for port in node.inputs:
            if not port.required or port.id in incoming_ports:
                continue
            if is_valid_value(node.parameters.get(port.id)):
                continue
            issues.append(GraphIssue(
                type="missing_input",
                severity="error",
                message=f"{node.label or node.node_type} is missing required input '{port.name}'",
                node_id=node.id,
            ))

    if execution_order(snapshot)["has_cycles"]:
        issues.append(GraphIssue(type="cycle", severity="error", message="Graph contains a cycle"))

    edge_results = validate_all_edges(snapshot.nodes, snapshot.edges.values(), options)
    for edge_id, result in edge_results.items():
        edge = snapshot.edges[edge_id]
        if not result.is_valid:
            issues.append(GraphIssue(
                type="incompatible_edge",
                severity="error",
                message=result.reason or "Invalid connection",
                edge_id=edge_id,
                node_id=edge.target_node_id,
            ))

    isolated = [node_id for node_id in snapshot.nodes if node_id not in connected]
    if len(snapshot.nodes) > 1:
        for node_id in isolated:
            node = snapshot.nodes[node_id]
            issues.append(GraphIssue(
                type="isolated_node",
                severity="warning",
                message=f"{node.label or node.node_type} is not connected to anything",
                node_id=node_id,
            ))

    stats = {
        "total_nodes": len(snapshot.nodes),
        "connected_nodes": len(connected & set(snapshot.nodes)),
        "isolated_nodes": len(isolated),
    }
    valid = not any(i.severity == "error" for i in issues)
    return GraphValidationResult(valid=valid, issues=issues, stats=stats)
