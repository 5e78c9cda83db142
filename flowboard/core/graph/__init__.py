"""
Graph model, port catalog, connection validation and the board graph store
"""
from .models import Port, Node, Edge, Connection, Position, Dimensions, NodeStatus, GraphSnapshot
from .port_types import PortType, is_compatible
from .validation import ConnectionOptions, ValidationResult, validate_connection
from .store import GraphStore

__all__ = [
    "Port", "Node", "Edge", "Connection", "Position", "Dimensions", "NodeStatus", "GraphSnapshot",
    "PortType", "is_compatible",
    "ConnectionOptions", "ValidationResult", "validate_connection",
    "GraphStore",
]
