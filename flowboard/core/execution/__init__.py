"""
Node execution for Flowboard
Input resolution, provider dispatch and result handling
"""
from .resolver import ExecutionInputResolver, resolve_inputs, is_valid_value
from .results import classify_output
from .executor import NodeExecutor, PollHandle
from .connection_actions import can_execute

__all__ = [
    "ExecutionInputResolver",
    "resolve_inputs",
    "is_valid_value",
    "classify_output",
    "NodeExecutor",
    "PollHandle",
    "can_execute",
]
