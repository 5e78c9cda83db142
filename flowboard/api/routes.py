"""
API routes for Flowboard
"""
from fastapi import APIRouter, HTTPException, Depends, Request
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Literal

from ..core.board import BoardSession, ProviderNotConfiguredError
from ..core.container import ServiceContainer
from ..core.config import Config
from ..core.execution.connection_actions import estimate_cost, select_model
from ..core.errors import ConnectionRejectedError, EdgeNotFoundError, NodeNotFoundError
from ..core.graph.models import Connection, Position
from ..core.graph.node_registry import list_node_definitions
from ..core.graph.port_types import compatible_types, known_port_types, port_color
from ..core.graph.validation import ConnectionOptions
from ..layout import LayoutOptions

router = APIRouter()


def get_container(request: Request) -> ServiceContainer:
    """Get ServiceContainer from app state (injected by FastAPI)"""
    return request.app.state.container


def _session(container: ServiceContainer, board_id: str) -> BoardSession:
    return container.boards.get(board_id)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, (NodeNotFoundError, EdgeNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConnectionRejectedError):
        return HTTPException(status_code=400, detail=e.result.reason)
    if isinstance(e, ProviderNotConfiguredError):
        return HTTPException(status_code=503, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


# Request/Response models
class PositionModel(BaseModel):
    x: float = Field(..., description="Canvas x coordinate (top-left)")
    y: float = Field(..., description="Canvas y coordinate (top-left)")

    def to_position(self) -> Position:
        return Position(self.x, self.y)


class CreateNodeRequest(BaseModel):
    """Request model for node creation"""
    node_type: str = Field(..., alias="nodeType", description="Registered node type, e.g. 'imageGen'")
    position: Optional[PositionModel] = Field(default=None, description="Drop position (nudged if it overlaps)")
    label: Optional[str] = Field(default=None, description="Display label (defaults to the type's label)")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Initial parameter values")

    model_config = {"populate_by_name": True}


class UpdateParametersRequest(BaseModel):
    parameters: Dict[str, Any] = Field(..., description="Partial parameter patch, merged key by key")


class MoveNodeRequest(BaseModel):
    position: PositionModel
    drag_end: bool = Field(
        default=True,
        alias="dragEnd",
        description="Treat as end of drag: snap and move to the nearest free position"
    )

    model_config = {"populate_by_name": True}


class ConnectionRequest(BaseModel):
    """Candidate edge between two node ports"""
    source: Optional[str] = Field(default=None, description="Source node id")
    target: Optional[str] = Field(default=None, description="Target node id")
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle", description="Source port id")
    target_handle: Optional[str] = Field(default=None, alias="targetHandle", description="Target port id")
    strict: Optional[bool] = Field(default=None, description="Override strict type checking for this request")
    allow_multiple: Optional[bool] = Field(
        default=None,
        alias="allowMultiple",
        description="Allow a second edge into a single-input port"
    )

    model_config = {"populate_by_name": True}

    def to_connection(self) -> Connection:
        return Connection(self.source, self.target, self.source_handle, self.target_handle)

    def options(self, base: ConnectionOptions) -> ConnectionOptions:
        return ConnectionOptions(
            allow_self_connection=base.allow_self_connection,
            allow_multiple_connections=base.allow_multiple_connections if self.allow_multiple is None else self.allow_multiple,
            strict_type_checking=base.strict_type_checking if self.strict is None else self.strict,
        )


class LayoutRequest(BaseModel):
    direction: Literal["LR", "TB", "RL", "BT"] = Field(default="LR", description="Dataflow direction")
    node_spacing: float = Field(default=80, alias="nodeSpacing", ge=0)
    rank_spacing: float = Field(default=120, alias="rankSpacing", ge=0)
    selected_ids: Optional[List[str]] = Field(
        default=None,
        alias="selectedIds",
        description="Lay out only these nodes (others stay fixed)"
    )

    model_config = {"populate_by_name": True}

    def to_options(self) -> LayoutOptions:
        return LayoutOptions.from_dict({
            "direction": self.direction,
            "nodeSpacing": self.node_spacing,
            "rankSpacing": self.rank_spacing,
        })


class ActionCheckRequest(BaseModel):
    source: str = Field(..., description="Source node id")
    target: str = Field(..., description="Target node id")
    action_type: str = Field(default="fuse", alias="actionType", description="fuse, style-transplant, variation-bridge, ...")
    options: Dict[str, Any] = Field(default_factory=dict, description="numVariations, resolution")

    model_config = {"populate_by_name": True}


# Catalog endpoints
@router.get("/port-types")
async def get_port_types():
    """Port types with their semantic neighbours and display colors"""
    return {
        "portTypes": [
            {"type": name, "compatibleWith": compatible_types(name), "color": port_color(name)}
            for name in known_port_types()
        ]
    }


@router.get("/node-types")
async def get_node_types():
    """Registered node types with their default ports"""
    return {"nodeTypes": [definition.to_dict() for definition in list_node_definitions()]}


# Board endpoints
@router.get("/boards/{board_id}")
async def get_board(board_id: str, container: ServiceContainer = Depends(get_container)):
    """Full graph for a board"""
    try:
        return _session(container, board_id).to_dict()
    except Exception as e:
        raise _http_error(e)


@router.get("/boards/{board_id}/validate")
async def validate_board(board_id: str, container: ServiceContainer = Depends(get_container)):
    """Missing inputs, cycles, incompatible edges and isolated nodes"""
    try:
        return _session(container, board_id).validate().to_dict()
    except Exception as e:
        raise _http_error(e)


@router.get("/boards/{board_id}/execution-order")
async def get_execution_order(board_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        return _session(container, board_id).execution_order()
    except Exception as e:
        raise _http_error(e)


@router.post("/boards/{board_id}/layout")
async def layout_board(board_id: str, request: LayoutRequest, container: ServiceContainer = Depends(get_container)):
    """Hierarchical auto-layout of the board or a selection"""
    try:
        session = _session(container, board_id)
        result, summary = session.auto_layout(request.selected_ids, request.to_options())
        response = result.to_dict()
        response["persisted"] = summary
        return response
    except Exception as e:
        raise _http_error(e)


@router.post("/boards/{board_id}/resolve-collisions")
async def resolve_board_collisions(board_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        moved, count = _session(container, board_id).resolve_collisions()
        return {"moved": {nid: pos.to_dict() for nid, pos in moved.items()}, "count": count}
    except Exception as e:
        raise _http_error(e)


@router.post("/boards/{board_id}/sync/retry")
async def retry_sync(board_id: str, container: ServiceContainer = Depends(get_container)):
    """Retry node/edge creations that failed to persist"""
    try:
        session = _session(container, board_id)
        retried = session.retry_pending()
        pending = session.persistence.pending_sync if session.persistence else []
        return {"retried": retried, "pending": [op.to_dict() for op in pending]}
    except Exception as e:
        raise _http_error(e)


# Node endpoints
@router.post("/boards/{board_id}/nodes")
async def create_node(board_id: str, request: CreateNodeRequest, container: ServiceContainer = Depends(get_container)):
    try:
        node = _session(container, board_id).add_node(
            request.node_type,
            position=request.position.to_position() if request.position else None,
            label=request.label,
            parameters=request.parameters,
        )
        return node.to_dict()
    except Exception as e:
        raise _http_error(e)


@router.get("/boards/{board_id}/nodes/{node_id}")
async def get_node(board_id: str, node_id: str, container: ServiceContainer = Depends(get_container)):
    """Node state, including status and cached output (poll target for clients)"""
    try:
        return _session(container, board_id).store.get_node(node_id).to_dict()
    except Exception as e:
        raise _http_error(e)


@router.patch("/boards/{board_id}/nodes/{node_id}/parameters")
async def update_parameters(
    board_id: str,
    node_id: str,
    request: UpdateParametersRequest,
    container: ServiceContainer = Depends(get_container),
):
    try:
        return _session(container, board_id).update_parameters(node_id, request.parameters).to_dict()
    except Exception as e:
        raise _http_error(e)


@router.patch("/boards/{board_id}/nodes/{node_id}/position")
async def move_node(
    board_id: str,
    node_id: str,
    request: MoveNodeRequest,
    container: ServiceContainer = Depends(get_container),
):
    try:
        session = _session(container, board_id)
        if request.drag_end:
            position, adjusted = session.end_drag(node_id, request.position.to_position())
            return {"position": position.to_dict(), "adjusted": adjusted}
        collisions = session.drag_collisions(node_id, request.position.to_position())
        return {"position": request.position.model_dump(), "collisions": collisions}
    except Exception as e:
        raise _http_error(e)


@router.delete("/boards/{board_id}/nodes/{node_id}")
async def delete_node(board_id: str, node_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        removed = _session(container, board_id).delete_node(node_id)
        return {"deleted": node_id, "removedEdges": [edge.id for edge in removed]}
    except Exception as e:
        raise _http_error(e)


@router.get("/boards/{board_id}/nodes/{node_id}/inputs")
async def get_node_inputs(board_id: str, node_id: str, container: ServiceContainer = Depends(get_container)):
    """Inputs the node would receive if executed now"""
    try:
        return {"nodeId": node_id, "inputs": _session(container, board_id).resolve_inputs(node_id)}
    except Exception as e:
        raise _http_error(e)


@router.post("/boards/{board_id}/nodes/{node_id}/execute")
async def execute_node(board_id: str, node_id: str, container: ServiceContainer = Depends(get_container)):
    """
    Execute a node

    Returns the node immediately after the provider answers; long jobs keep
    running in the background and the node is polled until it finishes.
    """
    try:
        node = await _session(container, board_id).execute_node(node_id)
        if node is None:
            raise HTTPException(status_code=404, detail=f"Node {node_id} was deleted during execution")
        return node.to_dict()
    except Exception as e:
        raise _http_error(e)


@router.post("/boards/{board_id}/nodes/{node_id}/reset")
async def reset_node(board_id: str, node_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        return _session(container, board_id).reset_node(node_id).to_dict()
    except Exception as e:
        raise _http_error(e)


# Edge endpoints
@router.post("/boards/{board_id}/connections/validate")
async def validate_connection(
    board_id: str,
    request: ConnectionRequest,
    container: ServiceContainer = Depends(get_container),
):
    """Check a candidate connection without committing it"""
    try:
        session = _session(container, board_id)
        result = session.validate_connection(request.to_connection(), request.options(session.store.options))
        return result.to_dict()
    except Exception as e:
        raise _http_error(e)


@router.post("/boards/{board_id}/edges")
async def create_edge(board_id: str, request: ConnectionRequest, container: ServiceContainer = Depends(get_container)):
    """Validate and commit a connection (400 with the rejection reason if invalid)"""
    try:
        session = _session(container, board_id)
        edge = session.connect(
            request.source,
            request.target,
            request.source_handle,
            request.target_handle,
            options=request.options(session.store.options),
        )
        return edge.to_dict()
    except Exception as e:
        raise _http_error(e)


@router.delete("/boards/{board_id}/edges/{edge_id}")
async def delete_edge(board_id: str, edge_id: str, container: ServiceContainer = Depends(get_container)):
    try:
        _session(container, board_id).disconnect(edge_id)
        return {"deleted": edge_id}
    except Exception as e:
        raise _http_error(e)


@router.post("/boards/{board_id}/connection-actions/check")
async def check_connection_action(
    board_id: str,
    request: ActionCheckRequest,
    container: ServiceContainer = Depends(get_container),
):
    """Whether a connection action between two nodes can run (both need generated images)"""
    try:
        check = _session(container, board_id).connection_action_check(request.source, request.target)
        response = check.to_dict()
        response["model"] = select_model(request.action_type)
        response["estimatedCost"] = round(estimate_cost(request.action_type, request.options), 4)
        return response
    except Exception as e:
        raise _http_error(e)


@router.get("/config")
async def get_config():
    """Canvas geometry and polling settings clients need to mirror"""
    return {
        "gridSnap": Config.GRID_SNAP,
        "collisionPadding": Config.COLLISION_PADDING,
        "defaultNodeWidth": Config.DEFAULT_NODE_WIDTH,
        "defaultNodeHeight": Config.DEFAULT_NODE_HEIGHT,
        "pollInterval": Config.POLL_INTERVAL,
    }
