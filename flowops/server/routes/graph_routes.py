"""
Graph REST routes.

All routes are mounted under /api by main.py.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from flowops.core.Errors import (
    ConfirmationRequiredError,
    EdgeNotFoundError,
    GraphError,
    NodeNotFoundError,
    PresetNotFoundError,
)
from flowops.core.GraphSession import GraphSession
from flowops.server.serializers.graph_serializer import (
    serialize_edge,
    serialize_graph,
    serialize_node,
    serialize_node_types,
    serialize_presets,
)
from flowops.server.state import get_session


router = APIRouter()


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, (NodeNotFoundError, EdgeNotFoundError, PresetNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConfirmationRequiredError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


# ── GET /graph ────────────────────────────────────────────────────────────────

@router.get("/graph")
async def get_graph(
    consume_fit_view: bool = Query(True, alias="consumeFitView"),
    session: GraphSession = Depends(get_session),
) -> Dict[str, Any]:
    return serialize_graph(session, consume_fit_view=consume_fit_view)


# ── GET /node-types ───────────────────────────────────────────────────────────

@router.get("/node-types")
async def get_node_types() -> List[Dict[str, Any]]:
    return serialize_node_types()


# ── GET /presets ──────────────────────────────────────────────────────────────

@router.get("/presets")
async def get_presets() -> List[Dict[str, Any]]:
    return serialize_presets()


# ── POST /nodes ───────────────────────────────────────────────────────────────

class CreateNodeBody(BaseModel):
    type: str
    position: Optional[Dict[str, float]] = None
    data: Optional[Dict[str, Any]] = None


@router.post("/nodes", status_code=201)
async def create_node(body: CreateNodeBody, session: GraphSession = Depends(get_session)) -> Dict[str, Any]:
    if not body.type.strip():
        raise HTTPException(status_code=400, detail="`type` required")
    try:
        node = session.add_node(body.type.strip(), body.position, body.data)
    except GraphError as exc:
        raise _http_error(exc)
    return serialize_node(node)


# ── PATCH /nodes/:nodeId/data ─────────────────────────────────────────────────

class UpdateNodeDataBody(BaseModel):
    data: Dict[str, Any]


@router.patch("/nodes/{node_id}/data")
async def update_node_data(
    node_id: str, body: UpdateNodeDataBody, session: GraphSession = Depends(get_session)
) -> Dict[str, Any]:
    if not session.update_node_data(node_id, body.data):
        raise _http_error(NodeNotFoundError(node_id))
    return serialize_node(session.get_node(node_id))


# ── PUT /nodes/:nodeId/position ───────────────────────────────────────────────

class PositionBody(BaseModel):
    x: float
    y: float


@router.put("/nodes/{node_id}/position", status_code=204)
async def set_node_position(
    node_id: str, body: PositionBody, session: GraphSession = Depends(get_session)
) -> Response:
    try:
        session.set_position(node_id, body.x, body.y)
    except GraphError as exc:
        raise _http_error(exc)
    return Response(status_code=204)


# ── DELETE /nodes/:nodeId ─────────────────────────────────────────────────────

@router.delete("/nodes/{node_id}", status_code=204)
async def delete_node(node_id: str, session: GraphSession = Depends(get_session)) -> Response:
    try:
        session.delete_node(node_id)
    except GraphError as exc:
        raise _http_error(exc)
    return Response(status_code=204)


# ── POST /edges ───────────────────────────────────────────────────────────────

class EdgeBody(BaseModel):
    source: str
    target: str


@router.post("/edges", status_code=201)
async def create_edge(body: EdgeBody, session: GraphSession = Depends(get_session)) -> Dict[str, Any]:
    try:
        edge = session.create_edge(body.source, body.target)
    except GraphError as exc:
        raise _http_error(exc)
    return serialize_edge(edge)


# ── DELETE /edges/:edgeId ─────────────────────────────────────────────────────

@router.delete("/edges/{edge_id}", status_code=204)
async def delete_edge(edge_id: str, session: GraphSession = Depends(get_session)) -> Response:
    try:
        session.remove_edge(edge_id)
    except GraphError as exc:
        raise _http_error(exc)
    return Response(status_code=204)


# ── POST /nodes/:nodeId/propagate ─────────────────────────────────────────────

class PropagateDataBody(BaseModel):
    value: Any = None


@router.post("/nodes/{node_id}/propagate")
async def propagate_data(
    node_id: str, body: PropagateDataBody, session: GraphSession = Depends(get_session)
) -> Dict[str, Any]:
    # a source deleted mid-flight is not an error, the push just reaches nobody
    return {"updated": session.propagate_data(node_id, body.value)}


# ── POST /nodes/:nodeId/propagate-output ──────────────────────────────────────

class PropagateOutputBody(BaseModel):
    media_url: str = Field(alias="mediaUrl")
    label: str = ""


@router.post("/nodes/{node_id}/propagate-output")
async def propagate_output(
    node_id: str, body: PropagateOutputBody, session: GraphSession = Depends(get_session)
) -> Dict[str, Any]:
    return {"updated": session.propagate_output(node_id, body.media_url, body.label)}


# ── POST /presets/load ────────────────────────────────────────────────────────

class LoadPresetBody(BaseModel):
    name: str
    confirm: bool = False


@router.post("/presets/load")
async def load_preset(body: LoadPresetBody, session: GraphSession = Depends(get_session)) -> Dict[str, Any]:
    try:
        loaded = session.load_preset_by_name(body.name, confirm=lambda: body.confirm)
    except GraphError as exc:
        raise _http_error(exc)
    if not loaded:
        raise _http_error(ConfirmationRequiredError("This will replace your current flow. Resend with confirm=true."))
    return serialize_graph(session, consume_fit_view=True)


# ── POST /actions ─────────────────────────────────────────────────────────────

class ActionsBody(BaseModel):
    actions: List[Dict[str, Any]]
    confirm: bool = False


@router.post("/actions")
async def apply_actions(body: ActionsBody, session: GraphSession = Depends(get_session)) -> Dict[str, Any]:
    # a declined preset replace surfaces as 409 before any action runs
    try:
        created = session.apply_actions(body.actions, confirm=lambda: body.confirm)
    except GraphError as exc:
        raise _http_error(exc)
    result = serialize_graph(session, consume_fit_view=True)
    result["createdIds"] = created
    return result


# ── POST /clear ───────────────────────────────────────────────────────────────

class ClearBody(BaseModel):
    confirm: bool = False


@router.post("/clear")
async def clear_canvas(body: ClearBody, session: GraphSession = Depends(get_session)) -> Dict[str, Any]:
    if not session.clear_canvas(confirm=lambda: body.confirm):
        raise _http_error(ConfirmationRequiredError("Clear all nodes and connections? Resend with confirm=true."))
    return serialize_graph(session)
