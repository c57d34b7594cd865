"""
Socket.IO server.

Uses python-socketio in ASGI mode so it can wrap FastAPI.
`create_socket_app(fastapi_app)` returns the composite ASGI application to
pass to uvicorn.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import socketio

from .event_emitter import global_emitter

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Socket.IO instance (async, ASGI mode)
# ---------------------------------------------------------------------------

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins="*",
    logger=False,
    engineio_logger=False,
)

# Loop serving the sockets, remembered so events fired off-loop can still be sent.
_loop: Optional[asyncio.AbstractEventLoop] = None


# ---------------------------------------------------------------------------
# Event fan-out: wire global_emitter → Socket.IO emit
# ---------------------------------------------------------------------------

def _on_graph_event(event: Dict[str, Any]) -> None:
    """
    Called synchronously by GraphEventEmitter.fire().
    We schedule an async emit on the loop that owns the sockets.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop is not None:
        loop.create_task(sio.emit("graph", event))
    elif _loop is not None and _loop.is_running():
        asyncio.run_coroutine_threadsafe(sio.emit("graph", event), _loop)


global_emitter.on_event(_on_graph_event)


# ---------------------------------------------------------------------------
# Socket.IO lifecycle events
# ---------------------------------------------------------------------------

@sio.event
async def connect(sid: str, environ: dict) -> None:  # noqa: D401
    """Send the new client the whole canvas so it can render before any event arrives."""
    global _loop
    _loop = asyncio.get_running_loop()

    from flowops.server.serializers.graph_serializer import serialize_graph
    from flowops.server.state import get_session

    await sio.emit("graph_snapshot", serialize_graph(get_session()), to=sid)


@sio.event
async def disconnect(sid: str) -> None:
    logger.debug("socket %s disconnected", sid)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_socket_app(fastapi_app: Any) -> socketio.ASGIApp:
    """Wrap *fastapi_app* inside a Socket.IO ASGI application."""
    return socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
