"""
FastAPI + Socket.IO server for the flow canvas.

Start with:
    python -m flowops.server.main

Or via uvicorn directly:
    uvicorn flowops.server.main:socket_app --port 3001 --reload
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file) before
# Settings reads the environment.
_env_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "../..", ".env"))
load_dotenv(_env_path)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowops import __version__
from flowops.server.config import Settings
from flowops.server.events.socket_server import create_socket_app
from flowops.server.routes.graph_routes import router
from flowops.server.state import shutdown_session

settings = Settings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # a save still inside its debounce window is written before exit
    shutdown_session()


app = FastAPI(title="FlowOps API", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Wrap with Socket.IO ASGI layer
# ---------------------------------------------------------------------------

# socket_app is the top-level ASGI app passed to uvicorn.
socket_app = create_socket_app(app)

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "flowops.server.main:socket_app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
