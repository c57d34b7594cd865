"""
GraphEventEmitter: fan-out of graph change events to registered listeners
(the Socket.IO server, loggers, tests).

The session calls fire() synchronously from whatever thread mutated the
graph; listeners must not block.
"""
from __future__ import annotations

import logging
import time
from typing import Callable, List

from .event_types import GraphEvent

logger = logging.getLogger(__name__)


class GraphEventEmitter:
    def __init__(self) -> None:
        self._listeners: List[Callable[[GraphEvent], None]] = []

    # ------------------------------------------------------------------
    # Listener registration
    # ------------------------------------------------------------------

    def on_event(self, callback: Callable[[GraphEvent], None]) -> None:
        """Register a callback that receives every emitted graph event."""
        self._listeners.append(callback)

    def off_event(self, callback: Callable[[GraphEvent], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    # ------------------------------------------------------------------
    # Emit
    # ------------------------------------------------------------------

    def fire(self, payload: GraphEvent) -> None:
        """Stamp the payload with a millisecond timestamp and broadcast it."""
        if "ts" not in payload:
            payload["ts"] = _now_ms()
        for cb in list(self._listeners):
            try:
                cb(payload)
            except Exception:
                # never let a listener break an edit
                logger.exception("graph event listener failed")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

global_emitter = GraphEventEmitter()


# ---------------------------------------------------------------------------
# Helper
# ---------------------------------------------------------------------------

def _now_ms() -> int:
    return int(time.time() * 1000)
