"""
Session wiring for the server.

One GraphSession per process, created on first use: it restores the saved
canvas from SQLite and fans its change events out through global_emitter.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

from flowops.core.GraphSession import GraphSession
from flowops.core.Persistence import PersistenceAdapter, SQLiteKeyValueStore
from flowops.server.config import Settings
from flowops.server.events.event_emitter import global_emitter

logger = logging.getLogger(__name__)

_session: Optional[GraphSession] = None
_session_lock = threading.Lock()


def build_session(settings: Settings) -> GraphSession:
    store = SQLiteKeyValueStore(settings.db_path)
    persistence = PersistenceAdapter(store, debounce_seconds=settings.save_debounce_seconds)
    session = GraphSession(persistence=persistence, on_event=global_emitter.fire)
    session.start()
    logger.info("graph session ready (db=%s)", settings.db_path)
    return session


def get_session() -> GraphSession:
    """FastAPI dependency; tests swap it out through app.dependency_overrides."""
    global _session
    with _session_lock:
        if _session is None:
            _session = build_session(Settings.from_env())
        return _session


def shutdown_session() -> None:
    """Flush any pending save and close the store."""
    global _session
    with _session_lock:
        if _session is not None:
            _session.close()
            _session = None
