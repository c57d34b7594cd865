"""
Persistence adapter: debounced save and load-on-start of the canvas.

Three keys hold the state: the node array, the edge array and the id
counter. Writes are debounced so a burst of mutations (a drag, a resync
touching ten nodes) ends up as a single write, and the snapshot is taken
when the write happens, not when it was scheduled.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from logging import getLogger

from .GraphPrimitives import Edge, GraphNode
from .Interface import IKeyValueStore

logger = getLogger(__name__)

STORAGE_KEY_NODES = "flow-ops-nodes"
STORAGE_KEY_EDGES = "flow-ops-edges"
STORAGE_KEY_COUNTER = "flow-ops-counter"
STORAGE_KEYS = (STORAGE_KEY_NODES, STORAGE_KEY_EDGES, STORAGE_KEY_COUNTER)

DEFAULT_DEBOUNCE_SECONDS = 0.5

Snapshot = Dict[str, Any]
LoadedGraph = Tuple[List[GraphNode], List[Edge], int]

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class MemoryKeyValueStore(IKeyValueStore):
    def __init__(self):
        self.data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class SQLiteKeyValueStore(IKeyValueStore):
    """Key/value table in a single SQLite file, shared by request and timer threads."""

    def __init__(self, path: Union[str, Path]):
        self.path = str(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        if self.path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.executescript(SCHEMA)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT INTO kv (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    def delete(self, key: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------


class PersistenceAdapter:

    def __init__(self,
                 store: IKeyValueStore,
                 debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
                 timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer):
        self.store = store
        self.debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._timer = None
        self._snapshot_fn: Optional[Callable[[], Snapshot]] = None
        # bumped by clear() so a write already in flight cannot resurrect old state
        self._generation = 0
        self._flush_seq = 0
        self._written_seq = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._snapshot_fn is not None

    # ── Load ─────────────────────────────────────────────────────────────────

    def load(self) -> LoadedGraph:
        """Read the three keys; anything missing or unreadable means an empty canvas."""
        try:
            raw_nodes = self.store.get(STORAGE_KEY_NODES)
            raw_edges = self.store.get(STORAGE_KEY_EDGES)
            raw_counter = self.store.get(STORAGE_KEY_COUNTER)
        except Exception:
            logger.exception("could not read saved graph, starting empty")
            return [], [], 1

        if raw_nodes is None or raw_edges is None or raw_counter is None:
            return [], [], 1

        try:
            node_dicts = json.loads(raw_nodes)
            edge_dicts = json.loads(raw_edges)
            counter = int(raw_counter)
            if not isinstance(node_dicts, list) or not isinstance(edge_dicts, list):
                raise ValueError("nodes and edges must be JSON arrays")
            nodes = [GraphNode.from_dict(n) for n in node_dicts]
            edges = [Edge.from_dict(e) for e in edge_dicts]
            if len({n.id for n in nodes}) != len(nodes) or len({e.id for e in edges}) != len(edges):
                raise ValueError("duplicate ids in saved graph")
        except (ValueError, TypeError, KeyError, AttributeError) as exc:
            logger.warning("saved graph is corrupt (%s), starting empty", exc)
            return [], [], 1

        return nodes, edges, max(1, counter)

    # ── Save ─────────────────────────────────────────────────────────────────

    def schedule_save(self, snapshot_fn: Callable[[], Snapshot]) -> None:
        """(Re)start the debounce window; the latest *snapshot_fn* is what gets written."""
        with self._lock:
            self._snapshot_fn = snapshot_fn
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self.debounce_seconds, self._on_timer)
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
            timer.start()

    def _on_timer(self) -> None:
        self.flush()

    def flush(self) -> bool:
        """Write a pending save right now. Returns True if something was written."""
        with self._lock:
            snapshot_fn = self._snapshot_fn
            generation = self._generation
            # flushes claim a number before they snapshot; an older one never overwrites a newer one
            self._flush_seq += 1
            seq = self._flush_seq
            self._snapshot_fn = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if snapshot_fn is None:
            return False

        # Snapshot outside our lock: it takes the graph lock, and graph
        # mutators call schedule_save() while holding theirs.
        snapshot = snapshot_fn()

        with self._lock:
            if generation != self._generation or seq < self._written_seq:
                return False
            if not self.save_now(snapshot):
                return False
            self._written_seq = seq
            return True

    def save_now(self, snapshot: Snapshot) -> bool:
        try:
            nodes_json = json.dumps(snapshot["nodes"], ensure_ascii=False)
            edges_json = json.dumps(snapshot["edges"], ensure_ascii=False)
            with self._lock:
                self.store.set(STORAGE_KEY_NODES, nodes_json)
                self.store.set(STORAGE_KEY_EDGES, edges_json)
                self.store.set(STORAGE_KEY_COUNTER, str(int(snapshot["counter"])))
        except Exception:
            # editing keeps working in memory; the next mutation retries
            logger.exception("failed to save graph")
            return False
        return True

    # ── Clear ────────────────────────────────────────────────────────────────

    def clear(self) -> None:
        """Drop any pending write and delete the saved keys immediately."""
        with self._lock:
            self._generation += 1
            self._snapshot_fn = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            for key in STORAGE_KEYS:
                try:
                    self.store.delete(key)
                except Exception:
                    logger.exception("failed to delete saved key %s", key)

    def close(self) -> None:
        self.flush()
        self.store.close()
