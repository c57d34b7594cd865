import copy
import threading
from collections import OrderedDict
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

from .Errors import DuplicateIdError
from .Types import FieldMap


# Defining Edge as a simple data structure
# Using NamedTuple for immutability, so edge lists can be handed out without copying
class Edge(NamedTuple):
    id: str
    source: str
    target: str

    # Rendering hint for the canvas, the engine never looks at it
    edge_type: str = "smoothstep"

    def __repr__(self):
        return f"Edge({self.id}: {self.source} -> {self.target})"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "source": self.source, "target": self.target, "type": self.edge_type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edge":
        return cls(
            id=str(data["id"]),
            source=str(data["source"]),
            target=str(data["target"]),
            edge_type=data.get("type") or "smoothstep",
        )


class GraphNode:
    """One node on the canvas: a type tag, a position and an open field map."""

    def __init__(self,
                 id: str,
                 type: str,
                 position: Optional[Dict[str, float]] = None,
                 fields: Optional[FieldMap] = None
                    ):
        self.id = id
        self.type = type
        self.position = {"x": 0.0, "y": 0.0}
        if position:
            self.position = {"x": float(position.get("x", 0.0)), "y": float(position.get("y", 0.0))}
        self.fields: FieldMap = dict(fields) if fields else {}

    def __repr__(self):
        return f"GraphNode({self.id}, {self.type})"

    def copy(self) -> "GraphNode":
        return GraphNode(self.id, self.type, dict(self.position), copy.deepcopy(self.fields))

    def to_dict(self) -> Dict[str, Any]:
        # "data" is the canvas library's name for the field map
        return {
            "id": self.id,
            "type": self.type,
            "position": dict(self.position),
            "data": copy.deepcopy(self.fields),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphNode":
        return cls(
            id=str(data["id"]),
            type=str(data.get("type") or ""),
            position=data.get("position"),
            fields=copy.deepcopy(data.get("data") or {}),
        )


class NodeStore:
    """
    Ordered collection of nodes.

    Every mutator takes the graph lock and works on the state as it is *now*,
    never on a copy captured earlier. Operator completions can arrive minutes
    after they were started and the canvas may have changed since.
    """

    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._nodes: "OrderedDict[str, GraphNode]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._nodes

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._nodes.keys())

    def get(self, node_id: str) -> Optional[GraphNode]:
        with self._lock:
            node = self._nodes.get(node_id)
            return node.copy() if node else None

    def peek(self, node_id: str) -> Optional[GraphNode]:
        # Live record, only valid while the caller holds the graph lock.
        return self._nodes.get(node_id)

    def all(self) -> List[GraphNode]:
        with self._lock:
            return [n.copy() for n in self._nodes.values()]

    def add(self, node: GraphNode) -> None:
        with self._lock:
            if node.id in self._nodes:
                raise DuplicateIdError("Node", node.id)
            self._nodes[node.id] = node

    def add_many(self, nodes: Iterable[GraphNode]) -> None:
        nodes = list(nodes)
        with self._lock:
            # validate everything first so a bad batch leaves the store untouched
            seen = set(self._nodes.keys())
            for node in nodes:
                if node.id in seen:
                    raise DuplicateIdError("Node", node.id)
                seen.add(node.id)
            for node in nodes:
                self._nodes[node.id] = node

    def remove(self, node_id: str) -> Optional[GraphNode]:
        with self._lock:
            return self._nodes.pop(node_id, None)

    def update(self, node_id: str, partial_fields: FieldMap) -> bool:
        """Shallow merge *partial_fields* into the node. Unknown ids are ignored."""
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return False
            node.fields.update(partial_fields)
            return True

    def apply_batch(self, updates: List[Tuple[str, FieldMap]]) -> List[str]:
        """Apply several shallow merges under one lock hold; returns the ids that changed."""
        touched: List[str] = []
        with self._lock:
            for node_id, partial in updates:
                node = self._nodes.get(node_id)
                if node is None:
                    continue
                node.fields.update(partial)
                if node_id not in touched:
                    touched.append(node_id)
        return touched

    def set_position(self, node_id: str, x: float, y: float) -> bool:
        with self._lock:
            node = self._nodes.get(node_id)
            if node is None:
                return False
            node.position = {"x": float(x), "y": float(y)}
            return True

    def replace_all(self, nodes: Iterable[GraphNode]) -> None:
        replacement: "OrderedDict[str, GraphNode]" = OrderedDict()
        for node in nodes:
            if node.id in replacement:
                raise DuplicateIdError("Node", node.id)
            replacement[node.id] = node
        with self._lock:
            self._nodes = replacement


class EdgeStore:
    """Ordered collection of edges (Arena Pattern: edges live here, not on nodes)."""

    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._edges: List[Edge] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._edges)

    def all(self) -> List[Edge]:
        with self._lock:
            return list(self._edges)

    def get(self, edge_id: str) -> Optional[Edge]:
        with self._lock:
            for e in self._edges:
                if e.id == edge_id:
                    return e
            return None

    def find(self, source: str, target: str) -> Optional[Edge]:
        with self._lock:
            for e in self._edges:
                if e.source == source and e.target == target:
                    return e
            return None

    def outgoing(self, source_id: str) -> List[Edge]:
        with self._lock:
            return [e for e in self._edges if e.source == source_id]

    def add(self, edge: Edge) -> None:
        with self._lock:
            if any(e.id == edge.id for e in self._edges):
                raise DuplicateIdError("Edge", edge.id)
            self._edges.append(edge)

    def remove(self, edge_id: str) -> Optional[Edge]:
        with self._lock:
            for i, e in enumerate(self._edges):
                if e.id == edge_id:
                    return self._edges.pop(i)
            return None

    def remove_touching(self, node_id: str) -> List[Edge]:
        with self._lock:
            removed = [e for e in self._edges if e.source == node_id or e.target == node_id]
            if removed:
                self._edges = [e for e in self._edges if e.source != node_id and e.target != node_id]
            return removed

    def replace_all(self, edges: Iterable[Edge]) -> None:
        replacement = list(edges)
        seen = set()
        for e in replacement:
            if e.id in seen:
                raise DuplicateIdError("Edge", e.id)
            seen.add(e.id)
        with self._lock:
            self._edges = replacement

    def key(self) -> str:
        """Canonical serialization of the (source, target) pairs, used to spot no-op reschedules."""
        with self._lock:
            return ",".join(f"{e.source}-{e.target}" for e in self._edges)


class Graph:
    """Nodes + edges sharing one re-entrant lock."""

    def __init__(self):
        self.lock = threading.RLock()
        self.nodes = NodeStore(self.lock)
        self.edges = EdgeStore(self.lock)

    def is_empty(self) -> bool:
        return len(self.nodes) == 0

    def replace(self, nodes: Iterable[GraphNode], edges: Iterable[Edge]) -> None:
        """Swap both stores in one step; readers never see the new nodes with the old edges."""
        nodes = list(nodes)
        edges = list(edges)
        with self.lock:
            old_nodes = self.nodes.all()
            self.nodes.replace_all(nodes)
            try:
                self.edges.replace_all(edges)
            except DuplicateIdError:
                self.nodes.replace_all(old_nodes)
                raise

    def reset(self) -> None:
        with self.lock:
            self.nodes.replace_all([])
            self.edges.replace_all([])
