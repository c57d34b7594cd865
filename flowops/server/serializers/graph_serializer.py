"""
Graph serializer.

Converts the session's nodes, edges, node-type catalogue and presets into
JSON-safe dicts in the shape the canvas library expects.
"""
from __future__ import annotations

from typing import Any, Dict, List

from flowops.core.GraphPrimitives import Edge, GraphNode
from flowops.core.GraphSession import GraphSession
from flowops.core.NodeFactory import NODE_TYPES
from flowops.core.Presets import PRESET_FLOWS

# ── Wire shapes ───────────────────────────────────────────────────────────────
# SerializedNode keys: id, type, position {x, y}, data
# SerializedEdge keys: id, source, target, type
# SerializedGraph keys: nodes, edges, counter, fitView


def serialize_node(node: GraphNode) -> Dict[str, Any]:
    return node.to_dict()


def serialize_edge(edge: Edge) -> Dict[str, Any]:
    return edge.to_dict()


# ── Public API ─────────────────────────────────────────────────────────────────

def serialize_graph(session: GraphSession, consume_fit_view: bool = False) -> Dict[str, Any]:
    """
    Serialize the whole canvas.

    :param consume_fit_view: report *and clear* the one-shot fit-view flag;
                             only the canvas's own refresh should pass True.
    """
    with session.graph.lock:
        nodes = [serialize_node(n) for n in session.graph.nodes.all()]
        edges = [serialize_edge(e) for e in session.graph.edges.all()]
        counter = session.counter.value
    fit_view = session.consume_fit_view() if consume_fit_view else session.fit_view_requested
    return {"nodes": nodes, "edges": edges, "counter": counter, "fitView": fit_view}


def serialize_node_types() -> List[Dict[str, Any]]:
    return [spec.to_dict() for spec in NODE_TYPES.values()]


def serialize_presets() -> List[Dict[str, Any]]:
    return [preset.summary() for preset in PRESET_FLOWS]
