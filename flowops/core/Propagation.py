"""
Propagation engine.

Two channels move data along edges:

  A. Structural resync  - runs when the *set of edges* changes. Every edge
     copies the source's broadcast fields onto its target and synthesizes
     the target's ``inputValue``. Staged for all edges, then applied as one
     batch.
  B. Imperative push    - called by an operator once its own async work is
     done. Writes only to the immediate downstream targets, using the edge
     list as it is at call time.

Value-only edits never re-fire channel A; a producer that wants its output
downstream must push it.

Neither channel raises. An edge whose source or target is gone is skipped.
"""
from __future__ import annotations

import json
import math
from typing import Any, Callable, List, Optional, Tuple

from logging import getLogger

from .GraphPrimitives import Graph
from .Types import FieldMap, FieldValue, is_present

logger = getLogger(__name__)


# Fields copied verbatim from source to target during a structural resync.
BROADCAST_FIELDS: Tuple[str, ...] = (
    "value", "outputValue", "transcript", "summary", "articleText",
    "report", "copy", "landingPages", "concepts", "adCopy", "points",
    "headline", "content", "imageUrl", "videoUrl", "outputUrl", "audioUrl",
    "prompt", "title", "episodes",
)

INPUT_VALUE = "inputValue"


def to_json(value: Any) -> str:
    """Compact JSON, byte-for-byte what the canvas would produce with JSON.stringify."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def _same(value: Any) -> Any:
    return value


def is_truthy(value: Any) -> bool:
    # Canvas semantics: empty containers count as set, only scalars can be "falsy".
    if value is None or value is False:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    return True


# Ordered (field, transform) pairs; the first truthy source field wins.
INPUT_VALUE_PRIORITY: Tuple[Tuple[str, Callable[[Any], Any]], ...] = (
    ("report", to_json),
    ("summary", _same),
    ("outputValue", _same),
    ("transcript", _same),
    ("value", _same),
    ("articleText", _same),
)

_MISSING = object()


def resolve_input_value(source_fields: FieldMap) -> Optional[FieldValue]:
    """Return the synthesized inputValue for a node with *source_fields*, or None if nothing qualifies."""
    for field_name, transform in INPUT_VALUE_PRIORITY:
        candidate = source_fields.get(field_name)
        if is_truthy(candidate):
            return transform(candidate)
    return None


def stage_edge_update(source_fields: FieldMap, target_fields: FieldMap) -> FieldMap:
    """Fields one edge would write onto its target. Empty when the target is already caught up."""
    staged: FieldMap = {}

    for field_name in BROADCAST_FIELDS:
        value = source_fields.get(field_name)
        if is_present(value) and target_fields.get(field_name, _MISSING) != value:
            staged[field_name] = value

    input_value = resolve_input_value(source_fields)
    if input_value is not None and target_fields.get(INPUT_VALUE, _MISSING) != input_value:
        staged[INPUT_VALUE] = input_value

    return staged


class PropagationEngine:

    def __init__(self, graph: Graph):
        self.graph = graph
        self._last_edge_key: Optional[str] = None

    # ── Channel A ────────────────────────────────────────────────────────────

    def sync_edges(self) -> List[str]:
        """Resync only if the edge set differs from the last pass. Returns the touched target ids."""
        with self.graph.lock:
            key = self.graph.edges.key()
            if key == self._last_edge_key:
                return []
            self._last_edge_key = key
            return self.resync()

    def forget_edges(self) -> None:
        """Make the next sync_edges() run even if the edge set looks unchanged."""
        self._last_edge_key = None

    def stage_resync(self) -> List[Tuple[str, FieldMap]]:
        updates: List[Tuple[str, FieldMap]] = []
        with self.graph.lock:
            nodes = self.graph.nodes
            for edge in self.graph.edges.all():
                source = nodes.peek(edge.source)
                target = nodes.peek(edge.target)
                if source is None or target is None:
                    # dangling edge, e.g. half way through a deletion
                    continue
                staged = stage_edge_update(source.fields, target.fields)
                if staged:
                    updates.append((edge.target, staged))
        return updates

    def resync(self) -> List[str]:
        with self.graph.lock:
            updates = self.stage_resync()
            if not updates:
                return []
            touched = self.graph.nodes.apply_batch(updates)
        logger.debug("resync updated %d node(s): %s", len(touched), touched)
        return touched

    # ── Channel B ────────────────────────────────────────────────────────────

    def propagate_data(self, source_id: str, value: Any) -> List[str]:
        if isinstance(value, dict):
            payload: FieldMap = dict(value)
            payload[INPUT_VALUE] = to_json(value)
        elif isinstance(value, (list, tuple)):
            payload = {INPUT_VALUE: to_json(list(value))}
        else:
            payload = {INPUT_VALUE: value}
        return self._push(source_id, payload)

    def propagate_output(self, source_id: str, media_url: str, label: str) -> List[str]:
        # Media producers forward the prompt too, so text-consuming nodes can chain off it.
        return self._push(source_id, {"imageUrl": media_url, "prompt": label, INPUT_VALUE: label})

    def _push(self, source_id: str, payload: FieldMap) -> List[str]:
        with self.graph.lock:
            # edges are read now, not when the operator started its work
            targets = [e.target for e in self.graph.edges.outgoing(source_id)]
            if not targets:
                return []
            touched = self.graph.nodes.apply_batch([(t, dict(payload)) for t in targets])
        logger.debug("push from %s reached %s", source_id, touched)
        return touched
