from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from logging import getLogger

from .Errors import ConfirmationRequiredError, EdgeNotFoundError, NodeNotFoundError, PresetNotFoundError
from .GraphPrimitives import Edge, Graph, GraphNode
from .NodeFactory import IdCounter, create_id, initial_fields, next_counter_for
from .Persistence import PersistenceAdapter, Snapshot
from .Presets import ConfirmFn, PresetFlow, find_preset, load_preset
from .Propagation import PropagationEngine
from .Types import EventKind, FieldMap

logger = getLogger(__name__)

EventHook = Callable[[Dict[str, Any]], None]


def _always() -> bool:
    return True


def _as_index(value: Any) -> Optional[int]:
    # action producers may send "1" where they mean 1
    if value is None:
        return 0
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class GraphSession:
    """
    One editing session: the graph, its id counter, the propagation engine
    and (optionally) where it is saved.

    This is the only object operators, the canvas and action producers talk
    to. Every mutation goes through here so that edge-set changes trigger a
    resync, saves get scheduled and listeners hear about it.
    """

    # Where a dropped node lands when the caller does not say.
    DROP_POSITION = {"x": 50.0, "y": 150.0}

    # Left-to-right layout for nodes created in a batch by an action producer.
    BATCH_START_X = 100.0
    BATCH_GAP_X = 350.0
    BATCH_SPACING_X = 300.0
    BATCH_Y = 200.0

    def __init__(self,
                 persistence: Optional[PersistenceAdapter] = None,
                 on_event: Optional[EventHook] = None):
        self.graph = Graph()
        self.counter = IdCounter()
        self.engine = PropagationEngine(self.graph)
        self.persistence = persistence
        self.on_event = on_event
        # one-shot: the view should frame the nodes once they are drawn
        self.fit_view_requested = False

    def __repr__(self):
        return f"GraphSession(nodes={len(self.graph.nodes)}, edges={len(self.graph.edges)}, {self.counter})"

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Restore the saved canvas (if any) and catch every edge up once."""
        if self.persistence is not None:
            nodes, edges, counter = self.persistence.load()
            with self.graph.lock:
                self.graph.replace(nodes, edges)
                self.counter.rebase(counter)
                # a stale counter must still never mint an id that is already taken
                self.counter.raise_to(next_counter_for(n.id for n in nodes))
            logger.info("restored %d node(s), %d edge(s), counter=%d", len(nodes), len(edges), self.counter.value)

        self.engine.forget_edges()
        touched = self.engine.sync_edges()
        if touched:
            self._emit(EventKind.RESYNC, nodeIds=touched)
            self._schedule_save()

    def close(self) -> None:
        if self.persistence is not None:
            self.persistence.close()

    def snapshot(self) -> Snapshot:
        with self.graph.lock:
            return {
                "nodes": [n.to_dict() for n in self.graph.nodes.all()],
                "edges": [e.to_dict() for e in self.graph.edges.all()],
                "counter": self.counter.value,
            }

    # ── Nodes ────────────────────────────────────────────────────────────────

    def add_node(self,
                 type_tag: str,
                 position: Optional[Mapping[str, float]] = None,
                 fields: Optional[FieldMap] = None) -> GraphNode:
        data = initial_fields(type_tag)
        if fields:
            data.update(fields)
        with self.graph.lock:
            node = GraphNode(create_id(type_tag, self.counter), type_tag, dict(position or self.DROP_POSITION), data)
            self.graph.nodes.add(node)
        self._emit(EventKind.NODES_ADDED, nodeIds=[node.id])
        self._schedule_save()
        return node.copy()

    def create_nodes(self, batch: Sequence[Mapping[str, Any]]) -> List[str]:
        """
        Add several nodes at once, laid out left to right after everything
        already on the canvas. Each item is ``{"type": ..., "fields": {...}}``.
        """
        if not batch:
            return []

        with self.graph.lock:
            existing = self.graph.nodes.all()
            if existing:
                start_x = max(n.position["x"] for n in existing) + self.BATCH_GAP_X
            else:
                start_x = self.BATCH_START_X

            new_nodes: List[GraphNode] = []
            for index, item in enumerate(batch):
                type_tag = item["type"]
                data = initial_fields(type_tag)
                data.update(item.get("fields") or {})
                position = {"x": start_x + index * self.BATCH_SPACING_X, "y": self.BATCH_Y}
                new_nodes.append(GraphNode(create_id(type_tag, self.counter), type_tag, position, data))
            self.graph.nodes.add_many(new_nodes)

        ids = [n.id for n in new_nodes]
        self._emit(EventKind.NODES_ADDED, nodeIds=ids)
        self._schedule_save()
        return ids

    def import_nodes(self, nodes: Iterable[GraphNode], edges: Iterable[Edge] = ()) -> List[str]:
        """Merge an externally built batch that already carries ids. The counter only ever moves up."""
        nodes = list(nodes)
        edges = list(edges)
        with self.graph.lock:
            self.graph.nodes.add_many(nodes)
            added_edges: List[Edge] = []
            try:
                for edge in edges:
                    self.graph.edges.add(edge)
                    added_edges.append(edge)
            except Exception:
                for edge in added_edges:
                    self.graph.edges.remove(edge.id)
                for node in nodes:
                    self.graph.nodes.remove(node.id)
                raise
            self.counter.raise_to(next_counter_for(n.id for n in nodes))

        ids = [n.id for n in nodes]
        self._emit(EventKind.NODES_ADDED, nodeIds=ids)
        if edges:
            self._after_edge_change()
        else:
            self._schedule_save()
        return ids

    def delete_node(self, node_id: str) -> GraphNode:
        with self.graph.lock:
            node = self.graph.nodes.remove(node_id)
            if node is None:
                raise NodeNotFoundError(node_id)
            removed_edges = self.graph.edges.remove_touching(node_id)

        self._emit(EventKind.NODE_REMOVED, nodeId=node_id, edgeIds=[e.id for e in removed_edges])
        if removed_edges:
            self._after_edge_change()
        else:
            self._schedule_save()
        return node

    def set_position(self, node_id: str, x: float, y: float) -> None:
        if not self.graph.nodes.set_position(node_id, x, y):
            raise NodeNotFoundError(node_id)
        self._schedule_save()

    def get_node(self, node_id: str) -> GraphNode:
        node = self.graph.nodes.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    # ── Edges ────────────────────────────────────────────────────────────────

    def create_edge(self, source_id: str, target_id: str) -> Edge:
        with self.graph.lock:
            for node_id in (source_id, target_id):
                if node_id not in self.graph.nodes:
                    raise NodeNotFoundError(node_id)
            existing = self.graph.edges.find(source_id, target_id)
            if existing is not None:
                return existing
            edge = Edge(f"e-{source_id}-{target_id}", source_id, target_id)
            self.graph.edges.add(edge)

        self._emit(EventKind.EDGE_ADDED, edgeId=edge.id, source=source_id, target=target_id)
        self._after_edge_change()
        return edge

    # the canvas calls it "connect"
    connect = create_edge

    def remove_edge(self, edge_id: str) -> Edge:
        edge = self.graph.edges.remove(edge_id)
        if edge is None:
            raise EdgeNotFoundError(edge_id)
        self._emit(EventKind.EDGE_REMOVED, edgeId=edge_id)
        self._after_edge_change()
        return edge

    # ── Operator entry points ────────────────────────────────────────────────

    def update_node_data(self, node_id: str, partial_fields: FieldMap) -> bool:
        """Shallow merge into a node's fields. A node deleted meanwhile is silently skipped."""
        if not self.graph.nodes.update(node_id, dict(partial_fields)):
            logger.debug("update for missing node %s ignored", node_id)
            return False
        self._emit(EventKind.NODE_UPDATED, nodeId=node_id, keys=sorted(partial_fields.keys()))
        self._schedule_save()
        return True

    def propagate_data(self, source_id: str, value: Any) -> List[str]:
        touched = self.engine.propagate_data(source_id, value)
        if touched:
            self._emit(EventKind.PUSH, sourceId=source_id, nodeIds=touched)
            self._schedule_save()
        return touched

    def propagate_output(self, source_id: str, media_url: str, label: str) -> List[str]:
        touched = self.engine.propagate_output(source_id, media_url, label)
        if touched:
            self._emit(EventKind.PUSH, sourceId=source_id, nodeIds=touched)
            self._schedule_save()
        return touched

    # ── Presets ──────────────────────────────────────────────────────────────

    def load_preset(self, preset: PresetFlow, confirm: Optional[ConfirmFn] = None) -> bool:
        if not load_preset(self.graph, self.counter, preset, confirm):
            return False
        self.fit_view_requested = True
        self._emit(EventKind.PRESET_LOADED, name=preset.name)
        self._after_edge_change()
        return True

    def load_preset_by_name(self, name: str, confirm: Optional[ConfirmFn] = None) -> bool:
        preset = find_preset(name)
        if preset is None:
            raise PresetNotFoundError(name)
        return self.load_preset(preset, confirm)

    def consume_fit_view(self) -> bool:
        requested = self.fit_view_requested
        self.fit_view_requested = False
        return requested

    # ── Clear ────────────────────────────────────────────────────────────────

    def clear_canvas(self, confirm: Optional[ConfirmFn] = None, skip_confirm: bool = False) -> bool:
        approved = skip_confirm
        # ask before taking the lock, a prompt may block for a long time
        if not approved and not self.graph.is_empty():
            if confirm is None or not confirm():
                return False
            approved = True
        with self.graph.lock:
            if not approved and not self.graph.is_empty():
                logger.info("canvas filled up before the clear, not cleared")
                return False
            self.graph.reset()
            self.counter.reset()
            self.engine.forget_edges()
        # synchronous, so a restart cannot bring the old canvas back
        if self.persistence is not None:
            self.persistence.clear()
        self._emit(EventKind.CANVAS_CLEARED)
        return True

    # ── Action lists ─────────────────────────────────────────────────────────

    def apply_actions(self, actions: Sequence[Mapping[str, Any]], confirm: Optional[ConfirmFn] = None) -> List[str]:
        """
        Run an action list from an action producer (e.g. the chat translator).

        ``connectNodes`` refers to nodes by their position among the nodes
        created earlier in the *same* list. Returns the created node ids.

        A ``loadPreset`` that would replace a non-empty canvas needs *confirm*.
        It is asked once, before any action runs; declining raises
        ConfirmationRequiredError and leaves the graph untouched.
        """
        preset_confirm: Optional[ConfirmFn] = None
        if self._actions_replace_canvas(actions):
            if confirm is None or not confirm():
                raise ConfirmationRequiredError("This will replace your current flow.")
            preset_confirm = _always

        created: List[str] = []
        for action in actions:
            kind = action.get("type")
            if kind == "addNode":
                node_type = action.get("nodeType")
                if node_type:
                    created.extend(self.create_nodes([{"type": node_type, "fields": action.get("data") or {}}]))
            elif kind == "connectNodes":
                src_index = _as_index(action.get("sourceIndex"))
                tgt_index = _as_index(action.get("targetIndex"))
                if src_index is None or tgt_index is None:
                    logger.warning("connectNodes skipped, bad index: %r -> %r",
                                   action.get("sourceIndex"), action.get("targetIndex"))
                elif 0 <= src_index < len(created) and 0 <= tgt_index < len(created):
                    self.create_edge(created[src_index], created[tgt_index])
                else:
                    logger.warning("connectNodes skipped, index out of range: %s -> %s", src_index, tgt_index)
            elif kind == "loadPreset":
                name = action.get("presetName")
                if name:
                    preset = find_preset(name)
                    if preset is None:
                        logger.warning("loadPreset skipped, unknown preset '%s'", name)
                    elif not self.load_preset(preset, preset_confirm):
                        # only reachable when another caller filled the canvas meanwhile
                        raise ConfirmationRequiredError("This will replace your current flow.")
            else:
                logger.warning("unknown action type %r skipped", kind)
        return created

    def _actions_replace_canvas(self, actions: Sequence[Mapping[str, Any]]) -> bool:
        """True if a known preset in *actions* would land on a non-empty canvas."""
        adds_nodes = not self.graph.is_empty()
        for action in actions:
            kind = action.get("type")
            if kind == "addNode" and action.get("nodeType"):
                adds_nodes = True
            elif kind == "loadPreset" and action.get("presetName") and find_preset(action["presetName"]):
                if adds_nodes:
                    return True
                # the preset itself fills the canvas for any later preset
                adds_nodes = True
        return False

    # ── Internals ────────────────────────────────────────────────────────────

    def _after_edge_change(self) -> None:
        touched = self.engine.sync_edges()
        if touched:
            self._emit(EventKind.RESYNC, nodeIds=touched)
        self._schedule_save()

    def _schedule_save(self) -> None:
        if self.persistence is not None:
            self.persistence.schedule_save(self.snapshot)

    def _emit(self, kind: EventKind, **payload: Any) -> None:
        if self.on_event is None:
            return
        event: Dict[str, Any] = {"type": kind.name}
        event.update(payload)
        try:
            self.on_event(event)
        except Exception:
            logger.exception("graph event listener failed for %s", kind.name)
