import json
import threading

import pytest

from flowops.core.Errors import ConfirmationRequiredError, EdgeNotFoundError, NodeNotFoundError, PresetNotFoundError
from flowops.core.GraphPrimitives import Edge, GraphNode
from flowops.core.GraphSession import GraphSession
from flowops.core.Persistence import (
    STORAGE_KEY_COUNTER,
    STORAGE_KEY_EDGES,
    STORAGE_KEY_NODES,
    MemoryKeyValueStore,
    PersistenceAdapter,
)


class FakeTimer:
    def __init__(self, interval, function):
        self.function = function
        self.cancelled = False

    def start(self):
        pass

    def cancel(self):
        self.cancelled = True


class TestGraphSessionEditing:

    def setup_method(self):
        self.events = []
        self.session = GraphSession(on_event=self.events.append)
        self.session.start()

    def test_add_node_uses_template_and_drop_position(self):
        node = self.session.add_node("transcribe")
        assert node.id == "transcribe-1"
        assert node.fields == {"inputValue": "", "transcript": ""}
        assert node.position == {"x": 50.0, "y": 150.0}
        assert self.events[-1] == {"type": "NODES_ADDED", "nodeIds": ["transcribe-1"]}

    def test_add_node_returns_a_copy(self):
        node = self.session.add_node("textInput")
        node.fields["value"] = "local only"
        assert self.session.get_node(node.id).fields["value"] == ""

    def test_ids_are_unique_across_types(self):
        ids = [self.session.add_node(t).id for t in ("textInput", "summarize", "textInput")]
        assert ids == ["textInput-1", "summarize-2", "textInput-3"]

    def test_connect_catches_target_up(self):
        a = self.session.add_node("textInput", fields={"value": "hello"})
        b = self.session.add_node("summarize")
        edge = self.session.connect(a.id, b.id)
        assert edge.id == f"e-{a.id}-{b.id}"
        assert self.session.get_node(b.id).fields["inputValue"] == "hello"
        assert {"type": "RESYNC", "nodeIds": [b.id]} in self.events

    def test_duplicate_connection_returns_existing_edge(self):
        a = self.session.add_node("textInput")
        b = self.session.add_node("summarize")
        first = self.session.create_edge(a.id, b.id)
        assert self.session.create_edge(a.id, b.id) == first
        assert len(self.session.graph.edges) == 1

    def test_connect_to_missing_node(self):
        a = self.session.add_node("textInput")
        with pytest.raises(NodeNotFoundError):
            self.session.create_edge(a.id, "ghost-9")

    def test_value_edit_does_not_resync(self):
        a = self.session.add_node("textInput", fields={"value": "one"})
        b = self.session.add_node("summarize")
        self.session.connect(a.id, b.id)
        assert self.session.update_node_data(a.id, {"value": "two"})
        assert self.session.get_node(b.id).fields["inputValue"] == "one"

    def test_push_after_operator_finishes(self):
        a = self.session.add_node("summarize")
        b = self.session.add_node("generateReport")
        self.session.connect(a.id, b.id)
        assert self.session.propagate_data(a.id, "condensed") == [b.id]
        assert self.session.get_node(b.id).fields["inputValue"] == "condensed"
        assert self.events[-1]["type"] == "PUSH"

    def test_output_push(self):
        a = self.session.add_node("iphonePhoto")
        b = self.session.add_node("imageOutput")
        self.session.connect(a.id, b.id)
        self.session.propagate_output(a.id, "http://img", "a fox")
        assert self.session.get_node(b.id).fields == {"imageUrl": "http://img", "prompt": "a fox", "inputValue": "a fox"}

    def test_update_after_delete_is_ignored(self):
        a = self.session.add_node("summarize")
        self.session.delete_node(a.id)
        assert self.session.update_node_data(a.id, {"summary": "late"}) is False

    def test_delete_node_removes_touching_edges(self):
        a = self.session.add_node("textInput", fields={"value": "v"})
        b = self.session.add_node("summarize")
        c = self.session.add_node("summarize")
        self.session.connect(a.id, b.id)
        self.session.connect(a.id, c.id)
        self.session.delete_node(b.id)
        assert [e.target for e in self.session.graph.edges.all()] == [c.id]
        assert self.events[-1]["type"] in ("NODE_REMOVED", "RESYNC")

    def test_delete_and_remove_unknown(self):
        with pytest.raises(NodeNotFoundError):
            self.session.delete_node("nope-1")
        with pytest.raises(EdgeNotFoundError):
            self.session.remove_edge("nope")
        with pytest.raises(NodeNotFoundError):
            self.session.set_position("nope-1", 1, 2)

    def test_set_position(self):
        a = self.session.add_node("textInput")
        self.session.set_position(a.id, 300, 400)
        assert self.session.get_node(a.id).position == {"x": 300.0, "y": 400.0}

    def test_import_nodes_raises_counter_only(self):
        self.session.add_node("textInput")
        self.session.add_node("textInput")
        self.session.import_nodes(
            [GraphNode("summarize-9", "summarize"), GraphNode("summarize-10", "summarize")],
            [Edge("e-x", "summarize-9", "summarize-10")],
        )
        assert self.session.counter.value == 11
        self.session.import_nodes([GraphNode("custom-2", "custom")])
        assert self.session.counter.value == 11

    def test_listener_failure_does_not_break_edits(self):
        def boom(event):
            raise RuntimeError("listener down")

        session = GraphSession(on_event=boom)
        node = session.add_node("textInput")
        assert node.id in session.graph.nodes


class TestGraphSessionLayoutAndActions:

    def setup_method(self):
        self.session = GraphSession()

    def test_batch_layout_on_empty_canvas(self):
        ids = self.session.create_nodes([{"type": "textInput"}, {"type": "summarize", "fields": {"summary": "s"}}])
        positions = [self.session.get_node(i).position for i in ids]
        assert positions == [{"x": 100.0, "y": 200.0}, {"x": 400.0, "y": 200.0}]
        assert self.session.get_node(ids[1]).fields["summary"] == "s"

    def test_batch_layout_after_existing_nodes(self):
        self.session.add_node("textInput", position={"x": 500, "y": 0})
        ids = self.session.create_nodes([{"type": "textInput"}])
        assert self.session.get_node(ids[0]).position == {"x": 850.0, "y": 200.0}

    def test_apply_actions_builds_a_chain(self):
        created = self.session.apply_actions([
            {"type": "addNode", "nodeType": "textInput", "data": {"value": "topic"}},
            {"type": "addNode", "nodeType": "iphonePhoto"},
            {"type": "connectNodes", "sourceIndex": 0, "targetIndex": 1},
            {"type": "connectNodes", "sourceIndex": 0, "targetIndex": 5},
            {"type": "somethingElse"},
        ])
        assert created == ["textInput-1", "iphonePhoto-2"]
        assert len(self.session.graph.edges) == 1
        assert self.session.get_node("iphonePhoto-2").fields["inputValue"] == "topic"

    def test_apply_actions_accepts_string_indexes(self):
        created = self.session.apply_actions([
            {"type": "addNode", "nodeType": "textInput", "data": {"value": "topic"}},
            {"type": "addNode", "nodeType": "summarize"},
            {"type": "connectNodes", "sourceIndex": "0", "targetIndex": "1"},
            {"type": "connectNodes", "sourceIndex": "first", "targetIndex": [1]},
        ])
        assert [(e.source, e.target) for e in self.session.graph.edges.all()] == [(created[0], created[1])]
        assert self.session.get_node(created[1]).fields["inputValue"] == "topic"

    def test_apply_actions_preset_on_empty_canvas_needs_no_confirm(self):
        self.session.apply_actions([{"type": "loadPreset", "presetName": "text to photo"}])
        assert self.session.graph.nodes.ids() == ["input-1", "photo-1", "output-1"]
        assert self.session.consume_fit_view() is True
        assert self.session.consume_fit_view() is False

    def test_apply_actions_preset_over_work_needs_confirm(self):
        self.session.add_node("textInput", fields={"value": "my work"})
        asked = []

        def decline():
            asked.append(1)
            return False

        for confirm in (None, decline):
            with pytest.raises(ConfirmationRequiredError):
                self.session.apply_actions([{"type": "loadPreset", "presetName": "Text to Photo"}], confirm=confirm)
        assert asked == [1]
        assert self.session.get_node("textInput-1").fields["value"] == "my work"

        self.session.apply_actions([{"type": "loadPreset", "presetName": "Text to Photo"}], confirm=lambda: True)
        assert self.session.graph.nodes.ids() == ["input-1", "photo-1", "output-1"]

    def test_declined_preset_stops_earlier_actions_too(self):
        with pytest.raises(ConfirmationRequiredError):
            self.session.apply_actions([
                {"type": "addNode", "nodeType": "textInput"},
                {"type": "loadPreset", "presetName": "Text to Photo"},
            ])
        assert self.session.graph.is_empty()

    def test_unknown_preset_action_needs_no_confirm(self):
        self.session.add_node("textInput")
        assert self.session.apply_actions([{"type": "loadPreset", "presetName": "Nope"}]) == []
        assert self.session.graph.nodes.ids() == ["textInput-1"]

    def test_load_preset_by_name(self):
        with pytest.raises(PresetNotFoundError):
            self.session.load_preset_by_name("missing")
        assert self.session.load_preset_by_name("Podcast to Report")
        self.session.add_node("summarize")
        assert self.session.load_preset_by_name("URL to Photo") is False
        assert self.session.load_preset_by_name("URL to Photo", confirm=lambda: True)

    def test_preset_then_new_node_never_collides(self):
        self.session.load_preset_by_name("Text to Photo")
        node = self.session.add_node("textInput")
        assert node.id == "textInput-2"


class TestGraphSessionPersistence:

    def setup_method(self):
        self.store = MemoryKeyValueStore()

    def _session(self):
        adapter = PersistenceAdapter(self.store, timer_factory=FakeTimer)
        session = GraphSession(persistence=adapter)
        session.start()
        return session

    def test_restart_restores_graph(self):
        session = self._session()
        a = session.add_node("textInput", fields={"value": "v"})
        b = session.add_node("summarize")
        session.connect(a.id, b.id)
        session.close()

        restored = self._session()
        assert restored.graph.nodes.ids() == [a.id, b.id]
        assert len(restored.graph.edges) == 1
        assert restored.get_node(b.id).fields["inputValue"] == "v"
        assert restored.add_node("textInput").id == "textInput-3"

    def test_stale_counter_is_raised_on_start(self):
        nodes = [GraphNode("textInput-7", "textInput").to_dict()]
        self.store.set(STORAGE_KEY_NODES, json.dumps(nodes))
        self.store.set(STORAGE_KEY_EDGES, "[]")
        self.store.set(STORAGE_KEY_COUNTER, "2")
        session = self._session()
        assert session.counter.value == 8

    def test_clear_requires_confirm(self):
        session = self._session()
        session.add_node("textInput")
        session.persistence.flush()

        assert session.clear_canvas() is False
        assert session.clear_canvas(confirm=lambda: False) is False
        assert len(session.graph.nodes) == 1

        assert session.clear_canvas(confirm=lambda: True)
        assert session.graph.is_empty()
        assert session.counter.value == 1
        assert self.store.data == {}

    def test_clear_skip_confirm(self):
        session = self._session()
        session.add_node("textInput")
        assert session.clear_canvas(skip_confirm=True)
        assert session.graph.is_empty()
        assert not session.persistence.pending


def _lock_is_free(graph):
    """Try the graph lock from another thread; True if nobody is holding it."""
    result = []

    def try_lock():
        acquired = graph.lock.acquire(timeout=1)
        if acquired:
            graph.lock.release()
        result.append(acquired)

    worker = threading.Thread(target=try_lock)
    worker.start()
    worker.join()
    return result[0]


class TestGraphSessionConfirmWithoutLock:

    def setup_method(self):
        self.session = GraphSession()
        self.session.add_node("textInput")

    def test_clear_asks_without_holding_the_lock(self):
        seen = []
        assert self.session.clear_canvas(confirm=lambda: seen.append(_lock_is_free(self.session.graph)) or True)
        assert seen == [True]
        assert self.session.graph.is_empty()

    def test_preset_asks_without_holding_the_lock(self):
        seen = []
        assert self.session.load_preset_by_name(
            "Text to Photo", confirm=lambda: seen.append(_lock_is_free(self.session.graph)) or True
        )
        assert seen == [True]

    def test_canvas_filled_while_unconfirmed_is_not_replaced(self):
        session = GraphSession()
        original = session.graph.is_empty

        def fill_then_report():
            # another caller adds a node right after the emptiness check
            answer = original()
            if answer:
                session.graph.is_empty = original
                session.add_node("textInput", fields={"value": "racing edit"})
            return answer

        session.graph.is_empty = fill_then_report
        assert session.load_preset_by_name("Text to Photo") is False
        assert session.graph.nodes.ids() == ["textInput-1"]


class TestGraphSessionConcurrency:

    THREADS = 8
    ROUNDS = 50

    def setup_method(self):
        self.session = GraphSession()
        self.target = self.session.add_node("merge").id
        self.sources = [self.session.add_node("summarize").id for _ in range(self.THREADS)]
        for source in self.sources:
            self.session.connect(source, self.target)
        self.errors = []

    def _guard(self, fn):
        def run():
            try:
                fn()
            except Exception as exc:
                self.errors.append(exc)
        return threading.Thread(target=run)

    def test_pushes_and_updates_survive_concurrent_edge_changes(self):
        start = threading.Barrier(self.THREADS * 2 + 1)

        def pusher(index):
            def run():
                start.wait()
                for round_no in range(self.ROUNDS):
                    self.session.propagate_data(self.sources[index], {f"push-{index}-{round_no}": round_no})
            return run

        def updater(index):
            def run():
                start.wait()
                for round_no in range(self.ROUNDS):
                    self.session.update_node_data(self.target, {f"edit-{index}-{round_no}": round_no})
            return run

        def rewirer():
            start.wait()
            for _ in range(self.ROUNDS):
                extra = self.session.add_node("textInput", fields={"value": "side"}).id
                self.session.create_edge(extra, self.target)
                self.session.delete_node(extra)

        threads = [self._guard(pusher(i)) for i in range(self.THREADS)]
        threads += [self._guard(updater(i)) for i in range(self.THREADS)]
        threads.append(self._guard(rewirer))
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert self.errors == []
        fields = self.session.get_node(self.target).fields
        for index in range(self.THREADS):
            for round_no in range(self.ROUNDS):
                assert fields[f"push-{index}-{round_no}"] == round_no
                assert fields[f"edit-{index}-{round_no}"] == round_no

        # the side nodes are gone and only the original wiring is left
        assert sorted(e.source for e in self.session.graph.edges.all()) == sorted(self.sources)

    def test_push_reaches_edges_added_by_another_thread(self):
        late = self.session.add_node("summarize").id
        wired = threading.Event()

        def connect_late():
            self.session.connect(late, self.target)
            wired.set()

        worker = self._guard(connect_late)
        worker.start()
        worker.join()
        assert wired.is_set()

        assert self.session.propagate_data(late, "after wiring") == [self.target]
        assert self.session.get_node(self.target).fields["inputValue"] == "after wiring"
