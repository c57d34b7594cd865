import pytest

from flowops.core.NodeFactory import (
    FALLBACK_FIELDS,
    NODE_TYPES,
    IdCounter,
    create_id,
    initial_fields,
    list_node_types,
    next_counter_for,
    numeric_suffix,
    register_node_type,
)
from flowops.core.Types import NodeCategory, PayloadKind


class TestIdCounter:

    def test_take_is_monotonic(self):
        counter = IdCounter()
        assert [counter.take() for _ in range(3)] == [1, 2, 3]
        assert counter.value == 4

    def test_raise_to_never_lowers(self):
        counter = IdCounter(10)
        counter.raise_to(4)
        assert counter.value == 10
        counter.raise_to(12)
        assert counter.value == 12

    def test_rebase_and_reset(self):
        counter = IdCounter(10)
        counter.rebase(3)
        assert counter.value == 3
        counter.reset()
        assert counter.value == 1


class TestNodeTypes:

    def test_catalogue_size_per_category(self):
        assert len(NODE_TYPES) == 32
        assert len(list_node_types(NodeCategory.SOURCE)) == 7
        assert len(list_node_types(NodeCategory.OPERATION)) == 15
        assert len(list_node_types(NodeCategory.OUTPUT)) == 6
        assert len(list_node_types(NodeCategory.UTILITY)) == 4

    def test_known_templates(self):
        assert initial_fields("textInput") == {"value": ""}
        assert initial_fields("iphonePhoto") == {"inputValue": "", "imageUrl": "", "prompt": "", "loading": False}
        assert initial_fields("filterByAngle") == {"inputValue": None, "angle": "fear"}
        assert initial_fields("platformToggle") == {"platform": "google"}

    def test_unknown_type_gets_fallback(self):
        assert initial_fields("somethingNew") == FALLBACK_FIELDS
        assert initial_fields("somethingNew") is not FALLBACK_FIELDS

    def test_templates_are_not_shared(self):
        first = initial_fields("podcastRSS")
        first["episodes"].append({"title": "ep"})
        assert initial_fields("podcastRSS")["episodes"] == []

    def test_duplicate_registration_rejected(self):
        with pytest.raises(ValueError):
            register_node_type("textInput", NodeCategory.SOURCE, "x", "x", PayloadKind.NONE, PayloadKind.TEXT, {})

    def test_to_dict_uses_wire_names(self):
        as_dict = NODE_TYPES["transcribe"].to_dict()
        assert as_dict["category"] == "operation"
        assert as_dict["inputKind"] == "audio"
        assert as_dict["outputKind"] == "text"
        assert as_dict["initialData"] == {"inputValue": "", "transcript": ""}


class TestIds:

    def test_create_id_uses_type_and_counter(self):
        counter = IdCounter(5)
        assert create_id("summarize", counter) == "summarize-5"
        assert create_id("summarize", counter) == "summarize-6"

    def test_numeric_suffix(self):
        assert numeric_suffix("copyExport-12") == 12
        assert numeric_suffix("landingPreview-1") == 1
        assert numeric_suffix("custom") is None

    def test_next_counter_for(self):
        assert next_counter_for(["a-7", "b-3", "odd"]) == 8
        assert next_counter_for(["odd"]) == 1
        assert next_counter_for([]) == 1
