from enum import Enum, auto
from typing import Any, Dict, List, Union

# Values are whatever the canvas can round-trip through JSON.
FieldValue = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]
FieldMap = Dict[str, FieldValue]


class NodeCategory(Enum):
    SOURCE = "source"
    OPERATION = "operation"
    OUTPUT = "output"
    UTILITY = "utility"


class PayloadKind(Enum):
    NONE = "none"
    ANY = "any"
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    REPORT = "report"
    JSON = "json"
    DISPLAY = "display"


class EventKind(Enum):
    NODES_ADDED = auto()
    NODE_UPDATED = auto()
    NODE_REMOVED = auto()
    EDGE_ADDED = auto()
    EDGE_REMOVED = auto()
    RESYNC = auto()
    PUSH = auto()
    PRESET_LOADED = auto()
    CANVAS_CLEARED = auto()


def is_present(value: Any) -> bool:
    """A field counts as populated unless it is missing, None or the empty string."""
    return value is not None and value != ""
