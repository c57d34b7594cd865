"""
Graph change events pushed to connected canvases over Socket.IO.
All events are plain dicts so they can be emitted without Pydantic overhead.
"""
from typing import List, Literal, TypedDict, Union


class NodesAddedEvent(TypedDict):
    type: Literal["NODES_ADDED"]
    nodeIds: List[str]
    ts: int


class NodeUpdatedEvent(TypedDict):
    type: Literal["NODE_UPDATED"]
    nodeId: str
    keys: List[str]
    ts: int


class NodeRemovedEvent(TypedDict):
    type: Literal["NODE_REMOVED"]
    nodeId: str
    edgeIds: List[str]
    ts: int


class EdgeAddedEvent(TypedDict):
    type: Literal["EDGE_ADDED"]
    edgeId: str
    source: str
    target: str
    ts: int


class EdgeRemovedEvent(TypedDict):
    type: Literal["EDGE_REMOVED"]
    edgeId: str
    ts: int


class ResyncEvent(TypedDict):
    type: Literal["RESYNC"]
    nodeIds: List[str]
    ts: int


class PushEvent(TypedDict):
    type: Literal["PUSH"]
    sourceId: str
    nodeIds: List[str]
    ts: int


class PresetLoadedEvent(TypedDict):
    type: Literal["PRESET_LOADED"]
    name: str
    ts: int


class CanvasClearedEvent(TypedDict):
    type: Literal["CANVAS_CLEARED"]
    ts: int


GraphEvent = Union[
    NodesAddedEvent,
    NodeUpdatedEvent,
    NodeRemovedEvent,
    EdgeAddedEvent,
    EdgeRemovedEvent,
    ResyncEvent,
    PushEvent,
    PresetLoadedEvent,
    CanvasClearedEvent,
]
