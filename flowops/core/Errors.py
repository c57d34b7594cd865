"""
Error types raised by explicit graph operations.

Propagation itself never raises; these surface only from calls that name a
specific node, edge or preset (delete this node, load that preset, ...).
All of them are ValueErrors so callers that only care about "bad request"
can catch the base class.
"""


class GraphError(ValueError):
    pass


class DuplicateIdError(GraphError):
    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} with id '{item_id}' already exists in the graph")
        self.item_id = item_id


class NodeNotFoundError(GraphError):
    def __init__(self, node_id: str):
        super().__init__(f"Node '{node_id}' not found")
        self.node_id = node_id


class EdgeNotFoundError(GraphError):
    def __init__(self, edge_id: str):
        super().__init__(f"Edge '{edge_id}' not found")
        self.edge_id = edge_id


class PresetNotFoundError(GraphError):
    def __init__(self, name: str):
        super().__init__(f"Unknown preset '{name}'")
        self.name = name


class ConfirmationRequiredError(GraphError):
    """The canvas is not empty and the caller did not confirm a destructive replace."""
