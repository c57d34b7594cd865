"""
flowops
=======
Graph data-propagation engine for a visual content-generation canvas.

Nodes hold open field maps; edges decide which fields flow downstream.

Public API
----------
    from flowops.core.GraphSession import GraphSession

    session = GraphSession()
    a = session.add_node("textInput", fields={"value": "hello"})
    b = session.add_node("summarize")
    session.create_edge(a.id, b.id)
    session.graph.nodes.get(b.id).fields["inputValue"]   # "hello"
"""

__version__ = "0.1.0"
