"""
Engine Module.

The surface through which a traversal engine drives walk programs, and
an in-memory engine implementing it.

Classes:
    TraversalProgram: Callbacks invoked by an engine
    VertexScheduler: Work list of vertices to visit
    VertexInterval: Closed range of vertices processed together
    InMemoryEngine: Windowed engine over an in-memory graph
"""

from .base import TraversalProgram, VertexInterval, VertexScheduler
from .memory_engine import InMemoryEngine

__all__ = [
    'TraversalProgram',
    'VertexInterval',
    'VertexScheduler',
    'InMemoryEngine',
]
