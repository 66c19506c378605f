"""
Walk Module.

This module keeps the state of every walk and advances walks while a
traversal engine streams the graph window by window:

1. Walk store with per-vertex buckets and window snapshots
2. Transition policy (random out-neighbor or reset to source)

Classes:
    WalkManager: Owns all walks, keyed by current vertex
    WalkSnapshot: Exclusive view over one window's buckets
    WalkRecords: Walks resident at one vertex (source index + parity)
    DrunkardMobProgram: Engine callbacks that move walks

Example:
    >>> from drunkardmob.walks import WalkManager, DrunkardMobProgram
    >>>
    >>> manager = WalkManager(num_vertices=1000, num_sources=10)
    >>> for i in range(10):
    ...     manager.add_walk_batch(i, 100)
    >>> manager.initialize_walks()
    >>> program = DrunkardMobProgram(manager, companion)
"""

from .types import WalkRecords, WalkInitializationError, SnapshotStateError
from .manager import WalkManager, WalkSnapshot
from .program import DrunkardMobProgram

__all__ = [
    'WalkManager',
    'WalkSnapshot',
    'WalkRecords',
    'WalkInitializationError',
    'SnapshotStateError',
    'DrunkardMobProgram',
]
