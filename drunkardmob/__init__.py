"""
DrunkardMob: Monte-Carlo random walks on graphs too large for memory.

Many short random walks are started from each source vertex and the
places they land are accumulated into one frequency distribution per
source, an estimate of personalized proximity.

Submodules:
    - distributions: Sparse frequency distributions with avoidance
    - walks: Walk store, window snapshots and the walk program
    - delivery: Background delivery of walk landings to the companion
    - companion: Aggregator contract and in-process implementation
    - engine: Traversal driver surface and an in-memory engine
    - utils: Graph helpers and logging setup

Example:
    >>> from drunkardmob.walks import WalkManager, DrunkardMobProgram
    >>> from drunkardmob.companion import LocalCompanion
    >>> from drunkardmob.engine import InMemoryEngine
"""

__version__ = "1.0.0"
__author__ = "DrunkardMob Team"

# Version info
VERSION_INFO = {
    'major': 1,
    'minor': 0,
    'patch': 0,
    'release': 'stable'
}
