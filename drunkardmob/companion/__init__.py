"""
Companion Module.

The companion aggregates walk landings into one distribution per source.

Classes:
    DrunkardCompanion: Contract used by walk workers
    LocalCompanion: Thread-safe in-process implementation
    ReconnectingCompanion: Proxy that reconnects and retries failed calls
"""

from .base import DrunkardCompanion
from .local import LocalCompanion
from .client import ReconnectingCompanion

__all__ = [
    'DrunkardCompanion',
    'LocalCompanion',
    'ReconnectingCompanion',
]
