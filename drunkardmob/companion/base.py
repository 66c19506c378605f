"""
Companion Contract.

The companion is the aggregator that accumulates, per source, where the
walks of every worker landed. Workers reach it through this interface,
whatever transport sits in between.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence


class DrunkardCompanion(ABC):
    """Operations a walk worker needs from the aggregator."""

    @abstractmethod
    def set_sources(self, vertex_ids: Sequence[int]) -> None:
        """Register the ordered source vertices, one accumulator per source."""

    @abstractmethod
    def set_avoid_list(self, source_idx: int, vertex_ids: Sequence[int]) -> None:
        """Permanently exclude vertex_ids from the distribution of a source."""

    @abstractmethod
    def process_walks(self, walks: Sequence[int], vertices: Sequence[int]) -> None:
        """
        Record walk landings.

        Args:
            walks: Walk codes; each decodes to a source index
            vertices: Vertex each walk landed on, parallel to walks
        """

    @abstractmethod
    def output_distributions(self, path_prefix: str) -> Path:
        """Export every source's distribution under path_prefix."""
