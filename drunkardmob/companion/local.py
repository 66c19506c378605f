"""
Local Companion Module.

In-process implementation of the companion. It can be shared by several
delivery pipelines (one per worker) because every source accumulator is
guarded by its own lock.

Key Concept:
    Merging a single hit into a sorted distribution costs a full copy, so
    hits are buffered per source and merged in bulk: the buffer is sorted,
    turned into a DiscreteDistribution and merged once.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..distributions import DiscreteDistribution, IdCount
from .base import DrunkardCompanion

logger = logging.getLogger(__name__)


class LocalCompanion(DrunkardCompanion):
    """
    Thread-safe in-process aggregator of per-source distributions.

    Example:
        >>> companion = LocalCompanion()
        >>> companion.set_sources([10, 20])
        >>> companion.set_avoid_list(0, [11])
        >>> companion.process_walks([0, 0, 1], [11, 12, 12])
        >>> companion.get_distribution(0).get_count(12)
        1
        >>> companion.get_distribution(0).get_count(11)
        -1
    """

    def __init__(self, buffer_limit: int = 4096, top_n: Optional[int] = None):
        """
        Initialize companion.

        Args:
            buffer_limit: Buffered hits per source before they are merged
            top_n: Entries exported per source (None = all)
        """
        if buffer_limit <= 0:
            raise ValueError(f"buffer_limit must be positive, got {buffer_limit}")

        self.buffer_limit = buffer_limit
        self.top_n = top_n

        self._sources_lock = threading.Lock()
        self.sources: List[int] = []
        self._distributions: List[DiscreteDistribution] = []
        self._buffers: List[List[np.ndarray]] = []
        self._buffered: List[int] = []
        self._locks: List[threading.Lock] = []

        # Statistics
        self.hits_received = 0

    def set_sources(self, vertex_ids: Sequence[int]) -> None:
        with self._sources_lock:
            self.sources = [int(v) for v in vertex_ids]
            n = len(self.sources)
            self._distributions = [DiscreteDistribution() for _ in range(n)]
            self._buffers = [[] for _ in range(n)]
            self._buffered = [0] * n
            self._locks = [threading.Lock() for _ in range(n)]
        logger.info("Companion registered %d sources", n)

    def num_sources(self) -> int:
        return len(self.sources)

    def set_avoid_list(self, source_idx: int, vertex_ids: Sequence[int]) -> None:
        self._check_source(source_idx)
        avoids = np.sort(np.asarray(vertex_ids, dtype=np.int64).reshape(-1))
        avoidance = DiscreteDistribution.avoidance(avoids)
        with self._locks[source_idx]:
            self._distributions[source_idx] = DiscreteDistribution.merge(
                self._distributions[source_idx], avoidance
            )

    def process_walks(self, walks: Sequence[int], vertices: Sequence[int]) -> None:
        walks = np.asarray(walks, dtype=np.int64).reshape(-1)
        vertices = np.asarray(vertices, dtype=np.int64).reshape(-1)
        if walks.size != vertices.size:
            raise ValueError(
                f"walks and vertices must have equal length, got {walks.size} and {vertices.size}"
            )
        if walks.size == 0:
            return

        # Walk codes are source indices
        source_indices = walks
        if source_indices.min() < 0 or source_indices.max() >= len(self.sources):
            raise ValueError("Walk code out of range of registered sources")

        order = np.argsort(source_indices, kind='stable')
        source_indices = source_indices[order]
        vertices = vertices[order]
        starts = np.flatnonzero(np.concatenate(([True], source_indices[1:] != source_indices[:-1])))
        ends = np.append(starts[1:], source_indices.size)

        for start, end in zip(starts.tolist(), ends.tolist()):
            source_idx = int(source_indices[start])
            with self._locks[source_idx]:
                self._buffers[source_idx].append(vertices[start:end])
                self._buffered[source_idx] += end - start
                if self._buffered[source_idx] >= self.buffer_limit:
                    self._merge_buffer(source_idx)

        with self._sources_lock:
            self.hits_received += int(walks.size)

    def _merge_buffer(self, source_idx: int) -> None:
        """Merge buffered hits into the accumulator. Caller holds the source lock."""
        if not self._buffers[source_idx]:
            return
        hits = np.sort(np.concatenate(self._buffers[source_idx]))
        self._buffers[source_idx] = []
        self._buffered[source_idx] = 0
        self._distributions[source_idx] = DiscreteDistribution.merge(
            self._distributions[source_idx], DiscreteDistribution(hits)
        )

    def get_distribution(self, source_idx: int) -> DiscreteDistribution:
        """Current distribution of a source, buffered hits included."""
        self._check_source(source_idx)
        with self._locks[source_idx]:
            self._merge_buffer(source_idx)
            return self._distributions[source_idx]

    def get_top(self, source_idx: int, k: int) -> List[IdCount]:
        return self.get_distribution(source_idx).get_top(k)

    def output_distributions(self, path_prefix: str) -> Path:
        """
        Write all distributions to <path_prefix>.distributions.tsv.

        Each row is source vertex, vertex and count, the top entries of
        each source in descending count order. Avoided vertices are left
        out.

        Args:
            path_prefix: Output path prefix

        Returns:
            Path of the written file
        """
        path = Path(f"{path_prefix}.distributions.tsv")
        path.parent.mkdir(parents=True, exist_ok=True)

        rows = 0
        with open(path, 'w') as f:
            f.write("source\tvertex\tcount\n")
            for source_idx, source_vertex in enumerate(self.sources):
                dist = self.get_distribution(source_idx)
                k = self.top_n if self.top_n is not None else dist.size()
                for entry in dist.get_top(k):
                    f.write(f"{source_vertex}\t{entry.id}\t{entry.count}\n")
                    rows += 1

        logger.info("Wrote %d rows for %d sources to %s", rows, len(self.sources), path)
        return path

    def get_statistics(self) -> Dict:
        """
        Get companion statistics.

        Returns:
            Dictionary with companion statistics
        """
        return {
            'num_sources': len(self.sources),
            'hits_received': self.hits_received,
            'buffered_hits': sum(self._buffered),
        }

    def _check_source(self, source_idx: int) -> None:
        if source_idx < 0 or source_idx >= len(self.sources):
            raise ValueError(f"Source index {source_idx} out of range [0, {len(self.sources)})")

    def __repr__(self) -> str:
        return f"LocalCompanion(sources={len(self.sources)}, hits={self.hits_received})"
