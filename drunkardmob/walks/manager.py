"""
Walk Manager Module.

This module owns the state of every walk. Walks are kept in buckets keyed
by the vertex they currently sit at, and the traversal driver takes them
out one window at a time through a WalkSnapshot.

Key Concept:
    A walk lives in exactly one place: a live bucket, or the snapshot of
    the window being processed. Grabbing a window moves its buckets into
    the snapshot, the driver advances the walks it reads, and at the end
    of the window every bucket it did not read is put back.
"""

import logging
import time
from typing import Dict, List, Optional, Set, Tuple

import numpy as np

from ..delivery.batch import DeliveryBatch
from .types import (
    BLOCK_BITS,
    BLOCK_MASK,
    SnapshotStateError,
    WalkBlock,
    WalkInitializationError,
    WalkRecords,
)

logger = logging.getLogger(__name__)


class WalkManager:
    """
    Store of all walks, keyed by current vertex.

    Sources are registered first with add_walk_batch() and sealed with
    initialize_walks(), which places every walk at its own source. After
    that the only way to move a walk is update_walk().

    Internally vertices are grouped into blocks of 128 consecutive ids, so
    grabbing a window only touches the blocks overlapping it.

    Example:
        >>> manager = WalkManager(num_vertices=1000, num_sources=2)
        >>> manager.add_walk_batch(10, 100)
        0
        >>> manager.add_walk_batch(20, 100)
        1
        >>> manager.initialize_walks()
        >>>
        >>> snapshot = manager.grab_snapshot(0, 127)
        >>> walks = snapshot.get_walks_at_vertex(10, remove=True)
        >>> for src in walks.source_indices:
        ...     manager.update_walk(int(src), 11, True)
        >>> snapshot.restore_ungrabbed()
    """

    def __init__(self, num_vertices: int, num_sources: int):
        """
        Initialize walk manager.

        Args:
            num_vertices: Number of vertices in the graph
            num_sources: Maximum number of sources that can be registered
        """
        if num_vertices <= 0:
            raise ValueError(f"num_vertices must be positive, got {num_vertices}")
        if num_sources <= 0:
            raise ValueError(f"num_sources must be positive, got {num_sources}")

        self.num_vertices = num_vertices
        self.max_sources = num_sources

        self._sources: List[int] = []
        self._source_walk_counts: List[int] = []
        self._source_index: Dict[int, int] = {}
        self.source_vertices: np.ndarray = np.empty(0, dtype=np.int64)

        self._blocks: Dict[int, WalkBlock] = {}
        self._total_walks = 0
        self._initialized = False

        self._active_windows: List[Tuple[int, int]] = []
        self.bucket_consumer = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_walk_batch(self, vertex: int, num_walks: int) -> int:
        """
        Register a new source with its walks.

        Args:
            vertex: Source vertex id
            num_walks: Number of walks starting from the source

        Returns:
            Index assigned to the new source
        """
        if self._initialized:
            raise WalkInitializationError("Cannot add walks after initialize_walks()")
        if vertex in self._source_index:
            raise WalkInitializationError(f"Vertex {vertex} is already a source")
        if len(self._sources) >= self.max_sources:
            raise WalkInitializationError(
                f"Source capacity exceeded ({self.max_sources} sources)"
            )
        self._check_vertex(vertex)
        if num_walks <= 0:
            raise ValueError(f"num_walks must be positive, got {num_walks}")

        source_idx = len(self._sources)
        self._sources.append(vertex)
        self._source_walk_counts.append(num_walks)
        self._source_index[vertex] = source_idx
        self._total_walks += num_walks
        return source_idx

    def initialize_walks(self) -> None:
        """Place every registered walk at its source. Can only be called once."""
        if self._initialized:
            raise WalkInitializationError("Walks are already initialized")

        self.source_vertices = np.asarray(self._sources, dtype=np.int64)
        self.source_vertices.setflags(write=False)

        for source_idx, (vertex, count) in enumerate(zip(self._sources, self._source_walk_counts)):
            self._block_for(vertex).extend([source_idx] * count, vertex & BLOCK_MASK, [False] * count)

        self._initialized = True
        logger.info("Initialized %d walks from %d sources", self._total_walks, len(self._sources))

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------
    # Source lookups
    # ------------------------------------------------------------------

    def get_sources(self) -> List[int]:
        """Source vertices in index order."""
        return list(self._sources)

    def num_sources(self) -> int:
        return len(self._sources)

    def is_source(self, vertex: int) -> bool:
        return vertex in self._source_index

    def source_index_of(self, vertex: int) -> int:
        """
        Get the source index of a vertex.

        Raises:
            KeyError: If the vertex is not a source
        """
        return self._source_index[vertex]

    def source_vertex_of(self, source_idx: int) -> int:
        return self._sources[source_idx]

    def total_walks(self) -> int:
        """Number of walks ever created."""
        return self._total_walks

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def set_bucket_consumer(self, consumer) -> None:
        """
        Attach the receiver of grabbed buckets.

        The consumer must provide consume(batch: DeliveryBatch). It gets
        a copy of every non-empty block each time a window is grabbed.
        """
        self.bucket_consumer = consumer

    def update_walk(self, source_idx: int, vertex: int, hop: bool) -> None:
        """
        Move a walk to a vertex.

        Args:
            source_idx: Source index of the walk
            vertex: Destination vertex
            hop: New step parity
        """
        self._block_for(vertex).append(source_idx, vertex & BLOCK_MASK, hop)

    def update_walks(self, source_indices: np.ndarray, vertices: np.ndarray, hops: np.ndarray) -> None:
        """Vectorised form of update_walk() over parallel arrays."""
        for source_idx, vertex, hop in zip(source_indices.tolist(), vertices.tolist(), hops.tolist()):
            self._block_for(vertex).append(source_idx, vertex & BLOCK_MASK, hop)

    def grab_snapshot(self, first_vertex: int, last_vertex: int) -> 'WalkSnapshot':
        """
        Take the buckets of a window out of the store.

        Every non-empty block overlapping the window is reported to the
        bucket consumer, if one is attached.

        Args:
            first_vertex: First vertex of the window (inclusive)
            last_vertex: Last vertex of the window (inclusive)

        Returns:
            Snapshot holding the window's walks
        """
        if not self._initialized:
            raise SnapshotStateError("Walks must be initialized before grabbing a snapshot")
        if first_vertex > last_vertex:
            raise ValueError(f"Empty window [{first_vertex}, {last_vertex}]")
        self._check_vertex(first_vertex)
        self._check_vertex(last_vertex)
        for first, last in self._active_windows:
            if first_vertex <= last and first <= last_vertex:
                raise SnapshotStateError(
                    f"Window [{first_vertex}, {last_vertex}] overlaps active snapshot [{first}, {last}]"
                )

        t = time.time()
        vertex_parts = []
        source_parts = []
        hop_parts = []

        for block_id in range(first_vertex >> BLOCK_BITS, (last_vertex >> BLOCK_BITS) + 1):
            block = self._blocks.pop(block_id, None)
            if block is None or len(block) == 0:
                continue

            sources, offsets, hops = block.to_arrays()
            base = block_id << BLOCK_BITS
            vertices = offsets + base

            # Block straddles the window boundary: keep the outside part
            inside = (vertices >= first_vertex) & (vertices <= last_vertex)
            if not inside.all():
                outside = ~inside
                if outside.any():
                    self._blocks[block_id] = WalkBlock.from_arrays(
                        sources[outside], offsets[outside], hops[outside]
                    )
                sources = sources[inside]
                offsets = offsets[inside]
                hops = hops[inside]
                vertices = vertices[inside]

            if sources.size == 0:
                continue

            if self.bucket_consumer is not None:
                self.bucket_consumer.consume(DeliveryBatch(base, sources.copy(), offsets.copy()))

            vertex_parts.append(vertices)
            source_parts.append(sources)
            hop_parts.append(hops)

        snapshot = WalkSnapshot(self, first_vertex, last_vertex, vertex_parts, source_parts, hop_parts)
        self._active_windows.append((first_vertex, last_vertex))

        logger.debug("Grab snapshot [%d, %d] took %.1f ms", first_vertex, last_vertex,
                     (time.time() - t) * 1000)
        return snapshot

    def populate_scheduler_with_sources(self, scheduler) -> None:
        """Schedule every source vertex."""
        scheduler.add_tasks(self.source_vertices)

    def populate_scheduler_for_interval(self, scheduler, first_vertex: int, last_vertex: int) -> None:
        """Schedule every vertex in [first_vertex, last_vertex] that holds a walk."""
        for block_id in range(first_vertex >> BLOCK_BITS, (last_vertex >> BLOCK_BITS) + 1):
            block = self._blocks.get(block_id)
            if not block:
                continue
            vertices = np.unique(np.asarray(block.offsets, dtype=np.int64)) + (block_id << BLOCK_BITS)
            vertices = vertices[(vertices >= first_vertex) & (vertices <= last_vertex)]
            scheduler.add_tasks(vertices)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def peek_walks_at_vertex(self, vertex: int) -> Optional[WalkRecords]:
        """Read the live bucket of a vertex without removing it."""
        block = self._blocks.get(vertex >> BLOCK_BITS)
        if not block:
            return None
        sources, offsets, hops = block.to_arrays()
        mask = offsets == (vertex & BLOCK_MASK)
        if not mask.any():
            return None
        return WalkRecords(sources[mask], hops[mask])

    def count_walks(self) -> int:
        """Number of walks currently in live buckets."""
        return sum(len(block) for block in self._blocks.values())

    def get_statistics(self) -> Dict:
        """
        Get statistics about the walk store.

        Returns:
            Dictionary with walk store statistics
        """
        occupied: Set[int] = set()
        num_hops = 0
        for block_id, block in self._blocks.items():
            base = block_id << BLOCK_BITS
            occupied.update(base + off for off in block.offsets)
            num_hops += sum(block.hops)
        in_buckets = self.count_walks()

        return {
            'num_sources': len(self._sources),
            'total_walks': self._total_walks,
            'walks_in_buckets': in_buckets,
            'occupied_vertices': len(occupied),
            'occupied_blocks': sum(1 for b in self._blocks.values() if len(b) > 0),
            'parity_true': num_hops,
            'parity_false': in_buckets - num_hops,
            'active_snapshots': len(self._active_windows),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_vertex(self, vertex: int) -> None:
        if vertex < 0 or vertex >= self.num_vertices:
            raise ValueError(f"Vertex {vertex} out of range [0, {self.num_vertices})")

    def _block_for(self, vertex: int) -> WalkBlock:
        block_id = vertex >> BLOCK_BITS
        block = self._blocks.get(block_id)
        if block is None:
            block = WalkBlock()
            self._blocks[block_id] = block
        return block

    def _restore(self, vertex: int, records: WalkRecords) -> None:
        self._block_for(vertex).extend(
            records.source_indices.tolist(), vertex & BLOCK_MASK, records.hops.tolist()
        )

    def _release(self, snapshot: 'WalkSnapshot') -> None:
        self._active_windows.remove((snapshot.first_vertex, snapshot.last_vertex))

    def __repr__(self) -> str:
        return (f"WalkManager(vertices={self.num_vertices}, "
                f"sources={len(self._sources)}, walks={self._total_walks})")


class WalkSnapshot:
    """
    Exclusive view over the buckets of one window.

    Tracks which vertices were read so that restore_ungrabbed() can put
    back every bucket the driver never visited.
    """

    def __init__(
        self,
        manager: WalkManager,
        first_vertex: int,
        last_vertex: int,
        vertex_parts: List[np.ndarray],
        source_parts: List[np.ndarray],
        hop_parts: List[np.ndarray]
    ):
        self.manager = manager
        self.first_vertex = first_vertex
        self.last_vertex = last_vertex

        self._walks: Dict[int, WalkRecords] = {}
        self._grabbed: Set[int] = set()
        self._closed = False

        if vertex_parts:
            vertices = np.concatenate(vertex_parts)
            sources = np.concatenate(source_parts)
            hops = np.concatenate(hop_parts)

            # Group walks by vertex
            order = np.argsort(vertices, kind='stable')
            vertices = vertices[order]
            sources = sources[order]
            hops = hops[order]

            starts = np.flatnonzero(np.concatenate(([True], vertices[1:] != vertices[:-1])))
            ends = np.append(starts[1:], vertices.size)
            for start, end in zip(starts.tolist(), ends.tolist()):
                self._walks[int(vertices[start])] = WalkRecords(sources[start:end], hops[start:end])

    def get_walks_at_vertex(self, vertex: int, remove: bool = False) -> Optional[WalkRecords]:
        """
        Read the walks resident at a vertex.

        Args:
            vertex: Vertex id inside the window
            remove: Drop the bucket from the snapshot immediately

        Returns:
            Walks at the vertex, or None if there are none
        """
        self._check_open()
        records = self._walks.get(vertex)
        if records is None:
            return None
        self._grabbed.add(vertex)
        if remove:
            del self._walks[vertex]
        return records

    def clear(self, vertex: int) -> None:
        """Release a bucket that was already read."""
        self._check_open()
        if vertex in self._grabbed:
            self._walks.pop(vertex, None)

    def restore_ungrabbed(self) -> int:
        """
        Put every unread bucket back into the walk store and close the snapshot.

        Returns:
            Number of walks restored
        """
        self._check_open()
        restored = 0
        for vertex, records in self._walks.items():
            if vertex in self._grabbed:
                continue
            self.manager._restore(vertex, records)
            restored += len(records)

        self._walks.clear()
        self._closed = True
        self.manager._release(self)
        return restored

    def vertices(self) -> List[int]:
        """Vertices with walks still held by the snapshot."""
        return sorted(self._walks)

    def num_walks(self) -> int:
        """Number of walks held by the snapshot and not yet read."""
        return sum(len(r) for v, r in self._walks.items() if v not in self._grabbed)

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise SnapshotStateError(
                f"Snapshot [{self.first_vertex}, {self.last_vertex}] was already restored"
            )

    def __repr__(self) -> str:
        return (f"WalkSnapshot([{self.first_vertex}, {self.last_vertex}], "
                f"vertices={len(self._walks)}, grabbed={len(self._grabbed)})")
