"""
DrunkardMob Walk Program.

This module advances walks as the traversal engine streams the graph.
Every visit to a vertex moves each walk resident there one step: to a
random out-neighbor, or back to its source.

Key Concept:
    With probability reset_probability a walk teleports back to its
    source (personalized PageRank style); walks at dead ends always do.
    On the first iteration every walk hops, so no walk is reported at its
    source before it moved at least once.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Optional

import numpy as np

from ..delivery.pipeline import DeliveryPipeline
from ..engine.base import TraversalProgram, VertexInterval, VertexScheduler
from .manager import WalkManager, WalkSnapshot
from .types import SnapshotStateError

logger = logging.getLogger(__name__)


class DrunkardMobProgram(TraversalProgram):
    """
    Walk program driven by a traversal engine.

    Example:
        >>> manager = WalkManager(num_vertices, num_sources)
        >>> for i in range(num_sources):
        ...     manager.add_walk_batch(first_source + i, walks_per_source)
        >>> manager.initialize_walks()
        >>>
        >>> program = DrunkardMobProgram(manager, companion)
        >>> program.initialize_companion()
        >>> engine.run(program, max_hops + 1)
        >>> program.finish(f"{base_name}_{first_source}")
    """

    def __init__(
        self,
        walk_manager: WalkManager,
        companion,
        pipeline=None,
        reset_probability: float = 0.15,
        seed: Optional[int] = 42
    ):
        """
        Initialize walk program.

        Args:
            walk_manager: Initialized walk store
            companion: Aggregator client
            pipeline: Delivery pipeline (None = create one for companion)
            reset_probability: Probability of jumping back to the source
            seed: Random seed (None for random)
        """
        if not 0.0 <= reset_probability < 1.0:
            raise ValueError(f"reset_probability must be in [0, 1), got {reset_probability}")

        self.walk_manager = walk_manager
        self.companion = companion
        self.pipeline = pipeline if pipeline is not None else DeliveryPipeline(companion, walk_manager)
        self.reset_probability = reset_probability
        self.rng = np.random.default_rng(seed)

        self.iteration = -1
        self.snapshot: Optional[WalkSnapshot] = None
        self._run_finished = False

        # Statistics
        self.hops = 0
        self.resets = 0

    def initialize_companion(self) -> None:
        """Tell the companion the sources. Call once after initialize_walks()."""
        self.companion.set_sources(self.walk_manager.get_sources())

    def on_iteration_start(self, iteration: int, scheduler: VertexScheduler) -> None:
        self.iteration = iteration
        if iteration == 0:
            scheduler.remove_all_tasks()
            self.walk_manager.populate_scheduler_with_sources(scheduler)
            self.walk_manager.set_bucket_consumer(self.pipeline)
            self.pipeline.start()

    def on_window_start(self, interval: VertexInterval, scheduler: VertexScheduler) -> None:
        self.walk_manager.populate_scheduler_for_interval(
            scheduler, interval.first_vertex, interval.last_vertex
        )
        self.snapshot = self.walk_manager.grab_snapshot(interval.first_vertex, interval.last_vertex)

    def on_vertex_visited(
        self,
        vertex_id: int,
        out_neighbors: np.ndarray,
        pick_neighbor: Optional[Callable[[], int]] = None
    ) -> None:
        if self.snapshot is None:
            raise SnapshotStateError(f"Vertex {vertex_id} visited outside of a window")

        # Flow control
        self.pipeline.wait_for_capacity()

        first_iteration = self.iteration == 0
        walks = self.snapshot.get_walks_at_vertex(vertex_id, remove=True)
        self.snapshot.clear(vertex_id)

        if first_iteration and self.walk_manager.is_source(vertex_id):
            # Walks landing next to the source are not counted
            source_idx = self.walk_manager.source_index_of(vertex_id)
            self.companion.set_avoid_list(source_idx, out_neighbors)

        if walks is None:
            return

        self.advance(walks.source_indices, walks.hops, out_neighbors, first_iteration, pick_neighbor)

    def advance(
        self,
        source_indices: np.ndarray,
        hops: np.ndarray,
        out_neighbors: np.ndarray,
        first_iteration: bool,
        pick_neighbor: Optional[Callable[[], int]] = None
    ) -> None:
        """
        Move walks one step from the current vertex.

        Args:
            source_indices: Source index of each walk [n]
            hops: Current step parity of each walk [n]
            out_neighbors: Out-neighbors of the current vertex
            first_iteration: Always hop when True
            pick_neighbor: Engine's neighbor picker (None = uniform pick here)
        """
        n = source_indices.size
        if out_neighbors.size > 0:
            hop_mask = first_iteration | (self.rng.random(n) > self.reset_probability)
        else:
            # Dead end
            hop_mask = np.zeros(n, dtype=bool)

        destinations = self.walk_manager.source_vertices[source_indices].copy()
        num_hops = int(np.count_nonzero(hop_mask))
        if num_hops > 0:
            if pick_neighbor is not None:
                picked = np.fromiter(
                    (pick_neighbor() for _ in range(num_hops)), dtype=np.int64, count=num_hops
                )
            else:
                picked = out_neighbors[self.rng.integers(out_neighbors.size, size=num_hops)]
            destinations[hop_mask] = picked

        self.walk_manager.update_walks(source_indices, destinations, ~hops)
        self.hops += num_hops
        self.resets += n - num_hops

    def on_window_end(self, interval: VertexInterval) -> None:
        if self.snapshot is None:
            return
        restored = self.snapshot.restore_ungrabbed()
        if restored:
            logger.debug("Restored %d unvisited walks in [%d, %d]",
                         restored, interval.first_vertex, interval.last_vertex)
        self.snapshot = None

    def on_run_end(self) -> None:
        """Drain the delivery pipeline."""
        if self._run_finished:
            return
        self.pipeline.finish()
        self._run_finished = True

    def finish(self, output_prefix: Optional[str] = None) -> Optional[Path]:
        """
        Drain delivery and optionally export the distributions.

        Args:
            output_prefix: Prefix passed to output_distributions (None = no export)

        Returns:
            Whatever the companion returned for the export
        """
        self.on_run_end()
        if output_prefix is None:
            return None
        return self.companion.output_distributions(output_prefix)

    def get_statistics(self) -> Dict:
        """
        Get walk program statistics.

        Returns:
            Dictionary with transition and delivery counters
        """
        return {
            'iteration': self.iteration,
            'hops': self.hops,
            'resets': self.resets,
            'delivery': self.pipeline.get_statistics(),
            'walks': self.walk_manager.get_statistics(),
        }
