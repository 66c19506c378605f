"""
In-Memory Traversal Engine.

A reference engine for graphs that fit in memory. It walks the vertex
range in fixed-size windows, the way an out-of-core engine walks its
memory-bounded intervals, and visits only scheduled vertices.
"""

import logging
import time
from typing import Dict, Optional

import numpy as np
import torch

from ..utils.graph_utils import edge_index_to_csr
from .base import TraversalProgram, VertexInterval, VertexScheduler

logger = logging.getLogger(__name__)


class InMemoryEngine:
    """
    Windowed traversal driver over a CSR adjacency.

    Example:
        >>> edge_index = torch.tensor([[0, 1, 2], [1, 2, 0]])
        >>> engine = InMemoryEngine(edge_index, num_nodes=3, window_size=2)
        >>> engine.run(program, num_iterations=5)
    """

    def __init__(
        self,
        edge_index: torch.Tensor,
        num_nodes: int,
        window_size: int = 2_000_000,
        seed: Optional[int] = 42
    ):
        """
        Initialize engine.

        Args:
            edge_index: Edge tensor of shape [2, num_edges]
            num_nodes: Total number of nodes
            window_size: Vertices per window
            seed: Random seed for neighbor picking (None for random)
        """
        if window_size <= 0:
            raise ValueError(f"window_size must be positive, got {window_size}")

        self.num_nodes = num_nodes
        self.window_size = window_size
        self.indptr, self.indices = edge_index_to_csr(edge_index, num_nodes)
        self.scheduler = VertexScheduler(num_nodes)
        self.rng = np.random.default_rng(seed)

        # Statistics
        self.iterations_run = 0
        self.vertices_visited = 0
        self.windows_processed = 0

    def num_vertices(self) -> int:
        return self.num_nodes

    def out_neighbors(self, vertex: int) -> np.ndarray:
        return self.indices[self.indptr[vertex]:self.indptr[vertex + 1]]

    def intervals(self):
        """Yield the windows of one iteration."""
        for first in range(0, self.num_nodes, self.window_size):
            yield VertexInterval(first, min(first + self.window_size, self.num_nodes) - 1)

    def run(self, program: TraversalProgram, num_iterations: int) -> None:
        """
        Run the program for a number of iterations.

        Args:
            program: Callbacks to drive
            num_iterations: Number of full passes over the graph
        """
        for iteration in range(num_iterations):
            t = time.time()
            program.on_iteration_start(iteration, self.scheduler)

            for interval in self.intervals():
                program.on_window_start(interval, self.scheduler)

                for vertex in self.scheduler.scheduled_in(interval.first_vertex, interval.last_vertex).tolist():
                    self.scheduler.remove_task(vertex)
                    neighbors = self.out_neighbors(vertex)
                    program.on_vertex_visited(vertex, neighbors, self._picker(neighbors))
                    self.vertices_visited += 1

                program.on_window_end(interval)
                self.windows_processed += 1

            program.on_iteration_end(iteration)
            self.iterations_run += 1
            logger.info("Iteration %d done in %.2fs", iteration, time.time() - t)

        program.on_run_end()

    def _picker(self, neighbors: np.ndarray):
        def pick() -> int:
            return int(neighbors[self.rng.integers(neighbors.size)])
        return pick

    def get_statistics(self) -> Dict:
        """
        Get engine statistics.

        Returns:
            Dictionary with traversal statistics
        """
        return {
            'num_nodes': self.num_nodes,
            'num_edges': int(self.indices.size),
            'window_size': self.window_size,
            'iterations_run': self.iterations_run,
            'windows_processed': self.windows_processed,
            'vertices_visited': self.vertices_visited,
        }
